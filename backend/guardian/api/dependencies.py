"""
FastAPI dependencies resolving the components built at startup.
"""
from fastapi import HTTPException, Request

from ..agents.orchestrator import ResponseOrchestrator
from ..booking import BookingService
from ..errors import GuardianError
from ..services import AlertService, VoiceCommandService
from ..session import SessionRegistry
from ..storage import StorageGateway


def _component(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return component


def get_orchestrator(request: Request) -> ResponseOrchestrator:
    return _component(request, "orchestrator")


def get_booking_service(request: Request) -> BookingService:
    return _component(request, "booking_service")


def get_alert_service(request: Request) -> AlertService:
    return _component(request, "alerts")


def get_voice_commands(request: Request) -> VoiceCommandService:
    return _component(request, "voice_commands")


def get_storage_gateway(request: Request) -> StorageGateway:
    return _component(request, "gateway")


def get_session_registry(request: Request) -> SessionRegistry:
    return _component(request, "registry")


def http_error(error: GuardianError) -> HTTPException:
    """Translate an application error into its HTTP status."""
    return HTTPException(status_code=error.status_code, detail=error.message)


__all__ = [
    'get_orchestrator',
    'get_booking_service',
    'get_alert_service',
    'get_voice_commands',
    'get_storage_gateway',
    'get_session_registry',
    'http_error'
]
