"""
FastAPI application entry point.
Version: 1.0.0
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging
import asyncio
from typing import Any, Dict, List, Optional

from .config import Settings, settings
from .config.provider_settings import ProviderSettings, provider_settings
from .agents import ResponseOrchestrator
from .api.dispatcher import CommandDispatcher
from .api.routes import booking, chat, health, voice
from .api.websocket import ConnectionManager, websocket_endpoint
from .booking import BookingService
from .conversation import create_conversation_store
from .errors import GuardianError
from .providers import ReplyProvider, create_provider_chain
from .services import AlertService, VoiceCommandService
from .session import SessionRegistry
from .storage import create_storage_gateway
from .utils.telemetry import setup_telemetry, metrics_collector
from .utils.middleware import (
    RequestContextMiddleware,
    RateLimitMiddleware,
    ErrorHandlingMiddleware
)

# Configure structured logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


async def storage_health_task(app: FastAPI, interval: int, stop: asyncio.Event) -> None:
    """
    Refresh the durable store health flag until shutdown.

    Operations read the cached flag; this task is what flips it back
    to healthy after an outage.
    """
    logger.info("Starting storage health task")

    while not stop.is_set():
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
            break
        except asyncio.TimeoutError:
            pass

        try:
            healthy = await app.state.gateway.refresh_health()
            logger.debug(f"Durable store healthy: {healthy}")
        except Exception as e:
            logger.error(f"Error in storage health task: {e}", exc_info=True)


def create_app(
    app_settings: Optional[Settings] = None,
    provider_config: Optional[ProviderSettings] = None,
    providers: Optional[List[ReplyProvider]] = None
) -> FastAPI:
    """
    Build the application.

    Args:
        app_settings: Application settings, defaults to the environment
        provider_config: Provider settings, defaults to the environment
        providers: Reply provider chain, defaults to DeepSeek, OpenAI, web search
    """
    app_settings = app_settings or settings
    provider_config = provider_config or provider_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build components on startup, release them on shutdown.
        """
        # === STARTUP ===
        logger.info("=" * 60)
        logger.info(f"Starting {app_settings.app_name} v{app_settings.app_version}")
        logger.info(f"Environment: {app_settings.environment}")
        logger.info(f"Debug mode: {app_settings.debug}")
        logger.info("=" * 60)

        state = app.state
        state.settings = app_settings

        state.gateway = await create_storage_gateway(app_settings)
        await state.gateway.refresh_health()
        logger.info(f"✓ Storage active backend: {state.gateway.active_backend}")

        state.conversation_store = create_conversation_store(app_settings)
        logger.info(f"✓ Conversation store: {type(state.conversation_store).__name__}")

        logger.info(f"Configured providers: {', '.join(provider_config.get_configured_providers())}")

        state.orchestrator = ResponseOrchestrator(
            providers if providers is not None else create_provider_chain(provider_config),
            state.conversation_store,
            provider_config
        )

        state.registry = SessionRegistry()
        state.connection_manager = ConnectionManager()
        state.booking_service = BookingService(state.gateway)
        state.alerts = AlertService(state.gateway)
        state.voice_commands = VoiceCommandService(state.orchestrator, state.alerts)
        state.dispatcher = CommandDispatcher(
            state.registry,
            state.connection_manager,
            state.orchestrator,
            state.booking_service,
            state.alerts
        )

        stop = asyncio.Event()
        health_task = asyncio.create_task(
            storage_health_task(app, app_settings.storage_health_interval_seconds, stop)
        )

        logger.info("=" * 60)
        logger.info("✓ Application started successfully")
        logger.info(f"Health check: http://{app_settings.api_host}:{app_settings.api_port}/health")
        logger.info("=" * 60)

        yield  # === APPLICATION RUNS HERE ===

        # === SHUTDOWN ===
        logger.info("Shutting down application...")

        stop.set()
        try:
            await asyncio.wait_for(health_task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Storage health task did not stop in time, cancelling...")
            health_task.cancel()

        for name, closer in (
            ("providers", state.orchestrator.close),
            ("conversation store", state.conversation_store.close),
            ("storage", state.gateway.close)
        ):
            try:
                await closer()
                logger.info(f"✓ Closed {name}")
            except Exception as e:
                logger.error(f"Error closing {name}: {e}")

        logger.info("✓ Application shutdown complete")

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        description="Conversational assistant backend with chat, voice, booking and emergency alerts",
        lifespan=lifespan,
        docs_url="/docs" if app_settings.debug else None,
        redoc_url="/redoc" if app_settings.debug else None,
        openapi_url="/openapi.json" if app_settings.debug else None
    )

    if app_settings.enable_telemetry:
        setup_telemetry(app)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=app_settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time", "X-RateLimit-Limit"]
    )

    # Add custom middleware (order matters - applied in reverse)
    app.add_middleware(ErrorHandlingMiddleware, debug=app_settings.debug)
    app.add_middleware(RequestContextMiddleware)

    if app_settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            calls=app_settings.rate_limit_requests,
            period=app_settings.rate_limit_period
        )

    # Include API routes
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(chat.router, prefix=f"{app_settings.api_prefix}/chat", tags=["Chat"])
    app.include_router(booking.router, prefix=f"{app_settings.api_prefix}/book", tags=["Booking"])
    app.include_router(voice.router, prefix=f"{app_settings.api_prefix}/voice", tags=["Voice"])

    # Add WebSocket endpoint
    app.add_api_websocket_route("/ws", websocket_endpoint, name="websocket")

    register_exception_handlers(app, app_settings.debug)

    @app.get("/", tags=["Root"])
    async def root(request: Request) -> Dict[str, Any]:
        """
        Root endpoint with API information and status.
        """
        state = request.app.state
        return {
            "name": app_settings.app_name,
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "status": "operational",
            "endpoints": {
                "docs": "/docs" if app_settings.debug else "disabled",
                "health": "/health",
                "metrics": "/metrics" if app_settings.enable_telemetry else "disabled",
                "api": app_settings.api_prefix,
                "websocket": "/ws"
            },
            "storage": state.gateway.active_backend,
            "sessions": state.registry.get_stats(),
            "metrics": metrics_collector.get_stats()
        }

    return app


def register_exception_handlers(app: FastAPI, debug: bool) -> None:
    """Every error response has the shape {"success": false, "error": ...}."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        content = {"success": False, "error": "Invalid request"}
        if debug:
            content["details"] = exc.errors()
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(GuardianError)
    async def guardian_exception_handler(request: Request, exc: GuardianError) -> JSONResponse:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        content = {"success": False, "error": exc.message}
        if debug and exc.details:
            content["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Handle uncaught exceptions gracefully.
        """
        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            f"Unhandled exception in request {request_id}: {exc}",
            exc_info=True,
            extra={
                "path": request.url.path,
                "method": request.method,
                "client": request.client.host if request.client else "unknown"
            }
        )

        metrics_collector.record_error()

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc) if debug else "Internal server error",
                "request_id": request_id
            }
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "guardian.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
        access_log=True
    )
