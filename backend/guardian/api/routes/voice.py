"""
Voice API routes: transcripts, named commands, wake words and
emergency alerts.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from ..dependencies import get_alert_service, get_orchestrator, get_voice_commands, http_error
from ...agents.orchestrator import ResponseOrchestrator
from ...conversation import ConversationKey
from ...errors import GuardianError
from ...models.schemas import (
    AlertUpdateRequest, EmergencyRequest, HistoryResponse,
    VoiceCommandRequest, VoiceProcessRequest, WakeWordRequest
)
from ...services import AlertService, VoiceCommandService, wake_word_response
from ...utils import utcnow_iso

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/process")
async def process_voice(
    request: VoiceProcessRequest,
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator)
):
    """
    Reply to a voice transcript.

    Transcripts below the confidence threshold get the fixed repeat
    prompt with requiresRepeat set, without touching any provider.
    """
    result = await orchestrator.voice(
        request.user_id,
        request.transcript,
        request.session_id,
        request.confidence,
        request.language
    )
    return {"success": True, **result}


@router.post("/command")
async def process_command(
    request: VoiceCommandRequest,
    commands: VoiceCommandService = Depends(get_voice_commands)
):
    try:
        result = await commands.process_command(request.command, request.user_id, request.parameters)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, **result, "timestamp": utcnow_iso()}


@router.get("/session/{user_id}", response_model=HistoryResponse)
async def get_voice_session(
    user_id: str,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator)
):
    key = ConversationKey.for_voice(user_id, session_id)
    try:
        history = await orchestrator.get_history(key)
    except Exception as e:
        logger.error(f"Error retrieving voice session {key.as_string()}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve voice session")

    return HistoryResponse(history=history, sessionId=key.conversation_id)


@router.delete("/session/{user_id}")
async def clear_voice_session(
    user_id: str,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator)
):
    key = ConversationKey.for_voice(user_id, session_id)
    try:
        await orchestrator.clear_history(key)
    except Exception as e:
        logger.error(f"Error clearing voice session {key.as_string()}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to clear voice session")

    return {"success": True, "message": "Voice session cleared"}


@router.post("/wake-word")
async def wake_word(request: WakeWordRequest):
    logger.info(f"Wake word '{request.wake_word}' detected for user {request.user_id}")
    return {
        "success": True,
        **wake_word_response(request.wake_word),
        "confidence": request.confidence,
        "timestamp": utcnow_iso()
    }


@router.post("/emergency")
async def emergency(
    request: EmergencyRequest,
    commands: VoiceCommandService = Depends(get_voice_commands)
):
    """Raise an emergency alert. Requests on this route are always priority high."""
    try:
        result = await commands.emergency(
            request.user_id,
            request.emergency_type,
            request.location,
            request.additional_info,
            priority="high"
        )
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, **result, "timestamp": utcnow_iso()}


@router.get("/alerts/{user_id}")
async def list_alerts(
    user_id: str,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    alerts: AlertService = Depends(get_alert_service)
):
    try:
        items = await alerts.list_alerts(user_id, status=status, limit=limit)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "alerts": items, "count": len(items)}


@router.put("/alerts/{alert_id}")
async def update_alert(
    alert_id: str,
    request: AlertUpdateRequest,
    alerts: AlertService = Depends(get_alert_service)
):
    """Resolve or cancel one of the caller's alerts. Alerts are never deleted."""
    try:
        alert = await alerts.update_status(alert_id, request.user_id, request.status.value, request.note)
    except GuardianError as e:
        raise http_error(e)

    return {"success": True, "alert": alert}
