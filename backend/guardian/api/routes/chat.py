"""
Chat API routes.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from typing import Optional
import json
import logging

from ..dependencies import get_orchestrator
from ...agents.orchestrator import ResponseOrchestrator
from ...conversation import ConversationKey
from ...models.schemas import ChatRequest, ChatResponse, HistoryResponse, WebSearchRequest
from ...utils import utcnow_iso

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ChatResponse)
async def send_message(
    request: ChatRequest,
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator)
):
    """
    Send a message and receive a reply.

    Provider failures never surface here; the worst case is the fixed
    apology with source "error".
    """
    result = await orchestrator.chat(
        request.user_id,
        request.message,
        request.conversation_id,
        request.use_reasoner
    )
    return ChatResponse(**result)


@router.post("/stream")
async def stream_message(
    request: ChatRequest,
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator)
):
    """
    Stream a reply as server-sent events.

    Each event is a JSON frame with type chunk, complete or error.
    """
    async def event_source():
        stream = orchestrator.stream_chat(request.user_id, request.message, request.conversation_id)
        try:
            async for frame in stream:
                yield f"data: {json.dumps(frame)}\n\n"
        finally:
            await stream.aclose()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    )


@router.get("/history/{user_id}", response_model=HistoryResponse)
async def get_history(
    user_id: str,
    conversation_id: Optional[str] = Query(None, alias="conversationId"),
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator)
):
    key = ConversationKey.for_text(user_id, conversation_id)
    try:
        history = await orchestrator.get_history(key)
    except Exception as e:
        logger.error(f"Error retrieving history for {key.as_string()}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve conversation history")

    return HistoryResponse(history=history, conversationId=key.conversation_id)


@router.delete("/history/{user_id}")
async def clear_history(
    user_id: str,
    conversation_id: Optional[str] = Query(None, alias="conversationId"),
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator)
):
    key = ConversationKey.for_text(user_id, conversation_id)
    try:
        await orchestrator.clear_history(key)
    except Exception as e:
        logger.error(f"Error clearing history for {key.as_string()}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to clear conversation history")

    return {"success": True, "message": "Conversation history cleared"}


@router.post("/web-search")
async def web_search(
    request: WebSearchRequest,
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator)
):
    """Query the web fallback directly."""
    try:
        reply = await orchestrator.web_search(request.query)
    except Exception as e:
        logger.error(f"Web search failed for user {request.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Web search failed")

    return {
        "success": True,
        "response": reply.response,
        "source": reply.source,
        "timestamp": utcnow_iso(),
        "query": request.query
    }
