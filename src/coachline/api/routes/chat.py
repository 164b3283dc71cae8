"""
Text coaching API routes.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from coachline.api.auth import AuthContext, get_auth_context
from coachline.api.dependencies import get_chat_service
from coachline.api.schemas import ChatRequest
from coachline.coaching.chat import ChatService
from coachline.llm.providers.base import ChatMessage

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("/message/stream")
async def stream_message(
    request: Request,
    body: ChatRequest,
    auth: AuthContext = Depends(get_auth_context),
    chat: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """
    Stream a coaching reply as server-sent events.

    Usage is checked before the stream opens, so an exhausted allowance is a
    plain 429 response rather than an event.
    """
    turn = await chat.start(
        auth.user_id,
        body.message,
        personality_id=body.personality_id,
        history=[
            ChatMessage(role=item.role, content=item.content) for item in body.history
        ],
    )
    logger.info(f"Streaming chat reply {turn.turn_id} for user: {auth.user_id}")
    return StreamingResponse(
        chat.stream(turn, is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
