"""
Voice coaching API routes.

Session start, signed connection URLs, conversation saving and history,
plus health and metrics for operators.
"""

import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coachline.api.auth import AuthContext, get_auth_context
from coachline.api.dependencies import (
    get_conversation_store,
    get_metrics,
    get_orchestrator,
)
from coachline.api.schemas import (
    ConversationHistoryResponse,
    ConversationResponse,
    CreateSessionRequest,
    DeleteConversationResponse,
    MetricsResponse,
    SaveConversationRequest,
    SaveConversationResponse,
    SessionResponse,
    SignedUrlResponse,
)
from coachline.coaching.conversations import (
    DEFAULT_HISTORY_LIMIT,
    ConversationPayload,
    ConversationStore,
    HistoryQuery,
    TranscriptMessage,
)
from coachline.coaching.metrics import MetricsRecorder
from coachline.coaching.orchestrator import SessionOrchestrator
from coachline.config import settings
from coachline.db.connection import get_db
from coachline.utils.dates import ensure_utc, utc_now

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/session", response_model=SessionResponse, status_code=status.HTTP_201_CREATED
)
async def create_session(
    body: CreateSessionRequest,
    auth: AuthContext = Depends(get_auth_context),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """
    Start a voice coaching session.

    Rejected with 429 when the daily allowance is used up and 409 while the
    user still has an active session.
    """
    logger.info(f"Creating voice coaching session for user: {auth.user_id}")
    session = await orchestrator.create_session(
        auth.user_id, personality_id=body.personality_id, context=body.context
    )
    return SessionResponse(
        session_id=session.session_id,
        agent_id=session.agent_id,
        context=session.context,
        expires_at=session.expires_at,
    )


@router.get("/signed-url", response_model=SignedUrlResponse)
async def get_signed_url(
    personality_id: Optional[str] = Query(None, alias="personalityId"),
    context: Optional[str] = Query(None, description="Custom prompt context"),
    auth: AuthContext = Depends(get_auth_context),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SignedUrlResponse:
    """Signed connection URL for the user's voice agent, with session overrides."""
    logger.info(f"Generating signed URL for user: {auth.user_id}")
    signed = await orchestrator.get_signed_url(
        auth.user_id, personality_id=personality_id, custom_context=context
    )
    return SignedUrlResponse(
        signed_url=signed.signed_url,
        expires_at=signed.expires_at,
        agent_id=signed.agent_id,
        overrides=signed.overrides,
    )


@router.post(
    "/conversation",
    response_model=SaveConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def save_conversation(
    body: SaveConversationRequest,
    auth: AuthContext = Depends(get_auth_context),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SaveConversationResponse:
    """Save a finished conversation and end the user's active sessions."""
    payload = ConversationPayload(
        conversation_id=body.conversation_id,
        transcript=[
            TranscriptMessage(
                role=message.role,
                content=message.content,
                timestamp=message.timestamp,
                audio_url=message.audio_url,
            )
            for message in body.transcript
        ],
        duration=body.duration,
        started_at=body.started_at,
        ended_at=body.ended_at,
        summary=body.summary,
    )
    await orchestrator.save_conversation(auth.user_id, payload)
    return SaveConversationResponse(
        success=True,
        message="Conversation saved successfully",
        conversation_id=body.conversation_id,
    )


@router.get("/history", response_model=ConversationHistoryResponse)
async def get_conversation_history(
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=100),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    sort_by: Literal["newest", "oldest", "longest", "shortest"] = Query(
        "newest", alias="sortBy"
    ),
    auth: AuthContext = Depends(get_auth_context),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationHistoryResponse:
    """List the user's conversations with search, date range and sorting."""
    page = store.history(
        auth.user_id,
        HistoryQuery(
            limit=limit,
            search=search,
            start_date=ensure_utc(start_date) if start_date else None,
            end_date=ensure_utc(end_date) if end_date else None,
            sort_by=sort_by,
        ),
    )
    logger.info(f"Retrieved {page.total} conversations for user: {auth.user_id}")
    return ConversationHistoryResponse(
        conversations=[
            ConversationResponse.model_validate(c) for c in page.conversations
        ],
        total=page.total,
    )


@router.get("/conversation/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    auth: AuthContext = Depends(get_auth_context),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationResponse:
    conversation = store.load(auth.user_id, conversation_id)
    return ConversationResponse.model_validate(conversation)


@router.delete(
    "/conversation/{conversation_id}", response_model=DeleteConversationResponse
)
async def delete_conversation(
    conversation_id: str,
    auth: AuthContext = Depends(get_auth_context),
    store: ConversationStore = Depends(get_conversation_store),
) -> DeleteConversationResponse:
    store.delete(auth.user_id, conversation_id)
    return DeleteConversationResponse(
        success=True, message="Conversation deleted successfully"
    )


@router.get("/health")
async def health_check(
    session: Session = Depends(get_db),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Voice platform and database status with current metrics."""
    try:
        session.execute(text("SELECT 1"))
        database_ok = True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database_ok = False

    report = await orchestrator.health(
        api_key_present=bool(settings.elevenlabs_api_key), database_ok=database_ok
    )
    logger.info(f"Health check completed: {report['status']}")
    return report


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics_summary(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    metrics: MetricsRecorder = Depends(get_metrics),
) -> MetricsResponse:
    """Aggregated metrics for a window (default: last 24 hours) and recent errors."""
    end = ensure_utc(end_date) if end_date else utc_now()
    start = ensure_utc(start_date) if start_date else None
    aggregated = metrics.aggregate(start, end)
    return MetricsResponse(
        metrics=aggregated.to_dict(),
        recent_errors=[e.to_dict() for e in metrics.recent_errors(10)],
        period={
            "start": aggregated.period_start.isoformat(),
            "end": aggregated.period_end.isoformat(),
        },
    )
