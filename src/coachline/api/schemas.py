"""
API schemas for Coachline.

Pydantic models for request/response validation. Field names are snake_case
in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema with camelCase aliases; accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ===== Voice coaching =====


class CreateSessionRequest(CamelModel):
    personality_id: Optional[str] = None
    context: Optional[dict[str, Any]] = None


class SessionResponse(CamelModel):
    session_id: str
    agent_id: str
    context: dict[str, Any]
    expires_at: datetime


class SignedUrlResponse(CamelModel):
    signed_url: str
    expires_at: datetime
    agent_id: str
    overrides: dict[str, Any] = Field(default_factory=dict)


class TranscriptMessageIn(CamelModel):
    role: Literal["user", "agent"]
    content: str
    timestamp: datetime
    audio_url: Optional[str] = None


class SaveConversationRequest(CamelModel):
    conversation_id: str = Field(..., min_length=1)
    transcript: list[TranscriptMessageIn]
    duration: int = Field(..., ge=0)  # seconds
    started_at: datetime
    ended_at: datetime
    summary: Optional[str] = None


class SaveConversationResponse(CamelModel):
    success: bool
    message: str
    conversation_id: str


class ConversationResponse(CamelModel):
    """A stored conversation."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: UUID
    conversation_id: str
    agent_id: Optional[str] = None
    transcript: list[dict[str, Any]]
    duration: int
    started_at: datetime
    ended_at: datetime
    summary: Optional[str] = None
    context_snapshot: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class ConversationHistoryResponse(CamelModel):
    conversations: list[ConversationResponse]
    total: int


class DeleteConversationResponse(CamelModel):
    success: bool
    message: str


class MetricsResponse(CamelModel):
    metrics: dict[str, Any]
    recent_errors: list[dict[str, Any]]
    period: dict[str, str]


# ===== Text coaching =====


class ChatHistoryItem(CamelModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(CamelModel):
    message: str = Field(..., min_length=1)
    personality_id: Optional[str] = None
    history: list[ChatHistoryItem] = Field(default_factory=list)
