"""
SQLAlchemy database models for Coachline.

Coaching state (personalities, sessions, saved conversations, usage counters,
retrieval embeddings) is owned by this service. Goals, milestones, progress
updates and journal entries are owned by the goal and journal services; the
models here are the read side this service queries.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class SessionStatus(str, enum.Enum):
    """Lifecycle state of a coaching session."""

    ACTIVE = "active"
    COMPLETED = "completed"


class GoalStatus(str, enum.Enum):
    """Goal lifecycle states as written by the goal service."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


ACTIVE_GOAL_STATUSES = (GoalStatus.IN_PROGRESS.value, GoalStatus.NOT_STARTED.value)


class CoachPersonality(Base):
    """User-configurable coaching style, voice and system prompt bundle."""

    __tablename__ = "coach_personalities"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    style: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # 'supportive', 'motivational', 'analytical', ...
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    first_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[str] = mapped_column(
        String(10), nullable=False, server_default="en"
    )

    # Voice parameters
    voice_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    voice_stability: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    voice_similarity_boost: Mapped[Optional[float]] = mapped_column(
        Float, nullable=True
    )

    # Provisioned lazily on first use
    external_agent_id: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True
    )
    is_default: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<CoachPersonality(id={self.id}, name={self.name!r}, "
            f"is_default={self.is_default})>"
        )


class CoachingSession(Base):
    """A voice coaching session; active until a conversation is saved."""

    __tablename__ = "coaching_sessions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    agent_id: Mapped[str] = mapped_column(String(128), nullable=False)
    personality_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        Enum(
            SessionStatus,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        server_default=SessionStatus.ACTIVE.value,
        index=True,
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    # Context snapshot taken when the session was created
    context: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default="{}")

    __table_args__ = (
        Index("ix_coaching_sessions_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<CoachingSession(id={self.id!r}, user_id={self.user_id!r}, "
            f"status={self.status!r})>"
        )


class VoiceConversation(Base):
    """Saved transcript of a finished (or partial) coaching conversation."""

    __tablename__ = "voice_conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    conversation_id: Mapped[str] = mapped_column(
        String(255), nullable=False
    )  # Supplied by the client / voice platform
    agent_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # [{"role": "user"|"agent", "content": str, "timestamp": iso, "audio_url": str|None}]
    transcript: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # seconds
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    ended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # {"goals_count": int, "active_goals": [goal ids]}
    context_snapshot: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    __table_args__ = (
        Index("ix_voice_conversations_user_conversation", "user_id", "conversation_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<VoiceConversation(id={self.id}, "
            f"conversation_id={self.conversation_id!r}, duration={self.duration})>"
        )


class UsageRecord(Base):
    """Per-user, per-action counter for the current usage window."""

    __tablename__ = "usage_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    reset_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "action", name="uq_usage_user_action"),
    )

    def __repr__(self) -> str:
        return (
            f"<UsageRecord(user_id={self.user_id!r}, action={self.action!r}, "
            f"count={self.count})>"
        )


class ContentEmbedding(Base):
    """Embedding vector for one piece of user content (journal entry, chat, ...)."""

    __tablename__ = "content_embeddings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    content_type: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )  # 'journal', 'goal', 'chat'
    document_id: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list] = mapped_column(JSONB, nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)

    # Source metadata (mood, tags, ...)
    extra_data: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default="{}"
    )

    # When the source document was written, not when it was embedded
    source_created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "content_type", "document_id", name="uq_embedding_document"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ContentEmbedding(user_id={self.user_id!r}, "
            f"content_type={self.content_type!r}, document_id={self.document_id!r})>"
        )


# ===== Read side of the goal and journal services =====


class Goal(Base):
    """User goal (written by the goal service)."""

    __tablename__ = "goals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(
        String(100), nullable=False, server_default="general"
    )
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )  # GoalStatus values
    progress_percentage: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0"
    )
    target_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    milestones: Mapped[list["GoalMilestone"]] = relationship(
        back_populates="goal", cascade="all, delete-orphan"
    )
    progress_updates: Mapped[list["GoalProgressUpdate"]] = relationship(
        back_populates="goal", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Goal(id={self.id}, title={self.title!r}, status={self.status!r})>"


class GoalMilestone(Base):
    """Milestone within a goal."""

    __tablename__ = "goal_milestones"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    goal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    goal: Mapped["Goal"] = relationship(back_populates="milestones")


class GoalProgressUpdate(Base):
    """Free-text progress note attached to a goal."""

    __tablename__ = "goal_progress_updates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    goal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    goal: Mapped["Goal"] = relationship(back_populates="progress_updates")


class JournalEntry(Base):
    """Journal entry (written by the journal service)."""

    __tablename__ = "journal_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    mood: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<JournalEntry(id={self.id}, user_id={self.user_id!r})>"
