"""Initial schema: coaching state and the goal/journal read side

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, **kwargs) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
        **kwargs,
    )


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "coach_personalities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("style", sa.String(50), nullable=False),
        sa.Column("system_prompt", sa.Text(), nullable=False),
        sa.Column("first_message", sa.Text(), nullable=True),
        sa.Column("language", sa.String(10), nullable=False, server_default="en"),
        sa.Column("voice_id", sa.String(64), nullable=True),
        sa.Column("voice_stability", sa.Float(), nullable=True),
        sa.Column("voice_similarity_boost", sa.Float(), nullable=True),
        sa.Column("external_agent_id", sa.String(128), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default="false"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index(
        "ix_coach_personalities_user_id", "coach_personalities", ["user_id"]
    )
    op.create_index(
        "ix_coach_personalities_is_default", "coach_personalities", ["is_default"]
    )

    op.create_table(
        "coaching_sessions",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("agent_id", sa.String(128), nullable=False),
        sa.Column("personality_id", sa.String(64), nullable=True),
        sa.Column(
            "status", sa.String(9), nullable=False, server_default="active"
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "context",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_coaching_sessions_user_id", "coaching_sessions", ["user_id"])
    op.create_index("ix_coaching_sessions_status", "coaching_sessions", ["status"])
    op.create_index(
        "ix_coaching_sessions_expires_at", "coaching_sessions", ["expires_at"]
    )
    op.create_index(
        "ix_coaching_sessions_user_status", "coaching_sessions", ["user_id", "status"]
    )

    op.create_table(
        "voice_conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("conversation_id", sa.String(255), nullable=False),
        sa.Column("agent_id", sa.String(128), nullable=True),
        sa.Column("transcript", postgresql.JSONB(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("context_snapshot", postgresql.JSONB(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_voice_conversations_user_id", "voice_conversations", ["user_id"]
    )
    op.create_index(
        "ix_voice_conversations_started_at", "voice_conversations", ["started_at"]
    )
    op.create_index(
        "ix_voice_conversations_created_at", "voice_conversations", ["created_at"]
    )
    op.create_index(
        "ix_voice_conversations_user_conversation",
        "voice_conversations",
        ["user_id", "conversation_id"],
    )

    op.create_table(
        "usage_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reset_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("updated_at"),
        sa.UniqueConstraint("user_id", "action", name="uq_usage_user_action"),
    )
    op.create_index("ix_usage_records_user_id", "usage_records", ["user_id"])

    op.create_table(
        "content_embeddings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("content_type", sa.String(50), nullable=False),
        sa.Column("document_id", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", postgresql.JSONB(), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column(
            "extra_data",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("source_created_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint(
            "user_id", "content_type", "document_id", name="uq_embedding_document"
        ),
    )
    op.create_index("ix_content_embeddings_user_id", "content_embeddings", ["user_id"])
    op.create_index(
        "ix_content_embeddings_content_type", "content_embeddings", ["content_type"]
    )

    # Read side of the goal and journal services
    op.create_table(
        "goals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(100), nullable=False, server_default="general"),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("target_date", sa.DateTime(timezone=True), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_goals_user_id", "goals", ["user_id"])
    op.create_index("ix_goals_status", "goals", ["status"])

    op.create_table(
        "goal_milestones",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "goal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("goals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("created_at"),
    )
    op.create_index("ix_goal_milestones_goal_id", "goal_milestones", ["goal_id"])

    op.create_table(
        "goal_progress_updates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "goal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("goals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_goal_progress_updates_goal_id", "goal_progress_updates", ["goal_id"]
    )
    op.create_index(
        "ix_goal_progress_updates_created_at", "goal_progress_updates", ["created_at"]
    )

    op.create_table(
        "journal_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("mood", sa.String(50), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_journal_entries_user_id", "journal_entries", ["user_id"])
    op.create_index("ix_journal_entries_created_at", "journal_entries", ["created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("journal_entries")
    op.drop_table("goal_progress_updates")
    op.drop_table("goal_milestones")
    op.drop_table("goals")
    op.drop_table("content_embeddings")
    op.drop_table("usage_records")
    op.drop_table("voice_conversations")
    op.drop_table("coaching_sessions")
    op.drop_table("coach_personalities")
