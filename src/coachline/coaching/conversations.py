"""
Saved coaching conversations.

Ownership and date filtering happen in SQL. Free-text search and duration
ordering are applied in memory after the fetch, since the table is only
indexed for creation-time ordering.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from coachline.db.repositories.conversation import VoiceConversationRepository
from coachline.exceptions import CoachingError
from coachline.models.db import VoiceConversation
from coachline.utils.dates import ensure_utc

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
SORT_OPTIONS = ("newest", "oldest", "longest", "shortest")


@dataclass
class TranscriptMessage:
    role: str  # "user" or "agent"
    content: str
    timestamp: datetime
    audio_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": ensure_utc(self.timestamp).isoformat(),
            "audio_url": self.audio_url,
        }


@dataclass
class ConversationPayload:
    """A finished conversation as reported by the client."""

    conversation_id: str
    transcript: list[TranscriptMessage]
    duration: int  # seconds
    started_at: datetime
    ended_at: datetime
    summary: Optional[str] = None


@dataclass
class HistoryQuery:
    limit: int = DEFAULT_HISTORY_LIMIT
    search: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    sort_by: str = "newest"


@dataclass
class HistoryPage:
    conversations: list[VoiceConversation] = field(default_factory=list)
    total: int = 0


def _matches(conversation: VoiceConversation, needle: str) -> bool:
    if conversation.summary and needle in conversation.summary.lower():
        return True
    return any(
        needle in (message.get("content") or "").lower()
        for message in conversation.transcript or []
    )


class ConversationStore:
    """Persists transcripts and answers history queries for their owners."""

    def __init__(self, repository: VoiceConversationRepository):
        self.repository = repository

    def save(
        self,
        user_id: str,
        payload: ConversationPayload,
        agent_id: Optional[str] = None,
        context_snapshot: Optional[dict] = None,
    ) -> VoiceConversation:
        conversation = self.repository.create(
            user_id=user_id,
            conversation_id=payload.conversation_id,
            agent_id=agent_id,
            transcript=[message.to_dict() for message in payload.transcript],
            duration=payload.duration,
            started_at=ensure_utc(payload.started_at),
            ended_at=ensure_utc(payload.ended_at),
            summary=payload.summary,
            context_snapshot=context_snapshot,
        )
        logger.info(
            f"Saved conversation {payload.conversation_id} for user {user_id} "
            f"({len(payload.transcript)} messages, {payload.duration}s)"
        )
        return conversation

    def history(self, user_id: str, query: HistoryQuery) -> HistoryPage:
        """
        List a user's conversations.

        ``longest``/``shortest`` order strictly by duration; ``search`` matches
        the summary and every transcript message, case-insensitively.

        Raises:
            ValueError: For an unknown sort option
        """
        if query.sort_by not in SORT_OPTIONS:
            raise ValueError(f"Unknown sort option: {query.sort_by}")

        in_memory = bool(query.search) or query.sort_by in ("longest", "shortest")
        conversations = self.repository.list_for_user(
            user_id,
            start_date=query.start_date,
            end_date=query.end_date,
            oldest_first=query.sort_by == "oldest",
            # Search and duration ordering need the full set before limiting
            limit=None if in_memory else query.limit,
        )

        if query.search:
            needle = query.search.lower()
            conversations = [c for c in conversations if _matches(c, needle)]

        if query.sort_by == "longest":
            conversations.sort(key=lambda c: c.duration, reverse=True)
        elif query.sort_by == "shortest":
            conversations.sort(key=lambda c: c.duration)

        if query.limit:
            conversations = conversations[: query.limit]

        return HistoryPage(conversations=conversations, total=len(conversations))

    def load(self, user_id: str, conversation_id: str) -> VoiceConversation:
        """
        Raises:
            CoachingError: CONVERSATION_NOT_FOUND, also when another user owns it
        """
        conversation = self.repository.get_by_conversation_id(user_id, conversation_id)
        if conversation is None:
            raise CoachingError.conversation_not_found(conversation_id)
        return conversation

    def delete(self, user_id: str, conversation_id: str) -> None:
        conversation = self.load(user_id, conversation_id)
        self.repository.delete_instance(conversation)
        logger.info(f"Deleted conversation {conversation_id} for user {user_id}")
