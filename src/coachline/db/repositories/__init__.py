"""
Repository layer for database operations.

Provides a clean API for CRUD operations on database models.
"""

from coachline.db.repositories.base import BaseRepository
from coachline.db.repositories.coaching_session import CoachingSessionRepository
from coachline.db.repositories.conversation import VoiceConversationRepository
from coachline.db.repositories.embedding import EmbeddingRepository
from coachline.db.repositories.personality import PersonalityRepository
from coachline.db.repositories.usage import UsageRepository

__all__ = [
    "BaseRepository",
    "CoachingSessionRepository",
    "EmbeddingRepository",
    "PersonalityRepository",
    "UsageRepository",
    "VoiceConversationRepository",
]
