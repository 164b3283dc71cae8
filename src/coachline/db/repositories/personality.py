"""
Coach personality repository.
"""

import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from coachline.db.repositories.base import BaseRepository
from coachline.models.db import CoachPersonality


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class PersonalityRepository(BaseRepository[CoachPersonality]):
    """Repository for CoachPersonality model."""

    def __init__(self, session: Session):
        super().__init__(CoachPersonality, session)

    def get_for_user(
        self, user_id: str, personality_id: str
    ) -> Optional[CoachPersonality]:
        """
        Get a personality owned by a user.

        A personality that exists but belongs to someone else is reported the
        same way as a missing one.

        Args:
            user_id: Owning user
            personality_id: Personality UUID (string form)

        Returns:
            CoachPersonality or None
        """
        parsed = _parse_uuid(personality_id)
        if parsed is None:
            return None
        return (
            self.session.query(CoachPersonality)
            .filter(
                CoachPersonality.id == parsed,
                CoachPersonality.user_id == user_id,
            )
            .first()
        )

    def get_default(self, user_id: str) -> Optional[CoachPersonality]:
        """Get the user's default personality, oldest first if several are flagged."""
        return (
            self.session.query(CoachPersonality)
            .filter(
                CoachPersonality.user_id == user_id,
                CoachPersonality.is_default.is_(True),
            )
            .order_by(CoachPersonality.created_at.asc())
            .first()
        )

    def list_for_user(self, user_id: str) -> List[CoachPersonality]:
        """List a user's personalities, default first."""
        return (
            self.session.query(CoachPersonality)
            .filter(CoachPersonality.user_id == user_id)
            .order_by(
                CoachPersonality.is_default.desc(), CoachPersonality.created_at.asc()
            )
            .all()
        )

    def set_agent_id(
        self, personality: CoachPersonality, agent_id: str
    ) -> CoachPersonality:
        """Persist a freshly provisioned voice agent id onto a personality."""
        personality.external_agent_id = agent_id
        self.session.flush()
        return personality
