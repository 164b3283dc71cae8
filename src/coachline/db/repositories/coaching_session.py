"""
Coaching session repository.
"""

from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from coachline.db.repositories.base import BaseRepository
from coachline.models.db import CoachingSession, SessionStatus


class CoachingSessionRepository(BaseRepository[CoachingSession]):
    """Repository for CoachingSession model."""

    def __init__(self, session: Session):
        super().__init__(CoachingSession, session)

    def get_active(self, user_id: str, now: datetime) -> List[CoachingSession]:
        """
        Get sessions that are still active for a user.

        Expiry is only ever checked here; nothing reaps expired rows.

        Args:
            user_id: Owning user
            now: Reference time (expiry must be strictly later)

        Returns:
            Active, unexpired sessions
        """
        return (
            self.session.query(CoachingSession)
            .filter(
                CoachingSession.user_id == user_id,
                CoachingSession.status == SessionStatus.ACTIVE,
                CoachingSession.expires_at > now,
            )
            .all()
        )

    def complete_active(self, user_id: str) -> int:
        """
        Mark every active session of a user as completed.

        Expired-but-active rows are included.

        Returns:
            Number of sessions updated
        """
        updated = (
            self.session.query(CoachingSession)
            .filter(
                CoachingSession.user_id == user_id,
                CoachingSession.status == SessionStatus.ACTIVE,
            )
            .update(
                {CoachingSession.status: SessionStatus.COMPLETED},
                synchronize_session="fetch",
            )
        )
        self.session.flush()
        return updated

    def list_for_user(self, user_id: str) -> List[CoachingSession]:
        return (
            self.session.query(CoachingSession)
            .filter(CoachingSession.user_id == user_id)
            .order_by(CoachingSession.started_at.desc())
            .all()
        )
