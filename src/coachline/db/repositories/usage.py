"""
Usage counter repository.

Counters are changed only through conditional UPDATE statements so that two
concurrent requests can never both take the last unit of an allowance.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import insert as generic_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from coachline.db.repositories.base import BaseRepository
from coachline.models.db import UsageRecord


class UsageRepository(BaseRepository[UsageRecord]):
    """Repository for UsageRecord model."""

    def __init__(self, session: Session):
        super().__init__(UsageRecord, session)

    def get_record(self, user_id: str, action: str) -> Optional[UsageRecord]:
        """Load the counter row, bypassing any stale identity-map copy."""
        return (
            self.session.query(UsageRecord)
            .filter(UsageRecord.user_id == user_id, UsageRecord.action == action)
            .populate_existing()
            .first()
        )

    def ensure_record(self, user_id: str, action: str, reset_at: datetime) -> None:
        """
        Insert a zeroed counter unless one already exists.

        Uses INSERT ... ON CONFLICT DO NOTHING where the dialect supports it.
        """
        values = {"user_id": user_id, "action": action, "count": 0, "reset_at": reset_at}
        dialect = self.session.get_bind().dialect.name

        if dialect == "postgresql":
            stmt = pg_insert(UsageRecord).values(**values).on_conflict_do_nothing(
                index_elements=["user_id", "action"]
            )
        elif dialect == "sqlite":
            stmt = sqlite_insert(UsageRecord).values(**values).on_conflict_do_nothing(
                index_elements=["user_id", "action"]
            )
        else:
            if self.get_record(user_id, action) is not None:
                return
            stmt = generic_insert(UsageRecord).values(**values)

        self.session.execute(stmt)
        self.session.flush()

    def reset_if_expired(
        self, user_id: str, action: str, now: datetime, next_reset_at: datetime
    ) -> bool:
        """
        Start a new window when the current one has ended.

        Returns:
            True if the counter was reset
        """
        updated = (
            self.session.query(UsageRecord)
            .filter(
                UsageRecord.user_id == user_id,
                UsageRecord.action == action,
                UsageRecord.reset_at <= now,
            )
            .update(
                {UsageRecord.count: 0, UsageRecord.reset_at: next_reset_at},
                synchronize_session=False,
            )
        )
        return updated > 0

    def try_increment(self, user_id: str, action: str, limit: int) -> bool:
        """
        Take one unit of allowance if any is left.

        Returns:
            True if the counter was incremented
        """
        updated = (
            self.session.query(UsageRecord)
            .filter(
                UsageRecord.user_id == user_id,
                UsageRecord.action == action,
                UsageRecord.count < limit,
            )
            .update(
                {UsageRecord.count: UsageRecord.count + 1},
                synchronize_session=False,
            )
        )
        return updated > 0
