"""
Per-user daily usage limits.

Every action has an allowance per UTC day. The counter lives in the
usage_records table and is only changed by conditional UPDATEs, so the
allowance holds across workers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from coachline.db.repositories.usage import UsageRepository
from coachline.utils.dates import ensure_utc, next_utc_midnight, utc_now

logger = logging.getLogger(__name__)


@dataclass
class UsageInfo:
    allowed: bool
    remaining: int
    limit: int
    resets_at: datetime
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "limit": self.limit,
            "resetsAt": self.resets_at.isoformat(),
            "warning": self.warning,
        }


class UsageLimiter:
    """
    Gate for rate-limited actions.

    Args:
        repository: Usage counter storage
        limits: Daily allowance per action
        warning_thresholds: Remaining count at or below which a warning is attached
    """

    def __init__(
        self,
        repository: UsageRepository,
        limits: dict[str, int],
        warning_thresholds: Optional[dict[str, int]] = None,
    ):
        self.repository = repository
        self.limits = limits
        self.warning_thresholds = warning_thresholds or {}

    def limit_for(self, action: str) -> int:
        if action not in self.limits:
            raise ValueError(f"Unknown usage action: {action}")
        return self.limits[action]

    def _warning(self, action: str, remaining: int) -> Optional[str]:
        if remaining <= 0:
            return f"You've reached your daily limit for {action}. Resets at midnight UTC."
        threshold = self.warning_thresholds.get(action, 0)
        if remaining <= threshold:
            return f"Only {remaining} {action} requests remaining today."
        return None

    def check_and_increment(
        self, user_id: str, action: str, now: Optional[datetime] = None
    ) -> UsageInfo:
        """
        Take one unit of a user's allowance for an action.

        Args:
            user_id: User performing the action
            action: Action key (e.g. "voice_coach_session")
            now: Reference time, for tests

        Returns:
            UsageInfo; ``allowed`` is False when the allowance is used up

        Raises:
            ValueError: If the action has no configured limit
        """
        limit = self.limit_for(action)
        now = ensure_utc(now or utc_now())
        window_end = next_utc_midnight(now)

        # A failure rolls back only the savepoint, not the caller's pending work
        try:
            with self.repository.session.begin_nested():
                self.repository.ensure_record(user_id, action, window_end)
                if self.repository.reset_if_expired(user_id, action, now, window_end):
                    logger.debug(f"Usage window reset for {user_id}/{action}")
                incremented = self.repository.try_increment(user_id, action, limit)
                record = self.repository.get_record(user_id, action)
        except SQLAlchemyError as e:
            logger.error(
                f"Usage check failed for {user_id}/{action}, allowing: {e}",
                exc_info=True,
            )
            return UsageInfo(
                allowed=True, remaining=limit, limit=limit, resets_at=window_end
            )

        count = record.count if record else limit
        resets_at = ensure_utc(record.reset_at) if record else window_end
        remaining = max(limit - count, 0)

        if not incremented:
            logger.info(f"Usage limit reached for {user_id}/{action} ({count}/{limit})")
            return UsageInfo(
                allowed=False,
                remaining=0,
                limit=limit,
                resets_at=resets_at,
                warning=self._warning(action, 0),
            )

        return UsageInfo(
            allowed=True,
            remaining=remaining,
            limit=limit,
            resets_at=resets_at,
            warning=self._warning(action, remaining),
        )

    def get_remaining(
        self, user_id: str, action: str, now: Optional[datetime] = None
    ) -> UsageInfo:
        """Report the allowance left without consuming any."""
        limit = self.limit_for(action)
        now = ensure_utc(now or utc_now())
        window_end = next_utc_midnight(now)

        record = self.repository.get_record(user_id, action)
        if record is None or ensure_utc(record.reset_at) <= now:
            return UsageInfo(
                allowed=True, remaining=limit, limit=limit, resets_at=window_end
            )

        remaining = max(limit - record.count, 0)
        return UsageInfo(
            allowed=remaining > 0,
            remaining=remaining,
            limit=limit,
            resets_at=ensure_utc(record.reset_at),
            warning=self._warning(action, remaining),
        )
