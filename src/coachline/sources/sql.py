"""
SQL-backed goal and journal sources.

Each call opens its own short-lived session and runs in a worker thread, so
the context builder can fan out several calls at once.
"""

import asyncio
import uuid
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from coachline.models.db import (
    ACTIVE_GOAL_STATUSES,
    Goal,
    GoalMilestone,
    GoalProgressUpdate,
    GoalStatus,
    JournalEntry,
)
from coachline.sources.base import (
    GoalCounts,
    GoalRecord,
    GoalSource,
    JournalRecord,
    JournalSource,
    MilestoneRecord,
    ProgressRecord,
)
from coachline.utils.dates import ensure_utc, utc_now

SessionFactory = Callable[[], Session]

_CLOSED_STATUSES = (GoalStatus.COMPLETED.value, GoalStatus.ABANDONED.value)


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _goal_record(goal: Goal) -> GoalRecord:
    return GoalRecord(
        id=str(goal.id),
        user_id=goal.user_id,
        title=goal.title,
        status=goal.status,
        target_date=ensure_utc(goal.target_date),
        description=goal.description or "",
        category=goal.category,
        progress_percentage=goal.progress_percentage or 0,
    )


def _journal_record(entry: JournalEntry) -> JournalRecord:
    return JournalRecord(
        id=str(entry.id),
        user_id=entry.user_id,
        content=entry.content,
        created_at=ensure_utc(entry.created_at),
        mood=entry.mood,
        tags=list(entry.tags or []),
    )


class SqlGoalSource(GoalSource):
    """Goal source over the goal service's tables."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def list_goals(self, user_id: str, status: str) -> list[GoalRecord]:
        return await asyncio.to_thread(self._list_goals, user_id, status)

    def _list_goals(self, user_id: str, status: str) -> list[GoalRecord]:
        with self._session_factory() as session:
            goals = (
                session.query(Goal)
                .filter(Goal.user_id == user_id, Goal.status == status)
                .order_by(Goal.target_date.asc())
                .all()
            )
            return [_goal_record(g) for g in goals]

    async def get_milestones(self, user_id: str, goal_id: str) -> list[MilestoneRecord]:
        return await asyncio.to_thread(self._get_milestones, user_id, goal_id)

    def _get_milestones(self, user_id: str, goal_id: str) -> list[MilestoneRecord]:
        parsed = _parse_uuid(goal_id)
        if parsed is None:
            return []
        with self._session_factory() as session:
            milestones = (
                session.query(GoalMilestone)
                .join(Goal, Goal.id == GoalMilestone.goal_id)
                .filter(Goal.id == parsed, Goal.user_id == user_id)
                .order_by(GoalMilestone.order.asc(), GoalMilestone.created_at.asc())
                .all()
            )
            return [
                MilestoneRecord(
                    id=str(m.id),
                    title=m.title,
                    completed=bool(m.completed),
                    due_date=ensure_utc(m.due_date) if m.due_date else None,
                )
                for m in milestones
            ]

    async def get_progress_updates(
        self, user_id: str, goal_id: str
    ) -> list[ProgressRecord]:
        return await asyncio.to_thread(self._get_progress_updates, user_id, goal_id)

    def _get_progress_updates(self, user_id: str, goal_id: str) -> list[ProgressRecord]:
        parsed = _parse_uuid(goal_id)
        if parsed is None:
            return []
        with self._session_factory() as session:
            updates = (
                session.query(GoalProgressUpdate)
                .join(Goal, Goal.id == GoalProgressUpdate.goal_id)
                .filter(Goal.id == parsed, Goal.user_id == user_id)
                .order_by(GoalProgressUpdate.created_at.desc())
                .all()
            )
            return [
                ProgressRecord(
                    id=str(u.id),
                    content=u.content,
                    created_at=ensure_utc(u.created_at),
                )
                for u in updates
            ]

    async def get_goal_counts(self, user_id: str) -> GoalCounts:
        return await asyncio.to_thread(self._get_goal_counts, user_id)

    def _get_goal_counts(self, user_id: str) -> GoalCounts:
        with self._session_factory() as session:
            by_status = dict(
                session.query(Goal.status, func.count(Goal.id))
                .filter(Goal.user_id == user_id)
                .group_by(Goal.status)
                .all()
            )
            overdue = (
                session.query(func.count(Goal.id))
                .filter(
                    Goal.user_id == user_id,
                    Goal.target_date < utc_now(),
                    Goal.status.notin_(_CLOSED_STATUSES),
                )
                .scalar()
            )

        return GoalCounts(
            total=sum(by_status.values()),
            active=sum(by_status.get(s, 0) for s in ACTIVE_GOAL_STATUSES),
            completed=by_status.get(GoalStatus.COMPLETED.value, 0),
            abandoned=by_status.get(GoalStatus.ABANDONED.value, 0),
            overdue=overdue or 0,
        )


class SqlJournalSource(JournalSource):
    """Journal source over the journal service's table."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def get_recent(self, user_id: str, limit: int) -> list[JournalRecord]:
        return await asyncio.to_thread(self._query, user_id, limit)

    async def list_all(self, user_id: str) -> list[JournalRecord]:
        return await asyncio.to_thread(self._query, user_id, None)

    def _query(self, user_id: str, limit: Optional[int]) -> list[JournalRecord]:
        with self._session_factory() as session:
            query = (
                session.query(JournalEntry)
                .filter(JournalEntry.user_id == user_id)
                .order_by(JournalEntry.created_at.desc())
            )
            if limit:
                query = query.limit(limit)
            return [_journal_record(e) for e in query.all()]
