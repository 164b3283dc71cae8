"""
Collaborator interfaces for goal and journal data.

Records are plain dataclasses so that implementations never leak ORM
instances across threads.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class GoalRecord:
    id: str
    user_id: str
    title: str
    status: str
    target_date: datetime
    description: str = ""
    category: str = "general"
    progress_percentage: int = 0


@dataclass
class MilestoneRecord:
    id: str
    title: str
    completed: bool = False
    due_date: Optional[datetime] = None


@dataclass
class ProgressRecord:
    id: str
    content: str
    created_at: datetime


@dataclass
class JournalRecord:
    id: str
    user_id: str
    content: str
    created_at: datetime
    mood: Optional[str] = None
    tags: list[str] = field(default_factory=list)


@dataclass
class GoalCounts:
    total: int = 0
    active: int = 0  # in_progress + not_started
    completed: int = 0
    abandoned: int = 0
    overdue: int = 0


class GoalSource(ABC):
    """Async read interface of the goal service."""

    @abstractmethod
    async def list_goals(self, user_id: str, status: str) -> list[GoalRecord]:
        """Goals of a user with the given status."""

    @abstractmethod
    async def get_milestones(self, user_id: str, goal_id: str) -> list[MilestoneRecord]:
        """Milestones of a goal in display order."""

    @abstractmethod
    async def get_progress_updates(
        self, user_id: str, goal_id: str
    ) -> list[ProgressRecord]:
        """Progress notes of a goal, newest first."""

    @abstractmethod
    async def get_goal_counts(self, user_id: str) -> GoalCounts:
        """Aggregate goal counts for a user."""


class JournalSource(ABC):
    """Async read interface of the journal service."""

    @abstractmethod
    async def get_recent(self, user_id: str, limit: int) -> list[JournalRecord]:
        """Most recent entries, newest first."""

    @abstractmethod
    async def list_all(self, user_id: str) -> list[JournalRecord]:
        """Every entry of a user, newest first."""
