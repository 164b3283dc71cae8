"""Read access to goal and journal data owned by other services."""

from coachline.sources.base import (
    GoalCounts,
    GoalRecord,
    GoalSource,
    JournalRecord,
    JournalSource,
    MilestoneRecord,
    ProgressRecord,
)
from coachline.sources.sql import SqlGoalSource, SqlJournalSource

__all__ = [
    "GoalCounts",
    "GoalRecord",
    "GoalSource",
    "JournalRecord",
    "JournalSource",
    "MilestoneRecord",
    "ProgressRecord",
    "SqlGoalSource",
    "SqlJournalSource",
]
