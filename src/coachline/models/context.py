"""
Coaching context snapshot models.

A UserContext is assembled per request from the goal and journal services
and the retrieval index. It is never the source of truth: sessions store its
dict form, conversations store only a summary of it. Snapshots are frozen;
builders derive new ones with dataclasses.replace.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class MilestoneContext:
    title: str
    completed: bool
    due_date: Optional[str] = None  # YYYY-MM-DD

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "completed": self.completed,
            "dueDate": self.due_date,
        }


@dataclass(frozen=True)
class ProgressContext:
    content: str
    date: str  # YYYY-MM-DD

    def to_dict(self) -> dict:
        return {"content": self.content, "date": self.date}


@dataclass(frozen=True)
class GoalContext:
    """Active goal with its milestones and latest progress notes."""

    id: str
    title: str
    description: str
    category: str
    status: str
    progress: int  # 0-100
    target_date: str  # YYYY-MM-DD
    days_remaining: int  # Negative when overdue
    milestones: list[MilestoneContext] = field(default_factory=list)
    recent_progress: list[ProgressContext] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "progress": self.progress,
            "targetDate": self.target_date,
            "daysRemaining": self.days_remaining,
            "milestones": [m.to_dict() for m in self.milestones],
            "recentProgress": [p.to_dict() for p in self.recent_progress],
        }


@dataclass(frozen=True)
class JournalContext:
    """Journal entry as shown to the coach."""

    id: str
    content: str
    date: str  # YYYY-MM-DD
    mood: Optional[str] = None
    tags: Optional[list[str]] = None
    relevance_score: Optional[float] = None  # Only set for retrieval results

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "date": self.date,
            "mood": self.mood,
            "tags": self.tags,
        }
        if self.relevance_score is not None:
            data["relevanceScore"] = self.relevance_score
        return data


@dataclass(frozen=True)
class UserStats:
    total_goals: int = 0
    active_goals: int = 0
    completed_goals: int = 0
    overdue_goals: int = 0
    total_journal_entries: int = 0
    current_streak: int = 0  # Not tracked yet

    def to_dict(self) -> dict:
        return {
            "totalGoals": self.total_goals,
            "activeGoals": self.active_goals,
            "completedGoals": self.completed_goals,
            "overdueGoals": self.overdue_goals,
            "totalJournalEntries": self.total_journal_entries,
            "currentStreak": self.current_streak,
        }


@dataclass(frozen=True)
class UserPreferences:
    name: Optional[str] = None
    coaching_style: Optional[str] = None
    focus_areas: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "coachingStyle": self.coaching_style,
            "focusAreas": self.focus_areas,
        }


@dataclass(frozen=True)
class UserContext:
    """Bounded snapshot of a user's goals, journal and stats."""

    goals: list[GoalContext] = field(default_factory=list)
    recent_journals: list[JournalContext] = field(default_factory=list)
    stats: UserStats = field(default_factory=UserStats)
    relevant_journals: Optional[list[JournalContext]] = None  # Query-driven builds only
    preferences: Optional[UserPreferences] = None

    @classmethod
    def empty(cls) -> "UserContext":
        return cls()

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "goals": [g.to_dict() for g in self.goals],
            "recentJournals": [j.to_dict() for j in self.recent_journals],
            "stats": self.stats.to_dict(),
        }
        if self.relevant_journals is not None:
            data["relevantJournals"] = [j.to_dict() for j in self.relevant_journals]
        if self.preferences is not None:
            data["preferences"] = self.preferences.to_dict()
        return data
