"""
Hermetic stand-ins for the external collaborators of the coaching services.
"""

import re
from datetime import UTC, datetime, timedelta
from typing import AsyncIterator, Optional

from coachline.llm.providers.base import ChatMessage, LLMProvider
from coachline.retrieval.embeddings import EmbeddingProvider
from coachline.sources.base import (
    GoalCounts,
    GoalRecord,
    GoalSource,
    JournalRecord,
    JournalSource,
    MilestoneRecord,
    ProgressRecord,
)
from coachline.voice.client import AgentConfig, VoicePlatform

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


# ===== Collaborators =====


class FakeGoalSource(GoalSource):
    """In-memory goal service; ``fail=True`` makes every call raise."""

    def __init__(
        self,
        goals: Optional[list[GoalRecord]] = None,
        milestones: Optional[dict[str, list[MilestoneRecord]]] = None,
        progress: Optional[dict[str, list[ProgressRecord]]] = None,
        counts: Optional[GoalCounts] = None,
        fail: bool = False,
    ):
        self.goals = goals or []
        self.milestones = milestones or {}
        self.progress = progress or {}
        self.counts = counts
        self.fail = fail
        self.calls: list[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise ConnectionError("goal service unreachable")

    async def list_goals(self, user_id: str, status: str) -> list[GoalRecord]:
        self._enter("list_goals")
        return [g for g in self.goals if g.user_id == user_id and g.status == status]

    async def get_milestones(self, user_id: str, goal_id: str) -> list[MilestoneRecord]:
        self._enter("get_milestones")
        return self.milestones.get(goal_id, [])

    async def get_progress_updates(
        self, user_id: str, goal_id: str
    ) -> list[ProgressRecord]:
        self._enter("get_progress_updates")
        return self.progress.get(goal_id, [])

    async def get_goal_counts(self, user_id: str) -> GoalCounts:
        self._enter("get_goal_counts")
        if self.counts is not None:
            return self.counts
        mine = [g for g in self.goals if g.user_id == user_id]
        active = [g for g in mine if g.status in ("in_progress", "not_started")]
        return GoalCounts(
            total=len(mine),
            active=len(active),
            completed=len([g for g in mine if g.status == "completed"]),
            abandoned=len([g for g in mine if g.status == "abandoned"]),
            overdue=0,
        )


class FakeJournalSource(JournalSource):
    def __init__(self, entries: Optional[list[JournalRecord]] = None, fail: bool = False):
        self.entries = entries or []
        self.fail = fail
        self.calls: list[str] = []

    def _mine(self, user_id: str) -> list[JournalRecord]:
        if self.fail:
            raise ConnectionError("journal service unreachable")
        return sorted(
            (e for e in self.entries if e.user_id == user_id),
            key=lambda e: e.created_at,
            reverse=True,
        )

    async def get_recent(self, user_id: str, limit: int) -> list[JournalRecord]:
        self.calls.append("get_recent")
        return self._mine(user_id)[:limit]

    async def list_all(self, user_id: str) -> list[JournalRecord]:
        self.calls.append("list_all")
        return self._mine(user_id)


class FakeVoicePlatform(VoicePlatform):
    """Records every call; agents are numbered in creation order."""

    def __init__(
        self,
        fail_create: bool = False,
        fail_signed_url: bool = False,
        valid: bool = True,
    ):
        self.fail_create = fail_create
        self.fail_signed_url = fail_signed_url
        self.valid = valid
        self.created: list[AgentConfig] = []
        self.signed_url_calls: list[str] = []
        self.closed = False

    async def get_signed_url(self, agent_id: str) -> str:
        self.signed_url_calls.append(agent_id)
        if self.fail_signed_url:
            raise RuntimeError("platform timeout")
        return f"wss://voice.test/convai?agent_id={agent_id}&token=abc"

    async def validate_agent(self, agent_id: str) -> bool:
        return self.valid

    async def create_agent(self, config: AgentConfig) -> str:
        if self.fail_create:
            raise RuntimeError("agent provisioning failed")
        self.created.append(config)
        return f"agent-{len(self.created)}"

    async def aclose(self) -> None:
        self.closed = True


VOCABULARY = [
    "career",
    "stuck",
    "goal",
    "feel",
    "great",
    "day",
    "finished",
    "report",
    "running",
    "marathon",
    "training",
    "sleep",
]


class FakeEmbeddingProvider(EmbeddingProvider):
    """Bag-of-words vectors over a fixed vocabulary."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[str] = []

    @property
    def model_name(self) -> str:
        return "fake-bow"

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding backend down")
        words = re.findall(r"[a-z]+", text.lower())
        return [float(words.count(term)) for term in VOCABULARY]


class FakeLLMProvider(LLMProvider):
    def __init__(self, pieces: Optional[list[str]] = None, fail_after: Optional[int] = None):
        self.pieces = pieces if pieces is not None else ["Hello", ", ", "friend."]
        self.fail_after = fail_after
        self.requests: list[tuple[str, list[ChatMessage]]] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def model_name(self) -> str:
        return "fake-chat"

    async def stream_chat(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        self.requests.append((system_prompt, messages))
        for index, piece in enumerate(self.pieces):
            if self.fail_after is not None and index >= self.fail_after:
                raise RuntimeError("model overloaded")
            yield piece


# ===== Record builders =====


def make_goal(
    goal_id: str = "goal-1",
    title: str = "Run a marathon",
    status: str = "in_progress",
    target_in_days: float = 30,
    user_id: str = USER_ID,
    **kwargs,
) -> GoalRecord:
    return GoalRecord(
        id=goal_id,
        user_id=user_id,
        title=title,
        status=status,
        target_date=datetime.now(UTC) + timedelta(days=target_in_days),
        **kwargs,
    )


def make_journal(
    entry_id: str,
    content: str,
    days_ago: float = 0,
    user_id: str = USER_ID,
    mood: Optional[str] = None,
    tags: Optional[list[str]] = None,
) -> JournalRecord:
    return JournalRecord(
        id=entry_id,
        user_id=user_id,
        content=content,
        created_at=datetime.now(UTC) - timedelta(days=days_ago),
        mood=mood,
        tags=tags or [],
    )
