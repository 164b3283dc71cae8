"""
User context assembly for coaching prompts.

Builds a bounded snapshot of a user's active goals, recent journal entries
and goal statistics, optionally enriched with journal entries retrieved for
a conversation query, and renders it as plain text for a model prompt.

Every data source is fetched concurrently and degrades independently: a
failing source contributes empty data, and a failing build returns an empty
context. Coaching is never blocked by context assembly.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Awaitable, Optional, TypeVar

from coachline.coaching.metrics import ErrorType, MetricsRecorder
from coachline.models.context import (
    GoalContext,
    JournalContext,
    MilestoneContext,
    ProgressContext,
    UserContext,
    UserStats,
)
from coachline.models.db import ACTIVE_GOAL_STATUSES
from coachline.retrieval.service import RetrievalOptions, RetrievalService
from coachline.sources.base import GoalCounts, GoalRecord, GoalSource, JournalSource
from coachline.utils.dates import days_remaining, iso_date, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTENT_PREVIEW_CHARS = 300
MAX_PROGRESS_NOTES = 3

COACHING_INSTRUCTIONS = (
    "=== COACHING INSTRUCTIONS ===\n"
    "Use the above context to provide personalized, empathetic, and actionable coaching.\n"
    "Reference specific goals, milestones, and journal entries when relevant.\n"
    "Be encouraging and supportive while helping the user stay accountable.\n"
    "Ask clarifying questions to better understand their needs and challenges.\n"
    "Celebrate progress and help identify patterns in their journey.\n"
)

FALLBACK_CONTEXT = (
    "=== USER CONTEXT ===\n"
    "Unable to load user context. Please provide general coaching support.\n"
    "\n" + COACHING_INSTRUCTIONS
)


def _preview(content: str) -> str:
    if len(content) > CONTENT_PREVIEW_CHARS:
        return content[:CONTENT_PREVIEW_CHARS] + "..."
    return content


class ContextBuilder:
    """
    Assembles UserContext snapshots.

    Args:
        goal_source: Goal service reader
        journal_source: Journal service reader
        retrieval: Semantic search for query-driven builds (optional)
        metrics: Metrics recorder
        recent_journals: Number of recent journal entries to include
        relevant_journals: Number of retrieved journal entries to include
        recent_days: Recency window for retrieval
    """

    def __init__(
        self,
        goal_source: GoalSource,
        journal_source: JournalSource,
        retrieval: Optional[RetrievalService],
        metrics: MetricsRecorder,
        recent_journals: int = 5,
        relevant_journals: int = 5,
        recent_days: int = 90,
    ):
        self.goal_source = goal_source
        self.journal_source = journal_source
        self.retrieval = retrieval
        self.metrics = metrics
        self.recent_journals = recent_journals
        self.relevant_journals = relevant_journals
        self.recent_days = recent_days

    async def _guarded(
        self, awaitable: Awaitable[T], default: T, label: str, user_id: str
    ) -> T:
        """Await a sub-fetch, turning any failure into ``default``."""
        try:
            return await awaitable
        except Exception as e:
            logger.error(f"Error fetching {label} for user {user_id}: {e}")
            return default

    async def build_user_context(
        self, user_id: str, query: Optional[str] = None
    ) -> UserContext:
        """Dynamic context when a query is given, initial context otherwise."""
        if query:
            return await self.build_dynamic_context(user_id, query)
        return await self.build_initial_context(user_id)

    async def build_initial_context(self, user_id: str) -> UserContext:
        """
        Build the query-independent context for a user.

        Never raises. Sources that fail contribute empty lists or zero counts;
        any other failure yields an all-empty context.
        """
        build_id = self.metrics.context_build_started(user_id, "initial")
        start_time = time.time()

        try:
            goals, journals, counts = await asyncio.gather(
                self._guarded(
                    self._fetch_active_goals(user_id), [], "active goals", user_id
                ),
                self._guarded(
                    self._fetch_recent_journals(user_id), [], "recent journals", user_id
                ),
                self._guarded(
                    self.goal_source.get_goal_counts(user_id),
                    GoalCounts(),
                    "goal counts",
                    user_id,
                ),
            )

            stats = UserStats(
                total_goals=counts.total,
                active_goals=counts.active,
                completed_goals=counts.completed,
                overdue_goals=counts.overdue,
                total_journal_entries=len(journals),
                current_streak=0,
            )
            context = UserContext(goals=goals, recent_journals=journals, stats=stats)

            duration_ms = (time.time() - start_time) * 1000
            self.metrics.context_build_completed(
                user_id,
                build_id,
                duration_ms,
                type="initial",
                goals_count=len(goals),
                journals_count=len(journals),
            )
            logger.info(
                f"Initial context built for user {user_id}: {len(goals)} goals, "
                f"{len(journals)} journal entries in {duration_ms:.0f}ms"
            )
            return context

        except Exception as e:
            logger.error(
                f"Error building initial context for user {user_id}: {e}", exc_info=True
            )
            self.metrics.error(
                ErrorType.CONTEXT_BUILD_ERROR,
                str(e) or "Failed to build initial context",
                user_id=user_id,
                exc=e,
                build_id=build_id,
            )
            return UserContext.empty()

    async def build_dynamic_context(self, user_id: str, query: str) -> UserContext:
        """
        Build the initial context plus journal entries relevant to ``query``.

        Retrieval is a system-internal lookup and is not billed. If it fails,
        the initial context is returned with no relevant entries.
        """
        build_id = self.metrics.context_build_started(user_id, "dynamic")
        start_time = time.time()

        initial = await self.build_initial_context(user_id)
        relevant = await self._guarded(
            self._fetch_relevant_journals(user_id, query),
            [],
            "relevant journals",
            user_id,
        )
        context = replace(initial, relevant_journals=relevant)

        duration_ms = (time.time() - start_time) * 1000
        self.metrics.context_build_completed(
            user_id,
            build_id,
            duration_ms,
            type="dynamic",
            query_length=len(query),
            relevant_journals_count=len(relevant),
        )
        logger.info(
            f"Dynamic context built for user {user_id}: "
            f"{len(relevant)} relevant journal entries in {duration_ms:.0f}ms"
        )
        return context

    async def _fetch_active_goals(self, user_id: str) -> list[GoalContext]:
        per_status = await asyncio.gather(
            *(
                self.goal_source.list_goals(user_id, status)
                for status in ACTIVE_GOAL_STATUSES
            )
        )
        goals = [goal for batch in per_status for goal in batch]
        details = await asyncio.gather(*(self._goal_context(user_id, g) for g in goals))
        return list(details)

    async def _goal_context(self, user_id: str, goal: GoalRecord) -> GoalContext:
        milestones, progress = await asyncio.gather(
            self._guarded(
                self.goal_source.get_milestones(user_id, goal.id),
                [],
                f"milestones of goal {goal.id}",
                user_id,
            ),
            self._guarded(
                self.goal_source.get_progress_updates(user_id, goal.id),
                [],
                f"progress of goal {goal.id}",
                user_id,
            ),
        )

        return GoalContext(
            id=goal.id,
            title=goal.title,
            description=goal.description,
            category=goal.category,
            status=goal.status,
            progress=goal.progress_percentage or 0,
            target_date=iso_date(goal.target_date),
            days_remaining=days_remaining(goal.target_date, utc_now()),
            milestones=[
                MilestoneContext(
                    title=m.title,
                    completed=m.completed,
                    due_date=iso_date(m.due_date),
                )
                for m in milestones
            ],
            recent_progress=[
                ProgressContext(content=p.content, date=iso_date(p.created_at))
                for p in progress[:MAX_PROGRESS_NOTES]
            ],
        )

    async def _fetch_recent_journals(self, user_id: str) -> list[JournalContext]:
        entries = await self.journal_source.get_recent(user_id, self.recent_journals)
        return [
            JournalContext(
                id=entry.id,
                content=entry.content,
                date=iso_date(entry.created_at),
                mood=entry.mood,
                tags=entry.tags,
            )
            for entry in entries
        ]

    async def _fetch_relevant_journals(
        self, user_id: str, query: str
    ) -> list[JournalContext]:
        if self.retrieval is None:
            return []

        retrieved = await self.retrieval.retrieve_context(
            query,
            RetrievalOptions(
                user_id=user_id,
                content_types=["journal"],
                limit=self.relevant_journals,
                include_recent=True,
                recent_days=self.recent_days,
            ),
            skip_usage=True,
        )

        journals = []
        for doc in retrieved.documents:
            metadata = doc.metadata or {}
            journals.append(
                JournalContext(
                    id=doc.id,
                    content=doc.content,
                    date=iso_date(doc.created_at),
                    mood=metadata.get("mood"),
                    tags=metadata.get("tags"),
                    relevance_score=doc.similarity,
                )
            )
        return journals

    def format_context_for_prompt(self, context: UserContext) -> str:
        """
        Render a context as prompt text.

        Section order is fixed: statistics, active goals, recent journal
        entries, relevant journal entries, preferences, coaching instructions.
        Never raises; on failure a minimal placeholder is returned.
        """
        try:
            lines = self._render(context)
        except Exception as e:
            logger.error(f"Error formatting context for prompt: {e}", exc_info=True)
            return FALLBACK_CONTEXT

        text = "\n".join(lines)
        logger.debug(
            f"Context formatted: {len(text)} chars, {len(context.goals)} goals, "
            f"{len(context.recent_journals)} recent and "
            f"{len(context.relevant_journals or [])} relevant journal entries"
        )
        return text

    def _render(self, context: UserContext) -> list[str]:
        stats = context.stats
        lines = [
            "=== USER CONTEXT FOR AI COACHING ===",
            "",
            "--- USER STATISTICS ---",
            f"Total Goals: {stats.total_goals}",
            f"Active Goals: {stats.active_goals}",
            f"Completed Goals: {stats.completed_goals}",
            f"Overdue Goals: {stats.overdue_goals}",
            f"Total Journal Entries: {stats.total_journal_entries}",
        ]
        if stats.current_streak > 0:
            lines.append(f"Current Streak: {stats.current_streak} days")
        lines.append("")

        lines.append("--- ACTIVE GOALS ---")
        if not context.goals:
            lines.append("No active goals at the moment.")
            lines.append("")
        for index, goal in enumerate(context.goals, start=1):
            lines.append(f"{index}. {goal.title}")
            lines.append(f"   Category: {goal.category}")
            lines.append(f"   Status: {goal.status}")
            lines.append(f"   Progress: {goal.progress}%")
            lines.append(
                f"   Target Date: {goal.target_date} "
                f"({goal.days_remaining} days remaining)"
            )
            if goal.description:
                lines.append(f"   Description: {goal.description}")
            if goal.milestones:
                lines.append("   Milestones:")
                for milestone in goal.milestones:
                    mark = "✓" if milestone.completed else "○"
                    due = f" (Due: {milestone.due_date})" if milestone.due_date else ""
                    lines.append(f"     {mark} {milestone.title}{due}")
            if goal.recent_progress:
                lines.append("   Recent Progress:")
                for progress in goal.recent_progress:
                    lines.append(f"     [{progress.date}] {progress.content}")
            lines.append("")

        if context.recent_journals:
            lines.append("--- RECENT JOURNAL ENTRIES ---")
            for index, journal in enumerate(context.recent_journals, start=1):
                lines.append(f"{index}. [{journal.date}]")
                lines.extend(self._render_journal_body(journal))

        if context.relevant_journals:
            lines.append("--- RELEVANT JOURNAL ENTRIES (Based on Conversation) ---")
            for index, journal in enumerate(context.relevant_journals, start=1):
                relevance = ""
                if journal.relevance_score:
                    relevance = f" [Relevance: {journal.relevance_score * 100:.0f}%]"
                lines.append(f"{index}. [{journal.date}]{relevance}")
                lines.extend(self._render_journal_body(journal))

        if context.preferences is not None:
            lines.append("--- USER PREFERENCES ---")
            if context.preferences.coaching_style:
                lines.append(f"Coaching Style: {context.preferences.coaching_style}")
            if context.preferences.focus_areas:
                lines.append(
                    f"Focus Areas: {', '.join(context.preferences.focus_areas)}"
                )
            lines.append("")

        lines.append(COACHING_INSTRUCTIONS)
        return lines

    @staticmethod
    def _render_journal_body(journal: JournalContext) -> list[str]:
        lines = []
        if journal.mood:
            lines.append(f"   Mood: {journal.mood}")
        if journal.tags:
            lines.append(f"   Tags: {', '.join(journal.tags)}")
        lines.append(f"   Content: {_preview(journal.content)}")
        lines.append("")
        return lines
