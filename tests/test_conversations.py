"""
Tests for saved conversations and history queries.
"""

from datetime import UTC, datetime, timedelta

import pytest

from coachline.coaching.conversations import (
    ConversationPayload,
    ConversationStore,
    HistoryQuery,
    TranscriptMessage,
)
from coachline.db.repositories import VoiceConversationRepository
from coachline.exceptions import CoachingError, ErrorKind
from tests.fakes import OTHER_USER_ID, USER_ID

BASE = datetime(2026, 4, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def repository(db_session) -> VoiceConversationRepository:
    return VoiceConversationRepository(db_session)


@pytest.fixture
def store(repository) -> ConversationStore:
    return ConversationStore(repository)


def _insert(
    repository,
    conversation_id: str,
    duration: int,
    days: int,
    summary=None,
    messages=(),
    user_id: str = USER_ID,
):
    started = BASE + timedelta(days=days)
    return repository.create(
        user_id=user_id,
        conversation_id=conversation_id,
        agent_id="agent-1",
        transcript=[
            {"role": "user", "content": text, "timestamp": started.isoformat()}
            for text in messages
        ],
        duration=duration,
        started_at=started,
        ended_at=started + timedelta(seconds=duration),
        summary=summary,
        created_at=started,
    )


@pytest.fixture
def history(repository):
    """Three conversations whose creation order differs from their duration order."""
    _insert(repository, "short-old", 60, 0, summary="Morning check-in")
    _insert(repository, "long-mid", 900, 1, messages=["Career feels STUCK lately"])
    _insert(repository, "mid-new", 300, 2, summary="Talked about marathon training")
    _insert(repository, "theirs", 5000, 3, summary="career", user_id=OTHER_USER_ID)


class TestSave:
    def test_save_serializes_transcript(self, store):
        """Test that transcripts are stored as plain dicts."""
        started = BASE
        payload = ConversationPayload(
            conversation_id="conv-1",
            transcript=[
                TranscriptMessage("agent", "Hi!", started),
                TranscriptMessage(
                    "user", "Hello", started + timedelta(seconds=2), audio_url="a.mp3"
                ),
            ],
            duration=42,
            started_at=started,
            ended_at=started + timedelta(seconds=42),
        )

        conversation = store.save(USER_ID, payload, agent_id="agent-1")

        assert conversation.duration == 42
        assert conversation.transcript[1] == {
            "role": "user",
            "content": "Hello",
            "timestamp": (started + timedelta(seconds=2)).isoformat(),
            "audio_url": "a.mp3",
        }


class TestHistory:
    """Tests for ConversationStore.history."""

    def test_newest_first_by_default(self, store, history):
        """Test the default history order."""
        page = store.history(USER_ID, HistoryQuery())

        assert [c.conversation_id for c in page.conversations] == [
            "mid-new",
            "long-mid",
            "short-old",
        ]
        assert page.total == 3

    def test_oldest_first(self, store, history):
        page = store.history(USER_ID, HistoryQuery(sort_by="oldest"))

        assert page.conversations[0].conversation_id == "short-old"

    def test_longest_orders_by_duration(self, store, history):
        page = store.history(USER_ID, HistoryQuery(sort_by="longest"))

        assert [c.duration for c in page.conversations] == [900, 300, 60]

    def test_shortest_orders_by_duration(self, store, history):
        page = store.history(USER_ID, HistoryQuery(sort_by="shortest"))

        assert [c.duration for c in page.conversations] == [60, 300, 900]

    def test_longest_applies_limit_after_sorting(self, store, history):
        """Test that the limit applies after sorting by duration."""
        page = store.history(USER_ID, HistoryQuery(sort_by="longest", limit=1))

        assert [c.conversation_id for c in page.conversations] == ["long-mid"]

    def test_search_matches_transcript_case_insensitively(self, store, history):
        """Test that search matches any transcript message regardless of case."""
        page = store.history(USER_ID, HistoryQuery(search="stuck"))

        assert [c.conversation_id for c in page.conversations] == ["long-mid"]

    def test_search_matches_summary(self, store, history):
        """Test that search also matches the summary."""
        page = store.history(USER_ID, HistoryQuery(search="MARATHON"))

        assert [c.conversation_id for c in page.conversations] == ["mid-new"]

    def test_search_never_crosses_users(self, store, history):
        """Test that search results stay within the user's conversations."""
        page = store.history(USER_ID, HistoryQuery(search="career"))

        assert [c.conversation_id for c in page.conversations] == ["long-mid"]

    def test_date_range(self, store, history):
        """Test filtering history by start and end dates."""
        page = store.history(
            USER_ID,
            HistoryQuery(
                start_date=BASE + timedelta(hours=12),
                end_date=BASE + timedelta(days=1, hours=12),
            ),
        )

        assert [c.conversation_id for c in page.conversations] == ["long-mid"]

    def test_limit(self, store, history):
        page = store.history(USER_ID, HistoryQuery(limit=2))

        assert page.total == 2

    def test_unknown_sort(self, store):
        """Test that an unknown sort key raises ValueError."""
        with pytest.raises(ValueError, match="Unknown sort option"):
            store.history(USER_ID, HistoryQuery(sort_by="loudest"))


class TestLoadAndDelete:
    """Ownership checks on single conversations."""

    def test_load_own_conversation(self, store, history):
        conversation = store.load(USER_ID, "long-mid")

        assert conversation.duration == 900

    def test_load_missing(self, store):
        """Test loading a conversation that does not exist."""
        with pytest.raises(CoachingError) as exc_info:
            store.load(USER_ID, "nope")

        assert exc_info.value.kind == ErrorKind.CONVERSATION_NOT_FOUND

    def test_other_users_conversation_is_not_found(self, store, history):
        """Test that another user's conversation behaves as missing."""
        with pytest.raises(CoachingError) as exc_info:
            store.load(USER_ID, "theirs")

        assert exc_info.value.kind == ErrorKind.CONVERSATION_NOT_FOUND

    def test_delete_other_users_conversation_is_not_found(
        self, store, history, repository
    ):
        """Test that deleting another user's conversation leaves it in place."""
        with pytest.raises(CoachingError) as exc_info:
            store.delete(USER_ID, "theirs")

        assert exc_info.value.kind == ErrorKind.CONVERSATION_NOT_FOUND
        assert repository.get_by_conversation_id(OTHER_USER_ID, "theirs") is not None

    def test_delete(self, store, history, repository):
        store.delete(USER_ID, "short-old")

        assert repository.get_by_conversation_id(USER_ID, "short-old") is None


class TestRepository:
    """Tests for VoiceConversationRepository queries."""

    def test_list_for_user(self, repository, history):
        """Test that listing returns only the user's rows, newest first."""
        rows = repository.list_for_user(USER_ID)

        assert [r.conversation_id for r in rows] == ["mid-new", "long-mid", "short-old"]

    def test_list_for_user_with_date_range_and_limit(self, repository, history):
        """Test the date bounds and limit of a listing."""
        rows = repository.list_for_user(
            USER_ID,
            start_date=BASE + timedelta(days=1),
            oldest_first=True,
            limit=1,
        )

        assert [r.conversation_id for r in rows] == ["long-mid"]
