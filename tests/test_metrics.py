"""
Tests for coaching metrics recording and aggregation.
"""

from datetime import UTC, datetime, timedelta

from coachline.coaching.metrics import (
    ErrorEvent,
    ErrorType,
    InMemoryMetricsStore,
    MetricEvent,
    MetricsRecorder,
    MetricType,
)
from tests.fakes import USER_ID


class TestInMemoryMetricsStore:
    """Tests for retention pruning."""

    def test_prunes_events_outside_retention(self):
        """Test that old events are dropped on write."""
        store = InMemoryMetricsStore(retention=timedelta(hours=1))
        now = datetime.now(UTC)

        store.add_event(
            MetricEvent(MetricType.SESSION_CREATED, now - timedelta(hours=2))
        )
        store.add_event(MetricEvent(MetricType.SESSION_CREATED, now))

        assert len(store.events()) == 1

    def test_prunes_errors_outside_retention(self):
        store = InMemoryMetricsStore(retention=timedelta(hours=1))
        now = datetime.now(UTC)

        store.add_error(
            ErrorEvent(ErrorType.SESSION_ERROR, "old", now - timedelta(hours=3))
        )
        store.add_error(ErrorEvent(ErrorType.SESSION_ERROR, "new", now))

        assert [e.message for e in store.errors()] == ["new"]


class TestMetricsRecorder:
    """Tests for MetricsRecorder."""

    def test_aggregate_empty(self, metrics):
        """Test aggregating with no recorded events."""
        summary = metrics.aggregate().to_dict()

        assert summary["totalConversations"] == 0
        assert summary["averageConversationDuration"] == 0
        assert summary["totalErrors"] == 0
        assert set(summary["errorRateByType"]) == {t.value for t in ErrorType}

    def test_aggregate_averages(self, metrics):
        """Test that averages are rounded to whole milliseconds."""
        metrics.conversation_ended(USER_ID, "c1", 100, 4)
        metrics.conversation_ended(USER_ID, "c2", 201, 6)
        build_id = metrics.context_build_started(USER_ID)
        metrics.context_build_completed(USER_ID, build_id, 40.0)
        metrics.voice_api_call("get_signed_url", 120.4, user_id=USER_ID)
        metrics.voice_api_call("validate_agent", 80.0)

        summary = metrics.aggregate().to_dict()

        assert summary["totalConversations"] == 2
        assert summary["averageConversationDuration"] == 150
        assert summary["averageContextBuildTime"] == 40
        assert summary["averageVoiceApiResponseTime"] == 100

    def test_errors_counted_by_type(self, metrics):
        """Test error counts grouped by error type."""
        metrics.error(ErrorType.RATE_LIMIT_EXCEEDED, "limit", user_id=USER_ID)
        metrics.error(ErrorType.RATE_LIMIT_EXCEEDED, "limit", user_id=USER_ID)
        metrics.error(ErrorType.SESSION_ERROR, "active", user_id=USER_ID)

        summary = metrics.aggregate().to_dict()

        assert summary["totalErrors"] == 3
        assert summary["errorRateByType"]["rate_limit_exceeded"] == 2
        assert summary["errorRateByType"]["session_error"] == 1

    def test_aggregate_window(self, metrics):
        """Test that aggregation only counts events inside the window."""
        metrics.conversation_ended(USER_ID, "c1", 60, 2)
        future = datetime.now(UTC) + timedelta(hours=1)

        aggregated = metrics.aggregate(start=future, end=future + timedelta(hours=1))

        assert aggregated.total_conversations == 0
        assert aggregated.period_start == future

    def test_error_keeps_stack(self, metrics):
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            metrics.error(ErrorType.UNKNOWN_ERROR, "boom", exc=e)

        (event,) = metrics.store.errors()
        assert "RuntimeError: boom" in event.stack

    def test_recent_errors_newest_first(self, metrics):
        """Test the order of recent errors."""
        for i in range(12):
            metrics.error(ErrorType.VOICE_API_ERROR, f"error {i}")

        recent = metrics.recent_errors(10)

        assert len(recent) == 10
        assert recent[0].timestamp >= recent[-1].timestamp
        assert recent[0].to_dict()["errorType"] == "voice_api_error"

    def test_store_failures_are_swallowed(self):
        """Test that a failing store never breaks the caller."""
        class BrokenStore(InMemoryMetricsStore):
            def add_event(self, event):
                raise RuntimeError("store down")

            def add_error(self, error):
                raise RuntimeError("store down")

        recorder = MetricsRecorder(BrokenStore())

        recorder.session_created(USER_ID, "s1")
        recorder.error(ErrorType.SESSION_ERROR, "still fine")

    def test_build_ids_are_unique(self, metrics):
        first = metrics.context_build_started(USER_ID)
        second = metrics.context_build_started(USER_ID)

        assert first != second
        assert first.startswith("build_")
