"""
Coaching metrics.

Events are kept in an in-process store for a fixed retention window and
aggregated on demand for the health and metrics endpoints. Recording is
best effort: a failure to record is logged and swallowed.
"""

import enum
import itertools
import logging
import threading
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from coachline.utils.dates import utc_now

logger = logging.getLogger(__name__)


class MetricType(str, enum.Enum):
    CONVERSATION_ENDED = "conversation_ended"
    CONTEXT_BUILD_STARTED = "context_build_started"
    CONTEXT_BUILD_COMPLETED = "context_build_completed"
    VOICE_API_CALL = "voice_api_call"
    SESSION_CREATED = "session_created"
    SIGNED_URL_GENERATED = "signed_url_generated"


class ErrorType(str, enum.Enum):
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    VOICE_API_ERROR = "voice_api_error"
    CONTEXT_BUILD_ERROR = "context_build_error"
    SESSION_ERROR = "session_error"
    VALIDATION_ERROR = "validation_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN_ERROR = "unknown_error"


@dataclass
class MetricEvent:
    type: MetricType
    timestamp: datetime
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    session_id: Optional[str] = None
    duration: Optional[float] = None  # ms for builds and API calls, s for conversations
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ErrorEvent:
    error_type: ErrorType
    message: str
    timestamp: datetime
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    session_id: Optional[str] = None
    stack: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "errorType": self.error_type.value,
            "errorMessage": self.message,
            "userId": self.user_id,
            "conversationId": self.conversation_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AggregatedMetrics:
    total_conversations: int
    average_conversation_duration: float
    average_context_build_time: float
    average_voice_api_response_time: float
    total_errors: int
    error_count_by_type: dict[str, int]
    period_start: datetime
    period_end: datetime

    def to_dict(self) -> dict:
        """Rounded summary as exposed over HTTP."""
        return {
            "totalConversations": self.total_conversations,
            "averageConversationDuration": round(self.average_conversation_duration),
            "averageContextBuildTime": round(self.average_context_build_time),
            "averageVoiceApiResponseTime": round(self.average_voice_api_response_time),
            "totalErrors": self.total_errors,
            "errorRateByType": dict(self.error_count_by_type),
        }


def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class InMemoryMetricsStore:
    """Thread-safe event store, pruned to the retention window on write."""

    def __init__(self, retention: timedelta = timedelta(hours=24)):
        self.retention = retention
        self._lock = threading.Lock()
        self._events: list[MetricEvent] = []
        self._errors: list[ErrorEvent] = []

    def add_event(self, event: MetricEvent) -> None:
        with self._lock:
            self._events.append(event)
            self._prune(event.timestamp)

    def add_error(self, error: ErrorEvent) -> None:
        with self._lock:
            self._errors.append(error)
            self._prune(error.timestamp)

    def _prune(self, now: datetime) -> None:
        cutoff = now - self.retention
        if self._events and self._events[0].timestamp <= cutoff:
            self._events = [e for e in self._events if e.timestamp > cutoff]
        if self._errors and self._errors[0].timestamp <= cutoff:
            self._errors = [e for e in self._errors if e.timestamp > cutoff]

    def events(self) -> list[MetricEvent]:
        with self._lock:
            return list(self._events)

    def errors(self) -> list[ErrorEvent]:
        with self._lock:
            return list(self._errors)


class MetricsRecorder:
    """Records coaching events into a metrics store."""

    def __init__(self, store: InMemoryMetricsStore):
        self.store = store
        self._build_counter = itertools.count(1)

    def _record(self, event: MetricEvent) -> None:
        try:
            self.store.add_event(event)
        except Exception as e:
            logger.warning(f"Failed to record metric {event.type.value}: {e}")

    def context_build_started(self, user_id: str, build_type: str = "initial") -> str:
        stamp = int(utc_now().timestamp() * 1000)
        build_id = f"build_{stamp}_{user_id}_{next(self._build_counter)}"
        self._record(
            MetricEvent(
                type=MetricType.CONTEXT_BUILD_STARTED,
                timestamp=utc_now(),
                user_id=user_id,
                metadata={"build_id": build_id, "type": build_type},
            )
        )
        return build_id

    def context_build_completed(
        self, user_id: str, build_id: str, duration_ms: float, **counts: Any
    ) -> None:
        self._record(
            MetricEvent(
                type=MetricType.CONTEXT_BUILD_COMPLETED,
                timestamp=utc_now(),
                user_id=user_id,
                duration=duration_ms,
                metadata={"build_id": build_id, **counts},
            )
        )

    def voice_api_call(
        self,
        operation: str,
        duration_ms: float,
        user_id: Optional[str] = None,
        **meta: Any,
    ) -> None:
        self._record(
            MetricEvent(
                type=MetricType.VOICE_API_CALL,
                timestamp=utc_now(),
                user_id=user_id,
                duration=duration_ms,
                metadata={"operation": operation, **meta},
            )
        )
        logger.info(f"Voice API call {operation} took {duration_ms:.0f}ms")

    def session_created(self, user_id: str, session_id: str, **meta: Any) -> None:
        self._record(
            MetricEvent(
                type=MetricType.SESSION_CREATED,
                timestamp=utc_now(),
                user_id=user_id,
                session_id=session_id,
                metadata=meta,
            )
        )

    def signed_url_generated(
        self, user_id: str, duration_ms: float, **meta: Any
    ) -> None:
        self._record(
            MetricEvent(
                type=MetricType.SIGNED_URL_GENERATED,
                timestamp=utc_now(),
                user_id=user_id,
                duration=duration_ms,
                metadata=meta,
            )
        )

    def conversation_ended(
        self, user_id: str, conversation_id: str, duration_s: float, message_count: int
    ) -> None:
        self._record(
            MetricEvent(
                type=MetricType.CONVERSATION_ENDED,
                timestamp=utc_now(),
                user_id=user_id,
                conversation_id=conversation_id,
                duration=duration_s,
                metadata={"message_count": message_count},
            )
        )
        logger.info(
            f"Conversation {conversation_id} ended for user {user_id}: "
            f"{duration_s}s, {message_count} messages"
        )

    def error(
        self,
        error_type: ErrorType,
        message: str,
        user_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        session_id: Optional[str] = None,
        exc: Optional[BaseException] = None,
        **meta: Any,
    ) -> None:
        try:
            stack = None
            if exc is not None:
                stack = "".join(
                    traceback.format_exception(type(exc), exc, exc.__traceback__)
                )
            self.store.add_error(
                ErrorEvent(
                    error_type=error_type,
                    message=message,
                    timestamp=utc_now(),
                    user_id=user_id,
                    conversation_id=conversation_id,
                    session_id=session_id,
                    stack=stack,
                    metadata=meta,
                )
            )
        except Exception as e:
            logger.warning(f"Failed to record error metric {error_type.value}: {e}")
        logger.error(f"{error_type.value} for user {user_id}: {message}")

    def aggregate(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> AggregatedMetrics:
        """
        Aggregate events in [start, end].

        Args:
            start: Window start (default: 24 hours before ``end``)
            end: Window end (default: now)

        Returns:
            AggregatedMetrics with unrounded averages
        """
        end = end or utc_now()
        start = start or end - timedelta(hours=24)

        events = [e for e in self.store.events() if start <= e.timestamp <= end]
        errors = [e for e in self.store.errors() if start <= e.timestamp <= end]

        def durations(metric_type: MetricType) -> list[float]:
            return [e.duration or 0 for e in events if e.type == metric_type]

        conversations = durations(MetricType.CONVERSATION_ENDED)
        by_type = {t.value: 0 for t in ErrorType}
        for err in errors:
            by_type[err.error_type.value] += 1

        return AggregatedMetrics(
            total_conversations=len(conversations),
            average_conversation_duration=_average(conversations),
            average_context_build_time=_average(
                durations(MetricType.CONTEXT_BUILD_COMPLETED)
            ),
            average_voice_api_response_time=_average(
                durations(MetricType.VOICE_API_CALL)
            ),
            total_errors=len(errors),
            error_count_by_type=by_type,
            period_start=start,
            period_end=end,
        )

    def recent_errors(self, limit: int = 10) -> list[ErrorEvent]:
        """Latest errors regardless of window, newest first."""
        errors = sorted(self.store.errors(), key=lambda e: e.timestamp, reverse=True)
        return errors[:limit]
