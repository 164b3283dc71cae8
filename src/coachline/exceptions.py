"""Error kinds raised by the coaching services."""

import enum
from datetime import datetime
from typing import Optional


class ErrorKind(str, enum.Enum):
    """Closed set of user-actionable failures."""

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    ACTIVE_SESSION_EXISTS = "active_session_exists"
    AGENT_NOT_CONFIGURED = "agent_not_configured"
    CONVERSATION_NOT_FOUND = "conversation_not_found"
    PERSONALITY_NOT_FOUND = "personality_not_found"
    VOICE_PLATFORM_ERROR = "voice_platform_error"


class CoachingError(Exception):
    """
    Raised by the coaching services for every failure a caller must act on.

    Handlers dispatch on ``kind`` rather than on subclasses. The only kind with
    a payload is RATE_LIMIT_EXCEEDED, which carries ``reset_at``.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        reset_at: Optional[datetime] = None,
        cause: Optional[BaseException] = None,
    ):
        self.kind = kind
        self.message = message
        self.reset_at = reset_at
        self.cause = cause
        super().__init__(message)

    @classmethod
    def rate_limited(
        cls, reset_at: datetime, action: str = "voice coaching"
    ) -> "CoachingError":
        return cls(
            ErrorKind.RATE_LIMIT_EXCEEDED,
            f"{action.capitalize()} rate limit exceeded. "
            f"Try again after {reset_at.isoformat()}",
            reset_at=reset_at,
        )

    @classmethod
    def active_session(cls) -> "CoachingError":
        return cls(
            ErrorKind.ACTIVE_SESSION_EXISTS,
            "You already have an active voice coaching session. "
            "Please end the current session before starting a new one.",
        )

    @classmethod
    def agent_not_configured(cls) -> "CoachingError":
        return cls(
            ErrorKind.AGENT_NOT_CONFIGURED,
            "Voice coaching agent is not configured",
        )

    @classmethod
    def conversation_not_found(cls, conversation_id: str) -> "CoachingError":
        return cls(
            ErrorKind.CONVERSATION_NOT_FOUND,
            f"Conversation {conversation_id} not found",
        )

    @classmethod
    def personality_not_found(cls, personality_id: str) -> "CoachingError":
        return cls(
            ErrorKind.PERSONALITY_NOT_FOUND,
            f"Coach personality {personality_id} not found",
        )

    @classmethod
    def voice_platform(
        cls, message: str, cause: Optional[BaseException] = None
    ) -> "CoachingError":
        return cls(
            ErrorKind.VOICE_PLATFORM_ERROR,
            f"Voice platform error: {message}",
            cause=cause,
        )
