"""
Voice coaching session orchestration.

Owns the session lifecycle: usage gate, one active session per user, agent
resolution, initial context, signed connection URLs and conversation saving.

The one-active-session rule is a read followed by a write with nothing
spanning the two, so two concurrent starts for the same user can both
succeed. Saving a conversation completes every active row, which cleans
that up.
"""

import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from coachline.coaching.context_builder import ContextBuilder
from coachline.coaching.conversations import ConversationPayload, ConversationStore
from coachline.coaching.metrics import ErrorType, MetricsRecorder
from coachline.coaching.personality import PersonalityResolver
from coachline.coaching.usage import UsageLimiter
from coachline.db.repositories.coaching_session import CoachingSessionRepository
from coachline.exceptions import CoachingError, ErrorKind
from coachline.models.context import UserContext
from coachline.models.db import SessionStatus, VoiceConversation
from coachline.utils.dates import utc_now
from coachline.voice.client import VoicePlatform

logger = logging.getLogger(__name__)

SESSION_ACTION = "voice_coach_session"

_session_counter = itertools.count(1)


def new_session_id(user_id: str) -> str:
    """Time and user derived id, unique within the process."""
    stamp = int(utc_now().timestamp() * 1000)
    return f"session_{stamp}_{user_id}_{next(_session_counter)}"


def build_first_message(context: UserContext) -> str:
    """Greeting personalized by the number of active goals."""
    name = context.preferences.name if context.preferences else None
    name = name or "there"
    goal_count = len(context.goals)

    if goal_count == 0:
        return (
            f"Hi {name}! I'm your AI coach. I'm here to help you set and achieve "
            f"your goals. What would you like to work on today?"
        )
    if goal_count == 1:
        return (
            f"Hi {name}! I see you have a goal you're working on. How's it going? "
            f"I'm here to help you make progress."
        )
    return (
        f"Hi {name}! I see you're working on {goal_count} goals. That's great! "
        f"Which one would you like to focus on today?"
    )


@dataclass
class SessionInfo:
    session_id: str
    agent_id: str
    context: dict[str, Any]
    expires_at: datetime


@dataclass
class SignedUrlInfo:
    signed_url: str
    expires_at: datetime
    agent_id: str
    overrides: dict[str, Any] = field(default_factory=dict)


class SessionOrchestrator:
    """
    Coordinates the services behind a voice coaching session.

    Args:
        sessions: Coaching session rows
        conversations: Saved transcripts
        usage_limiter: Daily allowance gate
        resolver: Personality to agent resolution
        context_builder: User context assembly
        voice_platform: Conversational voice API
        metrics: Metrics recorder
        fallback_agent_id: Environment agent (recorded on saved conversations
            when no session names one)
        session_duration_seconds: Session lifetime
        signed_url_ttl_seconds: Advertised signed URL lifetime
    """

    def __init__(
        self,
        sessions: CoachingSessionRepository,
        conversations: ConversationStore,
        usage_limiter: UsageLimiter,
        resolver: PersonalityResolver,
        context_builder: ContextBuilder,
        voice_platform: VoicePlatform,
        metrics: MetricsRecorder,
        fallback_agent_id: str = "",
        session_duration_seconds: int = 1800,
        signed_url_ttl_seconds: int = 600,
    ):
        self.sessions = sessions
        self.conversations = conversations
        self.usage_limiter = usage_limiter
        self.resolver = resolver
        self.context_builder = context_builder
        self.voice_platform = voice_platform
        self.metrics = metrics
        self.fallback_agent_id = fallback_agent_id
        self.session_duration = timedelta(seconds=session_duration_seconds)
        self.signed_url_ttl = timedelta(seconds=signed_url_ttl_seconds)

    async def create_session(
        self,
        user_id: str,
        personality_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> SessionInfo:
        """
        Start a voice coaching session.

        Args:
            user_id: Session owner
            personality_id: Coach personality (default personality if omitted)
            context: Caller-supplied context, used instead of building one

        Raises:
            CoachingError: RATE_LIMIT_EXCEEDED, ACTIVE_SESSION_EXISTS or
                AGENT_NOT_CONFIGURED
        """
        usage = self.usage_limiter.check_and_increment(user_id, SESSION_ACTION)
        if not usage.allowed:
            self.metrics.error(
                ErrorType.RATE_LIMIT_EXCEEDED,
                "Voice coaching rate limit exceeded",
                user_id=user_id,
                limit=usage.limit,
                resets_at=usage.resets_at.isoformat(),
            )
            raise CoachingError.rate_limited(usage.resets_at)

        now = utc_now()
        active = self.sessions.get_active(user_id, now)
        if active:
            self.metrics.error(
                ErrorType.SESSION_ERROR,
                "Active session already exists",
                user_id=user_id,
                session_id=active[0].id,
            )
            raise CoachingError.active_session()

        try:
            resolved = await self.resolver.resolve(user_id, personality_id)

            if context is None:
                user_context = await self.context_builder.build_initial_context(user_id)
                context = user_context.to_dict()

            session_id = new_session_id(user_id)
            expires_at = now + self.session_duration
            self.sessions.create(
                id=session_id,
                user_id=user_id,
                agent_id=resolved.agent_id,
                personality_id=resolved.personality_id,
                status=SessionStatus.ACTIVE,
                started_at=now,
                last_activity_at=now,
                expires_at=expires_at,
                context=context,
            )

            self.metrics.session_created(
                user_id,
                session_id,
                agent_id=resolved.agent_id,
                personality_id=resolved.personality_id,
                used_fallback=resolved.used_fallback,
            )
            logger.info(
                f"Created coaching session {session_id} for user {user_id} "
                f"with agent {resolved.agent_id}"
            )
            return SessionInfo(
                session_id=session_id,
                agent_id=resolved.agent_id,
                context=context,
                expires_at=expires_at,
            )

        except CoachingError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to create coaching session for user {user_id}: {e}",
                exc_info=True,
            )
            self.metrics.error(
                ErrorType.SESSION_ERROR,
                str(e) or "Failed to create session",
                user_id=user_id,
                exc=e,
                personality_id=personality_id,
            )
            raise

    async def get_signed_url(
        self,
        user_id: str,
        personality_id: Optional[str] = None,
        custom_context: Optional[str] = None,
    ) -> SignedUrlInfo:
        """
        Issue a connection URL for the user's voice agent.

        Resolves the agent and builds context on its own; it does not use the
        row written by ``create_session``. ``expires_at`` is an advertised
        approximation, not the platform's own expiry.

        Raises:
            CoachingError: AGENT_NOT_CONFIGURED, or VOICE_PLATFORM_ERROR for
                any other failure
        """
        start_time = time.time()
        try:
            resolved = await self.resolver.resolve(user_id, personality_id)
            user_context = await self.context_builder.build_initial_context(user_id)
            formatted = self.context_builder.format_context_for_prompt(user_context)

            if resolved.system_prompt:
                prompt = f"{resolved.system_prompt}\n\n{formatted}"
            else:
                prompt = formatted
            first_message = resolved.first_message or build_first_message(user_context)

            api_start = time.time()
            signed_url = await self.voice_platform.get_signed_url(resolved.agent_id)
            self.metrics.voice_api_call(
                "get_signed_url",
                (time.time() - api_start) * 1000,
                user_id=user_id,
                agent_id=resolved.agent_id,
            )

            overrides: dict[str, Any] = {
                "agent": {
                    "prompt": {"prompt": custom_context or prompt},
                    "firstMessage": first_message,
                    "language": resolved.language,
                }
            }
            if resolved.voice:
                overrides["tts"] = {
                    "voiceId": resolved.voice.voice_id,
                    "stability": resolved.voice.stability,
                    "similarityBoost": resolved.voice.similarity_boost,
                }

            duration_ms = (time.time() - start_time) * 1000
            self.metrics.signed_url_generated(
                user_id,
                duration_ms,
                agent_id=resolved.agent_id,
                personality_id=resolved.personality_id,
                has_custom_context=custom_context is not None,
            )
            logger.info(
                f"Signed URL generated for user {user_id} "
                f"(agent {resolved.agent_id}) in {duration_ms:.0f}ms"
            )
            return SignedUrlInfo(
                signed_url=signed_url,
                expires_at=utc_now() + self.signed_url_ttl,
                agent_id=resolved.agent_id,
                overrides=overrides,
            )

        except CoachingError as e:
            if e.kind == ErrorKind.AGENT_NOT_CONFIGURED:
                raise
            self.metrics.error(
                ErrorType.VOICE_API_ERROR, e.message, user_id=user_id, exc=e
            )
            if e.kind == ErrorKind.VOICE_PLATFORM_ERROR:
                raise
            raise CoachingError.voice_platform(
                "Failed to generate signed URL", cause=e
            ) from e
        except Exception as e:
            logger.error(
                f"Failed to generate signed URL for user {user_id}: {e}", exc_info=True
            )
            self.metrics.error(
                ErrorType.VOICE_API_ERROR,
                str(e) or "Failed to generate signed URL",
                user_id=user_id,
                exc=e,
            )
            raise CoachingError.voice_platform(
                "Failed to generate signed URL", cause=e
            ) from e

    async def save_conversation(
        self, user_id: str, payload: ConversationPayload
    ) -> VoiceConversation:
        """
        Persist a finished conversation and complete the user's active sessions.

        The stored snapshot lists the goals that were active when the
        conversation was saved.
        """
        try:
            self.metrics.conversation_ended(
                user_id,
                payload.conversation_id,
                payload.duration,
                len(payload.transcript),
            )

            user_context = await self.context_builder.build_initial_context(user_id)
            snapshot = {
                "goals_count": len(user_context.goals),
                "active_goals": [goal.id for goal in user_context.goals],
            }

            active = self.sessions.get_active(user_id, utc_now())
            agent_id = active[0].agent_id if active else self.fallback_agent_id or None

            conversation = self.conversations.save(
                user_id, payload, agent_id=agent_id, context_snapshot=snapshot
            )
            completed = self.sessions.complete_active(user_id)
            logger.info(
                f"Conversation {payload.conversation_id} saved for user {user_id}; "
                f"{completed} active session(s) completed"
            )
            return conversation

        except Exception as e:
            logger.error(
                f"Failed to save conversation {payload.conversation_id} "
                f"for user {user_id}: {e}",
                exc_info=True,
            )
            self.metrics.error(
                ErrorType.UNKNOWN_ERROR,
                str(e) or "Failed to save conversation",
                user_id=user_id,
                conversation_id=payload.conversation_id,
                exc=e,
            )
            raise

    async def health(self, api_key_present: bool, database_ok: bool) -> dict[str, Any]:
        """
        Service and dependency status plus current metrics.

        ``unhealthy`` when the database is unreachable, ``degraded`` when the
        voice platform is unconfigured or unreachable.
        """
        agent_configured = bool(self.fallback_agent_id)
        configured = api_key_present and agent_configured

        if not configured:
            connectivity = "not_configured"
        else:
            start_time = time.time()
            try:
                valid = await self.voice_platform.validate_agent(self.fallback_agent_id)
            except Exception as e:
                logger.warning(f"Voice platform health check failed: {e}")
                valid = False
            self.metrics.voice_api_call(
                "validate_agent", (time.time() - start_time) * 1000
            )
            connectivity = "connected" if valid else "error"

        if not database_ok:
            status = "unhealthy"
        elif connectivity != "connected":
            status = "degraded"
        else:
            status = "healthy"

        return {
            "status": status,
            "services": {
                "voicePlatform": {
                    "configured": configured,
                    "apiKeyPresent": api_key_present,
                    "agentConfigured": agent_configured,
                    "connectivity": connectivity,
                },
                "database": {
                    "configured": True,
                    "connectivity": "connected" if database_ok else "error",
                },
            },
            "metrics": self.metrics.aggregate().to_dict(),
            "timestamp": utc_now().isoformat(),
        }
