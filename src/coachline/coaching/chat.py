"""
Streaming text coaching.

A reply is produced in two steps. ``start`` takes the chat allowance and
assembles the prompt, so rejections surface as ordinary HTTP errors before
any bytes are sent. ``stream`` then relays the model output as server-sent
events in generation order until the model finishes, fails, or the client
goes away.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from coachline.coaching.context_builder import ContextBuilder
from coachline.coaching.personality import PersonalityResolver
from coachline.coaching.usage import UsageInfo, UsageLimiter
from coachline.exceptions import CoachingError
from coachline.llm.providers.base import ChatMessage, LLMProvider
from coachline.utils.dates import utc_now

logger = logging.getLogger(__name__)

CHAT_ACTION = "chat"

DisconnectCheck = Callable[[], Awaitable[bool]]


def sse_event(payload: dict[str, Any]) -> str:
    """Encode one server-sent event frame."""
    return f"data: {json.dumps(payload)}\n\n"


@dataclass
class ChatTurn:
    """Everything needed to stream one reply."""

    user_id: str
    message: str
    system_prompt: str
    usage: UsageInfo
    history: list[ChatMessage] = field(default_factory=list)
    turn_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def messages(self) -> list[ChatMessage]:
        return [*self.history, ChatMessage(role="user", content=self.message)]


class ChatService:
    """
    Text coaching on top of a streaming LLM provider.

    Args:
        usage_limiter: Daily allowance gate
        resolver: Supplies the personality system prompt
        context_builder: Builds the query-driven user context
        provider: Streaming LLM; None means text coaching is unavailable
        max_tokens: Reply length cap
        temperature: Sampling temperature
    """

    def __init__(
        self,
        usage_limiter: UsageLimiter,
        resolver: PersonalityResolver,
        context_builder: ContextBuilder,
        provider: Optional[LLMProvider],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ):
        self.usage_limiter = usage_limiter
        self.resolver = resolver
        self.context_builder = context_builder
        self.provider = provider
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def start(
        self,
        user_id: str,
        message: str,
        personality_id: Optional[str] = None,
        history: Optional[list[ChatMessage]] = None,
    ) -> ChatTurn:
        """
        Take one chat unit and assemble the prompt for a reply.

        Raises:
            CoachingError: RATE_LIMIT_EXCEEDED when the chat allowance is used up
        """
        usage = self.usage_limiter.check_and_increment(user_id, CHAT_ACTION)
        if not usage.allowed:
            raise CoachingError.rate_limited(usage.resets_at, action=CHAT_ACTION)

        personality_prompt = self.resolver.resolve_system_prompt(user_id, personality_id)
        context = await self.context_builder.build_dynamic_context(user_id, message)
        formatted = self.context_builder.format_context_for_prompt(context)

        return ChatTurn(
            user_id=user_id,
            message=message,
            system_prompt=f"{personality_prompt}\n\n{formatted}",
            usage=usage,
            history=list(history or []),
        )

    async def stream(
        self, turn: ChatTurn, is_disconnected: Optional[DisconnectCheck] = None
    ) -> AsyncIterator[str]:
        """
        Yield SSE frames: ``session``, one ``chunk`` per piece, then ``done``.

        A provider failure ends the stream with an ``error`` frame instead of
        ``done``. When ``is_disconnected`` reports the client gone, generation
        stops without a final frame.
        """
        yield sse_event(
            {
                "type": "session",
                "turnId": turn.turn_id,
                "userMessage": {
                    "role": "user",
                    "content": turn.message,
                    "timestamp": utc_now().isoformat(),
                },
                "usageInfo": turn.usage.to_dict(),
            }
        )

        if self.provider is None:
            logger.error("Chat requested but no LLM provider is configured")
            yield sse_event(
                {"type": "error", "message": "Text coaching is not configured"}
            )
            return

        pieces: list[str] = []
        try:
            async for piece in self.provider.stream_chat(
                turn.system_prompt,
                turn.messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            ):
                if is_disconnected is not None and await is_disconnected():
                    logger.info(
                        f"Client disconnected, stopping reply {turn.turn_id} "
                        f"for user {turn.user_id} after {len(pieces)} chunks"
                    )
                    return
                pieces.append(piece)
                yield sse_event({"type": "chunk", "content": piece})
        except Exception as e:
            logger.error(
                f"Chat generation failed for user {turn.user_id}: {e}", exc_info=True
            )
            yield sse_event({"type": "error", "message": str(e) or "Generation failed"})
            return

        full_text = "".join(pieces)
        logger.info(
            f"Reply {turn.turn_id} streamed to user {turn.user_id}: "
            f"{len(pieces)} chunks, {len(full_text)} chars"
        )
        yield sse_event(
            {
                "type": "done",
                "turnId": turn.turn_id,
                "assistantMessage": {
                    "role": "assistant",
                    "content": full_text,
                    "timestamp": utc_now().isoformat(),
                },
            }
        )
