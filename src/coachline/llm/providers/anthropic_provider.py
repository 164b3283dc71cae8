"""Anthropic chat provider implementation."""

import logging
from typing import Any, AsyncIterator

from anthropic import AsyncAnthropic

from coachline.llm.providers.base import ChatMessage, LLMProvider

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """Anthropic chat provider using the async Anthropic Python SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5",
    ):
        """Initialize the Anthropic provider.

        Args:
            api_key: Anthropic API key
            model: Model to use (default: claude-sonnet-4-5)
        """
        if not api_key:
            raise ValueError("Anthropic API key is required")

        self.client = AsyncAnthropic(api_key=api_key)
        self._model = model
        logger.info(f"Initialized Anthropic chat provider with model: {model}")

    @property
    def provider_name(self) -> str:
        return "anthropic"

    @property
    def model_name(self) -> str:
        return self._model

    async def stream_chat(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        request_params: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system_prompt,
            "messages": [m.to_dict() for m in messages],
        }

        async with self.client.messages.stream(**request_params) as stream:
            async for text in stream.text_stream:
                if text:
                    yield text
