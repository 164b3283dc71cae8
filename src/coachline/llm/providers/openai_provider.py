"""OpenAI chat provider implementation."""

import logging
from typing import Any, AsyncIterator

from openai import AsyncOpenAI

from coachline.llm.providers.base import ChatMessage, LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI chat provider using the async OpenAI Python SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
    ):
        """Initialize the OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Model to use (default: gpt-4o-mini)
        """
        if not api_key:
            raise ValueError("OpenAI API key is required")

        self.client = AsyncOpenAI(api_key=api_key)
        self._model = model
        logger.info(f"Initialized OpenAI chat provider with model: {model}")

    @property
    def provider_name(self) -> str:
        return "openai"

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
            "messages": [
                {"role": "system", "content": system_prompt},
                *(m.to_dict() for m in messages),
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": True,
        }

        stream = await self.client.chat.completions.create(**request_params)
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta
