"""Base protocol and types for chat LLM providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Literal


@dataclass
class ChatMessage:
    """One prior turn of a text coaching conversation.

    Attributes:
        role: "user" or "assistant"
        content: Message text
    """

    role: Literal["user", "assistant"]
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


class LLMProvider(ABC):
    """Abstract base class for streaming chat providers.

    Implementations yield text pieces in generation order and let provider
    errors propagate; the caller decides how to report them.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier (e.g., 'openai', 'anthropic')."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier being used."""
        ...

    @abstractmethod
    def stream_chat(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        """Stream a chat completion.

        Args:
            system_prompt: System message (personality prompt plus user context)
            messages: Conversation so far, ending with the user's new message
            max_tokens: Maximum tokens in the response
            temperature: Sampling temperature (0.0-1.0)

        Yields:
            Non-empty text pieces in generation order
        """
        ...
