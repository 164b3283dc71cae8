"""Embedding providers."""

import logging
from abc import ABC, abstractmethod

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

# Inputs beyond this are cut before embedding
MAX_EMBEDDING_CHARS = 8000


class EmbeddingProvider(ABC):
    """Turns text into a fixed-length vector."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the OpenAI embeddings endpoint."""

    def __init__(self, api_key: str, model: str = "text-embedding-3-small"):
        if not api_key:
            raise ValueError("OpenAI API key is required")
        self.client = AsyncOpenAI(api_key=api_key)
        self._model = model
        logger.info(f"Initialized OpenAI embedding provider with model: {model}")

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, text: str) -> list[float]:
        response = await self.client.embeddings.create(
            model=self._model,
            input=text[:MAX_EMBEDDING_CHARS],
        )
        return list(response.data[0].embedding)
