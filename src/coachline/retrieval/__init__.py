"""Semantic retrieval over a user's embedded content."""

from coachline.retrieval.embeddings import EmbeddingProvider, OpenAIEmbeddingProvider
from coachline.retrieval.service import (
    MigrationResult,
    RetrievalOptions,
    RetrievalService,
    RetrievedContext,
    RetrievedDocument,
)

__all__ = [
    "EmbeddingProvider",
    "MigrationResult",
    "OpenAIEmbeddingProvider",
    "RetrievalOptions",
    "RetrievalService",
    "RetrievedContext",
    "RetrievedDocument",
]
