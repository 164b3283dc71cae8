"""
Retrieval service.

Embeds user content into the content_embeddings table and answers
similarity queries over it. Queries and embeddings are billed against the
user's usage allowance unless the caller marks them as system-internal.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from coachline.coaching.usage import UsageLimiter
from coachline.db.repositories.embedding import EmbeddingRepository
from coachline.exceptions import CoachingError
from coachline.retrieval.embeddings import EmbeddingProvider
from coachline.retrieval.ranking import cosine_similarity, rank, score
from coachline.sources.base import JournalSource
from coachline.utils.dates import ensure_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass
class RetrievalOptions:
    user_id: str
    content_types: list[str] = field(default_factory=lambda: ["journal"])
    limit: int = 5
    similarity_threshold: Optional[float] = None  # None = service default
    include_recent: bool = False
    recent_days: int = 90


@dataclass
class RetrievedDocument:
    id: str
    content_type: str
    content: str
    similarity: float  # Raw cosine score
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RetrievedContext:
    query: str
    documents: list[RetrievedDocument] = field(default_factory=list)
    total_found: int = 0


@dataclass
class MigrationResult:
    user_id: str
    total_processed: int = 0
    success_count: int = 0
    failed_count: int = 0
    duration_ms: float = 0.0
    errors: list[dict] = field(default_factory=list)


class RetrievalService:
    """
    Semantic search over a user's embedded content.

    Args:
        repository: Embedding storage
        embedding_provider: Embedding backend; None disables retrieval
        usage_limiter: Usage gate for billed queries and embeddings
        enabled: Master switch
        similarity_threshold: Default minimum cosine score
        recency_weight: Maximum freshness bonus added to the score
        tie_tolerance: Scores closer than this are ordered newest first
    """

    def __init__(
        self,
        repository: EmbeddingRepository,
        embedding_provider: Optional[EmbeddingProvider],
        usage_limiter: Optional[UsageLimiter] = None,
        enabled: bool = True,
        similarity_threshold: float = 0.3,
        recency_weight: float = 0.05,
        tie_tolerance: float = 0.01,
    ):
        self.repository = repository
        self.embedding_provider = embedding_provider
        self.usage_limiter = usage_limiter
        self.enabled = enabled and embedding_provider is not None
        self.similarity_threshold = similarity_threshold
        self.recency_weight = recency_weight
        self.tie_tolerance = tie_tolerance

    def _gate(self, user_id: str, action: str, label: str) -> None:
        if self.usage_limiter is None:
            return
        usage = self.usage_limiter.check_and_increment(user_id, action)
        if not usage.allowed:
            raise CoachingError.rate_limited(usage.resets_at, action=label)

    async def retrieve_context(
        self,
        query: str,
        options: RetrievalOptions,
        skip_usage: bool = False,
    ) -> RetrievedContext:
        """
        Find the user's documents most similar to a query.

        Args:
            query: Free text
            options: Owner, content types, count and recency preference
            skip_usage: True for system-internal lookups that are not billed

        Returns:
            RetrievedContext; empty (not an error) when nothing matches

        Raises:
            CoachingError: RATE_LIMIT_EXCEEDED when the search allowance is used up
        """
        if not self.enabled or not query or not query.strip():
            return RetrievedContext(query=query)

        if not skip_usage:
            self._gate(options.user_id, "rag_search", "search")

        start_time = time.time()
        threshold = (
            options.similarity_threshold
            if options.similarity_threshold is not None
            else self.similarity_threshold
        )

        try:
            query_vector = await self.embedding_provider.embed(query)
            rows = self.repository.list_for_user(options.user_id, options.content_types)
        except SQLAlchemyError as e:
            logger.error(f"Embedding lookup failed for user {options.user_id}: {e}")
            return RetrievedContext(query=query)
        except Exception as e:
            logger.error(f"Query embedding failed for user {options.user_id}: {e}")
            return RetrievedContext(query=query)

        now = utc_now()
        candidates = []
        for row in rows:
            similarity = cosine_similarity(query_vector, row.embedding or [])
            if similarity < threshold:
                continue
            candidates.append(
                score(
                    row,
                    similarity,
                    row.source_created_at,
                    now,
                    options.recent_days if options.include_recent else None,
                    self.recency_weight,
                )
            )

        ranked = rank(candidates, tie_tolerance=self.tie_tolerance, limit=options.limit)
        documents = [
            RetrievedDocument(
                id=s.item.document_id,
                content_type=s.item.content_type,
                content=s.item.content,
                similarity=s.similarity,
                created_at=s.created_at,
                metadata=dict(s.item.extra_data or {}),
            )
            for s in ranked
        ]

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Retrieved {len(documents)}/{len(candidates)} documents for user "
            f"{options.user_id} in {duration_ms:.0f}ms"
        )
        return RetrievedContext(
            query=query, documents=documents, total_found=len(candidates)
        )

    async def _embed(
        self,
        user_id: str,
        content_type: str,
        document_id: str,
        text: str,
        metadata: Optional[dict],
        created_at: Optional[datetime],
    ):
        vector = await self.embedding_provider.embed(text)
        return self.repository.upsert(
            user_id=user_id,
            content_type=content_type,
            document_id=document_id,
            content=text,
            embedding=vector,
            model=self.embedding_provider.model_name,
            extra_data=metadata or {},
            source_created_at=ensure_utc(created_at or utc_now()),
        )

    async def embed_content(
        self,
        user_id: str,
        content_type: str,
        document_id: str,
        text: str,
        metadata: Optional[dict] = None,
        created_at: Optional[datetime] = None,
        skip_usage: bool = False,
    ):
        """
        Embed one document, replacing any previous embedding of it.

        Failures other than the usage gate are logged and swallowed.

        Returns:
            The stored ContentEmbedding, or None if nothing was stored

        Raises:
            CoachingError: RATE_LIMIT_EXCEEDED when the embedding allowance is used up
        """
        if not self.enabled or not text or not text.strip():
            return None

        if not skip_usage:
            self._gate(user_id, "rag_embedding", "embedding")

        try:
            return await self._embed(
                user_id, content_type, document_id, text, metadata, created_at
            )
        except Exception as e:
            logger.error(
                f"Failed to embed {content_type} {document_id} for user {user_id}: {e}"
            )
            return None

    def delete_embeddings(self, user_id: str, document_id: str) -> int:
        """Remove a document from the index; failures are logged, not raised."""
        try:
            deleted = self.repository.delete_document(user_id, document_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete embeddings of {document_id}: {e}")
            return 0
        logger.debug(f"Deleted {deleted} embeddings of {document_id} for {user_id}")
        return deleted

    async def reindex_user(
        self, user_id: str, journal_source: JournalSource
    ) -> MigrationResult:
        """
        Embed every journal entry of a user.

        Not billed against the user's allowance.
        """
        result = MigrationResult(user_id=user_id)
        if not self.enabled:
            logger.warning("Retrieval is disabled; nothing to reindex")
            return result

        start_time = time.time()
        entries = await journal_source.list_all(user_id)

        for entry in entries:
            result.total_processed += 1
            try:
                await self._embed(
                    user_id,
                    "journal",
                    entry.id,
                    entry.content,
                    {"mood": entry.mood, "tags": entry.tags},
                    entry.created_at,
                )
                result.success_count += 1
            except Exception as e:
                result.failed_count += 1
                result.errors.append(
                    {"documentId": entry.id, "contentType": "journal", "error": str(e)}
                )
                logger.warning(f"Failed to reindex journal {entry.id}: {e}")

        result.duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Reindexed {result.success_count}/{result.total_processed} journal "
            f"entries for user {user_id} ({result.failed_count} failed)"
        )
        return result
