"""
Content embedding repository.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from coachline.db.repositories.base import BaseRepository
from coachline.models.db import ContentEmbedding


class EmbeddingRepository(BaseRepository[ContentEmbedding]):
    """Repository for ContentEmbedding model."""

    def __init__(self, session: Session):
        super().__init__(ContentEmbedding, session)

    def list_for_user(
        self, user_id: str, content_types: Optional[Sequence[str]] = None
    ) -> List[ContentEmbedding]:
        """
        Get a user's embeddings, optionally restricted to content types.

        Args:
            user_id: Owning user
            content_types: e.g. ["journal"]; None or empty means all

        Returns:
            List of embeddings
        """
        query = self.session.query(ContentEmbedding).filter(
            ContentEmbedding.user_id == user_id
        )
        if content_types:
            query = query.filter(ContentEmbedding.content_type.in_(list(content_types)))
        return query.all()

    def get_document(
        self, user_id: str, content_type: str, document_id: str
    ) -> Optional[ContentEmbedding]:
        return (
            self.session.query(ContentEmbedding)
            .filter(
                ContentEmbedding.user_id == user_id,
                ContentEmbedding.content_type == content_type,
                ContentEmbedding.document_id == document_id,
            )
            .first()
        )

    def upsert(
        self,
        user_id: str,
        content_type: str,
        document_id: str,
        content: str,
        embedding: List[float],
        model: str,
        extra_data: dict,
        source_created_at: datetime,
    ) -> ContentEmbedding:
        """
        Create or replace the embedding of one document.

        Returns:
            The stored embedding row
        """
        existing = self.get_document(user_id, content_type, document_id)
        if existing is None:
            return self.create(
                user_id=user_id,
                content_type=content_type,
                document_id=document_id,
                content=content,
                embedding=embedding,
                model=model,
                extra_data=extra_data,
                source_created_at=source_created_at,
            )

        existing.content = content
        existing.embedding = embedding
        existing.model = model
        existing.extra_data = extra_data
        existing.source_created_at = source_created_at
        self.session.flush()
        return existing

    def delete_document(self, user_id: str, document_id: str) -> int:
        """
        Delete every embedding of a document, whatever its content type.

        Returns:
            Number of rows deleted
        """
        deleted = (
            self.session.query(ContentEmbedding)
            .filter(
                ContentEmbedding.user_id == user_id,
                ContentEmbedding.document_id == document_id,
            )
            .delete(synchronize_session=False)
        )
        self.session.flush()
        return deleted
