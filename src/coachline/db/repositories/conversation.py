"""
Voice conversation repository.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from coachline.db.repositories.base import BaseRepository
from coachline.models.db import VoiceConversation


class VoiceConversationRepository(BaseRepository[VoiceConversation]):
    """Repository for VoiceConversation model."""

    def __init__(self, session: Session):
        super().__init__(VoiceConversation, session)

    def list_for_user(
        self,
        user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        oldest_first: bool = False,
        limit: Optional[int] = None,
    ) -> List[VoiceConversation]:
        """
        List a user's conversations ordered by creation time.

        Args:
            user_id: Owning user
            start_date: Only conversations started at or after this time
            end_date: Only conversations started at or before this time
            oldest_first: Ascending creation order instead of newest first
            limit: Maximum number of records to return

        Returns:
            List of conversations
        """
        query = self.session.query(VoiceConversation).filter(
            VoiceConversation.user_id == user_id
        )
        if start_date:
            query = query.filter(VoiceConversation.started_at >= start_date)
        if end_date:
            query = query.filter(VoiceConversation.started_at <= end_date)

        if oldest_first:
            query = query.order_by(
                VoiceConversation.created_at.asc(), VoiceConversation.started_at.asc()
            )
        else:
            query = query.order_by(
                VoiceConversation.created_at.desc(), VoiceConversation.started_at.desc()
            )

        if limit:
            query = query.limit(limit)
        return query.all()

    def get_by_conversation_id(
        self, user_id: str, conversation_id: str
    ) -> Optional[VoiceConversation]:
        """
        Get a conversation by its client-supplied id, scoped to the owner.

        Returns:
            VoiceConversation or None (also when another user owns it)
        """
        return (
            self.session.query(VoiceConversation)
            .filter(
                VoiceConversation.user_id == user_id,
                VoiceConversation.conversation_id == conversation_id,
            )
            .order_by(VoiceConversation.created_at.desc())
            .first()
        )

    def delete_instance(self, conversation: VoiceConversation) -> None:
        self.session.delete(conversation)
        self.session.flush()
