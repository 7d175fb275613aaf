from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.dispatcher import RealtimeDispatcher
from app.schemas.realtime import ServerEventName
from app.services.conversation_service import ConversationService


class DeleteConversationCommand:
    """Either participant wipes the conversation; the peer hears about it."""

    def __init__(self, db: Session, dispatcher: RealtimeDispatcher) -> None:
        self.dispatcher = dispatcher
        self.conversation_service = ConversationService(db)

    def execute(self, viewer_id: UUID, peer_id: UUID) -> int:
        deleted = self.conversation_service.delete_conversation(viewer_id, peer_id)
        self.dispatcher.notify_user(
            peer_id,
            ServerEventName.CONVERSATION_DELETED,
            {"deletedByUserId": str(viewer_id)},
        )
        return deleted
