from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.dispatcher import RealtimeDispatcher
from app.schemas.realtime import ServerEventName
from app.services.conversation_service import ConversationService


class MarkConversationReadCommand:
    """Viewer reads everything the peer sent; the peer hears `messages-read`."""

    def __init__(self, db: Session, dispatcher: RealtimeDispatcher) -> None:
        self.dispatcher = dispatcher
        self.conversation_service = ConversationService(db)

    def execute(self, viewer_id: UUID, peer_id: UUID) -> int:
        updated = self.conversation_service.mark_conversation_read(viewer_id, peer_id)
        self.dispatcher.notify_user(
            peer_id,
            ServerEventName.MESSAGES_READ,
            {"readByUserId": str(viewer_id)},
        )
        return updated
