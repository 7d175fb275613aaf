from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.dispatcher import RealtimeDispatcher
from app.schemas.message import MessageRead
from app.schemas.realtime import ServerEventName
from app.services.conversation_service import ConversationService


class DeleteMessageCommand:
    """Sender or receiver deletes a message; the other participant is told."""

    def __init__(self, db: Session, dispatcher: RealtimeDispatcher) -> None:
        self.dispatcher = dispatcher
        self.conversation_service = ConversationService(db)

    def execute(self, viewer_id: UUID, message_id: int) -> MessageRead:
        removed = self.conversation_service.delete_message(viewer_id, message_id)
        other = (
            removed.receiver_id if removed.sender_id == viewer_id else removed.sender_id
        )
        self.dispatcher.notify_user(
            other,
            ServerEventName.MESSAGE_DELETED,
            {"messageId": removed.id},
        )
        return removed
