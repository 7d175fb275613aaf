from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.dispatcher import RealtimeDispatcher
from app.schemas.message import MessageRead
from app.schemas.realtime import ServerEventName
from app.services.conversation_service import ConversationService


class MarkMessageReadCommand:
    """Receiver marks one message read; the sender hears `message-read`."""

    def __init__(self, db: Session, dispatcher: RealtimeDispatcher) -> None:
        self.dispatcher = dispatcher
        self.conversation_service = ConversationService(db)

    def execute(self, viewer_id: UUID, message_id: int) -> MessageRead:
        msg = self.conversation_service.mark_message_read(viewer_id, message_id)
        message = MessageRead.model_validate(msg)
        self.dispatcher.notify_user(
            message.sender_id,
            ServerEventName.MESSAGE_READ,
            {"messageId": message.id},
        )
        return message
