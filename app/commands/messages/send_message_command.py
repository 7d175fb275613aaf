"""
Command to send a message over REST.

Persists the message, then pushes `message-received` to the receiver if they
have a live connection. The push is best-effort; the saved message stands.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.dispatcher import RealtimeDispatcher
from app.schemas.message import MessageCreate, MessageRead
from app.services.message_service import MessageService

logger = logging.getLogger(__name__)


class SendMessageCommand:
    def __init__(self, db: Session, dispatcher: RealtimeDispatcher) -> None:
        self.db = db
        self.dispatcher = dispatcher
        self.message_service = MessageService(db)

    def execute(self, sender_id: UUID, data: MessageCreate) -> MessageRead:
        """
        Args:
            sender_id: Authenticated caller.
            data: Receiver, text and optional listing reference.

        Returns:
            MessageRead: The persisted message.

        Raises:
            ValidationError: Sender and receiver are the same user.
            PersistenceError: The store rejected the write.
        """
        msg = self.message_service.create_message(
            sender_id=sender_id,
            receiver_id=data.receiver_id,
            body=data.body,
            property_id=data.property_id,
        )
        message = MessageRead.model_validate(msg)
        if self.dispatcher.deliver_message(message):
            logger.debug("Message %s pushed to %s", message.id, message.receiver_id)
        return message
