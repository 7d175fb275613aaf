"""Persisted message store: create, find, flip read and delete."""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from app.exceptions import PersistenceError, ValidationError
from app.models.message import Message

logger = logging.getLogger(__name__)


def between(user_a: UUID, user_b: UUID):
    """Filter for messages exchanged by the unordered pair {user_a, user_b}."""
    return or_(
        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


class MessageService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def create_message(
        self,
        sender_id: UUID,
        receiver_id: UUID,
        body: str,
        property_id: Optional[str] = None,
    ) -> Message:
        if sender_id == receiver_id:
            raise ValidationError("Cannot send a message to yourself")
        if not body or not body.strip():
            raise ValidationError("Message is required")
        msg = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            body=body.strip(),
            property_id=property_id,
            read=False,
        )
        self.db.add(msg)
        self._commit()
        self.db.refresh(msg)
        return msg

    def get_message(self, message_id: int) -> Optional[Message]:
        try:
            return self.db.get(Message, message_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Server error fetching message") from e

    def get_messages_between_query(self, user_a: UUID, user_b: UUID) -> Select:
        """Messages of a pair in display order (oldest first, id breaks ties)."""
        return (
            select(Message)
            .where(between(user_a, user_b))
            .order_by(Message.created_at.asc(), Message.id.asc())
        )

    def get_messages_between(self, user_a: UUID, user_b: UUID) -> List[Message]:
        return list(
            self.db.scalars(self.get_messages_between_query(user_a, user_b)).all()
        )

    def mark_read(self, msg: Message) -> Message:
        if not msg.read:
            msg.read = True
            self._commit()
            self.db.refresh(msg)
        return msg

    def mark_read_from(self, sender_id: UUID, receiver_id: UUID) -> int:
        """Flip every unread message from sender to receiver. Returns rows changed."""
        updated = (
            self.db.query(Message)
            .filter(
                Message.sender_id == sender_id,
                Message.receiver_id == receiver_id,
                Message.read.is_(False),
            )
            .update({Message.read: True}, synchronize_session="fetch")
        )
        self._commit()
        return updated

    def delete_message(self, msg: Message) -> None:
        self.db.delete(msg)
        self._commit()

    def delete_between(self, user_a: UUID, user_b: UUID) -> int:
        deleted = (
            self.db.query(Message)
            .filter(between(user_a, user_b))
            .delete(synchronize_session="fetch")
        )
        self._commit()
        return deleted

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Message store write failed: %s", e)
            raise PersistenceError() from e
