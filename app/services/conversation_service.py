"""
Conversation queries over the message store.

A conversation is the set of messages between two users; nothing about it is
stored. Summaries (latest message + unread count per peer) are computed on
demand with window functions so the grouping happens in the database.
"""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from app.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models.message import Message
from app.models.user import User
from app.schemas.message import ConversationPeer, ConversationSummary, MessageRead
from app.services.message_service import MessageService


class ConversationService:
    """Inbox, history, read-state and deletion for two-party conversations."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.messages = MessageService(db)

    def list_conversations(self, viewer_id: UUID) -> List[ConversationSummary]:
        """
        One row per peer the viewer has exchanged messages with.

        The latest message wins by created_at, then by id. Peers with no user
        record are dropped. Rows are sorted newest conversation first.
        """
        peer_id = case(
            (Message.sender_id == viewer_id, Message.receiver_id),
            else_=Message.sender_id,
        )
        unread = case(
            (and_(Message.receiver_id == viewer_id, Message.read.is_(False)), 1),
            else_=0,
        )
        ranked = (
            select(
                Message.id.label("message_id"),
                peer_id.label("peer_id"),
                func.row_number()
                .over(
                    partition_by=peer_id,
                    order_by=(Message.created_at.desc(), Message.id.desc()),
                )
                .label("position"),
                func.sum(unread).over(partition_by=peer_id).label("unread_count"),
            )
            .where(or_(Message.sender_id == viewer_id, Message.receiver_id == viewer_id))
            .subquery()
        )
        stmt = (
            select(Message, User, ranked.c.unread_count)
            .join(ranked, ranked.c.message_id == Message.id)
            .join(User, User.id == ranked.c.peer_id)
            .where(ranked.c.position == 1)
            .order_by(Message.created_at.desc(), Message.id.desc())
        )
        return [
            ConversationSummary(
                user=ConversationPeer.model_validate(user),
                last_message=MessageRead.model_validate(message),
                unread_count=int(unread_count or 0),
            )
            for message, user, unread_count in self.db.execute(stmt).all()
        ]

    def list_messages(
        self,
        viewer_id: UUID,
        peer_id: UUID,
        page: int = 1,
        page_size: int = 50,
    ) -> Page[MessageRead]:
        """History between viewer and peer, oldest first, paginated."""
        params = Params(page=page, size=page_size)
        return paginate(
            self.db,
            self.messages.get_messages_between_query(viewer_id, peer_id),
            params=params,
            transformer=lambda items: [MessageRead.model_validate(m) for m in items],
        )

    def mark_message_read(self, viewer_id: UUID, message_id: int) -> Message:
        msg = self.messages.get_message(message_id)
        if msg is None:
            raise NotFoundError("Message not found")
        if msg.receiver_id != viewer_id:
            raise ForbiddenError("Not authorized to mark this message as read")
        return self.messages.mark_read(msg)

    def mark_conversation_read(self, viewer_id: UUID, peer_id: UUID) -> int:
        """Mark everything peer sent to viewer as read. Second call returns 0."""
        return self.messages.mark_read_from(sender_id=peer_id, receiver_id=viewer_id)

    def delete_message(self, viewer_id: UUID, message_id: int) -> MessageRead:
        """Hard-delete a message the viewer sent or received. Returns a snapshot of it."""
        msg = self.messages.get_message(message_id)
        if msg is None:
            raise NotFoundError("Message not found")
        if not msg.involves(viewer_id):
            raise ForbiddenError("Not authorized to delete this message")
        snapshot = MessageRead.model_validate(msg)
        self.messages.delete_message(msg)
        return snapshot

    def delete_conversation(self, viewer_id: UUID, peer_id: UUID) -> int:
        if viewer_id == peer_id:
            raise ValidationError("A conversation needs two participants")
        return self.messages.delete_between(viewer_id, peer_id)
