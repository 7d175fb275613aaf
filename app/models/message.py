"""
Message model: one row per direct message between two users.

Rows are only ever mutated to flip `read` from False to True; deletion is a
hard delete. Conversations are derived from these rows, never stored.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin

MESSAGE_BODY_MAX_LENGTH = 5000


class Message(Base, TimestampMixin):
    """
    Direct message. sender_id/receiver_id reference users owned by another
    subsystem, so there is no foreign key; unknown peers are filtered on read.
    """

    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_sender_receiver", "sender_id", "receiver_id"),
        Index("ix_messages_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_id = Column(Uuid(as_uuid=True), nullable=False)
    receiver_id = Column(Uuid(as_uuid=True), nullable=False)
    property_id = Column(String(64), nullable=True)
    body = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)

    def involves(self, user_id) -> bool:
        return user_id in (self.sender_id, self.receiver_id)
