"""
Live-channel contracts.

Every websocket frame is `{"event": <name>, "data": {...}}`; payload fields are
camelCase on the wire.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.message import MESSAGE_BODY_MAX_LENGTH
from app.schemas.message import CAMEL_CONFIG, normalize_body, normalize_property_id


class ClientEventName(str, Enum):
    """Events a client may send."""

    DECLARE_ONLINE = "declare-online"
    DECLARE_OFFLINE = "declare-offline"
    SEND_MESSAGE = "send-message"
    TYPING = "typing"
    JOIN_ROOM = "join-room"
    LEAVE_ROOM = "leave-room"


class ServerEventName(str, Enum):
    """Events the server emits."""

    MESSAGE_ACCEPTED = "message-accepted"
    MESSAGE_RECEIVED = "message-received"
    MESSAGE_FAILED = "message-failed"
    TYPING = "typing"
    USER_STATUS = "user-status"
    MESSAGE_READ = "message-read"
    MESSAGES_READ = "messages-read"
    MESSAGE_DELETED = "message-deleted"
    CONVERSATION_DELETED = "conversation-deleted"


class PresenceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class Envelope(BaseModel):
    """Frame shape shared by both directions."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


# -----------------------------------------------------------------------------
# Inbound payloads
# -----------------------------------------------------------------------------


class PresencePayload(BaseModel):
    model_config = CAMEL_CONFIG

    user_id: UUID


class SendMessagePayload(BaseModel):
    """senderId may be omitted; it then defaults to the bound user."""

    model_config = CAMEL_CONFIG

    sender_id: Optional[UUID] = None
    receiver_id: UUID
    body: str = Field(min_length=1, max_length=MESSAGE_BODY_MAX_LENGTH)
    property_id: Optional[str] = Field(default=None, max_length=64)

    @field_validator("body", mode="before")
    @classmethod
    def strip_body(cls, value):
        return normalize_body(value)

    @field_validator("property_id", mode="before")
    @classmethod
    def empty_property_is_none(cls, value):
        return normalize_property_id(value)


class TypingPayload(BaseModel):
    model_config = CAMEL_CONFIG

    receiver_id: UUID
    is_typing: bool = True


class RoomPayload(BaseModel):
    model_config = CAMEL_CONFIG

    room_id: str = Field(min_length=1, max_length=256)
