"""Pydantic schemas for direct messages and derived conversation summaries."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi_pagination import Page
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models.message import MESSAGE_BODY_MAX_LENGTH

# Payloads use camelCase on the wire, snake_case in Python.
CAMEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    from_attributes=True,
)


def normalize_body(value):
    if isinstance(value, str):
        return value.strip()
    return value


def normalize_property_id(value):
    """Blank listing references are stored as NULL."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


# -----------------------------------------------------------------------------
# Message input
# -----------------------------------------------------------------------------


class MessageCreate(BaseModel):
    """REST body for POST /messages. The text travels as `message`."""

    model_config = CAMEL_CONFIG

    receiver_id: UUID
    body: str = Field(alias="message", min_length=1, max_length=MESSAGE_BODY_MAX_LENGTH)
    property_id: Optional[str] = Field(default=None, max_length=64)

    @field_validator("body", mode="before")
    @classmethod
    def strip_body(cls, value):
        return normalize_body(value)

    @field_validator("property_id", mode="before")
    @classmethod
    def empty_property_is_none(cls, value):
        return normalize_property_id(value)


# -----------------------------------------------------------------------------
# Message output
# -----------------------------------------------------------------------------


class MessageRead(BaseModel):
    """Persisted message for API responses and live events."""

    model_config = CAMEL_CONFIG

    id: int
    sender_id: UUID
    receiver_id: UUID
    property_id: Optional[str] = None
    body: str
    read: bool
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive datetimes; rows are always written in UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class MessageEnvelope(BaseModel):
    success: bool = True
    message: MessageRead


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class MessageHistory(BaseModel):
    """One page of a conversation, oldest first."""

    success: bool = True
    messages: list[MessageRead] = Field(default_factory=list)
    pagination: PaginationMeta

    @classmethod
    def from_page(cls, page: Page[MessageRead]) -> "MessageHistory":
        return cls(
            messages=list(page.items),
            pagination=PaginationMeta(
                total=page.total or 0,
                page=page.page or 1,
                limit=page.size or len(page.items),
                pages=page.pages or 0,
            ),
        )


class StatusEnvelope(BaseModel):
    """Plain acknowledgement; counts are set by bulk operations only."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: str
    updated_count: Optional[int] = None
    deleted_count: Optional[int] = None


# -----------------------------------------------------------------------------
# Conversation summaries
# -----------------------------------------------------------------------------


class ConversationPeer(BaseModel):
    model_config = CAMEL_CONFIG

    id: UUID
    name: str
    email: Optional[str] = None
    avatar: Optional[str] = None


class ConversationSummary(BaseModel):
    """Derived inbox row: the peer, their latest message and unread count."""

    model_config = CAMEL_CONFIG

    user: ConversationPeer
    last_message: MessageRead
    unread_count: int = 0


class ConversationList(BaseModel):
    success: bool = True
    conversations: list[ConversationSummary] = Field(default_factory=list)
