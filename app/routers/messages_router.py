"""Messages API: send, inbox, history, read receipts and deletion."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth.dependencies import CurrentUser, get_current_user
from app.commands.messages import (
    DeleteConversationCommand,
    DeleteMessageCommand,
    MarkConversationReadCommand,
    MarkMessageReadCommand,
    SendMessageCommand,
)
from app.config import get_settings
from app.core.dispatcher import RealtimeDispatcher
from app.db import get_db
from app.routers.utils.dependencies import get_dispatcher
from app.schemas.message import (
    ConversationList,
    MessageCreate,
    MessageEnvelope,
    MessageHistory,
    StatusEnvelope,
)
from app.services.conversation_service import ConversationService

router = APIRouter(
    prefix="/messages",
    tags=["messages"],
    responses={404: {"description": "Not found"}},
)


@router.post("", response_model=MessageEnvelope, status_code=201)
def send_message(
    data: MessageCreate,
    current_user: CurrentUser = Depends(get_current_user),
    dispatcher: RealtimeDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
) -> MessageEnvelope:
    """Persist a message and push it to the receiver if they are online."""
    message = SendMessageCommand(db, dispatcher).execute(current_user.id, data)
    return MessageEnvelope(message=message)


@router.get("/conversations", response_model=ConversationList)
def list_conversations(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationList:
    """Inbox: latest message and unread count per peer, newest first."""
    svc = ConversationService(db)
    return ConversationList(conversations=svc.list_conversations(current_user.id))


@router.get("/{peer_id}", response_model=MessageHistory)
def list_messages(
    peer_id: UUID,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageHistory:
    """Message history with a peer, oldest first."""
    svc = ConversationService(db)
    page_size = limit or get_settings().message_page_size_default
    result = svc.list_messages(current_user.id, peer_id, page=page, page_size=page_size)
    return MessageHistory.from_page(result)


@router.put("/{message_id}/read", response_model=MessageEnvelope)
def mark_message_read(
    message_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    dispatcher: RealtimeDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
) -> MessageEnvelope:
    message = MarkMessageReadCommand(db, dispatcher).execute(current_user.id, message_id)
    return MessageEnvelope(message=message)


@router.put("/conversation/{peer_id}/read", response_model=StatusEnvelope)
def mark_conversation_read(
    peer_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    dispatcher: RealtimeDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
) -> StatusEnvelope:
    updated = MarkConversationReadCommand(db, dispatcher).execute(
        current_user.id, peer_id
    )
    return StatusEnvelope(
        message="Conversation marked as read", updated_count=updated
    )


@router.delete("/message/{message_id}", response_model=StatusEnvelope)
def delete_message(
    message_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    dispatcher: RealtimeDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
) -> StatusEnvelope:
    """Hard-delete a message. Only its sender or receiver may do this."""
    DeleteMessageCommand(db, dispatcher).execute(current_user.id, message_id)
    return StatusEnvelope(message="Message deleted successfully")


@router.delete("/conversation/{peer_id}", response_model=StatusEnvelope)
def delete_conversation(
    peer_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    dispatcher: RealtimeDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
) -> StatusEnvelope:
    deleted = DeleteConversationCommand(db, dispatcher).execute(
        current_user.id, peer_id
    )
    return StatusEnvelope(
        message=f"Conversation deleted successfully. {deleted} messages removed.",
        deleted_count=deleted,
    )
