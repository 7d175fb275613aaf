"""
Realtime dispatcher: owns live connections and routes chat events.

A connection is authenticated at the handshake and starts unbound. It becomes
bound when the client declares the user id its token was issued for (recorded
in the PresenceRegistry) and ends closed when the transport drops.

Chat messages sent over the live channel are persisted first; the receiver is
notified only if they are bound, and the sender always gets either
`message-accepted` or `message-failed`.

One dispatcher is created per process by `create_app` and handed to the REST
layer through a dependency, so REST writes can notify online peers too.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, ContextManager, Dict, List, Optional, Set, Type, TypeVar
from uuid import UUID

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.connection import LiveConnection
from app.core.presence import PresenceRegistry
from app.exceptions import MessagingError
from app.schemas.message import MessageRead
from app.schemas.realtime import (
    ClientEventName,
    Envelope,
    PresencePayload,
    PresenceStatus,
    RoomPayload,
    SendMessagePayload,
    ServerEventName,
    TypingPayload,
)
from app.services.message_service import MessageService
from app.utils.db.db_session_helper import db_session

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]
PayloadT = TypeVar("PayloadT", bound=BaseModel)


def message_received_payload(message: MessageRead) -> dict[str, Any]:
    return {
        "messageId": message.id,
        "senderId": str(message.sender_id),
        "receiverId": str(message.receiver_id),
        "body": message.body,
        "timestamp": message.created_at.isoformat(),
        "propertyId": message.property_id,
    }


class RealtimeDispatcher:
    def __init__(
        self,
        presence: Optional[PresenceRegistry] = None,
        session_factory: SessionFactory = db_session,
    ) -> None:
        self.presence = presence or PresenceRegistry()
        self.session_factory = session_factory
        self._connections: Dict[str, LiveConnection] = {}
        self._rooms: Dict[str, Set[str]] = defaultdict(set)
        self._lock = threading.Lock()
        self._handlers = {
            ClientEventName.DECLARE_ONLINE: self._on_declare_online,
            ClientEventName.DECLARE_OFFLINE: self._on_declare_offline,
            ClientEventName.SEND_MESSAGE: self._on_send_message,
            ClientEventName.TYPING: self._on_typing,
            ClientEventName.JOIN_ROOM: self._on_join_room,
            ClientEventName.LEAVE_ROOM: self._on_leave_room,
        }

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def serve(self, websocket: WebSocket, principal_id: UUID) -> None:
        """
        Accept a websocket authenticated as `principal_id` and process its
        frames until it disconnects.
        """
        await websocket.accept()
        conn = LiveConnection(websocket, principal_id)
        with self._lock:
            self._connections[conn.id] = conn
        conn.start()
        logger.info("Connection %s opened", conn.id)
        try:
            while True:
                raw = await websocket.receive_text()
                await self.handle(conn, raw)
        except WebSocketDisconnect:
            pass
        finally:
            self.disconnect(conn)

    async def handle(self, conn: LiveConnection, raw: str) -> None:
        try:
            envelope = Envelope.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning("Malformed frame on connection %s: %s", conn.id, e)
            return
        try:
            name = ClientEventName(envelope.event)
        except ValueError:
            logger.warning("Unknown event %r on connection %s", envelope.event, conn.id)
            return
        await self._handlers[name](conn, envelope.data)

    def bind(self, conn: LiveConnection, user_id: UUID) -> None:
        """Bind `conn` to `user_id`; a newer connection of the same user wins."""
        self.presence.register(user_id, conn.id)
        conn.user_id = user_id
        logger.info("User %s is online on connection %s", user_id, conn.id)
        self._broadcast_status(user_id, PresenceStatus.ONLINE)

    def disconnect(self, conn: LiveConnection) -> None:
        conn.close()
        with self._lock:
            self._connections.pop(conn.id, None)
            for room_id in conn.rooms:
                members = self._rooms.get(room_id)
                if members is not None:
                    members.discard(conn.id)
                    if not members:
                        del self._rooms[room_id]
        user_id = self.presence.unregister_by_connection(conn.id)
        logger.info("Connection %s closed", conn.id)
        if user_id is not None:
            logger.info("User %s is offline", user_id)
            self._broadcast_status(user_id, PresenceStatus.OFFLINE)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def _on_declare_online(self, conn: LiveConnection, data: dict) -> None:
        payload = self._parse(conn, PresencePayload, data)
        if payload is not None and self._is_principal(conn, payload.user_id):
            self.bind(conn, payload.user_id)

    async def _on_declare_offline(self, conn: LiveConnection, data: dict) -> None:
        payload = self._parse(conn, PresencePayload, data)
        if payload is None or not self._is_principal(conn, payload.user_id):
            return
        self.presence.unregister(payload.user_id)
        logger.info("User %s went offline", payload.user_id)
        self._broadcast_status(payload.user_id, PresenceStatus.OFFLINE)

    async def _on_send_message(self, conn: LiveConnection, data: dict) -> None:
        try:
            payload = SendMessagePayload.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("Invalid send-message on connection %s: %s", conn.id, e)
            self._fail(conn, "Invalid message payload")
            return
        if conn.user_id is None:
            self._fail(conn, "Declare online before sending messages")
            return
        sender_id = payload.sender_id or conn.user_id
        if sender_id != conn.user_id:
            self._fail(conn, "senderId does not match this connection")
            return
        try:
            message = await run_in_threadpool(self._persist, sender_id, payload)
        except MessagingError as e:
            logger.warning("Live message from %s rejected: %s", sender_id, e.message)
            self._fail(conn, e.message)
            return
        except SQLAlchemyError as e:
            logger.error("Error saving message from %s: %s", sender_id, e)
            self._fail(conn, "Failed to send message")
            return
        self.deliver_message(message)
        conn.send(ServerEventName.MESSAGE_ACCEPTED, {"messageId": message.id})

    async def _on_typing(self, conn: LiveConnection, data: dict) -> None:
        payload = self._parse(conn, TypingPayload, data)
        if payload is None:
            return
        self.emit_to_user(
            payload.receiver_id,
            ServerEventName.TYPING,
            {
                "senderId": str(conn.user_id) if conn.user_id else None,
                "isTyping": payload.is_typing,
            },
        )

    async def _on_join_room(self, conn: LiveConnection, data: dict) -> None:
        payload = self._parse(conn, RoomPayload, data)
        if payload is None:
            return
        with self._lock:
            self._rooms[payload.room_id].add(conn.id)
            conn.rooms.add(payload.room_id)
        logger.debug("Connection %s joined room %s", conn.id, payload.room_id)

    async def _on_leave_room(self, conn: LiveConnection, data: dict) -> None:
        payload = self._parse(conn, RoomPayload, data)
        if payload is None:
            return
        with self._lock:
            members = self._rooms.get(payload.room_id)
            if members is not None:
                members.discard(conn.id)
                if not members:
                    del self._rooms[payload.room_id]
            conn.rooms.discard(payload.room_id)
        logger.debug("Connection %s left room %s", conn.id, payload.room_id)

    def _persist(self, sender_id: UUID, payload: SendMessagePayload) -> MessageRead:
        with self.session_factory() as db:
            msg = MessageService(db).create_message(
                sender_id=sender_id,
                receiver_id=payload.receiver_id,
                body=payload.body,
                property_id=payload.property_id,
            )
            return MessageRead.model_validate(msg)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def emit_to_user(self, user_id: UUID, event: ServerEventName, data: dict) -> bool:
        """Queue an event for the user's live connection. False when offline."""
        connection_id = self.presence.lookup(user_id)
        if connection_id is None:
            return False
        with self._lock:
            conn = self._connections.get(connection_id)
        if conn is None:
            return False
        conn.send(event, data)
        return True

    def notify_user(self, user_id: UUID, event: ServerEventName, data: dict) -> bool:
        """Best-effort emit: failures are logged and never reach the caller."""
        try:
            return self.emit_to_user(user_id, event, data)
        except Exception:
            logger.exception("Live notification %s to user %s failed", event.value, user_id)
            return False

    def deliver_message(self, message: MessageRead) -> bool:
        return self.notify_user(
            message.receiver_id,
            ServerEventName.MESSAGE_RECEIVED,
            message_received_payload(message),
        )

    def broadcast(self, event: ServerEventName, data: dict) -> None:
        for conn in self.connections():
            try:
                conn.send(event, data)
            except Exception:
                logger.exception("Broadcast of %s to %s failed", event.value, conn.id)

    def connections(self) -> List[LiveConnection]:
        with self._lock:
            return list(self._connections.values())

    def room_members(self, room_id: str) -> Set[str]:
        with self._lock:
            return set(self._rooms.get(room_id, ()))

    # ------------------------------------------------------------------

    def _broadcast_status(self, user_id: UUID, status: PresenceStatus) -> None:
        self.broadcast(
            ServerEventName.USER_STATUS,
            {"userId": str(user_id), "status": status.value},
        )

    def _is_principal(self, conn: LiveConnection, user_id: UUID) -> bool:
        if user_id != conn.principal_id:
            logger.warning(
                "Connection %s authenticated as %s tried to act as %s",
                conn.id,
                conn.principal_id,
                user_id,
            )
            return False
        return True

    def _fail(self, conn: LiveConnection, error: str) -> None:
        conn.send(ServerEventName.MESSAGE_FAILED, {"error": error})

    def _parse(
        self, conn: LiveConnection, model: Type[PayloadT], data: dict
    ) -> Optional[PayloadT]:
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("Invalid %s payload on connection %s: %s", model.__name__, conn.id, e)
            return None
