"""Tests for RealtimeDispatcher driven through in-memory websockets."""

import asyncio
import json
from unittest.mock import patch
from uuid import uuid4

import pytest
from fastapi import WebSocketDisconnect

from app.core.dispatcher import RealtimeDispatcher
from app.core.presence import PresenceRegistry
from app.exceptions import PersistenceError
from app.schemas.realtime import ServerEventName
from app.services.conversation_service import ConversationService
from app.services.message_service import MessageService


class FakeWebSocket:
    """Just enough of starlette's WebSocket for the dispatcher."""

    def __init__(self):
        self.accepted = False
        self.sent = []
        self._incoming = asyncio.Queue()

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        self.sent.append(data)

    async def receive_text(self):
        item = await self._incoming.get()
        if item is None:
            raise WebSocketDisconnect(code=1000)
        return item

    def push(self, event, data):
        self.push_raw(json.dumps({"event": event, "data": data}))

    def push_raw(self, text):
        self._incoming.put_nowait(text)

    def hang_up(self):
        self._incoming.put_nowait(None)

    def events(self, name):
        return [f["data"] for f in self.sent if f["event"] == name]


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def live_dispatcher(session_factory):
    return RealtimeDispatcher(PresenceRegistry(), session_factory)


async def connect(dispatcher, user):
    """Open a connection whose handshake authenticated `user`."""
    ws = FakeWebSocket()
    task = asyncio.create_task(dispatcher.serve(ws, user.id))
    await wait_for(lambda: any(c.websocket is ws for c in dispatcher.connections()))
    conn = next(c for c in dispatcher.connections() if c.websocket is ws)
    return ws, conn, task


async def connect_as(dispatcher, user):
    ws, conn, task = await connect(dispatcher, user)
    ws.push("declare-online", {"userId": str(user.id)})
    await wait_for(lambda: dispatcher.presence.lookup(user.id) == conn.id)
    return ws, conn, task


async def hang_up(ws, task):
    ws.hang_up()
    await asyncio.wait_for(task, timeout=2.0)


@pytest.mark.asyncio
async def test_declare_online_registers_and_broadcasts(live_dispatcher, setup_user):
    ws, conn, task = await connect_as(live_dispatcher, setup_user)

    await wait_for(lambda: ws.events("user-status"))
    assert ws.events("user-status") == [
        {"userId": str(setup_user.id), "status": "online"}
    ]
    assert conn.is_bound
    await hang_up(ws, task)


@pytest.mark.asyncio
async def test_send_message_to_bound_receiver(
    live_dispatcher, db, setup_user, setup_peer_user
):
    ws_a, _, task_a = await connect_as(live_dispatcher, setup_user)
    ws_b, _, task_b = await connect_as(live_dispatcher, setup_peer_user)

    ws_a.push(
        "send-message",
        {
            "senderId": str(setup_user.id),
            "receiverId": str(setup_peer_user.id),
            "body": "hello",
            "propertyId": "listing-42",
        },
    )
    await wait_for(lambda: ws_a.events("message-accepted"))
    await wait_for(lambda: ws_b.events("message-received"))
    await asyncio.sleep(0.05)

    accepted = ws_a.events("message-accepted")
    received = ws_b.events("message-received")
    assert len(accepted) == 1
    assert len(received) == 1
    assert received[0]["messageId"] == accepted[0]["messageId"]
    assert received[0]["senderId"] == str(setup_user.id)
    assert received[0]["body"] == "hello"
    assert received[0]["propertyId"] == "listing-42"
    assert received[0]["timestamp"].endswith("+00:00")
    assert not ws_a.events("message-received")

    svc = MessageService(db)
    forward = svc.get_messages_between(setup_user.id, setup_peer_user.id)
    backward = svc.get_messages_between(setup_peer_user.id, setup_user.id)
    assert [m.id for m in forward] == [m.id for m in backward] == [
        accepted[0]["messageId"]
    ]
    assert forward[0].body == "hello"

    await hang_up(ws_a, task_a)
    await hang_up(ws_b, task_b)


@pytest.mark.asyncio
async def test_send_message_to_offline_receiver_is_persisted(
    live_dispatcher, db, setup_user, setup_peer_user
):
    ws_a, _, task_a = await connect_as(live_dispatcher, setup_user)

    ws_a.push(
        "send-message",
        {"receiverId": str(setup_peer_user.id), "body": "are you there?"},
    )
    await wait_for(lambda: ws_a.events("message-accepted"))

    conversations = ConversationService(db).list_conversations(setup_peer_user.id)
    assert len(conversations) == 1
    assert conversations[0].user.id == setup_user.id
    assert conversations[0].unread_count == 1
    assert conversations[0].last_message.body == "are you there?"
    await hang_up(ws_a, task_a)


@pytest.mark.asyncio
async def test_persistence_failure_emits_message_failed(
    live_dispatcher, db, setup_user, setup_peer_user
):
    ws_a, _, task_a = await connect_as(live_dispatcher, setup_user)
    ws_b, _, task_b = await connect_as(live_dispatcher, setup_peer_user)

    with patch.object(
        MessageService, "create_message", side_effect=PersistenceError()
    ):
        ws_a.push(
            "send-message",
            {"receiverId": str(setup_peer_user.id), "body": "lost"},
        )
        await wait_for(lambda: ws_a.events("message-failed"))

    await asyncio.sleep(0.05)
    assert not ws_a.events("message-accepted")
    assert not ws_b.events("message-received")
    assert MessageService(db).get_messages_between(setup_user.id, setup_peer_user.id) == []
    await hang_up(ws_a, task_a)
    await hang_up(ws_b, task_b)


@pytest.mark.asyncio
async def test_unbound_connection_cannot_send(
    live_dispatcher, setup_user, setup_peer_user
):
    ws, _, task = await connect(live_dispatcher, setup_user)
    ws.push("send-message", {"receiverId": str(setup_peer_user.id), "body": "hi"})
    await wait_for(lambda: ws.events("message-failed"))
    assert "online" in ws.events("message-failed")[0]["error"]
    await hang_up(ws, task)


@pytest.mark.asyncio
async def test_sender_must_match_bound_user(
    live_dispatcher, setup_user, setup_peer_user, setup_third_user
):
    ws, _, task = await connect_as(live_dispatcher, setup_user)
    ws.push(
        "send-message",
        {
            "senderId": str(setup_third_user.id),
            "receiverId": str(setup_peer_user.id),
            "body": "spoofed",
        },
    )
    await wait_for(lambda: ws.events("message-failed"))
    assert not ws.events("message-accepted")
    await hang_up(ws, task)


@pytest.mark.asyncio
async def test_empty_body_is_rejected(live_dispatcher, setup_user, setup_peer_user):
    ws, _, task = await connect_as(live_dispatcher, setup_user)
    ws.push("send-message", {"receiverId": str(setup_peer_user.id), "body": "   "})
    await wait_for(lambda: ws.events("message-failed"))
    await hang_up(ws, task)


@pytest.mark.asyncio
async def test_typing_is_forwarded_to_bound_receiver_only(
    live_dispatcher, setup_user, setup_peer_user, setup_third_user
):
    ws_a, _, task_a = await connect_as(live_dispatcher, setup_user)
    ws_b, _, task_b = await connect_as(live_dispatcher, setup_peer_user)

    ws_a.push("typing", {"receiverId": str(setup_third_user.id), "isTyping": True})
    ws_a.push("typing", {"receiverId": str(setup_peer_user.id), "isTyping": True})
    await wait_for(lambda: ws_b.events("typing"))

    assert ws_b.events("typing") == [
        {"senderId": str(setup_user.id), "isTyping": True}
    ]
    assert not ws_a.events("typing")
    await hang_up(ws_a, task_a)
    await hang_up(ws_b, task_b)


@pytest.mark.asyncio
async def test_disconnect_unregisters_and_broadcasts_offline(
    live_dispatcher, setup_user, setup_peer_user
):
    ws_a, _, task_a = await connect_as(live_dispatcher, setup_user)
    ws_b, _, task_b = await connect_as(live_dispatcher, setup_peer_user)

    await hang_up(ws_a, task_a)

    assert live_dispatcher.presence.lookup(setup_user.id) is None
    await wait_for(
        lambda: {"userId": str(setup_user.id), "status": "offline"}
        in ws_b.events("user-status")
    )
    await hang_up(ws_b, task_b)


@pytest.mark.asyncio
async def test_last_connect_wins(live_dispatcher, setup_user, setup_peer_user):
    ws_b, _, task_b = await connect_as(live_dispatcher, setup_peer_user)
    ws_1, conn_1, task_1 = await connect_as(live_dispatcher, setup_user)
    ws_2, conn_2, task_2 = await connect_as(live_dispatcher, setup_user)
    assert live_dispatcher.presence.lookup(setup_user.id) == conn_2.id

    await hang_up(ws_1, task_1)
    await asyncio.sleep(0.05)

    assert live_dispatcher.presence.lookup(setup_user.id) == conn_2.id
    offline = {"userId": str(setup_user.id), "status": "offline"}
    assert offline not in ws_b.events("user-status")
    await hang_up(ws_2, task_2)
    await hang_up(ws_b, task_b)


@pytest.mark.asyncio
async def test_declare_offline_keeps_connection_open(live_dispatcher, setup_user):
    ws, conn, task = await connect_as(live_dispatcher, setup_user)

    ws.push("declare-offline", {"userId": str(setup_user.id)})
    await wait_for(lambda: live_dispatcher.presence.lookup(setup_user.id) is None)
    await wait_for(
        lambda: {"userId": str(setup_user.id), "status": "offline"}
        in ws.events("user-status")
    )
    assert conn in live_dispatcher.connections()
    assert not task.done()
    await hang_up(ws, task)


@pytest.mark.asyncio
async def test_cannot_declare_presence_for_another_user(
    live_dispatcher, setup_user, setup_peer_user
):
    ws_b, conn_b, task_b = await connect_as(live_dispatcher, setup_peer_user)
    ws, conn, task = await connect(live_dispatcher, setup_user)

    ws.push("declare-online", {"userId": str(setup_peer_user.id)})
    ws.push("declare-offline", {"userId": str(setup_peer_user.id)})
    ws.push("join-room", {"roomId": "marker"})
    await wait_for(lambda: "marker" in conn.rooms)

    assert live_dispatcher.presence.lookup(setup_peer_user.id) == conn_b.id
    assert not conn.is_bound
    offline = {"userId": str(setup_peer_user.id), "status": "offline"}
    assert offline not in ws_b.events("user-status")
    await hang_up(ws, task)
    await hang_up(ws_b, task_b)


@pytest.mark.asyncio
async def test_rooms_do_not_affect_presence(live_dispatcher, setup_user):
    ws, conn, task = await connect_as(live_dispatcher, setup_user)

    ws.push("join-room", {"roomId": "listing-42"})
    await wait_for(lambda: live_dispatcher.room_members("listing-42") == {conn.id})
    ws.push("leave-room", {"roomId": "listing-42"})
    await wait_for(lambda: live_dispatcher.room_members("listing-42") == set())
    ws.push("join-room", {"roomId": "listing-7"})
    await wait_for(lambda: "listing-7" in conn.rooms)

    assert live_dispatcher.presence.lookup(setup_user.id) == conn.id
    await hang_up(ws, task)
    assert live_dispatcher.room_members("listing-7") == set()


@pytest.mark.asyncio
async def test_malformed_and_unknown_frames_are_ignored(live_dispatcher, setup_user):
    ws, conn, task = await connect(live_dispatcher, setup_user)
    ws.push_raw("not json")
    ws.push("shout", {"text": "?"})
    ws.push("declare-online", {"userId": "not-a-uuid"})
    ws.push("declare-online", {"userId": str(setup_user.id)})

    await wait_for(lambda: live_dispatcher.presence.lookup(setup_user.id) == conn.id)
    assert not task.done()
    await hang_up(ws, task)


@pytest.mark.asyncio
async def test_notify_from_worker_thread(live_dispatcher, setup_user):
    ws, _, task = await connect_as(live_dispatcher, setup_user)

    delivered = await asyncio.to_thread(
        live_dispatcher.notify_user,
        setup_user.id,
        ServerEventName.MESSAGES_READ,
        {"readByUserId": "someone"},
    )

    assert delivered is True
    await wait_for(lambda: ws.events("messages-read"))
    await hang_up(ws, task)


def test_notify_user_swallows_emit_errors(live_dispatcher):
    with patch.object(
        live_dispatcher, "emit_to_user", side_effect=RuntimeError("loop closed")
    ):
        assert (
            live_dispatcher.notify_user(
                uuid4(), ServerEventName.MESSAGE_DELETED, {"messageId": 1}
            )
            is False
        )


def test_notify_offline_user_returns_false(live_dispatcher):
    assert (
        live_dispatcher.notify_user(
            uuid4(), ServerEventName.MESSAGE_DELETED, {"messageId": 1}
        )
        is False
    )


@pytest.mark.asyncio
async def test_blank_property_id_is_stored_as_null(
    live_dispatcher, db, setup_user, setup_peer_user
):
    ws, _, task = await connect_as(live_dispatcher, setup_user)
    ws.push(
        "send-message",
        {"receiverId": str(setup_peer_user.id), "body": "hi", "propertyId": ""},
    )
    await wait_for(lambda: ws.events("message-accepted"))

    stored = MessageService(db).get_message(ws.events("message-accepted")[0]["messageId"])
    assert stored.property_id is None
    await hang_up(ws, task)
