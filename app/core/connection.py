from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Optional, Set
from uuid import UUID

from fastapi import WebSocket, WebSocketDisconnect

from app.schemas.realtime import Envelope

logger = logging.getLogger(__name__)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class LiveConnection:
    """
    One accepted websocket.

    Outbound frames are queued and written by a single writer task, so frames
    reach the client in the order `send` was called. `send` never blocks and
    may be called from any thread.
    """

    def __init__(self, websocket: WebSocket, principal_id: UUID) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        # Identity proven by the handshake token; only this user may be declared.
        self.principal_id = principal_id
        self.user_id: Optional[UUID] = None
        self.rooms: Set[str] = set()
        self.closed = False
        self._loop = asyncio.get_running_loop()
        self._outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None

    @property
    def is_bound(self) -> bool:
        return self.user_id is not None

    def start(self) -> None:
        self._writer = self._loop.create_task(
            self._drain(), name=f"live-connection-writer-{self.id}"
        )

    def send(self, event: str | Enum, data: dict[str, Any]) -> None:
        if self.closed:
            logger.debug("Dropping %s for closed connection %s", event, self.id)
            return
        name = event.value if isinstance(event, Enum) else event
        frame = Envelope(event=name, data=data).model_dump(mode="json")
        if _running_loop() is self._loop:
            self._outbox.put_nowait(frame)
        else:
            self._loop.call_soon_threadsafe(self._outbox.put_nowait, frame)

    async def _drain(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await self.websocket.send_json(frame)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.info("Writer for connection %s stopped: %s", self.id, e)
                self.closed = True
                return

    def close(self) -> None:
        """Stop the writer. Frames still queued are dropped."""
        self.closed = True
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
