"""
Live channel: one websocket per client at /ws.

Frames are JSON `{"event": ..., "data": {...}}`. See app.schemas.realtime for
the event names. Clients authenticate the handshake with the same Bearer token
the REST API takes, either as `?token=` or in the Authorization header.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, status

from app.auth.dependencies import decode_access_token
from app.core.dispatcher import RealtimeDispatcher
from app.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _bearer_token(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    if token:
        return token
    scheme, _, credentials = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


@router.websocket("/ws")
async def live_channel(websocket: WebSocket, token: Optional[str] = Query(None)) -> None:
    try:
        current_user = decode_access_token(_bearer_token(websocket, token))
    except AuthenticationError as e:
        logger.info("Rejected live connection: %s", e.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    dispatcher: RealtimeDispatcher = websocket.app.state.dispatcher
    await dispatcher.serve(websocket, current_user.id)
