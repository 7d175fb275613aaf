"""
In-memory presence: which user currently owns which live connection.

Nothing here is persisted. After a restart the table is empty and every user
is offline until their client connects and declares itself again.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional
from uuid import UUID


class PresenceRegistry:
    """
    Maps user id -> connection id, at most one entry per user.

    Registering a user that already has an entry replaces it (last connect
    wins). Access is serialized with a lock because REST handlers run in the
    threadpool while live-channel handlers run on the event loop.
    """

    def __init__(self) -> None:
        self._connections: Dict[UUID, str] = {}
        self._lock = threading.Lock()

    def register(self, user_id: UUID, connection_id: str) -> None:
        with self._lock:
            self._connections[user_id] = connection_id

    def unregister(self, user_id: UUID) -> bool:
        """Remove the user's entry. Returns False when there was none."""
        with self._lock:
            return self._connections.pop(user_id, None) is not None

    def unregister_by_connection(self, connection_id: str) -> Optional[UUID]:
        """Remove the entry pointing at `connection_id`, returning its user id."""
        with self._lock:
            for user_id, current in self._connections.items():
                if current == connection_id:
                    del self._connections[user_id]
                    return user_id
        return None

    def lookup(self, user_id: UUID) -> Optional[str]:
        with self._lock:
            return self._connections.get(user_id)

    def online_user_ids(self) -> List[UUID]:
        with self._lock:
            return list(self._connections)
