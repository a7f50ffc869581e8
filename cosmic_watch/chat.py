"""Per-asteroid discussion rooms over WebSockets.

History lives in memory only: each room keeps its most recent messages and
everything is lost on restart.
"""

import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Set

from fastapi import WebSocket, WebSocketDisconnect

from cosmic_watch.schemas import ChatMessageIn

logger = logging.getLogger(__name__)


class ChatRelay:
    """Tracks live sockets, room membership and a bounded history per room."""

    def __init__(self, history_limit: int = 100):
        self.history_limit = history_limit
        self.active_connections: Set[WebSocket] = set()
        self._rooms: Dict[str, Deque[dict]] = {}
        self._members: Dict[str, Set[WebSocket]] = {}

    @property
    def connection_count(self) -> int:
        return len(self.active_connections)

    def history(self, asteroid_id: str) -> List[dict]:
        return list(self._rooms.get(asteroid_id, ()))

    def _room(self, asteroid_id: str) -> Deque[dict]:
        if asteroid_id not in self._rooms:
            self._rooms[asteroid_id] = deque(maxlen=self.history_limit)
        return self._rooms[asteroid_id]

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.add(websocket)

    def disconnect(self, websocket: WebSocket):
        """Forget a socket entirely: the global set and every room it was in."""
        self.active_connections.discard(websocket)
        for asteroid_id in list(self._members):
            self._remove_member(asteroid_id, websocket)

    def _remove_member(self, asteroid_id: str, websocket: WebSocket):
        members = self._members.get(asteroid_id)
        if members is None:
            return
        members.discard(websocket)
        # History stays for late joiners; only the empty member set goes
        if not members:
            del self._members[asteroid_id]

    async def join(self, websocket: WebSocket, asteroid_id: str):
        """Add a socket to a room, replay its history and tell the others."""
        self._room(asteroid_id)
        members = self._members.setdefault(asteroid_id, set())
        members.add(websocket)

        await websocket.send_json({"event": "room-messages", "data": self.history(asteroid_id)})
        await self._broadcast(
            asteroid_id,
            {"event": "user-joined", "data": _notice("A new user joined the discussion")},
            exclude=websocket,
        )

    async def leave(self, websocket: WebSocket, asteroid_id: str):
        self._remove_member(asteroid_id, websocket)
        await self._broadcast(
            asteroid_id,
            {"event": "user-left", "data": _notice("A user left the discussion")},
            exclude=websocket,
        )

    async def send_message(self, incoming: ChatMessageIn) -> dict:
        """Stamp, store and fan out a message to everyone in its room."""
        message = {
            "id": uuid.uuid4().hex,
            "asteroid_id": incoming.asteroid_id,
            "username": (incoming.username or "").strip() or "Anonymous",
            "avatar": incoming.avatar,
            "message": incoming.message,
            "timestamp": datetime.utcnow().isoformat(),
        }
        self._room(incoming.asteroid_id).append(message)
        await self._broadcast(incoming.asteroid_id, {"event": "new-message", "data": message})
        return message

    async def _broadcast(self, asteroid_id: str, payload: dict, exclude: WebSocket = None):
        for connection in list(self._members.get(asteroid_id, ())):
            if connection is exclude:
                continue
            try:
                await connection.send_json(payload)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"Dropping dead chat connection in room {asteroid_id}: {e!r}")
                self.disconnect(connection)


def _notice(text: str) -> dict:
    return {"message": text, "timestamp": datetime.utcnow().isoformat()}
