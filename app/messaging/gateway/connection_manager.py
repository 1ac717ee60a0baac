"""In-process registry of chat sockets and the rooms they are subscribed to.

Membership lives in memory only and is dropped when a socket disconnects.
"""

from typing import Any
from uuid import UUID

import structlog
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

logger = structlog.get_logger(__name__)


def conversation_room(conversation_id: UUID | str) -> str:
    return f"conversation:{conversation_id}"


def user_room(user_id: UUID | str) -> str:
    return f"user:{user_id}"


class ConnectionManager:
    """Tracks sockets per room and fans out events to them."""

    def __init__(self) -> None:
        self.rooms: dict[str, set[WebSocket]] = {}
        self.memberships: dict[WebSocket, set[str]] = {}

    async def connect(self, websocket: WebSocket, user_id: UUID) -> None:
        await websocket.accept()
        self.memberships[websocket] = set()
        self.join(websocket, user_room(user_id))

    def disconnect(self, websocket: WebSocket) -> None:
        for room in self.memberships.pop(websocket, set()):
            members = self.rooms.get(room)
            if members is None:
                continue
            members.discard(websocket)
            if not members:
                del self.rooms[room]

    def join(self, websocket: WebSocket, room: str) -> None:
        self.rooms.setdefault(room, set()).add(websocket)
        self.memberships.setdefault(websocket, set()).add(room)

    def leave(self, websocket: WebSocket, room: str) -> None:
        members = self.rooms.get(room)
        if members is not None:
            members.discard(websocket)
            if not members:
                del self.rooms[room]
        self.memberships.get(websocket, set()).discard(room)

    def is_member(self, websocket: WebSocket, room: str) -> bool:
        return websocket in self.rooms.get(room, set())

    def room_size(self, room: str) -> int:
        return len(self.rooms.get(room, set()))

    async def send(self, websocket: WebSocket, payload: dict[str, Any]) -> bool:
        try:
            await websocket.send_json(jsonable_encoder(payload))
            return True
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.warning("chat_socket_send_failed", error=str(exc))
            self.disconnect(websocket)
            return False

    async def broadcast(
        self, room: str, payload: dict[str, Any], exclude: WebSocket | None = None
    ) -> int:
        """Send to every socket in ``room`` except ``exclude``; returns how many got it."""
        delivered = 0
        for websocket in list(self.rooms.get(room, set())):
            if websocket is exclude:
                continue
            if await self.send(websocket, payload):
                delivered += 1
        return delivered

    async def send_to_user(self, user_id: UUID, payload: dict[str, Any]) -> int:
        return await self.broadcast(user_room(user_id), payload)


chat_manager = ConnectionManager()
