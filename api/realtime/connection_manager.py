"""
WebSocket Connection Manager for the Rapid Offer pipeline.

Tracks active WebSocket connections in named rooms (tenant:{id}, role:{tenant}:{role},
user:{sub}, lead:{id}) and pushes lead events to them.
"""

import logging
from typing import Any, Dict, Iterable, List

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def tenant_room(tenant_id: str) -> str:
    return f"tenant:{tenant_id}"


def role_room(role: str, tenant_id: str) -> str:
    """Role rooms are tenant-scoped so lead payloads never cross tenants."""
    return f"role:{tenant_id}:{role}"


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def lead_room(lead_id: str) -> str:
    return f"lead:{lead_id}"


class ConnectionManager:
    """Manages active WebSocket connections by room."""

    def __init__(self):
        self._rooms: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, rooms: Iterable[str]):
        """Accept and register a WebSocket connection in its initial rooms."""
        await websocket.accept()
        for room in rooms:
            self.join(websocket, room)
        logger.info(f"WS connected (total: {self.active_count})")

    def join(self, websocket: WebSocket, room: str):
        members = self._rooms.setdefault(room, [])
        if websocket not in members:
            members.append(websocket)

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection from every room."""
        for room in list(self._rooms.keys()):
            self._rooms[room] = [ws for ws in self._rooms[room] if ws != websocket]
            if not self._rooms[room]:
                del self._rooms[room]
        logger.info("WS disconnected")

    async def emit_to_rooms(self, rooms: Iterable[str], event: str, payload: Dict[str, Any]):
        """Send an event once to every connection in any of the rooms. Never raises."""
        message = {"event": event, "data": payload}
        targets: List[WebSocket] = []
        for room in rooms:
            for ws in self._rooms.get(room, []):
                if ws not in targets:
                    targets.append(ws)

        dead = []
        for ws in targets:
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.warning(f"WS emit {event} failed: {e}")
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    async def emit_to_room(self, room: str, event: str, payload: Dict[str, Any]):
        await self.emit_to_rooms([room], event, payload)

    async def emit_to_user(self, user_id: str, event: str, payload: Dict[str, Any]):
        await self.emit_to_room(user_room(user_id), event, payload)

    async def emit_lead_event(
        self, tenant_id: str, lead_id: str, event: str, payload: Dict[str, Any],
        roles: Iterable[str] = ("dialer", "closer", "manager", "admin"),
    ):
        """Tenant, role and lead rooms; each socket gets one copy."""
        rooms = [tenant_room(tenant_id)]
        rooms.extend(role_room(role, tenant_id) for role in roles)
        rooms.append(lead_room(lead_id))
        await self.emit_to_rooms(rooms, event, payload)

    @property
    def active_count(self) -> int:
        return len({id(ws) for members in self._rooms.values() for ws in members})


# Singleton
_manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    return _manager
