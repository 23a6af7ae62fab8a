"""
Real-time lead updates over WebSocket for the Rapid Offer pipeline.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from api.middleware.auth import decode_jwt_token
from api.realtime.connection_manager import (
    get_connection_manager, lead_room, role_room, tenant_room, user_room,
)
from database.repositories import LeadRepository
from database.session import get_session_factory

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])


async def _lead_in_tenant(lead_id: str, tenant_id: str) -> bool:
    async with get_session_factory()() as session:
        lead = await LeadRepository(session).get_by_id(lead_id, tenant_id)
        return lead is not None


@router.websocket("/ws/leads")
async def websocket_leads(websocket: WebSocket, token: Optional[str] = Query(default=None)):
    """
    WebSocket endpoint for lead events.

    Joins tenant, role and user rooms on connect.
    Receives: {"action": "join", "lead_id": "..."} or {"action": "ping"}
    Sends: {"event": "lead:updated"|"lead:routed"|"handoff:created"|..., "data": {...}}
    """
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        user = decode_jwt_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    tenant_id = user.get("tenant_id")
    if not tenant_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager = get_connection_manager()
    rooms = [tenant_room(tenant_id), role_room(user.get("role", "dialer"), tenant_id)]
    if user.get("sub"):
        rooms.append(user_room(user["sub"]))
    await manager.connect(websocket, rooms)

    try:
        while True:
            data = await websocket.receive_json()
            action = data.get("action")

            if action == "ping":
                await websocket.send_json({"event": "pong", "data": {}})
            elif action == "join":
                lead_id = data.get("lead_id")
                if lead_id and await _lead_in_tenant(lead_id, tenant_id):
                    manager.join(websocket, lead_room(lead_id))
                    await websocket.send_json({"event": "joined", "data": {"lead_id": lead_id}})
                else:
                    await websocket.send_json({"event": "error", "data": {"detail": "Lead not found"}})
            else:
                await websocket.send_json({"event": "error", "data": {"detail": f"Unknown action: {action}"}})

    except WebSocketDisconnect:
        manager.disconnect(websocket)
