"""
In-app notification dispatcher for the Rapid Offer pipeline.

Stores one Notification row per recipient and pushes it to the recipient's
realtime room. Dispatch is fire-and-forget: failures are logged, never raised.
"""

import logging
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from api.realtime.connection_manager import ConnectionManager
from database.models import Notification
from database.repositories import NotificationRepository, UserRepository

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Routes notifications to users by role within a tenant."""

    def __init__(self, connections: Optional[ConnectionManager] = None):
        self.connections = connections

    async def notify_roles(
        self,
        session: AsyncSession,
        tenant_id: str,
        roles: Sequence[str],
        type: str,
        title: str,
        message: str,
        lead_id: Optional[str] = None,
    ) -> List[Notification]:
        created: List[Notification] = []
        try:
            async with session.begin_nested():
                users = await UserRepository(session).by_roles(tenant_id, roles)
                repo = NotificationRepository(session)
                for user in users:
                    created.append(await repo.create(
                        tenant_id=tenant_id,
                        user_id=user.id,
                        type=type,
                        title=title,
                        message=message,
                        lead_id=lead_id,
                    ))
        except Exception as e:
            logger.warning(f"Notification {type} for lead {lead_id} not stored: {e}")
            return []

        if self.connections:
            for notification in created:
                await self.connections.emit_to_user(notification.user_id, "notification:new", {
                    "id": notification.id,
                    "type": notification.type,
                    "title": notification.title,
                    "message": notification.message,
                    "lead_id": notification.lead_id,
                })
        logger.info(f"Notified {len(created)} user(s) ({', '.join(roles)}): {title}")
        return created
