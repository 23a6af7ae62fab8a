"""
KPI event recorder for the Rapid Offer pipeline.

Appends KPI events to the database and mirrors them into Prometheus counters.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from api.middleware.metrics import record_kpi_event
from database.models import KpiEvent
from database.repositories import KpiEventRepository

logger = logging.getLogger(__name__)

PUBLIC_EVENT_TYPES = (
    "call_made",
    "conversation",
    "intake_completed",
    "handoff_sent",
    "followup_done",
    "offer_sent",
    "contract_sent",
    "compliance_violation",
)

INTERNAL_EVENT_TYPES = PUBLIC_EVENT_TYPES + (
    "contract_signed",
    "buyer_blast_sent",
    "score_override",
    "score_calculated",
    "lead_routed",
    "routing_override",
    "closer_first_action",
    "skip_trace_completed",
)


def role_for_user(user: Optional[Dict[str, Any]]) -> str:
    """KPI role of an actor: closers log as closer, everyone else as dialer."""
    if not user:
        return "system"
    return "closer" if user.get("role") == "closer" else "dialer"


class KpiRecorder:
    """Collects and records KPI events."""

    async def record(
        self,
        session: AsyncSession,
        event_type: str,
        role: str,
        user_id: Optional[str] = None,
        lead_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        strict: bool = False,
    ) -> Optional[KpiEvent]:
        """
        Append an event.

        Side-effect logging never fails the caller; with strict=True (the
        public KPI endpoint) errors propagate instead.
        """
        if event_type not in INTERNAL_EVENT_TYPES:
            raise ValueError(f"Unknown KPI event type: {event_type}")

        try:
            async with session.begin_nested():
                event = await KpiEventRepository(session).append(
                    event_type=event_type,
                    role=role,
                    user_id=user_id,
                    lead_id=lead_id,
                    tenant_id=tenant_id,
                    metadata=metadata,
                )
        except Exception as e:
            if strict:
                raise
            logger.warning(f"KPI event {event_type} for lead {lead_id} not recorded: {e}")
            return None

        record_kpi_event(event_type, role)
        logger.debug(f"KPI: {event_type} role={role} user={user_id} lead={lead_id}")
        return event
