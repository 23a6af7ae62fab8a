"""
Offshore weekly and closer pipeline reports.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from api.analytics.scorecard import week_start_for
from database.repositories import KpiEventRepository, LeadRepository


def offshore_counts(events: Iterable) -> Dict[str, int]:
    """Counts over events logged with offshore mode on."""
    counts = {"calls_made": 0, "conversations": 0, "intakes_completed": 0, "compliance_violations": 0}
    key_for = {
        "call_made": "calls_made",
        "conversation": "conversations",
        "intake_completed": "intakes_completed",
        "compliance_violation": "compliance_violations",
    }
    for event in events:
        if (event.metadata_json or {}).get("offshore_mode") is not True:
            continue
        key = key_for.get(event.event_type)
        if key:
            counts[key] += 1
    return counts


def closer_pipeline(leads: Iterable) -> Dict[str, Any]:
    pipeline = {
        "closer_review": 0,
        "offer_sent": 0,
        "contract_sent": 0,
        "under_contract": 0,
        "total_offer_value": 0.0,
    }
    for lead in leads:
        status = lead.handoff_status
        if status in pipeline:
            pipeline[status] += 1
        offer_amount = (lead.closer or {}).get("offer_amount")
        if offer_amount:
            pipeline["total_offer_value"] += offer_amount
    return pipeline


async def offshore_weekly(
    session: AsyncSession, user_id: str, week_start: Optional[datetime] = None,
    tenant_id: Optional[str] = None,
) -> Dict[str, Any]:
    start = week_start_for(week_start)
    end = start + timedelta(days=7)
    events = await KpiEventRepository(session).for_user_week(
        user_id, "dialer", start, end, tenant_id=tenant_id,
    )
    return {
        "user_id": user_id,
        "week_start": start.isoformat(),
        "week_end": end.isoformat(),
        **offshore_counts(events),
    }


async def closer_pipeline_report(session: AsyncSession, tenant_id: str) -> Dict[str, Any]:
    leads = await LeadRepository(session).in_handoff_pipeline(tenant_id)
    return closer_pipeline(leads)
