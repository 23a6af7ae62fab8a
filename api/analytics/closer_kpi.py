"""
Closer weekly KPIs.

Recomputed from the closer's KPI events for the week whenever a closer
action lands, and in bulk by the closer_kpi_refresh job.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from api.analytics.scorecard import week_start_for
from api.errors import GuardrailError
from database.models import CloserKPI, utcnow
from database.repositories import CloserKPIRepository, KpiEventRepository, LeadRepository

logger = logging.getLogger(__name__)

MAX_RESPONSE_HOURS = 168


def _asking_price(lead) -> Optional[float]:
    return (lead.dialer_intake or {}).get("asking_price") or lead.asking_price


def compute_closer_kpi(events: Iterable, leads: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Pure KPI math over one closer's events for a week.

    leads maps lead id to lead for every event that references one.
    """
    events = list(events)
    by_type: Dict[str, int] = {}
    for event in events:
        by_type[event.event_type] = by_type.get(event.event_type, 0) + 1

    offers_sent = by_type.get("offer_sent", 0)
    contracts_signed = by_type.get("contract_signed", 0)
    reviewed = {event.lead_id for event in events if event.lead_id}

    response_hours = []
    for event in events:
        lead = leads.get(event.lead_id) if event.lead_id else None
        if lead is None or event.event_type == "lead_routed":
            continue
        assigned = lead.sent_to_closer_at or lead.routed_at or lead.created_at
        if not assigned or not event.created_at:
            continue
        hours = (event.created_at - assigned).total_seconds() / 3600
        if 0 <= hours < MAX_RESPONSE_HOURS:
            response_hours.append(hours)

    spreads = []
    for event in events:
        if event.event_type != "offer_sent" or not event.lead_id:
            continue
        lead = leads.get(event.lead_id)
        offer_amount = (lead.closer or {}).get("offer_amount") if lead else None
        asking = _asking_price(lead) if lead else None
        if offer_amount and asking:
            spreads.append(asking - offer_amount)

    return {
        "leads_reviewed": len(reviewed),
        "offers_sent": offers_sent,
        "buyer_blasts_sent": by_type.get("buyer_blast_sent", 0),
        "contracts_sent": by_type.get("contract_sent", 0),
        "contracts_signed": contracts_signed,
        "avg_response_time_hours": (
            round(sum(response_hours) / len(response_hours), 1) if response_hours else None
        ),
        "conversion_rate": round(contracts_signed / len(reviewed) * 100) if reviewed else 0,
        "offer_to_contract_rate": round(contracts_signed / offers_sent * 100) if offers_sent else 0,
        "avg_deal_spread": round(sum(spreads) / len(spreads)) if spreads else None,
    }


def closer_kpi_to_dict(kpi: CloserKPI) -> Dict[str, Any]:
    return {
        "id": kpi.id,
        "user_id": kpi.user_id,
        "tenant_id": kpi.tenant_id,
        "week_start": kpi.week_start.isoformat(),
        "week_end": kpi.week_end.isoformat(),
        "leads_reviewed": kpi.leads_reviewed,
        "offers_sent": kpi.offers_sent,
        "buyer_blasts_sent": kpi.buyer_blasts_sent,
        "contracts_sent": kpi.contracts_sent,
        "contracts_signed": kpi.contracts_signed,
        "avg_response_time_hours": kpi.avg_response_time_hours,
        "conversion_rate": kpi.conversion_rate,
        "offer_to_contract_rate": kpi.offer_to_contract_rate,
        "avg_deal_spread": kpi.avg_deal_spread,
        "computed_at": kpi.computed_at.isoformat() if kpi.computed_at else None,
    }


class CloserKPIService:
    """Keeps the CloserKPI row for (closer, week) in step with events."""

    async def refresh(
        self,
        session: AsyncSession,
        user_id: str,
        week_start: Optional[datetime] = None,
        tenant_id: Optional[str] = None,
    ) -> CloserKPI:
        week_start = week_start_for(week_start)
        week_end = week_start + timedelta(days=7)

        repo = CloserKPIRepository(session)
        kpi = await repo.get_for_week(user_id, week_start)
        if kpi is not None and tenant_id is not None and kpi.tenant_id != tenant_id:
            raise GuardrailError("Closer KPIs belong to another tenant")

        events = await KpiEventRepository(session).for_user_week(
            user_id, "closer", week_start, week_end, tenant_id=tenant_id,
        )
        leads = await LeadRepository(session).get_many({e.lead_id for e in events if e.lead_id})
        values = compute_closer_kpi(events, leads)

        if kpi is None:
            kpi = CloserKPI(user_id=user_id, tenant_id=tenant_id, week_start=week_start, week_end=week_end)
        for key, value in values.items():
            setattr(kpi, key, value)
        kpi.computed_at = utcnow()
        await repo.save(kpi)
        logger.info(f"Closer KPI refreshed for {user_id} week {week_start.date()}")
        return kpi

    async def refresh_quietly(
        self, session: AsyncSession, user_id: Optional[str], tenant_id: Optional[str] = None
    ) -> Optional[CloserKPI]:
        """Refresh after a closer action; failures are logged."""
        if not user_id:
            return None
        try:
            async with session.begin_nested():
                return await self.refresh(session, user_id, tenant_id=tenant_id)
        except Exception as e:
            logger.error(f"Closer KPI refresh failed for {user_id}: {e}")
            return None
