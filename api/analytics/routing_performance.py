"""
Routing SLA performance report.

A-grade leads routed to immediate_closer are measured to the first closer
action; B-grade leads routed to dialer_priority are measured to intake
completion. Leads with no qualifying action count as missed.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import get_settings
from database.models import utcnow
from database.repositories import KpiEventRepository, LeadRepository

logger = logging.getLogger(__name__)


def _parse(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def first_closer_action(lead) -> Optional[datetime]:
    """Earliest of offer sent, contract sent, sent to closer that is not before routing."""
    closer = lead.closer or {}
    candidates = [
        _parse(closer.get("offer_sent_at")),
        _parse(closer.get("contract_sent_at")),
        lead.sent_to_closer_at,
    ]
    qualifying = [c for c in candidates if c is not None and c >= lead.routed_at]
    return min(qualifying) if qualifying else None


def first_dialer_action(lead) -> Optional[datetime]:
    if lead.intake_completed_at and lead.intake_completed_at >= lead.routed_at:
        return lead.intake_completed_at
    return None


def measure_lead(lead, first_action: Optional[datetime], default_sla_hours: int) -> Dict[str, Any]:
    sla_hours = lead.sla_hours or default_sla_hours
    if first_action is None:
        return {
            "lead_id": lead.id,
            "time_to_first_action": None,
            "sla_hours": sla_hours,
            "within_sla": False,
            "missed": True,
        }
    minutes = round((first_action - lead.routed_at).total_seconds() / 60)
    return {
        "lead_id": lead.id,
        "time_to_first_action": minutes,
        "sla_hours": sla_hours,
        "within_sla": minutes <= sla_hours * 60,
        "missed": False,
    }


def aggregate(details: List[Dict[str, Any]]) -> Dict[str, Any]:
    with_action = [d for d in details if not d["missed"]]
    within = [d for d in with_action if d["within_sla"]]
    total = len(details)
    return {
        "total": total,
        "with_action": len(with_action),
        "missed": total - len(with_action),
        "within_sla": len(within),
        "avg_minutes_to_action": (
            round(sum(d["time_to_first_action"] for d in with_action) / len(with_action), 1)
            if with_action else None
        ),
        "sla_compliance_pct": round(len(within) / total * 100, 1) if total else 0.0,
        "details": details,
    }


def summarize_routing_performance(
    leads: Iterable,
    override_events: Iterable = (),
    sla_a_hours: int = 2,
    sla_b_hours: int = 24,
) -> Dict[str, Any]:
    """Pure report over leads routed inside the window."""
    a_details, b_details = [], []
    for lead in leads:
        if not lead.routed_at:
            continue
        if lead.grade == "A" and lead.route == "immediate_closer":
            a_details.append(measure_lead(lead, first_closer_action(lead), sla_a_hours))
        elif lead.grade == "B" and lead.route == "dialer_priority":
            b_details.append(measure_lead(lead, first_dialer_action(lead), sla_b_hours))

    overrides: Dict[str, int] = {}
    override_events = list(override_events)
    for event in override_events:
        actor = event.user_id or "system"
        overrides[actor] = overrides.get(actor, 0) + 1

    return {
        "a_grade": aggregate(a_details),
        "b_grade": aggregate(b_details),
        "routing_overrides": {"total": len(override_events), "by_user": overrides},
    }


class RoutingPerformanceService:
    async def report(
        self,
        session: AsyncSession,
        tenant_id: Optional[str],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        settings = get_settings()
        end = end or utcnow()
        start = start or end - timedelta(days=settings.routing_performance_default_days)

        leads = await LeadRepository(session).routed_between(tenant_id, start, end)
        overrides = await KpiEventRepository(session).of_type_between(
            "routing_override", start, end, tenant_id=tenant_id
        )
        report = summarize_routing_performance(
            leads, overrides, sla_a_hours=settings.sla_hours_a, sla_b_hours=settings.sla_hours_b
        )
        report["period"] = {"start": start.isoformat(), "end": end.isoformat()}
        logger.info(f"Routing performance report: {len(leads)} lead(s) in window")
        return report
