"""
Dialer and closer work queues.

Pure functions over a candidate list: the repository supplies tenant-scoped
leads, these filter and order them. Sorting is a strict total order (lead id
is the last key), and the whole set is sorted before it is truncated.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from api.errors import ValidationError
from api.serializers import lead_to_dict
from lead_scoring.lead_router import PRIORITY_ORDER, ROUTE_ORDER

logger = logging.getLogger(__name__)

GRADE_ORDER = {"A": 1, "B": 2, "C": 3, "D": 4, "Dead": 5}

DIALER_HANDOFF_STATES = ("none", "back_to_dialer")

DIALER_FILTERS = ("new", "follow-up", "hot", "needs-missing-data", "escalated")
CLOSER_FILTERS = ("hot", "new", "offer-sent", "contract-sent")


def _handoff(lead) -> str:
    return lead.handoff_status or "none"


def _motivation(lead) -> int:
    value = (lead.dialer_intake or {}).get("motivation_rating")
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _desc_time(value: Optional[datetime]) -> float:
    return -value.timestamp() if value else float("inf")


def dialer_sort_key(lead) -> Tuple:
    """priority, route, grade, score desc, updated_at desc, id."""
    return (
        PRIORITY_ORDER.get(lead.priority_level or "normal", 3),
        ROUTE_ORDER.get(lead.route or "nurture", 3),
        GRADE_ORDER.get(lead.grade or "Dead", 5),
        -(lead.score or 0),
        _desc_time(lead.updated_at),
        lead.id,
    )


def closer_sort_key(lead) -> Tuple:
    """priority, sent_to_closer_at desc, id."""
    return (
        PRIORITY_ORDER.get(lead.priority_level or "normal", 3),
        _desc_time(lead.sent_to_closer_at),
        lead.id,
    )


def _dialer_predicate(filter_name: Optional[str], now: datetime) -> Callable[[Any], bool]:
    if filter_name in (None, ""):
        return lambda lead: not lead.intake_completed_at or _handoff(lead) == "back_to_dialer"
    if filter_name == "new":
        return lambda lead: not lead.intake_completed_at and _handoff(lead) in DIALER_HANDOFF_STATES
    if filter_name == "follow-up":
        return lambda lead: (
            lead.next_follow_up is not None
            and lead.next_follow_up <= now
            and _handoff(lead) in DIALER_HANDOFF_STATES
        )
    if filter_name == "hot":
        return lambda lead: _motivation(lead) >= 4 and _handoff(lead) in DIALER_HANDOFF_STATES
    if filter_name == "needs-missing-data":
        return lambda lead: _handoff(lead) == "back_to_dialer"
    if filter_name == "escalated":
        return lambda lead: _handoff(lead) == "closer_review"
    raise ValidationError(
        f"Invalid filter: {filter_name}. Must be one of: {', '.join(DIALER_FILTERS)}"
    )


def _in_base_set(lead, now: datetime) -> bool:
    return (lead.status or "new") == "new" or (
        lead.next_follow_up is not None and lead.next_follow_up <= now
    )


def build_dialer_queue(
    candidates: Iterable,
    filter_name: Optional[str] = None,
    now: Optional[datetime] = None,
    page_size: int = 100,
) -> List[Dict[str, Any]]:
    """Filter, sort and page the dialer queue; skip-trace data is masked."""
    now = now or datetime.utcnow()
    predicate = _dialer_predicate(filter_name, now)
    leads = [
        lead for lead in candidates
        if (lead.lead_tier or "warm") != "cold" and _in_base_set(lead, now) and predicate(lead)
    ]
    leads.sort(key=dialer_sort_key)
    return [lead_to_dict(lead, view="dialer") for lead in leads[:page_size]]


def _closer_predicate(filter_name: Optional[str]) -> Callable[[Any], bool]:
    if filter_name in (None, ""):
        return lambda lead: True
    if filter_name == "hot":
        return lambda lead: lead.route == "immediate_closer" and lead.priority_level == "urgent"
    if filter_name == "new":
        return lambda lead: _handoff(lead) == "closer_review"
    if filter_name == "offer-sent":
        return lambda lead: _handoff(lead) == "offer_sent"
    if filter_name == "contract-sent":
        return lambda lead: _handoff(lead) == "contract_sent"
    raise ValidationError(
        f"Invalid filter: {filter_name}. Must be one of: {', '.join(CLOSER_FILTERS)}"
    )


def build_closer_queue(
    candidates: Iterable,
    filter_name: Optional[str] = None,
    page_size: int = 100,
) -> List[Dict[str, Any]]:
    """Closer queue over leads in closer_review, offer_sent or contract_sent."""
    predicate = _closer_predicate(filter_name)
    leads = [
        lead for lead in candidates
        if _handoff(lead) in ("closer_review", "offer_sent", "contract_sent") and predicate(lead)
    ]
    leads.sort(key=closer_sort_key)
    return [lead_to_dict(lead, view="closer") for lead in leads[:page_size]]
