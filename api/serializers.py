"""
Lead serialization for API responses and realtime payloads.

The dialer view masks skip-trace contact data down to counts; the closer
view carries everything.
"""

from datetime import datetime
from typing import Any, Dict, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def score_badge(lead) -> Dict[str, Any]:
    return {"score": lead.score, "grade": lead.grade, "has_score": lead.score is not None}


def routing_badge(lead) -> Dict[str, Any]:
    return {
        "route": lead.route,
        "priority_level": lead.priority_level,
        "routing_reasons": list(lead.routing_reasons or []),
        "routed_at": _iso(lead.routed_at),
        "sla_hours": lead.sla_hours,
    }


def masked_skip_trace(lead) -> Dict[str, Any]:
    skip_trace = lead.skip_trace or {}
    return {
        "skip_trace_status": skip_trace.get("status", "not_requested"),
        "phone_count": len(skip_trace.get("phones") or []),
        "email_count": len(skip_trace.get("emails") or []),
    }


def lead_to_dict(lead, view: str = "dialer") -> Dict[str, Any]:
    """Serialize a lead. view is "dialer" (masked) or "closer" (full)."""
    data = {
        "id": lead.id,
        "tenant_id": lead.tenant_id,
        "source": lead.source,
        "owner_name": lead.owner_name,
        "property_address": lead.property_address,
        "city": lead.city,
        "state": lead.state,
        "zip_code": lead.zip_code,
        "county": lead.county,
        "property_type": lead.property_type,
        "beds": lead.beds,
        "baths": lead.baths,
        "sqft": lead.sqft,
        "year_built": lead.year_built,
        "asking_price": lead.asking_price,
        "arv": lead.arv,
        "description": lead.description,
        "notes": lead.notes,
        "status": lead.status,
        "lead_tier": lead.lead_tier,
        "tags": list(lead.tags or []),
        "next_follow_up": _iso(lead.next_follow_up),
        "dialer_intake": dict(lead.dialer_intake or {}),
        "intake_completed_at": _iso(lead.intake_completed_at),
        "intake_locked": bool(lead.intake_locked),
        "score_reasons": list(lead.score_reasons or []),
        "score_failed_checks": list(lead.score_failed_checks or []),
        "buy_box_id": lead.buy_box_id,
        "buy_box_label": lead.buy_box_label,
        "score_override": lead.score_override,
        "routing_override": lead.routing_override,
        "handoff_status": lead.handoff_status or "none",
        "handoff_summary": lead.handoff_summary,
        "missing_fields": list(lead.missing_fields or []),
        "escalated": bool(lead.escalated),
        "sent_to_closer_at": _iso(lead.sent_to_closer_at),
        "closer_requested_info_at": _iso(lead.closer_requested_info_at),
        "closer_requested_info_note": lead.closer_requested_info_note,
        "created_at": _iso(lead.created_at),
        "updated_at": _iso(lead.updated_at),
        "score_badge": score_badge(lead),
        "routing_badge": routing_badge(lead),
    }
    if view == "closer":
        data["closer"] = dict(lead.closer or {})
        data["skip_trace"] = dict(lead.skip_trace or {})
        data["cash_flow"] = lead.cash_flow
    else:
        data.update(masked_skip_trace(lead))
    return data
