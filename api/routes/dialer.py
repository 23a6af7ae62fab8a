"""
Dialer Routes for the Rapid Offer pipeline.

Queue, lead view, intake save and send-to-closer. Skip-trace contact data
is masked in every response from this router.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import GuardrailError, ValidationError
from ..handoff.manager import intake_is_complete
from ..middleware.auth import require_role, require_tenant
from ..queues.builder import build_dialer_queue
from ..serializers import lead_to_dict
from ..services import get_services
from .common import load_lead
from database.models import utcnow
from database.repositories import LeadRepository
from database.session import get_db
from lead_scoring.offer_lane import classify_offer_lane

logger = logging.getLogger(__name__)

router = APIRouter()

dialer_user = require_role("dialer", "manager", "admin")

CLOSER_ONLY_KEYS = {
    "offerAmount", "offer_amount",
    "offerSent", "offer_sent",
    "contractSent", "contract_sent",
    "underContract", "under_contract",
    "offerLaneFinal", "offer_lane_final",
    "closer",
}
CONDITION_TIERS = ("light", "medium", "heavy", "1", "2", "3", "4", "5")
LEAD_LEVEL_FIELDS = ("notes", "pitch_text", "status", "next_follow_up")


# ── Models ────────────────────────────────────────────────────────

class DialerIntakeUpdate(BaseModel):
    """Fields a dialer may write. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    property_address: Optional[str] = None
    property_type: Optional[str] = None
    occupancy_type: Optional[Literal["vacant", "owner", "tenant", "unknown"]] = None
    condition_tier: Optional[str] = None
    beds: Optional[float] = Field(default=None, ge=0)
    baths: Optional[float] = Field(default=None, ge=0)
    sqft: Optional[int] = Field(default=None, ge=0)
    year_built: Optional[int] = Field(default=None, ge=1700, le=2100)
    asking_price: Optional[float] = Field(default=None, ge=0)
    mortgage_free_and_clear: Optional[Literal["yes", "no", "unknown"]] = None
    mortgage_balance: Optional[float] = Field(default=None, ge=0)
    mortgage_monthly_payment: Optional[float] = Field(default=None, ge=0)
    mortgage_current: Optional[Literal["yes", "no", "unknown"]] = None
    motivation_rating: Optional[int] = Field(default=None, ge=1, le=5)
    timeline_to_close: Optional[str] = None
    seller_reason: Optional[str] = None
    seller_flexibility: Optional[Literal["price", "terms", "both", "unknown"]] = None
    red_flags: Optional[List[str]] = None
    dialer_confidence: Optional[int] = Field(default=None, ge=1, le=5)
    recording_disclosure_given: Optional[bool] = None
    offshore_mode_used: Optional[bool] = None
    estimated_rent: Optional[float] = Field(default=None, ge=0)
    estimated_rehab_cost: Optional[float] = Field(default=None, ge=0)
    annual_taxes: Optional[float] = Field(default=None, ge=0)
    annual_insurance: Optional[float] = Field(default=None, ge=0)

    # Lead-level fields, not stored in dialer_intake
    notes: Optional[str] = None
    pitch_text: Optional[str] = None
    status: Optional[Literal["new", "attempted", "contacted", "dead"]] = None
    next_follow_up: Optional[datetime] = None

    @field_validator("condition_tier", mode="before")
    @classmethod
    def _condition(cls, value):
        if value is None:
            return value
        text = str(value).strip().lower()
        if text not in CONDITION_TIERS:
            raise ValueError(f"condition_tier must be one of: {', '.join(CONDITION_TIERS)}")
        return text

    @field_validator("mortgage_free_and_clear", "mortgage_current", mode="before")
    @classmethod
    def _yes_no(cls, value):
        if isinstance(value, bool):
            return "yes" if value else "no"
        return value

    @field_validator("next_follow_up")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]):
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class SendToCloserRequest(BaseModel):
    escalate: Optional[Literal["high_priority"]] = None


def closer_only_keys(payload: Dict[str, Any]) -> List[str]:
    """Keys a dialer may never send: closer fields in any spelling."""
    found = []
    for key in payload:
        if (
            key in CLOSER_ONLY_KEYS
            or key.startswith("closer.")
            or key.startswith("closer_")
            or (key.startswith("closer") and key[6:7].isupper())
        ):
            found.append(key)
    return sorted(found)


# ── Endpoints ─────────────────────────────────────────────────────

@router.get("/queue")
async def dialer_queue(
    filter_name: Optional[str] = Query(
        default=None, alias="filter", description="new, follow-up, hot, needs-missing-data, escalated",
    ),
    user: Dict = Depends(dialer_user),
    session: AsyncSession = Depends(get_db),
):
    """Dialer work queue, highest priority first."""
    tenant_id = require_tenant(user)
    services = get_services()
    candidates = await LeadRepository(session).queue_candidates(tenant_id)
    leads = build_dialer_queue(
        candidates, filter_name=filter_name, page_size=services.settings.queue_page_size,
    )
    return {"leads": leads, "total": len(leads), "filter": filter_name}


@router.get("/leads/{lead_id}")
async def dialer_lead(
    lead_id: str,
    user: Dict = Depends(dialer_user),
    session: AsyncSession = Depends(get_db),
):
    lead = await load_lead(session, lead_id, user)
    return lead_to_dict(lead, view="dialer")


@router.post("/leads/{lead_id}/intake")
async def save_intake(
    lead_id: str,
    payload: Dict[str, Any] = Body(...),
    user: Dict = Depends(dialer_user),
    session: AsyncSession = Depends(get_db),
):
    """
    Merge allow-listed intake fields into the lead.

    Closer-only keys are rejected before validation so a dialer can never
    touch offer data, even with an otherwise valid body. A completed
    intake is stamped once and triggers scoring and routing.
    """
    services = get_services()
    lead = await load_lead(session, lead_id, user)

    forbidden = closer_only_keys(payload)
    if forbidden:
        logger.warning(f"Dialer {user.get('sub')} attempted closer fields on {lead_id}: {forbidden}")
        raise GuardrailError(f"Dialers cannot modify closer fields: {', '.join(forbidden)}")
    if lead.intake_locked:
        raise GuardrailError("Intake is locked after handoff to closer")

    try:
        update = DialerIntakeUpdate.model_validate(payload)
    except SchemaError as e:
        raise RequestValidationError(e.errors())

    fields = update.model_dump(exclude_unset=True)
    if fields.get("offshore_mode_used") and fields.get("pitch_text"):
        raise ValidationError("Offshore mode cannot be used with pitch text")

    intake = dict(lead.dialer_intake or {})
    intake.update({k: v for k, v in fields.items() if k not in LEAD_LEVEL_FIELDS})

    for name in ("notes", "status", "next_follow_up"):
        if name in fields:
            setattr(lead, name, fields[name])

    offshore_mode = bool(intake.get("offshore_mode_used"))
    user_id = user.get("sub")
    scanned = " ".join(
        str(text) for text in (fields.get("notes"), fields.get("seller_reason"), fields.get("pitch_text"))
        if text
    )
    compliance = services.compliance.check(scanned)
    if compliance.has_violations:
        flags = list(intake.get("compliance_flags") or [])
        flags.extend(v for v in compliance.violations if v not in flags)
        intake["compliance_flags"] = flags
        await services.recorder.record(
            session, "compliance_violation", "dialer",
            user_id=user_id, lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata={"violations": compliance.violations, "offshore_mode": offshore_mode},
        )
        logger.warning(f"Compliance violation on lead {lead.id}: {compliance.violations}")

    suggestion = classify_offer_lane(intake)
    if all(intake.get(k) is not None for k in ("mortgage_free_and_clear", "seller_flexibility", "motivation_rating")):
        intake["recommended_offer_lane"] = suggestion.suggestion.value

    lead.dialer_intake = intake

    if intake_is_complete(intake) and not lead.intake_completed_at:
        lead.intake_completed_at = utcnow()
        await services.recorder.record(
            session, "intake_completed", "dialer",
            user_id=user_id, lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata={"offshore_mode": offshore_mode},
        )

    await LeadRepository(session).save(lead)
    await services.pipeline.rescore_and_route(session, lead, user)
    await services.pipeline.emit(lead, "lead:updated")

    return {
        "success": True,
        "lead": lead_to_dict(lead, view="dialer"),
        "compliance": compliance.to_dict(),
        "offer_lane": suggestion.to_dict(),
    }


@router.post("/leads/{lead_id}/send-to-closer")
async def send_to_closer(
    lead_id: str,
    request: Optional[SendToCloserRequest] = None,
    user: Dict = Depends(dialer_user),
    session: AsyncSession = Depends(get_db),
):
    """Hand the lead to a closer. Incomplete intakes need escalate=high_priority."""
    services = get_services()
    lead = await load_lead(session, lead_id, user)
    escalate = request.escalate if request else None

    result = await services.handoff.send_to_closer(session, lead, user, escalate=escalate)
    await services.pipeline.route(session, lead, user)
    await services.pipeline.emit(lead, "handoff:created", result)

    return {"success": True, "lead": lead_to_dict(lead, view="dialer"), **result}
