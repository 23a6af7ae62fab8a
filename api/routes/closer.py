"""
Closer Routes for the Rapid Offer pipeline.

Closer queue and lead view (full skip trace), request-info, offer terms,
the offer/contract state moves, and score/routing overrides.
"""

import logging
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import GuardrailError
from ..handoff.manager import CLOSER_PIPELINE, HandoffStatus
from ..middleware.auth import require_role, require_tenant
from ..queues.builder import build_closer_queue
from ..serializers import lead_to_dict
from ..services import get_services
from .common import load_lead
from database.models import Lead
from database.repositories import KpiEventRepository, LeadRepository
from database.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()

closer_user = require_role("closer", "manager", "admin")
manager_user = require_role("manager", "admin")

CLOSER_ACTION_EVENTS = ("offer_sent", "contract_sent", "contract_signed", "closer_first_action")


# ── Models ────────────────────────────────────────────────────────

class CloserOfferUpdate(BaseModel):
    """Fields a closer may write. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    offer_lane_final: Optional[Literal["cash", "subto", "sellerfinance", "novation", "leaseoption"]] = None
    offer_terms_summary: Optional[str] = None
    offer_amount: Optional[float] = Field(default=None, ge=0)
    loi_options: Optional[List[str]] = None
    followup_schedule: Optional[str] = None
    disposition: Optional[Literal["contract_sent", "negotiating", "dead", "followup"]] = None


class RequestInfoRequest(BaseModel):
    note: Optional[str] = None


class ScoreOverrideRequest(BaseModel):
    grade: Optional[str] = None
    reason: Optional[str] = None


class RoutingOverrideRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    route: Optional[str] = None
    priority_level: Optional[str] = None
    reason: Optional[str] = None


# ── Helpers ───────────────────────────────────────────────────────

async def _note_first_action(session: AsyncSession, lead: Lead, user: Dict):
    """Log closer_first_action once for an A-grade lead routed straight to a closer."""
    if lead.grade != "A" or lead.route != "immediate_closer":
        return
    prior = await KpiEventRepository(session).count_for_lead(lead.id, "closer", CLOSER_ACTION_EVENTS)
    if prior:
        return
    await get_services().recorder.record(
        session, "closer_first_action", "closer",
        user_id=user.get("sub"), lead_id=lead.id, tenant_id=lead.tenant_id,
        metadata={"routed_at": lead.routed_at.isoformat() if lead.routed_at else None},
    )


async def _advance(session: AsyncSession, lead_id: str, target: HandoffStatus, user: Dict) -> Dict:
    services = get_services()
    lead = await load_lead(session, lead_id, user)
    await _note_first_action(session, lead, user)
    await services.handoff.advance(session, lead, target, user)
    await services.closer_kpis.refresh_quietly(session, user.get("sub"), lead.tenant_id)
    await services.pipeline.route(session, lead, user)
    await services.pipeline.emit(lead, "lead:updated")
    return {"success": True, "lead": lead_to_dict(lead, view="closer")}


# ── Endpoints ─────────────────────────────────────────────────────

@router.get("/queue")
async def closer_queue(
    filter_name: Optional[str] = Query(
        default=None, alias="filter", description="hot, new, offer-sent, contract-sent",
    ),
    user: Dict = Depends(closer_user),
    session: AsyncSession = Depends(get_db),
):
    tenant_id = require_tenant(user)
    services = get_services()
    candidates = await LeadRepository(session).closer_candidates(tenant_id)
    leads = build_closer_queue(
        candidates, filter_name=filter_name, page_size=services.settings.queue_page_size,
    )
    return {"leads": leads, "total": len(leads), "filter": filter_name}


@router.get("/leads/{lead_id}")
async def closer_lead(
    lead_id: str,
    user: Dict = Depends(closer_user),
    session: AsyncSession = Depends(get_db),
):
    lead = await load_lead(session, lead_id, user)
    return lead_to_dict(lead, view="closer")


@router.post("/leads/{lead_id}/request-info")
async def request_info(
    lead_id: str,
    request: RequestInfoRequest,
    user: Dict = Depends(closer_user),
    session: AsyncSession = Depends(get_db),
):
    """Send the lead back to the dialer with a note; the intake unlocks."""
    services = get_services()
    lead = await load_lead(session, lead_id, user)
    await services.handoff.request_info(session, lead, user, request.note)
    await services.pipeline.route(session, lead, user)
    await services.pipeline.emit(lead, "lead:updated")
    return {"success": True, "lead": lead_to_dict(lead, view="closer")}


@router.post("/leads/{lead_id}/offer")
async def update_offer(
    lead_id: str,
    request: CloserOfferUpdate,
    user: Dict = Depends(closer_user),
    session: AsyncSession = Depends(get_db),
):
    services = get_services()
    lead = await load_lead(session, lead_id, user)
    if (lead.handoff_status or "none") not in CLOSER_PIPELINE:
        raise GuardrailError("Lead is not in the closer pipeline")

    await _note_first_action(session, lead, user)
    closer = dict(lead.closer or {})
    closer.update(request.model_dump(exclude_unset=True))
    lead.closer = closer
    await LeadRepository(session).save(lead)
    logger.info(f"Offer terms updated on lead {lead.id} by {user.get('sub')}")

    await services.pipeline.emit(lead, "lead:updated")
    return {"success": True, "lead": lead_to_dict(lead, view="closer")}


@router.post("/leads/{lead_id}/mark-offer-sent")
async def mark_offer_sent(
    lead_id: str,
    user: Dict = Depends(closer_user),
    session: AsyncSession = Depends(get_db),
):
    return await _advance(session, lead_id, HandoffStatus.OFFER_SENT, user)


@router.post("/leads/{lead_id}/mark-contract-sent")
async def mark_contract_sent(
    lead_id: str,
    user: Dict = Depends(closer_user),
    session: AsyncSession = Depends(get_db),
):
    return await _advance(session, lead_id, HandoffStatus.CONTRACT_SENT, user)


@router.post("/leads/{lead_id}/mark-under-contract")
async def mark_under_contract(
    lead_id: str,
    user: Dict = Depends(closer_user),
    session: AsyncSession = Depends(get_db),
):
    return await _advance(session, lead_id, HandoffStatus.UNDER_CONTRACT, user)


@router.post("/leads/{lead_id}/override-score")
async def override_score(
    lead_id: str,
    request: ScoreOverrideRequest,
    user: Dict = Depends(closer_user),
    session: AsyncSession = Depends(get_db),
):
    """Pin the grade; later rescoring keeps the pinned grade."""
    services = get_services()
    lead = await load_lead(session, lead_id, user)
    await services.pipeline.override_score(session, lead, request.grade, request.reason, user)
    return {"success": True, "lead": lead_to_dict(lead, view="closer")}


@router.post("/leads/{lead_id}/override-routing")
async def override_routing(
    lead_id: str,
    request: RoutingOverrideRequest,
    user: Dict = Depends(manager_user),
    session: AsyncSession = Depends(get_db),
):
    services = get_services()
    lead = await load_lead(session, lead_id, user)
    await services.pipeline.override_routing(
        session, lead, request.route, request.priority_level, request.reason, user,
    )
    return {"success": True, "lead": lead_to_dict(lead, view="closer")}
