"""
KPI Routes for the Rapid Offer pipeline.

Activity event logging, weekly dialer scorecards, offshore and closer
pipeline reports, closer KPIs and the routing SLA report.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from ..analytics.closer_kpi import closer_kpi_to_dict
from ..analytics.collector import PUBLIC_EVENT_TYPES, role_for_user
from ..analytics.reports import closer_pipeline_report, offshore_weekly
from ..analytics.scorecard import scorecard_to_dict
from ..errors import ValidationError
from ..middleware.auth import get_current_user, require_role, require_tenant
from ..services import get_services
from .common import load_lead, parse_date, target_user_id
from database.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()

manager_user = require_role("manager", "admin")


# ── Models ────────────────────────────────────────────────────────

class KpiEventRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_type: str
    lead_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ScorecardUpdateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    professionalism: Optional[int] = Field(default=None, ge=0, le=10)
    script_adherence: Optional[int] = Field(default=None, ge=0, le=20)
    manager_notes: Optional[str] = None
    manager_override_score: Optional[int] = Field(default=None, ge=0, le=100)
    recompute: bool = False


# ── Events ────────────────────────────────────────────────────────

@router.post("/event", status_code=status.HTTP_201_CREATED)
async def log_event(
    request: KpiEventRequest,
    user: Dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    """Log a dialer or closer activity event. A lead_id must be a lead of the caller's tenant."""
    if request.event_type not in PUBLIC_EVENT_TYPES:
        raise ValidationError(
            f"Invalid event_type: {request.event_type}. Must be one of: {', '.join(PUBLIC_EVENT_TYPES)}"
        )
    if request.lead_id:
        await load_lead(session, request.lead_id, user)

    event = await get_services().recorder.record(
        session, request.event_type, role_for_user(user),
        user_id=user.get("sub"), lead_id=request.lead_id, tenant_id=user.get("tenant_id"),
        metadata=request.metadata, strict=True,
    )
    return {
        "success": True,
        "event": {
            "id": event.id,
            "event_type": event.event_type,
            "role": event.role,
            "user_id": event.user_id,
            "lead_id": event.lead_id,
            "metadata": event.metadata_json,
            "created_at": event.created_at.isoformat() if event.created_at else None,
        },
    }


# ── Scorecards ────────────────────────────────────────────────────

@router.get("/dialer/weekly")
async def dialer_weekly(
    week_start: Optional[str] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
    user: Dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    """Weekly scorecard; computed on first read and stable afterwards."""
    tenant_id = require_tenant(user)
    target = target_user_id(user, user_id)
    scorecard = await get_services().scorecards.get_or_create(
        session, target, "dialer", parse_date(week_start, "week_start"), tenant_id=tenant_id,
    )
    return scorecard_to_dict(scorecard)


@router.put("/scorecard/{scorecard_id}")
async def update_scorecard(
    scorecard_id: str,
    request: ScorecardUpdateRequest,
    user: Dict = Depends(manager_user),
    session: AsyncSession = Depends(get_db),
):
    scorecard = await get_services().scorecards.update(
        session,
        scorecard_id,
        updated_by=user.get("sub"),
        professionalism=request.professionalism,
        script_adherence=request.script_adherence,
        manager_notes=request.manager_notes,
        manager_override_score=request.manager_override_score,
        recompute=request.recompute,
        tenant_id=require_tenant(user),
    )
    return scorecard_to_dict(scorecard)


# ── Reports ───────────────────────────────────────────────────────

@router.get("/offshore/weekly")
async def offshore_weekly_report(
    week_start: Optional[str] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
    user: Dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    tenant_id = require_tenant(user)
    target = target_user_id(user, user_id)
    return await offshore_weekly(session, target, parse_date(week_start, "week_start"), tenant_id=tenant_id)


@router.get("/closer/pipeline")
async def closer_pipeline(
    user: Dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    tenant_id = require_tenant(user)
    return await closer_pipeline_report(session, tenant_id)


@router.get("/closers")
async def closer_kpis(
    week_start: Optional[str] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
    user: Dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    """A closer's KPIs for the week, recomputed from events on read."""
    tenant_id = require_tenant(user)
    target = target_user_id(user, user_id)
    kpi = await get_services().closer_kpis.refresh(
        session, target, parse_date(week_start, "week_start"), tenant_id=tenant_id,
    )
    return closer_kpi_to_dict(kpi)


@router.get("/routing/performance")
async def routing_performance(
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
    user: Dict = Depends(manager_user),
    session: AsyncSession = Depends(get_db),
):
    tenant_id = require_tenant(user)
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")
    if start and end and start > end:
        raise ValidationError("start_date must be before end_date")
    return await get_services().routing_performance.report(session, tenant_id, start, end)
