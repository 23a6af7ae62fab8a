"""
Lead Management API Routes for the Rapid Offer pipeline.

Bulk ingestion with natural-key dedupe, and manual rescoring.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import require_role, require_tenant
from ..serializers import lead_to_dict
from ..services import get_services
from .common import load_lead
from database.repositories import LeadRepository
from database.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()

manager_user = require_role("manager", "admin")


# ── Models ────────────────────────────────────────────────────────

class LeadIngestItem(BaseModel):
    """One lead row from a list provider or CRM export."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source: Literal["probate", "code_violation", "preforeclosure", "tax_lien", "other"] = "other"
    owner_name: Optional[str] = None
    property_address: str = Field(..., min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    county: Optional[str] = None
    property_type: Optional[str] = None
    beds: Optional[float] = Field(default=None, ge=0)
    baths: Optional[float] = Field(default=None, ge=0)
    sqft: Optional[int] = Field(default=None, ge=0)
    year_built: Optional[int] = None
    asking_price: Optional[float] = Field(default=None, ge=0)
    arv: Optional[float] = Field(default=None, ge=0)
    delinquent_amount: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    next_follow_up: Optional[datetime] = None

    @field_validator("next_follow_up")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]):
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class LeadIngestRequest(BaseModel):
    leads: List[LeadIngestItem] = Field(..., min_length=1)


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/leads/ingest")
async def ingest_leads(
    request: LeadIngestRequest,
    user: Dict = Depends(manager_user),
    session: AsyncSession = Depends(get_db),
):
    """
    Create leads, skipping any whose address/owner/county key already
    exists for the tenant. Every created lead is scored and routed.
    """
    tenant_id = require_tenant(user)
    services = get_services()
    repo = LeadRepository(session)

    created: List[Dict[str, Any]] = []
    duplicates: List[Dict[str, Any]] = []
    for index, item in enumerate(request.leads):
        lead = await repo.create_if_absent(tenant_id, **item.model_dump())
        if lead is None:
            duplicates.append({"index": index, "property_address": item.property_address})
            continue
        await services.pipeline.rescore_and_route(session, lead, user)
        created.append({"index": index, "id": lead.id, "grade": lead.grade, "route": lead.route})

    logger.info(
        f"Ingest for tenant {tenant_id}: {len(created)} created, {len(duplicates)} duplicate(s)"
    )
    return {
        "success": True,
        "created": len(created),
        "duplicates": len(duplicates),
        "leads": created,
        "duplicate_rows": duplicates,
    }


@router.post("/leads/{lead_id}/rescore")
async def rescore_lead(
    lead_id: str,
    user: Dict = Depends(manager_user),
    session: AsyncSession = Depends(get_db),
):
    services = get_services()
    lead = await load_lead(session, lead_id, user)
    await services.pipeline.rescore_and_route(session, lead, user)
    await services.pipeline.emit(lead, "lead:updated")
    return {"success": True, "lead": lead_to_dict(lead, view="closer")}
