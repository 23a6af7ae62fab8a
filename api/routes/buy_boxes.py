"""
Buy Box Routes for the Rapid Offer pipeline.

A buy box is a tenant's acquisition criteria for one market; leads are
scored against the active boxes of their market.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import require_role, require_tenant
from database.models import BuyBox
from database.repositories import BuyBoxRepository
from database.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()

manager_user = require_role("manager", "admin")


# ── Models ────────────────────────────────────────────────────────

class BuyBoxCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    market_key: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    property_types: List[str] = Field(default_factory=list)
    min_beds: Optional[float] = Field(default=None, ge=0)
    min_baths: Optional[float] = Field(default=None, ge=0)
    min_sqft: Optional[int] = Field(default=None, ge=0)
    min_year_built: Optional[int] = None
    condition_allowed: List[str] = Field(default_factory=list)
    buy_price_min: float = Field(..., ge=0)
    buy_price_max: float = Field(..., ge=0)
    arv_min: Optional[float] = Field(default=None, ge=0)
    arv_max: Optional[float] = Field(default=None, ge=0)
    counties: List[str] = Field(default_factory=list)
    city_overrides: Dict[str, Any] = Field(default_factory=dict)
    exclusions: List[str] = Field(default_factory=list)
    strategy: Literal["flip", "buy_hold", "commercial", "wholesale", "other"] = "flip"
    requires_positive_cash_flow: bool = False
    cash_flow_config: Dict[str, Any] = Field(default_factory=dict)
    active: bool = True

    @model_validator(mode="after")
    def _ranges(self):
        if self.buy_price_min > self.buy_price_max:
            raise ValueError("buy_price_min must not exceed buy_price_max")
        if self.arv_min is not None and self.arv_max is not None and self.arv_min > self.arv_max:
            raise ValueError("arv_min must not exceed arv_max")
        self.market_key = self.market_key.strip().upper()
        return self


def buy_box_to_dict(box: BuyBox) -> Dict[str, Any]:
    return {
        "id": box.id,
        "tenant_id": box.tenant_id,
        "market_key": box.market_key,
        "label": box.label,
        "property_types": list(box.property_types or []),
        "min_beds": box.min_beds,
        "min_baths": box.min_baths,
        "min_sqft": box.min_sqft,
        "min_year_built": box.min_year_built,
        "condition_allowed": list(box.condition_allowed or []),
        "buy_price_min": box.buy_price_min,
        "buy_price_max": box.buy_price_max,
        "arv_min": box.arv_min,
        "arv_max": box.arv_max,
        "counties": list(box.counties or []),
        "city_overrides": dict(box.city_overrides or {}),
        "exclusions": list(box.exclusions or []),
        "strategy": box.strategy,
        "requires_positive_cash_flow": bool(box.requires_positive_cash_flow),
        "cash_flow_config": dict(box.cash_flow_config or {}),
        "active": bool(box.active),
        "created_at": box.created_at.isoformat() if box.created_at else None,
    }


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/buy-boxes", status_code=status.HTTP_201_CREATED)
async def create_buy_box(
    request: BuyBoxCreate,
    user: Dict = Depends(manager_user),
    session: AsyncSession = Depends(get_db),
):
    tenant_id = require_tenant(user)
    box = await BuyBoxRepository(session).create(tenant_id=tenant_id, **request.model_dump())
    logger.info(f"Buy box {box.id} created for {box.market_key} by {user.get('sub')}")
    return buy_box_to_dict(box)


@router.get("/buy-boxes")
async def list_buy_boxes(
    active_only: bool = Query(default=False),
    user: Dict = Depends(manager_user),
    session: AsyncSession = Depends(get_db),
):
    tenant_id = require_tenant(user)
    boxes = await BuyBoxRepository(session).list_for_tenant(tenant_id, active_only=active_only)
    return {"buy_boxes": [buy_box_to_dict(box) for box in boxes], "total": len(boxes)}
