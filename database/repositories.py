"""
Repository classes for the Rapid Offer data access layer.

Each repository encapsulates CRUD operations for a specific model.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Lead, KpiEvent, ScorecardWeekly, CloserKPI, BuyBox, ScoringConfig,
    User, Notification, utcnow,
)

logger = logging.getLogger(__name__)

ACTIVE_HANDOFF_STATUSES = ("closer_review", "offer_sent", "contract_sent", "under_contract")


def build_dedupe_key(address: Optional[str], owner: Optional[str], county: Optional[str]) -> str:
    """Natural key for a lead: normalized address|owner|county."""
    def norm(value: Optional[str]) -> str:
        return re.sub(r"\s+", " ", (value or "").strip().lower())
    return f"{norm(address)}|{norm(owner)}|{norm(county)}"


class LeadRepository:
    """Data access for leads."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, lead_id: str, tenant_id: Optional[str] = None) -> Optional[Lead]:
        q = select(Lead).where(Lead.id == lead_id)
        if tenant_id is not None:
            q = q.where(Lead.tenant_id == tenant_id)
        result = await self.session.execute(q)
        return result.scalar_one_or_none()

    async def create_if_absent(self, tenant_id: str, **fields) -> Optional[Lead]:
        """
        Insert a lead unless its natural key already exists for the tenant.

        The unique constraint decides; a conflict rolls back only the
        savepoint and returns None.
        """
        dedupe_key = build_dedupe_key(
            fields.get("property_address"), fields.get("owner_name"), fields.get("county"),
        )
        lead = Lead(tenant_id=tenant_id, dedupe_key=dedupe_key, **fields)
        try:
            async with self.session.begin_nested():
                self.session.add(lead)
        except IntegrityError:
            logger.info(f"Duplicate lead skipped: tenant={tenant_id} key={dedupe_key}")
            return None
        return lead

    async def save(self, lead: Lead) -> Lead:
        lead.updated_at = utcnow()
        self.session.add(lead)
        await self.session.flush()
        return lead

    async def queue_candidates(self, tenant_id: str) -> List[Lead]:
        """Tenant leads eligible for any work queue (never cold)."""
        result = await self.session.execute(
            select(Lead).where(
                Lead.tenant_id == tenant_id,
                or_(Lead.lead_tier.is_(None), Lead.lead_tier != "cold"),
            )
        )
        return list(result.scalars().all())

    async def closer_candidates(self, tenant_id: str) -> List[Lead]:
        result = await self.session.execute(
            select(Lead).where(
                Lead.tenant_id == tenant_id,
                Lead.handoff_status.in_(("closer_review", "offer_sent", "contract_sent")),
            )
        )
        return list(result.scalars().all())

    async def in_handoff_pipeline(self, tenant_id: str) -> List[Lead]:
        result = await self.session.execute(
            select(Lead).where(
                Lead.tenant_id == tenant_id,
                Lead.handoff_status.in_(ACTIVE_HANDOFF_STATUSES),
            )
        )
        return list(result.scalars().all())

    async def routed_between(
        self, tenant_id: Optional[str], start: datetime, end: datetime
    ) -> List[Lead]:
        q = select(Lead).where(Lead.routed_at >= start, Lead.routed_at <= end)
        if tenant_id is not None:
            q = q.where(Lead.tenant_id == tenant_id)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def needing_routing(self, limit: int = 500) -> List[Lead]:
        """Leads scored after their last routing (or never routed)."""
        result = await self.session.execute(
            select(Lead)
            .where(
                Lead.evaluated_at.is_not(None),
                or_(
                    Lead.routing_evaluated_at.is_(None),
                    Lead.evaluated_at > Lead.routing_evaluated_at,
                ),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_many(self, lead_ids: Sequence[str]) -> Dict[str, Lead]:
        if not lead_ids:
            return {}
        result = await self.session.execute(select(Lead).where(Lead.id.in_(list(lead_ids))))
        return {lead.id: lead for lead in result.scalars().all()}


class KpiEventRepository:
    """Append-only access to KPI events."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        event_type: str,
        role: str,
        user_id: Optional[str] = None,
        lead_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> KpiEvent:
        event = KpiEvent(
            event_type=event_type,
            role=role,
            user_id=user_id,
            lead_id=lead_id,
            tenant_id=tenant_id,
            metadata_json=metadata or {},
        )
        if created_at is not None:
            event.created_at = created_at
        self.session.add(event)
        await self.session.flush()
        return event

    async def for_user_week(
        self, user_id: str, role: str, start: datetime, end: datetime,
        tenant_id: Optional[str] = None,
    ) -> List[KpiEvent]:
        q = select(KpiEvent).where(
            KpiEvent.user_id == user_id,
            KpiEvent.role == role,
            KpiEvent.created_at >= start,
            KpiEvent.created_at < end,
        )
        if tenant_id is not None:
            q = q.where(KpiEvent.tenant_id == tenant_id)
        result = await self.session.execute(q.order_by(KpiEvent.created_at.asc()))
        return list(result.scalars().all())

    async def of_type_between(
        self, event_type: str, start: datetime, end: datetime, tenant_id: Optional[str] = None
    ) -> List[KpiEvent]:
        q = select(KpiEvent).where(
            KpiEvent.event_type == event_type,
            KpiEvent.created_at >= start,
            KpiEvent.created_at <= end,
        )
        if tenant_id is not None:
            q = q.where(KpiEvent.tenant_id == tenant_id)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def count_for_lead(self, lead_id: str, role: str, event_types: Sequence[str]) -> int:
        result = await self.session.execute(
            select(func.count(KpiEvent.id)).where(
                KpiEvent.lead_id == lead_id,
                KpiEvent.role == role,
                KpiEvent.event_type.in_(list(event_types)),
            )
        )
        return result.scalar() or 0

    async def users_with_role_events(
        self, role: str, start: datetime, end: datetime
    ) -> List[Tuple[Optional[str], str]]:
        """Distinct (tenant_id, user_id) pairs with events of the role in the window."""
        result = await self.session.execute(
            select(KpiEvent.tenant_id, KpiEvent.user_id)
            .where(
                KpiEvent.role == role,
                KpiEvent.user_id.is_not(None),
                KpiEvent.created_at >= start,
                KpiEvent.created_at < end,
            )
            .distinct()
        )
        return [(row[0], row[1]) for row in result.all()]


class ScorecardRepository:
    """Data access for weekly scorecards."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(
        self, scorecard_id: str, tenant_id: Optional[str] = None
    ) -> Optional[ScorecardWeekly]:
        q = select(ScorecardWeekly).where(ScorecardWeekly.id == scorecard_id)
        if tenant_id is not None:
            q = q.where(ScorecardWeekly.tenant_id == tenant_id)
        result = await self.session.execute(q)
        return result.scalar_one_or_none()

    async def get_for_week(
        self, user_id: str, role: str, week_start: datetime
    ) -> Optional[ScorecardWeekly]:
        """The (user, role, week) row in whichever tenant holds it."""
        result = await self.session.execute(
            select(ScorecardWeekly).where(
                ScorecardWeekly.user_id == user_id,
                ScorecardWeekly.role == role,
                ScorecardWeekly.week_start == week_start,
            )
        )
        return result.scalar_one_or_none()

    async def insert(self, scorecard: ScorecardWeekly) -> Optional[ScorecardWeekly]:
        """Insert; returns None if another writer got the week first."""
        try:
            async with self.session.begin_nested():
                self.session.add(scorecard)
        except IntegrityError:
            return None
        return scorecard

    async def save(self, scorecard: ScorecardWeekly) -> ScorecardWeekly:
        self.session.add(scorecard)
        await self.session.flush()
        return scorecard


class CloserKPIRepository:
    """Data access for closer weekly KPIs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_week(self, user_id: str, week_start: datetime) -> Optional[CloserKPI]:
        result = await self.session.execute(
            select(CloserKPI).where(
                CloserKPI.user_id == user_id,
                CloserKPI.week_start == week_start,
            )
        )
        return result.scalar_one_or_none()

    async def save(self, kpi: CloserKPI) -> CloserKPI:
        self.session.add(kpi)
        await self.session.flush()
        return kpi


class BuyBoxRepository:
    """Data access for buy boxes and scoring configs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **fields) -> BuyBox:
        box = BuyBox(**fields)
        self.session.add(box)
        await self.session.flush()
        return box

    async def list_for_tenant(self, tenant_id: str, active_only: bool = False) -> List[BuyBox]:
        q = select(BuyBox).where(BuyBox.tenant_id == tenant_id)
        if active_only:
            q = q.where(BuyBox.active.is_(True))
        result = await self.session.execute(q.order_by(BuyBox.created_at.asc()))
        return list(result.scalars().all())

    async def active_for_market(self, tenant_id: str, market_key: str) -> List[BuyBox]:
        result = await self.session.execute(
            select(BuyBox)
            .where(
                BuyBox.tenant_id == tenant_id,
                BuyBox.market_key == market_key,
                BuyBox.active.is_(True),
            )
            .order_by(BuyBox.created_at.asc())
        )
        return list(result.scalars().all())

    async def active_scoring_config(
        self, market_key: str, strategy: str
    ) -> Optional[ScoringConfig]:
        result = await self.session.execute(
            select(ScoringConfig)
            .where(
                ScoringConfig.market_key == market_key,
                ScoringConfig.strategy == strategy,
                ScoringConfig.active.is_(True),
            )
            .order_by(ScoringConfig.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


class UserRepository:
    """Read access to users (managed elsewhere)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def by_roles(self, tenant_id: Optional[str], roles: Sequence[str]) -> List[User]:
        q = select(User).where(User.role.in_(list(roles)), User.is_active.is_(True))
        if tenant_id is not None:
            q = q.where(User.tenant_id == tenant_id)
        result = await self.session.execute(q)
        return list(result.scalars().all())


class NotificationRepository:
    """Data access for in-app notifications."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **fields) -> Notification:
        notification = Notification(**fields)
        self.session.add(notification)
        await self.session.flush()
        return notification
