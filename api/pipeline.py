"""
Lead pipeline for the Rapid Offer API.

Runs scoring and routing for a lead inside the caller's session, then fans
out the side effects (KPI events, notifications, realtime pushes). Scoring
and routing each run in their own SAVEPOINT: a failure rolls back only that
step, is logged, and never fails the user action that triggered it.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from api.analytics.collector import KpiRecorder, role_for_user
from api.errors import ValidationError
from api.middleware.metrics import record_lead_score, record_route
from api.notifications.dispatcher import NotificationDispatcher
from api.realtime.connection_manager import ConnectionManager
from api.serializers import lead_to_dict
from database.models import Lead, utcnow
from database.repositories import BuyBoxRepository
from lead_scoring.lead_router import DealRouter, RoutingDecision
from lead_scoring.scoring_model import GRADE_VALUES, LeadScorer, ScoringResult, determine_market_key

logger = logging.getLogger(__name__)


class LeadPipeline:
    """intake -> scoring -> routing, with side effects at the edges."""

    def __init__(
        self,
        scorer: LeadScorer,
        router: DealRouter,
        recorder: KpiRecorder,
        notifier: NotificationDispatcher,
        connections: ConnectionManager,
    ):
        self.scorer = scorer
        self.router = router
        self.recorder = recorder
        self.notifier = notifier
        self.connections = connections

    # ── Scoring ───────────────────────────────────────────────────

    async def rescore_and_route(
        self, session: AsyncSession, lead: Lead, user: Optional[Dict[str, Any]] = None
    ) -> Lead:
        """Recalculate the score, persist it, and route with the fresh score."""
        now = utcnow()
        previous_grade = lead.grade
        try:
            async with session.begin_nested():
                result = await self._apply_score(session, lead, now)
        except Exception as e:
            logger.error(f"Scoring failed for lead {lead.id}: {e}")
            await session.refresh(lead)
            return lead

        record_lead_score(result.score)
        await self.recorder.record(
            session, "score_calculated", role_for_user(user),
            user_id=(user or {}).get("sub"), lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata={"score": result.score, "grade": lead.grade, "buy_box_id": lead.buy_box_id},
        )

        if (
            lead.grade in ("A", "B")
            and previous_grade not in ("A", lead.grade)
            and lead.buy_box_id
        ):
            await self.notifier.notify_roles(
                session, lead.tenant_id, ("admin", "manager", "closer"),
                type="hot_lead",
                title=f"{lead.grade}-grade lead: {lead.property_address or lead.id}",
                message=f"Score {lead.score} matched Buy Box {lead.buy_box_label}",
                lead_id=lead.id,
            )

        await self.route(session, lead, user, now=now)
        return lead

    async def _apply_score(self, session: AsyncSession, lead: Lead, now: datetime) -> ScoringResult:
        repo = BuyBoxRepository(session)
        market_key = determine_market_key(lead)
        boxes = await repo.active_for_market(lead.tenant_id, market_key) if market_key else []

        weights_by_strategy = {}
        for strategy in {box.strategy or "flip" for box in boxes}:
            config = await repo.active_scoring_config(market_key, strategy)
            if config and config.weights:
                weights_by_strategy[strategy] = config.weights

        result = self.scorer.score(lead, boxes, weights_by_strategy)

        lead.score = result.score
        override = lead.score_override or {}
        lead.grade = override.get("grade") or result.grade.value
        lead.lead_tier = result.lead_tier.value
        lead.evaluated_at = now
        lead.score_reasons = list(result.reasons)
        lead.score_failed_checks = list(result.failed_checks)
        lead.cash_flow = result.cash_flow
        matched = result.matched_buy_box if result.score > 0 else None
        lead.buy_box_id = matched["id"] if matched else None
        lead.buy_box_label = matched["label"] if matched else None
        lead.buy_box_market = matched["market_key"] if matched else None
        await session.flush()

        logger.info(f"Lead {lead.id} scored {result.score} ({lead.grade})")
        return result

    # ── Routing ───────────────────────────────────────────────────

    async def route(
        self,
        session: AsyncSession,
        lead: Lead,
        user: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[RoutingDecision]:
        now = now or utcnow()
        user_id = (user or {}).get("sub")
        try:
            async with session.begin_nested():
                decision = self.router.determine_route(lead)
                self.router.apply(lead, decision, user_id=user_id, now=now)
                await session.flush()
        except Exception as e:
            logger.error(f"Routing failed for lead {lead.id}: {e}")
            await session.refresh(lead)
            return None

        record_route(decision.route.value, decision.priority_level.value)
        await self.recorder.record(
            session, "lead_routed", role_for_user(user),
            user_id=user_id, lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata={
                "route": decision.route.value,
                "priority_level": decision.priority_level.value,
                "sla_hours": decision.sla_hours,
                "grade": lead.grade,
                "held_by_override": decision.held_by_override,
            },
        )
        await self.emit(lead, "lead:routed")
        return decision

    # ── Overrides ─────────────────────────────────────────────────

    async def override_score(
        self, session: AsyncSession, lead: Lead, grade: Optional[str], reason: Optional[str],
        user: Dict[str, Any],
    ) -> Lead:
        if grade not in GRADE_VALUES:
            raise ValidationError(f"Valid grade is required ({', '.join(GRADE_VALUES)})")
        if not reason or not reason.strip():
            raise ValidationError("Reason is required for override")

        previous_grade = lead.grade
        lead.score_override = {
            "grade": grade,
            "reason": reason.strip(),
            "by": user.get("sub"),
            "at": utcnow().isoformat(),
            "previous_grade": previous_grade,
        }
        lead.grade = grade
        await session.flush()

        await self.recorder.record(
            session, "score_override", role_for_user(user),
            user_id=user.get("sub"), lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata={"from": previous_grade, "to": grade, "reason": reason.strip()},
        )
        await self.route(session, lead, user)
        return lead

    async def override_routing(
        self, session: AsyncSession, lead: Lead, route: Optional[str], priority_level: Optional[str],
        reason: Optional[str], user: Dict[str, Any],
    ) -> Lead:
        try:
            decision = self.router.override(
                lead, route or "", priority_level or "", reason, user.get("sub"), now=utcnow(),
            )
        except ValueError as e:
            raise ValidationError(str(e))
        await session.flush()

        record_route(decision.route.value, decision.priority_level.value)
        await self.recorder.record(
            session, "routing_override", role_for_user(user),
            user_id=user.get("sub"), lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata={
                "route": route,
                "priority_level": priority_level,
                "reason": reason.strip(),
                "previous_route": lead.previous_route,
                "previous_priority": lead.previous_priority,
            },
        )
        await self.emit(lead, "lead:routed")
        return lead

    # ── Realtime ──────────────────────────────────────────────────

    async def emit(self, lead: Lead, event: str, extra: Optional[Dict[str, Any]] = None):
        """Push a lead event to the tenant, role and lead rooms. Never raises."""
        try:
            payload = {"lead_id": lead.id, "lead": lead_to_dict(lead, view="dialer")}
            if extra:
                payload.update(extra)
            await self.connections.emit_lead_event(lead.tenant_id, lead.id, event, payload)
        except Exception as e:
            logger.warning(f"Realtime emit {event} for lead {lead.id} failed: {e}")
