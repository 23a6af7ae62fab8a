"""
Weekly dialer scorecard (100-point system).

Components:
- Intake accuracy (30): intakes completed per conversation
- Call control (20): conversations per call made
- Script adherence (15): flat placeholder until template usage is tracked
- Compliance (20): minus 5 per violation
- Professionalism (8): default, manager-adjustable

Certification: >= 85 certified, < 60 retraining_required, else conditional.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from api.errors import GuardrailError, NotFoundError
from database.models import ScorecardWeekly, utcnow
from database.repositories import KpiEventRepository, ScorecardRepository

logger = logging.getLogger(__name__)

SCRIPT_ADHERENCE_DEFAULT = 15
PROFESSIONALISM_DEFAULT = 8
CERTIFIED_THRESHOLD = 85
RETRAINING_THRESHOLD = 60


def week_start_for(value: Optional[datetime] = None) -> datetime:
    """Monday 00:00 UTC of the week containing value (naive UTC)."""
    value = value or utcnow()
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    start = value.replace(hour=0, minute=0, second=0, microsecond=0)
    return start - timedelta(days=start.weekday())


def certification_for(total: int) -> str:
    if total >= CERTIFIED_THRESHOLD:
        return "certified"
    if total < RETRAINING_THRESHOLD:
        return "retraining_required"
    return "conditional"


@dataclass
class ActivityCounts:
    calls_made: int = 0
    conversations: int = 0
    intakes_completed: int = 0
    handoffs_sent: int = 0
    compliance_violations: int = 0

    @classmethod
    def from_events(cls, events: Iterable) -> "ActivityCounts":
        counts = cls()
        for event in events:
            if event.event_type == "call_made":
                counts.calls_made += 1
            elif event.event_type == "conversation":
                counts.conversations += 1
            elif event.event_type == "intake_completed":
                counts.intakes_completed += 1
            elif event.event_type == "handoff_sent":
                counts.handoffs_sent += 1
            elif event.event_type == "compliance_violation":
                counts.compliance_violations += 1
        return counts


def _round(value: float) -> int:
    return int(value + 0.5)


def compute_components(counts: ActivityCounts) -> Dict[str, int]:
    intake_accuracy = 0
    if counts.conversations > 0:
        intake_accuracy = _round(min(30.0, counts.intakes_completed / counts.conversations * 30))
    call_control = 0
    if counts.calls_made > 0:
        call_control = _round(min(20.0, counts.conversations / counts.calls_made * 20))
    return {
        "intake_accuracy": intake_accuracy,
        "call_control": call_control,
        "script_adherence": SCRIPT_ADHERENCE_DEFAULT,
        "compliance": max(0, 20 - 5 * counts.compliance_violations),
        "professionalism": PROFESSIONALISM_DEFAULT,
    }


def compute_scorecard(counts: ActivityCounts) -> Dict[str, Any]:
    """Components, total (sum of the rounded components) and certification."""
    components = compute_components(counts)
    total = sum(components.values())
    return {
        **components,
        "total_score": total,
        "certification_status": certification_for(total),
    }


def apply_totals(scorecard: ScorecardWeekly):
    total = (
        (scorecard.intake_accuracy or 0)
        + (scorecard.call_control or 0)
        + (scorecard.script_adherence or 0)
        + (scorecard.compliance or 0)
        + (scorecard.professionalism or 0)
    )
    scorecard.total_score = total
    effective = scorecard.manager_override_score if scorecard.manager_override_score is not None else total
    scorecard.certification_status = certification_for(effective)


def scorecard_to_dict(scorecard: ScorecardWeekly) -> Dict[str, Any]:
    return {
        "id": scorecard.id,
        "user_id": scorecard.user_id,
        "role": scorecard.role,
        "tenant_id": scorecard.tenant_id,
        "week_start": scorecard.week_start.isoformat(),
        "week_end": scorecard.week_end.isoformat(),
        "intake_accuracy": scorecard.intake_accuracy,
        "call_control": scorecard.call_control,
        "script_adherence": scorecard.script_adherence,
        "compliance": scorecard.compliance,
        "professionalism": scorecard.professionalism,
        "total_score": scorecard.total_score,
        "certification_status": scorecard.certification_status,
        "calls_made": scorecard.calls_made,
        "conversations": scorecard.conversations,
        "intakes_completed": scorecard.intakes_completed,
        "handoffs_sent": scorecard.handoffs_sent,
        "compliance_violations": scorecard.compliance_violations,
        "manager_notes": scorecard.manager_notes,
        "manager_override_score": scorecard.manager_override_score,
        "updated_by": scorecard.updated_by,
        "computed_at": scorecard.computed_at.isoformat() if scorecard.computed_at else None,
    }


class ScorecardService:
    """Lazily computed, idempotent weekly scorecards, scoped to a tenant."""

    async def _counts(
        self, session: AsyncSession, user_id: str, role: str, week_start: datetime,
        tenant_id: Optional[str],
    ) -> ActivityCounts:
        events = await KpiEventRepository(session).for_user_week(
            user_id, role, week_start, week_start + timedelta(days=7), tenant_id=tenant_id,
        )
        return ActivityCounts.from_events(events)

    @staticmethod
    def _check_tenant(scorecard: ScorecardWeekly, tenant_id: Optional[str]) -> ScorecardWeekly:
        if tenant_id is not None and scorecard.tenant_id != tenant_id:
            raise GuardrailError("Scorecard belongs to another tenant")
        return scorecard

    async def get_or_create(
        self,
        session: AsyncSession,
        user_id: str,
        role: str = "dialer",
        week_start: Optional[datetime] = None,
        tenant_id: Optional[str] = None,
    ) -> ScorecardWeekly:
        """
        An existing row for (user, role, week) is returned unmodified.

        Rows held by another tenant raise GuardrailError; new rows count only
        the caller tenant's events.
        """
        week_start = week_start_for(week_start)
        repo = ScorecardRepository(session)

        existing = await repo.get_for_week(user_id, role, week_start)
        if existing:
            return self._check_tenant(existing, tenant_id)

        counts = await self._counts(session, user_id, role, week_start, tenant_id)
        scorecard = ScorecardWeekly(
            tenant_id=tenant_id,
            user_id=user_id,
            role=role,
            week_start=week_start,
            week_end=week_start + timedelta(days=7),
            calls_made=counts.calls_made,
            conversations=counts.conversations,
            intakes_completed=counts.intakes_completed,
            handoffs_sent=counts.handoffs_sent,
            compliance_violations=counts.compliance_violations,
            computed_at=utcnow(),
            **compute_scorecard(counts),
        )
        inserted = await repo.insert(scorecard)
        if inserted is None:
            # Another writer created the week first
            logger.info(f"Scorecard for {user_id}/{role}/{week_start.date()} already exists")
            return self._check_tenant(await repo.get_for_week(user_id, role, week_start), tenant_id)
        logger.info(
            f"Scorecard computed for {user_id} week {week_start.date()}: "
            f"{scorecard.total_score} ({scorecard.certification_status})"
        )
        return inserted

    async def update(
        self,
        session: AsyncSession,
        scorecard_id: str,
        updated_by: Optional[str],
        professionalism: Optional[int] = None,
        script_adherence: Optional[int] = None,
        manager_notes: Optional[str] = None,
        manager_override_score: Optional[int] = None,
        recompute: bool = False,
        tenant_id: Optional[str] = None,
    ) -> ScorecardWeekly:
        repo = ScorecardRepository(session)
        scorecard = await repo.get_by_id(scorecard_id, tenant_id)
        if not scorecard:
            raise NotFoundError("Scorecard not found")

        if recompute:
            counts = await self._counts(
                session, scorecard.user_id, scorecard.role, scorecard.week_start, scorecard.tenant_id,
            )
            components = compute_components(counts)
            scorecard.calls_made = counts.calls_made
            scorecard.conversations = counts.conversations
            scorecard.intakes_completed = counts.intakes_completed
            scorecard.handoffs_sent = counts.handoffs_sent
            scorecard.compliance_violations = counts.compliance_violations
            scorecard.intake_accuracy = components["intake_accuracy"]
            scorecard.call_control = components["call_control"]
            scorecard.compliance = components["compliance"]
            scorecard.computed_at = utcnow()

        if professionalism is not None:
            scorecard.professionalism = professionalism
        if script_adherence is not None:
            scorecard.script_adherence = script_adherence
        if manager_notes is not None:
            scorecard.manager_notes = manager_notes
        if manager_override_score is not None:
            scorecard.manager_override_score = manager_override_score

        apply_totals(scorecard)
        scorecard.updated_by = updated_by
        await repo.save(scorecard)
        logger.info(f"Scorecard {scorecard.id} updated by {updated_by}: {scorecard.total_score}")
        return scorecard
