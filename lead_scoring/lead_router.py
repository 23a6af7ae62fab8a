"""
Deal Router for the Rapid Offer pipeline.

Turns a scored lead into a route, priority level and SLA, keeps a cumulative
trail of routing reasons, and records manual overrides so that automatic
re-routing never silently erases operator intent.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .scoring_model import Grade

logger = logging.getLogger(__name__)


class Route(str, Enum):
    IMMEDIATE_CLOSER = "immediate_closer"
    DIALER_PRIORITY = "dialer_priority"
    NURTURE = "nurture"
    ARCHIVE = "archive"


class PriorityLevel(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


PRIORITY_ORDER = {"urgent": 1, "high": 2, "normal": 3, "low": 4}
ROUTE_ORDER = {"immediate_closer": 1, "dialer_priority": 2, "nurture": 3, "archive": 4}

ROUTES = [r.value for r in Route]
PRIORITIES = [p.value for p in PriorityLevel]

ACTIVE_HANDOFF = ("closer_review", "offer_sent", "contract_sent", "under_contract")

MAJOR_EXCLUSIONS = (
    "major fire damage",
    "extreme structural damage",
    "condemned",
    "uninhabitable",
    "total loss",
    "demolition required",
)

ROUTING_TAGS = (
    "A_GRADE", "B_GRADE", "C_GRADE", "LOW_SCORE",
    "HOT", "BUYBOX_MATCH", "HIGH_POTENTIAL", "NURTURE",
)

DEFAULT_SLA_HOURS = {"A": 2, "B": 24, "C": 72}


@dataclass
class RoutingDecision:
    """Result of a routing evaluation."""
    route: Route
    priority_level: PriorityLevel
    sla_hours: Optional[int]
    reasons: List[str] = field(default_factory=list)
    should_alert: bool = False
    held_by_override: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "route": self.route.value,
            "priority_level": self.priority_level.value,
            "sla_hours": self.sla_hours,
            "reasons": self.reasons,
            "should_alert": self.should_alert,
            "held_by_override": self.held_by_override,
        }


def _higher_priority(a: PriorityLevel, b: PriorityLevel) -> PriorityLevel:
    return a if PRIORITY_ORDER[a.value] <= PRIORITY_ORDER[b.value] else b


class DealRouter:
    """
    Routes leads by grade (first match wins):

    - Dead -> archive, low, no SLA
    - A -> immediate_closer, urgent, 2h SLA
    - B -> dialer_priority, high, 24h SLA
    - C -> nurture, normal, 72h SLA
    - D -> nurture, low, no SLA

    Signals (escalation, active handoff, compliance flags) can raise
    priority; an active handoff keeps its route.
    """

    def __init__(self, sla_hours: Optional[Dict[str, int]] = None):
        self.sla_hours = DEFAULT_SLA_HOURS.copy()
        if sla_hours:
            self.sla_hours.update(sla_hours)

    # ── Decision ──────────────────────────────────────────────────

    def determine_route(self, lead) -> RoutingDecision:
        """Evaluate the route for a lead against its current score."""
        decision = self._route_for_grade(lead)
        self._apply_signals(lead, decision)

        override = lead.routing_override
        if override:
            computed = f"{decision.route.value}/{decision.priority_level.value}"
            return RoutingDecision(
                route=Route(override["route"]),
                priority_level=PriorityLevel(override["priority_level"]),
                sla_hours=lead.sla_hours,
                reasons=[f"Automatic re-route held by manual override (computed: {computed})"],
                held_by_override=True,
            )
        return decision

    def _route_for_grade(self, lead) -> RoutingDecision:
        score = lead.score or 0
        grade = lead.grade or Grade.DEAD.value
        cash_flow = lead.cash_flow or None
        cash_flow_blocked = bool(cash_flow) and (
            cash_flow.get("cash_flow_pass") is False or cash_flow.get("dscr_pass") is False
        )

        if grade == Grade.DEAD.value:
            return RoutingDecision(
                route=Route.ARCHIVE,
                priority_level=PriorityLevel.LOW,
                sla_hours=None,
                reasons=[f"Dead-grade lead (score: {score})", "Low score - archive for future marketing"],
            )

        if grade in (Grade.A.value, Grade.B.value) and cash_flow_blocked:
            reasons = [f"{grade}-grade lead (score: {score})"]
            if cash_flow.get("cash_flow_pass") is False:
                reasons.append("Failed cash flow rule: Monthly cash flow is not positive")
            else:
                reasons.append("Failed DSCR rule: DSCR below threshold")
            reasons.append("Routing to nurture instead")
            return RoutingDecision(
                route=Route.NURTURE,
                priority_level=PriorityLevel.NORMAL,
                sla_hours=self.sla_hours["C"],
                reasons=reasons,
            )

        if grade == Grade.A.value:
            reasons = [f"A-grade lead (score: {score})"]
            matched = bool(lead.buy_box_id)
            excluded = self.has_major_exclusions(lead)
            if matched and not excluded:
                reasons += ["Buy Box matched", "No major exclusions"]
            else:
                if not matched:
                    reasons.append("Warning: Buy Box not matched")
                if excluded:
                    reasons.append("Warning: Major exclusions detected")
            return RoutingDecision(
                route=Route.IMMEDIATE_CLOSER,
                priority_level=PriorityLevel.URGENT,
                sla_hours=self.sla_hours["A"],
                reasons=reasons,
                should_alert=True,
            )

        if grade == Grade.B.value:
            return RoutingDecision(
                route=Route.DIALER_PRIORITY,
                priority_level=PriorityLevel.HIGH,
                sla_hours=self.sla_hours["B"],
                reasons=[f"B-grade lead (score: {score})", "High potential - prioritize in dialer queue"],
            )

        if grade == Grade.C.value:
            return RoutingDecision(
                route=Route.NURTURE,
                priority_level=PriorityLevel.NORMAL,
                sla_hours=self.sla_hours["C"],
                reasons=[f"C-grade lead (score: {score})", "Moderate potential - add to nurture queue"],
            )

        return RoutingDecision(
            route=Route.NURTURE,
            priority_level=PriorityLevel.LOW,
            sla_hours=None,
            reasons=[f"{grade}-grade lead (score: {score})", "Low potential - nurture at low priority"],
        )

    def _apply_signals(self, lead, decision: RoutingDecision):
        """Signals only ever raise priority; an active handoff keeps its route."""
        status = lead.handoff_status or "none"

        if status in ACTIVE_HANDOFF:
            current = lead.route
            if current and ROUTE_ORDER.get(current, 3) < ROUTE_ORDER[decision.route.value]:
                decision.reasons.append(
                    f"Route held at {current}: handoff in progress ({status})"
                )
                decision.route = Route(current)
                decision.sla_hours = lead.sla_hours
            raised = _higher_priority(decision.priority_level, PriorityLevel.HIGH)
            if raised != decision.priority_level:
                decision.reasons.append(f"Priority raised to high: handoff in progress ({status})")
                decision.priority_level = raised

        if lead.escalated and decision.priority_level != PriorityLevel.URGENT:
            decision.reasons.append("Priority raised to urgent: escalated by dialer")
            decision.priority_level = PriorityLevel.URGENT

        flags = (lead.dialer_intake or {}).get("compliance_flags") or []
        if flags:
            raised = _higher_priority(decision.priority_level, PriorityLevel.HIGH)
            if raised != decision.priority_level:
                decision.priority_level = raised
            decision.reasons.append(
                f"Compliance flags present ({', '.join(flags)}): manager review"
            )

    @staticmethod
    def has_major_exclusions(lead) -> bool:
        intake = lead.dialer_intake or {}
        description = (lead.description or lead.notes or intake.get("seller_reason") or "").lower()
        red_flags = [(f or "").lower() for f in intake.get("red_flags") or []]
        for exclusion in MAJOR_EXCLUSIONS:
            if exclusion in description or any(exclusion in flag for flag in red_flags):
                return True
        return False

    # ── Applying ──────────────────────────────────────────────────

    def apply(
        self,
        lead,
        decision: RoutingDecision,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Write a decision onto the lead.

        Reasons are appended, never replaced.

        routed_at is the SLA clock start, so it moves only when the route or
        priority actually changes (or on first routing). A re-evaluation that
        keeps the same route does not restart the clock; it stamps
        routing_evaluated_at instead, which is what marks the lead as routed
        with its latest score. Returns True when the route or priority changed.
        """
        now = now or datetime.utcnow()
        changed = (
            lead.routed_at is None
            or lead.route != decision.route.value
            or lead.priority_level != decision.priority_level.value
        )

        if changed:
            lead.previous_route = lead.route
            lead.previous_priority = lead.priority_level
            lead.route = decision.route.value
            lead.priority_level = decision.priority_level.value
            lead.routed_at = now
            lead.routed_by = user_id
        lead.sla_hours = decision.sla_hours
        lead.routing_evaluated_at = now
        lead.routing_reasons = list(lead.routing_reasons or []) + list(decision.reasons)
        lead.tags = self._route_tags(lead, decision.route)

        logger.info(
            f"Lead {lead.id} routed: {decision.route.value}/{decision.priority_level.value}"
            f"{' (override held)' if decision.held_by_override else ''}"
        )
        return changed

    @staticmethod
    def _route_tags(lead, route: Route) -> List[str]:
        tags = [t for t in (lead.tags or []) if t not in ROUTING_TAGS]
        if route == Route.IMMEDIATE_CLOSER:
            tags += ["A_GRADE", "HOT"]
            if lead.buy_box_id:
                tags.append("BUYBOX_MATCH")
        elif route == Route.DIALER_PRIORITY:
            tags += ["B_GRADE", "HIGH_POTENTIAL"]
        elif route == Route.NURTURE:
            tags += ["C_GRADE", "NURTURE"]
        else:
            tags.append("LOW_SCORE")
        return tags

    def override(
        self,
        lead,
        route: str,
        priority_level: str,
        reason: Optional[str],
        user_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> RoutingDecision:
        """Manual routing override. Raises ValueError on bad input."""
        if route not in ROUTES:
            raise ValueError(f"Invalid route: {route}. Must be one of: {', '.join(ROUTES)}")
        if priority_level not in PRIORITIES:
            raise ValueError(
                f"Invalid priority level: {priority_level}. Must be one of: {', '.join(PRIORITIES)}"
            )
        if not reason or not reason.strip():
            raise ValueError("Reason is required for routing override")

        now = now or datetime.utcnow()
        reason = reason.strip()
        lead.routing_override = {
            "route": route,
            "priority_level": priority_level,
            "reason": reason,
            "overridden_by": user_id,
            "overridden_at": now.isoformat(),
            "previous_route": lead.route,
            "previous_priority": lead.priority_level,
        }
        decision = RoutingDecision(
            route=Route(route),
            priority_level=PriorityLevel(priority_level),
            sla_hours=self._sla_for_route(route, lead.sla_hours),
            reasons=[f"Manual override: {reason}"],
        )
        lead.previous_route = lead.route
        lead.previous_priority = lead.priority_level
        lead.route = route
        lead.priority_level = priority_level
        lead.routed_at = now
        lead.routed_by = user_id
        lead.routing_evaluated_at = now
        lead.sla_hours = decision.sla_hours
        lead.routing_reasons = list(lead.routing_reasons or []) + decision.reasons
        lead.tags = self._route_tags(lead, decision.route)
        logger.info(f"Lead {lead.id} routing overridden by {user_id}: {route}/{priority_level}")
        return decision

    def _sla_for_route(self, route: str, current: Optional[int]) -> Optional[int]:
        return {
            "immediate_closer": self.sla_hours["A"],
            "dialer_priority": self.sla_hours["B"],
            "nurture": self.sla_hours["C"],
            "archive": None,
        }.get(route, current)
