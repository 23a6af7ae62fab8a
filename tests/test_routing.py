"""Tests for the Deal Router."""

from datetime import datetime, timedelta

import pytest

from lead_scoring.lead_router import DealRouter, PriorityLevel, Route


@pytest.fixture
def router():
    return DealRouter()


def _scored(make_lead, grade, score, **fields):
    return make_lead(grade=grade, score=score, buy_box_id="box-1", **fields)


class TestRouteByGrade:
    def test_a_grade(self, router, make_lead):
        decision = router.determine_route(_scored(make_lead, "A", 92))
        assert decision.route == Route.IMMEDIATE_CLOSER
        assert decision.priority_level == PriorityLevel.URGENT
        assert decision.sla_hours == 2
        assert decision.should_alert is True
        assert decision.reasons == ["A-grade lead (score: 92)", "Buy Box matched", "No major exclusions"]

    def test_a_grade_with_warnings(self, router, make_lead):
        lead = make_lead(grade="A", score=90, buy_box_id=None, description="Condemned by the city")
        decision = router.determine_route(lead)
        assert decision.route == Route.IMMEDIATE_CLOSER
        assert "Warning: Buy Box not matched" in decision.reasons
        assert "Warning: Major exclusions detected" in decision.reasons

    def test_b_grade(self, router, make_lead):
        decision = router.determine_route(_scored(make_lead, "B", 75))
        assert (decision.route, decision.priority_level, decision.sla_hours) == (
            Route.DIALER_PRIORITY, PriorityLevel.HIGH, 24,
        )

    def test_c_grade(self, router, make_lead):
        decision = router.determine_route(_scored(make_lead, "C", 55))
        assert (decision.route, decision.priority_level, decision.sla_hours) == (
            Route.NURTURE, PriorityLevel.NORMAL, 72,
        )

    def test_d_grade(self, router, make_lead):
        decision = router.determine_route(_scored(make_lead, "D", 35))
        assert (decision.route, decision.priority_level, decision.sla_hours) == (
            Route.NURTURE, PriorityLevel.LOW, None,
        )

    def test_dead_grade(self, router, make_lead):
        decision = router.determine_route(_scored(make_lead, "Dead", 10))
        assert decision.route == Route.ARCHIVE
        assert decision.sla_hours is None

    def test_unscored_lead_archives(self, router, make_lead):
        assert router.determine_route(make_lead()).route == Route.ARCHIVE

    def test_failed_cash_flow_sends_a_grade_to_nurture(self, router, make_lead):
        lead = _scored(make_lead, "A", 95, cash_flow={"cash_flow_pass": False, "dscr_pass": False})
        decision = router.determine_route(lead)
        assert decision.route == Route.NURTURE
        assert decision.priority_level == PriorityLevel.NORMAL
        assert "Routing to nurture instead" in decision.reasons

    def test_custom_sla(self, make_lead):
        router = DealRouter(sla_hours={"A": 1})
        assert router.determine_route(_scored(make_lead, "A", 90)).sla_hours == 1


class TestSignals:
    def test_escalation_raises_to_urgent(self, router, make_lead):
        decision = router.determine_route(_scored(make_lead, "C", 55, escalated=True))
        assert decision.priority_level == PriorityLevel.URGENT
        assert "Priority raised to urgent: escalated by dialer" in decision.reasons

    def test_active_handoff_holds_better_route(self, router, make_lead):
        lead = _scored(
            make_lead, "C", 55,
            handoff_status="closer_review", route="immediate_closer", sla_hours=2,
        )
        decision = router.determine_route(lead)
        assert decision.route == Route.IMMEDIATE_CLOSER
        assert decision.priority_level == PriorityLevel.HIGH
        assert decision.sla_hours == 2

    def test_compliance_flags_raise_priority(self, router, make_lead):
        lead = _scored(make_lead, "D", 35, dialer_intake={"compliance_flags": ["guarantee"]})
        decision = router.determine_route(lead)
        assert decision.priority_level == PriorityLevel.HIGH
        assert decision.reasons[-1] == "Compliance flags present (guarantee): manager review"

    def test_signals_never_lower_priority(self, router, make_lead):
        lead = _scored(make_lead, "A", 90, dialer_intake={"compliance_flags": ["promise"]})
        assert router.determine_route(lead).priority_level == PriorityLevel.URGENT


class TestApply:
    def test_first_apply_sets_routed_at(self, router, make_lead):
        lead = _scored(make_lead, "B", 75)
        now = datetime(2024, 3, 4, 10, 0)
        changed = router.apply(lead, router.determine_route(lead), user_id="u-1", now=now)
        assert changed is True
        assert lead.route == "dialer_priority"
        assert lead.routed_at == now
        assert lead.routing_evaluated_at == now
        assert lead.routed_by == "u-1"
        assert "B_GRADE" in lead.tags

    def test_unchanged_route_keeps_routed_at(self, router, make_lead):
        lead = _scored(make_lead, "B", 75)
        first = datetime(2024, 3, 4, 10, 0)
        router.apply(lead, router.determine_route(lead), now=first)
        later = first + timedelta(hours=3)
        changed = router.apply(lead, router.determine_route(lead), now=later)
        assert changed is False
        assert lead.routed_at == first
        assert lead.routing_evaluated_at == later

    def test_reasons_only_grow(self, router, make_lead):
        lead = _scored(make_lead, "B", 75)
        router.apply(lead, router.determine_route(lead))
        first = list(lead.routing_reasons)
        lead.grade, lead.score = "A", 90
        router.apply(lead, router.determine_route(lead))
        assert lead.routing_reasons[:len(first)] == first
        assert len(lead.routing_reasons) > len(first)
        assert lead.previous_route == "dialer_priority"

    def test_non_routing_tags_survive(self, router, make_lead):
        lead = _scored(make_lead, "A", 90, tags=["probate-list", "B_GRADE"])
        router.apply(lead, router.determine_route(lead))
        assert lead.tags == ["probate-list", "A_GRADE", "HOT", "BUYBOX_MATCH"]


class TestOverride:
    def test_override_sets_route_and_audit(self, router, make_lead):
        lead = _scored(make_lead, "B", 75)
        router.apply(lead, router.determine_route(lead))
        router.override(lead, "immediate_closer", "urgent", "  Seller called back  ", "mgr-1")
        assert lead.route == "immediate_closer"
        assert lead.priority_level == "urgent"
        assert lead.sla_hours == 2
        assert lead.routing_override["reason"] == "Seller called back"
        assert lead.routing_override["previous_route"] == "dialer_priority"
        assert lead.routing_reasons[-1] == "Manual override: Seller called back"

    def test_override_survives_rerouting(self, router, make_lead):
        lead = _scored(make_lead, "D", 35)
        router.override(lead, "dialer_priority", "high", "Manager call", "mgr-1")
        decision = router.determine_route(lead)
        assert decision.held_by_override is True
        router.apply(lead, decision)
        assert lead.route == "dialer_priority"
        assert lead.priority_level == "high"
        assert "computed: nurture/low" in lead.routing_reasons[-1]

    @pytest.mark.parametrize("route,priority,reason", [
        ("teleport", "high", "x"),
        ("nurture", "asap", "x"),
        ("nurture", "low", "   "),
        ("nurture", "low", None),
    ])
    def test_invalid_override(self, router, make_lead, route, priority, reason):
        lead = make_lead()
        with pytest.raises(ValueError):
            router.override(lead, route, priority, reason, "mgr-1")
        assert lead.routing_override is None
