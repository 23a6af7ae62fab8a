"""Tests for the dialer scorecard, closer KPIs and routing performance."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from api.analytics.closer_kpi import compute_closer_kpi
from api.analytics.routing_performance import summarize_routing_performance
from api.analytics.scorecard import (
    ActivityCounts, apply_totals, certification_for, compute_scorecard, week_start_for,
)
from database.models import ScorecardWeekly

ROUTED = datetime(2024, 3, 4, 9, 0)


def _events(*types, **fields):
    return [SimpleNamespace(event_type=t, **fields) for t in types]


# ── Scorecard ─────────────────────────────────────────

class TestScorecard:
    def test_reference_week(self):
        events = _events(*(["call_made"] * 10 + ["conversation"] * 6 + ["intake_completed"] * 5))
        result = compute_scorecard(ActivityCounts.from_events(events))
        assert result["intake_accuracy"] == 25
        assert result["call_control"] == 12
        assert result["script_adherence"] == 15
        assert result["compliance"] == 20
        assert result["professionalism"] == 8
        assert result["total_score"] == 80
        assert result["certification_status"] == "conditional"

    def test_no_activity(self):
        result = compute_scorecard(ActivityCounts())
        assert result["intake_accuracy"] == 0
        assert result["call_control"] == 0
        assert result["total_score"] == 43
        assert result["certification_status"] == "retraining_required"

    def test_components_are_capped(self):
        counts = ActivityCounts(calls_made=1, conversations=3, intakes_completed=9)
        result = compute_scorecard(counts)
        assert result["intake_accuracy"] == 30
        assert result["call_control"] == 20

    def test_compliance_floor(self):
        result = compute_scorecard(ActivityCounts(compliance_violations=7))
        assert result["compliance"] == 0

    @pytest.mark.parametrize("total,status", [
        (85, "certified"), (84, "conditional"), (60, "conditional"), (59, "retraining_required"),
    ])
    def test_certification_thresholds(self, total, status):
        assert certification_for(total) == status

    def test_manager_override_drives_certification(self):
        scorecard = ScorecardWeekly(
            intake_accuracy=25, call_control=12, script_adherence=15, compliance=20,
            professionalism=8, manager_override_score=90,
        )
        apply_totals(scorecard)
        assert scorecard.total_score == 80
        assert scorecard.certification_status == "certified"

    def test_week_start_is_monday(self):
        assert week_start_for(datetime(2024, 3, 7, 15, 30)) == datetime(2024, 3, 4)
        assert week_start_for(datetime(2024, 3, 4, 0, 0)) == datetime(2024, 3, 4)

    def test_week_start_converts_aware_values(self):
        value = datetime(2024, 3, 4, 1, 0, tzinfo=timezone(timedelta(hours=5)))
        assert week_start_for(value) == datetime(2024, 2, 26)


# ── Routing performance ───────────────────────────────

class TestRoutingPerformance:
    def test_a_grade_within_sla(self, make_lead):
        lead = make_lead(
            grade="A", route="immediate_closer", routed_at=ROUTED, sla_hours=2,
            closer={"offer_sent_at": (ROUTED + timedelta(minutes=90)).isoformat()},
        )
        report = summarize_routing_performance([lead])
        detail = report["a_grade"]["details"][0]
        assert detail["time_to_first_action"] == 90
        assert detail["within_sla"] is True
        assert report["a_grade"]["sla_compliance_pct"] == 100.0

    def test_a_grade_without_action_is_missed(self, make_lead):
        lead = make_lead(grade="A", route="immediate_closer", routed_at=ROUTED, sla_hours=2)
        report = summarize_routing_performance([lead])
        assert report["a_grade"]["missed"] == 1
        assert report["a_grade"]["details"][0]["within_sla"] is False
        assert report["a_grade"]["avg_minutes_to_action"] is None

    def test_actions_before_routing_do_not_count(self, make_lead):
        lead = make_lead(
            grade="A", route="immediate_closer", routed_at=ROUTED, sla_hours=2,
            sent_to_closer_at=ROUTED - timedelta(hours=1),
        )
        assert summarize_routing_performance([lead])["a_grade"]["missed"] == 1

    def test_b_grade_measured_to_intake(self, make_lead):
        lead = make_lead(
            grade="B", route="dialer_priority", routed_at=ROUTED, sla_hours=24,
            intake_completed_at=ROUTED + timedelta(hours=30),
        )
        report = summarize_routing_performance([lead])
        detail = report["b_grade"]["details"][0]
        assert detail["time_to_first_action"] == 1800
        assert detail["within_sla"] is False
        assert report["b_grade"]["sla_compliance_pct"] == 0.0

    def test_other_routes_ignored(self, make_lead):
        lead = make_lead(grade="C", route="nurture", routed_at=ROUTED)
        report = summarize_routing_performance([lead])
        assert report["a_grade"]["total"] == 0
        assert report["b_grade"]["total"] == 0

    def test_override_counts(self):
        overrides = _events("routing_override", "routing_override", user_id="mgr-1")
        report = summarize_routing_performance([], overrides)
        assert report["routing_overrides"] == {"total": 2, "by_user": {"mgr-1": 2}}


# ── Closer KPIs ───────────────────────────────────────

class TestCloserKpi:
    def test_weekly_kpis(self, make_lead):
        sent = ROUTED
        lead = make_lead(id="lead-1", sent_to_closer_at=sent, asking_price=150000,
                         closer={"offer_amount": 120000})
        other = make_lead(id="lead-2", sent_to_closer_at=sent)
        events = [
            SimpleNamespace(event_type="offer_sent", lead_id="lead-1", created_at=sent + timedelta(hours=2)),
            SimpleNamespace(event_type="contract_sent", lead_id="lead-1", created_at=sent + timedelta(hours=4)),
            SimpleNamespace(event_type="contract_signed", lead_id="lead-1", created_at=sent + timedelta(hours=6)),
            SimpleNamespace(event_type="offer_sent", lead_id="lead-2", created_at=sent + timedelta(hours=4)),
        ]
        result = compute_closer_kpi(events, {"lead-1": lead, "lead-2": other})
        assert result["leads_reviewed"] == 2
        assert result["offers_sent"] == 2
        assert result["contracts_sent"] == 1
        assert result["contracts_signed"] == 1
        assert result["conversion_rate"] == 50
        assert result["offer_to_contract_rate"] == 50
        assert result["avg_response_time_hours"] == 4.0
        assert result["avg_deal_spread"] == 30000

    def test_no_events(self):
        result = compute_closer_kpi([], {})
        assert result["leads_reviewed"] == 0
        assert result["conversion_rate"] == 0
        assert result["avg_response_time_hours"] is None
        assert result["avg_deal_spread"] is None
