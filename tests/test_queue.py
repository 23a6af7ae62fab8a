"""Tests for the dialer and closer queue builders."""

from datetime import datetime, timedelta

import pytest

from api.errors import ValidationError
from api.queues.builder import build_closer_queue, build_dialer_queue

NOW = datetime(2024, 3, 6, 12, 0)


def _ids(queue):
    return [item["id"] for item in queue]


class TestDialerQueue:
    def test_order_is_priority_route_grade_score(self, make_lead):
        low = make_lead(id="low", priority_level="low", route="nurture", grade="D", score=35)
        urgent = make_lead(id="urgent", priority_level="urgent", route="immediate_closer", grade="A", score=90)
        high_b = make_lead(id="high-b", priority_level="high", route="dialer_priority", grade="B", score=75)
        high_b2 = make_lead(id="high-b2", priority_level="high", route="dialer_priority", grade="B", score=80)
        queue = build_dialer_queue([low, high_b, urgent, high_b2], now=NOW)
        assert _ids(queue) == ["urgent", "high-b2", "high-b", "low"]

    def test_ties_break_on_updated_at_then_id(self, make_lead):
        older = make_lead(id="b", priority_level="high", updated_at=NOW - timedelta(days=1))
        newer = make_lead(id="c", priority_level="high", updated_at=NOW)
        same = make_lead(id="a", priority_level="high", updated_at=NOW)
        assert _ids(build_dialer_queue([older, newer, same], now=NOW)) == ["a", "c", "b"]

    def test_cold_leads_excluded(self, make_lead):
        queue = build_dialer_queue([make_lead(id="cold", lead_tier="cold")], now=NOW)
        assert queue == []

    def test_default_excludes_completed_intake(self, make_lead):
        done = make_lead(id="done", intake_completed_at=NOW)
        back = make_lead(id="back", intake_completed_at=NOW, handoff_status="back_to_dialer")
        assert _ids(build_dialer_queue([done, back], now=NOW)) == ["back"]

    def test_follow_up_filter(self, make_lead):
        due = make_lead(id="due", status="contacted", next_follow_up=NOW - timedelta(hours=1))
        later = make_lead(id="later", status="contacted", next_follow_up=NOW + timedelta(days=1))
        assert _ids(build_dialer_queue([due, later], "follow-up", now=NOW)) == ["due"]

    def test_hot_filter_uses_motivation(self, make_lead):
        hot = make_lead(id="hot", dialer_intake={"motivation_rating": 5})
        warm = make_lead(id="warm", dialer_intake={"motivation_rating": 3})
        assert _ids(build_dialer_queue([hot, warm], "hot", now=NOW)) == ["hot"]

    def test_escalated_filter(self, make_lead):
        sent = make_lead(id="sent", handoff_status="closer_review")
        fresh = make_lead(id="fresh")
        assert _ids(build_dialer_queue([sent, fresh], "escalated", now=NOW)) == ["sent"]

    def test_invalid_filter(self, make_lead):
        with pytest.raises(ValidationError):
            build_dialer_queue([make_lead()], "everything", now=NOW)

    def test_skip_trace_masked(self, make_lead):
        lead = make_lead(skip_trace={"status": "completed", "phones": ["555-0100", "555-0101"], "emails": []})
        item = build_dialer_queue([lead], now=NOW)[0]
        assert item["skip_trace_status"] == "completed"
        assert item["phone_count"] == 2
        assert "555-0100" not in str(item)

    def test_page_size(self, make_lead):
        leads = [make_lead(id=f"lead-{i:02d}") for i in range(5)]
        assert len(build_dialer_queue(leads, now=NOW, page_size=3)) == 3


class TestCloserQueue:
    def test_only_closer_states(self, make_lead):
        review = make_lead(id="review", handoff_status="closer_review")
        dialer = make_lead(id="dialer", handoff_status="none")
        signed = make_lead(id="signed", handoff_status="under_contract")
        assert _ids(build_closer_queue([review, dialer, signed])) == ["review"]

    def test_order_is_priority_then_newest_handoff(self, make_lead):
        first = make_lead(id="first", handoff_status="closer_review", priority_level="high",
                          sent_to_closer_at=NOW - timedelta(hours=2))
        second = make_lead(id="second", handoff_status="offer_sent", priority_level="high",
                           sent_to_closer_at=NOW)
        urgent = make_lead(id="urgent", handoff_status="closer_review", priority_level="urgent",
                           sent_to_closer_at=NOW - timedelta(days=2))
        assert _ids(build_closer_queue([first, second, urgent])) == ["urgent", "second", "first"]

    def test_hot_filter(self, make_lead):
        hot = make_lead(id="hot", handoff_status="closer_review", route="immediate_closer",
                        priority_level="urgent")
        other = make_lead(id="other", handoff_status="closer_review", route="dialer_priority",
                          priority_level="urgent")
        assert _ids(build_closer_queue([hot, other], "hot")) == ["hot"]

    def test_closer_view_is_unmasked(self, make_lead):
        lead = make_lead(handoff_status="closer_review", skip_trace={"phones": ["555-0100"]})
        item = build_closer_queue([lead])[0]
        assert "555-0100" in str(item)

    def test_invalid_filter(self):
        with pytest.raises(ValidationError):
            build_closer_queue([], "closed")
