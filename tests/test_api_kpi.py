"""API tests for KPI events, scorecards and reports."""

from datetime import timedelta

from api.analytics.scorecard import week_start_for
from database.models import CloserKPI, KpiEvent, ScorecardWeekly


def _log(client, headers, event_type, times=1):
    for _ in range(times):
        response = client.post("/api/v1/kpi/event", json={"eventType": event_type}, headers=headers)
        assert response.status_code == 201


class TestEvents:
    def test_public_event_logged(self, client, auth_headers):
        response = client.post("/api/v1/kpi/event",
                               json={"eventType": "call_made", "metadata": {"duration": 42}},
                               headers=auth_headers())
        assert response.status_code == 201
        event = response.json()["event"]
        assert event["role"] == "dialer"
        assert event["user_id"] == "user-1"
        assert event["metadata"] == {"duration": 42}

    def test_internal_event_rejected(self, client, auth_headers):
        response = client.post("/api/v1/kpi/event", json={"eventType": "contract_signed"},
                               headers=auth_headers())
        assert response.status_code == 400

    def test_unknown_event_rejected(self, client, auth_headers):
        response = client.post("/api/v1/kpi/event", json={"eventType": "coffee_break"},
                               headers=auth_headers())
        assert response.status_code == 400


class TestScorecard:
    def test_weekly_scorecard_from_events(self, client, db, auth_headers):
        headers = auth_headers()
        _log(client, headers, "call_made", 10)
        _log(client, headers, "conversation", 6)
        _log(client, headers, "intake_completed", 5)

        body = client.get("/api/v1/kpi/dialer/weekly", headers=headers).json()
        assert body["intake_accuracy"] == 25
        assert body["call_control"] == 12
        assert body["total_score"] == 80
        assert body["certification_status"] == "conditional"

        # stable after first read
        _log(client, headers, "compliance_violation")
        again = client.get("/api/v1/kpi/dialer/weekly", headers=headers).json()
        assert again["id"] == body["id"]
        assert again["total_score"] == 80
        assert len(db.all(ScorecardWeekly, user_id="user-1")) == 1

    def test_dialer_cannot_read_other_users(self, client, auth_headers):
        response = client.get("/api/v1/kpi/dialer/weekly?user_id=user-2", headers=auth_headers())
        assert response.status_code == 403

    def test_invalid_week_start(self, client, auth_headers):
        response = client.get("/api/v1/kpi/dialer/weekly?week_start=last-week", headers=auth_headers())
        assert response.status_code == 400

    def test_manager_update(self, client, auth_headers):
        scorecard = client.get("/api/v1/kpi/dialer/weekly", headers=auth_headers()).json()
        url = f"/api/v1/kpi/scorecard/{scorecard['id']}"

        assert client.put(url, json={"professionalism": 10}, headers=auth_headers()).status_code == 403

        manager = auth_headers("manager", sub="mgr-1")
        body = client.put(url, json={"professionalism": 10}, headers=manager).json()
        assert body["total_score"] == scorecard["total_score"] + 2
        assert body["updated_by"] == "mgr-1"

        body = client.put(url, json={"managerOverrideScore": 90}, headers=manager).json()
        assert body["certification_status"] == "certified"

    def test_update_range_checked(self, client, auth_headers):
        scorecard = client.get("/api/v1/kpi/dialer/weekly", headers=auth_headers()).json()
        response = client.put(f"/api/v1/kpi/scorecard/{scorecard['id']}", json={"professionalism": 11},
                              headers=auth_headers("manager"))
        assert response.status_code == 422

    def test_missing_scorecard(self, client, auth_headers):
        response = client.put("/api/v1/kpi/scorecard/nope", json={}, headers=auth_headers("manager"))
        assert response.status_code == 404


class TestReports:
    def test_closer_reads_own_kpis(self, client, auth_headers):
        closer = auth_headers("closer", sub="closer-1")
        body = client.get("/api/v1/kpi/closers", headers=closer).json()
        assert body["user_id"] == "closer-1"
        assert body["offers_sent"] == 0

        response = client.get("/api/v1/kpi/closers?user_id=closer-2", headers=closer)
        assert response.status_code == 403

    def test_manager_reads_any_closer(self, client, auth_headers):
        response = client.get("/api/v1/kpi/closers?user_id=closer-2", headers=auth_headers("manager"))
        assert response.status_code == 200
        assert response.json()["user_id"] == "closer-2"

    def test_routing_performance_access(self, client, auth_headers):
        assert client.get("/api/v1/kpi/routing/performance", headers=auth_headers()).status_code == 403
        no_tenant = auth_headers("manager", tenant_id=None)
        assert client.get("/api/v1/kpi/routing/performance", headers=no_tenant).status_code == 403

    def test_routing_performance_window(self, client, auth_headers):
        manager = auth_headers("manager")
        response = client.get(
            "/api/v1/kpi/routing/performance?start_date=2024-03-10&end_date=2024-03-01", headers=manager,
        )
        assert response.status_code == 400

        body = client.get("/api/v1/kpi/routing/performance", headers=manager).json()
        assert body["a_grade"]["total"] == 0
        assert "period" in body

    def test_closer_pipeline_report(self, client, auth_headers):
        response = client.get("/api/v1/kpi/closer/pipeline", headers=auth_headers("closer"))
        assert response.status_code == 200


class TestTenantIsolation:
    @staticmethod
    def _other_tenant_scorecard(db, user_id="d-2"):
        week_start = week_start_for()
        return db.add(ScorecardWeekly(
            id="sc-other", tenant_id="tenant-2", user_id=user_id, role="dialer",
            week_start=week_start, week_end=week_start + timedelta(days=7),
            total_score=65, certification_status="conditional",
        ))

    def test_manager_cannot_update_other_tenant_scorecard(self, client, db, auth_headers):
        self._other_tenant_scorecard(db)
        response = client.put("/api/v1/kpi/scorecard/sc-other", json={"managerOverrideScore": 72},
                              headers=auth_headers("manager", sub="mgr-1"))
        assert response.status_code == 404
        stored = db.get(ScorecardWeekly, "sc-other")
        assert stored.manager_override_score is None
        assert stored.total_score == 65

    def test_manager_cannot_read_other_tenant_scorecard(self, client, db, auth_headers):
        self._other_tenant_scorecard(db)
        response = client.get("/api/v1/kpi/dialer/weekly?user_id=d-2", headers=auth_headers("manager"))
        assert response.status_code == 403
        assert [s.tenant_id for s in db.all(ScorecardWeekly, user_id="d-2")] == ["tenant-2"]

    def test_scorecard_counts_only_own_tenant_events(self, client, db, auth_headers):
        db.add(*[KpiEvent(event_type="call_made", role="dialer", user_id="user-1", tenant_id="tenant-2")
                 for _ in range(4)])
        _log(client, auth_headers(), "call_made", 2)

        body = client.get("/api/v1/kpi/dialer/weekly", headers=auth_headers()).json()
        assert body["tenant_id"] == "tenant-1"
        assert body["calls_made"] == 2

    def test_scorecards_need_a_tenant(self, client, auth_headers):
        no_tenant = auth_headers("manager", tenant_id=None)
        assert client.get("/api/v1/kpi/dialer/weekly", headers=no_tenant).status_code == 403
        assert client.put("/api/v1/kpi/scorecard/any", json={}, headers=no_tenant).status_code == 403

    def test_closer_kpis_of_other_tenant(self, client, db, auth_headers):
        week_start = week_start_for()
        db.add(CloserKPI(user_id="c-2", tenant_id="tenant-2", week_start=week_start,
                         week_end=week_start + timedelta(days=7)))
        response = client.get("/api/v1/kpi/closers?user_id=c-2", headers=auth_headers("manager"))
        assert response.status_code == 403

    def test_event_on_other_tenant_lead_rejected(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead(tenant_id="tenant-2"))
        response = client.post("/api/v1/kpi/event", json={"eventType": "call_made", "leadId": lead.id},
                               headers=auth_headers())
        assert response.status_code == 404
        assert db.all(KpiEvent, lead_id=lead.id) == []

    def test_event_on_own_lead_accepted(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead())
        response = client.post("/api/v1/kpi/event", json={"eventType": "call_made", "leadId": lead.id},
                               headers=auth_headers())
        assert response.status_code == 201
        assert response.json()["event"]["lead_id"] == lead.id
