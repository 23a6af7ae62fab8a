"""API tests for the dialer surface: queue, intake guardrails and handoff."""

from database.models import KpiEvent, Lead, Notification, User


def _seed(db, make_lead, make_buy_box, **fields):
    db.add(make_buy_box())
    return db.add(make_lead(**fields))


def _intake(client, headers, lead_id, body):
    return client.post(f"/api/v1/dialer/leads/{lead_id}/intake", json=body, headers=headers)


class TestAccess:
    def test_root_and_health(self, client):
        assert client.get("/").json()["service"] == "Rapid Offer Pipeline"
        health = client.get("/health").json()
        assert health["services"]["initialized"] is True

    def test_tenant_required(self, client, auth_headers):
        response = client.get("/api/v1/dialer/queue", headers=auth_headers(tenant_id=None))
        assert response.status_code == 403
        assert response.json()["detail"] == "Tenant context required"

    def test_closer_cannot_use_dialer_routes(self, client, auth_headers):
        response = client.get("/api/v1/dialer/queue", headers=auth_headers("closer"))
        assert response.status_code == 403

    def test_other_tenant_lead_is_not_found(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead(tenant_id="tenant-2"))
        response = client.get(f"/api/v1/dialer/leads/{lead.id}", headers=auth_headers())
        assert response.status_code == 404
        assert response.json()["detail"] == "Lead not found"


class TestQueue:
    def test_queue_lists_tenant_leads(self, client, db, auth_headers, make_lead):
        mine = db.add(make_lead())
        db.add(make_lead(tenant_id="tenant-2"))
        body = client.get("/api/v1/dialer/queue", headers=auth_headers()).json()
        assert [lead["id"] for lead in body["leads"]] == [mine.id]
        assert body["total"] == 1

    def test_invalid_filter(self, client, auth_headers):
        response = client.get("/api/v1/dialer/queue?filter=bogus", headers=auth_headers())
        assert response.status_code == 400

    def test_skip_trace_masked(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead(skip_trace={"status": "completed", "phones": ["555-0100"], "emails": []}))
        body = client.get(f"/api/v1/dialer/leads/{lead.id}", headers=auth_headers()).json()
        assert body["phone_count"] == 1
        assert "skip_trace" not in body


class TestIntakeGuardrails:
    def test_closer_fields_rejected(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead())
        response = _intake(client, auth_headers(), lead.id, {"offerAmount": 90000, "notes": "hi"})
        assert response.status_code == 403
        assert "offerAmount" in response.json()["detail"]
        stored = db.get(Lead, lead.id)
        assert stored.notes is None
        assert stored.dialer_intake == {}

    def test_unknown_field_rejected(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead())
        response = _intake(client, auth_headers(), lead.id, {"favoriteColor": "blue"})
        assert response.status_code == 422

    def test_out_of_range_motivation(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead())
        response = _intake(client, auth_headers(), lead.id, {"motivationRating": 9})
        assert response.status_code == 422

    def test_offshore_mode_with_pitch(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead())
        body = {"offshoreModeUsed": True, "pitchText": "We buy houses"}
        assert _intake(client, auth_headers(), lead.id, body).status_code == 400

    def test_locked_intake(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead(intake_locked=True, handoff_status="closer_review"))
        response = _intake(client, auth_headers(), lead.id, {"notes": "one more thing"})
        assert response.status_code == 403


class TestIntake:
    def test_full_intake_scores_and_routes(self, client, db, auth_headers, make_lead, make_buy_box,
                                           full_intake):
        lead = _seed(db, make_lead, make_buy_box)
        response = _intake(client, auth_headers(), lead.id, full_intake)
        assert response.status_code == 200
        body = response.json()
        assert body["offer_lane"]["suggestion"] == "leaseoption"
        assert body["lead"]["intake_completed_at"] is not None

        stored = db.get(Lead, lead.id)
        assert stored.grade == "A"
        assert stored.route == "immediate_closer"
        assert stored.priority_level == "urgent"
        assert stored.dialer_intake["recommended_offer_lane"] == "leaseoption"
        types = [e.event_type for e in db.all(KpiEvent, lead_id=lead.id)]
        assert types.count("intake_completed") == 1
        assert "lead_routed" in types

    def test_intake_completed_logged_once(self, client, db, auth_headers, make_lead, make_buy_box,
                                          full_intake):
        lead = _seed(db, make_lead, make_buy_box)
        _intake(client, auth_headers(), lead.id, full_intake)
        _intake(client, auth_headers(), lead.id, {"timelineToClose": "60 days"})
        events = db.all(KpiEvent, lead_id=lead.id, event_type="intake_completed")
        assert len(events) == 1

    def test_compliance_flags_recorded(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead())
        body = _intake(client, auth_headers(), lead.id, {"notes": "I guarantee we close Friday"}).json()
        assert body["compliance"]["has_violations"] is True
        stored = db.get(Lead, lead.id)
        assert "guarantee" in stored.dialer_intake["compliance_flags"]
        assert stored.notes == "I guarantee we close Friday"
        assert db.all(KpiEvent, lead_id=lead.id, event_type="compliance_violation")

    def test_pitch_text_is_not_stored(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead())
        _intake(client, auth_headers(), lead.id, {"pitchText": "Cash offer in 24 hours"})
        assert "pitch_text" not in db.get(Lead, lead.id).dialer_intake


class TestSendToCloser:
    def test_incomplete_intake_needs_escalation(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead())
        url = f"/api/v1/dialer/leads/{lead.id}/send-to-closer"
        assert client.post(url, json={}, headers=auth_headers()).status_code == 400

        response = client.post(url, json={"escalate": "high_priority"}, headers=auth_headers())
        assert response.status_code == 200
        body = response.json()
        assert "Occupancy Type" in body["missing_fields"]
        assert "=== PROPERTY SNAPSHOT ===" in body["handoff_summary"]

        stored = db.get(Lead, lead.id)
        assert stored.handoff_status == "closer_review"
        assert stored.intake_locked is True
        assert stored.escalated is True
        assert stored.priority_level == "urgent"

    def test_complete_intake_hands_off(self, client, db, auth_headers, make_lead, make_buy_box,
                                       full_intake):
        lead = _seed(db, make_lead, make_buy_box)
        _intake(client, auth_headers(), lead.id, full_intake)
        response = client.post(f"/api/v1/dialer/leads/{lead.id}/send-to-closer", headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["missing_fields"] == []
        assert db.all(KpiEvent, lead_id=lead.id, event_type="handoff_sent")

    def test_second_send_is_invalid(self, client, db, auth_headers, make_lead):
        lead = db.add(make_lead())
        url = f"/api/v1/dialer/leads/{lead.id}/send-to-closer"
        client.post(url, json={"escalate": "high_priority"}, headers=auth_headers())
        response = client.post(url, json={"escalate": "high_priority"}, headers=auth_headers())
        assert response.status_code == 409

    def test_handoff_notifies_closers_and_managers(self, client, db, auth_headers, make_lead):
        db.add(
            User(id="u-closer", tenant_id="tenant-1", role="closer"),
            User(id="u-manager", tenant_id="tenant-1", role="manager"),
            User(id="u-admin", tenant_id="tenant-1", role="admin"),
            User(id="u-dialer", tenant_id="tenant-1", role="dialer"),
            User(id="u-closer-2", tenant_id="tenant-2", role="closer"),
        )
        lead = db.add(make_lead())
        client.post(f"/api/v1/dialer/leads/{lead.id}/send-to-closer",
                    json={"escalate": "high_priority"}, headers=auth_headers())

        notified = {n.user_id for n in db.all(Notification, lead_id=lead.id, type="handoff")}
        assert notified == {"u-closer", "u-manager", "u-admin"}
