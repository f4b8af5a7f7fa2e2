from datetime import timedelta

ADMIN = {"X-Admin-Key": "test-admin-key"}


def test_health(client):
    response = client.get("/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "app_env": "development"}


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "Grievance Escalation API"


def test_process_requires_admin_key(client):
    assert client.post("/v1/escalations/process").status_code == 401
    assert client.post("/v1/escalations/process", headers={"X-Admin-Key": "wrong"}).status_code == 401


def test_process_runs_cycle(client, seed):
    seed.rule(level=0, sla_hours=72)
    authority = seed.authority(level=1)
    complaint = seed.complaint(age=timedelta(hours=80))
    seed.complaint(age=timedelta(hours=2))

    response = client.post("/v1/escalations/process", headers=ADMIN)

    assert response.status_code == 200
    body = response.json()
    assert body["processed"] == 2
    assert body["escalated"] == 1
    assert body["dry_run"] is False
    escalated = next(item for item in body["results"] if item["outcome"] == "escalated")
    assert escalated["complaint_id"] == complaint.id
    assert escalated["to_level"] == 1
    assert escalated["to_authority_id"] == authority.id

    ledger = client.get(f"/v1/admin/complaints/{complaint.id}/escalations", headers=ADMIN)
    assert ledger.status_code == 200
    records = ledger.json()
    assert len(records) == 1
    assert records[0]["escalation_level"] == 1
    assert records[0]["escalated_by_type"] == "system"


def test_process_returns_conflict_while_cycle_running(client, configure):
    from app.services import escalation_service

    configure(ESCALATION_CYCLE_LOCK_TIMEOUT_SECONDS="1")
    escalation_service._CYCLE_LOCK.acquire()
    try:
        response = client.post("/v1/escalations/process", headers=ADMIN)
    finally:
        escalation_service._CYCLE_LOCK.release()

    assert response.status_code == 409


def test_rule_admin_endpoints(client):
    payload = {
        "escalation_level": 0,
        "from_department_id": 10,
        "conditions": {"statuses": ["Under_Review"], "time_based": {"sla_hours": 48}},
        "updated_by": "ops-lead",
    }
    created = client.post("/v1/admin/escalation-rules", json=payload, headers=ADMIN)
    assert created.status_code == 201
    rule = created.json()
    assert rule["is_active"] is True
    assert '"under_review"' in rule["conditions"]

    listed = client.get("/v1/admin/escalation-rules", headers=ADMIN)
    assert [item["id"] for item in listed.json()] == [rule["id"]]

    deactivated = client.post(
        f"/v1/admin/escalation-rules/{rule['id']}/active", json={"is_active": False}, headers=ADMIN
    )
    assert deactivated.status_code == 200
    assert deactivated.json()["is_active"] is False
    assert deactivated.json()["conditions"] == rule["conditions"]

    active_only = client.get("/v1/admin/escalation-rules", params={"include_inactive": False}, headers=ADMIN)
    assert active_only.json() == []


def test_rule_without_time_condition_is_rejected(client):
    payload = {"escalation_level": 0, "conditions": {"statuses": ["under_review"]}}
    response = client.post("/v1/admin/escalation-rules", json=payload, headers=ADMIN)
    assert response.status_code == 422


def test_admin_endpoints_not_found(client):
    missing_rule = client.post("/v1/admin/escalation-rules/999/active", json={"is_active": True}, headers=ADMIN)
    missing_complaint = client.get("/v1/admin/complaints/999/escalations", headers=ADMIN)
    assert missing_rule.status_code == 404
    assert missing_complaint.status_code == 404


def test_admin_endpoints_require_key(client):
    assert client.get("/v1/admin/escalation-rules").status_code == 401


def test_metrics(client, seed):
    seed.rule(level=0, sla_hours=72)
    seed.rule(level=1, sla_hours=72, is_active=False)
    seed.authority(level=1)
    seed.complaint(age=timedelta(hours=80))
    seed.complaint(status="resolved")
    client.post("/v1/escalations/process", headers=ADMIN)

    body = client.get("/v1/metrics").json()

    assert body["complaints_open"] == 1
    assert body["escalations_total"] == 1
    assert body["escalations_last_24h"] == 1
    assert body["escalation_rules_active"] == 1
    assert body["escalation_worker_running"] is False


def test_request_id_is_echoed(client):
    response = client.get("/v1/health", headers={"x-request-id": "req-42"})
    assert response.headers["x-request-id"] == "req-42"
    assert "x-process-time-ms" in response.headers


def test_rule_with_out_of_range_hours_is_rejected(client):
    for conditions in (
        {"time_based": {"sla_hours": 1e12}},
        {"time_based": {"sla_hours": 72}, "is_reminder": True, "reminder_interval_hours": 1e12},
    ):
        payload = {"escalation_level": 0, "conditions": conditions}
        response = client.post("/v1/admin/escalation-rules", json=payload, headers=ADMIN)
        assert response.status_code == 422

    assert client.get("/v1/admin/escalation-rules", headers=ADMIN).json() == []
