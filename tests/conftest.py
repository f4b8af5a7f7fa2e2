import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

BASE_ENV = {
    "APP_ENV": "development",
    "ADMIN_API_KEY": "test-admin-key",
    "ADMIN_API_KEYS": "",
    "ESCALATION_WORKER_ENABLED": "false",
    "ESCALATION_WORKER_INTERVAL_SECONDS": "0",
    "ESCALATION_SEED_DEFAULT_RULES": "false",
    "ESCALATION_NOTIFICATIONS_ENABLED": "true",
    "ESCALATION_MAX_LEVEL": "3",
    "ESCALATION_CYCLE_LOCK_TIMEOUT_SECONDS": "30",
    "PILOT_DRY_RUN": "false",
    "PILOT_DRY_RUN_SLA_OVERRIDE_MINUTES": "0",
    "TEST_ESCALATION_OVERRIDE_MINUTES": "0",
    "SMTP_HOST": "",
}


def _reset_runtime():
    from app.core.config import get_settings
    from app.db.session import get_engine, get_session_factory

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


@pytest.fixture()
def configure(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test_escalation.db'}")
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)
    _reset_runtime()

    def _configure(**overrides: str) -> None:
        for key, value in overrides.items():
            monkeypatch.setenv(key, value)
        from app.core.config import get_settings

        get_settings.cache_clear()

    yield _configure
    _reset_runtime()


@pytest.fixture()
def db(configure):
    from app.db.init_db import init_db
    from app.db.session import get_session_factory

    session = get_session_factory()()
    try:
        init_db(session)
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(configure):
    from app.main import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


class Seeder:
    def __init__(self, db) -> None:
        self.db = db
        self._sequence = 0

    def complaint(
        self,
        status: str = "under_review",
        priority: str = "medium",
        department_id: int | None = 10,
        location_id: int | None = 100,
        pincode: str | None = None,
        level: int = 0,
        age: timedelta = timedelta(hours=73),
        last_status_change: timedelta | None = None,
    ):
        from app.db.models import Complaint, ComplaintStatusHistory

        self._sequence += 1
        now = datetime.now(timezone.utc)
        complaint = Complaint(
            complaint_number=f"GRV-{self._sequence:05d}",
            title=f"Streetlight outage #{self._sequence}",
            current_status=status,
            priority=priority,
            assigned_department_id=department_id,
            location_id=location_id,
            pincode=pincode,
            current_escalation_level=level,
            created_at=now - age,
        )
        self.db.add(complaint)
        self.db.flush()
        if last_status_change is not None:
            self.db.add(
                ComplaintStatusHistory(
                    complaint_id=complaint.id,
                    old_status="submitted",
                    new_status=status,
                    changed_by_type="authority",
                    created_at=now - last_status_change,
                )
            )
        self.db.commit()
        return complaint

    def authority(
        self,
        department_id: int = 10,
        location_id: int = 100,
        level: int = 1,
        pincode: str | None = None,
        email: str | None = None,
        is_active: bool = True,
    ):
        from app.db.models import Authority

        authority = Authority(
            name=f"Dept {department_id} L{level} officer",
            department_id=department_id,
            location_id=location_id,
            pincode=pincode,
            level=level,
            email=email,
            is_active=is_active,
        )
        self.db.add(authority)
        self.db.commit()
        return authority

    def rule(
        self,
        level: int = 0,
        sla_hours: float | None = 72,
        statuses: list[str] | None = None,
        priorities: list[str] | None = None,
        from_department_id: int | None = None,
        from_location_id: int | None = None,
        to_department_id: int | None = None,
        to_location_id: int | None = None,
        is_active: bool = True,
        raw_conditions: str | None = None,
        **extra_conditions,
    ):
        from app.db.models import EscalationRule

        if raw_conditions is None:
            conditions: dict = {"statuses": statuses or ["under_review", "in_progress"]}
            if sla_hours is not None:
                conditions["time_based"] = {"sla_hours": sla_hours}
            if priorities:
                conditions["priorities"] = priorities
            conditions.update(extra_conditions)
            raw_conditions = json.dumps(conditions)

        rule = EscalationRule(
            from_department_id=from_department_id,
            from_location_id=from_location_id,
            to_department_id=to_department_id,
            to_location_id=to_location_id,
            escalation_level=level,
            conditions=raw_conditions,
            is_active=is_active,
        )
        self.db.add(rule)
        self.db.commit()
        return rule


@pytest.fixture()
def seed(db):
    return Seeder(db)
