import logging

from sqlalchemy import select

from app.db.models import AuditLog, EscalationRule
from app.services.rule_store import ANY, RuleStore, Specific


def test_active_rules_excludes_inactive_and_orders_by_level(seed, db):
    seed.rule(level=1, sla_hours=120)
    seed.rule(level=0, sla_hours=72, from_department_id=10)
    seed.rule(level=0, sla_hours=24, is_active=False)

    rules = RuleStore(db).active_rules()

    assert [rule.escalation_level for rule in rules] == [0, 1]
    assert rules[0].from_department == Specific(10)
    assert rules[0].from_location is ANY
    assert rules[0].sla_hours == 72


def test_malformed_conditions_are_skipped_with_warning(seed, db, caplog):
    good = seed.rule(level=0, sla_hours=72)
    seed.rule(level=0, raw_conditions="{not json")
    seed.rule(level=0, raw_conditions='{"statuses": "under_review", "time_based": {"sla_hours": 72}}')
    seed.rule(level=0, raw_conditions='{"statuses": ["under_review"]}')
    seed.rule(level=0, raw_conditions='{"time_based": {"sla_hours": -5}}')
    seed.rule(level=0, raw_conditions="")

    with caplog.at_level(logging.WARNING, logger="app.services.rule_store"):
        rules = RuleStore(db).active_rules()

    assert [rule.rule_id for rule in rules] == [good.id]
    assert caplog.text.count("malformed conditions") == 5


def test_scope_matching_uses_any_or_specific():
    assert ANY.matches(None) is True
    assert ANY.matches(7) is True
    assert Specific(7).matches(7) is True
    assert Specific(7).matches(8) is False
    assert Specific(7).matches(None) is False


def test_set_active_only_touches_flag_and_writes_audit(seed, db):
    rule = seed.rule(level=0, sla_hours=72, from_department_id=10)
    original_conditions = rule.conditions

    updated = RuleStore(db).set_active(rule.id, False, updated_by="ops")

    assert updated is not None
    assert updated.is_active is False
    assert updated.updated_at is not None
    assert updated.conditions == original_conditions
    assert updated.from_department_id == 10
    assert RuleStore(db).active_rules() == []

    audit = db.scalars(select(AuditLog).where(AuditLog.action == "escalation_rule_update")).one()
    assert audit.actor == "ops"
    assert audit.payload_json == {"is_active_from": True, "is_active_to": False}


def test_set_active_unknown_rule_returns_none(db):
    assert RuleStore(db).set_active(999, True, updated_by="ops") is None


def test_default_rules_seeded_when_enabled(configure):
    configure(ESCALATION_SEED_DEFAULT_RULES="true")

    from app.db.init_db import init_db
    from app.db.session import get_session_factory

    session = get_session_factory()()
    try:
        init_db(session)
        init_db(session)
        levels = session.scalars(select(EscalationRule.escalation_level).order_by(EscalationRule.escalation_level)).all()
        assert levels == [0, 1, 2]
        assert len(RuleStore(session).active_rules()) == 3
    finally:
        session.close()


def test_out_of_range_hours_are_skipped(seed, db, caplog):
    good = seed.rule(level=0, sla_hours=72, from_department_id=10)
    seed.rule(level=0, from_department_id=99, raw_conditions='{"time_based": {"sla_hours": 1e12}}')
    seed.rule(level=0, raw_conditions='{"time_based": {"sla_hours": 1e400}}')
    seed.rule(level=0, raw_conditions='{"time_based": {"sla_hours": 72, "hours_since_creation": 1e9}}')
    seed.rule(
        level=0,
        raw_conditions='{"is_reminder": true, "reminder_interval_hours": 1e12, "time_based": {"sla_hours": 48}}',
    )

    with caplog.at_level(logging.WARNING, logger="app.services.rule_store"):
        rules = RuleStore(db).active_rules()

    assert [rule.rule_id for rule in rules] == [good.id]
    assert caplog.text.count("malformed conditions") == 4
