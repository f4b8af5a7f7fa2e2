import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import RuleConditionError
from app.db.models import AuditLog, EscalationRule
from app.schemas.escalation import EscalationConditions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnyScope:
    def matches(self, value: int | None) -> bool:
        return True


@dataclass(frozen=True)
class Specific:
    id: int

    def matches(self, value: int | None) -> bool:
        return value is not None and value == self.id


Scope = AnyScope | Specific

ANY = AnyScope()


def scope_from_column(value: int | None) -> Scope:
    return ANY if value is None else Specific(value)


@dataclass(frozen=True)
class EscalationRuleView:
    rule_id: int
    from_department: Scope
    from_location: Scope
    to_department: Scope
    to_location: Scope
    escalation_level: int
    conditions: EscalationConditions

    def matches(self, department_id: int | None, location_id: int | None) -> bool:
        return self.from_department.matches(department_id) and self.from_location.matches(location_id)

    @property
    def sla_hours(self) -> float | None:
        return self.conditions.time_based.effective_sla_hours if self.conditions.time_based else None


def parse_conditions(rule_id: int | None, raw: str | None) -> EscalationConditions:
    if raw is None or not raw.strip():
        raise RuleConditionError(rule_id, "empty condition payload")
    try:
        return EscalationConditions.model_validate_json(raw)
    except ValidationError as exc:
        errors = "; ".join(f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}" for err in exc.errors())
        raise RuleConditionError(rule_id, errors) from exc


class RuleStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def active_rules(self) -> list[EscalationRuleView]:
        rows = self.db.scalars(
            select(EscalationRule)
            .where(EscalationRule.is_active.is_(True))
            .order_by(EscalationRule.escalation_level.asc(), EscalationRule.id.asc())
        ).all()

        rules: list[EscalationRuleView] = []
        for row in rows:
            try:
                conditions = parse_conditions(row.id, row.conditions)
            except RuleConditionError as exc:
                logger.warning("Skipping escalation rule with malformed conditions: %s", exc)
                continue
            rules.append(
                EscalationRuleView(
                    rule_id=row.id,
                    from_department=scope_from_column(row.from_department_id),
                    from_location=scope_from_column(row.from_location_id),
                    to_department=scope_from_column(row.to_department_id),
                    to_location=scope_from_column(row.to_location_id),
                    escalation_level=row.escalation_level,
                    conditions=conditions,
                )
            )
        return rules

    def list_rules(self, include_inactive: bool = True) -> list[EscalationRule]:
        query = select(EscalationRule).order_by(EscalationRule.escalation_level.asc(), EscalationRule.id.asc())
        if not include_inactive:
            query = query.where(EscalationRule.is_active.is_(True))
        return list(self.db.scalars(query).all())

    def create_rule(
        self,
        escalation_level: int,
        conditions: EscalationConditions,
        updated_by: str,
        from_department_id: int | None = None,
        from_location_id: int | None = None,
        to_department_id: int | None = None,
        to_location_id: int | None = None,
        is_active: bool = True,
    ) -> EscalationRule:
        rule = EscalationRule(
            from_department_id=from_department_id,
            from_location_id=from_location_id,
            to_department_id=to_department_id,
            to_location_id=to_location_id,
            escalation_level=escalation_level,
            conditions=conditions.model_dump_json(exclude_none=True),
            is_active=is_active,
        )
        self.db.add(rule)
        self.db.flush()
        self.db.add(
            AuditLog(
                actor=updated_by,
                action="escalation_rule_create",
                entity_type="escalation_rule",
                entity_id=rule.id,
                payload_json={"escalation_level": escalation_level, "conditions": rule.conditions, "is_active": is_active},
            )
        )
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def set_active(self, rule_id: int, is_active: bool, updated_by: str) -> EscalationRule | None:
        """Toggle a rule. Scope, level and conditions are never rewritten once a rule exists."""
        rule = self.db.get(EscalationRule, rule_id)
        if rule is None:
            return None
        previous = rule.is_active
        rule.is_active = is_active
        rule.updated_at = datetime.now(timezone.utc)
        self.db.add(
            AuditLog(
                actor=updated_by,
                action="escalation_rule_update",
                entity_type="escalation_rule",
                entity_id=rule.id,
                payload_json={"is_active_from": previous, "is_active_to": is_active},
            )
        )
        self.db.commit()
        self.db.refresh(rule)
        return rule
