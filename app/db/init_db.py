import json

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.db.models import Base, EscalationRule
from app.db.session import get_engine

# L0 -> L1 after 72h, L1 -> L2 after 120h, L2 -> L3 after 168h; any department/location,
# target resolved within the same department hierarchy.
DEFAULT_RULES = [
    {"escalation_level": 0, "conditions": {"statuses": ["under_review", "in_progress"], "time_based": {"sla_hours": 72}}},
    {"escalation_level": 1, "conditions": {"statuses": ["under_review", "in_progress"], "time_based": {"sla_hours": 120}}},
    {"escalation_level": 2, "conditions": {"statuses": ["under_review", "in_progress"], "time_based": {"sla_hours": 168}}},
]


def init_db(session: Session) -> None:
    Base.metadata.create_all(bind=get_engine())
    if not get_settings().escalation_seed_default_rules:
        return

    existing = session.scalar(select(func.count()).select_from(EscalationRule)) or 0
    if existing:
        return
    for rule in DEFAULT_RULES:
        session.add(
            EscalationRule(
                escalation_level=rule["escalation_level"],
                conditions=json.dumps(rule["conditions"]),
                is_active=True,
            )
        )
    session.commit()
