from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.config import get_settings
from app.db.models import ComplaintEscalation


class IdempotencyGuard:
    def __init__(self, db: Session, clock: Clock = utcnow, lookback: timedelta | None = None) -> None:
        self.db = db
        self.clock = clock
        if lookback is None:
            lookback = timedelta(minutes=max(get_settings().escalation_idempotency_lookback_minutes, 1))
        self.lookback = lookback

    def already_escalated(self, complaint_id: int, target_level: int, lookback: timedelta | None = None) -> bool:
        cutoff = self.clock() - (self.lookback if lookback is None else lookback)
        count = self.db.scalar(
            select(func.count())
            .select_from(ComplaintEscalation)
            .where(
                ComplaintEscalation.complaint_id == complaint_id,
                ComplaintEscalation.escalation_level == target_level,
                ComplaintEscalation.created_at >= cutoff,
            )
        )
        return bool(count)
