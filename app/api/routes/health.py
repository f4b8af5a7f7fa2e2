from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import TERMINAL_STATUSES, get_settings
from app.db.models import Complaint, ComplaintEscalation, EscalationRule
from app.db.session import get_db
from app.schemas.common import HealthResponse

router = APIRouter(prefix="/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    settings = get_settings()
    return HealthResponse(status="ok", app_env=settings.app_env)


@router.get("/metrics")
def metrics(request: Request, db: Session = Depends(get_db)) -> dict:
    since = datetime.now(timezone.utc) - timedelta(days=1)
    worker = getattr(request.app.state, "escalation_worker", None)
    return {
        "complaints_open": db.scalar(
            select(func.count()).select_from(Complaint).where(Complaint.current_status.not_in(TERMINAL_STATUSES))
        )
        or 0,
        "escalations_total": db.scalar(select(func.count()).select_from(ComplaintEscalation)) or 0,
        "escalations_last_24h": db.scalar(
            select(func.count()).select_from(ComplaintEscalation).where(ComplaintEscalation.created_at >= since)
        )
        or 0,
        "escalation_rules_active": db.scalar(
            select(func.count()).select_from(EscalationRule).where(EscalationRule.is_active.is_(True))
        )
        or 0,
        "escalation_worker_running": bool(worker and worker.is_running),
        "escalation_worker_cycles": worker.cycles_completed if worker else 0,
    }
