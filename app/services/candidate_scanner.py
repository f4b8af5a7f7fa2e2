import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import DateTime, func, select
from sqlalchemy.orm import Session

from app.core.clock import as_utc
from app.core.config import TERMINAL_STATUSES, get_settings
from app.db.models import Complaint, ComplaintStatusHistory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateView:
    complaint_id: int
    complaint_number: str
    current_status: str
    priority: str
    assigned_department_id: int
    assigned_authority_id: int | None
    location_id: int
    pincode: str | None
    current_escalation_level: int
    created_at: datetime
    updated_at: datetime | None
    last_status_change_at: datetime


class CandidateScanner:
    def __init__(self, db: Session, open_statuses: list[str] | None = None) -> None:
        self.db = db
        self.open_statuses = open_statuses if open_statuses is not None else get_settings().escalation_open_statuses_list

    def candidates(self) -> list[CandidateView]:
        if not self.open_statuses:
            logger.warning("No open statuses configured; escalation scan is empty")
            return []

        last_change = (
            select(func.max(ComplaintStatusHistory.created_at))
            .where(ComplaintStatusHistory.complaint_id == Complaint.id)
            .correlate(Complaint)
            .scalar_subquery()
        )
        last_status_change_at = func.coalesce(last_change, Complaint.created_at, type_=DateTime(timezone=True))

        rows = self.db.execute(
            select(Complaint, last_status_change_at.label("last_status_change_at"))
            .where(
                Complaint.current_status.in_(self.open_statuses),
                Complaint.current_status.not_in(TERMINAL_STATUSES),
                Complaint.assigned_department_id.is_not(None),
                Complaint.location_id.is_not(None),
            )
            .order_by(Complaint.created_at.asc(), Complaint.id.asc())
            .execution_options(populate_existing=True)
        ).all()

        return [
            CandidateView(
                complaint_id=complaint.id,
                complaint_number=complaint.complaint_number,
                current_status=complaint.current_status,
                priority=complaint.priority,
                assigned_department_id=complaint.assigned_department_id,
                assigned_authority_id=complaint.assigned_authority_id,
                location_id=complaint.location_id,
                pincode=complaint.pincode,
                current_escalation_level=complaint.current_escalation_level or 0,
                created_at=as_utc(complaint.created_at),
                updated_at=as_utc(complaint.updated_at) if complaint.updated_at else None,
                last_status_change_at=as_utc(changed_at or complaint.created_at),
            )
            for complaint, changed_at in rows
        ]
