"""Atomic escalation of a single complaint.

One call to :meth:`EscalationExecutor.execute` is one unit of work: the
complaint reassignment, the timeline event, the escalation ledger row and the
audit entry commit together or not at all. The lifecycle status is never
changed by an escalation; the timeline event records ``old_status ==
new_status`` with a note describing the level change.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.config import get_settings
from app.core.errors import EscalationExecutionError
from app.db.models import AuditLog, Complaint, ComplaintEscalation, ComplaintStatusHistory
from app.services.authority_resolver import AuthorityView
from app.services.candidate_scanner import CandidateView
from app.services.rule_store import EscalationRuleView

logger = logging.getLogger(__name__)

DRY_RUN_PREFIX = "[DRY RUN] "


@dataclass(frozen=True)
class EscalationRecordView:
    escalation_id: int
    status_history_id: int
    complaint_id: int
    from_level: int
    to_level: int
    from_department_id: int | None
    to_department_id: int
    from_authority_id: int | None
    to_authority_id: int
    reason: str


class EscalationExecutor:
    def __init__(self, db: Session, dry_run: bool | None = None, clock: Clock = utcnow) -> None:
        self.db = db
        self.settings = get_settings()
        self.dry_run = self.settings.pilot_dry_run if dry_run is None else dry_run
        self.clock = clock

    def label(self, text: str) -> str:
        return f"{DRY_RUN_PREFIX}{text}" if self.dry_run else text

    def execute(
        self,
        candidate: CandidateView,
        rule: EscalationRuleView,
        authority: AuthorityView,
        reason: str,
    ) -> EscalationRecordView | None:
        """Escalate ``candidate`` one level to ``authority``.

        Returns ``None`` without writing anything when the complaint moved
        since it was scanned (level, assignment or status changed). Raises
        :class:`EscalationExecutionError` after rolling back on any failure.
        """
        from_level = candidate.current_escalation_level
        to_level = from_level + 1
        if to_level > self.settings.escalation_max_level:
            raise EscalationExecutionError(candidate.complaint_id, f"level {to_level} exceeds maximum")

        now = self.clock()
        labelled_reason = self.label(reason)
        note = self.label(f"Escalated from level {from_level} to level {to_level} ({authority.name}): {reason}")

        try:
            complaint = self.db.scalar(
                select(Complaint)
                .where(Complaint.id == candidate.complaint_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if complaint is None or self._moved(complaint, candidate):
                self.db.rollback()
                logger.info("Complaint %s changed since scan; escalation deferred", candidate.complaint_id)
                return None

            before = self._snapshot(complaint)
            complaint.assigned_department_id = authority.department_id
            complaint.assigned_authority_id = authority.authority_id
            complaint.current_escalation_level = to_level
            complaint.updated_at = now

            history = ComplaintStatusHistory(
                complaint_id=complaint.id,
                old_status=complaint.current_status,
                new_status=complaint.current_status,
                changed_by_type="system",
                assigned_department_id=authority.department_id,
                assigned_authority_id=authority.authority_id,
                notes=note,
                reason=labelled_reason,
                created_at=now,
            )
            self.db.add(history)
            self.db.flush()

            record = ComplaintEscalation(
                complaint_id=complaint.id,
                rule_id=rule.rule_id,
                from_department_id=before["department_id"],
                from_authority_id=before["authority_id"],
                to_department_id=authority.department_id,
                to_authority_id=authority.authority_id,
                escalation_level=to_level,
                reason=labelled_reason,
                escalated_by_type="system",
                status_history_id=history.id,
                dry_run=self.dry_run,
                created_at=now,
            )
            self.db.add(record)
            self.db.flush()

            self.db.add(self._audit_entry(complaint, record, before, labelled_reason, now))
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            raise EscalationExecutionError(candidate.complaint_id, str(exc)) from exc

        logger.info(
            "%sEscalated complaint %s from level %s to %s (department %s -> %s, authority %s)",
            DRY_RUN_PREFIX if self.dry_run else "",
            candidate.complaint_id,
            from_level,
            to_level,
            before["department_id"],
            authority.department_id,
            authority.authority_id,
        )
        return EscalationRecordView(
            escalation_id=record.id,
            status_history_id=history.id,
            complaint_id=candidate.complaint_id,
            from_level=from_level,
            to_level=to_level,
            from_department_id=before["department_id"],
            to_department_id=authority.department_id,
            from_authority_id=before["authority_id"],
            to_authority_id=authority.authority_id,
            reason=labelled_reason,
        )

    @staticmethod
    def _moved(complaint: Complaint, candidate: CandidateView) -> bool:
        return (
            (complaint.current_escalation_level or 0) != candidate.current_escalation_level
            or complaint.assigned_department_id != candidate.assigned_department_id
            or complaint.current_status != candidate.current_status
        )

    @staticmethod
    def _snapshot(complaint: Complaint) -> dict:
        return {
            "status": complaint.current_status,
            "level": complaint.current_escalation_level or 0,
            "department_id": complaint.assigned_department_id,
            "authority_id": complaint.assigned_authority_id,
        }

    def _audit_entry(
        self,
        complaint: Complaint,
        record: ComplaintEscalation,
        before: dict,
        reason: str,
        now: datetime,
    ) -> AuditLog:
        after = self._snapshot(complaint)
        payload = {
            "complaint_id": complaint.id,
            "escalation_id": record.id,
            "rule_id": record.rule_id,
            "level_from": before["level"],
            "level_to": after["level"],
            "department_from": before["department_id"],
            "department_to": after["department_id"],
            "authority_from": before["authority_id"],
            "authority_to": after["authority_id"],
            "status": after["status"],
            "reason": reason,
            "dry_run": self.dry_run,
            "before": before,
            "after": after,
        }
        if self.dry_run:
            payload["dry_run_sla_override_minutes"] = self.settings.pilot_dry_run_sla_override_minutes
        return AuditLog(
            actor="system",
            action="escalation",
            entity_type="complaint",
            entity_id=complaint.id,
            payload_json=payload,
            created_at=now,
        )
