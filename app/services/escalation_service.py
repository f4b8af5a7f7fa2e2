import logging
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, as_utc, utcnow
from app.core.config import get_settings
from app.core.errors import CycleInProgressError, EscalationExecutionError
from app.db.models import AuditLog
from app.services.authority_resolver import AuthorityResolver
from app.services.candidate_scanner import CandidateScanner, CandidateView
from app.services.condition_evaluator import ConditionEvaluator, ThresholdResolver, build_threshold_resolver
from app.services.escalation_executor import EscalationExecutor, EscalationRecordView
from app.services.idempotency_guard import IdempotencyGuard
from app.services.notification_service import EscalationNotifier
from app.services.rule_store import EscalationRuleView, RuleStore, Specific

logger = logging.getLogger(__name__)

ESCALATED = "escalated"
REMINDED = "reminded"
SKIPPED = "skipped"
FAILED = "failed"

# One escalation cycle at a time per process, shared by the worker and the manual trigger.
_CYCLE_LOCK = threading.Lock()


@dataclass
class EscalationOutcome:
    complaint_id: int
    complaint_number: str | None
    outcome: str
    reason: str
    processed_at: datetime
    escalation_id: int | None = None
    from_level: int | None = None
    to_level: int | None = None
    to_department_id: int | None = None
    to_authority_id: int | None = None

    @property
    def escalated(self) -> bool:
        return self.outcome == ESCALATED

    def as_dict(self) -> dict:
        return asdict(self)


class EscalationService:
    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        threshold_resolver: ThresholdResolver | None = None,
        notifier: EscalationNotifier | None = None,
        dry_run: bool | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.settings = get_settings()
        self.dry_run = self.settings.pilot_dry_run if dry_run is None else dry_run
        self.notifier = notifier
        self.rule_store = RuleStore(db)
        self.scanner = CandidateScanner(db)
        self.evaluator = ConditionEvaluator(threshold_resolver or build_threshold_resolver(self.settings))
        self.guard = IdempotencyGuard(db, clock=clock)
        self.resolver = AuthorityResolver(db)
        self.executor = EscalationExecutor(db, dry_run=self.dry_run, clock=clock)

    def process_escalations(self, wait: bool = True) -> list[EscalationOutcome]:
        """Run one scan-evaluate-execute cycle.

        With ``wait=False`` the call gives up immediately when another cycle
        holds the lock; otherwise it waits up to the configured lock timeout.
        Raises :class:`CycleInProgressError` when the lock is not obtained.
        """
        if wait:
            acquired = _CYCLE_LOCK.acquire(timeout=max(self.settings.escalation_cycle_lock_timeout_seconds, 1))
        else:
            acquired = _CYCLE_LOCK.acquire(blocking=False)
        if not acquired:
            raise CycleInProgressError("an escalation cycle is already running")
        try:
            return self._run_cycle()
        finally:
            _CYCLE_LOCK.release()

    def _run_cycle(self) -> list[EscalationOutcome]:
        started = time.perf_counter()
        if self.dry_run:
            logger.info("[DRY RUN] Escalation cycle running in dry-run mode; writes are labelled")

        rules = self.rule_store.active_rules()
        if not rules:
            logger.info("No active escalation rules; skipping cycle")
            return []

        candidates = self.scanner.candidates()
        logger.info("Escalation cycle: %d active rules, %d candidates", len(rules), len(candidates))

        outcomes: list[EscalationOutcome] = []
        for candidate in candidates:
            try:
                outcome = self._process_candidate(candidate, rules)
            except EscalationExecutionError as exc:
                logger.error("Escalation rolled back for complaint %s: %s", candidate.complaint_id, exc)
                self._record_failure(candidate, str(exc))
                outcome = self._outcome(candidate, FAILED, f"Escalation rolled back: {exc}")
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("Storage error while processing complaint %s", candidate.complaint_id)
                outcome = self._outcome(candidate, FAILED, f"Storage error: {exc.__class__.__name__}")
            except Exception as exc:  # noqa: BLE001
                self.db.rollback()
                logger.exception("Unexpected error while processing complaint %s", candidate.complaint_id)
                outcome = self._outcome(candidate, FAILED, f"Unexpected error: {exc.__class__.__name__}")
            outcomes.append(outcome)

        escalated = sum(1 for item in outcomes if item.outcome == ESCALATED)
        reminded = sum(1 for item in outcomes if item.outcome == REMINDED)
        failed = sum(1 for item in outcomes if item.outcome == FAILED)
        logger.info(
            "Escalation cycle completed in %.2fs: %d escalated, %d reminders, %d failed, %d skipped",
            time.perf_counter() - started,
            escalated,
            reminded,
            failed,
            len(outcomes) - escalated - reminded - failed,
        )
        return outcomes

    def _process_candidate(self, candidate: CandidateView, rules: list[EscalationRuleView]) -> EscalationOutcome:
        level = candidate.current_escalation_level
        if level >= self.settings.escalation_max_level:
            return self._outcome(candidate, SKIPPED, f"Maximum escalation level {level} reached")

        applicable = [
            rule
            for rule in rules
            if rule.escalation_level == level
            and rule.matches(candidate.assigned_department_id, candidate.location_id)
        ]
        if not applicable:
            logger.info("Complaint %s: no escalation rule for level %s", candidate.complaint_id, level)
            return self._outcome(candidate, SKIPPED, f"No matching rule for level {level}")

        reason = "Conditions not met"
        for rule in applicable:
            now = self.clock()
            if rule.conditions.is_reminder:
                reminder = self._process_reminder(candidate, rule, now)
                if reminder is not None:
                    return reminder
                continue

            should_escalate, reason = self.evaluator.should_escalate(candidate, rule, now)
            if not should_escalate:
                logger.debug("Complaint %s, rule %s: %s", candidate.complaint_id, rule.rule_id, reason)
                continue

            target_level = level + 1
            if self.guard.already_escalated(candidate.complaint_id, target_level):
                logger.debug("Complaint %s already escalated to level %s recently", candidate.complaint_id, target_level)
                return self._outcome(candidate, SKIPPED, f"Already escalated to level {target_level} within lookback")

            target_department = (
                rule.to_department.id if isinstance(rule.to_department, Specific) else candidate.assigned_department_id
            )
            target_location = rule.to_location.id if isinstance(rule.to_location, Specific) else candidate.location_id
            pincode = candidate.pincode if target_location == candidate.location_id else None
            authority = self.resolver.find_authority(target_department, target_location, target_level, pincode)
            if authority is None:
                return self._outcome(
                    candidate,
                    SKIPPED,
                    f"No authority at level {target_level} for department {target_department}, location {target_location}",
                )

            record = self.executor.execute(candidate, rule, authority, reason)
            if record is None:
                return self._outcome(candidate, SKIPPED, "Complaint changed since scan")

            self._record_triggered(candidate, record)
            if self.notifier is not None:
                self.notifier.notify_escalation(candidate.complaint_number, record, authority, dry_run=self.dry_run)
            return EscalationOutcome(
                complaint_id=candidate.complaint_id,
                complaint_number=candidate.complaint_number,
                outcome=ESCALATED,
                reason=record.reason,
                processed_at=self.clock(),
                escalation_id=record.escalation_id,
                from_level=record.from_level,
                to_level=record.to_level,
                to_department_id=record.to_department_id,
                to_authority_id=record.to_authority_id,
            )

        return self._outcome(candidate, SKIPPED, reason)

    def _process_reminder(
        self, candidate: CandidateView, rule: EscalationRuleView, now: datetime
    ) -> EscalationOutcome | None:
        last_reminder = self._last_reminder_at(candidate.complaint_id)
        if last_reminder is None:
            due, reason = self.evaluator.should_escalate(candidate, rule, now)
            if not due:
                return None
            reason = f"First reminder: {reason}"
        else:
            since = now - as_utc(last_reminder)
            if since < timedelta(hours=rule.conditions.reminder_interval_hours):
                return None
            reason = f"Reminder sent (last reminder {since.total_seconds() / 3600:.1f} hours ago)"

        reason = self.executor.label(reason)
        self.db.add(
            AuditLog(
                actor="system",
                action="reminder",
                entity_type="complaint",
                entity_id=candidate.complaint_id,
                payload_json={
                    "complaint_id": candidate.complaint_id,
                    "rule_id": rule.rule_id,
                    "level": candidate.current_escalation_level,
                    "reminder_reason": reason,
                    "dry_run": self.dry_run,
                },
                created_at=now,
            )
        )
        self.db.commit()

        if self.notifier is not None:
            self.notifier.notify_reminder(candidate.complaint_number, reason)
        return self._outcome(candidate, REMINDED, reason)

    def _last_reminder_at(self, complaint_id: int) -> datetime | None:
        return self.db.scalar(
            select(func.max(AuditLog.created_at)).where(
                AuditLog.entity_type == "complaint",
                AuditLog.entity_id == complaint_id,
                AuditLog.action == "reminder",
            )
        )

    def _record_triggered(self, candidate: CandidateView, record: EscalationRecordView) -> None:
        """Per-event pilot metric, written after the escalation committed."""
        now = self.clock()
        try:
            self.db.add(
                AuditLog(
                    actor="system",
                    action="escalation_triggered",
                    entity_type="complaint",
                    entity_id=candidate.complaint_id,
                    payload_json={
                        "complaint_id": candidate.complaint_id,
                        "escalation_id": record.escalation_id,
                        "level_from": record.from_level,
                        "level_to": record.to_level,
                        "department_id": record.to_department_id,
                        "hours_since_status_change": round(
                            (now - candidate.last_status_change_at).total_seconds() / 3600, 2
                        ),
                        "dry_run": self.dry_run,
                    },
                    created_at=now,
                )
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Could not record escalation metric for complaint %s: %s", candidate.complaint_id, exc)

    def _record_failure(self, candidate: CandidateView, error: str) -> None:
        try:
            self.db.add(
                AuditLog(
                    actor="system",
                    action="escalation_failed",
                    entity_type="complaint",
                    entity_id=candidate.complaint_id,
                    payload_json={
                        "complaint_id": candidate.complaint_id,
                        "level_from": candidate.current_escalation_level,
                        "department_from": candidate.assigned_department_id,
                        "error": error,
                        "dry_run": self.dry_run,
                    },
                    created_at=self.clock(),
                )
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Could not audit failed escalation for complaint %s: %s", candidate.complaint_id, exc)

    def _outcome(self, candidate: CandidateView, outcome: str, reason: str) -> EscalationOutcome:
        return EscalationOutcome(
            complaint_id=candidate.complaint_id,
            complaint_number=candidate.complaint_number,
            outcome=outcome,
            reason=reason,
            processed_at=self.clock(),
        )
