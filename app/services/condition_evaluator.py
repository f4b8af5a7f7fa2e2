"""SLA and condition evaluation for escalation rules.

The SLA threshold of a rule is provided by a ``ThresholdResolver`` chosen once
at startup. Production deployments resolve the threshold from the rule itself;
test and pilot deployments may install a fixed override that replaces every
rule's SLA for the life of the process.
"""

import logging
from datetime import datetime, timedelta
from typing import Protocol

from app.core.config import Settings
from app.services.candidate_scanner import CandidateView
from app.services.rule_store import EscalationRuleView

logger = logging.getLogger(__name__)


class ThresholdResolver(Protocol):
    label: str

    def __call__(self, rule: EscalationRuleView) -> timedelta | None:
        ...


class RuleSlaThreshold:
    label = "rule"

    def __call__(self, rule: EscalationRuleView) -> timedelta | None:
        hours = rule.sla_hours
        if not hours:
            return None
        return timedelta(hours=hours)


class FixedOverrideThreshold:
    def __init__(self, minutes: float, label: str) -> None:
        if minutes <= 0:
            raise ValueError("override minutes must be positive")
        self.minutes = minutes
        self.label = label

    def __call__(self, rule: EscalationRuleView) -> timedelta | None:
        return timedelta(minutes=self.minutes)


def build_threshold_resolver(settings: Settings) -> ThresholdResolver:
    if settings.test_override_enabled:
        logger.warning(
            "[TEST OVERRIDE] SLA thresholds replaced by %d minutes for every rule; never enable in production",
            settings.test_escalation_override_minutes,
        )
        return FixedOverrideThreshold(settings.test_escalation_override_minutes, label="test override")
    if settings.dry_run_sla_override_enabled:
        logger.warning(
            "[DRY RUN] SLA thresholds replaced by %d minutes for every rule",
            settings.pilot_dry_run_sla_override_minutes,
        )
        return FixedOverrideThreshold(settings.pilot_dry_run_sla_override_minutes, label="dry run override")
    return RuleSlaThreshold()


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


class ConditionEvaluator:
    def __init__(self, threshold_resolver: ThresholdResolver | None = None) -> None:
        self.threshold_resolver = threshold_resolver or RuleSlaThreshold()

    def should_escalate(
        self, candidate: CandidateView, rule: EscalationRuleView, now: datetime
    ) -> tuple[bool, str]:
        conditions = rule.conditions

        if conditions.statuses and candidate.current_status.lower() not in conditions.statuses:
            return False, f"Status condition not met ({candidate.current_status})"

        if conditions.priorities and candidate.priority.lower() not in conditions.priorities:
            return False, f"Priority condition not met ({candidate.priority})"

        time_based = conditions.time_based
        threshold = self.threshold_resolver(rule)
        elapsed = now - candidate.last_status_change_at
        if threshold is not None and elapsed < threshold:
            if isinstance(self.threshold_resolver, FixedOverrideThreshold):
                return False, (
                    f"SLA not breached: {elapsed.total_seconds() / 60:.1f} minutes elapsed "
                    f"({self.threshold_resolver.label}: {self.threshold_resolver.minutes:g} minutes)"
                )
            return False, f"SLA not breached: {_hours(elapsed):.1f} hours elapsed (SLA: {_hours(threshold):g} hours)"

        if time_based is not None and time_based.hours_since_last_update:
            last_update = candidate.updated_at or candidate.created_at
            since_update = now - last_update
            if _hours(since_update) < time_based.hours_since_last_update:
                return False, f"Not enough time since last update: {_hours(since_update):.1f} hours"

        if time_based is not None and time_based.hours_since_creation:
            since_creation = now - candidate.created_at
            if _hours(since_creation) < time_based.hours_since_creation:
                return False, f"Not enough time since creation: {_hours(since_creation):.1f} hours"

        if threshold is None:
            return True, "Time conditions met"
        if isinstance(self.threshold_resolver, FixedOverrideThreshold):
            return True, (
                f"SLA breached: {elapsed.total_seconds() / 60:.1f} minutes since last status change "
                f"({self.threshold_resolver.label}: {self.threshold_resolver.minutes:g} minutes)"
            )
        return True, f"SLA breached: {_hours(elapsed):.1f} hours since last status change (SLA: {_hours(threshold):g} hours)"
