class EscalationError(Exception):
    """Base class for escalation engine failures."""


class RuleConditionError(EscalationError):
    """A rule's condition payload could not be parsed."""

    def __init__(self, rule_id: int | None, message: str) -> None:
        super().__init__(f"rule {rule_id}: {message}")
        self.rule_id = rule_id


class EscalationExecutionError(EscalationError):
    """The escalation unit of work failed and was rolled back."""

    def __init__(self, complaint_id: int, message: str) -> None:
        super().__init__(f"complaint {complaint_id}: {message}")
        self.complaint_id = complaint_id


class CycleInProgressError(EscalationError):
    """Another escalation cycle holds the cycle lock."""
