from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Ten years of hours.
MAX_CONDITION_HOURS = 24 * 365 * 10


class TimeBasedCondition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sla_hours: float | None = Field(default=None, ge=0, le=MAX_CONDITION_HOURS, allow_inf_nan=False)
    # Legacy name for sla_hours, still present in older rule rows.
    hours_since_status_change: float | None = Field(default=None, ge=0, le=MAX_CONDITION_HOURS, allow_inf_nan=False)
    hours_since_last_update: float | None = Field(default=None, ge=0, le=MAX_CONDITION_HOURS, allow_inf_nan=False)
    hours_since_creation: float | None = Field(default=None, ge=0, le=MAX_CONDITION_HOURS, allow_inf_nan=False)

    @property
    def effective_sla_hours(self) -> float | None:
        return self.sla_hours or self.hours_since_status_change or None

    @property
    def has_any(self) -> bool:
        return bool(self.effective_sla_hours or self.hours_since_last_update or self.hours_since_creation)


class EscalationConditions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    statuses: list[str] | None = None
    priorities: list[str] | None = None
    time_based: TimeBasedCondition | None = None
    is_reminder: bool = False
    reminder_interval_hours: float | None = Field(default=None, gt=0, le=MAX_CONDITION_HOURS, allow_inf_nan=False)

    @field_validator("statuses", "priorities")
    @classmethod
    def normalize_members(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        cleaned = [item.strip().lower() for item in value if item and item.strip()]
        return cleaned or None

    @model_validator(mode="after")
    def require_time_condition(self) -> "EscalationConditions":
        if self.time_based is None or not self.time_based.has_any:
            raise ValueError("conditions must define at least one time_based threshold")
        if self.is_reminder and not self.reminder_interval_hours:
            raise ValueError("reminder rules require reminder_interval_hours")
        return self


class EscalationOutcomeResponse(BaseModel):
    complaint_id: int
    complaint_number: str | None = None
    outcome: str
    reason: str
    escalation_id: int | None = None
    from_level: int | None = None
    to_level: int | None = None
    to_department_id: int | None = None
    to_authority_id: int | None = None
    processed_at: datetime


class ProcessEscalationsResponse(BaseModel):
    processed: int
    escalated: int
    dry_run: bool
    results: list[EscalationOutcomeResponse]


class EscalationRuleCreateRequest(BaseModel):
    from_department_id: int | None = None
    from_location_id: int | None = None
    to_department_id: int | None = None
    to_location_id: int | None = None
    escalation_level: int = Field(ge=0)
    conditions: EscalationConditions
    is_active: bool = True
    updated_by: str = "admin"


class EscalationRuleActiveRequest(BaseModel):
    is_active: bool
    updated_by: str = "admin"


class EscalationRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    from_department_id: int | None
    from_location_id: int | None
    to_department_id: int | None
    to_location_id: int | None
    escalation_level: int
    conditions: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime | None


class EscalationRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    complaint_id: int
    rule_id: int | None
    from_department_id: int | None
    from_authority_id: int | None
    to_department_id: int
    to_authority_id: int | None
    escalation_level: int
    reason: str | None
    escalated_by_type: str
    status_history_id: int | None
    dry_run: bool
    created_at: datetime
