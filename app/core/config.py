from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TERMINAL_STATUSES = ("resolved", "rejected", "closed")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "development"
    log_level: str = "INFO"
    database_url: str = "sqlite:///./grievance_escalation.db"
    database_timeout_seconds: int = 10

    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    admin_api_key: str = "change-me"
    admin_api_keys: str = ""

    escalation_worker_enabled: bool = True
    escalation_worker_interval_seconds: int = 0
    escalation_max_level: int = 3
    escalation_idempotency_lookback_minutes: int = 60
    escalation_open_statuses: str = "verified,under_review,in_progress"
    escalation_cycle_lock_timeout_seconds: int = 30
    escalation_seed_default_rules: bool = True
    escalation_notifications_enabled: bool = True

    pilot_dry_run: bool = False
    pilot_dry_run_sla_override_minutes: int = 0
    test_escalation_override_minutes: int = 0

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    escalation_email_to: str = "grievance-cell@example.gov.in"
    escalation_email_from: str = "escalations@example.gov.in"

    @field_validator(
        "escalation_worker_interval_seconds",
        "pilot_dry_run_sla_override_minutes",
        "test_escalation_override_minutes",
        mode="before",
    )
    @classmethod
    def blank_override_means_disabled(cls, value: str | int | None) -> int:
        if value is None:
            return 0
        if isinstance(value, str) and not value.strip():
            return 0
        return value

    @property
    def admin_api_keys_list(self) -> list[str]:
        keys = [item.strip() for item in self.admin_api_keys.split(",") if item.strip()]
        if keys:
            return keys
        return [self.admin_api_key]

    @property
    def cors_origins_list(self) -> list[str]:
        return [item.strip() for item in self.cors_origins.split(",") if item.strip()]

    @property
    def escalation_open_statuses_list(self) -> list[str]:
        statuses = [item.strip().lower() for item in self.escalation_open_statuses.split(",") if item.strip()]
        return [status for status in statuses if status not in TERMINAL_STATUSES]

    @property
    def test_override_enabled(self) -> bool:
        return self.test_escalation_override_minutes > 0

    @property
    def dry_run_sla_override_enabled(self) -> bool:
        return self.pilot_dry_run and self.pilot_dry_run_sla_override_minutes > 0

    def validate_production_safety(self) -> None:
        if self.app_env != "production":
            return
        weak_admin = any(key in {"", "change-me"} for key in self.admin_api_keys_list)
        if weak_admin:
            raise ValueError("Unsafe admin API key for production")
        if "*" in self.cors_origins:
            raise ValueError("Unsafe CORS wildcard for production")
        if self.test_escalation_override_minutes > 0:
            raise ValueError("TEST_ESCALATION_OVERRIDE_MINUTES must not be set in production")
        if self.pilot_dry_run_sla_override_minutes > 0:
            raise ValueError("PILOT_DRY_RUN_SLA_OVERRIDE_MINUTES must not be set in production")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
