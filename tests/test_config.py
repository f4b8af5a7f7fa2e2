import pytest

from app.core.config import Settings


def _production(**overrides) -> Settings:
    values = {
        "app_env": "production",
        "admin_api_key": "a-long-random-admin-key",
        "cors_origins": "https://grievance.example.gov.in",
    }
    values.update(overrides)
    return Settings(**values)


def test_production_settings_accept_safe_values():
    _production().validate_production_safety()


@pytest.mark.parametrize(
    "overrides",
    [
        {"admin_api_key": "change-me"},
        {"admin_api_keys": "good-key,change-me"},
        {"cors_origins": "*"},
        {"test_escalation_override_minutes": 2},
        {"pilot_dry_run": True, "pilot_dry_run_sla_override_minutes": 5},
    ],
)
def test_production_rejects_unsafe_values(overrides):
    with pytest.raises(ValueError):
        _production(**overrides).validate_production_safety()


def test_development_allows_overrides():
    Settings(app_env="development", test_escalation_override_minutes=2).validate_production_safety()


def test_terminal_statuses_removed_from_open_list():
    settings = Settings(escalation_open_statuses="verified, Resolved ,in_progress,closed")
    assert settings.escalation_open_statuses_list == ["verified", "in_progress"]


def test_dry_run_override_requires_dry_run():
    assert Settings(pilot_dry_run_sla_override_minutes=5).dry_run_sla_override_enabled is False
    assert Settings(pilot_dry_run=True, pilot_dry_run_sla_override_minutes=5).dry_run_sla_override_enabled is True
