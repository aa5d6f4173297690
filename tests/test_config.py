import pytest

from motocare.core.config import DEFAULT_MAX_PER_SLOT, load_settings

ENV_VARS = (
    "DATABASE_URL",
    "APPOINTMENT_MAX_PER_SLOT",
    "APPOINTMENT_REQUEST_EXPIRY_HOURS",
    "EXPIRY_SWEEP_MINUTES",
    "DEFAULT_VAT_RATE",
    "SCHEDULER_ENABLED",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = load_settings()

    assert settings.max_per_slot == DEFAULT_MAX_PER_SLOT
    assert settings.request_expiry_hours == 6
    assert settings.scheduler_enabled is True


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./other.db")
    monkeypatch.setenv("APPOINTMENT_MAX_PER_SLOT", "2")
    monkeypatch.setenv("APPOINTMENT_REQUEST_EXPIRY_HOURS", "12")
    monkeypatch.setenv("DEFAULT_VAT_RATE", "13")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")

    settings = load_settings()

    assert settings.database_url == "sqlite:///./other.db"
    assert settings.max_per_slot == 2
    assert settings.request_expiry_hours == 12
    assert settings.default_vat_rate == 13.0
    assert settings.scheduler_enabled is False


@pytest.mark.parametrize("value", ["four", "0"])
def test_bad_slot_capacity_fails_fast(monkeypatch, value):
    monkeypatch.setenv("APPOINTMENT_MAX_PER_SLOT", value)

    with pytest.raises(ValueError):
        load_settings()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("APPOINTMENT_REQUEST_EXPIRY_HOURS", "-1"),
        ("APPOINTMENT_REQUEST_EXPIRY_HOURS", "0"),
        ("EXPIRY_SWEEP_MINUTES", "0"),
        ("EXPIRY_SWEEP_MINUTES", "-15"),
    ],
)
def test_non_positive_expiry_settings_fail_fast(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        load_settings()
