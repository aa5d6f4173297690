"""Runtime configuration for the motocare backend."""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite:///./motocare.db"
DEFAULT_MAX_PER_SLOT = 4
DEFAULT_REQUEST_EXPIRY_HOURS = 6
DEFAULT_EXPIRY_SWEEP_MINUTES = 15


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    max_per_slot: int = DEFAULT_MAX_PER_SLOT
    request_expiry_hours: int = DEFAULT_REQUEST_EXPIRY_HOURS
    expiry_sweep_minutes: int = DEFAULT_EXPIRY_SWEEP_MINUTES
    default_vat_rate: float = 0.0
    scheduler_enabled: bool = True


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from None


def _positive_int_env(name: str, default: int) -> int:
    value = _int_env(name, default)
    if value < 1:
        raise ValueError(f"{name} must be at least 1.")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from None


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    """Build settings from `.env` and the process environment."""
    load_dotenv()

    max_per_slot = _positive_int_env("APPOINTMENT_MAX_PER_SLOT", DEFAULT_MAX_PER_SLOT)
    request_expiry_hours = _positive_int_env(
        "APPOINTMENT_REQUEST_EXPIRY_HOURS",
        DEFAULT_REQUEST_EXPIRY_HOURS,
    )
    expiry_sweep_minutes = _positive_int_env(
        "EXPIRY_SWEEP_MINUTES",
        DEFAULT_EXPIRY_SWEEP_MINUTES,
    )

    return Settings(
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        max_per_slot=max_per_slot,
        request_expiry_hours=request_expiry_hours,
        expiry_sweep_minutes=expiry_sweep_minutes,
        default_vat_rate=_float_env("DEFAULT_VAT_RATE", 0.0),
        scheduler_enabled=_bool_env("SCHEDULER_ENABLED", True),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
