"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the scheduling engine.
"""

import os
import pathlib
from dotenv import load_dotenv
from pydantic import BaseModel, Field


# Determine if we're running in a test environment
# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    # Try multiple possible locations for .env file
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env at repository root
        pathlib.Path.cwd() / ".env",  # .env in current directory
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def _get_bool(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment ("1", "true", "yes" are truthy)."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Configuration constants with defaults
def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/scheduling_dev"
    )

DATABASE_URL = get_database_url()

# Scheduling engine
SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "15"))
BOOKING_LOCK_TIMEOUT_SECONDS = float(os.getenv("BOOKING_LOCK_TIMEOUT_SECONDS", "5"))
CLINIC_UTC_OFFSET_HOURS = int(os.getenv("CLINIC_UTC_OFFSET_HOURS", "0"))
HOLIDAY_COUNTRY = os.getenv("HOLIDAY_COUNTRY", "US")

# Create tables on startup instead of relying on an external migration step
AUTO_CREATE_TABLES = _get_bool("AUTO_CREATE_TABLES", False)


class SchedulingSettings(BaseModel):
    """Validated scheduling knobs read from the environment."""
    slot_step_minutes: int = Field(default=15, ge=1, le=240)
    booking_lock_timeout_seconds: float = Field(default=5.0, gt=0, le=300)
    clinic_utc_offset_hours: int = Field(default=0, ge=-12, le=14)
    holiday_country: str = Field(default="US", min_length=2, max_length=2)


def get_scheduling_settings() -> SchedulingSettings:
    """Get validated scheduling settings from the module-level configuration."""
    return SchedulingSettings(
        slot_step_minutes=SLOT_STEP_MINUTES,
        booking_lock_timeout_seconds=BOOKING_LOCK_TIMEOUT_SECONDS,
        clinic_utc_offset_hours=CLINIC_UTC_OFFSET_HOURS,
        holiday_country=HOLIDAY_COUNTRY,
    )

# Frontend URL allowed by CORS (optional)
FRONTEND_URL = os.getenv("FRONTEND_URL")
