# config.py
import os
from dataclasses import dataclass
from typing import Optional

import pytz
from dotenv import load_dotenv

load_dotenv()

EXPO_PUSH_API_URL = "https://exp.host/--/api/v2/push/send"


class ConfigError(RuntimeError):
    """Missing or invalid configuration; no run can start."""


@dataclass(frozen=True)
class Settings:
    database_url: str
    timezone: str = "UTC"
    expo_push_url: str = EXPO_PUSH_API_URL
    expo_access_token: Optional[str] = None
    push_timeout_seconds: float = 30.0
    notify_interval_minutes: int = 60
    cleanup_interval_minutes: int = 60
    lookback_hours: int = 24
    lookahead_hours: int = 1
    retention_days: int = 45
    log_level: str = "INFO"

    @property
    def tz(self):
        return pytz.timezone(self.timezone)


def _number(name, default, cast, positive=False):
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if positive and value <= 0:
        raise ConfigError(f"{name} must be greater than zero")
    if value < 0:
        raise ConfigError(f"{name} must not be negative")
    return value


def load_settings():
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ConfigError("Missing DATABASE_URL")

    timezone = os.getenv("NOTIFIER_TIMEZONE", "UTC")
    try:
        pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError:
        raise ConfigError(f"Unknown NOTIFIER_TIMEZONE {timezone!r}")

    return Settings(
        database_url=database_url,
        timezone=timezone,
        expo_push_url=os.getenv("EXPO_PUSH_URL", EXPO_PUSH_API_URL),
        expo_access_token=os.getenv("EXPO_ACCESS_TOKEN") or None,
        push_timeout_seconds=_number("PUSH_TIMEOUT_SECONDS", 30.0, float, positive=True),
        notify_interval_minutes=_number("NOTIFY_INTERVAL_MINUTES", 60, int, positive=True),
        cleanup_interval_minutes=_number("CLEANUP_INTERVAL_MINUTES", 60, int, positive=True),
        lookback_hours=_number("LOOKBACK_HOURS", 24, int),
        lookahead_hours=_number("LOOKAHEAD_HOURS", 1, int),
        retention_days=_number("RETENTION_DAYS", 45, int),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
