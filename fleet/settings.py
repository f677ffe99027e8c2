from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("FLEET_DB_PATH", "fleet.db")
    poll_interval_s: int = _env_int("FLEET_POLL_INTERVAL_S", 5)
    workers: int = _env_int("FLEET_WORKERS", 4)

    # Rollout defaults applied when a deployment does not set its own.
    default_max_surge: str = os.getenv("FLEET_DEFAULT_MAX_SURGE", "25%")
    default_max_unavailable: str = os.getenv("FLEET_DEFAULT_MAX_UNAVAILABLE", "25%")
    revision_history_limit: int = _env_int("FLEET_REVISION_HISTORY_LIMIT", 10)

    # API auth for mutating routes
    api_user: str = os.getenv("FLEET_API_USER", "admin")
    api_password: str = os.getenv("FLEET_API_PASSWORD", "admin")

    # Email alerting (optional)
    enable_email: bool = _env_bool("FLEET_ENABLE_EMAIL", False)
    smtp_host: str = os.getenv("FLEET_SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = _env_int("FLEET_SMTP_PORT", 587)
    smtp_user: str | None = os.getenv("FLEET_SMTP_USER")
    smtp_password: str | None = os.getenv("FLEET_SMTP_PASSWORD")
    email_from: str | None = os.getenv("FLEET_EMAIL_FROM")
    email_to: str | None = os.getenv("FLEET_EMAIL_TO")


settings = Settings()
