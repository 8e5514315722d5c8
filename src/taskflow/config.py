# src/taskflow/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole process (deployment settings only).
- Shared, user-editable configuration (mail credentials, base URL) is NOT here:
  it lives in the persisted SystemConfig document so every client sees it.
- No secrets required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKFLOW"

BACKEND_LOCAL = "local"
BACKEND_SHARED = "shared"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# A local .env (gitignored) fills in variables the environment does not set.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Persistence ----
    backend: str
    data_dir: Path
    local_db_path: Path
    session_path: Path
    database_url: str
    shared_poll_seconds: float

    # ---- Reminders ----
    reminders_enabled: bool
    reminder_interval_seconds: int

    # ---- Notifications ----
    emailjs_api_url: str
    http_timeout_seconds: float
    default_base_url: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskflow") or "taskflow"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        backend = _env(_k("BACKEND"), BACKEND_LOCAL).strip().lower()
        if backend not in (BACKEND_LOCAL, BACKEND_SHARED):
            backend = BACKEND_LOCAL

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskflow"))
        local_db_path = _env_path(_k("LOCAL_DB_PATH"), data_dir / "taskflow.sqlite3")
        session_path = _env_path(_k("SESSION_PATH"), data_dir / "session.json")

        database_url = _env(_k("DATABASE_URL"), "").strip()
        if not database_url:
            database_url = f"sqlite:///{data_dir / 'shared.sqlite3'}"
        shared_poll_seconds = max(0.05, _env_float(_k("SHARED_POLL_SECONDS"), 1.0))

        reminders_enabled = _env_bool(_k("REMINDERS_ENABLED"), True)
        reminder_interval_seconds = max(5, _env_int(_k("REMINDER_INTERVAL_SECONDS"), 300))

        emailjs_api_url = _env(
            _k("EMAILJS_API_URL"), "https://api.emailjs.com/api/v1.0/email/send"
        )
        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 15.0)
        default_base_url = _env(_k("BASE_URL"), "http://localhost")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            backend=backend,
            data_dir=data_dir,
            local_db_path=local_db_path,
            session_path=session_path,
            database_url=database_url,
            shared_poll_seconds=shared_poll_seconds,
            reminders_enabled=reminders_enabled,
            reminder_interval_seconds=reminder_interval_seconds,
            emailjs_api_url=emailjs_api_url,
            http_timeout_seconds=http_timeout_seconds,
            default_base_url=default_base_url,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
