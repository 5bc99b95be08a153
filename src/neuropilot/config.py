# src/neuropilot/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing touches the database at import time.
- Every tunable of the persistence layer has an env override.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "NEUROPILOT"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed."""
    try:
        from dotenv import load_dotenv
    except ImportError:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


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

    # ---- Local data paths ----
    data_dir: Path
    db_path: Path

    # ---- Migrations ----
    migrations_strict: bool

    # ---- Recurrence ----
    recurrence_days_ahead: int
    recurrence_interval_seconds: float

    # ---- Timeline / board ----
    normalize_threshold_seconds: int
    wip_limit: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "neuropilot")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/neuropilot"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "NeuroPilot.db")

        migrations_strict = _env_bool(_k("MIGRATIONS_STRICT"), False)

        recurrence_days_ahead = max(0, _env_int(_k("RECURRENCE_DAYS_AHEAD"), 7))
        recurrence_interval_seconds = _env_float(_k("RECURRENCE_INTERVAL_SECONDS"), 300.0)

        normalize_threshold_seconds = max(0, _env_int(_k("NORMALIZE_THRESHOLD_SECONDS"), 60))
        wip_limit = max(1, _env_int(_k("WIP_LIMIT"), 2))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            migrations_strict=migrations_strict,
            recurrence_days_ahead=recurrence_days_ahead,
            recurrence_interval_seconds=recurrence_interval_seconds,
            normalize_threshold_seconds=normalize_threshold_seconds,
            wip_limit=wip_limit,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
