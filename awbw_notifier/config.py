"""Configuration loader.

Reads environment variables and `.env` to configure the service.
"""

from __future__ import annotations

import os
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv

# Load variables from a .env file if present (project root).
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


# ---- Monitored site ----------------------------------------------------------

BASE_URL: str = "https://awbw.amarriner.com/"
TURNS_URL: str = BASE_URL + "yourgames.php?yourTurn=1"
LOGIN_URL: str = BASE_URL + "login.php"

# Text AWBW renders instead of the game list for anonymous sessions.
LOGGED_OUT_MARKER: str = "You must be logged in"

# Credentials are only read when a login is actually needed.
AWBW_USERNAME: Optional[str] = _get_env("AWBW_USERNAME")
AWBW_PASSWORD: Optional[str] = _get_env("AWBW_PASSWORD")

USER_AGENT: str = _get_env("USER_AGENT", "awbw-turn-checker/1.0")

# ---- Notifications -----------------------------------------------------------

# Discord webhook URL. Only required when a change is detected.
DISCORD_WEBHOOK_URL: Optional[str] = _get_env("DISCORD_WEBHOOK_URL")

# ---- State storage -----------------------------------------------------------

# "gcs" (Cloud Storage bucket) or "sqlite" (local file, for development).
STATE_BACKEND: str = (_get_env("STATE_BACKEND", "gcs") or "gcs").strip().lower()

BUCKET_NAME: Optional[str] = _get_env("BUCKET_NAME")
STATE_OBJECT: str = _get_env("STATE_OBJECT", "state.json") or "state.json"

SQLITE_DB_PATH: str = _get_env("SQLITE_DB_PATH", "state.db")

# ---- HTTP / run limits -------------------------------------------------------

REQUEST_TIMEOUT: float = _parse_float(_get_env("REQUEST_TIMEOUT"), 20.0)
RUN_DEADLINE_SECONDS: float = _parse_float(_get_env("RUN_DEADLINE_SECONDS"), 120.0)

# Attempts for idempotent GETs. 1 means fail fast.
HTTP_GET_ATTEMPTS: int = max(1, _parse_int(_get_env("HTTP_GET_ATTEMPTS"), 1))

# Time that must still be left before state is saved for a run that will notify.
NOTIFY_RESERVE_SECONDS: float = _parse_float(_get_env("NOTIFY_RESERVE_SECONDS"), 5.0)

# ---- Trigger server ----------------------------------------------------------

HOST: str = _get_env("HOST", "0.0.0.0")
PORT: int = _parse_int(_get_env("PORT"), 8080)

# Logging level: DEBUG, INFO, WARNING, ERROR.
LOG_LEVEL: str = _get_env("LOG_LEVEL", "INFO")

# ---- Validation --------------------------------------------------------------

def validate() -> None:
    """Validate configuration needed before the first run."""
    if STATE_BACKEND not in ("gcs", "sqlite"):
        raise RuntimeError(
            f"STATE_BACKEND must be 'gcs' or 'sqlite', got {STATE_BACKEND!r}."
        )
    if STATE_BACKEND == "gcs" and not BUCKET_NAME:
        raise RuntimeError(
            "BUCKET_NAME must be set. See .env.example for details."
        )


__all__ = [
    # Site
    "BASE_URL",
    "TURNS_URL",
    "LOGIN_URL",
    "LOGGED_OUT_MARKER",
    "AWBW_USERNAME",
    "AWBW_PASSWORD",
    "USER_AGENT",
    # Notifications
    "DISCORD_WEBHOOK_URL",
    # Storage
    "STATE_BACKEND",
    "BUCKET_NAME",
    "STATE_OBJECT",
    "SQLITE_DB_PATH",
    # Limits
    "REQUEST_TIMEOUT",
    "RUN_DEADLINE_SECONDS",
    "HTTP_GET_ATTEMPTS",
    "NOTIFY_RESERVE_SECONDS",
    # Server
    "HOST",
    "PORT",
    "LOG_LEVEL",
    # Helpers
    "validate",
]
