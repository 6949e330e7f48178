"""Application settings constants."""

from __future__ import annotations

import os


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


APP_NAME = "TuneFlip API"

# Deadline for a single provider call during a search fan-out.
ADAPTER_TIMEOUT_SECONDS = _env_float("TUNEFLIP_ADAPTER_TIMEOUT_SECONDS", 4.0)

# Ranked search asks providers for limit * factor candidates before re-ranking.
OVERFETCH_FACTOR = max(1, _env_int("TUNEFLIP_OVERFETCH_FACTOR", 3))

DEFAULT_MARKET = (os.environ.get("TUNEFLIP_DEFAULT_MARKET") or "US").strip().upper()
DEFAULT_RANKED_LIMIT = 14
MAX_RANKED_LIMIT = 100

LOG_DIR = os.environ.get("TUNEFLIP_LOG_DIR")
LOG_LEVEL = (os.environ.get("TUNEFLIP_LOG_LEVEL") or "INFO").strip().upper()


_DB_PATH_ENV_KEY = "TUNEFLIP_DB_PATH"
_INGEST_KEY_ENV_KEY = "INGEST_KEY"


def resolve_db_path() -> str:
    return os.environ.get(_DB_PATH_ENV_KEY, os.path.join(os.getcwd(), "tuneflip.sqlite3"))


def get_ingest_key() -> str | None:
    value = (os.environ.get(_INGEST_KEY_ENV_KEY) or "").strip()
    return value or None
