"""
Environment variable loading for the listing intake backend.

- DATABASE_URL: any SQLAlchemy URL (e.g. postgresql://...); wins when set
- LISTGUARD_DB_PATH: SQLite file used when DATABASE_URL is unset (default listguard.db)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

# config is backend_listguard/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_SQLITE_PATH = "listguard.db"


def load_listguard_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides set vars."""
    from dotenv import load_dotenv

    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str) -> str:
    raw = (os.getenv(name) or "").strip()
    return raw or default


def env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Comma-separated list; empty entries dropped, values lowercased."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


def get_database_url() -> str:
    """
    Resolve the store URL.
    Order: DATABASE_URL > LISTGUARD_DB_PATH (SQLite) > listguard.db in cwd.
    """
    load_listguard_env()
    url = (os.getenv("DATABASE_URL") or "").strip()
    if url:
        return url
    path = env_str("LISTGUARD_DB_PATH", DEFAULT_SQLITE_PATH)
    return f"sqlite:///{path}"
