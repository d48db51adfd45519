"""SQLite cache for known role names, one row per category.

Role lists change rarely, so the CLI reuses them across runs until the
configured TTL expires. SQLite failures are logged and treated as misses.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path

from platformdirs import user_config_dir

from crew_directory.models import CONFIG_APP_NAME

logger = logging.getLogger(__name__)

ROLES_DB_FILENAME = "roles_cache.db"
ROLES_DEFAULT_CACHE_TTL_HOURS = 24


def get_roles_db_path() -> Path:
    """Get the path to the role-name SQLite cache."""
    config_dir = Path(user_config_dir(CONFIG_APP_NAME))
    return config_dir / ROLES_DB_FILENAME


def init_roles_db(db_path: Path) -> None:
    """Create the roles table if it doesn't exist."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(str(db_path)) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS roles ("
            "  category TEXT PRIMARY KEY,"
            "  payload_json TEXT NOT NULL,"
            "  fetched_at TEXT NOT NULL"
            ")"
        )


def _is_fresh(fetched_at_str: str, ttl_hours: int) -> bool:
    """Check if a cached entry is still within its TTL (hours-based)."""
    try:
        fetched_at = datetime.fromisoformat(fetched_at_str)
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=UTC)
        age_hours = (datetime.now(UTC) - fetched_at).total_seconds() / 3600
        return age_hours < ttl_hours
    except (ValueError, TypeError):
        return False


def load_roles_cache(
    db_path: Path, category: str, ttl_hours: int = ROLES_DEFAULT_CACHE_TTL_HOURS
) -> list[str] | None:
    """Return cached role names for ``category``, or None if missing or stale."""
    if not db_path.exists():
        return None
    try:
        with sqlite3.connect(str(db_path)) as conn:
            row = conn.execute(
                "SELECT payload_json, fetched_at FROM roles WHERE category = ?",
                (category,),
            ).fetchone()
    except sqlite3.Error:
        logger.warning("Failed to load roles cache", exc_info=True)
        return None
    if row is None:
        return None
    payload, fetched_at = row
    if not _is_fresh(fetched_at, ttl_hours):
        return None
    try:
        names = json.loads(payload)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Corrupt roles cache row for %r", category)
        return None
    if not isinstance(names, list):
        return None
    return [name for name in names if isinstance(name, str)]


def save_roles_cache(db_path: Path, category: str, names: list[str]) -> None:
    """Persist role names for ``category``, replacing any previous row."""
    try:
        init_roles_db(db_path)
        now = datetime.now(UTC).isoformat()
        with sqlite3.connect(str(db_path)) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO roles (category, payload_json, fetched_at) "
                "VALUES (?, ?, ?)",
                (category, json.dumps(names), now),
            )
    except sqlite3.Error:
        logger.warning("Failed to save roles cache", exc_info=True)


async def load_or_fetch_roles_cached(
    *,
    db_path: Path,
    category: str,
    cache_ttl_hours: int,
    fetch: Callable[[], Awaitable[list[str]]],
) -> list[str]:
    """Load role names from cache, or fetch and persist on cache miss.

    Errors raised by ``fetch`` propagate to the caller.
    """
    cached = await asyncio.to_thread(load_roles_cache, db_path, category, cache_ttl_hours)
    if cached is not None:
        logger.debug("Using %d cached roles for %r", len(cached), category)
        return cached

    names = await fetch()
    if names:
        await asyncio.to_thread(save_roles_cache, db_path, category, names)
    return names


__all__ = [
    "ROLES_DEFAULT_CACHE_TTL_HOURS",
    "get_roles_db_path",
    "init_roles_db",
    "load_or_fetch_roles_cached",
    "load_roles_cache",
    "save_roles_cache",
]
