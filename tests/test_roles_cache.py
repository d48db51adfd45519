"""Tests for the SQLite role-name cache."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from crew_directory.errors import FetchError
from crew_directory.roles_cache import (
    init_roles_db,
    load_or_fetch_roles_cached,
    load_roles_cache,
    save_roles_cache,
)


def test_load_missing_db_returns_none(tmp_path) -> None:
    assert load_roles_cache(tmp_path / "roles.db", "talent") is None


def test_save_and_load_per_category(tmp_path) -> None:
    db_path = tmp_path / "roles.db"
    save_roles_cache(db_path, "talent", ["Actor", "Singer"])
    save_roles_cache(db_path, "crew", ["Gaffer"])

    assert load_roles_cache(db_path, "talent") == ["Actor", "Singer"]
    assert load_roles_cache(db_path, "crew") == ["Gaffer"]
    assert load_roles_cache(db_path, "company") is None


def test_stale_rows_are_misses(tmp_path) -> None:
    db_path = tmp_path / "roles.db"
    init_roles_db(db_path)
    old = (datetime.now(UTC) - timedelta(hours=30)).isoformat()
    with sqlite3.connect(str(db_path)) as conn:
        conn.execute(
            "INSERT INTO roles (category, payload_json, fetched_at) VALUES (?, ?, ?)",
            ("talent", '["Actor"]', old),
        )

    assert load_roles_cache(db_path, "talent", ttl_hours=24) is None
    assert load_roles_cache(db_path, "talent", ttl_hours=48) == ["Actor"]


def test_corrupt_payload_is_a_miss(tmp_path) -> None:
    db_path = tmp_path / "roles.db"
    init_roles_db(db_path)
    with sqlite3.connect(str(db_path)) as conn:
        conn.execute(
            "INSERT INTO roles (category, payload_json, fetched_at) VALUES (?, ?, ?)",
            ("talent", "{broken", datetime.now(UTC).isoformat()),
        )

    assert load_roles_cache(db_path, "talent") is None


@pytest.mark.asyncio
async def test_load_or_fetch_uses_cache_then_network(tmp_path) -> None:
    db_path = tmp_path / "roles.db"
    fetch = AsyncMock(return_value=["Actor"])

    first = await load_or_fetch_roles_cached(
        db_path=db_path, category="talent", cache_ttl_hours=24, fetch=fetch
    )
    second = await load_or_fetch_roles_cached(
        db_path=db_path, category="talent", cache_ttl_hours=24, fetch=fetch
    )

    assert first == second == ["Actor"]
    fetch.assert_awaited_once()


@pytest.mark.asyncio
async def test_load_or_fetch_propagates_fetch_errors(tmp_path) -> None:
    fetch = AsyncMock(side_effect=FetchError("down"))

    with pytest.raises(FetchError):
        await load_or_fetch_roles_cached(
            db_path=tmp_path / "roles.db", category="talent", cache_ttl_hours=24, fetch=fetch
        )
