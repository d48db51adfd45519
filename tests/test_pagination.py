"""Tests for the page-keyed fetch cache."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from crew_directory.models import Page
from crew_directory.pagination import (
    PaginatedFetchCache,
    build_cache_key,
    compute_has_more,
    freeze_filters,
)


@pytest.fixture
def page_of(make_entity):
    def _make(number: int, ids: list[str], *, limit: int = 3, total_pages: int | None = None):
        return Page(
            number=number,
            entities=tuple(make_entity(entity_id=i) for i in ids),
            limit=limit,
            total_pages=total_pages,
        )

    return _make


def _ids(entry) -> list[str]:
    return [e.id for e in entry.entities]


class TestCacheKey:
    def test_search_text_is_trimmed(self):
        a = build_cache_key("talent", "guest", "  anna ", {})
        b = build_cache_key("talent", "guest", "anna", None)
        assert a == b

    def test_inactive_filters_do_not_change_the_key(self):
        a = build_cache_key("talent", "guest", "", {"gender": "", "age_min": None})
        b = build_cache_key("talent", "guest", "", {})
        assert a == b

    def test_filter_order_is_irrelevant(self):
        assert freeze_filters({"b": 1, "a": ["x", "y"]}) == freeze_filters({"a": ["x", "y"], "b": 1})

    def test_mode_and_section_are_part_of_the_key(self):
        assert build_cache_key("talent", "guest", "", {}) != build_cache_key(
            "talent", "authenticated", "", {}
        )
        assert build_cache_key("talent", "guest", "", {}) != build_cache_key("crew", "guest", "", {})


class TestHasMore:
    def test_total_pages_wins(self):
        assert compute_has_more(1, 3, 20, 5)
        assert not compute_has_more(5, 20, 20, 5)

    def test_full_page_implies_more_without_total(self):
        assert compute_has_more(1, 20, 20, None)
        assert not compute_has_more(2, 7, 20, None)


class TestPaginatedFetchCache:
    def test_merge_skips_duplicate_ids(self, page_of):
        cache = PaginatedFetchCache()
        key = build_cache_key("directory", "guest", "", {})
        entry = cache.activate(key)

        assert cache.append_page(key, page_of(1, ["A", "B", "C"]))
        assert cache.append_page(key, page_of(2, ["C", "D"]))

        assert _ids(entry) == ["A", "B", "C", "D"]
        assert cache.next_page_number(key) == 3

    def test_superseded_key_is_discarded(self, page_of):
        cache = PaginatedFetchCache()
        old = build_cache_key("directory", "guest", "old", {})
        new = build_cache_key("directory", "guest", "new", {})
        cache.activate(old)
        cache.activate(new)

        assert not cache.append_page(old, page_of(1, ["A"]))
        assert cache.entry(old).entities == []

    def test_repeated_page_number_is_ignored(self, page_of):
        cache = PaginatedFetchCache()
        key = build_cache_key("directory", "guest", "", {})
        entry = cache.activate(key)
        cache.append_page(key, page_of(1, ["A"]))

        assert not cache.append_page(key, page_of(1, ["B"]))
        assert _ids(entry) == ["A"]

    def test_reset_to_first_page_rebuilds_ids(self, page_of):
        cache = PaginatedFetchCache()
        key = build_cache_key("directory", "guest", "", {})
        entry = cache.activate(key)
        cache.append_page(key, page_of(1, ["A", "B", "C"]))
        cache.append_page(key, page_of(2, ["D", "E", "F"]))

        cache.reset_to_first_page(key)

        assert _ids(entry) == ["A", "B", "C"]
        assert entry.seen_ids == {"A", "B", "C"}
        assert entry.has_more
        assert cache.next_page_number(key) == 2

    def test_replace_first_page(self, page_of):
        cache = PaginatedFetchCache()
        key = build_cache_key("directory", "guest", "", {})
        entry = cache.activate(key)
        cache.append_page(key, page_of(1, ["A", "B", "C"]))
        cache.append_page(key, page_of(2, ["D"]))

        assert cache.replace_first_page(key, page_of(1, ["Z", "A"], limit=20))
        assert _ids(entry) == ["Z", "A"]
        assert not entry.has_more

    def test_lru_eviction_keeps_current(self, page_of):
        cache = PaginatedFetchCache(max_entries=2)
        keys = [build_cache_key("directory", "guest", str(i), {}) for i in range(3)]
        for key in keys:
            cache.activate(key)

        assert len(cache) == 2
        assert keys[0] not in cache
        assert cache.current_key == keys[2]

    @pytest.mark.asyncio
    async def test_get_or_fetch_uses_cache(self, page_of):
        cache = PaginatedFetchCache()
        key = build_cache_key("directory", "guest", "", {})
        fetch = AsyncMock(return_value=page_of(1, ["A", "B"]))

        first = await cache.get_or_fetch(key, 1, fetch)
        second = await cache.get_or_fetch(key, 1, fetch)

        assert first is second
        fetch.assert_awaited_once_with(1)
        assert cache.current_key == key
