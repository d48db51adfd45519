"""Page-keyed result cache with duplicate-free merging.

One ``CacheEntry`` exists per ``CacheKey`` (section, mode, search text,
filter set). Pages for a key are merged in server order into a single
list; an id already present is skipped, so an id repeated across pages
(the server can shift rows between requests) appears once, at its
first-seen position.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from crew_directory.filters import is_active_value
from crew_directory.models import (
    DEFAULT_MAX_CACHED_KEYS,
    CacheKey,
    Entity,
    NormalizedPage,
    Page,
)

logger = logging.getLogger(__name__)

PageFetcher = Callable[[int], Awaitable[Page]]


def _freeze_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return tuple(
            sorted((str(k), _freeze_value(v)) for k, v in value.items() if v is not None)
        )
    if isinstance(value, (list, tuple)):
        return tuple(_freeze_value(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return tuple(sorted((_freeze_value(v) for v in value), key=repr))
    if isinstance(value, str):
        return value.strip()
    return value


def freeze_filters(filters: Mapping[str, Any] | None) -> tuple[tuple[str, Any], ...]:
    """Canonical, hashable form of the active values of a filter set."""
    if not filters:
        return ()
    return tuple(
        (key, _freeze_value(filters[key]))
        for key in sorted(filters)
        if is_active_value(filters[key])
    )


def build_cache_key(
    section_key: str,
    mode: str,
    search_text: str,
    filters: Mapping[str, Any] | None,
) -> CacheKey:
    """Build the cache key for one section/mode/search/filter combination."""
    return CacheKey(
        section_key=section_key,
        mode=mode,
        search_text=(search_text or "").strip(),
        filters=freeze_filters(filters),
    )


def compute_has_more(
    page_number: int,
    returned_count: int,
    page_size: int,
    total_pages: int | None,
) -> bool:
    """Decide whether another page exists after ``page_number``.

    An explicit total page count wins; otherwise only a full page implies more.
    """
    if total_pages is not None:
        return page_number < total_pages
    return returned_count == page_size


def page_from_normalized(normalized: NormalizedPage) -> Page:
    """Convert fetcher output into a cache page."""
    total_pages = normalized.pagination.total_pages if normalized.pagination else None
    return Page(
        number=normalized.page,
        entities=normalized.entities,
        limit=normalized.limit,
        total_pages=total_pages,
    )


@dataclass(slots=True)
class CacheEntry:
    """Pages fetched so far for one key, plus the merged entity list."""

    key: CacheKey
    pages: list[Page] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)
    seen_ids: set[str] = field(default_factory=set)
    has_more: bool = True
    last_error: str | None = None

    @property
    def last_page_number(self) -> int:
        return self.pages[-1].number if self.pages else 0

    def page(self, number: int) -> Page | None:
        for page in self.pages:
            if page.number == number:
                return page
        return None

    def merge(self, page: Page) -> int:
        """Append a page and merge its unseen entities. Returns the number added."""
        self.pages.append(page)
        added = 0
        for entity in page.entities:
            if entity.id in self.seen_ids:
                continue
            self.seen_ids.add(entity.id)
            self.entities.append(entity)
            added += 1
        self.has_more = compute_has_more(
            page.number, len(page.entities), page.limit, page.total_pages
        )
        return added

    def rebuild(self, pages: list[Page]) -> None:
        """Reset to ``pages`` and re-merge them from scratch."""
        self.pages = []
        self.entities = []
        self.seen_ids = set()
        self.has_more = True
        for page in pages:
            self.merge(page)


class PaginatedFetchCache:
    """Ordered, page-keyed cache. The most recently activated key is current."""

    def __init__(self, max_entries: int = DEFAULT_MAX_CACHED_KEYS) -> None:
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._max_entries = max(1, max_entries)
        self._current_key: CacheKey | None = None

    @property
    def current_key(self) -> CacheKey | None:
        return self._current_key

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def entry(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def activate(self, key: CacheKey) -> CacheEntry:
        """Make ``key`` current, creating an empty entry on first use."""
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry
            logger.debug("Created cache entry for %s", key)
        self._entries.move_to_end(key)
        self._current_key = key
        self._evict()
        return entry

    def _evict(self) -> None:
        while len(self._entries) > self._max_entries:
            oldest = next(iter(self._entries))
            if oldest == self._current_key:
                break
            del self._entries[oldest]
            logger.debug("Evicted cache entry for %s", oldest)

    def next_page_number(self, key: CacheKey) -> int:
        entry = self._entries.get(key)
        return (entry.last_page_number if entry else 0) + 1

    def append_page(self, key: CacheKey, page: Page) -> bool:
        """Merge ``page`` into the entry for ``key``.

        Returns False (and drops the page) when ``key`` is no longer the
        current key or the page number is already cached.
        """
        if key != self._current_key:
            logger.debug("Discarding page %d for superseded key %s", page.number, key)
            return False
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.page(page.number) is not None:
            logger.debug("Page %d already cached for %s", page.number, key)
            return False
        added = entry.merge(page)
        entry.last_error = None
        logger.debug(
            "Merged page %d (%d new of %d) for %s, has_more=%s",
            page.number,
            added,
            len(page.entities),
            key,
            entry.has_more,
        )
        return True

    async def get_or_fetch(self, key: CacheKey, page_param: int, fetch: PageFetcher) -> Page:
        """Return the cached page, or await ``fetch`` and merge the result."""
        entry = self._entries.get(key)
        if entry is None:
            entry = self.activate(key)
        cached = entry.page(page_param)
        if cached is not None:
            return cached
        page = await fetch(page_param)
        self.append_page(key, page)
        return page

    def reset_to_first_page(self, key: CacheKey) -> None:
        """Truncate the entry back to exactly its first page."""
        entry = self._entries.get(key)
        if entry is None or len(entry.pages) <= 1:
            return
        entry.rebuild(entry.pages[:1])

    def replace_first_page(self, key: CacheKey, page: Page) -> bool:
        """Swap in a refreshed first page; later pages are dropped."""
        if key != self._current_key:
            return False
        entry = self._entries.get(key)
        if entry is None:
            return False
        entry.rebuild([page])
        entry.last_error = None
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._current_key = None


__all__ = [
    "CacheEntry",
    "PageFetcher",
    "PaginatedFetchCache",
    "build_cache_key",
    "compute_has_more",
    "freeze_filters",
    "page_from_normalized",
]
