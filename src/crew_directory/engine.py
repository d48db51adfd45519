"""Directory engine: the single surface a screen talks to.

The engine owns the paginated cache, the current section/search/filter
state, and the derived buckets. Search and filter edits are debounced;
section changes apply immediately. Fetch failures are recorded in
``error`` and never raised.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

import httpx

from crew_directory.buckets import Buckets, assemble
from crew_directory.errors import FetchError
from crew_directory.filters import filter_entities, is_active_value
from crew_directory.membership import OUTCOME_IGNORED, MembershipCoordinator
from crew_directory.models import (
    CacheKey,
    DirectoryConfig,
    Entity,
    SectionDefinition,
)
from crew_directory.pagination import (
    CacheEntry,
    PaginatedFetchCache,
    build_cache_key,
    page_from_normalized,
)
from crew_directory.roles import known_role_keys as build_known_role_keys
from crew_directory.services.directory_api_service import DirectoryQuery
from crew_directory.services.interfaces import AppServices, build_default_app_services

logger = logging.getLogger(__name__)


class Debouncer:
    """Run ``callback`` once after ``delay`` seconds without another trigger."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self._delay = max(0.0, delay)
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        # Atomic swap pattern: capture and clear before cancelling
        old_handle = self._handle
        self._handle = None
        if old_handle is not None:
            old_handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._callback()

    def cancel(self) -> None:
        handle = self._handle
        self._handle = None
        if handle is not None:
            handle.cancel()

    def flush(self) -> bool:
        """Fire now if a call is pending. Returns whether it fired."""
        if self._handle is None:
            return False
        self.cancel()
        self._callback()
        return True


class DirectoryEngine:
    """Paginated, filtered, bucketed view of one directory section."""

    def __init__(
        self,
        *,
        section: SectionDefinition,
        mode: str,
        services: AppServices | None = None,
        config: DirectoryConfig | None = None,
        client: httpx.AsyncClient | None = None,
        membership: MembershipCoordinator | None = None,
        known_role_keys: Iterable[str] = (),
        search_text: str = "",
        filters: Mapping[str, Any] | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._config = config if config is not None else DirectoryConfig()
        self._services = services if services is not None else build_default_app_services()
        self._client = client
        self._membership = membership
        self._on_change = on_change
        self._section = section
        self._mode = mode
        self._search_text = search_text
        self._filters: dict[str, Any] = dict(filters or {})
        self._pending_search: str | None = None
        self._pending_filters: dict[str, Any] | None = None
        self._known_role_keys: frozenset[str] = frozenset(known_role_keys)
        self._cache = PaginatedFetchCache(self._config.max_cached_keys)
        self._debouncer = Debouncer(self._config.search_debounce_seconds, self._apply_pending_query)
        self._request_token = 0
        self._fetch_inflight = False
        self._error: str | None = None
        self._entities: list[Entity] = []
        self._buckets: Buckets = {}
        self._background_tasks: set[asyncio.Task[None]] = set()

    # ========================================================================
    # Read-only state
    # ========================================================================

    @property
    def section(self) -> SectionDefinition:
        return self._section

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def search_text(self) -> str:
        return self._search_text

    @property
    def filters(self) -> Mapping[str, Any]:
        return MappingProxyType(self._filters)

    @property
    def known_role_keys(self) -> frozenset[str]:
        return self._known_role_keys

    @property
    def buckets(self) -> Mapping[str, list[Entity]]:
        return MappingProxyType(self._buckets)

    @property
    def entities(self) -> list[Entity]:
        """Loaded entities that pass the current filter set, in server order."""
        return list(self._entities)

    @property
    def has_more(self) -> bool:
        entry = self._current_entry()
        return entry is None or entry.has_more

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._fetch_inflight

    @property
    def membership(self) -> MembershipCoordinator | None:
        return self._membership

    @property
    def cache(self) -> PaginatedFetchCache:
        return self._cache

    def _build_key(self) -> CacheKey:
        return build_cache_key(self._section.key, self._mode, self._search_text, self._filters)

    def _current_entry(self) -> CacheEntry | None:
        key = self._cache.current_key
        return self._cache.entry(key) if key is not None else None

    # ========================================================================
    # Derived views
    # ========================================================================

    def _recompute(self) -> None:
        entry = self._current_entry()
        loaded = entry.entities if entry is not None else []
        self._entities = filter_entities(loaded, self._filters)
        self._buckets = assemble(self._entities, self._section, self._known_role_keys)
        if self._on_change is not None:
            self._on_change()

    def set_known_role_keys(self, keys: Iterable[str]) -> None:
        self._known_role_keys = frozenset(keys)
        self._recompute()

    # ========================================================================
    # Fetching
    # ========================================================================

    def _query(self, page_number: int) -> DirectoryQuery:
        filters = dict(self._filters)
        category = self._section.category
        if category is not None and not is_active_value(filters.get("category")):
            filters["category"] = category
        return DirectoryQuery(
            page=page_number,
            limit=self._config.page_size,
            search=self._search_text.strip(),
            filters=filters,
        )

    async def _fetch_page(self, key: CacheKey, page_number: int, *, replace: bool = False) -> bool:
        self._request_token += 1
        request_token = self._request_token
        self._fetch_inflight = True
        try:
            normalized = await self._services.directory.fetch_directory_page(
                client=self._client,
                mode=self._mode,
                query=self._query(page_number),
                base_url=self._config.base_url,
                auth_token=self._config.auth_token,
                timeout_seconds=self._config.request_timeout_seconds,
                max_retries=self._config.max_retries,
            )
        except FetchError as exc:
            if request_token == self._request_token:
                entry = self._cache.entry(key)
                if entry is not None:
                    entry.last_error = exc.message
                self._error = exc.message
                logger.warning("Failed to fetch page %d for %s: %s", page_number, key, exc.message)
                if self._on_change is not None:
                    self._on_change()
            return False
        finally:
            if request_token == self._request_token:
                self._fetch_inflight = False

        # Ignore stale responses after newer requests
        if request_token != self._request_token:
            logger.debug("Discarding stale page %d for %s", page_number, key)
            return False

        page = page_from_normalized(normalized)
        if replace:
            accepted = self._cache.replace_first_page(key, page)
        else:
            accepted = self._cache.append_page(key, page)
        if not accepted:
            return False
        self._error = None
        self._recompute()
        return True

    async def _activate_and_fetch(self) -> bool:
        """Make the current state's key active and load its first page if needed."""
        key = self._build_key()
        entry = self._cache.activate(key)
        if entry.pages:
            # Invalidate any in-flight request for the previous key
            self._request_token += 1
            self._fetch_inflight = False
            self._error = entry.last_error
            self._recompute()
            return True
        self._error = None
        self._recompute()
        return await self._fetch_page(key, 1)

    async def start(self) -> bool:
        """Load the first page and, when present, the membership list."""
        loaded = await self._activate_and_fetch()
        if self._membership is not None:
            await self._membership.load()
        return loaded

    async def load_more(self) -> bool:
        """Fetch the next page. No-op while a fetch is in flight or nothing is left.

        With no pages cached (a failed first page) this retries page 1.
        """
        if self._fetch_inflight:
            logger.debug("load_more ignored: fetch already in flight")
            return False
        entry = self._current_entry()
        if entry is None:
            return await self._activate_and_fetch()
        if entry.pages and not entry.has_more:
            return False
        key = entry.key
        return await self._fetch_page(key, self._cache.next_page_number(key))

    async def refresh(self) -> bool:
        """Drop every page but the first, then refetch page 1 in place.

        On failure the existing first page stays visible.
        """
        entry = self._current_entry()
        if entry is None or not entry.pages:
            return await self._activate_and_fetch()
        key = entry.key
        self._cache.reset_to_first_page(key)
        self._recompute()
        return await self._fetch_page(key, 1, replace=True)

    # ========================================================================
    # Query state
    # ========================================================================

    def set_search_text(self, text: str) -> None:
        self._pending_search = text
        self._debouncer.trigger()

    def set_filters(self, filter_set: Mapping[str, Any] | None) -> None:
        self._pending_filters = dict(filter_set or {})
        self._debouncer.trigger()

    def flush_pending_query(self) -> bool:
        """Apply a debounced search/filter edit immediately."""
        return self._debouncer.flush()

    def _apply_pending_query(self) -> None:
        """Apply the last debounced search/filter values."""
        previous_key = self._build_key()
        if self._pending_search is not None:
            self._search_text = self._pending_search
            self._pending_search = None
        if self._pending_filters is not None:
            self._filters = self._pending_filters
            self._pending_filters = None
        if self._build_key() == previous_key and self._cache.current_key == previous_key:
            self._recompute()
            return
        self._track_task(self._activate_and_fetch())

    def set_section(self, section: SectionDefinition) -> None:
        """Switch sections. A new implied category also reloads the known roles."""
        category_changed = section.category != self._section.category
        self._section = section
        if category_changed:
            # Roles of the old category would misclassify until the reload lands
            self._known_role_keys = frozenset()
            self._track_task(self._reload_roles())
        self._track_task(self._activate_and_fetch())

    async def _reload_roles(self) -> None:
        await self.load_roles()

    async def load_roles(self) -> bool:
        """Fetch the known role set for the section's category."""
        section_category = self._section.category
        category = section_category or ""
        try:
            names = await self._services.directory.fetch_roles(
                client=self._client,
                category=category,
                base_url=self._config.base_url,
                auth_token=self._config.auth_token,
                timeout_seconds=self._config.request_timeout_seconds,
                max_retries=self._config.max_retries,
            )
        except FetchError as exc:
            logger.warning("Failed to load roles for %r: %s", category, exc.message)
            return False
        if self._section.category != section_category:
            logger.debug("Discarding roles for %r: section changed", category)
            return False
        self.set_known_role_keys(build_known_role_keys(names, section_category))
        logger.debug("Loaded %d roles for %r", len(self._known_role_keys), category)
        return True

    # ========================================================================
    # Membership
    # ========================================================================

    def _find_entity(self, entity_id: str) -> Entity | None:
        entry = self._current_entry()
        if entry is None:
            return None
        for entity in entry.entities:
            if entity.id == entity_id:
                return entity
        return None

    async def toggle_membership(self, entity_id: str) -> str:
        if self._membership is None:
            logger.debug("toggle_membership ignored: no membership coordinator")
            return OUTCOME_IGNORED
        entity = self._find_entity(entity_id)
        if entity is None:
            logger.debug("toggle_membership ignored: %s is not loaded", entity_id)
            return OUTCOME_IGNORED
        outcome = await self._membership.toggle(entity)
        if self._on_change is not None:
            self._on_change()
        return outcome

    def is_member(self, entity_id: str) -> bool:
        return self._membership is not None and self._membership.is_member(entity_id)

    # ========================================================================
    # Task lifecycle
    # ========================================================================

    def _track_task(self, coro: Any) -> asyncio.Task[None]:
        """Create an asyncio task and track it to prevent garbage collection."""
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        task.add_done_callback(self._on_task_done)
        return task

    @staticmethod
    def _on_task_done(task: asyncio.Task[None]) -> None:
        """Log unhandled exceptions from background tasks."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Unhandled exception in background task: %s", exc, exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait until every tracked background task has finished."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def close(self) -> None:
        self._debouncer.cancel()
        for task in list(self._background_tasks):
            task.cancel()


__all__ = [
    "Debouncer",
    "DirectoryEngine",
]
