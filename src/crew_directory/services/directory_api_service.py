"""Directory backend client: dual-mode page fetches, roles, and team membership.

Every response envelope is parsed once, here, into an ``Envelope`` and then
reduced to a ``NormalizedPage``. Callers above this module never inspect
raw payload shapes.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from crew_directory.action_messages import (
    build_actionable_error,
    build_malformed_response_error,
    describe_http_failure,
)
from crew_directory.errors import FetchError, MutationError
from crew_directory.filters import is_active_value
from crew_directory.models import (
    MODE_GUEST,
    MembershipRecord,
    NormalizedPage,
    PaginationInfo,
    parse_entity,
)
from crew_directory.roles import parse_role_names

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

GUEST_BROWSE_PATH = "/api/guest/users/browse"
DIRECT_USERS_PATH = "/api/users"
CLIENT_SEARCH_PATH = "/api/search/users"
ROLES_PATH = "/api/roles"
TEAM_MEMBERS_PATH = "/api/my-team/members"

# Search text parameter name per surface
DIRECT_SEARCH_PARAM = "search"
CLIENT_SEARCH_PARAM = "q"

USER_AGENT = "crew-directory/1.0"
REQUEST_TIMEOUT = 30  # seconds
INITIAL_BACKOFF = 1.0  # seconds, doubles each retry
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

EnvelopeShape = Literal["nested", "flat", "bare"]

# ============================================================================
# Request / Envelope Models
# ============================================================================


@dataclass(slots=True, frozen=True)
class DirectoryQuery:
    """One logical page request."""

    page: int
    limit: int
    search: str = ""
    filters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Envelope:
    """A backend response reduced to its item list, tagged by original shape."""

    shape: EnvelopeShape
    items: tuple[Any, ...] = ()
    pagination: PaginationInfo | None = None
    success: bool = True
    error: str | None = None


def _parse_pagination(raw: Any) -> PaginationInfo | None:
    if not isinstance(raw, dict):
        return None
    total_pages = raw.get("totalPages", raw.get("total_pages"))
    total = raw.get("total")
    return PaginationInfo(
        total_pages=total_pages
        if isinstance(total_pages, int) and not isinstance(total_pages, bool)
        else None,
        total=total if isinstance(total, int) and not isinstance(total, bool) else None,
    )


def parse_envelope(payload: Any) -> Envelope:
    """Classify a response body as one of the known envelope shapes.

    Accepted shapes:
        ``{"data": {"data": [...], "pagination": {...}}}`` (nested)
        ``{"data": [...], "pagination": {...}}`` (flat, pagination optional)
        ``[...]`` (bare)

    A dict with ``"success": false`` yields an unsuccessful envelope.
    Anything else raises ``FetchError``.
    """
    if isinstance(payload, list):
        return Envelope(shape="bare", items=tuple(payload))
    if not isinstance(payload, dict):
        raise FetchError(build_malformed_response_error("load the directory"))
    if payload.get("success") is False:
        error = payload.get("error") or payload.get("message")
        return Envelope(
            shape="flat",
            success=False,
            error=error if isinstance(error, str) else None,
        )
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return Envelope(
            shape="nested",
            items=tuple(data["data"]),
            pagination=_parse_pagination(data.get("pagination"))
            or _parse_pagination(payload.get("pagination")),
        )
    if isinstance(data, list):
        return Envelope(
            shape="flat",
            items=tuple(data),
            pagination=_parse_pagination(payload.get("pagination")),
        )
    raise FetchError(build_malformed_response_error("load the directory"))


def normalize_envelope(envelope: Envelope, *, page: int, limit: int) -> NormalizedPage:
    """Reduce a successful envelope to ``NormalizedPage``."""
    entities = []
    for item in envelope.items:
        entity = parse_entity(item)
        if entity is None:
            logger.debug("Skipping directory item without id: %r", item)
            continue
        entities.append(entity)
    return NormalizedPage(
        entities=tuple(entities),
        page=page,
        limit=limit,
        pagination=envelope.pagination,
    )


def _format_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def build_query_params(query: DirectoryQuery, search_param: str) -> list[tuple[str, str]]:
    """Build outgoing query params, dropping undefined/empty values.

    Ranges become ``<name>_min``/``<name>_max``; lists become repeated keys.
    """
    params: list[tuple[str, str]] = [("page", str(query.page)), ("limit", str(query.limit))]
    search = query.search.strip()
    if search:
        params.append((search_param, search))
    for key, value in query.filters.items():
        if not is_active_value(value):
            continue
        if isinstance(value, Mapping):
            for bound in ("min", "max"):
                if is_active_value(value.get(bound)):
                    params.append((f"{key}_{bound}", _format_param(value[bound])))
        elif isinstance(value, (list, tuple, set, frozenset)):
            params.extend((key, _format_param(item)) for item in value if is_active_value(item))
        else:
            params.append((key, _format_param(value)))
    return params


def _headers(auth_token: str) -> dict[str, str]:
    headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    if auth_token:
        headers["Authorization"] = f"Bearer {auth_token}"
    return headers


def _url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


# ============================================================================
# HTTP helpers
# ============================================================================


async def _send(
    client: httpx.AsyncClient | None,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """Send through the shared client, or a temporary one when none is given."""
    if client is not None:
        return await client.request(method, url, **kwargs)
    async with httpx.AsyncClient() as tmp_client:
        return await tmp_client.request(method, url, **kwargs)


async def _get_json_with_retry(
    client: httpx.AsyncClient | None,
    url: str,
    *,
    params: list[tuple[str, str]] | dict[str, str],
    auth_token: str,
    timeout: int,
    max_retries: int,
    action: str,
) -> Any:
    """GET a JSON body, retrying 429/5xx/timeouts with exponential backoff.

    Raises ``FetchError`` with an actionable message on terminal failure.
    """
    attempts = max(0, max_retries) + 1
    backoff = INITIAL_BACKOFF
    for attempt in range(attempts):
        try:
            response = await _send(
                client,
                "GET",
                url,
                params=params,
                headers=_headers(auth_token),
                timeout=timeout,
            )
            if response.status_code in RETRYABLE_STATUS_CODES and attempt < attempts - 1:
                jitter = random.uniform(0, backoff * 0.5)
                logger.info(
                    "%s returned %d, retrying in %.1fs (attempt %d/%d)",
                    url,
                    response.status_code,
                    backoff + jitter,
                    attempt + 1,
                    attempts,
                )
                await asyncio.sleep(backoff + jitter)
                backoff *= 2
                continue
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            if attempt < attempts - 1:
                logger.info("%s timeout, retrying (attempt %d/%d)", url, attempt + 1, attempts)
                jitter = random.uniform(0, backoff * 0.5)
                await asyncio.sleep(backoff + jitter)
                backoff *= 2
                continue
            raise FetchError(describe_http_failure(action, exc)) from exc
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                describe_http_failure(action, exc),
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("%s HTTP error", url, exc_info=True)
            raise FetchError(describe_http_failure(action, exc)) from exc

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("%s returned invalid JSON", url)
            raise FetchError(build_malformed_response_error(action)) from exc

    raise FetchError(
        build_actionable_error(action, why="all retries failed", next_step="retry later")
    )


# ============================================================================
# Directory pages
# ============================================================================


async def _fetch_from(
    client: httpx.AsyncClient | None,
    *,
    path: str,
    search_param: str,
    query: DirectoryQuery,
    base_url: str,
    auth_token: str,
    timeout: int,
    max_retries: int,
) -> NormalizedPage:
    payload = await _get_json_with_retry(
        client,
        _url(base_url, path),
        params=build_query_params(query, search_param),
        auth_token=auth_token,
        timeout=timeout,
        max_retries=max_retries,
        action="load the directory",
    )
    envelope = parse_envelope(payload)
    if not envelope.success:
        raise FetchError(
            build_actionable_error(
                "load the directory",
                why=envelope.error or "the server reported a failure",
                next_step="pull to refresh",
            )
        )
    logger.debug(
        "%s page %d: %s envelope with %d items",
        path,
        query.page,
        envelope.shape,
        len(envelope.items),
    )
    return normalize_envelope(envelope, page=query.page, limit=query.limit)


async def fetch_directory_page(
    *,
    client: httpx.AsyncClient | None,
    mode: str,
    query: DirectoryQuery,
    base_url: str,
    auth_token: str = "",
    timeout_seconds: int = REQUEST_TIMEOUT,
    max_retries: int = 1,
) -> NormalizedPage:
    """Fetch one directory page.

    Guests use the guest-browse endpoint only. Authenticated callers try
    the direct endpoint first and fall back to the search endpoint (which
    takes the search text as ``q``) on any failure.
    """
    common: dict[str, Any] = {
        "query": query,
        "base_url": base_url,
        "auth_token": auth_token,
        "timeout": timeout_seconds,
        "max_retries": max_retries,
    }
    if mode == MODE_GUEST:
        return await _fetch_from(
            client, path=GUEST_BROWSE_PATH, search_param=DIRECT_SEARCH_PARAM, **common
        )

    try:
        return await _fetch_from(
            client, path=DIRECT_USERS_PATH, search_param=DIRECT_SEARCH_PARAM, **common
        )
    except Exception:  # noqa: BLE001 - any direct-path failure falls back
        logger.warning("Direct users endpoint failed, falling back to search", exc_info=True)

    return await _fetch_from(
        client, path=CLIENT_SEARCH_PATH, search_param=CLIENT_SEARCH_PARAM, **common
    )


# ============================================================================
# Roles
# ============================================================================


async def fetch_roles(
    *,
    client: httpx.AsyncClient | None,
    category: str,
    base_url: str,
    auth_token: str = "",
    timeout_seconds: int = REQUEST_TIMEOUT,
    max_retries: int = 1,
) -> list[str]:
    """Fetch role names for ``category``."""
    payload = await _get_json_with_retry(
        client,
        _url(base_url, ROLES_PATH),
        params={"category": category} if category else {},
        auth_token=auth_token,
        timeout=timeout_seconds,
        max_retries=max_retries,
        action="load roles",
    )
    return parse_role_names(payload)


# ============================================================================
# Team membership
# ============================================================================


def parse_team_member(item: Any, owner_id: str) -> MembershipRecord | None:
    """Parse one team member row. The user may be nested as ``users`` or ``user``."""
    if not isinstance(item, dict):
        return None
    user = item.get("users") or item.get("user")
    if isinstance(user, list):
        user = user[0] if user else None
    if not isinstance(user, dict):
        user = {}
    raw_id = item.get("user_id") or user.get("id")
    if not raw_id and (item.get("name") or item.get("email")):
        raw_id = item.get("id")
    if not raw_id:
        return None
    name = user.get("name") or item.get("name") or item.get("full_name") or ""
    role = item.get("role") or user.get("specialty") or user.get("primary_role")
    added_at = item.get("joined_at") or item.get("added_at") or ""
    return MembershipRecord(
        user_id=str(raw_id),
        owner_id=owner_id,
        name=name if isinstance(name, str) else "",
        role=role if isinstance(role, str) else None,
        added_at=added_at if isinstance(added_at, str) else "",
    )


async def fetch_team_members(
    *,
    client: httpx.AsyncClient | None,
    owner_id: str,
    base_url: str,
    auth_token: str = "",
    timeout_seconds: int = REQUEST_TIMEOUT,
    max_retries: int = 1,
) -> list[MembershipRecord]:
    """Fetch the acting user's team, one record per member id."""
    payload = await _get_json_with_retry(
        client,
        _url(base_url, TEAM_MEMBERS_PATH),
        params={},
        auth_token=auth_token,
        timeout=timeout_seconds,
        max_retries=max_retries,
        action="load your team",
    )
    envelope = parse_envelope(payload)
    if not envelope.success:
        raise FetchError(
            build_actionable_error(
                "load your team",
                why=envelope.error or "the server reported a failure",
                next_step="retry",
            )
        )
    records: dict[str, MembershipRecord] = {}
    for item in envelope.items:
        record = parse_team_member(item, owner_id)
        if record is not None and record.user_id not in records:
            records[record.user_id] = record
    return list(records.values())


async def _mutate(
    client: httpx.AsyncClient | None,
    method: str,
    url: str,
    *,
    user_id: str,
    operation: str,
    auth_token: str,
    timeout: int,
    json_body: dict[str, Any] | None = None,
) -> None:
    action = f"{'add' if operation == 'add' else 'remove'} team member"
    kwargs: dict[str, Any] = {"headers": _headers(auth_token), "timeout": timeout}
    if json_body is not None:
        kwargs["json"] = json_body
    try:
        response = await _send(client, method, url, **kwargs)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise MutationError(
            describe_http_failure(action, exc), entity_id=user_id, operation=operation
        ) from exc

    if not response.content:
        return
    try:
        payload = response.json()
    except ValueError:
        return
    if isinstance(payload, dict) and payload.get("success") is False:
        error = payload.get("error") or payload.get("message")
        raise MutationError(
            build_actionable_error(
                action,
                why=error if isinstance(error, str) else "the server reported a failure",
                next_step="try again",
            ),
            entity_id=user_id,
            operation=operation,
        )


async def add_team_member(
    *,
    client: httpx.AsyncClient | None,
    user_id: str,
    base_url: str,
    auth_token: str = "",
    timeout_seconds: int = REQUEST_TIMEOUT,
) -> None:
    """Add ``user_id`` to the acting user's team. Never retried."""
    await _mutate(
        client,
        "POST",
        _url(base_url, TEAM_MEMBERS_PATH),
        user_id=user_id,
        operation="add",
        auth_token=auth_token,
        timeout=timeout_seconds,
        json_body={"user_id": user_id},
    )


async def remove_team_member(
    *,
    client: httpx.AsyncClient | None,
    user_id: str,
    base_url: str,
    auth_token: str = "",
    timeout_seconds: int = REQUEST_TIMEOUT,
) -> None:
    """Remove ``user_id`` from the acting user's team. Never retried."""
    await _mutate(
        client,
        "DELETE",
        _url(base_url, f"{TEAM_MEMBERS_PATH}/{user_id}"),
        user_id=user_id,
        operation="remove",
        auth_token=auth_token,
        timeout=timeout_seconds,
    )


__all__ = [
    "CLIENT_SEARCH_PARAM",
    "CLIENT_SEARCH_PATH",
    "DIRECT_SEARCH_PARAM",
    "DIRECT_USERS_PATH",
    "GUEST_BROWSE_PATH",
    "ROLES_PATH",
    "TEAM_MEMBERS_PATH",
    "DirectoryQuery",
    "Envelope",
    "add_team_member",
    "build_query_params",
    "fetch_directory_page",
    "fetch_roles",
    "fetch_team_members",
    "normalize_envelope",
    "parse_envelope",
    "parse_team_member",
    "remove_team_member",
]
