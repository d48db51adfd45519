"""Service interfaces + default adapters for engine-level dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from crew_directory.models import MembershipRecord, NormalizedPage
from crew_directory.services import directory_api_service as _directory_api
from crew_directory.services.directory_api_service import DirectoryQuery


@runtime_checkable
class DirectoryApiService(Protocol):
    """Interface for directory page and role lookups."""

    async def fetch_directory_page(
        self,
        *,
        client: httpx.AsyncClient | None,
        mode: str,
        query: DirectoryQuery,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
        max_retries: int,
    ) -> NormalizedPage:
        """Fetch one normalized page in guest or authenticated mode."""
        ...

    async def fetch_roles(
        self,
        *,
        client: httpx.AsyncClient | None,
        category: str,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
        max_retries: int,
    ) -> list[str]:
        """Fetch role names for a category."""
        ...


@runtime_checkable
class TeamService(Protocol):
    """Interface for the acting user's team membership endpoints."""

    async def fetch_team_members(
        self,
        *,
        client: httpx.AsyncClient | None,
        owner_id: str,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
        max_retries: int,
    ) -> list[MembershipRecord]:
        """Fetch the authoritative membership list."""
        ...

    async def add_team_member(
        self,
        *,
        client: httpx.AsyncClient | None,
        user_id: str,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
    ) -> None:
        """Add one member; raises MutationError on failure."""
        ...

    async def remove_team_member(
        self,
        *,
        client: httpx.AsyncClient | None,
        user_id: str,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
    ) -> None:
        """Remove one member; raises MutationError on failure."""
        ...


class DefaultDirectoryApiService:
    """Default adapter that delegates to function-based directory services."""

    async def fetch_directory_page(
        self,
        *,
        client: httpx.AsyncClient | None,
        mode: str,
        query: DirectoryQuery,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
        max_retries: int,
    ) -> NormalizedPage:
        return await _directory_api.fetch_directory_page(
            client=client,
            mode=mode,
            query=query,
            base_url=base_url,
            auth_token=auth_token,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
        )

    async def fetch_roles(
        self,
        *,
        client: httpx.AsyncClient | None,
        category: str,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
        max_retries: int,
    ) -> list[str]:
        return await _directory_api.fetch_roles(
            client=client,
            category=category,
            base_url=base_url,
            auth_token=auth_token,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
        )


class DefaultTeamService:
    """Default adapter that delegates to function-based team services."""

    async def fetch_team_members(
        self,
        *,
        client: httpx.AsyncClient | None,
        owner_id: str,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
        max_retries: int,
    ) -> list[MembershipRecord]:
        return await _directory_api.fetch_team_members(
            client=client,
            owner_id=owner_id,
            base_url=base_url,
            auth_token=auth_token,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
        )

    async def add_team_member(
        self,
        *,
        client: httpx.AsyncClient | None,
        user_id: str,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
    ) -> None:
        await _directory_api.add_team_member(
            client=client,
            user_id=user_id,
            base_url=base_url,
            auth_token=auth_token,
            timeout_seconds=timeout_seconds,
        )

    async def remove_team_member(
        self,
        *,
        client: httpx.AsyncClient | None,
        user_id: str,
        base_url: str,
        auth_token: str,
        timeout_seconds: int,
    ) -> None:
        await _directory_api.remove_team_member(
            client=client,
            user_id=user_id,
            base_url=base_url,
            auth_token=auth_token,
            timeout_seconds=timeout_seconds,
        )


@dataclass(slots=True)
class AppServices:
    """Aggregated service interfaces consumed by the engine."""

    directory: DirectoryApiService
    team: TeamService


def build_default_app_services() -> AppServices:
    """Build default services backed by the function-based modules."""
    return AppServices(
        directory=DefaultDirectoryApiService(),
        team=DefaultTeamService(),
    )


__all__ = [
    "AppServices",
    "DefaultDirectoryApiService",
    "DefaultTeamService",
    "DirectoryApiService",
    "TeamService",
    "build_default_app_services",
]
