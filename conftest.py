"""Shared test fixtures for crew-directory tests."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from crew_directory.models import (
    AboutInfo,
    DirectoryConfig,
    Entity,
    NormalizedPage,
    PaginationInfo,
)
from crew_directory.services.interfaces import AppServices


@pytest.fixture
def make_entity():
    """Factory fixture for creating Entity instances with sensible defaults.

    Keyword arguments that are only AboutInfo fields go into ``about``;
    ``about_location`` sets the profile location (``location`` is the
    entity's own location text).
    """
    about_fields = set(AboutInfo.__dataclass_fields__) - set(Entity.__dataclass_fields__)

    def _make(
        entity_id: str = "u1",
        name: str = "Test Person",
        category: str = "crew",
        primary_role: str | None = "director",
        about_location: str | None = None,
        **kwargs: Any,
    ) -> Entity:
        about_kwargs = {k: kwargs.pop(k) for k in list(kwargs) if k in about_fields}
        return Entity(
            id=entity_id,
            name=name,
            category=category,
            primary_role=primary_role,
            about=AboutInfo(location=about_location, **about_kwargs),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_page(make_entity):
    """Factory for NormalizedPage results as returned by the directory service."""

    def _make(
        page: int,
        ids: list[str],
        *,
        limit: int = 20,
        total_pages: int | None = None,
    ) -> NormalizedPage:
        pagination = PaginationInfo(total_pages=total_pages) if total_pages is not None else None
        return NormalizedPage(
            entities=tuple(make_entity(entity_id=i, name=f"Person {i}") for i in ids),
            page=page,
            limit=limit,
            pagination=pagination,
        )

    return _make


@pytest.fixture
def sample_config():
    """Factory fixture for creating DirectoryConfig with optional overrides."""

    def _make(**kwargs: Any) -> DirectoryConfig:
        kwargs.setdefault("search_debounce_seconds", 0.01)
        return DirectoryConfig(**kwargs)

    return _make


@pytest.fixture
def mock_services():
    """AppServices whose network calls are AsyncMocks."""
    directory = AsyncMock()
    directory.fetch_roles = AsyncMock(return_value=[])
    team = AsyncMock()
    team.fetch_team_members = AsyncMock(return_value=[])
    team.add_team_member = AsyncMock(return_value=None)
    team.remove_team_member = AsyncMock(return_value=None)
    return AppServices(directory=directory, team=team)
