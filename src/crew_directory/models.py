"""Data models and constants for the crew directory engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

# Application identity, single source of truth for platformdirs config paths
CONFIG_APP_NAME = "crew-directory"

# Backend modes
MODE_GUEST = "guest"
MODE_AUTHENTICATED = "authenticated"
DirectoryMode = Literal["guest", "authenticated"]

# Entity categories
CATEGORY_CREW = "crew"
CATEGORY_TALENT = "talent"
CATEGORY_COMPANY = "company"
ENTITY_CATEGORIES = (CATEGORY_CREW, CATEGORY_TALENT, CATEGORY_COMPANY)

# Section keys and the category each one implies
SECTION_DIRECTORY = "directory"
SECTION_CUSTOM = "custom"
SECTION_CATEGORIES: dict[str, str] = {
    "talent": CATEGORY_TALENT,
    "crew": CATEGORY_CREW,
    "individuals": CATEGORY_CREW,
    "onehub": CATEGORY_COMPANY,
    "companies": CATEGORY_COMPANY,
}

# Bucket labels
ALL_MEMBERS_LABEL = "All Members"
ALL_CUSTOM_USERS_LABEL = "All Custom Users"

# Pagination
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
DEFAULT_MAX_CACHED_KEYS = 8

# Search/filter quiet period before a new fetch
SEARCH_DEBOUNCE_SECONDS = 0.5

DEFAULT_BASE_URL = "http://localhost:3000"


@dataclass(slots=True, frozen=True)
class AboutInfo:
    """Optional profile attributes; every field may be independently absent."""

    age: float | None = None
    gender: str | None = None
    nationality: str | None = None
    location: str | None = None
    height_cm: float | None = None
    weight_kg: float | None = None
    chest_cm: float | None = None
    waist_cm: float | None = None
    hips_cm: float | None = None
    shoe_size_eu: float | None = None
    skin_tone: str | None = None
    hair_color: str | None = None
    eye_color: str | None = None
    union_member: bool | None = None
    willing_to_travel: bool | None = None
    travel_ready: bool | None = None
    dialects: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class Entity:
    """A person or company snapshot returned by the backend."""

    id: str
    name: str
    category: str
    primary_role: str | None = None
    about: AboutInfo = field(default_factory=AboutInfo)
    skills: tuple[str, ...] = ()
    online_last_seen: str | None = None
    location: str | None = None
    is_custom: bool = False
    specialty: str | None = None
    image_url: str | None = None
    profile_completeness: int = 0


@dataclass(slots=True, frozen=True)
class PaginationInfo:
    """Server pagination hint."""

    total_pages: int | None = None
    total: int | None = None


@dataclass(slots=True, frozen=True)
class NormalizedPage:
    """Fetcher output: one envelope reduced to a single shape."""

    entities: tuple[Entity, ...]
    page: int
    limit: int
    pagination: PaginationInfo | None = None


@dataclass(slots=True, frozen=True)
class Page:
    """One page as stored in the paginated cache."""

    number: int
    entities: tuple[Entity, ...]
    limit: int
    total_pages: int | None = None


@dataclass(slots=True, frozen=True)
class CacheKey:
    """Identity of one independent paginated result set."""

    section_key: str
    mode: str
    search_text: str
    filters: tuple[tuple[str, Any], ...] = ()


@dataclass(slots=True, frozen=True)
class SectionItem:
    """A labelled row inside a section (e.g. "Actor")."""

    label: str
    users: int | None = None


@dataclass(slots=True, frozen=True)
class SectionDefinition:
    """A browsable section and its declared item labels."""

    key: str
    title: str
    items: tuple[SectionItem, ...] = ()

    @property
    def category(self) -> str | None:
        """Category implied by the section key, if any."""
        return SECTION_CATEGORIES.get(self.key)


@dataclass(slots=True, frozen=True)
class MembershipRecord:
    """One person in the acting user's team."""

    user_id: str
    owner_id: str
    name: str = ""
    role: str | None = None
    added_at: str = ""
    optimistic: bool = False


@dataclass(slots=True)
class DirectoryConfig:
    """User configuration for the directory engine and CLI."""

    base_url: str = DEFAULT_BASE_URL
    page_size: int = DEFAULT_PAGE_SIZE
    search_debounce_seconds: float = SEARCH_DEBOUNCE_SECONDS
    request_timeout_seconds: int = 30
    max_retries: int = 1
    rollback_on_failed_mutation: bool = False
    roles_cache_ttl_hours: int = 24
    max_cached_keys: int = DEFAULT_MAX_CACHED_KEYS
    auth_token: str = ""
    version: int = 1


# ============================================================================
# Response Parsing
# ============================================================================


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _coerce_number(value: Any) -> float | None:
    # bool is an int subclass; never treat it as a measurement
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _coerce_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _coerce_str_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item for item in value if isinstance(item, str) and item)


def _named(value: Any) -> str | None:
    """Read ``{"name": ...}`` lookup objects (skin_tones, hair_colors)."""
    if isinstance(value, dict):
        return _coerce_str(value.get("name"))
    return None


def parse_about(data: Any) -> AboutInfo:
    """Parse the open-ended ``about`` sub-record. Unknown shapes yield an empty record."""
    if not isinstance(data, dict):
        return AboutInfo()
    dialects = _coerce_str_tuple(data.get("dialects")) or _coerce_str_tuple(
        data.get("languages")
    )
    return AboutInfo(
        age=_coerce_number(data.get("age")),
        gender=_coerce_str(data.get("gender")),
        nationality=_coerce_str(data.get("nationality")),
        location=_coerce_str(data.get("location")),
        height_cm=_coerce_number(data.get("height_cm")),
        weight_kg=_coerce_number(data.get("weight_kg")),
        chest_cm=_coerce_number(data.get("chest_cm")),
        waist_cm=_coerce_number(data.get("waist_cm")),
        hips_cm=_coerce_number(data.get("hips_cm")),
        shoe_size_eu=_coerce_number(data.get("shoe_size_eu")),
        skin_tone=_coerce_str(data.get("skin_tone")) or _named(data.get("skin_tones")),
        hair_color=_coerce_str(data.get("hair_color")) or _named(data.get("hair_colors")),
        eye_color=_coerce_str(data.get("eye_color")),
        union_member=_coerce_bool(data.get("union_member")),
        willing_to_travel=_coerce_bool(data.get("willing_to_travel")),
        travel_ready=_coerce_bool(data.get("travel_ready")),
        dialects=dialects,
    )


def parse_entity(data: Any) -> Entity | None:
    """Parse a backend user/company object. Returns None if the id is missing."""
    if not isinstance(data, dict):
        return None
    raw_id = data.get("id")
    if raw_id is None or raw_id == "":
        return None
    category = data.get("category")
    category = category if isinstance(category, str) else ""
    primary_role = data.get("primary_role")
    if isinstance(primary_role, dict):
        primary_role = primary_role.get("name")
    completeness = data.get("profile_completeness")
    return Entity(
        id=str(raw_id),
        name=data.get("name") if isinstance(data.get("name"), str) else "",
        category=category,
        primary_role=primary_role if isinstance(primary_role, str) else None,
        about=parse_about(data.get("about")),
        skills=_coerce_str_tuple(data.get("skills")),
        online_last_seen=_coerce_str(data.get("online_last_seen")),
        location=_coerce_str(data.get("location_text")),
        is_custom=(
            category == "custom" or bool(data.get("is_custom")) or bool(data.get("custom_role"))
        ),
        specialty=_coerce_str(data.get("specialty")),
        image_url=_coerce_str(data.get("image_url")),
        profile_completeness=completeness if isinstance(completeness, int) else 0,
    )


__all__ = [
    "ALL_CUSTOM_USERS_LABEL",
    "ALL_MEMBERS_LABEL",
    "CATEGORY_COMPANY",
    "CATEGORY_CREW",
    "CATEGORY_TALENT",
    "CONFIG_APP_NAME",
    "DEFAULT_BASE_URL",
    "DEFAULT_MAX_CACHED_KEYS",
    "DEFAULT_PAGE_SIZE",
    "ENTITY_CATEGORIES",
    "MAX_PAGE_SIZE",
    "MODE_AUTHENTICATED",
    "MODE_GUEST",
    "SEARCH_DEBOUNCE_SECONDS",
    "SECTION_CATEGORIES",
    "SECTION_CUSTOM",
    "SECTION_DIRECTORY",
    "AboutInfo",
    "CacheKey",
    "DirectoryConfig",
    "DirectoryMode",
    "Entity",
    "MembershipRecord",
    "NormalizedPage",
    "Page",
    "PaginationInfo",
    "SectionDefinition",
    "SectionItem",
    "parse_about",
    "parse_entity",
]
