"""Role label normalization and known/custom role classification.

Two matching rules live here and are deliberately kept apart:

- ``matches_exact_role``: normalized key equality only. Used for the
  per-role buckets of the custom section so a specific key is never
  counted under a more general label.
- ``matches_section_item``: equality or containment in either
  direction. Used for talent/crew/company section items to tolerate
  drift between the section taxonomy and stored role text.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any, Literal

from crew_directory.models import CATEGORY_COMPANY, CATEGORY_CREW, CATEGORY_TALENT, Entity

RoleClass = Literal["known", "custom", "company_excluded", "pending"]

ROLE_KNOWN: RoleClass = "known"
ROLE_CUSTOM: RoleClass = "custom"
ROLE_COMPANY_EXCLUDED: RoleClass = "company_excluded"
# Roles not loaded yet, or the entity has no usable role text
ROLE_PENDING: RoleClass = "pending"

_NON_KEY_CHAR_RE = re.compile(r"[^a-z0-9]")


def normalize_role(label: str | None) -> str:
    """Lower-case a label and replace every non ``[a-z0-9]`` character with ``_``."""
    if not label:
        return ""
    return _NON_KEY_CHAR_RE.sub("_", label.lower())


def _has_key_content(key: str) -> bool:
    return bool(key.strip("_"))


def role_key(entity: Entity) -> str:
    """Normalized primary role key, or ``""`` when unusable."""
    key = normalize_role(entity.primary_role)
    return key if _has_key_content(key) else ""


def classify(entity: Entity, known_role_keys: set[str] | frozenset[str]) -> RoleClass:
    """Decide whether an entity belongs to a known role or the custom bucket."""
    if entity.category == CATEGORY_COMPANY:
        return ROLE_COMPANY_EXCLUDED
    if entity.is_custom:
        return ROLE_CUSTOM
    key = role_key(entity)
    if not key or not known_role_keys:
        return ROLE_PENDING
    if key in known_role_keys:
        return ROLE_KNOWN
    return ROLE_CUSTOM


def matches_exact_role(entity: Entity, label: str) -> bool:
    """Exact normalized-key equality between the entity's role and ``label``."""
    key = role_key(entity)
    return bool(key) and key == normalize_role(label)


def matches_section_item(entity: Entity, label: str) -> bool:
    """Lenient match: equal keys, or one key contains the other."""
    user_key = role_key(entity)
    item_key = normalize_role(label)
    if not user_key or not _has_key_content(item_key):
        return False
    return user_key == item_key or user_key in item_key or item_key in user_key


# ============================================================================
# Roles endpoint helpers
# ============================================================================


def get_role_name(role: Any) -> str:
    """Extract a role name from a string or a ``{"name": ...}`` object."""
    if isinstance(role, str):
        return role
    if isinstance(role, dict):
        name = role.get("name")
        if isinstance(name, str):
            return name
    return ""


def parse_role_names(payload: Any) -> list[str]:
    """Parse role names from a roles response body (any envelope shape)."""
    items = payload
    if isinstance(items, dict):
        items = items.get("data")
        if isinstance(items, dict):
            items = items.get("data")
    if not isinstance(items, list):
        return []
    names: list[str] = []
    for item in items:
        name = get_role_name(item).strip()
        if name:
            names.append(name)
    return names


def known_role_keys(names: Iterable[str], category: str | None = None) -> frozenset[str]:
    """Build the known role key set from role names.

    For a crew or talent ``category`` the names are first narrowed with
    ``filter_roles_by_category``, since the roles endpoint may answer with
    both categories' roles.
    """
    if category in (CATEGORY_CREW, CATEGORY_TALENT):
        names = filter_roles_by_category(names, category)
    keys = (normalize_role(name) for name in names)
    return frozenset(key for key in keys if _has_key_content(key))


# ============================================================================
# Crew / talent role categorization
# ============================================================================

RoleCategory = Literal["crew", "talent", "both"]

_TALENT_ONLY = ("singer", "dancer", "model")
_CREW_ONLY = (
    "director",
    "dop",
    "editor",
    "producer",
    "scriptwriter",
    "gaffer",
    "grip",
    "sound_engineer",
    "makeup_artist",
    "stylist",
    "vfx",
    "colorist",
    "cinematographer",
    "composer",
    "writer",
    "screenwriter",
    "creative_director",
    "art_director",
    "sound_designer",
    "vfx_artist",
    "focus_puller",
    "camera_operator",
    "dolly_grip",
    "best_boy",
    "set_dresser",
    "art_director_assistant",
    "production_assistant",
)
_BOTH = ("actor", "voice_actor", "voiceactor")


def categorize_role(role_name: str) -> RoleCategory:
    """Categorize a role name as crew, talent, or both. Unknown roles are crew."""
    normalized = normalize_role(role_name)
    # "sound_engineer" stays crew; a bare engineer is a performer
    if normalized in ("engineer", "main_engineer"):
        return "talent"
    if any(t in normalized for t in _TALENT_ONLY):
        return "talent"
    if any(c in normalized for c in _CREW_ONLY):
        return "crew"
    if any(b in normalized for b in _BOTH):
        return "both"
    return "crew"


def filter_roles_by_category(roles: Iterable[Any], category: str) -> list[Any]:
    """Keep roles that belong to ``category`` or to both categories."""
    result = []
    for role in roles:
        role_category = categorize_role(get_role_name(role))
        if role_category in (category, "both"):
            result.append(role)
    return result


__all__ = [
    "ROLE_COMPANY_EXCLUDED",
    "ROLE_CUSTOM",
    "ROLE_KNOWN",
    "ROLE_PENDING",
    "RoleCategory",
    "RoleClass",
    "categorize_role",
    "classify",
    "filter_roles_by_category",
    "get_role_name",
    "known_role_keys",
    "matches_exact_role",
    "matches_section_item",
    "normalize_role",
    "parse_role_names",
    "role_key",
]
