"""Lenient client-side filter pass over server-filtered entities.

Every attribute check only excludes an entity whose data is present and
contradicts the filter. Missing data never excludes, with two hard
exceptions evaluated first: ``category`` and ``role``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from crew_directory.models import AboutInfo, Entity

# (filter name, AboutInfo attribute) in evaluation order
NUMERIC_RANGE_FILTERS: tuple[tuple[str, str], ...] = (
    ("age", "age"),
    ("height", "height_cm"),
    ("weight", "weight_kg"),
    ("chest", "chest_cm"),
    ("waist", "waist_cm"),
    ("hips", "hips_cm"),
    ("shoe_size", "shoe_size_eu"),
)
APPEARANCE_FILTERS: tuple[tuple[str, str], ...] = (
    ("skin_tone", "skin_tone"),
    ("hair_color", "hair_color"),
    ("eye_color", "eye_color"),
)
BOOLEAN_FILTERS: tuple[tuple[str, str], ...] = (
    ("union_member", "union_member"),
    ("willing_to_travel", "willing_to_travel"),
    ("travel_ready", "travel_ready"),
)


def is_active_value(value: Any) -> bool:
    """Return True when a filter value constrains anything."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, Mapping):
        return any(is_active_value(v) for v in value.values())
    if isinstance(value, (list, tuple, set, frozenset)):
        return any(is_active_value(v) for v in value)
    return True


def has_active_filters(filters: Mapping[str, Any] | None) -> bool:
    """Fast-path check: does any key hold an active value?"""
    if not filters:
        return False
    return any(is_active_value(value) for value in filters.values())


def active_filter_count(filters: Mapping[str, Any] | None) -> int:
    """Count active filter groups (a min/max pair counts once)."""
    if not filters:
        return 0
    groups: set[str] = set()
    for key, value in filters.items():
        if not is_active_value(value):
            continue
        for suffix in ("_min", "_max"):
            if key.endswith(suffix):
                key = key[: -len(suffix)]
                break
        groups.add(key)
    return len(groups)


# ============================================================================
# Value helpers
# ============================================================================


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return None


def _text_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        return []
    return [t for t in (_text(v) for v in value) if t]


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def range_bounds(filters: Mapping[str, Any], name: str) -> tuple[float | None, float | None]:
    """Resolve ``name`` bounds from ``name_min``/``name_max``, a range dict, or a scalar.

    A scalar value is an exact match (min == max).
    """
    low = _number(filters.get(f"{name}_min"))
    high = _number(filters.get(f"{name}_max"))
    combined = filters.get(name)
    if isinstance(combined, Mapping):
        if low is None:
            low = _number(combined.get("min"))
        if high is None:
            high = _number(combined.get("max"))
    else:
        exact = _number(combined)
        if exact is not None:
            low = exact if low is None else low
            high = exact if high is None else high
    return low, high


# ============================================================================
# Individual checks (each returns False only on contradicting data)
# ============================================================================


def _check_category(entity: Entity, filters: Mapping[str, Any]) -> bool:
    wanted = filters.get("category")
    if not is_active_value(wanted):
        return True
    return entity.category == wanted


def _check_role(entity: Entity, filters: Mapping[str, Any]) -> bool:
    wanted = _text(filters.get("role"))
    if wanted is None:
        return True
    # Hard exclude: a missing role never matches a role filter
    role = _text(entity.primary_role)
    return role == wanted


def _check_location(entity: Entity, filters: Mapping[str, Any]) -> bool:
    wanted = _text(filters.get("location"))
    if wanted is None:
        return True
    known = [t for t in (_text(entity.location), _text(entity.about.location)) if t]
    if not known:
        return True
    return any(wanted in place for place in known)


def _check_gender(entity: Entity, filters: Mapping[str, Any]) -> bool:
    wanted = _text(filters.get("gender"))
    gender = _text(entity.about.gender)
    if wanted is None or gender is None:
        return True
    return gender == wanted


def _check_ranges(entity: Entity, filters: Mapping[str, Any]) -> bool:
    for name, attr in NUMERIC_RANGE_FILTERS:
        low, high = range_bounds(filters, name)
        if low is None and high is None:
            continue
        value = _number(getattr(entity.about, attr))
        if value is None:
            continue
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
    return True


def _check_appearance(entity: Entity, filters: Mapping[str, Any]) -> bool:
    for name, attr in APPEARANCE_FILTERS:
        wanted = _text(filters.get(name))
        value = _text(getattr(entity.about, attr))
        if wanted is None or value is None:
            continue
        if wanted not in value:
            return False
    return True


def _check_nationality(entity: Entity, filters: Mapping[str, Any]) -> bool:
    nationality = _text(entity.about.nationality)
    if nationality is None:
        return True
    wanted = _text(filters.get("nationality"))
    if wanted is not None and wanted not in nationality:
        return False
    wanted_any = _text_list(filters.get("nationalities"))
    if wanted_any and not any(w in nationality for w in wanted_any):
        return False
    return True


def _check_booleans(entity: Entity, filters: Mapping[str, Any]) -> bool:
    for name, attr in BOOLEAN_FILTERS:
        wanted = filters.get(name)
        value = getattr(entity.about, attr)
        if not isinstance(wanted, bool) or value is None:
            continue
        if value is not wanted:
            return False
    return True


def _overlaps(requested: list[str], available: Iterable[str]) -> bool:
    """Any requested term is a substring of any available value."""
    have = [t for t in (_text(v) for v in available) if t]
    if not have:
        return True
    return any(term in value for term in requested for value in have)


def _check_skills(entity: Entity, filters: Mapping[str, Any]) -> bool:
    requested = _text_list(filters.get("skills"))
    if not requested:
        return True
    return _overlaps(requested, entity.skills)


def _check_languages(entity: Entity, filters: Mapping[str, Any]) -> bool:
    requested = _text_list(filters.get("languages")) or _text_list(filters.get("dialects"))
    if not requested:
        return True
    return _overlaps(requested, entity.about.dialects)


# Cheapest / most selective first
_CHECKS: tuple[Callable[[Entity, Mapping[str, Any]], bool], ...] = (
    _check_category,
    _check_role,
    _check_location,
    _check_gender,
    _check_ranges,
    _check_appearance,
    _check_nationality,
    _check_booleans,
    _check_skills,
    _check_languages,
)


def matches(entity: Entity, filters: Mapping[str, Any] | None) -> bool:
    """Evaluate one entity against a filter set using lenient matching."""
    if filters is None or not has_active_filters(filters):
        return True
    return all(check(entity, filters) for check in _CHECKS)


def filter_entities(
    entities: Iterable[Entity], filters: Mapping[str, Any] | None
) -> list[Entity]:
    """Apply ``matches`` to a sequence, preserving order."""
    if not has_active_filters(filters):
        return list(entities)
    return [entity for entity in entities if matches(entity, filters)]


__all__ = [
    "APPEARANCE_FILTERS",
    "BOOLEAN_FILTERS",
    "NUMERIC_RANGE_FILTERS",
    "active_filter_count",
    "filter_entities",
    "has_active_filters",
    "is_active_value",
    "matches",
    "range_bounds",
]
