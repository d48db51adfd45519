"""Group filtered entities into named display buckets.

Buckets are always rebuilt from scratch; nothing here patches a previous
result.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from crew_directory.models import (
    ALL_CUSTOM_USERS_LABEL,
    ALL_MEMBERS_LABEL,
    SECTION_CUSTOM,
    SECTION_DIRECTORY,
    Entity,
    SectionDefinition,
)
from crew_directory.roles import (
    ROLE_CUSTOM,
    RoleClass,
    classify,
    matches_exact_role,
    matches_section_item,
    normalize_role,
)

Buckets = dict[str, list[Entity]]


def classify_entities(
    entities: Iterable[Entity], known_role_keys: set[str] | frozenset[str]
) -> dict[str, RoleClass]:
    """Transient classification per entity id."""
    return {entity.id: classify(entity, known_role_keys) for entity in entities}


def _custom_role_labels(section: SectionDefinition, custom: Sequence[Entity]) -> list[str]:
    """Declared item labels, or the distinct roles of the custom set in first-seen order."""
    if section.items:
        return [item.label for item in section.items]
    labels: list[str] = []
    seen: set[str] = set()
    for entity in custom:
        key = normalize_role(entity.primary_role)
        if not key or key in seen or entity.primary_role is None:
            continue
        seen.add(key)
        labels.append(entity.primary_role)
    return labels


def assemble_custom(
    entities: Sequence[Entity],
    section: SectionDefinition,
    known_role_keys: set[str] | frozenset[str],
) -> Buckets:
    """All custom users plus one exact-key bucket per role label."""
    classes = classify_entities(entities, known_role_keys)
    custom = [entity for entity in entities if classes[entity.id] == ROLE_CUSTOM]
    buckets: Buckets = {ALL_CUSTOM_USERS_LABEL: custom}
    for label in _custom_role_labels(section, custom):
        buckets[label] = [entity for entity in custom if matches_exact_role(entity, label)]
    return buckets


def assemble_section(entities: Sequence[Entity], section: SectionDefinition) -> Buckets:
    """One bucket per item label using the lenient containment rule."""
    category = section.category
    buckets: Buckets = {}
    for item in section.items:
        buckets[item.label] = [
            entity
            for entity in entities
            if (category is None or entity.category == category)
            and matches_section_item(entity, item.label)
        ]
    return buckets


def assemble(
    filtered_entities: Sequence[Entity],
    section: SectionDefinition,
    known_role_keys: set[str] | frozenset[str],
) -> Buckets:
    """Build display buckets for ``section`` from the filtered entity list."""
    if section.key == SECTION_DIRECTORY:
        return {ALL_MEMBERS_LABEL: list(filtered_entities)}
    if section.key == SECTION_CUSTOM:
        return assemble_custom(filtered_entities, section, known_role_keys)
    return assemble_section(filtered_entities, section)


__all__ = [
    "Buckets",
    "assemble",
    "assemble_custom",
    "assemble_section",
    "classify_entities",
]
