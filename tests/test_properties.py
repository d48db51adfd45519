"""Property-based tests using Hypothesis.

Verifies invariants of role normalization, lenient filtering, page
merging and config validation.

Run:
    pytest tests/test_properties.py -v
    pytest tests/test_properties.py -v --hypothesis-seed=0  # reproducible
"""

from __future__ import annotations

import hypothesis.strategies as st
from hypothesis import given, settings

from crew_directory.config import _dict_to_config
from crew_directory.filters import NUMERIC_RANGE_FILTERS, matches
from crew_directory.models import MAX_PAGE_SIZE, AboutInfo, Entity, Page
from crew_directory.pagination import PaginatedFetchCache, build_cache_key, compute_has_more
from crew_directory.roles import classify, matches_section_item, normalize_role

# ── Hypothesis profiles ─────────────────────────────────────────────
settings.register_profile("ci", max_examples=50, deadline=None)
settings.register_profile("dev", max_examples=200, deadline=None)
settings.load_profile("ci")

# ── Custom strategies ────────────────────────────────────────────────

_ROLE_TEXT = st.text(
    alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyzABCDEFGHIJ0123456789 -_&/"),
    max_size=30,
)
_OPTIONAL_TEXT = st.one_of(st.none(), st.text(max_size=15))
_OPTIONAL_NUMBER = st.one_of(st.none(), st.floats(min_value=0, max_value=250))
_OPTIONAL_BOOL = st.one_of(st.none(), st.booleans())


@st.composite
def entities(draw: st.DrawFn) -> Entity:
    """Generate an entity with any mix of present and missing attributes."""
    about = AboutInfo(
        age=draw(_OPTIONAL_NUMBER),
        gender=draw(_OPTIONAL_TEXT),
        nationality=draw(_OPTIONAL_TEXT),
        height_cm=draw(_OPTIONAL_NUMBER),
        hair_color=draw(_OPTIONAL_TEXT),
        union_member=draw(_OPTIONAL_BOOL),
        dialects=tuple(draw(st.lists(st.text(max_size=8), max_size=3))),
    )
    return Entity(
        id=draw(st.text(min_size=1, max_size=8)),
        name=draw(st.text(max_size=20)),
        category=draw(st.sampled_from(["crew", "talent", "company", ""])),
        primary_role=draw(st.one_of(st.none(), _ROLE_TEXT)),
        about=about,
        skills=tuple(draw(st.lists(st.text(max_size=8), max_size=3))),
        location=draw(_OPTIONAL_TEXT),
    )


@st.composite
def attribute_filters(draw: st.DrawFn) -> dict:
    """Filter sets without the hard category/role constraints."""
    filters: dict = {}
    for name, _ in NUMERIC_RANGE_FILTERS:
        if draw(st.booleans()):
            filters[f"{name}_min"] = draw(st.integers(min_value=0, max_value=200))
    for name in ("gender", "location", "hair_color", "nationality"):
        if draw(st.booleans()):
            filters[name] = draw(st.text(min_size=1, max_size=10))
    if draw(st.booleans()):
        filters["union_member"] = draw(st.booleans())
    if draw(st.booleans()):
        filters["skills"] = draw(st.lists(st.text(min_size=1, max_size=6), min_size=1, max_size=3))
    if draw(st.booleans()):
        filters["languages"] = draw(st.lists(st.text(min_size=1, max_size=6), max_size=3))
    return filters


# ── Roles ────────────────────────────────────────────────────────────


@given(_ROLE_TEXT)
def test_normalize_role_is_idempotent(label: str) -> None:
    key = normalize_role(label)
    assert normalize_role(key) == key
    assert len(key) == len(label)


@given(_ROLE_TEXT, _ROLE_TEXT)
def test_section_item_match_is_symmetric(a: str, b: str) -> None:
    left = Entity(id="1", name="", category="crew", primary_role=a)
    right = Entity(id="2", name="", category="crew", primary_role=b)
    assert matches_section_item(left, b) == matches_section_item(right, a)


@given(entities())
def test_classification_is_pending_without_known_roles(entity: Entity) -> None:
    result = classify(entity, frozenset())
    assert result in ("pending", "custom", "company_excluded")
    if entity.category != "company" and not entity.is_custom:
        assert result == "pending"


# ── Filters ──────────────────────────────────────────────────────────


@given(entities())
def test_empty_filter_set_matches_every_entity(entity: Entity) -> None:
    assert matches(entity, {})


@given(attribute_filters())
def test_missing_attributes_never_exclude(filters: dict) -> None:
    bare = Entity(id="x", name="", category="crew")
    assert matches(bare, filters)


@given(entities(), attribute_filters())
def test_adding_a_category_filter_only_narrows(entity: Entity, filters: dict) -> None:
    narrowed = {**filters, "category": "talent"}
    if matches(entity, narrowed):
        assert matches(entity, filters)
        assert entity.category == "talent"


# ── Pagination ───────────────────────────────────────────────────────

_ID_PAGES = st.lists(st.lists(st.sampled_from("ABCDEFGHIJ"), max_size=6), min_size=1, max_size=5)


@given(_ID_PAGES)
def test_merged_list_is_first_seen_unique_order(pages: list[list[str]]) -> None:
    cache = PaginatedFetchCache()
    key = build_cache_key("directory", "guest", "", {})
    entry = cache.activate(key)
    for number, ids in enumerate(pages, start=1):
        entities_ = tuple(Entity(id=i, name="", category="crew") for i in ids)
        cache.append_page(key, Page(number=number, entities=entities_, limit=6))

    flat = [i for ids in pages for i in ids]
    assert [e.id for e in entry.entities] == list(dict.fromkeys(flat))
    assert entry.seen_ids == set(flat)


@given(
    st.integers(min_value=1, max_value=50),
    st.integers(min_value=0, max_value=100),
    st.integers(min_value=1, max_value=100),
)
def test_has_more_follows_page_fill_without_total(page: int, count: int, size: int) -> None:
    assert compute_has_more(page, count, size, None) == (count == size)


# ── Config ───────────────────────────────────────────────────────────

_JSON_SCALARS = st.one_of(
    st.none(), st.booleans(), st.integers(), st.floats(allow_nan=False), st.text(max_size=10)
)


@given(
    st.dictionaries(
        st.sampled_from(
            ["base_url", "page_size", "search_debounce_seconds", "max_retries", "max_cached_keys"]
        ),
        _JSON_SCALARS,
    )
)
def test_dict_to_config_always_valid(data: dict) -> None:
    config = _dict_to_config(data)
    assert 1 <= config.page_size <= MAX_PAGE_SIZE
    assert 0 <= config.search_debounce_seconds <= 5
    assert 0 <= config.max_retries <= 5
    assert config.max_cached_keys >= 1
    assert isinstance(config.base_url, str) and config.base_url
