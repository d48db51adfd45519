"""Tests for the lenient client-side filter predicate."""

from __future__ import annotations

from crew_directory.filters import (
    active_filter_count,
    filter_entities,
    has_active_filters,
    is_active_value,
    matches,
    range_bounds,
)


class TestActiveValues:
    def test_inactive_values(self):
        assert not is_active_value(None)
        assert not is_active_value("   ")
        assert not is_active_value([])
        assert not is_active_value({"min": None, "max": None})

    def test_active_values(self):
        assert is_active_value(False)
        assert is_active_value(0)
        assert is_active_value(["x"])
        assert is_active_value({"min": 18})

    def test_has_active_filters(self):
        assert not has_active_filters(None)
        assert not has_active_filters({"gender": "", "skills": []})
        assert has_active_filters({"gender": "female"})

    def test_active_filter_count_pairs_ranges(self):
        filters = {"age_min": 20, "age_max": 30, "gender": "female", "location": ""}
        assert active_filter_count(filters) == 2


class TestRangeBounds:
    def test_flat_keys(self):
        assert range_bounds({"height_min": 160, "height_max": "190"}, "height") == (160, 190.0)

    def test_range_dict(self):
        assert range_bounds({"age": {"min": 18, "max": None}}, "age") == (18, None)

    def test_scalar_is_exact(self):
        assert range_bounds({"shoe_size": 42}, "shoe_size") == (42, 42)

    def test_absent(self):
        assert range_bounds({}, "age") == (None, None)


class TestMatches:
    def test_empty_filter_set_matches_everything(self, make_entity):
        assert matches(make_entity(), {})
        assert matches(make_entity(), None)
        assert matches(make_entity(), {"gender": "", "age_min": None})

    def test_talent_female_with_missing_age_is_included(self, make_entity):
        entity = make_entity(category="talent", primary_role="actor", gender="Female")
        filters = {"category": "talent", "gender": "female", "age_min": 20, "age_max": 30}
        assert matches(entity, filters)

    def test_category_is_hard(self, make_entity):
        assert not matches(make_entity(category="crew"), {"category": "talent"})

    def test_role_is_hard_when_missing(self, make_entity):
        assert not matches(make_entity(primary_role=None), {"role": "actor"})
        assert matches(make_entity(primary_role="Actor"), {"role": "actor"})

    def test_gender_mismatch_excludes(self, make_entity):
        assert not matches(make_entity(gender="male"), {"gender": "female"})

    def test_range_excludes_only_present_values(self, make_entity):
        filters = {"height_min": 170}
        assert not matches(make_entity(height_cm=160), filters)
        assert matches(make_entity(height_cm=175), filters)
        assert matches(make_entity(), filters)

    def test_location_substring_on_either_field(self, make_entity):
        filters = {"location": "cairo"}
        assert matches(make_entity(location="New Cairo, Egypt"), filters)
        assert matches(make_entity(about_location="Cairo"), filters)
        assert matches(make_entity(location=None), filters)
        assert not matches(make_entity(location="Alexandria"), filters)

    def test_appearance_substring(self, make_entity):
        assert matches(make_entity(hair_color="Dark Brown"), {"hair_color": "brown"})
        assert not matches(make_entity(hair_color="Blonde"), {"hair_color": "brown"})

    def test_nationality_list(self, make_entity):
        entity = make_entity(nationality="Egyptian")
        assert matches(entity, {"nationalities": ["french", "egyptian"]})
        assert not matches(entity, {"nationalities": ["french"]})

    def test_boolean_filters(self, make_entity):
        assert not matches(make_entity(union_member=False), {"union_member": True})
        assert matches(make_entity(union_member=True), {"union_member": True})
        assert matches(make_entity(), {"union_member": True})

    def test_skills_and_languages_overlap(self, make_entity):
        entity = make_entity(skills=("Stage Combat", "Horse Riding"), dialects=("Arabic",))
        assert matches(entity, {"skills": ["riding"], "languages": ["arabic"]})
        assert not matches(entity, {"skills": ["juggling"]})
        assert not matches(entity, {"languages": ["french"]})


def test_filter_entities_preserves_order(make_entity):
    entities = [
        make_entity(entity_id="a", gender="female"),
        make_entity(entity_id="b", gender="male"),
        make_entity(entity_id="c"),
    ]
    result = filter_entities(entities, {"gender": "female"})
    assert [e.id for e in result] == ["a", "c"]
