from amenity_pipeline.categories import (
    CATEGORY_RULES,
    DEFAULT_CATEGORY_LIMIT,
    CategoryRule,
    TagView,
    category_limit,
    is_park,
    match_categories,
)
from amenity_pipeline.overpass_client import RawPoint


def point(tags, name=None):
    return RawPoint(
        osm_type="node",
        osm_id=1,
        lat=38.0,
        lon=-78.0,
        tags=tags,
        name=name if name is not None else tags.get("name", ""),
    )


def test_tag_view_reads_missing_keys_as_empty():
    tags = TagView({"amenity": "school", "levels": 3})
    assert tags["shop"] == ""
    assert tags["levels"] == "3"
    assert "shop" not in tags


def test_untagged_point_matches_nothing():
    assert match_categories(point({})) == []


def test_hospital_from_amenity_or_healthcare():
    assert match_categories(point({"amenity": "hospital"})) == ["Hospital"]
    assert match_categories(point({"healthcare": "clinic"})) == ["Hospital"]
    assert match_categories(point({"healthcare": "dentist"})) == []


def test_va_hospital_matches_both_rules():
    labels = match_categories(point({"amenity": "hospital", "name": "Salem VA Medical Center"}))
    assert labels == ["Hospital", "VA"]


def test_va_requires_health_facility():
    assert match_categories(point({"shop": "clothes", "name": "Veterans Outlet"})) == []
    assert match_categories(point({"healthcare": "counselling", "operator": "Veterans Affairs"})) == ["VA"]


def test_school_levels_by_name():
    assert match_categories(point({"amenity": "school", "name": "Oak Elementary School"})) == [
        "Elementary Schools"
    ]
    assert match_categories(point({"amenity": "school", "name": "Central INTERMEDIATE"})) == ["Middle Schools"]
    assert match_categories(point({"amenity": "school", "name": "Secondary Academy"})) == ["High Schools"]
    assert match_categories(point({"amenity": "school"})) == []


def test_childcare_school_also_matches_school_level():
    labels = match_categories(point({"amenity": "school", "name": "Little Child Primary"}))
    assert labels == ["Childcare", "Elementary Schools"]


def test_walmart_is_also_grocery():
    labels = match_categories(point({"shop": "supermarket", "name": "Wal-Mart Supercenter"}))
    assert labels == ["Walmarts", "Grocery"]


def test_international_airport_needs_flag_or_iata():
    assert match_categories(point({"aeroway": "aerodrome", "iata": "CHO"})) == ["International Airport"]
    assert match_categories(point({"aeroway": "airport", "international": "yes"})) == ["International Airport"]
    assert match_categories(point({"aeroway": "aerodrome"})) == []


def test_recreation_rules():
    assert match_categories(point({"leisure": "fitness_centre"})) == ["Gym"]
    assert match_categories(point({"leisure": "nature_reserve"})) == ["Park"]


def test_raising_rule_is_a_non_match_for_that_rule_only():
    def explode(tags, name):
        raise RuntimeError("bad predicate")

    rules = [CategoryRule("Broken", explode), CategoryRule("Park", is_park)]
    assert match_categories(point({"leisure": "park"}), rules) == ["Park"]


def test_rule_names_are_unique():
    names = [rule.name for rule in CATEGORY_RULES]
    assert len(names) == len(set(names))


def test_category_limit_defaults_and_overrides():
    assert category_limit("Park") == 60
    assert category_limit("International Airport") == 5
    assert category_limit("Unlisted") == DEFAULT_CATEGORY_LIMIT == 25
    assert category_limit("Park", {"Park": 3}) == 3
    assert category_limit("Gym", {"Park": 3}) == 40
