import json
from pathlib import Path

from amenity_pipeline.dedup import deduplicate_elements, deduplicate_points
from amenity_pipeline.overpass_client import RawPoint


def load_fixture(name):
    path = Path(__file__).parent / "fixtures" / name
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def test_fixture_duplicates_and_centerless_elements_collapse():
    elements = load_fixture("overpass_health.json")["elements"]

    points = deduplicate_elements(elements)

    assert [p.key for p in points] == [("node", 1001), ("way", 2002), ("node", 1003)]
    assert points[0].name == "Valley Regional Hospital"


def test_same_point_twice_yields_one_entry():
    element = {"type": "node", "id": 42, "lat": 38.1, "lon": -78.1, "tags": {"amenity": "pharmacy"}}

    assert len(deduplicate_elements([element, dict(element)])) == 1


def test_first_seen_wins_across_groups():
    first = {"type": "way", "id": 7, "center": {"lat": 38.2, "lon": -78.2}, "tags": {"amenity": "school"}}
    later = {
        "type": "way",
        "id": 7,
        "center": {"lat": 38.2, "lon": -78.2},
        "tags": {"amenity": "school", "name": "Richer Tags Elementary"},
    }

    points = deduplicate_elements([first, later])

    assert len(points) == 1
    assert points[0].tags == {"amenity": "school"}


def test_identity_includes_source_kind():
    node = {"type": "node", "id": 9, "lat": 38.0, "lon": -78.0}
    way = {"type": "way", "id": 9, "center": {"lat": 38.0, "lon": -78.0}}

    assert len(deduplicate_elements([node, way])) == 2


def test_deduplicate_points_keeps_first_instance():
    a = RawPoint("node", 1, 38.0, -78.0, {"name": "A"}, "A")
    b = RawPoint("node", 1, 38.5, -78.5, {"name": "B"}, "B")

    assert deduplicate_points([a, b]) == [a]
    assert deduplicate_points([a, b])[0].name == "A"


def test_elements_with_unusable_ids_are_dropped():
    elements = [
        {"type": "node", "id": {"x": 1}, "lat": 38.0, "lon": -78.0},
        {"type": "node", "id": 9, "lat": 38.0, "lon": -78.0},
    ]

    points = deduplicate_elements(elements)

    assert [p.key for p in points] == [("node", 9)]
