import json
from pathlib import Path

import pytest

from amenity_pipeline.config import FilterSpec
from amenity_pipeline.http import HttpClient, MalformedResponseError
from amenity_pipeline.overpass_client import OverpassClient, build_query, normalize_element

SITE = {"id": "x1", "name": "Fort Example", "lat": 38.0, "lon": -78.0}


def load_fixture(name):
    path = Path(__file__).parent / "fixtures" / name
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class StubHttpClient(HttpClient):
    def __init__(self, payload):
        super().__init__(timeout=1, max_retries=1, retry_delay_s=0.0)
        self.payload = payload
        self.bodies = []

    def post_text(self, url, body):
        self.bodies.append((url, body))
        return self.payload


def test_build_query_expands_each_filter_across_geometry_kinds():
    query = build_query(SITE, ['["amenity"="hospital"]', '["amenity"="clinic"]'], 300, 30000)

    expected_statements = "\n".join(
        [
            'node["amenity"="hospital"](around:30000,38.0,-78.0);',
            'way["amenity"="hospital"](around:30000,38.0,-78.0);',
            'relation["amenity"="hospital"](around:30000,38.0,-78.0);',
            'node["amenity"="clinic"](around:30000,38.0,-78.0);',
            'way["amenity"="clinic"](around:30000,38.0,-78.0);',
            'relation["amenity"="clinic"](around:30000,38.0,-78.0);',
        ]
    )
    assert query == f"[out:json][timeout:90];({expected_statements});out center qt 300;"


def test_build_query_is_deterministic():
    filters = ['["shop"="supermarket"]']
    assert build_query(SITE, filters, 400, 15000) == build_query(SITE, filters, 400, 15000)


def test_build_query_honours_explicit_types_and_default_limit():
    query = build_query(SITE, [FilterSpec('["aeroway"="aerodrome"]', types=("way",))], None, 5000, timeout_s=30)

    assert query.startswith("[out:json][timeout:30];(")
    assert 'way["aeroway"="aerodrome"](around:5000,38.0,-78.0);' in query
    assert "node[" not in query
    assert "relation[" not in query
    assert query.endswith("out center qt 400;")


def test_fetch_returns_valid_response():
    payload = load_fixture("overpass_health.json")
    http_client = StubHttpClient(payload)
    client = OverpassClient(http_client, url="https://overpass.example/api/interpreter")

    assert client.fetch("q") is payload
    assert http_client.bodies == [("https://overpass.example/api/interpreter", "q")]


@pytest.mark.parametrize("payload", [{"remark": "runtime error"}, {"elements": "nope"}, ["elements"]])
def test_fetch_rejects_unexpected_shapes(payload):
    client = OverpassClient(StubHttpClient(payload), url="https://overpass.example/api/interpreter")

    with pytest.raises(MalformedResponseError):
        client.fetch("q")


def test_normalize_node_and_way_center():
    elements = load_fixture("overpass_health.json")["elements"]

    node = normalize_element(elements[0])
    assert node.key == ("node", 1001)
    assert (node.lat, node.lon) == (38.0145, -78.0021)
    assert node.name == "Valley Regional Hospital"

    way = normalize_element(elements[1])
    assert way.key == ("way", 2002)
    assert (way.lat, way.lon) == (38.0502, -77.9811)
    assert way.name == "Veterans Health Administration"


def test_normalize_drops_elements_without_coordinates():
    elements = load_fixture("overpass_health.json")["elements"]

    assert normalize_element(elements[3]) is None
    assert normalize_element({"type": "node", "id": 5, "tags": {}}) is None
    assert normalize_element({"type": "node", "id": 5, "lat": "38", "lon": -78.0}) is None
    assert normalize_element("not an element") is None


def test_normalize_tolerates_missing_tags():
    point = normalize_element({"type": "node", "id": 7, "lat": 1.0, "lon": 2.0})
    assert point.tags == {}
    assert point.name == ""


@pytest.mark.parametrize("osm_id", [{"x": 1}, [1], "1001", 10.5, True, None])
def test_normalize_drops_elements_with_non_integer_ids(osm_id):
    element = {"type": "node", "id": osm_id, "lat": 38.0, "lon": -78.0, "tags": {"amenity": "clinic"}}
    assert normalize_element(element) is None
