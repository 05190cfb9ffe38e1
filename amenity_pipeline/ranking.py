"""Categorize deduplicated points and keep the nearest per category."""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .categories import CategoryRule, category_limit, category_order, match_categories
from .geo import haversine_miles
from .overpass_client import RawPoint


def record_id(site_id: Any, category: str, point: RawPoint) -> str:
    return f"{site_id}-{category}-{point.osm_type}-{point.osm_id}"


def build_record(site: Dict[str, Any], category: str, point: RawPoint, distance: float) -> Dict[str, Any]:
    return {
        "id": record_id(site["id"], category, point),
        "baseId": site["id"],
        "category": category,
        "name": point.name or category,
        "lat": point.lat,
        "lon": point.lon,
        "distanceMiles": round(distance, 2),
        "source": {
            "osmType": point.osm_type,
            "osmId": point.osm_id,
        },
    }


def categorize_point(
    site: Dict[str, Any],
    point: RawPoint,
    rules: Optional[List[CategoryRule]] = None,
    distance: Optional[float] = None,
) -> List[Dict[str, Any]]:
    categories = match_categories(point, rules)
    if not categories:
        return []
    if distance is None:
        distance = point_distance(site, point)
    return [build_record(site, category, point, distance) for category in categories]


def point_distance(site: Dict[str, Any], point: RawPoint) -> float:
    return haversine_miles(site["lat"], site["lon"], point.lat, point.lon)


def _rounded_distance(record: Dict[str, Any]) -> float:
    return record["distanceMiles"]


def rank_and_cap(
    records: Iterable[Dict[str, Any]],
    limits: Optional[Mapping[str, int]] = None,
    order: Optional[List[str]] = None,
    distance_key: Optional[Callable[[Dict[str, Any]], float]] = None,
) -> List[Dict[str, Any]]:
    """Group by category, sort each group by distance and truncate to its limit.

    Categories come out in ``order`` (rule declaration order by default), with
    any category not listed there appended in first-seen order. ``distance_key``
    defaults to the rounded ``distanceMiles``; pass the exact distance to break
    ties that rounding hides.
    """
    if distance_key is None:
        distance_key = _rounded_distance
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for record in records:
        grouped.setdefault(record["category"], []).append(record)

    ordered = [c for c in (order if order is not None else category_order()) if c in grouped]
    ordered.extend(c for c in grouped if c not in ordered)

    capped: List[Dict[str, Any]] = []
    for category in ordered:
        items = sorted(grouped[category], key=distance_key)
        capped.extend(items[: category_limit(category, limits)])
    return capped


def categorize_and_rank(
    site: Dict[str, Any],
    points: Iterable[RawPoint],
    limits: Optional[Mapping[str, int]] = None,
    rules: Optional[List[CategoryRule]] = None,
) -> List[Dict[str, Any]]:
    records: List[Dict[str, Any]] = []
    exact: Dict[str, float] = {}
    for point in points:
        distance = point_distance(site, point)
        for record in categorize_point(site, point, rules, distance=distance):
            exact[record["id"]] = distance
            records.append(record)
    order = category_order(rules)
    return rank_and_cap(records, limits, order, distance_key=lambda r: exact[r["id"]])
