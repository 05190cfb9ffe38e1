"""Cross-group deduplication of Overpass elements for one site."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Tuple

from .overpass_client import RawPoint, normalize_element


def deduplicate_points(points: Iterable[RawPoint]) -> List[RawPoint]:
    # first occurrence wins
    seen: Dict[Tuple[str, int], RawPoint] = {}
    for point in points:
        if point.key not in seen:
            seen[point.key] = point
    return list(seen.values())


def deduplicate_elements(elements: Iterable[Any]) -> List[RawPoint]:
    """Normalize raw elements and collapse them by (osm_type, osm_id).

    Elements without a resolvable coordinate are dropped.
    """
    normalized = (normalize_element(element) for element in elements)
    return deduplicate_points(p for p in normalized if p is not None)
