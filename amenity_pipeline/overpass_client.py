"""Overpass API client, query builder and element parsing."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from . import config
from .config import FilterFragment, FilterSpec
from .geo import is_valid_coordinate
from .http import HttpClient, MalformedResponseError

NAME_TAGS: Tuple[str, ...] = ("name", "operator")


@dataclass(frozen=True)
class RawPoint:
    osm_type: str
    osm_id: int
    lat: float
    lon: float
    tags: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)
    name: str = ""

    @property
    def key(self) -> Tuple[str, int]:
        return (self.osm_type, self.osm_id)


class OverpassClient:
    def __init__(self, http_client: HttpClient, url: Optional[str] = None) -> None:
        self.http = http_client
        self.url = url or config.OVERPASS_URL

    def fetch(self, query: str) -> Dict[str, Any]:
        response = self.http.post_text(self.url, query)
        if not isinstance(response, dict) or not isinstance(response.get("elements"), list):
            raise MalformedResponseError(
                f"Unexpected Overpass response shape from {self.url}",
                body_excerpt=repr(response)[: self.http.excerpt_chars],
            )
        return response


def build_query(
    site: Dict[str, Any],
    filters: Iterable[FilterFragment],
    limit: Optional[int],
    radius_m: int,
    timeout_s: int = config.QUERY_TIMEOUT_SECONDS,
) -> str:
    statements = []
    for fragment in filters:
        if isinstance(fragment, FilterSpec):
            query, kinds = fragment.query, fragment.types
        else:
            query, kinds = fragment, config.GEOMETRY_KINDS
        for kind in kinds:
            statements.append(f"{kind}{query}(around:{radius_m},{site['lat']},{site['lon']});")
    out_limit = limit if limit is not None else config.DEFAULT_GROUP_LIMIT
    body = "\n".join(statements)
    return f"[out:json][timeout:{timeout_s}];({body});out center qt {out_limit};"


def display_name(tags: Dict[str, str]) -> str:
    for key in NAME_TAGS:
        value = tags.get(key)
        if value:
            return value
    return ""


def normalize_element(element: Any) -> Optional[RawPoint]:
    """Resolve an Overpass element to a RawPoint, or None when it has no usable coordinate."""
    if not isinstance(element, dict):
        return None
    osm_type = element.get("type")
    osm_id = element.get("id")
    if not osm_type or not isinstance(osm_id, int) or isinstance(osm_id, bool):
        return None

    if osm_type == "node":
        lat, lon = element.get("lat"), element.get("lon")
    else:
        center = element.get("center")
        if not isinstance(center, dict):
            return None
        lat, lon = center.get("lat"), center.get("lon")
    if not is_valid_coordinate(lat, lon):
        return None

    raw_tags = element.get("tags")
    tags = {str(k): str(v) for k, v in raw_tags.items()} if isinstance(raw_tags, dict) else {}
    return RawPoint(
        osm_type=str(osm_type),
        osm_id=osm_id,
        lat=float(lat),
        lon=float(lon),
        tags=tags,
        name=display_name(tags),
    )
