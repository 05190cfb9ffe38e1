"""Project configuration.

Module-level defaults for the Overpass endpoint, query shape, filter groups and
output locations. Environment variables (see load_env_overrides) and an
optional pipeline_config.json (see load_pipeline_config) update these globals
in place before a run.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

_REPO_ROOT = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class FilterSpec:
    """A filter fragment restricted to specific geometry kinds."""

    query: str
    types: Tuple[str, ...] = ("node", "way", "relation")


FilterFragment = Union[str, FilterSpec]


@dataclass(frozen=True)
class FilterGroup:
    name: str
    filters: Tuple[FilterFragment, ...]
    limit: Optional[int] = None


# --- Overpass endpoint ---

_DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
OVERPASS_URL = _DEFAULT_OVERPASS_URL

# --- Query shape ---

GEOMETRY_KINDS: Tuple[str, ...] = ("node", "way", "relation")
AMENITY_RADIUS_METERS = 30000
QUERY_TIMEOUT_SECONDS = 90
DEFAULT_GROUP_LIMIT = 400

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 120
REQUEST_SLEEP_MS = 1500
MAX_RETRIES = 3
ERROR_BODY_EXCERPT_CHARS = 140

# --- Filter groups ---

FILTER_GROUPS: List[FilterGroup] = [
    FilterGroup(
        name="health",
        limit=300,
        filters=(
            '["amenity"="hospital"]',
            '["amenity"="clinic"]',
            '["amenity"="pharmacy"]',
        ),
    ),
    FilterGroup(
        name="education",
        limit=500,
        filters=(
            '["amenity"="college"]',
            '["amenity"="university"]',
            '["amenity"="school"]["name"~"Elementary|Primary",i]',
            '["amenity"="school"]["name"~"Middle|Intermediate",i]',
            '["amenity"="school"]["name"~"High|Secondary",i]',
        ),
    ),
    FilterGroup(
        name="family-grocery",
        limit=400,
        filters=(
            '["amenity"="childcare"]',
            '["amenity"="kindergarten"]',
            '["shop"="supermarket"]',
            '["shop"="grocery"]',
            '["shop"="greengrocer"]',
        ),
    ),
    FilterGroup(
        name="recreation",
        limit=400,
        filters=(
            '["leisure"="fitness_centre"]',
            '["leisure"="sports_centre"]',
            '["leisure"="park"]',
            '["leisure"="nature_reserve"]',
        ),
    ),
    FilterGroup(
        name="transport",
        limit=100,
        filters=(
            '["aeroway"="aerodrome"]',
            '["aeroway"="airport"]',
        ),
    ),
]

# Per-category overrides on top of categories.CATEGORY_LIMITS
CATEGORY_LIMIT_OVERRIDES: Dict[str, int] = {}

# --- Inputs, cache and outputs ---

BASES_PATH = str(_REPO_ROOT / "data" / "bases.json")
OUTPUT_PATH = str(_REPO_ROOT / "data" / "amenities.json")
CACHE_DB_PATH = str(_REPO_ROOT / ".cache" / "amenities.db")


def _env_int(environ: Mapping[str, str], name: str) -> Optional[int]:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(float(raw))
    except ValueError:
        raise ValueError(f"{name} must be numeric, got {raw!r}") from None


def load_env_overrides(environ: Optional[Mapping[str, str]] = None) -> None:
    """Apply OVERPASS_URL, AMENITY_RADIUS_METERS, OVERPASS_SLEEP_MS and
    OVERPASS_MAX_RETRIES from the environment."""
    if environ is None:
        environ = os.environ
    globals_ref = globals()

    url = (environ.get("OVERPASS_URL") or "").strip()
    if url:
        globals_ref["OVERPASS_URL"] = url

    radius = _env_int(environ, "AMENITY_RADIUS_METERS")
    if radius is not None:
        globals_ref["AMENITY_RADIUS_METERS"] = radius

    sleep_ms = _env_int(environ, "OVERPASS_SLEEP_MS")
    if sleep_ms is not None:
        globals_ref["REQUEST_SLEEP_MS"] = max(0, sleep_ms)

    retries = _env_int(environ, "OVERPASS_MAX_RETRIES")
    if retries is not None:
        globals_ref["MAX_RETRIES"] = max(1, retries)


def _parse_filter(raw: Any) -> FilterFragment:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict) and raw.get("query"):
        types = raw.get("types") or GEOMETRY_KINDS
        return FilterSpec(query=str(raw["query"]), types=tuple(types))
    raise ValueError(f"Invalid filter fragment: {raw!r}")


def parse_filter_groups(items: List[Dict[str, Any]]) -> List[FilterGroup]:
    groups: List[FilterGroup] = []
    for item in items:
        name = item.get("name")
        if not name:
            raise ValueError("Filter group is missing a name")
        filters = tuple(_parse_filter(f) for f in item.get("filters", []))
        if not filters:
            raise ValueError(f"Filter group {name!r} has no filters")
        limit = item.get("limit")
        groups.append(
            FilterGroup(name=str(name), filters=filters, limit=int(limit) if limit is not None else None)
        )
    return groups


def load_pipeline_config(path: Optional[str] = None) -> bool:
    """Load pipeline overrides from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "pipeline_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()

    if data.get("overpass_url"):
        globals_ref["OVERPASS_URL"] = str(data["overpass_url"])
    if data.get("radius_meters") is not None:
        globals_ref["AMENITY_RADIUS_METERS"] = int(data["radius_meters"])
    if data.get("request_sleep_ms") is not None:
        globals_ref["REQUEST_SLEEP_MS"] = max(0, int(data["request_sleep_ms"]))
    if data.get("max_retries") is not None:
        globals_ref["MAX_RETRIES"] = max(1, int(data["max_retries"]))

    limits = data.get("category_limits", {})
    if limits:
        globals_ref["CATEGORY_LIMIT_OVERRIDES"] = {str(k): int(v) for k, v in limits.items()}

    groups = data.get("filter_groups", [])
    if groups:
        globals_ref["FILTER_GROUPS"] = parse_filter_groups(groups)

    return True
