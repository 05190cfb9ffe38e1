"""Amenity category rules.

Each rule is a named predicate over a point's tags and display name. Rules are
independent: a point may match several of them and is then reported once per
matching category.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from .overpass_client import RawPoint

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_LIMIT = 25

CATEGORY_LIMITS: Dict[str, int] = {
    "Hospital": 25,
    "VA": 15,
    "Childcare": 40,
    "Pharmacies": 40,
    "Colleges": 25,
    "Elementary Schools": 40,
    "Middle Schools": 40,
    "High Schools": 40,
    "International Airport": 5,
    "Walmarts": 10,
    "Grocery": 40,
    "Gym": 40,
    "Park": 60,
}

_VA_RE = re.compile(r"\b(va|veterans|v\.a\.)\b")
_CHILDCARE_NAME_RE = re.compile(r"child|daycare|prek")
_ELEMENTARY_RE = re.compile(r"elementary|primary", re.IGNORECASE)
_MIDDLE_RE = re.compile(r"middle|intermediate", re.IGNORECASE)
_HIGH_RE = re.compile(r"high|secondary", re.IGNORECASE)
_WALMART_RE = re.compile(r"walmart|wal-mart", re.IGNORECASE)


class TagView(dict):
    """Tag mapping where a missing key reads as an empty string."""

    def __init__(self, tags: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__((str(k), "" if v is None else str(v)) for k, v in (tags or {}).items())

    def __missing__(self, key: str) -> str:
        return ""


Predicate = Callable[[TagView, str], bool]


@dataclass(frozen=True)
class CategoryRule:
    name: str
    predicate: Predicate

    def matches(self, tags: TagView, name: str) -> bool:
        return bool(self.predicate(tags, name))


def is_hospital(tags: TagView, name: str) -> bool:
    kind = tags["amenity"] or tags["healthcare"]
    return kind in ("hospital", "clinic")


def is_va(tags: TagView, name: str) -> bool:
    text = f"{tags['name']} {tags['operator']}".lower()
    if not _VA_RE.search(text):
        return False
    return tags["amenity"] in ("hospital", "clinic") or bool(tags["healthcare"])


def is_childcare(tags: TagView, name: str) -> bool:
    amenity = tags["amenity"]
    if amenity in ("childcare", "kindergarten"):
        return True
    return amenity == "school" and bool(_CHILDCARE_NAME_RE.search(tags["name"].lower()))


def is_pharmacy(tags: TagView, name: str) -> bool:
    return tags["amenity"] == "pharmacy"


def is_college(tags: TagView, name: str) -> bool:
    return tags["amenity"] in ("college", "university")


def is_elementary_school(tags: TagView, name: str) -> bool:
    return tags["amenity"] == "school" and bool(_ELEMENTARY_RE.search(tags["name"]))


def is_middle_school(tags: TagView, name: str) -> bool:
    return tags["amenity"] == "school" and bool(_MIDDLE_RE.search(tags["name"]))


def is_high_school(tags: TagView, name: str) -> bool:
    return tags["amenity"] == "school" and bool(_HIGH_RE.search(tags["name"]))


def is_international_airport(tags: TagView, name: str) -> bool:
    if tags["aeroway"] not in ("aerodrome", "airport"):
        return False
    return tags["international"] == "yes" or bool(tags["iata"])


def is_walmart(tags: TagView, name: str) -> bool:
    return tags["shop"] == "supermarket" and bool(_WALMART_RE.search(tags["name"]))


def is_grocery(tags: TagView, name: str) -> bool:
    return tags["shop"] in ("supermarket", "greengrocer", "grocery")


def is_gym(tags: TagView, name: str) -> bool:
    return tags["leisure"] in ("fitness_centre", "sports_centre")


def is_park(tags: TagView, name: str) -> bool:
    return tags["leisure"] in ("park", "nature_reserve")


CATEGORY_RULES: List[CategoryRule] = [
    CategoryRule("Hospital", is_hospital),
    CategoryRule("VA", is_va),
    CategoryRule("Childcare", is_childcare),
    CategoryRule("Pharmacies", is_pharmacy),
    CategoryRule("Colleges", is_college),
    CategoryRule("Elementary Schools", is_elementary_school),
    CategoryRule("Middle Schools", is_middle_school),
    CategoryRule("High Schools", is_high_school),
    CategoryRule("International Airport", is_international_airport),
    CategoryRule("Walmarts", is_walmart),
    CategoryRule("Grocery", is_grocery),
    CategoryRule("Gym", is_gym),
    CategoryRule("Park", is_park),
]


def match_categories(point: RawPoint, rules: Optional[List[CategoryRule]] = None) -> List[str]:
    """Return the labels of every rule the point satisfies, in rule order."""
    if rules is None:
        rules = CATEGORY_RULES
    tags = TagView(point.tags)
    name = point.name or ""
    matched: List[str] = []
    for rule in rules:
        try:
            if rule.matches(tags, name):
                matched.append(rule.name)
        except Exception as exc:
            logger.debug("Rule %s raised for %s/%s: %s", rule.name, point.osm_type, point.osm_id, exc)
    return matched


def category_order(rules: Optional[List[CategoryRule]] = None) -> List[str]:
    return [rule.name for rule in (rules if rules is not None else CATEGORY_RULES)]


def category_limit(category: str, limits: Optional[Mapping[str, int]] = None) -> int:
    if limits is not None and category in limits:
        return int(limits[category])
    return CATEGORY_LIMITS.get(category, DEFAULT_CATEGORY_LIMIT)
