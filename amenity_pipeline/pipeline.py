"""Pipeline orchestration."""
from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from . import config
from .cache import SiteCache
from .config import FilterGroup
from .dedup import deduplicate_elements
from .geo import is_valid_coordinate
from .http import GeodataServiceError, HttpClient, RequestMetrics
from .overpass_client import OverpassClient, build_query
from .ranking import categorize_and_rank
from .reporting import write_amenities_json, write_json_object

logger = logging.getLogger(__name__)


class GroupFailure(RuntimeError):
    def __init__(self, site: Dict[str, Any], group: FilterGroup, cause: Exception) -> None:
        super().__init__(f"Overpass group {group.name} failed for {site_label(site)}: {cause}")
        self.site_id = site.get("id")
        self.group = group.name
        self.cause = cause


class SiteFailure(RuntimeError):
    def __init__(self, site: Dict[str, Any], failures: Sequence[GroupFailure]) -> None:
        groups = ", ".join(f.group for f in failures)
        super().__init__(f"every filter group failed ({groups})")
        self.site_id = site.get("id")
        self.failures = list(failures)


@dataclass
class PipelineResult:
    records: List[Dict[str, Any]]
    summary: Dict[str, Any]


def run(
    sites: Optional[List[Dict[str, Any]]] = None,
    sites_path: Optional[str] = None,
    output_path: Optional[str] = None,
    cache: Optional[SiteCache] = None,
    cache_db_path: Optional[str] = None,
    client: Optional[OverpassClient] = None,
    skip: int = 0,
    limit: Optional[int] = None,
    refresh: bool = False,
    groups: Optional[List[FilterGroup]] = None,
    radius_m: Optional[int] = None,
    request_delay_ms: Optional[int] = None,
    category_limits: Optional[Mapping[str, int]] = None,
    metrics: Optional[RequestMetrics] = None,
    write_outputs: bool = True,
    summary_path: Optional[str] = None,
) -> PipelineResult:
    if sites is None:
        sites = load_sites(sites_path or config.BASES_PATH)
    validate_sites(sites)

    if metrics is None:
        metrics = RequestMetrics()
    if radius_m is None:
        radius_m = config.AMENITY_RADIUS_METERS
    if request_delay_ms is None:
        request_delay_ms = config.REQUEST_SLEEP_MS
    if groups is None:
        groups = list(config.FILTER_GROUPS)
    limits: Dict[str, int] = dict(config.CATEGORY_LIMIT_OVERRIDES)
    if category_limits:
        limits.update(category_limits)
    output_path = output_path or config.OUTPUT_PATH

    if client is None:
        http_client = HttpClient(
            timeout=config.HTTP_TIMEOUT_SECONDS,
            max_retries=config.MAX_RETRIES,
            retry_delay_s=request_delay_ms / 1000.0,
            excerpt_chars=config.ERROR_BODY_EXCERPT_CHARS,
            metrics=metrics,
        )
        client = OverpassClient(http_client, url=config.OVERPASS_URL)

    owns_cache = cache is None
    if cache is None:
        cache = SiteCache(cache_db_path or config.CACHE_DB_PATH)

    selected = slice_sites(sites, skip, limit)
    skip = max(0, int(skip or 0))
    all_records: List[Dict[str, Any]] = []
    from_cache = 0
    fetched = 0
    failed_sites: List[str] = []

    try:
        for idx, site in enumerate(selected):
            records: Optional[List[Dict[str, Any]]] = None
            if not refresh:
                records = cache.load(site["id"])
            if records is not None:
                metrics.inc_cache(True)
                from_cache += 1
                logger.info("Cache hit for %s", site_label(site))
                _warn_if_stale(cache, site, radius_m)
                all_records.extend(records)
                continue

            metrics.inc_cache(False)
            logger.info("Fetching amenities for %s (%s/%s)", site_label(site), idx + 1 + skip, len(sites))
            try:
                records = fetch_site_amenities(
                    site,
                    client,
                    groups=groups,
                    radius_m=radius_m,
                    request_delay_ms=request_delay_ms,
                    category_limits=limits,
                    metrics=metrics,
                )
            except SiteFailure as exc:
                logger.error("Failed to fetch amenities for %s: %s", site_label(site), exc)
                metrics.failed_sites += 1
                failed_sites.append(site_label(site))
                continue
            except Exception:
                logger.exception("Unexpected error while ingesting %s; skipping it", site_label(site))
                metrics.failed_sites += 1
                failed_sites.append(site_label(site))
                continue

            try:
                cache.save(site["id"], records, radius_m=radius_m)
            except sqlite3.Error as exc:
                logger.error("Could not cache amenities for %s: %s", site_label(site), exc)
            fetched += 1
            all_records.extend(records)
    finally:
        if owns_cache:
            cache.close()

    if write_outputs:
        write_amenities_json(output_path, all_records)
        logger.info("Wrote %s amenities to %s", len(all_records), output_path)

    summary: Dict[str, Any] = {
        "sites_total": len(sites),
        "sites_selected": len(selected),
        "sites_from_cache": from_cache,
        "sites_fetched": fetched,
        "sites_failed": failed_sites,
        "records": len(all_records),
        "output_path": output_path if write_outputs else None,
    }
    summary.update(metrics.as_dict())
    if summary_path:
        write_json_object(summary_path, summary)
        logger.info("Wrote run summary to %s", summary_path)
    return PipelineResult(records=all_records, summary=summary)


def fetch_site_amenities(
    site: Dict[str, Any],
    client: OverpassClient,
    groups: Optional[List[FilterGroup]] = None,
    radius_m: Optional[int] = None,
    request_delay_ms: Optional[int] = None,
    category_limits: Optional[Mapping[str, int]] = None,
    metrics: Optional[RequestMetrics] = None,
) -> List[Dict[str, Any]]:
    """Query every filter group for one site and return its ranked, capped records.

    Groups run in declaration order and their elements are merged before
    categorization. A group that fails is logged and skipped; SiteFailure is
    raised only when no group succeeded.
    """
    if groups is None:
        groups = list(config.FILTER_GROUPS)
    if radius_m is None:
        radius_m = config.AMENITY_RADIUS_METERS
    if request_delay_ms is None:
        request_delay_ms = config.REQUEST_SLEEP_MS

    elements: List[Any] = []
    failures: List[GroupFailure] = []
    for group in groups:
        try:
            elements.extend(fetch_group(site, group, client, radius_m))
        except GroupFailure as exc:
            logger.error("%s", exc)
            if metrics is not None:
                metrics.failed_groups += 1
            failures.append(exc)
            continue
        if request_delay_ms > 0:
            time.sleep(request_delay_ms / 1000.0)

    if groups and len(failures) == len(groups):
        raise SiteFailure(site, failures)

    points = deduplicate_elements(elements)
    return categorize_and_rank(site, points, category_limits)


def fetch_group(
    site: Dict[str, Any],
    group: FilterGroup,
    client: OverpassClient,
    radius_m: int,
) -> List[Any]:
    query = build_query(site, group.filters, group.limit, radius_m)
    try:
        data = client.fetch(query)
    except GeodataServiceError as exc:
        raise GroupFailure(site, group, exc) from exc
    return list(data.get("elements") or [])


# Helpers

def load_sites(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"Site roster {path} must be a JSON array")
    return data


def validate_sites(sites: Sequence[Any]) -> None:
    invalid = []
    for idx, site in enumerate(sites):
        if not isinstance(site, dict) or site.get("id") in (None, ""):
            invalid.append(f"#{idx}")
        elif not is_valid_coordinate(site.get("lat"), site.get("lon")):
            invalid.append(str(site["id"]))
    if invalid:
        raise ValueError(
            "Sites need an id and finite lat/lon. Invalid entries: " + ", ".join(invalid)
        )


def slice_sites(sites: Sequence[Dict[str, Any]], skip: int = 0, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    start = max(0, int(skip or 0))
    if limit is None:
        return list(sites[start:])
    return list(sites[start : start + max(0, int(limit))])


def site_label(site: Dict[str, Any]) -> str:
    return str(site.get("name") or site.get("id"))


def _warn_if_stale(cache: SiteCache, site: Dict[str, Any], radius_m: int) -> None:
    cached_radius = cache.cached_radius(site["id"])
    if cached_radius is not None and cached_radius != radius_m:
        logger.warning(
            "Cached amenities for %s were built with radius %sm (current %sm); use --refresh to rebuild",
            site_label(site),
            cached_radius,
            radius_m,
        )


def render_summary(summary: Dict[str, Any]) -> List[str]:
    lines = [
        f"Sites selected: {summary.get('sites_selected', 0)}/{summary.get('sites_total', 0)}",
        f"Sites from cache: {summary.get('sites_from_cache', 0)}",
        f"Sites fetched: {summary.get('sites_fetched', 0)}",
        f"Amenities written: {summary.get('records', 0)}",
        "Request stats:",
        (
            f"- overpass: network={summary.get('network_requests', 0)} "
            f"retries={summary.get('retries', 0)} "
            f"cache_hits={summary.get('cache_hits', 0)} "
            f"cache_misses={summary.get('cache_misses', 0)}"
        ),
        f"Failed groups: {summary.get('failed_groups', 0)}",
    ]
    failed = summary.get("sites_failed") or []
    if failed:
        lines.append(f"Failed sites ({len(failed)}): " + ", ".join(failed))
    else:
        lines.append("Failed sites: none")
    if summary.get("output_path"):
        lines.append(f"Output: {summary['output_path']}")
    return lines
