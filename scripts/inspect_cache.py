#!/usr/bin/env python3
"""List cached sites with their amenity counts, or evict selected sites."""
from __future__ import annotations

import argparse
import sys
from collections import Counter
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from amenity_pipeline import config  # noqa: E402
from amenity_pipeline.cache import SiteCache  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Inspect the per-site amenity cache")
    parser.add_argument("--cache-path", type=str, default=config.CACHE_DB_PATH)
    parser.add_argument("--delete", action="append", default=[], help="Site id to evict (repeatable)")
    args = parser.parse_args()

    if not Path(args.cache_path).exists():
        print(f"No cache at {args.cache_path}", file=sys.stderr)
        return 1

    with SiteCache(args.cache_path) as cache:
        for site_id in args.delete:
            cache.delete(site_id)
            print(f"Evicted {site_id}")
        if args.delete:
            return 0

        for site_id in cache.site_ids():
            records = cache.load(site_id) or []
            counts = Counter(r.get("category") for r in records)
            radius = cache.cached_radius(site_id)
            breakdown = ", ".join(f"{k}={v}" for k, v in sorted(counts.items()))
            print(f"{site_id}\tradius={radius}\ttotal={len(records)}\t{breakdown}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
