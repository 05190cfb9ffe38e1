"""CLI entrypoint."""
from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv as _load_dotenv

from amenity_pipeline import config
from amenity_pipeline.cache import SiteCache
from amenity_pipeline.pipeline import render_summary, run


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch and categorize amenities near each base")
    parser.add_argument("--skip", type=int, default=0, help="Skip the first N bases of the roster")
    parser.add_argument("--limit", type=int, default=None, help="Process at most N bases")
    parser.add_argument(
        "--refresh",
        nargs="?",
        const="true",
        default="false",
        choices=["true", "false"],
        help="Ignore cached amenities and re-query Overpass",
    )
    parser.add_argument("--bases", type=str, default=None, help="Path to the bases roster JSON")
    parser.add_argument("--out", type=str, default=None, help="Path of the amenities JSON to write")
    parser.add_argument("--summary-out", type=str, default=None, help="Also write the run summary as JSON to this path")
    parser.add_argument("--cache-path", type=str, default=None, help="SQLite cache file")
    parser.add_argument("--config", type=str, default=None, help="Optional pipeline_config.json")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_env()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config.load_pipeline_config(args.config)
        config.load_env_overrides()
    except (OSError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    if args.skip < 0 or (args.limit is not None and args.limit < 0):
        print("--skip and --limit must be non-negative", file=sys.stderr)
        return 1

    try:
        with SiteCache(args.cache_path or config.CACHE_DB_PATH) as cache:
            result = run(
                sites_path=args.bases or config.BASES_PATH,
                output_path=args.out or config.OUTPUT_PATH,
                cache=cache,
                skip=args.skip,
                limit=args.limit,
                refresh=args.refresh == "true",
                summary_path=args.summary_out,
            )
    except (OSError, ValueError, sqlite3.Error) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    for line in render_summary(result.summary):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
