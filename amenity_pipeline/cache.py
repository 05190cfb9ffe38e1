"""SQLite cache of final per-site amenity lists."""
from __future__ import annotations

import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Best effort: an in-memory or read-only database may refuse either one.
CONNECTION_PRAGMAS = ("journal_mode=WAL", "synchronous=NORMAL")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class SiteCache:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            parent = os.path.dirname(os.path.abspath(db_path))
            os.makedirs(parent, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._configure_conn()
        self._init_db()

    def _configure_conn(self) -> None:
        for pragma in CONNECTION_PRAGMAS:
            try:
                self.conn.execute(f"PRAGMA {pragma}").fetchall()
            except sqlite3.DatabaseError as exc:
                logger.debug("PRAGMA %s not applied to %s: %s", pragma, self.db_path, exc)

    def _init_db(self) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS site_amenities (
                site_id TEXT PRIMARY KEY,
                records_json TEXT NOT NULL,
                radius_m INTEGER,
                created_at TEXT
            )
            """
        )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "SiteCache":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def load(self, site_id: Any) -> Optional[List[Dict[str, Any]]]:
        """Return the cached records for a site, or None on a miss.

        An entry that cannot be read back as a JSON list counts as a miss so the
        site is fetched again and the entry overwritten.
        """
        try:
            row = self.conn.execute(
                "SELECT records_json FROM site_amenities WHERE site_id = ?", (str(site_id),)
            ).fetchone()
            if not row:
                return None
            records = json.loads(row["records_json"])
        except (ValueError, TypeError, sqlite3.Error) as exc:
            logger.warning("Ignoring unreadable cache entry for %s: %s", site_id, exc)
            return None
        if not isinstance(records, list):
            logger.warning("Ignoring cache entry for %s: expected a list, got %s", site_id, type(records).__name__)
            return None
        return records

    def cached_radius(self, site_id: Any) -> Optional[int]:
        cur = self.conn.cursor()
        cur.execute("SELECT radius_m FROM site_amenities WHERE site_id = ?", (str(site_id),))
        row = cur.fetchone()
        if not row or row["radius_m"] is None:
            return None
        return int(row["radius_m"])

    def save(self, site_id: Any, records: List[Dict[str, Any]], radius_m: Optional[int] = None) -> None:
        # committed per site so an interrupted run never leaves a partial entry
        with self.conn:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO site_amenities (site_id, records_json, radius_m, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (str(site_id), json.dumps(records, ensure_ascii=False), radius_m, utc_now_iso()),
            )

    def delete(self, site_id: Any) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM site_amenities WHERE site_id = ?", (str(site_id),))

    def site_ids(self) -> List[str]:
        cur = self.conn.cursor()
        cur.execute("SELECT site_id FROM site_amenities ORDER BY site_id")
        return [row["site_id"] for row in cur.fetchall()]
