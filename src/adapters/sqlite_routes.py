"""SQLite routing store adapter.

Implements the core RouteStorePort plus the administrative writes used by the
config panel.
"""

from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from core.models import RouteEntry


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _row_to_route(row: sqlite3.Row) -> RouteEntry:
    topic_id = row["topic_id"]
    return RouteEntry(
        id=int(row["id"]),
        group_id=int(row["group_id"]),
        topic_id=int(topic_id) if topic_id is not None else None,
        webhook_url=row["webhook_url"],
        note=row["note"],
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row["updated_at"]),
    )


class SQLiteRouteStore:
    """Thin SQLite wrapper that satisfies the RouteStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    @property
    def db_path(self) -> str:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the routes table if it does not exist.

        Fields:
        - id: auto-increment primary key
        - group_id: routing group id (-100<channel>, -<chat>, or <user>)
        - topic_id: forum topic id, NULL for topic-less routes
        - webhook_url: Discord webhook URL
        - note: optional operator note
        - created_at / updated_at: ISO timestamps (UTC)
        """

        directory = os.path.dirname(self._db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS routes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    group_id INTEGER NOT NULL,
                    topic_id INTEGER,
                    webhook_url TEXT NOT NULL,
                    note TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )
            # One route per (group, topic); NULL topic is folded to -1 so the
            # topic-less route is unique as well.
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS idx_routes_group_topic
                ON routes (group_id, COALESCE(topic_id, -1))
                """
            )

    def get_route(self, group_id: int, topic_id: Optional[int]) -> Optional[RouteEntry]:
        """Return the route for an exact (group_id, topic_id) pair."""

        # "IS" compares NULL to NULL as equal and NULL to a value as different.
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM routes WHERE group_id = ? AND topic_id IS ?",
                (group_id, topic_id),
            ).fetchone()
        return _row_to_route(row) if row else None

    def list_routes(self) -> list[RouteEntry]:
        """Return all routes, newest first."""

        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM routes ORDER BY created_at DESC, id DESC").fetchall()
        return [_row_to_route(row) for row in rows]

    def add_route(
        self,
        group_id: int,
        topic_id: Optional[int],
        webhook_url: str,
        note: Optional[str] = None,
    ) -> int:
        """Insert a route and return its id.

        Raises sqlite3.IntegrityError if the (group, topic) pair is taken.
        """

        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO routes (group_id, topic_id, webhook_url, note, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (group_id, topic_id, webhook_url, note, now, now),
            )
            return int(cur.lastrowid)

    def update_route(
        self,
        route_id: int,
        group_id: int,
        topic_id: Optional[int],
        webhook_url: str,
        note: Optional[str] = None,
    ) -> bool:
        """Update a route in place; return False if it does not exist."""

        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE routes
                SET group_id = ?, topic_id = ?, webhook_url = ?, note = ?, updated_at = ?
                WHERE id = ?
                """,
                (group_id, topic_id, webhook_url, note, now, route_id),
            )
            return cur.rowcount > 0

    def delete_route(self, route_id: int) -> bool:
        """Delete a route; return False if it does not exist."""

        with self._connect() as conn:
            cur = conn.execute("DELETE FROM routes WHERE id = ?", (route_id,))
            return cur.rowcount > 0
