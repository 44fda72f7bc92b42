"""SQLite storage adapter.

Implements the core StoragePort using a simple SQLite database. Queries are
blocking, so each public coroutine hands its work to a worker thread.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Optional

from castwatch.core.errors import StoreError
from castwatch.core.markers import marker_key
from castwatch.core.models import (
    FeedCursor,
    ItemState,
    LifecycleState,
    NotificationKind,
    SentMarker,
)


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the StoragePort contract."""

    # sent_markers is keyed by marker key, so INSERT OR IGNORE is an atomic
    # create-if-absent across connections.
    supports_atomic_create = True

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite {func.__name__.strip('_')} failed: {exc}") from exc

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - item_state: last observed lifecycle state per item
        - sent_markers: one row per (item, notification kind) ever sent
        - feed_cursors: newest dispatched entry per feed URL
        """

        with self._connection() as conn:
            # item_state is merged on every observation. created_at is only
            # written by the first insert; last_updated_at drives retention.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS item_state (
                    item_id TEXT PRIMARY KEY,
                    lifecycle_state TEXT NOT NULL,
                    title TEXT,
                    source_name TEXT,
                    last_updated_at TIMESTAMP NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            # sent_markers is the sole source of truth for "already notified".
            # Fields:
            # - marker_key: item id, or item id + status change suffix (PRIMARY KEY)
            # - item_id: bare item id for history lookups
            # - kind: initial | status_change
            # - lifecycle_state: item state at send time
            # - sent_at: commit timestamp, used for TTL cleanup
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sent_markers (
                    marker_key TEXT PRIMARY KEY,
                    item_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    source_name TEXT,
                    lifecycle_state TEXT,
                    sent_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sent_markers_item ON sent_markers (item_id)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS feed_cursors (
                    source_url TEXT PRIMARY KEY,
                    last_item_id TEXT,
                    last_publish_date TIMESTAMP,
                    last_title TEXT,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )

    # Item state

    def _get_item_state(self, item_id: str) -> Optional[ItemState]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM item_state WHERE item_id = ?", (item_id,)).fetchone()
        if row is None:
            return None
        return ItemState(
            id=row["item_id"],
            lifecycle_state=LifecycleState(row["lifecycle_state"]),
            title=row["title"] or "",
            source_name=row["source_name"] or "",
            last_updated_at=_from_text(row["last_updated_at"]),
            created_at=_from_text(row["created_at"]),
        )

    def _upsert_item_state(self, state: ItemState) -> None:
        created_at = state.created_at or state.last_updated_at
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO item_state (
                    item_id, lifecycle_state, title, source_name, last_updated_at, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(item_id) DO UPDATE SET
                    lifecycle_state = excluded.lifecycle_state,
                    title = excluded.title,
                    source_name = excluded.source_name,
                    last_updated_at = excluded.last_updated_at
                """,
                (
                    state.id,
                    state.lifecycle_state.value,
                    state.title,
                    state.source_name,
                    _to_text(state.last_updated_at),
                    _to_text(created_at),
                ),
            )

    async def get_item_state(self, item_id: str) -> Optional[ItemState]:
        """Return the stored state for an item, if any."""

        return await self._run(self._get_item_state, item_id)

    async def upsert_item_state(self, state: ItemState) -> None:
        """Merge the observed state; created_at is kept from the first insert."""

        await self._run(self._upsert_item_state, state)

    # Markers

    def _marker_exists(self, item_id: str, kind: NotificationKind) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM sent_markers WHERE marker_key = ?",
                (marker_key(item_id, kind),),
            ).fetchone()
        return row is not None

    def _create_marker_if_absent(self, marker: SentMarker) -> bool:
        with self._connection() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO sent_markers (
                    marker_key, item_id, kind, source_name, lifecycle_state, sent_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    marker.key,
                    marker.item_id,
                    marker.kind.value,
                    marker.source_name,
                    marker.lifecycle_state.value,
                    _to_text(marker.sent_at),
                ),
            )
            return cur.rowcount == 1

    async def marker_exists(self, item_id: str, kind: NotificationKind) -> bool:
        return await self._run(self._marker_exists, item_id, kind)

    async def create_marker_if_absent(self, marker: SentMarker) -> bool:
        """Insert the marker unless its key exists; True when this call created it."""

        return await self._run(self._create_marker_if_absent, marker)

    # Feed cursors

    def _get_feed_cursor(self, source_url: str) -> Optional[FeedCursor]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM feed_cursors WHERE source_url = ?",
                (source_url,),
            ).fetchone()
        if row is None:
            return None
        return FeedCursor(
            source_url=row["source_url"],
            last_item_id=row["last_item_id"],
            last_publish_date=_from_text(row["last_publish_date"]),
            last_title=row["last_title"],
        )

    def _set_feed_cursor(self, cursor: FeedCursor) -> None:
        now = datetime.now(timezone.utc)
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO feed_cursors (
                    source_url, last_item_id, last_publish_date, last_title, updated_at
                ) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(source_url) DO UPDATE SET
                    last_item_id = excluded.last_item_id,
                    last_publish_date = excluded.last_publish_date,
                    last_title = excluded.last_title,
                    updated_at = excluded.updated_at
                """,
                (
                    cursor.source_url,
                    cursor.last_item_id,
                    _to_text(cursor.last_publish_date),
                    cursor.last_title,
                    now.isoformat(),
                ),
            )

    async def get_feed_cursor(self, source_url: str) -> Optional[FeedCursor]:
        return await self._run(self._get_feed_cursor, source_url)

    async def set_feed_cursor(self, cursor: FeedCursor) -> None:
        await self._run(self._set_feed_cursor, cursor)

    # Maintenance and reporting

    def _cleanup(self, ttl_days: int) -> int:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=ttl_days)).isoformat()
        with self._connection() as conn:
            # Every observation refreshes last_updated_at, so only items the
            # sources stopped returning age out.
            states = conn.execute("DELETE FROM item_state WHERE last_updated_at < ?", (cutoff,))
            # A marker goes only with its item state, otherwise a still
            # observed item would be announced again.
            markers = conn.execute(
                """
                DELETE FROM sent_markers
                WHERE sent_at < ?
                  AND item_id NOT IN (SELECT item_id FROM item_state)
                """,
                (cutoff,),
            )
            return markers.rowcount + states.rowcount

    def _get_stats(self) -> dict[str, int]:
        since = (datetime.now(timezone.utc) - timedelta(hours=24)).isoformat()
        with self._connection() as conn:

            def count(query: str, *params: Any) -> int:
                return int(conn.execute(query, params).fetchone()[0])

            return {
                "tracked_items": count("SELECT COUNT(*) FROM item_state"),
                "live_items": count(
                    "SELECT COUNT(*) FROM item_state WHERE lifecycle_state = ?",
                    LifecycleState.LIVE.value,
                ),
                "markers_total": count("SELECT COUNT(*) FROM sent_markers"),
                "markers_last_24h": count("SELECT COUNT(*) FROM sent_markers WHERE sent_at > ?", since),
                "feed_cursors": count("SELECT COUNT(*) FROM feed_cursors"),
            }

    def _get_item_history(self, item_id: str) -> tuple[Optional[ItemState], list[SentMarker]]:
        state = self._get_item_state(item_id)
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM sent_markers WHERE item_id = ? ORDER BY sent_at DESC",
                (item_id,),
            ).fetchall()
        markers = [
            SentMarker(
                key=row["marker_key"],
                item_id=row["item_id"],
                kind=NotificationKind(row["kind"]),
                source_name=row["source_name"] or "",
                lifecycle_state=LifecycleState(row["lifecycle_state"]),
                sent_at=_from_text(row["sent_at"]),
            )
            for row in rows
        ]
        return state, markers

    async def cleanup(self, ttl_days: int) -> int:
        """Drop items unobserved for ttl_days together with their markers; return rows removed."""

        return await self._run(self._cleanup, ttl_days)

    async def get_stats(self) -> dict[str, int]:
        return await self._run(self._get_stats)

    async def get_item_history(self, item_id: str) -> tuple[Optional[ItemState], list[SentMarker]]:
        return await self._run(self._get_item_history, item_id)
