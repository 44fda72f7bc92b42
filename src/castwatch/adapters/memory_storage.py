"""In-memory storage adapter.

Reference implementation of the core StoragePort, used by tests and by
one-off dry runs. Nothing survives the process.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from castwatch.core.markers import marker_key
from castwatch.core.models import (
    FeedCursor,
    ItemState,
    LifecycleState,
    NotificationKind,
    SentMarker,
)


class InMemoryStorage:
    """Dict-backed store that satisfies the StoragePort contract.

    ``atomic_create`` controls what the store advertises to the commit
    engine; with ``False`` the engine falls back to its per-item locks.
    """

    def __init__(self, atomic_create: bool = True) -> None:
        self.supports_atomic_create = atomic_create
        self.states: dict[str, ItemState] = {}
        self.markers: dict[str, SentMarker] = {}
        self.cursors: dict[str, FeedCursor] = {}

    async def get_item_state(self, item_id: str) -> Optional[ItemState]:
        return self.states.get(item_id)

    async def upsert_item_state(self, state: ItemState) -> None:
        existing = self.states.get(state.id)
        created_at = existing.created_at if existing else None
        if created_at is None:
            created_at = state.created_at or state.last_updated_at
        self.states[state.id] = replace(state, created_at=created_at)

    async def marker_exists(self, item_id: str, kind: NotificationKind) -> bool:
        return marker_key(item_id, kind) in self.markers

    async def create_marker_if_absent(self, marker: SentMarker) -> bool:
        if marker.key in self.markers:
            return False
        self.markers[marker.key] = marker
        return True

    async def get_feed_cursor(self, source_url: str) -> Optional[FeedCursor]:
        return self.cursors.get(source_url)

    async def set_feed_cursor(self, cursor: FeedCursor) -> None:
        self.cursors[cursor.source_url] = cursor

    async def cleanup(self, ttl_days: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=ttl_days)
        stale_states = [item_id for item_id, state in self.states.items() if state.last_updated_at < cutoff]
        for item_id in stale_states:
            del self.states[item_id]
        # Markers of items still tracked are kept regardless of age.
        stale_markers = [
            key
            for key, marker in self.markers.items()
            if marker.sent_at < cutoff and marker.item_id not in self.states
        ]
        for key in stale_markers:
            del self.markers[key]
        return len(stale_markers) + len(stale_states)

    async def get_stats(self) -> dict[str, int]:
        since = datetime.now(timezone.utc) - timedelta(hours=24)
        return {
            "tracked_items": len(self.states),
            "live_items": sum(
                1 for state in self.states.values() if state.lifecycle_state is LifecycleState.LIVE
            ),
            "markers_total": len(self.markers),
            "markers_last_24h": sum(1 for marker in self.markers.values() if marker.sent_at > since),
            "feed_cursors": len(self.cursors),
        }

    async def get_item_history(self, item_id: str) -> tuple[Optional[ItemState], list[SentMarker]]:
        markers = [marker for marker in self.markers.values() if marker.item_id == item_id]
        markers.sort(key=lambda marker: marker.sent_at, reverse=True)
        return self.states.get(item_id), markers
