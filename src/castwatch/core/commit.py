"""Marker commit engine (core domain).

The engine is the only writer of sent markers. It relies on the store's
create-if-absent primitive when that is atomic, and otherwise serialises the
read-check-write per marker key with an in-process lock. Cross-process races
on non-atomic stores are not covered.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Optional

from castwatch.core.markers import marker_key
from castwatch.core.models import LifecycleState, NotificationKind, SentMarker
from castwatch.core.ports import StoragePort

LOGGER = logging.getLogger(__name__)


class CommitResult(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class CommitEngine:
    """Records "notification sent" markers at most once per (item, kind)."""

    def __init__(self, storage: StoragePort) -> None:
        self._storage = storage
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            # Drop the lock once no commit holds or awaits it.
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def commit(
        self,
        item_id: str,
        kind: NotificationKind,
        source_name: str,
        lifecycle_state: LifecycleState,
        sent_at: Optional[datetime] = None,
    ) -> CommitResult:
        """Create the marker for (item_id, kind).

        Raises ``StoreError`` when the store write fails.
        """

        key = marker_key(item_id, kind)
        marker = SentMarker(
            key=key,
            item_id=item_id,
            kind=kind,
            source_name=source_name,
            lifecycle_state=lifecycle_state,
            sent_at=sent_at or datetime.now(timezone.utc),
        )

        if getattr(self._storage, "supports_atomic_create", False):
            created = await self._storage.create_marker_if_absent(marker)
        else:
            async with self._key_lock(key):
                if await self._storage.marker_exists(item_id, kind):
                    created = False
                else:
                    created = await self._storage.create_marker_if_absent(marker)

        if not created:
            LOGGER.info("Marker %s already exists, skipping commit", key)
            return CommitResult.ALREADY_EXISTS
        LOGGER.debug("Committed marker %s (%s)", key, kind.value)
        return CommitResult.CREATED
