"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, source and notification
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Optional, Protocol, Union

from castwatch.core.config import FeedSourceConfig, VideoSourceConfig
from castwatch.core.models import FeedCursor, Item, ItemState, NotificationKind, SentMarker

SourceConfig = Union[VideoSourceConfig, FeedSourceConfig]


class StoragePort(Protocol):
    """Storage operations required by the core pipeline.

    Implementations raise ``StoreError`` on any backend failure.
    ``supports_atomic_create`` tells the commit engine whether
    ``create_marker_if_absent`` is atomic across concurrent callers.
    """

    supports_atomic_create: bool

    async def get_item_state(self, item_id: str) -> Optional[ItemState]:
        ...

    async def upsert_item_state(self, state: ItemState) -> None:
        ...

    async def marker_exists(self, item_id: str, kind: NotificationKind) -> bool:
        ...

    async def create_marker_if_absent(self, marker: SentMarker) -> bool:
        ...

    async def get_feed_cursor(self, source_url: str) -> Optional[FeedCursor]:
        ...

    async def set_feed_cursor(self, cursor: FeedCursor) -> None:
        ...


class ContentSourcePort(Protocol):
    """Fetches recent items from a video platform channel."""

    async def fetch_recent_items(self, source: VideoSourceConfig) -> list[Item]:
        ...


class FeedSourcePort(Protocol):
    """Fetches the current batch of entries from a feed."""

    async def fetch_feed_items(self, source: FeedSourceConfig) -> list[Item]:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the core pipeline.

    ``send`` raises ``DeliveryError`` on failure. When ``supports_fallback``
    is true the core may retry once with ``fallback=True`` to request a
    simpler rendering.
    """

    supports_fallback: bool

    async def send(
        self,
        destination: str,
        item: Item,
        kind: NotificationKind,
        source: SourceConfig,
        fallback: bool = False,
    ) -> None:
        ...
