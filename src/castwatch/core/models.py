"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any platform-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class LifecycleState(str, Enum):
    """Broadcast/publication stage of an item."""

    UPCOMING = "upcoming"
    LIVE = "live"
    FINAL = "final"


class SourceKind(str, Enum):
    VIDEO = "video"
    FEED = "feed"


class NotificationKind(str, Enum):
    """Kinds of notification an item can receive, one marker each."""

    INITIAL = "initial"
    STATUS_CHANGE = "status_change"


@dataclass(frozen=True)
class Item:
    """A single piece of content observed on a source.

    Only ``id``, ``title``, ``published_at``, ``lifecycle_state`` and
    ``source_kind`` drive detection. The remaining fields are carried for
    notifier adapters.
    """

    id: str
    title: str
    published_at: Optional[datetime]
    lifecycle_state: LifecycleState
    source_kind: SourceKind
    url: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    channel_title: Optional[str] = None
    duration: Optional[str] = None
    view_count: Optional[int] = None


@dataclass(frozen=True)
class ItemState:
    """Persisted last-known state of an item."""

    id: str
    lifecycle_state: LifecycleState
    title: str
    source_name: str
    last_updated_at: datetime
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class SentMarker:
    """Durable proof that one notification kind was sent for an item."""

    key: str
    item_id: str
    kind: NotificationKind
    source_name: str
    lifecycle_state: LifecycleState
    sent_at: datetime


@dataclass(frozen=True)
class FeedCursor:
    """Per-feed bookmark of the newest item already dispatched."""

    source_url: str
    last_item_id: Optional[str]
    last_publish_date: Optional[datetime]
    last_title: Optional[str]


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating one observed item.

    ``kind`` is ``None`` for "no notification". ``state`` is always the
    record the caller should upsert, even when nothing is sent.
    """

    kind: Optional[NotificationKind]
    state: ItemState
    previous_state: Optional[LifecycleState] = None

    @property
    def should_notify(self) -> bool:
        return self.kind is not None


@dataclass
class CycleReport:
    """Counters collected while running one poll cycle."""

    category: str
    sources_checked: int = 0
    sources_failed: int = 0
    items_seen: int = 0
    notifications_sent: int = 0
    deliveries_failed: int = 0
    failed_sources: list[str] = field(default_factory=list)
