"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

SCHEDULE_MODES = ("interval", "cron")


@dataclass(frozen=True)
class VideoSourceConfig:
    """A video channel to poll."""

    name: str
    channel_id: str
    destinations: tuple[str, ...]
    platform: str = "youtube"
    max_items: int = 5
    mention: Optional[str] = None
    custom_message: Optional[str] = None


@dataclass(frozen=True)
class FeedSourceConfig:
    """An RSS/Atom feed to poll."""

    name: str
    url: str
    destinations: tuple[str, ...]
    mention: Optional[str] = None
    custom_message: Optional[str] = None


@dataclass(frozen=True)
class ScheduleConfig:
    """Trigger policy for one source category."""

    mode: str
    interval_ms: int = 5 * 60 * 1000
    cron: Optional[str] = None
    initial_delay_ms: int = 5000


@dataclass(frozen=True)
class DetectionConfig:
    """Store-failure policy for the change detector.

    When ``fail_open_on_store_error`` is set, an item whose prior state cannot
    be read is treated as never seen; otherwise it is skipped for the cycle.
    """

    fail_open_on_store_error: bool = False


@dataclass(frozen=True)
class RetentionConfig:
    """How long markers and item states are kept."""

    ttl_days: int = 30


@dataclass(frozen=True)
class NotificationConfig:
    """Notification formatting settings consumed by notifier adapters."""

    method: str = "bot"
    bot_chat_id: Optional[str] = None
    snippet_chars: int = 150


@dataclass(frozen=True)
class AppConfig:
    """Validated application configuration."""

    video_sources: tuple[VideoSourceConfig, ...]
    feed_sources: tuple[FeedSourceConfig, ...]
    content_schedule: ScheduleConfig
    feed_schedule: ScheduleConfig
    detection: DetectionConfig = DetectionConfig()
    retention: RetentionConfig = RetentionConfig()
    notifications: NotificationConfig = NotificationConfig()
    db_path: str = "castwatch.db"
    logging: dict = field(default_factory=dict)
