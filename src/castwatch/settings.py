"""Configuration loading for castwatch.

All user-editable settings (sources, feeds, schedules, notifications,
logging) live in a single JSON file for quick edits without touching Python.
Secrets stay in the environment (.env via python-dotenv).
"""

from __future__ import annotations

import json
import os
from typing import Any, Optional

from apscheduler.triggers.cron import CronTrigger

from castwatch.core.config import (
    SCHEDULE_MODES,
    AppConfig,
    DetectionConfig,
    FeedSourceConfig,
    NotificationConfig,
    RetentionConfig,
    ScheduleConfig,
    VideoSourceConfig,
)
from castwatch.core.errors import ConfigError

PROJECT_ROOT = os.path.abspath(os.getcwd())

# config.json in the working directory unless CASTWATCH_CONFIG points elsewhere.
CONFIG_PATH = os.getenv("CASTWATCH_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))

NOTIFICATION_METHODS = ("bot", "saved_messages")

# Defaults mirror the historical behaviour: videos every 5 minutes, feeds
# every 10 minutes with a short warm-up delay.
DEFAULT_CONTENT_SCHEDULE = {"mode": "interval", "interval_ms": 5 * 60 * 1000, "initial_delay_ms": 0}
DEFAULT_FEED_SCHEDULE = {"mode": "cron", "cron": "*/10 * * * *", "initial_delay_ms": 5000}


def _load_json_config(path: str) -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Config file is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a JSON object")
    return data


def _positive_int(value: Any, name: str, allow_zero: bool = False) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if number < 0 or (number == 0 and not allow_zero):
        raise ConfigError(f"{name} must be {'>= 0' if allow_zero else '> 0'}, got {number}")
    return number


def _destinations(entry: dict, default: Optional[str], label: str) -> tuple[str, ...]:
    raw = entry.get("destinations") or []
    if isinstance(raw, (str, int)):
        raw = [raw]
    destinations = tuple(str(value) for value in raw if str(value).strip())
    if not destinations and default:
        destinations = (default,)
    if not destinations:
        raise ConfigError(f"{label} has no destinations and no default chat is configured")
    return destinations


def _parse_video_sources(raw_sources: list[dict], default_destination: Optional[str]) -> tuple[VideoSourceConfig, ...]:
    sources = []
    for index, entry in enumerate(raw_sources):
        if not entry.get("enabled", True):
            continue
        channel_id = entry.get("channel_id")
        if not channel_id:
            raise ConfigError(f"video_sources[{index}] is missing channel_id")
        name = entry.get("name") or channel_id
        sources.append(
            VideoSourceConfig(
                name=name,
                channel_id=channel_id,
                destinations=_destinations(entry, default_destination, f"video source {name!r}"),
                platform=str(entry.get("platform", "youtube")).lower(),
                max_items=_positive_int(entry.get("max_items", 5), f"{name}.max_items"),
                mention=entry.get("mention") or None,
                custom_message=entry.get("custom_message") or None,
            )
        )
    return tuple(sources)


def _parse_feed_sources(raw_feeds: list[dict], default_destination: Optional[str]) -> tuple[FeedSourceConfig, ...]:
    feeds = []
    for index, entry in enumerate(raw_feeds):
        if not entry.get("enabled", True):
            continue
        url = entry.get("url")
        if not url:
            raise ConfigError(f"feeds[{index}] is missing url")
        name = entry.get("name") or url
        feeds.append(
            FeedSourceConfig(
                name=name,
                url=url,
                destinations=_destinations(entry, default_destination, f"feed {name!r}"),
                mention=entry.get("mention") or None,
                custom_message=entry.get("custom_message") or None,
            )
        )
    return tuple(feeds)


def _parse_schedule(raw: Optional[dict], default: dict, label: str) -> ScheduleConfig:
    merged = {**default, **(raw or {})}
    mode = str(merged.get("mode", "")).lower()
    if mode not in SCHEDULE_MODES:
        raise ConfigError(f"schedule.{label}.mode must be one of {SCHEDULE_MODES}, got {mode!r}")

    cron = merged.get("cron")
    if mode == "cron":
        if not cron:
            raise ConfigError(f"schedule.{label}.cron is required in cron mode")
        try:
            CronTrigger.from_crontab(cron)
        except ValueError as exc:
            raise ConfigError(f"schedule.{label}.cron is invalid: {exc}") from exc

    return ScheduleConfig(
        mode=mode,
        interval_ms=_positive_int(merged.get("interval_ms", 5 * 60 * 1000), f"schedule.{label}.interval_ms"),
        cron=cron,
        initial_delay_ms=_positive_int(
            merged.get("initial_delay_ms", 0), f"schedule.{label}.initial_delay_ms", allow_zero=True
        ),
    )


def _parse_notifications(raw: dict) -> NotificationConfig:
    # Notification method switches adapters without changing core logic.
    method = raw.get("notification_method", "bot")
    if method not in NOTIFICATION_METHODS:
        raise ConfigError(f"notification_method must be one of {NOTIFICATION_METHODS}, got {method!r}")
    bot_chat_id = raw.get("bot_chat_id")
    return NotificationConfig(
        method=method,
        bot_chat_id=str(bot_chat_id) if bot_chat_id is not None else None,
        snippet_chars=_positive_int(raw.get("snippet_chars", 150), "notifications.snippet_chars"),
    )


def load_config(path: Optional[str] = None) -> AppConfig:
    """Read and validate config.json into typed dataclasses.

    Raises ConfigError on any problem; callers treat that as fatal.
    """

    path = path or CONFIG_PATH
    raw = _load_json_config(path)

    notifications = _parse_notifications(raw.get("notifications", {}))
    # Saved Messages needs no chat id; the bot needs one unless every source
    # lists its own destinations.
    default_destination = notifications.bot_chat_id if notifications.method == "bot" else "me"

    video_sources = _parse_video_sources(raw.get("video_sources", []), default_destination)
    feed_sources = _parse_feed_sources(raw.get("feeds", []), default_destination)
    if not video_sources and not feed_sources:
        raise ConfigError("No enabled video sources or feeds are configured")

    schedule = raw.get("schedule", {})
    retention = raw.get("retention", {})
    detection = raw.get("detection", {})

    db_path = raw.get("database", {}).get("path", "castwatch.db")
    if not os.path.isabs(db_path):
        db_path = os.path.join(os.path.dirname(os.path.abspath(path)), db_path)

    return AppConfig(
        video_sources=video_sources,
        feed_sources=feed_sources,
        content_schedule=_parse_schedule(schedule.get("content"), DEFAULT_CONTENT_SCHEDULE, "content"),
        feed_schedule=_parse_schedule(schedule.get("feeds"), DEFAULT_FEED_SCHEDULE, "feeds"),
        detection=DetectionConfig(
            fail_open_on_store_error=bool(detection.get("fail_open_on_store_error", False)),
        ),
        retention=RetentionConfig(ttl_days=_positive_int(retention.get("ttl_days", 30), "retention.ttl_days")),
        notifications=notifications,
        db_path=db_path,
        logging=raw.get("logging", {}),
    )
