"""RSS/Atom feed source adapter built on feedparser."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import feedparser

from castwatch.core.config import FeedSourceConfig
from castwatch.core.errors import SourceFetchError
from castwatch.core.feed_diff import parse_publish_date
from castwatch.core.models import Item, LifecycleState, SourceKind

LOGGER = logging.getLogger(__name__)


def _entry_date(entry: Any) -> Optional[datetime]:
    # feedparser normalises most date formats into *_parsed (UTC struct_time).
    for field in ("published_parsed", "updated_parsed"):
        parsed = entry.get(field)
        if parsed:
            return datetime(*parsed[:6], tzinfo=timezone.utc)
    return parse_publish_date(entry.get("published") or entry.get("updated"))


def _entry_thumbnail(entry: Any) -> Optional[str]:
    for field in ("media_thumbnail", "media_content"):
        for media in entry.get(field) or []:
            url = media.get("url")
            if url:
                return url
    for enclosure in entry.get("enclosures") or []:
        if str(enclosure.get("type", "")).startswith("image/") and enclosure.get("href"):
            return enclosure["href"]
    return None


def item_from_entry(entry: Any, feed_title: Optional[str] = None) -> Item:
    """Map a feedparser entry onto a core Item.

    The entry guid is used as id when present, then the link. Entries with
    neither get an empty id and are compared by date or title instead.
    """

    return Item(
        id=entry.get("id") or entry.get("link") or "",
        title=entry.get("title") or "",
        published_at=_entry_date(entry),
        lifecycle_state=LifecycleState.FINAL,
        source_kind=SourceKind.FEED,
        url=entry.get("link"),
        description=entry.get("summary") or entry.get("description"),
        thumbnail_url=_entry_thumbnail(entry),
        channel_title=feed_title,
    )


def items_from_feed(parsed: Any) -> list[Item]:
    feed_title = parsed.feed.get("title") if getattr(parsed, "feed", None) else None
    return [item_from_entry(entry, feed_title) for entry in parsed.entries]


class RssSource:
    """FeedSourcePort implementation that downloads and parses a feed URL."""

    async def fetch_feed_items(self, source: FeedSourceConfig) -> list[Item]:
        parsed = await asyncio.to_thread(feedparser.parse, source.url)

        status = parsed.get("status")
        if status is not None and status >= 400:
            raise SourceFetchError(source.name, f"HTTP {status} from {source.url}")
        if parsed.get("bozo") and not parsed.entries:
            raise SourceFetchError(source.name, f"unreadable feed: {parsed.get('bozo_exception')}")
        if parsed.get("bozo"):
            LOGGER.debug("Feed %s is malformed but has entries: %s", source.url, parsed.get("bozo_exception"))
        return items_from_feed(parsed)
