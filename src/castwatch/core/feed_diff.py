"""Feed batch diffing (core domain).

Feeds do not always carry a stable per-item id, so new entries are found by
comparing each fetched item against a single per-feed cursor.
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, List, Optional, Union

from castwatch.core.models import FeedCursor, Item


def parse_publish_date(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 or RFC-822 date into an aware UTC datetime.

    Returns None for missing or unparseable values.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = parsedate_to_datetime(text)
            except (TypeError, ValueError, IndexError):
                return None
            if parsed is None:
                return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_new(item: Item, cursor: Optional[FeedCursor]) -> bool:
    """Classify one feed item against the cursor.

    Comparison order:
    - id equality with ``last_item_id`` means already dispatched.
    - otherwise publish date strictly newer than ``last_publish_date``.
    - otherwise title different from ``last_title``.
    - nothing comparable on both sides: new (fail open).
    """

    if cursor is None:
        return True

    if item.id and cursor.last_item_id and item.id == cursor.last_item_id:
        return False

    item_date = parse_publish_date(item.published_at)
    cursor_date = parse_publish_date(cursor.last_publish_date)
    if item_date is not None and cursor_date is not None:
        return item_date > cursor_date

    if item.title and cursor.last_title:
        return item.title != cursor.last_title

    return True


def _sort_key(item: Item) -> tuple[int, datetime]:
    published = parse_publish_date(item.published_at)
    if published is None:
        return (0, datetime.min.replace(tzinfo=timezone.utc))
    return (1, published)


def sort_chronologically(items: Iterable[Item]) -> List[Item]:
    """Sort ascending by publish date; undated items first, ties stable."""

    return sorted(items, key=_sort_key)


def select_new_items(items: Iterable[Item], cursor: Optional[FeedCursor]) -> List[Item]:
    """Return the new items of a batch in dispatch order."""

    return sort_chronologically(item for item in items if is_new(item, cursor))


def cursor_for(source_url: str, item: Item) -> FeedCursor:
    """Build the cursor that marks ``item`` as the newest dispatched entry."""

    return FeedCursor(
        source_url=source_url,
        last_item_id=item.id or None,
        last_publish_date=parse_publish_date(item.published_at),
        last_title=item.title or None,
    )
