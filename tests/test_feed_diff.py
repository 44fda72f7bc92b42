from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from castwatch.core.feed_diff import (
    cursor_for,
    is_new,
    parse_publish_date,
    select_new_items,
)
from castwatch.core.models import FeedCursor, Item, LifecycleState, SourceKind


def _entry(guid: str = "", title: str = "", published: Optional[str] = None) -> Item:
    return Item(
        id=guid,
        title=title,
        published_at=parse_publish_date(published),
        lifecycle_state=LifecycleState.FINAL,
        source_kind=SourceKind.FEED,
    )


def _cursor(
    last_item_id: Optional[str] = None,
    last_publish_date: Optional[str] = None,
    last_title: Optional[str] = None,
) -> FeedCursor:
    return FeedCursor(
        source_url="https://example.com/feed.xml",
        last_item_id=last_item_id,
        last_publish_date=parse_publish_date(last_publish_date),
        last_title=last_title,
    )


def test_parse_publish_date_formats() -> None:
    expected = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_publish_date("2024-01-02T03:04:05Z") == expected
    assert parse_publish_date("Tue, 02 Jan 2024 03:04:05 GMT") == expected
    assert parse_publish_date("2024-01-02T12:04:05+09:00") == expected
    assert parse_publish_date("2024-01-01") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_publish_date("not a date") is None
    assert parse_publish_date("") is None
    assert parse_publish_date(None) is None


def test_matching_guid_is_not_new() -> None:
    cursor = _cursor(last_item_id="g1", last_publish_date="2024-01-01", last_title="First")
    assert not is_new(_entry("g1", "First", "2024-01-01"), cursor)


def test_other_guid_with_newer_date_is_new() -> None:
    cursor = _cursor(last_item_id="g1", last_publish_date="2024-01-01", last_title="First")
    assert is_new(_entry("g2", "Second", "2024-01-02"), cursor)


def test_other_guid_with_older_or_equal_date_is_not_new() -> None:
    cursor = _cursor(last_item_id="g1", last_publish_date="2024-01-02")
    assert not is_new(_entry("g0", "Old", "2024-01-01"), cursor)
    assert not is_new(_entry("g9", "Same day", "2024-01-02"), cursor)


def test_title_comparison_when_no_dates() -> None:
    cursor = _cursor(last_title="Hello")
    assert not is_new(_entry(title="Hello"), cursor)
    assert is_new(_entry(title="Hello again"), cursor)


def test_nothing_comparable_fails_open() -> None:
    cursor = _cursor(last_item_id="g1")
    assert is_new(_entry(), cursor)
    assert is_new(_entry("g1"), None)


def test_new_items_sorted_oldest_first() -> None:
    d1 = _entry("a", "D1", "2024-01-01T00:00:00Z")
    d2 = _entry("b", "D2", "2024-01-02T00:00:00Z")
    d3 = _entry("c", "D3", "2024-01-03T00:00:00Z")

    assert select_new_items([d3, d1, d2], None) == [d1, d2, d3]


def test_undated_items_sort_first_and_keep_order() -> None:
    dated = _entry("a", "Dated", "2024-01-01")
    undated_one = _entry("b", "Undated 1")
    undated_two = _entry("c", "Undated 2")

    ordered = select_new_items([dated, undated_one, undated_two], None)

    assert ordered == [undated_one, undated_two, dated]


def test_select_new_items_drops_known_entries() -> None:
    cursor = _cursor(last_item_id="b", last_publish_date="2024-01-02")
    batch = [
        _entry("c", "Three", "2024-01-03"),
        _entry("b", "Two", "2024-01-02"),
        _entry("a", "One", "2024-01-01"),
    ]

    assert [item.id for item in select_new_items(batch, cursor)] == ["c"]


def test_cursor_for_copies_identity() -> None:
    item = _entry("g3", "Third", "2024-01-03")
    cursor = cursor_for("https://example.com/feed.xml", item)

    assert cursor.last_item_id == "g3"
    assert cursor.last_title == "Third"
    assert cursor.last_publish_date == datetime(2024, 1, 3, tzinfo=timezone.utc)

    anonymous = cursor_for("https://example.com/feed.xml", _entry())
    assert anonymous.last_item_id is None
    assert anonymous.last_title is None
