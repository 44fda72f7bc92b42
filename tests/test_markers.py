from __future__ import annotations

from castwatch.core.markers import STATUS_CHANGE_SUFFIX, marker_key, split_marker_key
from castwatch.core.models import NotificationKind


def test_initial_marker_uses_bare_item_id() -> None:
    assert marker_key("abc123", NotificationKind.INITIAL) == "abc123"


def test_status_change_marker_is_derived_and_distinct() -> None:
    key = marker_key("abc123", NotificationKind.STATUS_CHANGE)
    assert key == f"abc123{STATUS_CHANGE_SUFFIX}"
    assert key != marker_key("abc123", NotificationKind.INITIAL)


def test_split_marker_key() -> None:
    assert split_marker_key("abc123") == ("abc123", NotificationKind.INITIAL)
    assert split_marker_key("abc123_live_status_change") == ("abc123", NotificationKind.STATUS_CHANGE)
    # A bare suffix is not a derived key.
    assert split_marker_key(STATUS_CHANGE_SUFFIX) == (STATUS_CHANGE_SUFFIX, NotificationKind.INITIAL)
