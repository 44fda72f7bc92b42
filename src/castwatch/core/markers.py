"""Helpers for working with sent-marker keys."""

from __future__ import annotations

from typing import Tuple

from castwatch.core.models import NotificationKind

STATUS_CHANGE_SUFFIX = "_live_status_change"


def marker_key(item_id: str, kind: NotificationKind) -> str:
    """Return the storage key for a marker.

    The initial marker is keyed by the bare item id; the status change marker
    uses a derived key so both can coexist.
    """

    if kind is NotificationKind.INITIAL:
        return item_id
    if kind is NotificationKind.STATUS_CHANGE:
        return f"{item_id}{STATUS_CHANGE_SUFFIX}"
    raise ValueError(f"Unsupported notification kind: {kind}")


def split_marker_key(key: str) -> Tuple[str, NotificationKind]:
    """Split a marker key into (item_id, kind)."""

    if key.endswith(STATUS_CHANGE_SUFFIX) and len(key) > len(STATUS_CHANGE_SUFFIX):
        return key[: -len(STATUS_CHANGE_SUFFIX)], NotificationKind.STATUS_CHANGE
    return key, NotificationKind.INITIAL
