from __future__ import annotations

from datetime import datetime, timezone

import pytest

from castwatch.adapters.notification_formatting import (
    clip,
    format_count,
    format_notification,
    headline,
)
from castwatch.core.config import FeedSourceConfig, VideoSourceConfig
from castwatch.core.models import Item, LifecycleState, NotificationKind, SourceKind

CHANNEL = VideoSourceConfig(name="Orbit Lab", channel_id="UC1", destinations=("chat",))


def _video(state: LifecycleState, **overrides) -> Item:
    fields = dict(
        id="v1",
        title="Rocket <test> & launch",
        published_at=datetime(2024, 5, 1, 12, tzinfo=timezone.utc),
        lifecycle_state=state,
        source_kind=SourceKind.VIDEO,
        url="https://www.youtube.com/watch?v=v1",
        description="A long description " * 20,
        duration="12:34",
        view_count=15300,
    )
    fields.update(overrides)
    return Item(**fields)


@pytest.mark.parametrize(
    ("state", "kind", "expected"),
    [
        (LifecycleState.UPCOMING, NotificationKind.INITIAL, "will go live soon"),
        (LifecycleState.LIVE, NotificationKind.INITIAL, "started a live stream"),
        (LifecycleState.LIVE, NotificationKind.STATUS_CHANGE, "is now live"),
        (LifecycleState.FINAL, NotificationKind.INITIAL, "uploaded a new video"),
    ],
)
def test_headline_follows_lifecycle(state, kind, expected) -> None:
    text = headline(_video(state), kind, CHANNEL)
    assert "Orbit Lab" in text
    assert expected in text


def test_custom_message_template_is_rendered() -> None:
    source = FeedSourceConfig(
        name="Blog",
        url="https://example.com/feed",
        destinations=("chat",),
        custom_message="{source_name}: {title} {url} {unknown}",
    )
    item = _video(LifecycleState.FINAL, source_kind=SourceKind.FEED, title="Hello")
    assert headline(item, NotificationKind.INITIAL, source) == (
        "Blog: Hello https://www.youtube.com/watch?v=v1 {unknown}"
    )


def test_format_helpers() -> None:
    assert format_count(999) == "999"
    assert format_count(15300) == "15.3K"
    assert format_count(2_500_000) == "2.5M"
    assert clip(None, 10) == ""
    assert clip("  short  ", 10) == "short"
    assert clip("abcdefghijkl", 5) == "abcde..."


def test_html_escapes_and_includes_details() -> None:
    text = format_notification(_video(LifecycleState.FINAL), NotificationKind.INITIAL, CHANNEL, 40, mode="html")
    assert "<b>Rocket &lt;test&gt; &amp; launch</b>" in text
    assert "⏱️ 12:34" in text
    assert "15.3K views" in text
    assert '<a href="https://www.youtube.com/watch?v=v1">' in text


def test_markdown_prefixes_mention() -> None:
    source = VideoSourceConfig(name="Orbit Lab", channel_id="UC1", destinations=("me",), mention="@crew")
    text = format_notification(_video(LifecycleState.LIVE), NotificationKind.STATUS_CHANGE, source, 40, mode="markdown")
    assert text.splitlines()[0].startswith("@crew ")
    # Live streams carry no duration or view details.
    assert "views" not in text


def test_plain_mode_is_minimal() -> None:
    text = format_notification(_video(LifecycleState.FINAL), NotificationKind.INITIAL, CHANNEL, 40, mode="plain")
    assert text.splitlines() == [
        "🎬 Orbit Lab uploaded a new video!",
        "Rocket <test> & launch",
        "https://www.youtube.com/watch?v=v1",
    ]


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        format_notification(_video(LifecycleState.FINAL), NotificationKind.INITIAL, CHANNEL, 40, mode="rtf")
