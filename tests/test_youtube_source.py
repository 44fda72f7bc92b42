from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from castwatch.adapters.youtube_source import (
    YouTubeSource,
    item_from_video,
    lifecycle_from_broadcast,
    parse_duration,
)
from castwatch.core.config import VideoSourceConfig
from castwatch.core.errors import SourceFetchError
from castwatch.core.models import LifecycleState

SOURCE = VideoSourceConfig(name="Orbit Lab", channel_id="UC1", destinations=("chat",), max_items=2)


def _entry(video_id: str) -> dict:
    return {
        "contentDetails": {"videoId": video_id},
        "snippet": {
            "title": f"Entry {video_id}",
            "publishedAt": "2024-05-01T12:00:00Z",
            "thumbnails": {"medium": {"url": f"https://i.ytimg.com/{video_id}.jpg"}},
        },
    }


def _video(video_id: str, broadcast: str = "none") -> dict:
    return {
        "id": video_id,
        "snippet": {"title": f"Video {video_id}", "liveBroadcastContent": broadcast, "channelTitle": "Orbit Lab"},
        "contentDetails": {"duration": "PT1H2M3S"},
        "statistics": {"viewCount": "1200"},
    }


class _Request:
    def __init__(self, response: dict) -> None:
        self._response = response

    def execute(self) -> dict:
        return self._response


class _Resource:
    def __init__(self, response: dict) -> None:
        self._response = response
        self.calls: list[dict] = []

    def list(self, **kwargs) -> _Request:
        self.calls.append(kwargs)
        return _Request(self._response)


class FakeYouTube:
    def __init__(self, channels: dict, playlist: dict, videos: dict) -> None:
        self._channels = _Resource(channels)
        self._playlist = _Resource(playlist)
        self._videos = _Resource(videos)

    def channels(self) -> _Resource:
        return self._channels

    def playlistItems(self) -> _Resource:
        return self._playlist

    def videos(self) -> _Resource:
        return self._videos


def test_parse_duration() -> None:
    assert parse_duration("PT4M13S") == "4:13"
    assert parse_duration("PT1H2M3S") == "1:02:03"
    assert parse_duration("PT45S") == "0:45"
    assert parse_duration("P1D") is None
    assert parse_duration(None) is None


def test_lifecycle_from_broadcast() -> None:
    assert lifecycle_from_broadcast("live") is LifecycleState.LIVE
    assert lifecycle_from_broadcast("upcoming") is LifecycleState.UPCOMING
    assert lifecycle_from_broadcast("none") is LifecycleState.FINAL
    assert lifecycle_from_broadcast(None) is LifecycleState.FINAL


def test_item_from_video() -> None:
    item = item_from_video(_entry("abc"), _video("abc", "upcoming"))

    assert item.id == "abc"
    assert item.title == "Video abc"
    assert item.published_at == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
    assert item.lifecycle_state is LifecycleState.UPCOMING
    assert item.url == "https://www.youtube.com/watch?v=abc"
    assert item.thumbnail_url == "https://i.ytimg.com/abc.jpg"
    assert item.duration == "1:02:03"
    assert item.view_count == 1200


def test_fetch_skips_videos_without_details() -> None:
    client = FakeYouTube(
        channels={"items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UU1"}}}]},
        playlist={"items": [_entry("a"), _entry("b")]},
        videos={"items": [_video("a", "live")]},
    )

    items = asyncio.run(YouTubeSource("key", client=client).fetch_recent_items(SOURCE))

    assert [item.id for item in items] == ["a"]
    assert client._playlist.calls[0]["maxResults"] == 2
    assert client._videos.calls[0]["id"] == "a,b"


def test_unknown_channel_is_a_fetch_error() -> None:
    client = FakeYouTube(channels={"items": []}, playlist={}, videos={})
    with pytest.raises(SourceFetchError):
        asyncio.run(YouTubeSource("key", client=client).fetch_recent_items(SOURCE))


def test_unsupported_platform_is_a_fetch_error() -> None:
    source = VideoSourceConfig(name="Other", channel_id="x", destinations=("chat",), platform="vimeo")
    with pytest.raises(SourceFetchError):
        asyncio.run(YouTubeSource("key", client=object()).fetch_recent_items(source))
