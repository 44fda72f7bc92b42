"""YouTube content source adapter.

Uses the YouTube Data API (uploads playlist, then a batched video lookup) and
maps each video onto a core Item.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from castwatch.core.config import VideoSourceConfig
from castwatch.core.errors import SourceFetchError
from castwatch.core.feed_diff import parse_publish_date
from castwatch.core.models import Item, LifecycleState, SourceKind

LOGGER = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")

_BROADCAST_STATES = {
    "live": LifecycleState.LIVE,
    "upcoming": LifecycleState.UPCOMING,
}


def parse_duration(value: Optional[str]) -> Optional[str]:
    """Turn an ISO-8601 duration (PT4M13S) into 4:13 or 1:02:03."""

    if not value:
        return None
    match = _DURATION_RE.fullmatch(value)
    if not match:
        return None
    hours, minutes, seconds = (int(part or 0) for part in match.groups())
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def lifecycle_from_broadcast(value: Optional[str]) -> LifecycleState:
    return _BROADCAST_STATES.get(value or "", LifecycleState.FINAL)


def _thumbnail(snippet: dict[str, Any]) -> Optional[str]:
    thumbnails = snippet.get("thumbnails") or {}
    for size in ("high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


def item_from_video(playlist_entry: dict[str, Any], video: dict[str, Any]) -> Item:
    """Build an Item from a playlistItems entry and its videos resource."""

    video_id = playlist_entry["contentDetails"]["videoId"]
    entry_snippet = playlist_entry.get("snippet") or {}
    video_snippet = video.get("snippet") or {}
    statistics = video.get("statistics") or {}
    view_count = statistics.get("viewCount")

    return Item(
        id=video_id,
        title=video_snippet.get("title") or entry_snippet.get("title") or "",
        published_at=parse_publish_date(entry_snippet.get("publishedAt") or video_snippet.get("publishedAt")),
        lifecycle_state=lifecycle_from_broadcast(video_snippet.get("liveBroadcastContent")),
        source_kind=SourceKind.VIDEO,
        url=f"https://www.youtube.com/watch?v={video_id}",
        description=video_snippet.get("description") or entry_snippet.get("description"),
        thumbnail_url=_thumbnail(entry_snippet) or _thumbnail(video_snippet),
        channel_title=video_snippet.get("channelTitle") or entry_snippet.get("channelTitle"),
        duration=parse_duration((video.get("contentDetails") or {}).get("duration")),
        view_count=int(view_count) if view_count is not None else None,
    )


class YouTubeSource:
    """ContentSourcePort implementation backed by google-api-python-client."""

    def __init__(self, api_key: str, client: Any = None) -> None:
        self._api_key = api_key
        self._client = client

    def _youtube(self) -> Any:
        if self._client is None:
            self._client = build("youtube", "v3", developerKey=self._api_key, cache_discovery=False)
        return self._client

    def _uploads_playlist_id(self, youtube: Any, channel_id: str) -> Optional[str]:
        response = youtube.channels().list(part="contentDetails", id=channel_id).execute()
        items = response.get("items", [])
        if not items:
            return None
        return items[0]["contentDetails"]["relatedPlaylists"]["uploads"]

    def _fetch(self, source: VideoSourceConfig) -> list[Item]:
        youtube = self._youtube()
        uploads_playlist_id = self._uploads_playlist_id(youtube, source.channel_id)
        if not uploads_playlist_id:
            raise SourceFetchError(source.name, f"no uploads playlist for channel {source.channel_id}")

        playlist = (
            youtube.playlistItems()
            .list(part="snippet,contentDetails", playlistId=uploads_playlist_id, maxResults=source.max_items)
            .execute()
        )
        entries = playlist.get("items", [])
        video_ids = [entry["contentDetails"]["videoId"] for entry in entries]
        if not video_ids:
            return []

        details = (
            youtube.videos()
            .list(part="snippet,contentDetails,statistics,liveStreamingDetails", id=",".join(video_ids))
            .execute()
        )
        videos = {video["id"]: video for video in details.get("items", [])}

        items = []
        for entry in entries:
            video = videos.get(entry["contentDetails"]["videoId"])
            if video is None:
                # Private or deleted videos have no details; skip them.
                continue
            items.append(item_from_video(entry, video))
        return items

    async def fetch_recent_items(self, source: VideoSourceConfig) -> list[Item]:
        """Return the most recent uploads of a channel, unordered."""

        if source.platform != "youtube":
            raise SourceFetchError(source.name, f"unsupported platform {source.platform!r}")
        try:
            return await asyncio.to_thread(self._fetch, source)
        except HttpError as exc:
            status = getattr(exc.resp, "status", None)
            if status == 403:
                LOGGER.error("YouTube API quota exceeded or API key rejected")
            raise SourceFetchError(source.name, f"YouTube API error {status}") from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise SourceFetchError(source.name, f"malformed YouTube API response: {exc}") from exc
