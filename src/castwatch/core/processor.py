"""Core polling pipeline.

This module is integration-agnostic. It only relies on ports for sources,
storage and notifications, enabling other platforms or chat adapters without
changes here.

Per video item the order is strict:
1) Read prior state and markers (fail-closed on store errors by default)
2) Evaluate the item
3) Deliver to every destination, with one fallback retry
4) Commit the marker only after a successful delivery
5) Upsert the observed state

Feed sources skip markers and use a per-feed cursor instead.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Set

from castwatch.core.commit import CommitEngine
from castwatch.core.config import DetectionConfig, FeedSourceConfig, VideoSourceConfig
from castwatch.core.detector import evaluate
from castwatch.core.errors import DeliveryError, StoreError
from castwatch.core.feed_diff import cursor_for, select_new_items, sort_chronologically
from castwatch.core.models import (
    CycleReport,
    FeedCursor,
    Item,
    ItemState,
    NotificationKind,
)
from castwatch.core.ports import (
    ContentSourcePort,
    FeedSourcePort,
    NotifierPort,
    SourceConfig,
    StoragePort,
)

LOGGER = logging.getLogger(__name__)

StopCheck = Callable[[], bool]


def _never() -> bool:
    return False


async def deliver_with_fallback(
    notifier: NotifierPort,
    destination: str,
    item: Item,
    kind: NotificationKind,
    source: SourceConfig,
) -> bool:
    """Deliver one notification, retrying once with the fallback rendering.

    Returns True on success. Failures are logged and reported as False so the
    caller leaves the notification due for the next cycle.
    """

    try:
        await notifier.send(destination, item, kind, source)
        return True
    except DeliveryError as exc:
        if not getattr(notifier, "supports_fallback", False):
            LOGGER.error("Delivery of %s (%s) to %s failed: %s", item.id, kind.value, destination, exc)
            return False
        LOGGER.warning(
            "Delivery of %s (%s) to %s failed, retrying with fallback: %s",
            item.id,
            kind.value,
            destination,
            exc,
        )

    try:
        await notifier.send(destination, item, kind, source, fallback=True)
    except DeliveryError as exc:
        LOGGER.error(
            "Fallback delivery of %s (%s) to %s failed, deferring to next cycle: %s",
            item.id,
            kind.value,
            destination,
            exc,
        )
        return False
    return True


async def deliver_to_all(
    notifier: NotifierPort,
    item: Item,
    kind: NotificationKind,
    source: SourceConfig,
) -> bool:
    """Deliver to every destination of a source; True only if all succeed."""

    delivered = True
    for destination in source.destinations:
        if not await deliver_with_fallback(notifier, destination, item, kind, source):
            delivered = False
    return delivered


class ContentProcessor:
    """Orchestrates detection, delivery and commits for video sources."""

    def __init__(
        self,
        content_source: ContentSourcePort,
        storage: StoragePort,
        notifier: NotifierPort,
        commit_engine: CommitEngine,
        detection: DetectionConfig,
    ) -> None:
        self._source = content_source
        self._storage = storage
        self._notifier = notifier
        self._commit = commit_engine
        self._detection = detection

    async def process_source(
        self,
        source: VideoSourceConfig,
        report: CycleReport,
        should_stop: StopCheck = _never,
    ) -> None:
        """Process one video source. ``SourceFetchError`` propagates."""

        items = await self._source.fetch_recent_items(source)
        LOGGER.debug("Fetched %s items from %s", len(items), source.name)

        # Adapters give no ordering guarantee; notify oldest first.
        for item in sort_chronologically(items):
            if should_stop():
                LOGGER.info("Stop requested, leaving %s early", source.name)
                return
            report.items_seen += 1
            await self._handle_item(source, item, report)

    async def _read_prior(self, item: Item) -> tuple[Optional[ItemState], Set[NotificationKind]]:
        prior_state = await self._storage.get_item_state(item.id)
        markers: Set[NotificationKind] = set()
        for kind in NotificationKind:
            if await self._storage.marker_exists(item.id, kind):
                markers.add(kind)
        return prior_state, markers

    async def _handle_item(self, source: VideoSourceConfig, item: Item, report: CycleReport) -> None:
        try:
            prior_state, markers = await self._read_prior(item)
        except StoreError:
            if not self._detection.fail_open_on_store_error:
                LOGGER.exception("Store read failed for %s, skipping it this cycle", item.id)
                return
            LOGGER.warning("Store read failed for %s, treating it as unseen", item.id, exc_info=True)
            prior_state, markers = None, set()

        decision = evaluate(item, prior_state, markers, source.name)

        if decision.should_notify:
            kind = decision.kind
            if not await deliver_to_all(self._notifier, item, kind, source):
                # Neither marker nor state moves, so the same notification is
                # due again next cycle.
                report.deliveries_failed += 1
                return
            report.notifications_sent += 1
            LOGGER.info("Notified %s for %s (%s)", kind.value, item.title, source.name)
            try:
                await self._commit.commit(item.id, kind, source.name, item.lifecycle_state)
            except StoreError:
                LOGGER.exception(
                    "Delivered %s (%s) but could not record the marker; it may be sent again",
                    item.id,
                    kind.value,
                )

        try:
            await self._storage.upsert_item_state(decision.state)
        except StoreError:
            LOGGER.exception("Failed to update state for %s", item.id)


class FeedProcessor:
    """Orchestrates cursor diffing and ordered delivery for feed sources."""

    def __init__(
        self,
        feed_source: FeedSourcePort,
        storage: StoragePort,
        notifier: NotifierPort,
        detection: DetectionConfig,
    ) -> None:
        self._source = feed_source
        self._storage = storage
        self._notifier = notifier
        self._detection = detection

    async def _load_cursor(self, source: FeedSourceConfig) -> tuple[bool, Optional[FeedCursor]]:
        try:
            return True, await self._storage.get_feed_cursor(source.url)
        except StoreError:
            if not self._detection.fail_open_on_store_error:
                LOGGER.exception("Store read failed for feed %s, skipping it this cycle", source.url)
                return False, None
            LOGGER.warning("Store read failed for feed %s, treating all items as new", source.url, exc_info=True)
            return True, None

    async def process_source(
        self,
        source: FeedSourceConfig,
        report: CycleReport,
        should_stop: StopCheck = _never,
    ) -> None:
        """Process one feed. ``SourceFetchError`` propagates."""

        items = await self._source.fetch_feed_items(source)
        LOGGER.debug("Fetched %s entries from %s", len(items), source.url)
        report.items_seen += len(items)

        ok, cursor = await self._load_cursor(source)
        if not ok:
            return

        new_items = select_new_items(items, cursor)
        if not new_items:
            LOGGER.info("No new items in feed %s", source.url)
            return
        LOGGER.info("Feed %s has %s new items", source.url, len(new_items))

        last_delivered: Optional[Item] = None
        for item in new_items:
            if should_stop():
                LOGGER.info("Stop requested, leaving feed %s early", source.url)
                break
            if not await deliver_to_all(self._notifier, item, NotificationKind.INITIAL, source):
                report.deliveries_failed += 1
                LOGGER.warning("Stopping feed %s at %r; the rest is retried next cycle", source.url, item.title)
                break
            report.notifications_sent += 1
            last_delivered = item

        # Only ever advance to an item that was actually delivered.
        if last_delivered is None:
            return
        try:
            await self._storage.set_feed_cursor(cursor_for(source.url, last_delivered))
        except StoreError:
            LOGGER.exception("Failed to update cursor for feed %s", source.url)
