"""Queue boundary between the core and a chat adapter.

The core never holds the chat client. It puts a delivery envelope on a queue
and awaits the outcome; a single consumer task owns the concrete adapter and
reports success or failure back through the envelope's future.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from castwatch.core.errors import DeliveryError
from castwatch.core.models import Item, NotificationKind
from castwatch.core.ports import NotifierPort, SourceConfig

LOGGER = logging.getLogger(__name__)


@dataclass
class Envelope:
    destination: str
    item: Item
    kind: NotificationKind
    source: SourceConfig
    fallback: bool
    outcome: asyncio.Future


class QueuedNotifier:
    """NotifierPort that hands deliveries to a consumer task."""

    def __init__(self, sink: NotifierPort, maxsize: int = 100) -> None:
        self._sink = sink
        self._queue: asyncio.Queue[Envelope] = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self.supports_fallback = bool(getattr(sink, "supports_fallback", False))

    async def send(
        self,
        destination: str,
        item: Item,
        kind: NotificationKind,
        source: SourceConfig,
        fallback: bool = False,
    ) -> None:
        if self._task is None or self._task.done():
            raise DeliveryError("notification consumer is not running")
        outcome = asyncio.get_running_loop().create_future()
        await self._queue.put(Envelope(destination, item, kind, source, fallback, outcome))
        await outcome

    async def _deliver(self, envelope: Envelope) -> None:
        try:
            await self._sink.send(
                envelope.destination,
                envelope.item,
                envelope.kind,
                envelope.source,
                fallback=envelope.fallback,
            )
        except DeliveryError as exc:
            if not envelope.outcome.done():
                envelope.outcome.set_exception(exc)
        except asyncio.CancelledError:
            if not envelope.outcome.done():
                envelope.outcome.set_exception(DeliveryError("notifier stopped"))
            raise
        except Exception as exc:
            LOGGER.exception("Notifier crashed while delivering %s", envelope.item.id)
            if not envelope.outcome.done():
                envelope.outcome.set_exception(DeliveryError(f"notifier crashed: {exc}"))
        else:
            if not envelope.outcome.done():
                envelope.outcome.set_result(None)

    async def run(self) -> None:
        """Consume envelopes until cancelled."""

        while True:
            envelope = await self._queue.get()
            try:
                await self._deliver(envelope)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="castwatch-notifier")

    async def stop(self) -> None:
        """Stop the consumer; envelopes still queued fail with DeliveryError."""

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        while not self._queue.empty():
            envelope = self._queue.get_nowait()
            if not envelope.outcome.done():
                envelope.outcome.set_exception(DeliveryError("notifier stopped"))
            self._queue.task_done()
