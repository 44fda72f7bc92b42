from __future__ import annotations

import asyncio

from castwatch.core.config import FeedSourceConfig
from castwatch.core.cycle import PollCycle
from castwatch.core.errors import SourceFetchError


def _feed(name: str) -> FeedSourceConfig:
    return FeedSourceConfig(name=name, url=f"https://{name}.example/feed", destinations=("chat",))


class RecordingProcessor:
    def __init__(self, failures: dict[str, Exception] | None = None) -> None:
        self.failures = failures or {}
        self.visited: list[str] = []

    async def process_source(self, source, report, should_stop) -> None:
        self.visited.append(source.name)
        if source.name in self.failures:
            raise self.failures[source.name]
        report.notifications_sent += 1


class BlockingProcessor:
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def process_source(self, source, report, should_stop) -> None:
        self.calls += 1
        self.started.set()
        await self.release.wait()


def test_cycle_visits_every_source_in_order() -> None:
    processor = RecordingProcessor()
    cycle = PollCycle("feeds", [_feed("a"), _feed("b"), _feed("c")], processor)

    report = asyncio.run(cycle.run())

    assert processor.visited == ["a", "b", "c"]
    assert report.sources_checked == 3
    assert report.notifications_sent == 3
    assert not cycle.running


def test_source_failures_do_not_abort_the_cycle() -> None:
    processor = RecordingProcessor(
        failures={
            "a": SourceFetchError("a", "timeout"),
            "b": RuntimeError("malformed payload"),
        }
    )
    cycle = PollCycle("feeds", [_feed("a"), _feed("b"), _feed("c")], processor)

    report = asyncio.run(cycle.run())

    assert processor.visited == ["a", "b", "c"]
    assert report.sources_failed == 2
    assert report.failed_sources == ["a", "b"]
    assert report.notifications_sent == 1


def test_reentrant_trigger_is_skipped() -> None:
    processor = BlockingProcessor()
    cycle = PollCycle("content", [_feed("a")], processor)

    async def scenario():
        first = asyncio.create_task(cycle.run())
        await processor.started.wait()
        assert cycle.running
        skipped = await cycle.run()
        processor.release.set()
        completed = await first
        return skipped, completed

    skipped, completed = asyncio.run(scenario())

    assert processor.calls == 1
    assert skipped.sources_checked == 0
    assert completed.sources_checked == 1
    assert not cycle.running


def test_stop_request_prevents_remaining_sources() -> None:
    processor = RecordingProcessor()
    cycle = PollCycle("feeds", [_feed("a"), _feed("b")], processor)

    class StoppingProcessor(RecordingProcessor):
        async def process_source(self, source, report, should_stop) -> None:
            await super().process_source(source, report, should_stop)
            cycle.request_stop()

    cycle._processor = StoppingProcessor()
    asyncio.run(cycle.run())

    assert cycle._processor.visited == ["a"]
    assert cycle.stop_requested()
    # Once stopped, later triggers do nothing.
    assert asyncio.run(cycle.run()).sources_checked == 0


def test_wait_idle_returns_after_cycle() -> None:
    processor = BlockingProcessor()
    cycle = PollCycle("content", [_feed("a")], processor)

    async def scenario() -> bool:
        task = asyncio.create_task(cycle.run())
        await processor.started.wait()
        waiter = asyncio.create_task(cycle.wait_idle())
        await asyncio.sleep(0)
        pending = not waiter.done()
        processor.release.set()
        await task
        await waiter
        return pending

    assert asyncio.run(scenario())
