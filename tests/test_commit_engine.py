from __future__ import annotations

import asyncio

import pytest

from castwatch.adapters.memory_storage import InMemoryStorage
from castwatch.core.commit import CommitEngine, CommitResult
from castwatch.core.errors import StoreError
from castwatch.core.models import LifecycleState, NotificationKind


class SlowNonAtomicStorage(InMemoryStorage):
    """Yields between the existence check and the write to expose races."""

    def __init__(self) -> None:
        super().__init__(atomic_create=False)
        self.writes = 0

    async def marker_exists(self, item_id, kind) -> bool:
        exists = await super().marker_exists(item_id, kind)
        await asyncio.sleep(0)
        return exists

    async def create_marker_if_absent(self, marker) -> bool:
        await asyncio.sleep(0)
        self.writes += 1
        # A plain overwrite: without the engine's lock this would double-create.
        self.markers[marker.key] = marker
        return True


class FailingStorage(InMemoryStorage):
    async def create_marker_if_absent(self, marker) -> bool:
        raise StoreError("disk full")


def _commit(engine: CommitEngine, item_id: str = "v1", kind=NotificationKind.INITIAL):
    return engine.commit(item_id, kind, "channel", LifecycleState.LIVE)


def test_commit_creates_then_reports_existing() -> None:
    storage = InMemoryStorage()
    engine = CommitEngine(storage)

    async def scenario():
        return await _commit(engine), await _commit(engine)

    first, second = asyncio.run(scenario())

    assert first is CommitResult.CREATED
    assert second is CommitResult.ALREADY_EXISTS
    assert list(storage.markers) == ["v1"]
    assert storage.markers["v1"].kind is NotificationKind.INITIAL


def test_initial_and_status_change_markers_coexist() -> None:
    storage = InMemoryStorage()
    engine = CommitEngine(storage)

    async def scenario():
        await _commit(engine, kind=NotificationKind.INITIAL)
        return await _commit(engine, kind=NotificationKind.STATUS_CHANGE)

    assert asyncio.run(scenario()) is CommitResult.CREATED
    assert set(storage.markers) == {"v1", "v1_live_status_change"}


@pytest.mark.parametrize("atomic", [True, False])
def test_concurrent_commits_create_one_marker(atomic: bool) -> None:
    storage = InMemoryStorage(atomic_create=atomic)
    engine = CommitEngine(storage)

    async def scenario():
        return await asyncio.gather(*(_commit(engine) for _ in range(5)))

    results = asyncio.run(scenario())

    assert results.count(CommitResult.CREATED) == 1
    assert results.count(CommitResult.ALREADY_EXISTS) == 4


def test_fallback_lock_serialises_read_check_write() -> None:
    storage = SlowNonAtomicStorage()
    engine = CommitEngine(storage)

    async def scenario():
        return await asyncio.gather(*(_commit(engine) for _ in range(3)))

    results = asyncio.run(scenario())

    assert storage.writes == 1
    assert results.count(CommitResult.CREATED) == 1


def test_store_failure_propagates() -> None:
    engine = CommitEngine(FailingStorage())

    with pytest.raises(StoreError):
        asyncio.run(_commit(engine))


def test_fallback_locks_are_released_after_commits() -> None:
    storage = SlowNonAtomicStorage()
    engine = CommitEngine(storage)

    async def scenario():
        await asyncio.gather(*(_commit(engine, item_id=f"v{n % 3}") for n in range(9)))

    asyncio.run(scenario())

    assert storage.writes == 3
    assert engine._locks == {}
    assert engine._lock_users == {}
