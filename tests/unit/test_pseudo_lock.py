"""
Unit Tests for the blob-store pseudo-lock
"""

import asyncio
import logging

import pytest

from quorum_agent.coordination.pseudo_lock import LockMarker, LockStatus, PseudoLock
from quorum_agent.storage.memory import InMemoryBlobStore
from quorum_agent.utils.error_handling import LockTimeoutError

BUCKET = "locks"
PREFIX = "cluster/lock"
POLLING_MS = 50
SETTLING_MS = 10


def make_lock(store, host, **kwargs):
    options = dict(timeout_ms=2000, polling_ms=POLLING_MS, settling_ms=SETTLING_MS)
    options.update(kwargs)
    return PseudoLock(store, BUCKET, PREFIX, host, **options)


class TestLockMarker:
    """Test marker key layout."""

    def test_build_and_parse(self):
        marker = LockMarker.build(PREFIX, "_", "host-a", 1234, "abc123")

        assert marker.key == "cluster/lock_000000000001234_host-a_abc123"
        assert LockMarker.parse(marker.key, PREFIX, "_") == marker

    def test_host_containing_separator(self):
        marker = LockMarker.build(PREFIX, "_", "my_host", 99, "ffff")

        parsed = LockMarker.parse(marker.key, PREFIX, "_")

        assert parsed.host == "my_host"
        assert parsed.suffix == "ffff"
        assert parsed.created_ms == 99

    def test_slash_in_host_is_replaced(self):
        marker = LockMarker.build(PREFIX, "_", "rack/host_1", 5, "beef")

        assert marker.host == "rack-host_1"
        assert "/" not in marker.key[len(PREFIX) :]
        assert LockMarker.parse(marker.key, PREFIX, "_").host == "rack-host_1"

    @pytest.mark.parametrize(
        "key",
        ["other/prefix_1_h_s", "cluster/lock_notanumber_h_s", "cluster/lock_1_s", "cluster/lock_"],
    )
    def test_unparsable_keys(self, key):
        assert LockMarker.parse(key, PREFIX, "_") is None

    def test_sort_order(self):
        early = LockMarker.build(PREFIX, "_", "b", 10, "zz")
        tie_low = LockMarker.build(PREFIX, "_", "a", 20, "aa")
        tie_high = LockMarker.build(PREFIX, "_", "c", 20, "bb")

        ordered = sorted([tie_high, early, tie_low], key=lambda marker: marker.sort_key)

        assert ordered == [early, tie_low, tie_high]


class TestPseudoLockRounds:
    """Test single election rounds."""

    @pytest.mark.asyncio
    async def test_uncontended_round_holds(self):
        store = InMemoryBlobStore()
        lock = make_lock(store, "host-a")

        result = await lock.try_acquire_once()

        assert result.status == LockStatus.HELD
        assert result.held
        assert lock.is_held(result.handle)
        assert store.keys(BUCKET) == [result.handle.marker.key]

    @pytest.mark.asyncio
    async def test_losing_round_removes_own_marker(self):
        store = InMemoryBlobStore()
        holder = make_lock(store, "host-a")
        contender = make_lock(store, "host-b")

        held = await holder.try_acquire_once()
        result = await contender.try_acquire_once()

        assert result.status == LockStatus.CONFLICT
        assert result.holder.key == held.handle.marker.key
        assert store.keys(BUCKET) == [held.handle.marker.key]

    @pytest.mark.asyncio
    async def test_invisible_own_marker_is_a_conflict(self, caplog):
        store = InMemoryBlobStore(list_delay=1.0)
        lock = make_lock(store, "host-a")

        with caplog.at_level(logging.WARNING):
            result = await lock.try_acquire_once()

        assert result.status == LockStatus.CONFLICT
        assert store.keys(BUCKET) == []
        assert "not visible after settling" in caplog.text

    @pytest.mark.asyncio
    async def test_unrecognized_keys_do_not_block(self):
        store = InMemoryBlobStore()
        await store.put_object(BUCKET, f"{PREFIX}_garbage", b"x")
        lock = make_lock(store, "host-a")

        result = await lock.try_acquire_once()

        assert result.held

    @pytest.mark.asyncio
    async def test_stale_marker_is_reported_not_removed(self, caplog):
        store = InMemoryBlobStore()
        stale = LockMarker.build(PREFIX, "_", "crashed-host", 1000, "dead")
        await store.put_object(BUCKET, stale.key, b"crashed-host")
        lock = make_lock(store, "host-a", stale_warning_ms=60_000)

        with caplog.at_level(logging.WARNING):
            result = await lock.try_acquire_once()

        assert result.status == LockStatus.CONFLICT
        assert result.holder == stale
        assert stale.key in store.keys(BUCKET)
        assert "crashed-host" in caplog.text
        assert "removed manually" in caplog.text

    @pytest.mark.asyncio
    async def test_cancelled_round_removes_marker(self):
        store = InMemoryBlobStore()
        lock = make_lock(store, "host-a", settling_ms=5000)

        task = asyncio.create_task(lock.try_acquire_once())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert store.keys(BUCKET) == []


class TestPseudoLockAcquire:
    """Test acquisition with timeouts and mutual exclusion."""

    @pytest.mark.asyncio
    async def test_acquire_and_release(self):
        store = InMemoryBlobStore()
        lock = make_lock(store, "host-a")

        handle = await lock.acquire()
        await lock.release(handle)

        assert not lock.is_held(handle)
        assert store.keys(BUCKET) == []

    @pytest.mark.asyncio
    async def test_double_release_is_a_logged_no_op(self, caplog):
        store = InMemoryBlobStore()
        lock = make_lock(store, "host-a")
        handle = await lock.acquire()
        await lock.release(handle)

        with caplog.at_level(logging.WARNING):
            await lock.release(handle)

        assert store.delete_count == 1
        assert "not held" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout_bounds(self):
        store = InMemoryBlobStore()
        holder = make_lock(store, "host-a")
        contender = make_lock(store, "host-b")
        await holder.acquire()
        timeout = 0.3
        loop = asyncio.get_running_loop()

        start = loop.time()
        with pytest.raises(LockTimeoutError) as excinfo:
            await contender.acquire(timeout=timeout)
        elapsed = loop.time() - start

        assert elapsed >= timeout
        assert elapsed < timeout + POLLING_MS / 1000
        assert excinfo.value.timeout_ms == 300
        assert excinfo.value.attempts >= 2

    @pytest.mark.asyncio
    async def test_timeout_bounds_when_settling_exceeds_polling(self):
        store = InMemoryBlobStore()
        await make_lock(store, "host-a", polling_ms=50, settling_ms=100).acquire()
        contender = make_lock(store, "host-b", polling_ms=50, settling_ms=100)
        timeout = 0.32
        loop = asyncio.get_running_loop()

        start = loop.time()
        with pytest.raises(LockTimeoutError):
            await contender.acquire(timeout=timeout)
        elapsed = loop.time() - start

        assert elapsed >= timeout
        assert elapsed < timeout + 0.05
        assert all("host-a" in key for key in store.keys(BUCKET))

    @pytest.mark.asyncio
    async def test_try_acquire_reports_timeout(self):
        store = InMemoryBlobStore()
        holder = make_lock(store, "host-a")
        await holder.acquire()

        result = await make_lock(store, "host-b").try_acquire(timeout=0.1)

        assert result.status == LockStatus.TIMED_OUT
        assert result.handle is None
        assert result.holder.host == "host-a"
        assert result.elapsed >= 0.1

    @pytest.mark.asyncio
    async def test_waiter_proceeds_after_release(self):
        store = InMemoryBlobStore()
        holder = make_lock(store, "host-a")
        handle = await holder.acquire()

        waiter = asyncio.create_task(make_lock(store, "host-b").acquire(timeout=2))
        await asyncio.sleep(0.12)
        assert not waiter.done()

        await holder.release(handle)
        waiter_handle = await waiter

        assert waiter_handle.marker.host == "host-b"

    @pytest.mark.asyncio
    async def test_mutual_exclusion(self):
        store = InMemoryBlobStore()
        active = 0
        max_active = 0
        order = []

        async def contender(index):
            nonlocal active, max_active
            lock = make_lock(store, f"host-{index}")
            async with lock.hold(timeout=10):
                active += 1
                max_active = max(max_active, active)
                order.append(index)
                await asyncio.sleep(0.02)
                active -= 1

        await asyncio.gather(*(contender(index) for index in range(5)))

        assert max_active == 1
        assert sorted(order) == list(range(5))
        assert store.keys(BUCKET) == []

    @pytest.mark.asyncio
    async def test_hold_releases_on_error(self):
        store = InMemoryBlobStore()
        lock = make_lock(store, "host-a")

        with pytest.raises(RuntimeError):
            async with lock.hold():
                raise RuntimeError("boom")

        assert store.keys(BUCKET) == []

    def test_invalid_separator(self):
        with pytest.raises(ValueError):
            PseudoLock(InMemoryBlobStore(), BUCKET, PREFIX, "host-a", separator="--")
