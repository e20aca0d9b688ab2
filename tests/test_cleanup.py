"""Tests for the stale unverified-account sweep and its background loop."""

import asyncio
import threading
import time
from datetime import timedelta

import pytest

from voyagevault.service.cleanup import CleanupScheduler


@pytest.fixture
def scheduler(store, clock):
    return CleanupScheduler(store, clock=clock)


def _create(store, email, clock, *, age, verified=False):
    return store.create_account(
        "Test", "User", email, verified=verified, created_at=clock.now - age
    )


class TestSweep:
    def test_deletes_only_stale_unverified_accounts(self, scheduler, store, clock):
        stale = _create(store, "stale@example.com", clock, age=timedelta(hours=25))
        fresh = _create(store, "fresh@example.com", clock, age=timedelta(hours=23))
        old_verified = _create(
            store, "kept@example.com", clock, age=timedelta(days=30), verified=True
        )

        deleted = scheduler.sweep()

        assert deleted == 1
        assert store.get_account(stale.id) is None
        assert store.get_account(fresh.id) is not None
        assert store.get_account(old_verified.id) is not None

    def test_deletes_codes_of_swept_accounts(self, scheduler, store, clock):
        _create(store, "stale@example.com", clock, age=timedelta(hours=25))
        _create(store, "fresh@example.com", clock, age=timedelta(hours=1))
        store.upsert_code("stale@example.com", "123456", clock.now + timedelta(minutes=5))
        store.upsert_code("fresh@example.com", "654321", clock.now + timedelta(minutes=5))

        scheduler.sweep()

        assert store.get_code("stale@example.com") is None
        assert store.get_code("fresh@example.com") is not None

    def test_explicit_now_overrides_clock(self, scheduler, store, clock):
        _create(store, "young@example.com", clock, age=timedelta(hours=1))

        assert scheduler.sweep(now=clock.now + timedelta(hours=24)) == 1

    def test_empty_store(self, scheduler):
        assert scheduler.sweep() == 0


class FailingStore:
    def delete_stale_unverified(self, cutoff):
        raise RuntimeError("database unavailable")


class SlowStore:
    """Records the peak number of sweeps running at once."""

    def __init__(self):
        self.active = 0
        self.peak = 0
        self.calls = 0
        self._lock = threading.Lock()

    def delete_stale_unverified(self, cutoff):
        with self._lock:
            self.active += 1
            self.calls += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.05)
        with self._lock:
            self.active -= 1
        return []


class TestRunOnce:
    async def test_returns_deleted_count(self, scheduler, store, clock):
        _create(store, "stale@example.com", clock, age=timedelta(days=2))

        assert await scheduler.run_once() == 1

    async def test_failure_is_logged_and_swallowed(self, clock):
        scheduler = CleanupScheduler(FailingStore(), clock=clock)

        assert await scheduler.run_once() is None

    async def test_runs_are_serialized(self, clock):
        slow = SlowStore()
        scheduler = CleanupScheduler(slow, clock=clock)

        await asyncio.gather(scheduler.run_once(), scheduler.run_once(), scheduler.run_once())

        assert slow.calls == 3
        assert slow.peak == 1


class TestBackgroundLoop:
    async def test_start_sweeps_and_stop_cancels(self, store, clock):
        _create(store, "stale@example.com", clock, age=timedelta(days=2))
        scheduler = CleanupScheduler(store, interval=timedelta(hours=24), clock=clock)

        scheduler.start()
        assert scheduler.running
        for _ in range(200):
            if not store.accounts:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert store.accounts == {}
        assert not scheduler.running

    async def test_start_is_idempotent(self, store, clock):
        scheduler = CleanupScheduler(store, clock=clock)

        scheduler.start()
        task = scheduler._task
        scheduler.start()
        assert scheduler._task is task
        await scheduler.stop()

    async def test_stop_without_start(self, scheduler):
        await scheduler.stop()
        assert not scheduler.running
