"""Tests for the pricing scheduler lifecycle and reentrancy guard."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone

import pytest
import redis
from redis.exceptions import LockNotOwnedError

from tripwise.core.config import settings
from tripwise.core.errors import ConcurrentRunRejected, StorageFailure
from tripwise.engine.pricing import PricingConfig
from tripwise.main import build_pricing
from tripwise.services.batch_lock import RedisBatchLock
from tripwise.services.pricing_scheduler import PricingScheduler, describe_interval
from tripwise.services.pricing_service import PricingService

from conftest import FakeTripStore, GatedStore, make_pricing_trip


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_manual_run_is_rejected_while_a_batch_is_in_flight():
    store = GatedStore()
    scheduler = PricingScheduler(PricingService(store))
    results = []
    worker = threading.Thread(target=lambda: results.append(scheduler.run_manual_update()))
    worker.start()
    try:
        assert store.entered.wait(5)
        assert scheduler.is_running

        with pytest.raises(ConcurrentRunRejected):
            scheduler.run_manual_update()
        assert scheduler.tick() is None
        assert store.list_calls == 1
    finally:
        store.release.set()
        worker.join(5)

    assert len(results) == 1
    assert not scheduler.is_running
    scheduler.run_manual_update()
    assert store.list_calls == 2


def test_tick_absorbs_failures_and_manual_run_raises():
    store = FakeTripStore()
    store.list_error = StorageFailure("database unavailable")
    scheduler = PricingScheduler(PricingService(store))

    assert scheduler.tick() is None
    with pytest.raises(StorageFailure):
        scheduler.run_manual_update()
    assert not scheduler.is_running


def test_scheduler_instances_do_not_share_a_guard():
    gated = GatedStore()
    busy = PricingScheduler(PricingService(gated))
    other = PricingScheduler(PricingService(FakeTripStore()))
    worker = threading.Thread(target=busy.run_manual_update)
    worker.start()
    try:
        assert gated.entered.wait(5)
        assert other.run_manual_update().total_trips_processed == 0
    finally:
        gated.release.set()
        worker.join(5)


def test_start_runs_periodically_until_stopped():
    store = FakeTripStore()
    scheduler = PricingScheduler(PricingService(store), interval_seconds=0.05, initial_delay_seconds=0)

    scheduler.start()
    assert scheduler.is_started
    assert wait_for(lambda: store.list_calls >= 2)
    scheduler.stop(wait=True, timeout=5)

    calls = store.list_calls
    time.sleep(0.2)
    assert store.list_calls == calls
    assert not scheduler.is_started


def test_initial_delay_defers_the_first_run():
    store = FakeTripStore()
    scheduler = PricingScheduler(PricingService(store), interval_seconds=60, initial_delay_seconds=60)

    scheduler.start()
    time.sleep(0.1)
    assert store.list_calls == 0
    assert scheduler.get_status().next_run_at is not None
    scheduler.stop(wait=True, timeout=5)


def test_stop_is_idempotent():
    scheduler = PricingScheduler(PricingService(FakeTripStore()), interval_seconds=60)
    scheduler.stop()
    scheduler.start()
    scheduler.stop()
    scheduler.stop()
    assert not scheduler.is_started


def test_start_twice_keeps_one_timer():
    scheduler = PricingScheduler(PricingService(FakeTripStore()), interval_seconds=60, initial_delay_seconds=60)
    scheduler.start()
    first = scheduler._thread
    scheduler.start()
    assert scheduler._thread is first
    scheduler.stop(wait=True, timeout=5)


def test_non_positive_interval_is_rejected():
    with pytest.raises(ValueError):
        PricingScheduler(PricingService(FakeTripStore()), interval_seconds=0)


@pytest.mark.parametrize(
    "seconds, text",
    [(900, "Every 15 minutes"), (60, "Every minute"), (3600, "Every hour"), (7200, "Every 2 hours"),
     (45, "Every 45 seconds")],
)
def test_describe_interval(seconds, text):
    assert describe_interval(seconds) == text


def test_status_reports_idle_scheduler():
    status = PricingScheduler(PricingService(FakeTripStore())).get_status()

    assert status.is_running is False
    assert status.is_started is False
    assert status.next_run_description == "Every 15 minutes"
    assert status.next_run_at is None


def test_health_check_reflects_stats():
    now = datetime.now(timezone.utc)
    store = FakeTripStore([make_pricing_trip(id="t", hours_to_departure=2, booked=45, now=now)])
    scheduler = PricingScheduler(PricingService(store))

    scheduler.run_manual_update()
    health = scheduler.health_check()

    assert health.status == "Idle"
    assert health.active_trip_count == 1
    assert health.avg_adjustment == 50.0
    assert health.last_update is not None


def test_significant_changes_are_logged(caplog):
    now = datetime.now(timezone.utc)
    store = FakeTripStore([
        make_pricing_trip(id="big", hours_to_departure=2, booked=45, now=now),
        make_pricing_trip(id="flat", now=now),
    ])
    scheduler = PricingScheduler(PricingService(store, config=PricingConfig(peak_hours=())))

    with caplog.at_level(logging.INFO, logger="tripwise"):
        result = scheduler.run_manual_update()

    assert scheduler.last_result is result
    assert "1 trips with significant price changes (>10%)" in caplog.text
    assert "Trip big: +50%" in caplog.text


class FakeRedis:
    """Just enough of a redis server to hand out named locks shared by every client."""

    def __init__(self):
        self.held = {}
        self.mutex = threading.Lock()
        self.lock_calls = []

    def lock(self, name, timeout=None, blocking=True):
        self.lock_calls.append((name, timeout, blocking))
        return FakeRedisLock(self, name)


class FakeRedisLock:
    def __init__(self, server, name):
        self.server = server
        self.name = name
        self.token = object()

    def acquire(self, blocking=None):
        with self.server.mutex:
            if self.name in self.server.held:
                return False
            self.server.held[self.name] = self.token
            return True

    def release(self):
        with self.server.mutex:
            if self.server.held.get(self.name) is not self.token:
                raise LockNotOwnedError("Cannot release a lock that's no longer owned")
            del self.server.held[self.name]

    def locked(self):
        return self.name in self.server.held

    def expire(self):
        with self.server.mutex:
            self.server.held.pop(self.name, None)


def test_schedulers_sharing_a_redis_lock_exclude_each_other():
    server = FakeRedis()
    gated = GatedStore()
    api = PricingScheduler(PricingService(gated), guard=RedisBatchLock(server, "tripwise:pricing", 60))
    worker_store = FakeTripStore()
    worker = PricingScheduler(PricingService(worker_store), guard=RedisBatchLock(server, "tripwise:pricing", 60))

    runner = threading.Thread(target=api.run_manual_update)
    runner.start()
    try:
        assert gated.entered.wait(5)
        assert worker.is_running
        assert worker.tick() is None
        with pytest.raises(ConcurrentRunRejected):
            worker.run_manual_update()
        assert worker_store.list_calls == 0
    finally:
        gated.release.set()
        runner.join(5)

    assert not worker.is_running
    assert worker.tick().total_trips_processed == 0


def test_schedulers_sharing_a_thread_lock_exclude_each_other():
    guard = threading.Lock()
    gated = GatedStore()
    busy = PricingScheduler(PricingService(gated), guard=guard)
    other = PricingScheduler(PricingService(FakeTripStore()), guard=guard)

    runner = threading.Thread(target=busy.run_manual_update)
    runner.start()
    try:
        assert gated.entered.wait(5)
        assert other.get_status().is_running
        assert other.tick() is None
    finally:
        gated.release.set()
        runner.join(5)


def test_expired_batch_lock_is_logged_on_release(caplog):
    server = FakeRedis()
    guard = RedisBatchLock(server, "tripwise:pricing", 60)
    store = FakeTripStore()
    store.on_list = guard._lock.expire
    scheduler = PricingScheduler(PricingService(store), guard=guard)

    with caplog.at_level(logging.WARNING, logger="tripwise.services.batch_lock"):
        assert scheduler.run_manual_update().total_trips_processed == 0

    assert "expired before release" in caplog.text
    assert not scheduler.is_running
    assert scheduler.tick() is not None


def test_celery_backend_guards_batches_with_a_redis_lock(monkeypatch, session_factory):
    server = FakeRedis()
    urls = []

    def from_url(url, **kwargs):
        urls.append(url)
        return server

    monkeypatch.setattr(settings, "PRICING_SCHEDULER_BACKEND", "celery")
    monkeypatch.setattr(redis.Redis, "from_url", from_url)

    _, _, scheduler = build_pricing(session_factory)

    assert urls == [settings.REDIS_URL]
    assert server.lock_calls == [(settings.PRICING_LOCK_NAME, settings.PRICING_LOCK_TIMEOUT_SECONDS, False)]
    assert isinstance(scheduler._guard, RedisBatchLock)


def test_other_backends_keep_a_process_local_guard(monkeypatch, session_factory):
    monkeypatch.setattr(settings, "PRICING_SCHEDULER_BACKEND", "inprocess")
    _, _, scheduler = build_pricing(session_factory)
    assert not isinstance(scheduler._guard, RedisBatchLock)
