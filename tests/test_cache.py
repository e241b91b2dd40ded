"""Tests for the booking cache policy and refresh coalescing."""

import json
import threading
import time

import pytest

from revsport_board.cache import BookingCache
from revsport_board.errors import NetworkError, UpstreamTimeout


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class CountingFetcher:
    """Stands in for BookingService.build_snapshot."""

    def __init__(self, snapshots):
        self.snapshots = list(snapshots)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        result = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
        if isinstance(result, Exception):
            raise result
        return result


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not met in time")


@pytest.fixture
def snapshot(make_snapshot):
    return make_snapshot(({"id": "1", "full_name": "1X - One", "display_name": "One"}, []))


@pytest.fixture
def newer_snapshot(make_snapshot):
    return make_snapshot(
        ({"id": "1", "full_name": "1X - One", "display_name": "One"}, []),
        ({"id": "2", "full_name": "2X - Two", "display_name": "Two"}, []),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_cache(clock):
    caches = []

    def _make(fetcher, ttl=600, export_path=None):
        cache = BookingCache(fetcher, ttl_seconds=ttl, export_path=export_path, clock=clock)
        caches.append(cache)
        return cache

    yield _make
    for cache in caches:
        cache.shutdown()


def test_first_read_fetches_and_then_serves_from_cache(make_cache, snapshot):
    fetcher = CountingFetcher([snapshot])
    cache = make_cache(fetcher)

    assert cache.get_bookings() is snapshot
    assert cache.get_bookings() is snapshot
    assert fetcher.calls == 1


def test_first_failure_propagates(make_cache):
    cache = make_cache(CountingFetcher([NetworkError("portal unreachable")]))

    with pytest.raises(NetworkError, match="portal unreachable"):
        cache.get_bookings()

    status = cache.get_cache_status()
    assert status.last_error == "NetworkError: portal unreachable"
    assert status.last_error_at is not None
    assert status.boats == 0
    assert status.refresh_in_flight is False


def test_concurrent_readers_share_one_refresh(make_cache, snapshot):
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow_fetch():
        calls.append(1)
        started.set()
        assert release.wait(5)
        return snapshot

    cache = make_cache(slow_fetch)
    results = []

    def reader():
        results.append(cache.get_bookings())

    threads = [threading.Thread(target=reader) for _ in range(5)]
    for thread in threads:
        thread.start()
    assert started.wait(5)
    assert cache.get_cache_status().refresh_in_flight is True
    release.set()
    for thread in threads:
        thread.join(5)

    assert len(calls) == 1
    assert len(results) == 5
    assert all(result is snapshot for result in results)


def test_forced_refresh_failure_serves_previous_snapshot(make_cache, snapshot):
    cache = make_cache(CountingFetcher([snapshot, UpstreamTimeout("slow portal")]))
    cache.get_bookings()
    fetched_at = cache.get_cache_status().fetched_at

    assert cache.get_bookings(force_refresh=True) is snapshot

    status = cache.get_cache_status()
    assert status.fetched_at == fetched_at
    assert status.last_error == "UpstreamTimeout: slow portal"


def test_forced_refresh_replaces_snapshot(make_cache, snapshot, newer_snapshot):
    fetcher = CountingFetcher([snapshot, newer_snapshot])
    cache = make_cache(fetcher)
    cache.get_bookings()

    assert cache.get_bookings(force_refresh=True) is newer_snapshot
    assert fetcher.calls == 2


def test_expired_snapshot_served_stale_while_refreshing(make_cache, clock, snapshot, newer_snapshot):
    release = threading.Event()
    responses = [snapshot, newer_snapshot]

    def fetch():
        result = responses.pop(0)
        if result is newer_snapshot:
            assert release.wait(5)
        return result

    cache = make_cache(fetch, ttl=60)
    cache.get_bookings()
    clock.advance(61)

    assert cache.get_bookings() is snapshot
    release.set()
    _wait_until(lambda: cache.get_cache_status().boats == 2)
    assert cache.get_bookings() is newer_snapshot


def test_status_reports_age_and_counts(make_cache, clock, newer_snapshot):
    cache = make_cache(CountingFetcher([newer_snapshot]), ttl=600)
    cache.get_bookings()
    clock.advance(42)

    status = cache.get_cache_status()

    assert status.age == 42.0
    assert status.ttl == 600
    assert status.boats == 2
    assert status.bookings == 0
    assert status.last_error is None


def test_clear_cache_forces_refetch(make_cache, snapshot):
    fetcher = CountingFetcher([snapshot])
    cache = make_cache(fetcher)
    cache.get_bookings()

    cache.clear_cache()

    assert cache.get_cache_status().age is None
    cache.get_bookings()
    assert fetcher.calls == 2


def test_fresh_snapshot_is_exported(make_cache, snapshot, tmp_path):
    target = tmp_path / "out" / "snapshot.json"
    cache = make_cache(CountingFetcher([snapshot]), export_path=target)

    cache.get_bookings()

    data = json.loads(target.read_text())
    assert data["metadata"]["totalBoats"] == 1
    assert data["boats"][0]["displayName"] == "One"


def test_export_keeps_backup_of_previous_file(make_cache, snapshot, newer_snapshot, tmp_path):
    target = tmp_path / "snapshot.json"
    cache = make_cache(CountingFetcher([snapshot, newer_snapshot]), export_path=target)

    cache.get_bookings()
    cache.get_bookings(force_refresh=True)

    backups = list(tmp_path.glob("snapshot.json.backup.*"))
    assert len(backups) == 1
    assert json.loads(backups[0].read_text())["metadata"]["totalBoats"] == 1
    assert json.loads(target.read_text())["metadata"]["totalBoats"] == 2
