"""Booking snapshot cache with request coalescing.

Policy:
  - fresh snapshot: served as is
  - no snapshot yet: callers wait for the refresh; a failure propagates
  - expired snapshot: served stale while a background refresh runs
  - forced refresh: callers wait; on failure the previous snapshot is served
At most one refresh runs at a time. Every caller that arrives while it runs
shares its Future instead of starting another scrape of the upstream site.
"""

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from revsport_board.logging import get_logger
from revsport_board.models import BookingSnapshot, CacheStatus
from revsport_board.utils import export_snapshot

log = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    snapshot: BookingSnapshot
    fetched_at: datetime  # wall clock, reported to clients
    stored_at: float  # monotonic, used for TTL checks


class BookingCache:
    """Holds the current BookingSnapshot and refreshes it on demand."""

    def __init__(
        self,
        fetch_snapshot: Callable[[], BookingSnapshot],
        ttl_seconds: int,
        export_path: str | Path | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache (empty until the first refresh succeeds).

        Args:
            fetch_snapshot: Builds a fresh snapshot, e.g. BookingService.build_snapshot.
            ttl_seconds: Age after which a snapshot is refreshed.
            export_path: Optional JSON file each fresh snapshot is written to.
            clock: Monotonic clock (tests substitute a fake).
        """
        self._fetch_snapshot = fetch_snapshot
        self.ttl = ttl_seconds
        self.export_path = export_path
        self._clock = clock

        self._lock = threading.Lock()
        self._entry: CacheEntry | None = None
        self._inflight: Future | None = None
        self._last_error: str | None = None
        self._last_error_at: datetime | None = None
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="booking-refresh"
        )

    def get_bookings(self, force_refresh: bool = False) -> BookingSnapshot:
        """Return the current snapshot, refreshing it per the cache policy.

        Raises:
            Exception: Whatever the refresh raised, but only when no snapshot
                has ever been produced.
        """
        with self._lock:
            entry = self._entry
            if entry is not None and not force_refresh and not self._expired(entry):
                return entry.snapshot
            future = self._start_refresh_locked()
            if entry is not None and not force_refresh:
                log.debug("cache_serving_stale", age=round(self._age(entry), 1))
                return entry.snapshot

        try:
            return future.result()
        except Exception:
            with self._lock:
                entry = self._entry
            if entry is None:
                raise
            log.warning(
                "cache_serving_previous_snapshot",
                fetched_at=entry.fetched_at.isoformat(),
            )
            return entry.snapshot

    def refresh_in_background(self) -> Future:
        """Start (or join) a refresh without waiting for it."""
        with self._lock:
            return self._start_refresh_locked()

    def get_cache_status(self) -> CacheStatus:
        with self._lock:
            entry = self._entry
            status = CacheStatus(
                ttl=self.ttl,
                refresh_in_flight=self._inflight is not None,
                last_error=self._last_error,
                last_error_at=self._last_error_at,
            )
        if entry is not None:
            meta = entry.snapshot.metadata
            status.age = round(self._age(entry), 1)
            status.boats = meta.total_boats
            status.bookings = meta.total_bookings
            status.fetched_at = entry.fetched_at
        return status

    def clear_cache(self) -> None:
        """Drop the current snapshot; the next read triggers a refresh."""
        with self._lock:
            self._entry = None
        log.info("cache_cleared")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _expired(self, entry: CacheEntry) -> bool:
        return self._age(entry) >= self.ttl

    def _age(self, entry: CacheEntry) -> float:
        return self._clock() - entry.stored_at

    def _start_refresh_locked(self) -> Future:
        # caller holds self._lock
        if self._inflight is None:
            self._inflight = self._executor.submit(self._refresh)
            log.info("cache_refresh_started")
        return self._inflight

    def _refresh(self) -> BookingSnapshot:
        try:
            snapshot = self._fetch_snapshot()
        except Exception as e:
            with self._lock:
                self._last_error = f"{type(e).__name__}: {e}"
                self._last_error_at = datetime.now(timezone.utc)
                self._inflight = None
                has_snapshot = self._entry is not None
            log.error(
                "cache_refresh_failed",
                error=str(e),
                error_type=type(e).__name__,
                serving_stale=has_snapshot,
            )
            raise

        entry = CacheEntry(
            snapshot=snapshot,
            fetched_at=datetime.now(timezone.utc),
            stored_at=self._clock(),
        )
        with self._lock:
            self._entry = entry
            self._last_error = None
            self._last_error_at = None
            self._inflight = None
        log.info(
            "cache_refreshed",
            boats=snapshot.metadata.total_boats,
            bookings=snapshot.metadata.total_bookings,
        )

        if self.export_path:
            try:
                export_snapshot(snapshot, self.export_path)
            except OSError as e:
                log.warning("snapshot_export_failed", path=str(self.export_path), error=str(e))
        return snapshot
