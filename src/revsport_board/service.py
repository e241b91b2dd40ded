"""Scrape orchestration: one boat list, then one calendar per boat.

BookingService produces a complete BookingSnapshot per call. It holds no
snapshot state of its own; the cache owns the current snapshot.
"""

import time
from datetime import datetime, timezone

from revsport_board.config import ScraperConfig
from revsport_board.errors import AuthError, ScrapingError, SessionExpired
from revsport_board.logging import get_logger, log_context
from revsport_board.models import Asset, BoatBookings, Booking, BookingSnapshot
from revsport_board.pages.bookings import BookingsPage
from revsport_board.pages.calendar import CalendarPage
from revsport_board.session import SessionManager

log = get_logger(__name__)


class BookingService:
    """Builds booking snapshots from the RevSport portal."""

    def __init__(self, session: SessionManager, config: ScraperConfig) -> None:
        self.session = session
        self.config = config
        self.bookings_page = BookingsPage(session)
        self.calendar_page = CalendarPage(session)

    def fetch_assets(self) -> list[Asset]:
        return self.bookings_page.fetch_assets()

    def fetch_boat_bookings(self, asset: Asset) -> list[Booking]:
        return self.calendar_page.fetch_bookings(asset.id)

    def build_snapshot(self) -> BookingSnapshot:
        """Scrape every boat's calendar and assemble a snapshot.

        Calendars are fetched sequentially with config.request_delay between
        requests. A boat whose calendar fails is kept with no bookings and
        listed in metadata.failed_boats. A failed re-login aborts the run,
        since every later request would fail the same way. A calendar that is
        still refused after a successful re-login only fails its own boat.

        Raises:
            AuthError: Login failed or the session could not be re-established.
            TransientError: The boat list could not be fetched.
        """
        started = time.monotonic()
        self.session.ensure_authenticated()
        assets = self.fetch_assets()

        boats: list[BoatBookings] = []
        failed: list[str] = []
        for index, asset in enumerate(assets):
            if index and self.config.request_delay > 0:
                time.sleep(self.config.request_delay)
            with log_context(boat_id=asset.id):
                try:
                    bookings = self.fetch_boat_bookings(asset)
                except SessionExpired as e:
                    # re-login worked but this calendar is still refused
                    log.warning("boat_calendar_forbidden", error=str(e))
                    failed.append(asset.id)
                    bookings = []
                except AuthError:
                    raise
                except ScrapingError as e:
                    log.warning(
                        "boat_calendar_failed",
                        boat=asset.display_name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    failed.append(asset.id)
                    bookings = []
            boats.append(
                BoatBookings(
                    **asset.model_dump(exclude={"needs_review"}), bookings=bookings
                )
            )

        snapshot = BookingSnapshot.assemble(
            boats, generated_at=datetime.now(timezone.utc), failed_boats=failed
        )
        log.info(
            "snapshot_built",
            boats=snapshot.metadata.total_boats,
            bookings=snapshot.metadata.total_bookings,
            failed_boats=len(failed),
            elapsed_seconds=round(time.monotonic() - started, 2),
        )
        return snapshot
