"""RevSport booking board.

Scrapes boat and booking-calendar data from a RevolutioniseSport club portal,
caches the assembled snapshot and serves it to kiosk displays.
"""

__version__ = "0.1.0"

from revsport_board.models import Asset, Booking, BookingSnapshot
from revsport_board.pages.bookings import parse_assets, parse_boat_name
from revsport_board.pages.calendar import parse_bookings

__all__ = [
    "Asset",
    "Booking",
    "BookingSnapshot",
    "parse_assets",
    "parse_boat_name",
    "parse_bookings",
]
