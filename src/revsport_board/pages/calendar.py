"""CalendarPage - extracts one boat's bookings from /bookings/calendar/{id}.

The page embeds a FullCalendar week grid rendered server-side:
  td.fc-timegrid-col[data-date="2024-03-04"]   one column per day
    .fc-timegrid-event-harness
      .fc-timegrid-event
        .fc-event-time  -> "06:30 - 07:30"
        .fc-event-title -> "Booked by Jane Doe"
"""

import re
from datetime import date

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from revsport_board.errors import ParseError
from revsport_board.logging import get_logger
from revsport_board.models import Booking
from revsport_board.session import SessionManager

log = get_logger(__name__)

TIME_RANGE_RE = re.compile(r"(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})")
OWNER_MARKER_RE = re.compile(r"^\s*Booked by\s*", re.I)


class CalendarPage:
    """Per-boat booking calendar at /bookings/calendar/{boat_id}."""

    URL_PATH = "/bookings/calendar/{boat_id}"

    DAY_COLUMN = "td.fc-timegrid-col[data-date]"
    EVENT = ".fc-timegrid-event-harness .fc-timegrid-event"
    EVENT_TIME = ".fc-event-time"
    EVENT_TITLE = ".fc-event-title"

    def __init__(self, session: SessionManager) -> None:
        self.session = session

    def fetch_bookings(self, boat_id: str) -> list[Booking]:
        html = self.session.get(self.URL_PATH.format(boat_id=boat_id))
        bookings = parse_bookings(html, boat_id)
        log.debug("calendar_fetched", boat_id=boat_id, bookings=len(bookings))
        return bookings


def _parse_time_range(text: str) -> tuple[str, str]:
    """Parse "6:30 - 07:30" into ("06:30", "07:30")."""
    match = TIME_RANGE_RE.search(text)
    if not match:
        raise ParseError(f"unparsable time range {text!r}")
    start_h, start_m, end_h, end_m = match.groups()
    return f"{int(start_h):02d}:{start_m}", f"{int(end_h):02d}:{end_m}"


def _parse_event(event: Tag, day: date, boat_id: str) -> Booking:
    time_element = event.select_one(CalendarPage.EVENT_TIME)
    time_text = time_element.get_text(" ").strip() if time_element else ""
    if not time_text:
        raise ParseError("no time text")
    start_time, end_time = _parse_time_range(time_text)

    title_element = event.select_one(CalendarPage.EVENT_TITLE)
    title = " ".join(title_element.get_text(" ").split()) if title_element else ""
    member_name = OWNER_MARKER_RE.sub("", title).strip()
    if not member_name:
        raise ParseError(f"no member name for {start_time}-{end_time}")

    return Booking(
        date=day,
        start_time=start_time,
        end_time=end_time,
        member_name=member_name,
        boat_id=boat_id,
    )


def parse_bookings(html: str, boat_id: str) -> list[Booking]:
    """Parse every booking event on a boat's calendar page.

    Events with an unreadable time range, an invalid date or no member name
    are skipped with a warning; the rest of the page is kept.

    Returns:
        Bookings sorted by date then start time.
    """
    soup = BeautifulSoup(html, "html.parser")
    bookings: list[Booking] = []

    for column in soup.select(CalendarPage.DAY_COLUMN):
        date_attr = (column.get("data-date") or "").strip()
        try:
            day = date.fromisoformat(date_attr)
        except ValueError:
            log.warning("calendar_column_bad_date", boat_id=boat_id, date=date_attr)
            continue

        for event in column.select(CalendarPage.EVENT):
            try:
                bookings.append(_parse_event(event, day, boat_id))
            except ParseError as e:
                log.warning(
                    "booking_event_skipped",
                    boat_id=boat_id,
                    date=date_attr,
                    reason=str(e),
                )
            except ValidationError as e:
                log.warning(
                    "booking_event_invalid",
                    boat_id=boat_id,
                    date=date_attr,
                    errors=e.error_count(),
                )

    bookings.sort(key=lambda b: (b.date, b.start_time))
    return bookings
