"""Pytest configuration and shared fixtures.

HTML fixtures mirror the RevSport markup the parsers rely on. The `portal`
fixture registers the upstream routes on requests-mock.
"""

from datetime import datetime, timezone

import pytest

from revsport_board.config import ScraperConfig
from revsport_board.models import Asset, BoatBookings, Booking, BookingSnapshot
from revsport_board.session import SessionManager

BASE_URL = "https://club.example.com"

LOGIN_PAGE = """
<html>
<head><meta name="csrf-token" content="meta-token-should-not-win"></head>
<body>
  <form method="POST" action="https://club.example.com/login">
    <input type="hidden" name="_token" value="abc123">
    <input type="email" name="email" id="email" placeholder="Email address">
    <input type="password" name="password" id="password">
    <input type="checkbox" name="remember">
    <button type="submit">Login</button>
  </form>
</body>
</html>
"""

BOOKINGS_PAGE = """
<html>
<body>
  <nav><a href="/account">Account</a> <a href="https://club.example.com/logout">Logout</a></nav>
  <div class="card card-hover">
    <div class="card-body d-flex">
      <div class="mr-3">1X - Test Boat 70 KG (Nickname)</div>
      <a class="btn" href="/bookings/calendar/1234">Calendar</a>
    </div>
  </div>
</body>
</html>
"""


@pytest.fixture
def config():
    """Configuration pointing at the mocked portal with no delays."""
    return ScraperConfig(
        _env_file=None,
        base_url=BASE_URL,
        username="rower@example.com",
        password="hunter2",
        request_timeout=5,
        request_delay=0,
        login_settle_delay=0,
        session_state_file=None,
        cache_ttl_seconds=600,
        warm_cache_on_startup=False,
    )


@pytest.fixture
def session_manager(config):
    return SessionManager(config)


@pytest.fixture
def card_html():
    """Build one /bookings boat card."""

    def _card(name: str, href: str | None = "/bookings/calendar/1") -> str:
        link = f'<a href="{href}">Calendar</a>' if href is not None else ""
        return (
            '<div class="card card-hover"><div class="card-body">'
            f'<div class="mr-3">{name}</div>{link}</div></div>'
        )

    return _card


@pytest.fixture
def calendar_html():
    """Build a FullCalendar week grid from {date: [(time_text, title_text), ...]}."""

    def _calendar(columns: dict[str, list[tuple[str, str]]]) -> str:
        cells = []
        for day, events in columns.items():
            harnesses = "".join(
                '<div class="fc-timegrid-event-harness">'
                '<a class="fc-timegrid-event fc-v-event"><div class="fc-event-main">'
                f'<div class="fc-event-time">{time_text}</div>'
                f'<div class="fc-event-title">{title}</div>'
                "</div></a></div>"
                for time_text, title in events
            )
            cells.append(
                f'<td class="fc-timegrid-col fc-day" data-date="{day}">'
                f'<div class="fc-timegrid-col-events">{harnesses}</div></td>'
            )
        return f"<html><body><table><tr>{''.join(cells)}</tr></table></body></html>"

    return _calendar


@pytest.fixture
def portal(requests_mock, session_manager):
    """Register /login (GET+POST) and /bookings on requests-mock.

    The POST handler plays the server setting a session cookie; tests can
    re-register any route to change the portal's behaviour.
    """

    def _login_post(request, context):
        session_manager.http.cookies.set(
            "laravel_session", "s3ss10n", domain="club.example.com", path="/"
        )
        context.status_code = 200
        return "<html><body>Welcome back</body></html>"

    requests_mock.get(f"{BASE_URL}/login", text=LOGIN_PAGE)
    requests_mock.post(f"{BASE_URL}/login", text=_login_post)
    requests_mock.get(f"{BASE_URL}/bookings", text=BOOKINGS_PAGE)
    return requests_mock


@pytest.fixture
def make_snapshot():
    """Build a BookingSnapshot from (asset kwargs, bookings) pairs."""

    def _snapshot(*boats: tuple[dict, list[Booking]], generated_at: datetime | None = None):
        assembled = []
        for fields, bookings in boats:
            asset = Asset(**fields)
            assembled.append(
                BoatBookings(**asset.model_dump(exclude={"needs_review"}), bookings=bookings)
            )
        return BookingSnapshot.assemble(
            assembled, generated_at=generated_at or datetime.now(timezone.utc)
        )

    return _snapshot
