"""Tests for snapshot assembly across the boat list and calendars."""

from datetime import date

import pytest
import requests

from conftest import BASE_URL
from revsport_board.errors import AuthError, NetworkError
from revsport_board.service import BookingService


@pytest.fixture
def service(session_manager, config):
    return BookingService(session_manager, config)


@pytest.fixture
def two_boat_portal(portal, card_html):
    page = (
        '<html><body><a href="/logout">Logout</a>'
        + card_html("1X - Single 70 KG", href="/bookings/calendar/1")
        + card_html("2X RACER - Double", href="/bookings/calendar/2")
        + "</body></html>"
    )
    portal.get(f"{BASE_URL}/bookings", text=page)
    return portal


def test_build_snapshot(two_boat_portal, service, calendar_html):
    two_boat_portal.get(
        f"{BASE_URL}/bookings/calendar/1",
        text=calendar_html(
            {
                "2024-03-04": [("06:30 - 07:30", "Booked by Jane Doe")],
                "2024-03-05": [("07:00 - 08:00", "Booked by John Roe")],
            }
        ),
    )
    two_boat_portal.get(
        f"{BASE_URL}/bookings/calendar/2",
        text=calendar_html({"2024-03-04": []}),
    )

    snapshot = service.build_snapshot()

    assert [boat.id for boat in snapshot.boats] == ["1", "2"]
    assert [b.member_name for b in snapshot.boats[0].bookings] == ["Jane Doe", "John Roe"]
    assert snapshot.boats[0].bookings[0].date == date(2024, 3, 4)
    assert snapshot.boats[1].bookings == []
    assert snapshot.metadata.total_boats == 2
    assert snapshot.metadata.total_bookings == 2
    assert snapshot.metadata.failed_boats == []


def test_failed_calendar_keeps_boat_without_bookings(two_boat_portal, service, calendar_html):
    two_boat_portal.get(f"{BASE_URL}/bookings/calendar/1", status_code=500)
    two_boat_portal.get(
        f"{BASE_URL}/bookings/calendar/2",
        text=calendar_html({"2024-03-04": [("06:00 - 07:00", "Booked by A")]}),
    )

    snapshot = service.build_snapshot()

    assert [boat.id for boat in snapshot.boats] == ["1", "2"]
    assert snapshot.boats[0].bookings == []
    assert len(snapshot.boats[1].bookings) == 1
    assert snapshot.metadata.failed_boats == ["1"]
    assert snapshot.metadata.total_bookings == 1


def test_calendar_refused_after_relogin_fails_only_that_boat(two_boat_portal, service, calendar_html):
    two_boat_portal.get(f"{BASE_URL}/bookings/calendar/1", status_code=403, text="Forbidden")
    two_boat_portal.get(
        f"{BASE_URL}/bookings/calendar/2",
        text=calendar_html({"2024-03-04": [("06:00 - 07:00", "Booked by A")]}),
    )

    snapshot = service.build_snapshot()

    assert [boat.id for boat in snapshot.boats] == ["1", "2"]
    assert snapshot.boats[0].bookings == []
    assert [b.member_name for b in snapshot.boats[1].bookings] == ["A"]
    assert snapshot.metadata.failed_boats == ["1"]
    calendar_gets = [r for r in two_boat_portal.request_history if r.path == "/bookings/calendar/1"]
    assert len(calendar_gets) == 2


def test_boat_list_failure_aborts(portal, service):
    portal.get(
        f"{BASE_URL}/bookings",
        [
            {"text": '<a href="/logout">Logout</a>'},
            {"exc": requests.exceptions.ConnectionError("boat list down")},
        ],
    )

    with pytest.raises(NetworkError):
        service.build_snapshot()


def test_failed_relogin_aborts_snapshot(portal, service, card_html):
    boat_list = (
        '<html><body><a href="/logout">Logout</a>'
        + card_html("1X - Single", href="/bookings/calendar/1")
        + card_html("2X - Double", href="/bookings/calendar/2")
        + "</body></html>"
    )
    portal.get(
        f"{BASE_URL}/bookings",
        [
            {"text": boat_list},
            {"text": boat_list},
            {"text": '<form method="POST" action="/login"><input name="password"></form>'},
        ],
    )
    portal.get(f"{BASE_URL}/bookings/calendar/1", status_code=403, text="Forbidden")
    portal.get(f"{BASE_URL}/bookings/calendar/2", text="<html></html>")

    with pytest.raises(AuthError):
        service.build_snapshot()

    assert portal.request_history[-1].path == "/bookings"
