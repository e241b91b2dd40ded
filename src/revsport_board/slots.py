"""Session-slot bucketing and the multi-day booking board.

A booking belongs to every configured slot its interval overlaps, so a
07:30-08:30 booking shows up in both a 06:00-08:00 and an 08:00-10:00 slot.
Intervals that only touch (08:00-09:00 vs 06:00-08:00) do not overlap.
"""

from datetime import date, datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from revsport_board.config import SessionSlot
from revsport_board.models import Asset, BoatType, Booking, BookingSnapshot


def to_minutes(hhmm: str) -> int:
    """Minutes since midnight for an "HH:MM" string."""
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def overlaps(booking: Booking, slot: SessionSlot) -> bool:
    """True if the booking's interval intersects the slot's interval."""
    return to_minutes(booking.start_time) < to_minutes(slot.end_time) and to_minutes(
        booking.end_time
    ) > to_minutes(slot.start_time)


def slots_for_booking(booking: Booking, slots: list[SessionSlot]) -> list[str]:
    """Keys of every slot the booking overlaps, in configured order."""
    return [slot.key for slot in slots if overlaps(booking, slot)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlotBooking(_CamelModel):
    member_name: str
    start_time: str
    end_time: str

    @classmethod
    def from_booking(cls, booking: Booking) -> "SlotBooking":
        return cls(
            member_name=booking.member_name,
            start_time=booking.start_time,
            end_time=booking.end_time,
        )


class BoardCell(_CamelModel):
    """One boat on one day: bookings per slot, plus bookings outside every slot."""

    date: date
    slots: dict[str, list[SlotBooking]]
    unslotted: list[SlotBooking] = Field(default_factory=list)


class BoardRow(_CamelModel):
    boat: Asset
    days: list[BoardCell]


class Board(_CamelModel):
    start: date
    dates: list[date]
    sessions: list[SessionSlot]
    rows: list[BoardRow]
    generated_at: datetime


def build_board(
    snapshot: BookingSnapshot,
    slots: list[SessionSlot],
    start: date,
    days: int,
    booked_only: bool = True,
) -> Board:
    """Lay out a snapshot as the display grid: classified boats x days x slots.

    Boats of Unknown type are left off the board (they stay in the raw
    snapshot). With booked_only, boats without any booking in the window are
    omitted too.
    """
    dates = [start + timedelta(days=offset) for offset in range(days)]
    window = set(dates)

    rows: list[BoardRow] = []
    for boat in snapshot.boats:
        if boat.type is BoatType.UNKNOWN:
            continue
        in_window = [b for b in boat.bookings if b.date in window]
        if booked_only and not in_window:
            continue

        cells: list[BoardCell] = []
        for day in dates:
            cell = BoardCell(date=day, slots={slot.key: [] for slot in slots})
            for booking in (b for b in in_window if b.date == day):
                keys = slots_for_booking(booking, slots)
                if not keys:
                    cell.unslotted.append(SlotBooking.from_booking(booking))
                for key in keys:
                    cell.slots[key].append(SlotBooking.from_booking(booking))
            cells.append(cell)

        asset = Asset.model_validate(boat.model_dump(exclude={"bookings", "needs_review"}))
        rows.append(BoardRow(boat=asset, days=cells))

    return Board(
        start=start,
        dates=dates,
        sessions=slots,
        rows=rows,
        generated_at=datetime.now(timezone.utc),
    )
