"""Pydantic models for boat and booking data.

All data structures use Pydantic v2 for validation, serialization, and type
safety. Python attributes are snake_case; JSON served to the display clients
is camelCase (dump with by_alias=True).
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

_HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


class BoatType(str, Enum):
    SINGLE = "1X"
    DOUBLE = "2X"
    QUAD = "4X"
    EIGHT = "8X"
    UNKNOWN = "Unknown"


class Classification(str, Enum):
    RACER = "R"
    RACER_TRAINER = "RT"
    TRAINING = "T"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Asset(_CamelModel):
    """A bookable boat scraped from one card on the /bookings page.

    Everything except id and the URLs is derived from full_name, e.g.
    "2X RACER - Swift double/pair 70 KG (Ian Krix)".
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(pattern=r"^\d+$")  # site-assigned, from the calendar link
    full_name: str = Field(min_length=1)
    display_name: str  # "Swift double/pair"
    nickname: str = ""  # "Ian Krix"
    type: BoatType = BoatType.UNKNOWN
    classification: Classification = Classification.TRAINING
    weight: str | None = Field(default=None, pattern=r"^\d+$")  # "70" (KG)
    sweep_capable: bool = False  # "/+" or "/-" after the type token
    calendar_url: str = ""
    booking_url: str = ""

    @computed_field(alias="needsReview")
    @property
    def needs_review(self) -> bool:
        """True when the name grammar could not classify this boat."""
        return self.type is BoatType.UNKNOWN or not self.display_name


class Booking(_CamelModel):
    """One reservation of one boat, read from its calendar page."""

    model_config = ConfigDict(frozen=True)

    date: date
    start_time: str = Field(pattern=_HHMM)
    end_time: str = Field(pattern=_HHMM)
    member_name: str = Field(min_length=1)
    boat_id: str


class BoatBookings(Asset):
    """An asset together with the bookings scraped for it."""

    bookings: list[Booking] = Field(default_factory=list)


class SnapshotMetadata(_CamelModel):
    model_config = ConfigDict(frozen=True)

    total_boats: int
    total_bookings: int
    generated_at: datetime
    failed_boats: list[str] = Field(default_factory=list)


class BookingSnapshot(_CamelModel):
    """A fully assembled boats+bookings dataset; the cache's unit of replacement."""

    model_config = ConfigDict(frozen=True)

    boats: list[BoatBookings]
    metadata: SnapshotMetadata

    @classmethod
    def assemble(
        cls,
        boats: list[BoatBookings],
        generated_at: datetime,
        failed_boats: list[str] | None = None,
    ) -> "BookingSnapshot":
        return cls(
            boats=boats,
            metadata=SnapshotMetadata(
                total_boats=len(boats),
                total_bookings=sum(len(b.bookings) for b in boats),
                generated_at=generated_at,
                failed_boats=failed_boats or [],
            ),
        )


class CacheStatus(_CamelModel):
    age: float | None = None  # seconds since the snapshot was fetched
    ttl: int
    boats: int = 0
    bookings: int = 0
    fetched_at: datetime | None = None
    refresh_in_flight: bool = False
    last_error: str | None = None
    last_error_at: datetime | None = None
