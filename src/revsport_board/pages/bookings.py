"""BookingsPage - extracts the boat list from RevSport's /bookings page.

DOM structure (one card per bookable boat):
  div.card.card-hover
    div.mr-3 -> full boat name, e.g. "2X RACER - Swift double/pair 70 KG (Ian Krix)"
    a[href="/bookings/calendar/1234"] -> calendar link carrying the boat id

Boat name grammar (informal, heuristic):
  <TYPE>[/<SWEEP>] [RACER|RT] - <free text> [<WEIGHT> KG] [(<NICKNAME>)]
  TYPE is 1X, 2X, 4X or 8X; "/+" or "/-" after it marks a sweep-capable hull.
"""

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from revsport_board.errors import ParseError
from revsport_board.logging import get_logger
from revsport_board.models import Asset, BoatType, Classification
from revsport_board.session import SessionManager

log = get_logger(__name__)

TYPE_RE = re.compile(r"^(1X|2X|4X|8X)(/[+-])?")
TYPE_PREFIX_RE = re.compile(r"^(?:1X|2X|4X|8X)(?:/[+-])?\s*(?:-\s*)?")
RACER_RE = re.compile(r"RACER", re.I)
RT_RE = re.compile(r"\bRT\b", re.I)
RACER_KEYWORD_RE = re.compile(r"\bRACER\b\s*-?\s*", re.I)
RT_KEYWORD_RE = re.compile(r"\bRT\b\s*-?\s*", re.I)
WEIGHT_RE = re.compile(r"\b(\d+)\s*KG\b", re.I)
NICKNAME_RE = re.compile(r"\(([^)]*)\)")
CALENDAR_ID_RE = re.compile(r"/calendar/(\d+)")


@dataclass(frozen=True)
class BoatName:
    """Fields derived from a boat's free-text name."""

    type: BoatType
    classification: Classification
    weight: str | None
    nickname: str
    display_name: str
    sweep_capable: bool


def parse_boat_name(full_name: str) -> BoatName:
    """Split a RevSport boat name into its structured parts.

    Examples:
        "1X - Carmody single scull ( Go For Gold )"
        "2X RACER - Swift double/pair 70 KG (Ian Krix)"
        "4X/+ RT - Ausrowtec coxed quad/four 90 KG"
    """
    type_match = TYPE_RE.match(full_name)
    boat_type = BoatType(type_match.group(1)) if type_match else BoatType.UNKNOWN
    sweep_capable = bool(type_match and type_match.group(2))

    # RACER wins over RT when a name carries both
    if RACER_RE.search(full_name):
        classification = Classification.RACER
    elif RT_RE.search(full_name):
        classification = Classification.RACER_TRAINER
    else:
        classification = Classification.TRAINING

    weight_match = WEIGHT_RE.search(full_name)
    weight = weight_match.group(1) if weight_match else None

    nickname_match = NICKNAME_RE.search(full_name)
    nickname = nickname_match.group(1).strip() if nickname_match else ""

    display = TYPE_PREFIX_RE.sub("", full_name, count=1)
    display = RACER_KEYWORD_RE.sub("", display, count=1)
    display = RT_KEYWORD_RE.sub("", display, count=1)
    display = WEIGHT_RE.sub("", display, count=1)
    display = NICKNAME_RE.sub("", display, count=1)
    display = " ".join(display.split()).strip(" -")

    return BoatName(
        type=boat_type,
        classification=classification,
        weight=weight,
        nickname=nickname,
        display_name=display,
        sweep_capable=sweep_capable,
    )


class BookingsPage:
    """Boat list page at /bookings.

    The same page doubles as the login verification target, so it is always
    reachable once the session is authenticated.
    """

    URL_PATH = "/bookings"

    CARD = ".card.card-hover"
    NAME = ".mr-3"
    CALENDAR_LINK = 'a[href*="/bookings/calendar/"]'

    def __init__(self, session: SessionManager) -> None:
        self.session = session

    def fetch_assets(self) -> list[Asset]:
        """Fetch /bookings and parse every boat card on it."""
        html = self.session.get(self.URL_PATH)
        assets = parse_assets(html)
        log.info("assets_fetched", count=len(assets))
        return assets


def _parse_card(card: Tag) -> Asset:
    name_element = card.select_one(BookingsPage.NAME)
    full_name = " ".join(name_element.get_text(" ").split()) if name_element else ""
    if not full_name:
        raise ParseError("no name found")

    link = card.select_one(BookingsPage.CALENDAR_LINK)
    calendar_url = (link.get("href") or "") if link else ""
    id_match = CALENDAR_ID_RE.search(calendar_url)
    if not id_match:
        raise ParseError(f"no calendar id for {full_name!r}")
    boat_id = id_match.group(1)

    details = parse_boat_name(full_name)
    return Asset(
        id=boat_id,
        full_name=full_name,
        display_name=details.display_name,
        nickname=details.nickname,
        type=details.type,
        classification=details.classification,
        weight=details.weight,
        sweep_capable=details.sweep_capable,
        calendar_url=calendar_url,
        booking_url=f"/bookings/{boat_id}",
    )


def parse_assets(html: str) -> list[Asset]:
    """Parse boat cards from /bookings HTML.

    Cards without a name or calendar id are skipped (debug); cards that fail
    model validation are dropped with a warning. Duplicate ids keep the
    first card.

    Returns:
        Assets in page order.
    """
    soup = BeautifulSoup(html, "html.parser")
    assets: list[Asset] = []
    seen: set[str] = set()

    for index, card in enumerate(soup.select(BookingsPage.CARD)):
        try:
            asset = _parse_card(card)
        except ParseError as e:
            log.debug("boat_card_skipped", index=index, reason=str(e))
            continue
        except ValidationError as e:
            log.warning("boat_card_invalid", index=index, errors=e.error_count())
            continue

        if asset.id in seen:
            log.warning("boat_duplicate_id", boat_id=asset.id, full_name=asset.full_name)
            continue
        seen.add(asset.id)

        if asset.needs_review:
            log.warning(
                "boat_needs_review",
                boat_id=asset.id,
                full_name=asset.full_name,
                type=asset.type.value,
            )
        assets.append(asset)

    log.debug("assets_parsed", count=len(assets))
    return assets
