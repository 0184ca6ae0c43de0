"""
Date and clock-time helpers for railway API formats.

The railway API mixes several formats:
- ISO dates (``2025-09-28``) for schedule lookups
- ``DD-MMM-YYYY`` dates (``28-Sep-2025``) for seat queries and display
- 12-hour stop times with a zone suffix (``10:15 pm BST``)
- ``"14 Oct, 10:15 PM"`` departure/arrival stamps on listed trains

All functions here are pure.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

from seatmatrix.core.errors import InvalidTravelDate

DISPLAY_DATE_FORMAT = "%d-%b-%Y"
ISO_DATE_FORMAT = "%Y-%m-%d"
STATION_LABEL_FORMAT = "%d %b"
TRAIN_STAMP_FORMAT = "%d %b, %I:%M %p"

MINUTES_PER_DAY = 24 * 60
UNKNOWN_SORT_TIME = "99:99"

_CLOCK_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*([ap]m)$", re.IGNORECASE)
_TRAIN_MODEL_RE = re.compile(r".*\((\d+)\)$")


def parse_display_date(value: str) -> date:
    """
    Parse a ``DD-MMM-YYYY`` date (month abbreviation is case-insensitive).

    Examples:
        >>> parse_display_date("28-Sep-2025")
        datetime.date(2025, 9, 28)

        >>> parse_display_date("01-jan-2026")
        datetime.date(2026, 1, 1)
    """
    try:
        return datetime.strptime(value.strip(), DISPLAY_DATE_FORMAT).date()
    except (AttributeError, ValueError) as e:
        raise InvalidTravelDate(value, "DD-MMM-YYYY") from e


def parse_iso_date(value: str) -> date:
    """
    Parse a ``YYYY-MM-DD`` date.

    Examples:
        >>> parse_iso_date("2025-09-28")
        datetime.date(2025, 9, 28)
    """
    try:
        return datetime.strptime(value.strip(), ISO_DATE_FORMAT).date()
    except (AttributeError, ValueError) as e:
        raise InvalidTravelDate(value, "YYYY-MM-DD") from e


def format_display_date(value: date) -> str:
    """
    Examples:
        >>> format_display_date(date(2025, 9, 8))
        '08-Sep-2025'
    """
    return value.strftime(DISPLAY_DATE_FORMAT)


def format_station_label(value: date) -> str:
    """
    Short label shown beside stops on either side of midnight.

    Examples:
        >>> format_station_label(date(2025, 9, 29))
        '29 Sep'
    """
    return value.strftime(STATION_LABEL_FORMAT)


def iso_to_display(value: str) -> str:
    """
    Examples:
        >>> iso_to_display("2025-09-28")
        '28-Sep-2025'
    """
    return format_display_date(parse_iso_date(value))


def parse_clock_time(value: str | None) -> int | None:
    """
    Parse a 12-hour stop time into minutes after midnight.

    The trailing ``BST`` zone marker is optional. Returns None for anything
    that is not a recognizable time.

    Examples:
        >>> parse_clock_time("10:15 pm BST")
        1335

        >>> parse_clock_time("12:05 AM BST")
        5

        >>> parse_clock_time("12:30 PM")
        750

        >>> parse_clock_time("--") is None
        True
    """
    if not value:
        return None
    cleaned = value.replace("BST", "").strip()
    match = _CLOCK_TIME_RE.match(cleaned)
    if not match:
        return None

    hour, minute, period = int(match.group(1)), int(match.group(2)), match.group(3).lower()
    if hour > 12 or minute > 59:  # noqa: PLR2004
        return None
    if period == "pm" and hour != 12:  # noqa: PLR2004
        hour += 12
    elif period == "am" and hour == 12:  # noqa: PLR2004
        hour = 0
    return hour * 60 + minute


def extract_train_model(train_name_full: str) -> str:
    """
    Extract the train model number from a full train name.

    Examples:
        >>> extract_train_model("SUBORNO EXPRESS (702)")
        '702'

        >>> extract_train_model("TURNA (741) ")
        'TURNA'
    """
    if match := _TRAIN_MODEL_RE.match(train_name_full):
        return match.group(1)
    return train_name_full.split("(")[0].strip()


def _parse_train_stamp(value: str) -> datetime:
    # Year is irrelevant; 2000 is a leap year so "29 Feb" still parses
    return datetime.strptime(f"{value.strip()} 2000", f"{TRAIN_STAMP_FORMAT} %Y")


def calculate_journey_duration(departure_time: str | None, arrival_time: str | None) -> str:
    """
    Duration between two ``"DD Mon, hh:mm AM"`` stamps as ``"Xh Ym"``.

    Arrival before departure is taken to be the next day. Returns ``"N/A"``
    when either stamp is missing or malformed.

    Examples:
        >>> calculate_journey_duration("28 Sep, 11:00 PM", "29 Sep, 06:30 AM")
        '7h 30m'

        >>> calculate_journey_duration("28 Sep, 11:00 PM", "28 Sep, 06:30 AM")
        '7h 30m'

        >>> calculate_journey_duration("", "29 Sep, 06:30 AM")
        'N/A'
    """
    if not departure_time or not arrival_time:
        return "N/A"
    try:
        departure = _parse_train_stamp(departure_time)
        arrival = _parse_train_stamp(arrival_time)
    except ValueError:
        return "N/A"

    if arrival < departure:
        arrival += timedelta(days=1)

    total_minutes = int((arrival - departure).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def departure_sort_key(departure_time: str | None) -> str:
    """
    24-hour ``HH:MM`` of a ``"DD Mon, hh:mm AM"`` stamp, for sorting trains.

    Unknown or malformed times sort last.

    Examples:
        >>> departure_sort_key("14 Oct, 10:15 PM")
        '22:15'

        >>> departure_sort_key("14 Oct, 12:05 AM")
        '00:05'

        >>> departure_sort_key(None)
        '99:99'
    """
    if not departure_time:
        return UNKNOWN_SORT_TIME
    minutes = parse_clock_time(departure_time.split(",")[-1])
    if minutes is None:
        return UNKNOWN_SORT_TIME
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"
