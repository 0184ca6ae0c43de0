"""
Human-readable diagnostics for refused seat-layout lookups.

The railway API refuses seat-layout lookups (HTTP 422) for account-level
reasons: ticket sales for the day have not opened yet, another purchase is
in progress, an active reservation exists, or the account hit its order
limit. These helpers turn the raw refusals into one message per train and,
when nothing at all could be fetched, one message for the whole query.
"""

import re
from datetime import datetime, timedelta

from seatmatrix.schemas.availability import RejectionInfo, SeatClassAvailability, TrainAvailability

ORDER_LIMIT_ERROR_KEY = "OrderLimitExceeded"

TRAIN_ORDER_LIMIT_MESSAGE = (
    "Please retry with a different account as you have reached the maximum order limit for this train "
    "on the selected day, so seat info cannot be fetched at this moment."
)
TRAIN_RETRY_MESSAGE = "Please retry with a different account to get seat info for this train."

DEFAULT_SALE_OPENING_TIME = "8:00 AM or 2:00 PM"
GENERIC_FAILURE_MESSAGE = (
    "An error occurred while fetching seat details. Please retry with a different account for the given criteria."
)

_SALE_NOT_OPEN_MARKERS = ("ticket purchase for this trip will be available", "East Zone", "West Zone")
_PURCHASE_ONGOING_MARKER = "Your purchase process is on-going"
_MULTIPLE_ORDER_MARKER = "Multiple order attempt detected"

_CLOCK_TIME_RE = re.compile(r"(\d+:\d+\s*[APMapm]+)")
_WAIT_RE = re.compile(r"(\d+)\s*minute[s]?\s*(\d+)\s*second[s]?", re.IGNORECASE)

RETRY_TIME_FORMAT = "%I:%M:%S %p"


def train_error_message(seat_data: list[SeatClassAvailability]) -> str | None:
    """
    Message shown on every seat class of a train with a refused lookup.

    The order-limit message wins only if it is the first refusal seen.

    Returns:
        The message, or None if no seat class was refused with details
    """
    for seat in seat_data:
        if seat.rejected and seat.error_info is not None:
            if seat.error_info.error_key == ORDER_LIMIT_ERROR_KEY:
                return TRAIN_ORDER_LIMIT_MESSAGE
            return TRAIN_RETRY_MESSAGE
    return None


def _retry_after(message: str, now: datetime) -> str | None:
    """
    Wall-clock time after a "N minutes M seconds" wait in ``message``.

    Example:
        >>> _retry_after("wait 2 minutes 30 seconds", datetime(2025, 9, 28, 13, 0, 0))
        '01:02:30 PM'
        >>> _retry_after("please wait", datetime(2025, 9, 28, 13, 0, 0)) is None
        True
    """
    match = _WAIT_RE.search(message)
    if not match:
        return None
    wait = timedelta(minutes=int(match.group(1)), seconds=int(match.group(2)))
    return (now + wait).strftime(RETRY_TIME_FORMAT)


def diagnose_rejection(info: RejectionInfo, now: datetime) -> str | None:
    """
    Map one refusal to a query-level message, if its cause is recognizable.

    Examples:
        >>> now = datetime(2025, 9, 28, 13, 0, 0)
        >>> diagnose_rejection(RejectionInfo(message="Available from 8:00 AM (East Zone)"), now)[:60]
        'Ticket purchasing for the selected criteria is not yet avail'
        >>> diagnose_rejection(RejectionInfo(message="Something else"), now) is None
        True
    """
    message = info.message

    if any(marker in message for marker in _SALE_NOT_OPEN_MARKERS):
        match = _CLOCK_TIME_RE.search(message)
        retry_time = match.group(1) if match else DEFAULT_SALE_OPENING_TIME
        return (
            "Ticket purchasing for the selected criteria is not yet available, so seat info cannot be fetched "
            f"at this moment. Please try again after {retry_time}. Alternatively, search for a different day."
        )

    if _PURCHASE_ONGOING_MARKER in message:
        prefix = (
            "Your purchase process for some tickets is ongoing for this account, "
            "so seat info cannot be fetched at this moment."
        )
        if retry_time := _retry_after(message, now):
            return f"{prefix} Please try again after {retry_time} or retry with a different account."
        return f"{prefix} Please retry with a different account."

    if _MULTIPLE_ORDER_MARKER in message:
        prefix = (
            "You already have an active reservation process in this account, "
            "so seat info cannot be fetched at this moment."
        )
        if retry_time := _retry_after(message, now):
            return f"{prefix} Please try again after {retry_time} or retry with a different account."
        return f"{prefix} Please retry with a different account."

    if info.error_key == ORDER_LIMIT_ERROR_KEY:
        return (
            "Please retry with a different account as you have reached the maximum order limit for all trains "
            "between your chosen stations on the selected day, so seat info cannot be fetched at this moment. "
            "Alternatively, search for a different day."
        )

    return None


def synthesize_failure_message(trains: dict[str, TrainAvailability], now: datetime) -> str:
    """
    One message explaining why no seat info could be fetched for any train.

    Trains and their seat classes are scanned in order and the first
    recognizable refusal decides the message.

    Args:
        trains: Per-train results, keyed by trip number
        now: Current local time, used to turn wait durations into clock times

    Returns:
        The diagnosed message, or a generic fallback
    """
    for train in trains.values():
        for seat in train.seat_data:
            if seat.rejected and seat.error_info is not None:
                if message := diagnose_rejection(seat.error_info, now):
                    return message
    return GENERIC_FAILURE_MESSAGE
