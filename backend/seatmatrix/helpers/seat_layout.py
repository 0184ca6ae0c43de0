"""
Seat-layout categorization and coach grouping.

Seat identifiers embed the coach code: ``"KA-12"`` or, for coaches split
into sections, ``"UMA-A-3"``. Coaches are displayed in the fixed Bangla
alphabet order of ``COACH_ORDER``; unknown coach codes sort after every known
one, alphabetically among themselves.
"""

from collections.abc import Iterable

from seatmatrix.schemas.availability import CoachGroup, RawSeat, SeatLayoutResult, TicketTypeBucket
from seatmatrix.schemas.railway import SeatLayoutFloorPayload

COACH_ORDER = [
    "KA", "KHA", "GA", "GHA", "UMA", "CHA", "SCHA", "JA", "JHA", "NEO",
    "TA", "THA", "DA", "DHA", "TO", "THO", "DOA", "DANT", "XTR1", "XTR2",
    "XTR3", "XTR4", "XTR5", "SLR", "STD",
]  # fmt: skip
COACH_INDEX = {coach: idx for idx, coach in enumerate(COACH_ORDER)}
UNKNOWN_COACH_ORDER = len(COACH_ORDER) + 1

SEAT_AVAILABLE = 1
SEAT_IN_PROCESS = 2
BOOKING_PROCESS_TICKET_TYPES = frozenset({1, 2, 3})

TICKET_TYPE_LABELS = {
    1: "Issued Tickets to Buy",
    2: "Soon-to-be-Issued Tickets to Buy",
    3: "Issued Tickets to Buy",
    4: "Reserved Tickets Under Authority",
}
ISSUED_TICKET_TYPES = (1, 3)
ISSUED_COMBINED_KEY = "issued_combined"

SeatSortKey = tuple[int, str, int, str]


def seat_sort_key(seat: str) -> SeatSortKey:
    """
    Sort key of (coach order, unknown coach name, seat number, section letter).

    Examples:
        >>> seat_sort_key("KA-12")
        (0, '', 12, '')

        >>> seat_sort_key("UMA-A-3")
        (4, '', 3, 'A')

        >>> seat_sort_key("ZZ-1")
        (26, 'ZZ', 1, '')

        >>> seat_sort_key("KA-X")
        (0, '', 0, 'X')
    """
    parts = seat.split("-")
    coach = parts[0]
    coach_order = COACH_INDEX.get(coach, UNKNOWN_COACH_ORDER)
    coach_fallback = "" if coach in COACH_INDEX else coach

    if len(parts) == 2:  # noqa: PLR2004
        try:
            return coach_order, coach_fallback, int(parts[1]), ""
        except ValueError:
            return coach_order, coach_fallback, 0, parts[1]
    if len(parts) == 3:  # noqa: PLR2004
        try:
            return coach_order, coach_fallback, int(parts[2]), parts[1]
        except ValueError:
            return coach_order, coach_fallback, 0, parts[1]

    return UNKNOWN_COACH_ORDER, seat, 0, ""


def sort_seats(seats: Iterable[str]) -> list[str]:
    """
    Examples:
        >>> sort_seats(["KA-10", "GA-3", "KA-1", "KHA-2"])
        ['KA-1', 'KA-10', 'KHA-2', 'GA-3']
    """
    return sorted(seats, key=seat_sort_key)


def group_seats_by_coach(seats: Iterable[str]) -> dict[str, CoachGroup]:
    """
    Group already sorted seats by coach code, preserving order.

    Examples:
        >>> grouped = group_seats_by_coach(["KA-1", "KA-10", "GA-3"])
        >>> {coach: (group.seats, group.count) for coach, group in grouped.items()}
        {'KA': (['KA-1', 'KA-10'], 2), 'GA': (['GA-3'], 1)}
    """
    grouped: dict[str, list[str]] = {}
    for seat in seats:
        grouped.setdefault(seat.split("-")[0], []).append(seat)
    return {coach: CoachGroup(seats=coach_seats, count=len(coach_seats)) for coach, coach_seats in grouped.items()}


def _bucket(label: str, seats: list[str]) -> TicketTypeBucket:
    return TicketTypeBucket(label=label, seats=seats, count=len(seats), grouped=group_seats_by_coach(seats))


def aggregate_seat_layout(raw_seats: Iterable[RawSeat]) -> SeatLayoutResult:
    """
    Categorize one seat class's seats and group each category by coach.

    - availability 1: available to buy now
    - availability 2 with ticket type 1, 2 or 3: held by an in-progress booking
    - every seat with ticket type 1 to 4 also goes to that ticket-type bucket;
      types 1 and 3 are merged into ``issued_combined``

    Empty ticket-type buckets are omitted.

    Args:
        raw_seats: Seats flattened out of the layout grid

    Returns:
        SeatLayoutResult with every list sorted by ``seat_sort_key``
    """
    seats = list(raw_seats)

    available = sort_seats(seat.seat_number for seat in seats if seat.seat_availability == SEAT_AVAILABLE)
    booking_process = sort_seats(
        seat.seat_number
        for seat in seats
        if seat.seat_availability == SEAT_IN_PROCESS and seat.ticket_type in BOOKING_PROCESS_TICKET_TYPES
    )

    by_ticket_type: dict[int, list[str]] = {ticket_type: [] for ticket_type in TICKET_TYPE_LABELS}
    for seat in seats:
        if seat.ticket_type in by_ticket_type:
            by_ticket_type[seat.ticket_type].append(seat.seat_number)

    ticket_types: dict[str, TicketTypeBucket] = {}
    for ticket_type, type_seats in by_ticket_type.items():
        if type_seats:
            ticket_types[str(ticket_type)] = _bucket(TICKET_TYPE_LABELS[ticket_type], sort_seats(type_seats))

    issued = sort_seats(seat for ticket_type in ISSUED_TICKET_TYPES for seat in by_ticket_type[ticket_type])
    if issued:
        ticket_types[ISSUED_COMBINED_KEY] = _bucket(TICKET_TYPE_LABELS[1], issued)

    return SeatLayoutResult(
        available_seats=available,
        booking_process_seats=booking_process,
        available_count=len(available),
        booking_process_count=len(booking_process),
        ticket_types=ticket_types,
        issued_total=len(issued),
        grouped_seats=group_seats_by_coach(available),
        grouped_booking_process=group_seats_by_coach(booking_process),
        grouped_ticket_types={
            str(ticket_type): (ticket_types[str(ticket_type)].grouped if str(ticket_type) in ticket_types else {})
            for ticket_type in TICKET_TYPE_LABELS
        },
    )


def flatten_seat_layout(floors: Iterable[SeatLayoutFloorPayload]) -> list[RawSeat]:
    """
    Flatten the floor/row/seat grid of a layout response, dropping blank cells.

    Example:
        >>> floor = SeatLayoutFloorPayload(layout=[[{"seat_number": "KA-1", "seat_availability": 1}, {}]])
        >>> [seat.seat_number for seat in flatten_seat_layout([floor])]
        ['KA-1']
    """
    return [
        RawSeat(
            seat_number=seat.seat_number,
            seat_availability=seat.seat_availability,
            ticket_type=seat.ticket_type,
        )
        for floor in floors
        for row in floor.layout
        for seat in row
        if seat.seat_number
    ]
