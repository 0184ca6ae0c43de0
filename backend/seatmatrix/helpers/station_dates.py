"""
Calendar dates and halt durations for the stops of a train schedule.

The railway API only reports a clock time per stop. Overnight trains cross
midnight somewhere along the route, so the calendar date of each stop has to
be reconstructed by walking the stops in order and watching for the clock
going backwards.

A backwards step is only treated as midnight when the wrap-around gap is
shorter than ``max_gap_hours``. Longer backwards jumps are upstream data
errors and leave the running date unchanged.
"""

from datetime import date, timedelta

import structlog

from seatmatrix.helpers.time_parsing import (
    MINUTES_PER_DAY,
    format_display_date,
    format_station_label,
    parse_clock_time,
)
from seatmatrix.schemas.matrix import RouteStop

logger = structlog.get_logger(__name__)

DEFAULT_ROLLOVER_MAX_GAP_HOURS = 12
DEFAULT_MAX_REASONABLE_HALT_MINUTES = 120


def _stop_clock_minutes(stop: RouteStop) -> int | None:
    """Clock time used to order a stop: departure, falling back to arrival."""
    return parse_clock_time(stop.departure_time or stop.arrival_time)


def resolve_station_dates(
    stops: list[RouteStop],
    base_date: date,
    max_gap_hours: int = DEFAULT_ROLLOVER_MAX_GAP_HOURS,
) -> tuple[list[RouteStop], dict[str, date]]:
    """
    Stamp every stop with the calendar date the train is actually there.

    On a genuine rollover the stop before midnight and the stop after it both
    get a ``display_date`` label of the new day, and the running date advances
    by one. Stops whose time cannot be parsed keep the running date.

    Args:
        stops: Stops in travel order
        base_date: Calendar date at the first stop
        max_gap_hours: Largest wrap-around gap still treated as midnight

    Returns:
        Tuple of (copied stops with ``resolved_date``/``display_date`` set,
        mapping of city to resolved date)

    Example:
        >>> stops = [
        ...     RouteStop(city="Dhaka", departure_time="11:50 pm BST"),
        ...     RouteStop(city="Tangail", departure_time="12:10 am BST"),
        ... ]
        >>> resolved, dates = resolve_station_dates(stops, date(2025, 9, 28))
        >>> [stop.display_date for stop in resolved]
        ['29 Sep', '29 Sep']
        >>> dates["Tangail"]
        datetime.date(2025, 9, 29)
    """
    max_gap_minutes = max_gap_hours * 60
    current_date = base_date
    previous_minutes: int | None = None
    resolved: list[RouteStop] = []
    station_dates: dict[str, date] = {}

    for stop in stops:
        stop = stop.model_copy()  # noqa: PLW2901
        minutes = _stop_clock_minutes(stop)

        if minutes is not None:
            if previous_minutes is not None and minutes < previous_minutes:
                gap = minutes + MINUTES_PER_DAY - previous_minutes
                if gap < max_gap_minutes:
                    next_day = current_date + timedelta(days=1)
                    if resolved:
                        resolved[-1].display_date = format_station_label(next_day)
                    current_date = next_day
                    stop.display_date = format_station_label(current_date)
                else:
                    logger.warning(
                        "station_time_anomaly_ignored",
                        city=stop.city,
                        gap_minutes=gap,
                        max_gap_minutes=max_gap_minutes,
                    )
            previous_minutes = minutes

        stop.resolved_date = current_date
        station_dates[stop.city] = current_date
        resolved.append(stop)

    return resolved, station_dates


def correct_halts(
    stops: list[RouteStop],
    max_halt_minutes: int = DEFAULT_MAX_REASONABLE_HALT_MINUTES,
) -> list[RouteStop]:
    """
    Replace implausible declared halts with the arrival/departure difference.

    A declared halt is replaced only when it is negative or larger than
    ``max_halt_minutes``. Stops missing either time, or without a whole-number
    halt, are left untouched.

    Example:
        >>> stop = RouteStop(city="Tangail", arrival_time="10:00 am BST",
        ...                  departure_time="10:05 am BST", halt="300")
        >>> correct_halts([stop])[0].halt
        '5'
    """
    corrected: list[RouteStop] = []
    for stop in stops:
        arrival = parse_clock_time(stop.arrival_time)
        departure = parse_clock_time(stop.departure_time)
        if arrival is None or departure is None:
            corrected.append(stop)
            continue

        try:
            declared = int(stop.halt) if stop.halt is not None else None
        except ValueError:
            declared = None
        if declared is None:
            corrected.append(stop)
            continue

        if declared < 0 or declared > max_halt_minutes:
            calculated = departure - arrival
            if calculated < 0:
                calculated += MINUTES_PER_DAY
            stop = stop.model_copy(update={"halt": str(calculated)})  # noqa: PLW2901
        corrected.append(stop)
    return corrected


def formatted_station_dates(station_dates: dict[str, date]) -> dict[str, str]:
    """
    Example:
        >>> formatted_station_dates({"Dhaka": date(2025, 9, 28)})
        {'Dhaka': '28-Sep-2025'}
    """
    return {city: format_display_date(value) for city, value in station_dates.items()}


def adjacent_day_labels(station_dates: dict[str, date], journey_date: date) -> tuple[bool, str, str]:
    """
    Work out whether the route spans more than one calendar day.

    Returns:
        Tuple of (has_segmented_dates, next_day_str, prev_day_str). The day
        strings are only filled in when the dates are segmented.

    Example:
        >>> adjacent_day_labels({"A": date(2025, 9, 28), "B": date(2025, 9, 29)}, date(2025, 9, 28))
        (True, '29-Sep-2025', '27-Sep-2025')
        >>> adjacent_day_labels({"A": date(2025, 9, 28)}, date(2025, 9, 28))
        (False, '', '')
    """
    if len(set(station_dates.values())) <= 1:
        return False, "", ""
    return (
        True,
        format_display_date(journey_date + timedelta(days=1)),
        format_display_date(journey_date - timedelta(days=1)),
    )
