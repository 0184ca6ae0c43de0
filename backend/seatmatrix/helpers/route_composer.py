"""
Route composition over a completed fare matrix.

Given a built ``MatrixResult``, find purchasable tickets from an origin to a
destination on the same train:

- direct: one ticket covering the whole span
- segmented: a chain of contiguous tickets in one seat class
- mixed segmented: a chain where each hop may use a different seat class

Both chained searches are breadth-first over station indices and return the
first path that reaches the destination. That minimizes the number of
tickets, not the total fare.

Everything here is pure; no network access.
"""

from collections import deque

from seatmatrix.schemas.matrix import (
    ComposedRoute,
    FareCell,
    MatrixResult,
    RouteKind,
    RouteSegment,
    SeatClass,
)

DEFAULT_SERVICE_CHARGE = 20.0


def _cell(matrix: MatrixResult, seat_type: SeatClass, origin: str, destination: str) -> FareCell | None:
    return matrix.fare_matrices.get(seat_type, {}).get(origin, {}).get(destination)


def _segment(
    matrix: MatrixResult,
    seat_type: SeatClass,
    origin: str,
    destination: str,
    cell: FareCell,
    service_charge: float,
) -> RouteSegment:
    return RouteSegment(
        from_station=origin,
        to_station=destination,
        seat_type=seat_type,
        base=cell.fare,
        vat=cell.vat_amount,
        charge=service_charge,
        total=cell.fare + cell.vat_amount + service_charge,
        seats=cell.total_seats,
        date=matrix.station_dates_formatted.get(origin) or matrix.date,
    )


def _is_forward_pair(matrix: MatrixResult, origin: str, destination: str) -> bool:
    if origin not in matrix.stations or destination not in matrix.stations:
        return False
    return matrix.stations.index(origin) < matrix.stations.index(destination)


def find_direct(
    matrix: MatrixResult,
    origin: str,
    destination: str,
    seat_type: SeatClass,
    service_charge: float = DEFAULT_SERVICE_CHARGE,
) -> ComposedRoute | None:
    """
    Single ticket from origin to destination in ``seat_type``.

    Only online seats count towards availability; the reported seat count
    includes offline (counter) seats too.

    Returns:
        A one-segment DIRECT route, or None if no online seat exists
    """
    cell = _cell(matrix, seat_type, origin, destination)
    if cell is None or cell.online <= 0:
        return None

    segment = _segment(matrix, seat_type, origin, destination, cell, service_charge)
    return ComposedRoute(kind=RouteKind.DIRECT, seat_type=seat_type, segments=[segment], total_fare=segment.total)


def _breadth_first_route(
    matrix: MatrixResult,
    origin: str,
    destination: str,
    seat_types: list[SeatClass],
    service_charge: float,
) -> tuple[list[RouteSegment], float] | None:
    """
    Shortest chain (by hop count) of forward edges with online seats.

    For every candidate edge the first class in ``seat_types`` with an online
    seat is taken.
    """
    if not _is_forward_pair(matrix, origin, destination):
        return None

    queue: deque[tuple[str, list[RouteSegment], float]] = deque([(origin, [], 0.0)])
    visited: set[str] = set()

    while queue:
        station, path, total_fare = queue.popleft()
        if station in visited:
            continue
        visited.add(station)

        if station == destination:
            return path, total_fare

        current_index = matrix.stations.index(station)
        for next_station in matrix.stations[current_index + 1 :]:
            for seat_type in seat_types:
                cell = _cell(matrix, seat_type, station, next_station)
                if cell is not None and cell.online > 0:
                    segment = _segment(matrix, seat_type, station, next_station, cell, service_charge)
                    queue.append((next_station, [*path, segment], total_fare + segment.total))
                    break

    return None


def find_segmented(
    matrix: MatrixResult,
    origin: str,
    destination: str,
    seat_type: SeatClass,
    service_charge: float = DEFAULT_SERVICE_CHARGE,
) -> ComposedRoute | None:
    """
    Chain of ``seat_type`` tickets from origin to destination.

    Returns:
        The first chain found by breadth-first search (fewest tickets, not
        cheapest), or None if no chain exists
    """
    found = _breadth_first_route(matrix, origin, destination, [seat_type], service_charge)
    if found is None:
        return None
    segments, total_fare = found
    return ComposedRoute(kind=RouteKind.SEGMENTED, seat_type=seat_type, segments=segments, total_fare=total_fare)


def find_mixed_segmented(
    matrix: MatrixResult,
    origin: str,
    destination: str,
    seat_types: list[SeatClass] | None = None,
    service_charge: float = DEFAULT_SERVICE_CHARGE,
) -> ComposedRoute | None:
    """
    Chain of tickets whose seat class may change from hop to hop.

    Args:
        seat_types: Classes to consider, in preference order. Defaults to the
            matrix's available classes.

    Returns:
        The first chain found by breadth-first search, or None
    """
    if seat_types is None:
        seat_types = matrix.available_seat_types()
    found = _breadth_first_route(matrix, origin, destination, seat_types, service_charge)
    if found is None:
        return None
    segments, total_fare = found
    return ComposedRoute(kind=RouteKind.MIXED_SEGMENTED, segments=segments, total_fare=total_fare)


def compose_routes(
    matrix: MatrixResult,
    origin: str,
    destination: str,
    service_charge: float = DEFAULT_SERVICE_CHARGE,
) -> list[ComposedRoute]:
    """
    All routes offered for an origin/destination query, best kind first.

    Direct tickets are tried for every available class. Only if none exists
    are single-class chains tried, and only if those fail too is one mixed
    chain searched for.

    Args:
        matrix: Completed matrix of one train
        origin: Boarding station
        destination: Alighting station
        service_charge: Fixed charge added to every ticket

    Returns:
        Routes found (possibly empty)

    Raises:
        InvalidRouteQuery: If a station is unknown, both are the same, or the
            origin does not come before the destination
    """
    validate_route_query(matrix, origin, destination)
    seat_types = matrix.available_seat_types()

    routes = [
        route
        for seat_type in seat_types
        if (route := find_direct(matrix, origin, destination, seat_type, service_charge)) is not None
    ]
    if routes:
        return routes

    routes = [
        route
        for seat_type in seat_types
        if (route := find_segmented(matrix, origin, destination, seat_type, service_charge)) is not None
    ]
    if routes:
        return routes

    mixed = find_mixed_segmented(matrix, origin, destination, seat_types, service_charge)
    return [mixed] if mixed is not None else []


def validate_route_query(matrix: MatrixResult, origin: str, destination: str) -> None:
    """
    Raises:
        InvalidRouteQuery: If the pair cannot be searched on this train
    """
    if not origin or not destination:
        msg = "Please select both origin and destination stations"
        raise InvalidRouteQuery(msg)
    if origin == destination:
        msg = "Origin and destination cannot be the same"
        raise InvalidRouteQuery(msg)
    for station in (origin, destination):
        if station not in matrix.stations:
            msg = f"{station} is not a stop of {matrix.train_name}"
            raise InvalidRouteQuery(msg)
    if matrix.stations.index(origin) >= matrix.stations.index(destination):
        msg = "Origin station must come before destination station in the train route"
        raise InvalidRouteQuery(msg)


# Exceptions


class InvalidRouteQuery(ValueError):
    """Raised when an origin/destination pair cannot be searched on a matrix."""
