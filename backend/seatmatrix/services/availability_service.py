"""Point-to-point seat availability and train search between two stations."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Container
from datetime import date, datetime, timedelta

import structlog

from seatmatrix.core.concurrency import CancelToken, ConcurrencyPool, Outcome, PoolUnit
from seatmatrix.core.config import settings
from seatmatrix.core.errors import AuthError, RailwayError, RequestRejected, SeatInfoUnavailable
from seatmatrix.core.telemetry import service_span
from seatmatrix.helpers.availability_errors import synthesize_failure_message, train_error_message
from seatmatrix.helpers.seat_layout import aggregate_seat_layout
from seatmatrix.helpers.time_parsing import calculate_journey_duration, departure_sort_key, format_display_date
from seatmatrix.schemas.availability import (
    RejectionInfo,
    SeatClassAvailability,
    SeatLayoutResult,
    TrainAvailability,
    TrainSearchResult,
    TrainSummary,
)
from seatmatrix.schemas.matrix import SeatClass
from seatmatrix.schemas.railway import SeatTypePayload, TripPayload
from seatmatrix.services.matrix_service import ProgressCallback
from seatmatrix.services.railway_client import RailwayClient

logger = structlog.get_logger(__name__)

UNKNOWN_TRAIN = "Unknown Train"
TRAIN_SEARCH_SEAT_CLASS = SeatClass.S_CHAIR

# Share of the progress bar covered by the seat-layout lookups
LAYOUT_PROGRESS_START = 10
LAYOUT_PROGRESS_SPAN = 80


def _report(on_progress: ProgressCallback | None, message: str, percent: int) -> None:
    if on_progress:
        on_progress(message, percent)


def _train_key(trip: TripPayload) -> str:
    return trip.trip_number or trip.train_name or UNKNOWN_TRAIN


def _unique_key(key: str, taken: Container[str]) -> str:
    """
    ``key``, suffixed with a counter when another listed train already uses it.

    Examples:
        >>> _unique_key("Unknown Train", {})
        'Unknown Train'
        >>> _unique_key("Unknown Train", {"Unknown Train"})
        'Unknown Train #2'
    """
    candidate, counter = key, 1
    while candidate in taken:
        counter += 1
        candidate = f"{key} #{counter}"
    return candidate


def _seat_class_result(seat_type: str, outcome: Outcome[SeatLayoutResult]) -> SeatClassAvailability:
    """Turn one layout lookup outcome into its per-class entry."""
    if outcome.ok:
        return SeatClassAvailability(seat_type=seat_type, layout=outcome.value)

    error = outcome.error
    error_info = None
    if isinstance(error, RequestRejected):
        error_info = RejectionInfo(message=error.message, error_key=error.error_key)
    message = error.user_message if isinstance(error, RailwayError) else "Failed to fetch seat information"
    return SeatClassAvailability(seat_type=seat_type, rejected=True, error_info=error_info, error_message=message)


class AvailabilityService:
    """
    Seat availability for every train between two stations.

    Args:
        client: Railway API client with credentials
        pool: Concurrency pool for seat-layout lookups (defaults to the configured cap)
    """

    def __init__(self, client: RailwayClient, pool: ConcurrencyPool | None = None) -> None:
        self.client = client
        self.pool = pool or ConcurrencyPool(settings.MAX_CONCURRENT_REQUESTS)

    async def check_availability(
        self,
        origin: str,
        destination: str,
        journey_date: str,
        seat_class: str = TRAIN_SEARCH_SEAT_CLASS,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> dict[str, TrainAvailability]:
        """
        Fetch and categorize the seat layout of every seat class of every train.

        Args:
            origin: Boarding station
            destination: Alighting station
            journey_date: ``DD-MMM-YYYY``
            seat_class: Seat class the train listing is requested for
            on_progress: Called with (message, percent) at each milestone
            cancel_token: Aborts the check when cancelled

        Returns:
            Mapping of trip number to that train's availability

        Raises:
            NoDataFound: If no train runs between the stations that day
            SeatInfoUnavailable: If not a single seat-layout lookup succeeded
            AuthError: On the first credential failure
            Canceled: If the token is cancelled
        """
        token = cancel_token or CancelToken()

        with service_span(
            "availability.check", "availability-service", origin=origin, destination=destination
        ) as span:
            _report(on_progress, "Searching for trains...", 5)
            trips = await self.client.search_trips(origin, destination, journey_date, seat_class, token)
            _report(on_progress, f"Found {len(trips)} train{'s' if len(trips) > 1 else ''}", 10)

            # Units are addressed by listing position; trains without a trip
            # number can share a display key
            trains: dict[str, TrainAvailability] = {}
            train_keys: list[str] = []
            units: list[PoolUnit[tuple[int, int], SeatLayoutResult]] = []
            seat_types: dict[tuple[int, int], str] = {}

            for trip_index, trip in enumerate(trips):
                key = _unique_key(_train_key(trip), trains)
                train_keys.append(key)
                trains[key] = TrainAvailability(
                    from_station=trip.from_station_name or origin,
                    to_station=trip.to_station_name or destination,
                    departure_time=trip.departure_date_time or "N/A",
                    arrival_time=trip.arrival_date_time or "N/A",
                    journey_duration=calculate_journey_duration(trip.departure_date_time, trip.arrival_date_time),
                )
                for seat_index, seat in enumerate(trip.seat_types):
                    unit_key = (trip_index, seat_index)
                    seat_types[unit_key] = seat.type or "Unknown"
                    units.append(PoolUnit(key=unit_key, call=self._layout_call(seat)))

            def on_unit_done(done: int, total: int) -> None:
                percent = LAYOUT_PROGRESS_START + round(done / total * LAYOUT_PROGRESS_SPAN)
                _report(on_progress, f"Processing seats... ({done}/{total})", percent)

            outcomes = await self.pool.run(
                units,
                on_unit_done=on_unit_done,
                cancel_token=token,
                abort_on=(AuthError,),
            )

            any_success = False
            for unit in units:
                outcome = outcomes[unit.key]
                any_success = any_success or outcome.ok
                trip_index, _ = unit.key
                trains[train_keys[trip_index]].seat_data.append(_seat_class_result(seat_types[unit.key], outcome))

            for train in trains.values():
                if message := train_error_message(train.seat_data):
                    for seat in train.seat_data:
                        seat.error_message = message
                train.all_seats_unavailable = all(seat.rejected for seat in train.seat_data)

            span.set_attribute("availability.trains", len(trains))
            span.set_attribute("availability.lookups", len(units))

            if not any_success:
                message = synthesize_failure_message(trains, datetime.now())
                logger.warning(
                    "seat_info_unavailable",
                    origin=origin,
                    destination=destination,
                    journey_date=journey_date,
                    lookups=len(units),
                )
                raise SeatInfoUnavailable(
                    message,
                    details={key: train.model_dump(mode="json") for key, train in trains.items()},
                )

            _report(on_progress, "Finalizing results...", 95)
            logger.info(
                "availability_checked",
                origin=origin,
                destination=destination,
                journey_date=journey_date,
                trains=len(trains),
                lookups=len(units),
            )
            _report(on_progress, "Complete!", 100)
            return trains

    def _layout_call(self, seat: SeatTypePayload) -> Callable[[CancelToken], Awaitable[SeatLayoutResult]]:
        async def call(token: CancelToken) -> SeatLayoutResult:
            raw_seats = await self.client.fetch_seat_layout(seat.trip_id, seat.trip_route_id, token)
            return aggregate_seat_layout(raw_seats)

        return call

    async def search_trains(
        self,
        origin: str,
        destination: str,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancelToken | None = None,
        today: date | None = None,
    ) -> TrainSearchResult:
        """
        Find trains running between two stations.

        The listing is requested for a couple of days ahead (see
        ``TRAIN_SEARCH_DAY_OFFSETS``) and the results are merged by trip
        number, keeping the first seen, then sorted by departure time of day.

        Raises:
            AuthError: If every lookup failed and one of them was a credential failure
            RailwayError: The first failure, if every lookup failed
        """
        self.client.require_credentials()
        today = today or datetime.now().date()
        offsets = settings.TRAIN_SEARCH_DAY_OFFSETS
        dates = [format_display_date(today + timedelta(days=offset)) for offset in offsets]
        _report(on_progress, "Preparing search...", 5)

        def search_unit(journey_date: str) -> PoolUnit[str, list[TripPayload]]:
            async def call(token: CancelToken) -> list[TripPayload]:
                return await self.client.search_trips(
                    origin, destination, journey_date, TRAIN_SEARCH_SEAT_CLASS, token
                )

            return PoolUnit(key=journey_date, call=call)

        def on_unit_done(done: int, total: int) -> None:
            _report(on_progress, f"Searching trains... ({done}/{total})", 10 + round(done / total * 80))

        with service_span(
            "availability.search_trains", "availability-service", origin=origin, destination=destination
        ):
            outcomes = await self.pool.run(
                [search_unit(journey_date) for journey_date in dates],
                on_unit_done=on_unit_done,
                cancel_token=cancel_token,
            )

        errors = [outcomes[journey_date].error for journey_date in dates if not outcomes[journey_date].ok]
        if dates and len(errors) == len(dates):
            auth_error = next((error for error in errors if isinstance(error, AuthError)), None)
            raise auth_error or errors[0]

        summaries: dict[str, TrainSummary] = {}
        for journey_date in dates:
            for trip in outcomes[journey_date].value or []:
                if trip.trip_number and trip.trip_number not in summaries:
                    summaries[trip.trip_number] = TrainSummary(
                        trip_number=trip.trip_number,
                        departure_time=trip.departure_date_time or "",
                        arrival_time=trip.arrival_date_time or "",
                        travel_time=trip.travel_time or "",
                        origin_city=trip.origin_city_name or "",
                        destination_city=trip.destination_city_name or "",
                    )

        trains = sorted(summaries.values(), key=lambda train: departure_sort_key(train.departure_time))
        logger.info("trains_searched", origin=origin, destination=destination, trains=len(trains), dates=dates)
        _report(on_progress, "Complete!", 100)
        return TrainSearchResult(trains=trains, dates=dates)
