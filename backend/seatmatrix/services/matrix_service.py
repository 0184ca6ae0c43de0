"""Fare matrix computation for one train on one journey date.

Pipeline: fetch schedule -> check running day -> correct halts -> resolve
station dates -> query every origin/destination pair through the
concurrency pool -> derive per-class availability and date metadata.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

import structlog

from seatmatrix.core.concurrency import CancelToken, ConcurrencyPool, PoolUnit
from seatmatrix.core.config import settings
from seatmatrix.core.errors import AuthError, NoDataFound
from seatmatrix.core.telemetry import service_span
from seatmatrix.helpers.schedule_validation import validate_running_day
from seatmatrix.helpers.station_dates import (
    adjacent_day_labels,
    correct_halts,
    formatted_station_dates,
    resolve_station_dates,
)
from seatmatrix.helpers.time_parsing import format_display_date, parse_display_date
from seatmatrix.schemas.matrix import (
    SEAT_CLASSES,
    FareCell,
    FareMatrix,
    MatrixResult,
    RouteStop,
    SeatClass,
    TrainSchedule,
)
from seatmatrix.services.railway_client import RailwayClient

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[str, int], None]
PairCells = dict[SeatClass, FareCell]

NO_SEATS_MESSAGE = "No seats available for the selected train and date. Please try a different date or train."

# Share of the progress bar covered by the pair queries
PAIR_PROGRESS_START = 15
PAIR_PROGRESS_SPAN = 70


def _report(on_progress: ProgressCallback | None, message: str, percent: int) -> None:
    if on_progress:
        on_progress(message, percent)


def compute_has_data(fare_matrices: FareMatrix) -> dict[SeatClass, bool]:
    """A class has data if any of its cells has at least one seat, online or offline."""
    return {
        seat_class: any(
            cell.total_seats > 0 for row in fare_matrices.get(seat_class, {}).values() for cell in row.values()
        )
        for seat_class in SEAT_CLASSES
    }


class MatrixService:
    """
    Builds a train's all-pairs fare/availability matrix.

    Args:
        client: Railway API client; pair queries need its credentials
        pool: Concurrency pool for pair queries (defaults to the configured cap)
        rollover_max_gap_hours: Largest backwards clock jump treated as midnight
        max_halt_minutes: Declared halts above this are recomputed
    """

    def __init__(
        self,
        client: RailwayClient,
        pool: ConcurrencyPool | None = None,
        *,
        rollover_max_gap_hours: int | None = None,
        max_halt_minutes: int | None = None,
    ) -> None:
        self.client = client
        self.pool = pool or ConcurrencyPool(settings.MAX_CONCURRENT_REQUESTS)
        self.rollover_max_gap_hours = (
            rollover_max_gap_hours if rollover_max_gap_hours is not None else settings.ROLLOVER_MAX_GAP_HOURS
        )
        self.max_halt_minutes = (
            max_halt_minutes if max_halt_minutes is not None else settings.MAX_REASONABLE_HALT_MINUTES
        )

    async def fetch_schedule(
        self,
        train_model: str,
        departure_date: str,
        cancel_token: CancelToken | None = None,
    ) -> TrainSchedule:
        """
        Fetch a train's stops and running days.

        Args:
            train_model: Train number, e.g. "787"
            departure_date: ISO date of the journey

        Raises:
            NoDataFound: If the response has no train name or no stops
        """
        payload = await self.client.fetch_train_routes(train_model, departure_date, cancel_token)
        if not payload.train_name or not payload.routes:
            raise NoDataFound()

        return TrainSchedule(
            train_model=train_model,
            train_name=payload.train_name,
            stops=[
                RouteStop(
                    city=stop.city,
                    arrival_time=stop.arrival_time,
                    departure_time=stop.departure_time,
                    halt=None if stop.halt is None else str(stop.halt),
                )
                for stop in payload.routes
            ],
            running_days=payload.days,
            total_duration=payload.total_duration or "N/A",
        )

    async def build_fare_matrix(
        self,
        train_model: str,
        stations: list[str],
        station_dates: dict[str, date],
        cancel_token: CancelToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> FareMatrix:
        """
        Query every forward station pair and assemble the per-class matrix.

        Each pair is queried on its origin stop's resolved date. A pair whose
        query fails gets zero cells for every class, so the matrix always has
        N*(N-1)/2 cells per class.

        Raises:
            AuthError: On the first credential failure; no further pairs are sent
            Canceled: If the token is cancelled mid-build
        """

        def pair_unit(origin: str, destination: str, journey_date: str) -> PoolUnit[tuple[str, str], PairCells]:
            async def call(token: CancelToken) -> PairCells:
                return await self.client.fetch_pair_fares(train_model, journey_date, origin, destination, token)

            return PoolUnit(key=(origin, destination), call=call)

        units = [
            pair_unit(origin, destination, format_display_date(station_dates[origin]))
            for i, origin in enumerate(stations)
            for destination in stations[i + 1 :]
        ]

        def on_unit_done(done: int, total: int) -> None:
            percent = PAIR_PROGRESS_START + round(done / total * PAIR_PROGRESS_SPAN)
            _report(on_progress, f"Processing routes... ({done}/{total})", percent)

        outcomes = await self.pool.run(
            units,
            on_unit_done=on_unit_done,
            cancel_token=cancel_token,
            abort_on=(AuthError,),
        )

        fare_matrices: FareMatrix = {seat_class: {origin: {} for origin in stations} for seat_class in SEAT_CLASSES}
        failed = 0
        for (origin, destination), outcome in outcomes.items():
            cells = outcome.value if outcome.ok and outcome.value is not None else {}
            if not outcome.ok:
                failed += 1
                logger.warning("pair_query_failed", origin=origin, destination=destination, error=str(outcome.error))
            for seat_class in SEAT_CLASSES:
                fare_matrices[seat_class][origin][destination] = cells.get(seat_class) or FareCell()

        logger.info("fare_matrix_built", train_model=train_model, pairs=len(units), failed=failed)
        return fare_matrices

    async def compute_matrix(
        self,
        train_model: str,
        journey_date: str,
        api_date: str,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> MatrixResult:
        """
        Compute the full matrix result for one train and date.

        Args:
            train_model: Train number, e.g. "787"
            journey_date: Journey date as ``DD-MMM-YYYY``
            api_date: Same date as ISO ``YYYY-MM-DD``
            on_progress: Called with (message, percent) at each milestone
            cancel_token: Aborts the computation when cancelled

        Returns:
            MatrixResult with fare matrices and schedule metadata

        Raises:
            ScheduleNotRunningOnDate: If the train does not run that weekday
            CredentialsMissing: If credentials are absent when pair queries start
            NoDataFound: If the schedule is empty or no class has any seat
            Canceled: If the token is cancelled
        """
        token = cancel_token or CancelToken()

        with service_span(
            "matrix.compute", "matrix-service", train_model=train_model, journey_date=journey_date
        ) as span:
            token.raise_if_cancelled()
            _report(on_progress, "Fetching train information...", 2)
            schedule = await self.fetch_schedule(train_model, api_date, token)

            _report(on_progress, "Validating train schedule...", 4)
            token.raise_if_cancelled()
            validate_running_day(schedule, journey_date)

            _report(on_progress, "Processing route information...", 6)
            token.raise_if_cancelled()
            stops = correct_halts(schedule.stops, self.max_halt_minutes)

            _report(on_progress, "Calculating station dates...", 8)
            base_date = parse_display_date(journey_date)
            stops, station_dates = resolve_station_dates(stops, base_date, self.rollover_max_gap_hours)

            _report(on_progress, "Preparing route data...", 10)
            token.raise_if_cancelled()
            stations = schedule.stations

            _report(on_progress, "Validating credentials...", 12)
            token.raise_if_cancelled()
            self.client.require_credentials()

            _report(on_progress, "Processing routes...", 15)
            fare_matrices = await self.build_fare_matrix(train_model, stations, station_dates, token, on_progress)

            has_data_map = compute_has_data(fare_matrices)
            if not any(has_data_map.values()):
                raise NoDataFound(NO_SEATS_MESSAGE)

            _report(on_progress, "Finalizing results...", 87)
            token.raise_if_cancelled()

            has_segmented_dates, next_day_str, prev_day_str = adjacent_day_labels(station_dates, base_date)
            span.set_attribute("matrix.stations", len(stations))
            span.set_attribute("matrix.segmented_dates", has_segmented_dates)

            result = MatrixResult(
                train_model=train_model,
                train_name=schedule.train_name,
                date=journey_date,
                stations=stations,
                seat_types=list(SEAT_CLASSES),
                fare_matrices=fare_matrices,
                has_data_map=has_data_map,
                routes=stops,
                days=schedule.running_days,
                total_duration=schedule.total_duration,
                station_dates=station_dates,
                station_dates_formatted=formatted_station_dates(station_dates),
                has_segmented_dates=has_segmented_dates,
                next_day_str=next_day_str,
                prev_day_str=prev_day_str,
            )

            _report(on_progress, "Complete!", 100)
            logger.info(
                "matrix_computed",
                train_model=train_model,
                journey_date=journey_date,
                stations=len(stations),
                available_classes=[str(seat_class) for seat_class in result.available_seat_types()],
            )
            return result
