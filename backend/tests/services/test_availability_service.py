"""Tests for point-to-point availability and train search."""

from collections.abc import Callable
from datetime import date

import httpx
import pytest
from freezegun import freeze_time
from seatmatrix.core.concurrency import ConcurrencyPool
from seatmatrix.core.errors import AuthTokenExpired, NoDataFound, SeatInfoUnavailable, ServerUnavailable
from seatmatrix.helpers.availability_errors import TRAIN_ORDER_LIMIT_MESSAGE
from seatmatrix.services.availability_service import AvailabilityService
from seatmatrix.services.railway_client import RailwayClient

from tests.helpers.railway_api import (
    SEARCH_TRIPS_PATH,
    SEAT_LAYOUT_PATH,
    RailwayApiStub,
    error_body,
    seat_json,
    seat_layout_body,
    seat_type_json,
    trip_json,
    trips_body,
)

JOURNEY_DATE = "28-Sep-2025"


@pytest.fixture
def availability_service(railway_client: RailwayClient, pool: ConcurrencyPool) -> AvailabilityService:
    return AvailabilityService(railway_client, pool)


@pytest.fixture
def two_trains(railway_api: RailwayApiStub) -> RailwayApiStub:
    """Two trains; trip 1 has two classes, trip 2 has one."""
    railway_api.on(
        SEARCH_TRIPS_PATH,
        trips_body(
            [
                trip_json(
                    seat_types=[
                        seat_type_json("S_CHAIR", online=2, trip_id=1, trip_route_id=10),
                        seat_type_json("SNIGDHA", online=1, trip_id=1, trip_route_id=11),
                    ],
                ),
                trip_json(
                    train_model="702",
                    trip_number="SUBORNO EXPRESS (702)",
                    departure="28 Sep, 11:00 PM",
                    arrival="29 Sep, 04:30 AM",
                    seat_types=[seat_type_json("S_CHAIR", online=1, trip_id=2, trip_route_id=20)],
                ),
            ]
        ),
    )
    return railway_api


def _layout_by_route(
    rejections: dict[str, httpx.Response] | None = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """Seat layout handler answering per trip_route_id, with optional refusals."""
    rejections = rejections or {}

    def handler(request: httpx.Request) -> httpx.Response:
        route_id = request.url.params["trip_route_id"]
        if route_id in rejections:
            return rejections[route_id]
        return httpx.Response(
            200,
            json=seat_layout_body([[seat_json("KA-2", 1), seat_json("KA-1", 1), seat_json("KHA-1", 2, 2)]]),
        )

    return handler


class TestCheckAvailability:
    """Tests for check_availability."""

    @pytest.mark.asyncio
    async def test_every_class_of_every_train(
        self, availability_service: AvailabilityService, two_trains: RailwayApiStub
    ) -> None:
        """Test that each seat class gets its categorized layout, keyed by trip number."""
        two_trains.on(SEAT_LAYOUT_PATH, _layout_by_route())

        trains = await availability_service.check_availability("Dhaka", "Chattogram", JOURNEY_DATE)

        assert list(trains) == ["SONAR BANGLA EXPRESS (787)", "SUBORNO EXPRESS (702)"]
        sonar = trains["SONAR BANGLA EXPRESS (787)"]
        assert [seat.seat_type for seat in sonar.seat_data] == ["S_CHAIR", "SNIGDHA"]
        layout = sonar.seat_data[0].layout
        assert layout is not None
        assert layout.available_seats == ["KA-1", "KA-2"]
        assert layout.booking_process_seats == ["KHA-1"]
        assert sonar.journey_duration == "5h 15m"
        assert trains["SUBORNO EXPRESS (702)"].journey_duration == "5h 30m"
        assert len(two_trains.requests_to(SEAT_LAYOUT_PATH)) == 3

    @pytest.mark.asyncio
    async def test_trains_sharing_a_name_kept_apart(
        self, availability_service: AvailabilityService, railway_api: RailwayApiStub
    ) -> None:
        """Test that two listed trains without a trip number each keep their own layouts."""
        railway_api.on(
            SEARCH_TRIPS_PATH,
            trips_body(
                [
                    trip_json(trip_number=None, seat_types=[seat_type_json("S_CHAIR", trip_id=1, trip_route_id=10)]),
                    trip_json(trip_number=None, seat_types=[seat_type_json("SNIGDHA", trip_id=2, trip_route_id=20)]),
                ]
            ),
        )

        def layout(request: httpx.Request) -> httpx.Response:
            if request.url.params["trip_route_id"] == "10":
                return httpx.Response(200, json=seat_layout_body([[seat_json("KA-2", 1), seat_json("KA-1", 1)]]))
            return httpx.Response(200, json=seat_layout_body([[seat_json("GA-1", 1)]]))

        railway_api.on(SEAT_LAYOUT_PATH, layout)

        trains = await availability_service.check_availability("Dhaka", "Chattogram", JOURNEY_DATE)

        assert list(trains) == ["Unknown Train", "Unknown Train #2"]
        seen = {
            key: [(seat.seat_type, seat.layout.available_seats if seat.layout else None) for seat in train.seat_data]
            for key, train in trains.items()
        }
        assert seen == {
            "Unknown Train": [("S_CHAIR", ["KA-1", "KA-2"])],
            "Unknown Train #2": [("SNIGDHA", ["GA-1"])],
        }
        assert len(railway_api.requests_to(SEAT_LAYOUT_PATH)) == 2

    @pytest.mark.asyncio
    async def test_partial_refusal(self, availability_service: AvailabilityService, two_trains: RailwayApiStub) -> None:
        """Test that a refused class is flagged while the rest of the train still reports."""
        two_trains.on(
            SEAT_LAYOUT_PATH,
            _layout_by_route(
                {"10": httpx.Response(422, json=error_body({"message": "Limit", "errorKey": "OrderLimitExceeded"}))}
            ),
        )

        trains = await availability_service.check_availability("Dhaka", "Chattogram", JOURNEY_DATE)

        sonar = trains["SONAR BANGLA EXPRESS (787)"]
        refused, ok = sonar.seat_data
        assert refused.rejected is True
        assert refused.error_info is not None
        assert refused.error_info.error_key == "OrderLimitExceeded"
        assert refused.error_message == TRAIN_ORDER_LIMIT_MESSAGE
        assert ok.rejected is False
        assert sonar.all_seats_unavailable is False

    @pytest.mark.asyncio
    async def test_every_lookup_refused(
        self, availability_service: AvailabilityService, two_trains: RailwayApiStub
    ) -> None:
        """Test that SeatInfoUnavailable carries a diagnosis and the per-train details."""
        two_trains.on(
            SEAT_LAYOUT_PATH,
            httpx.Response(422, json=error_body(["Multiple order attempt detected"])),
        )

        with pytest.raises(SeatInfoUnavailable) as exc_info:
            await availability_service.check_availability("Dhaka", "Chattogram", JOURNEY_DATE)

        error = exc_info.value
        assert error.user_message.startswith("You already have an active reservation process")
        assert set(error.details) == {"SONAR BANGLA EXPRESS (787)", "SUBORNO EXPRESS (702)"}
        assert error.details["SUBORNO EXPRESS (702)"]["all_seats_unavailable"] is True

    @pytest.mark.asyncio
    async def test_retry_time_from_wait(
        self, availability_service: AvailabilityService, two_trains: RailwayApiStub
    ) -> None:
        """Test that a refusal with a wait is turned into a retry time from now."""
        refusal = error_body(["Your purchase process is on-going. Please wait 5 minutes 10 seconds"])
        two_trains.on(SEAT_LAYOUT_PATH, httpx.Response(422, json=refusal))

        with freeze_time("2025-09-28 13:00:00"), pytest.raises(SeatInfoUnavailable) as exc_info:
            await availability_service.check_availability("Dhaka", "Chattogram", JOURNEY_DATE)

        assert "Please try again after 01:05:10 PM" in exc_info.value.user_message

    @pytest.mark.asyncio
    async def test_train_without_classes(
        self, availability_service: AvailabilityService, railway_api: RailwayApiStub
    ) -> None:
        """Test that a listing with no seat classes at all is reported as unavailable."""
        railway_api.on(SEARCH_TRIPS_PATH, trips_body([trip_json()]))

        with pytest.raises(SeatInfoUnavailable):
            await availability_service.check_availability("Dhaka", "Chattogram", JOURNEY_DATE)

    @pytest.mark.asyncio
    async def test_no_trains(self, availability_service: AvailabilityService, railway_api: RailwayApiStub) -> None:
        """Test that an empty listing is NoDataFound."""
        railway_api.on(SEARCH_TRIPS_PATH, trips_body([]))

        with pytest.raises(NoDataFound):
            await availability_service.check_availability("Dhaka", "Chattogram", JOURNEY_DATE)

    @pytest.mark.asyncio
    async def test_auth_failure_aborts(self, railway_client: RailwayClient, two_trains: RailwayApiStub) -> None:
        """Test that a credential failure on a layout lookup stops further lookups."""
        two_trains.on(SEAT_LAYOUT_PATH, httpx.Response(401, json=error_body(["Invalid User Access Token!"])))
        service = AvailabilityService(railway_client, ConcurrencyPool(1))

        with pytest.raises(AuthTokenExpired):
            await service.check_availability("Dhaka", "Chattogram", JOURNEY_DATE)

        assert len(two_trains.requests_to(SEAT_LAYOUT_PATH)) == 1

    @pytest.mark.asyncio
    async def test_progress(self, availability_service: AvailabilityService, two_trains: RailwayApiStub) -> None:
        """Test that progress starts at the search and ends at 100."""
        two_trains.on(SEAT_LAYOUT_PATH, _layout_by_route())
        progress: list[tuple[str, int]] = []

        await availability_service.check_availability(
            "Dhaka",
            "Chattogram",
            JOURNEY_DATE,
            on_progress=lambda message, percent: progress.append((message, percent)),
        )

        assert progress[0] == ("Searching for trains...", 5)
        assert progress[1] == ("Found 2 trains", 10)
        assert progress[-1] == ("Complete!", 100)


class TestSearchTrains:
    """Tests for search_trains."""

    @pytest.mark.asyncio
    async def test_merges_days_and_sorts_by_departure(
        self, availability_service: AvailabilityService, railway_api: RailwayApiStub
    ) -> None:
        """Test that trains from both searched days are merged by trip number and sorted by time of day."""
        listings = {
            "28-Sep-2025": [
                trip_json(trip_number="SUBORNO EXPRESS (702)", departure="28 Sep, 04:30 PM"),
                trip_json(trip_number="SONAR BANGLA EXPRESS (787)", departure="28 Sep, 07:00 AM"),
            ],
            "29-Sep-2025": [
                trip_json(trip_number="SONAR BANGLA EXPRESS (787)", departure="29 Sep, 07:05 AM"),
                trip_json(trip_number="TURNA (741)", departure="29 Sep, 11:30 PM"),
            ],
        }
        railway_api.on(
            SEARCH_TRIPS_PATH,
            lambda request: httpx.Response(200, json=trips_body(listings[request.url.params["date_of_journey"]])),
        )

        result = await availability_service.search_trains("Dhaka", "Chattogram", today=date(2025, 9, 20))

        assert result.dates == ["28-Sep-2025", "29-Sep-2025"]
        assert [train.trip_number for train in result.trains] == [
            "SONAR BANGLA EXPRESS (787)",
            "SUBORNO EXPRESS (702)",
            "TURNA (741)",
        ]
        assert result.trains[0].departure_time == "28 Sep, 07:00 AM"

    @pytest.mark.asyncio
    async def test_one_day_failing_is_tolerated(
        self, availability_service: AvailabilityService, railway_api: RailwayApiStub
    ) -> None:
        """Test that results from the day that worked are still returned."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["date_of_journey"] == "28-Sep-2025":
                return httpx.Response(503)
            return httpx.Response(200, json=trips_body([trip_json()]))

        railway_api.on(SEARCH_TRIPS_PATH, handler)

        result = await availability_service.search_trains("Dhaka", "Chattogram", today=date(2025, 9, 20))

        assert [train.trip_number for train in result.trains] == ["SONAR BANGLA EXPRESS (787)"]

    @pytest.mark.asyncio
    async def test_all_failed_prefers_auth_error(
        self, availability_service: AvailabilityService, railway_api: RailwayApiStub
    ) -> None:
        """Test that a credential failure is surfaced over other failures when every day failed."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["date_of_journey"] == "28-Sep-2025":
                return httpx.Response(503)
            return httpx.Response(401, json=error_body(["Invalid User Access Token!"]))

        railway_api.on(SEARCH_TRIPS_PATH, handler)

        with pytest.raises(AuthTokenExpired):
            await availability_service.search_trains("Dhaka", "Chattogram", today=date(2025, 9, 20))

    @pytest.mark.asyncio
    async def test_all_failed_without_auth_error(
        self, availability_service: AvailabilityService, railway_api: RailwayApiStub
    ) -> None:
        """Test that the first failure is raised when none of them is a credential failure."""
        railway_api.on(SEARCH_TRIPS_PATH, httpx.Response(503))

        with pytest.raises(ServerUnavailable):
            await availability_service.search_trains("Dhaka", "Chattogram", today=date(2025, 9, 20))

    @pytest.mark.asyncio
    async def test_dates_default_to_today(
        self, availability_service: AvailabilityService, railway_api: RailwayApiStub
    ) -> None:
        """Test that the searched dates are counted from the current day."""
        railway_api.on(SEARCH_TRIPS_PATH, trips_body([trip_json()]))

        with freeze_time("2025-09-20 10:00:00"):
            result = await availability_service.search_trains("Dhaka", "Chattogram")

        assert result.dates == ["28-Sep-2025", "29-Sep-2025"]
