"""Tests for the railway API client."""

import json

import httpx
import pytest
from opentelemetry.trace import SpanKind, StatusCode
from seatmatrix.core.concurrency import CancelToken
from seatmatrix.core.credentials import StaticCredentialsProvider
from seatmatrix.core.errors import (
    AuthError,
    AuthTokenExpired,
    Canceled,
    CredentialsMissing,
    DeviceKeyExpired,
    NetworkFailure,
    NoDataFound,
    RateLimited,
    RequestRejected,
    ServerUnavailable,
    UnexpectedResponse,
)
from seatmatrix.schemas.matrix import SeatClass
from seatmatrix.services.railway_client import RailwayClient

from tests.helpers.otel import assert_span_status, spans_named
from tests.helpers.railway_api import (
    PROFILE_PATH,
    SEARCH_TRIPS_PATH,
    SEAT_LAYOUT_PATH,
    TEST_BASE_URL,
    TRAIN_ROUTES_PATH,
    RailwayApiStub,
    error_body,
    schedule_body,
    seat_json,
    seat_layout_body,
    seat_type_json,
    stop,
    trip_json,
    trips_body,
)


class TestStatusHandling:
    """Tests for status code mapping and retries."""

    @pytest.mark.asyncio
    async def test_sends_credentials_headers(self, railway_client: RailwayClient, railway_api: RailwayApiStub) -> None:
        """Test that authenticated calls carry the bearer token and device key."""
        railway_api.on(PROFILE_PATH, {"data": {"display_name": "Test User"}})

        await railway_client.verify_credentials()

        request = railway_api.requests_to(PROFILE_PATH)[0]
        assert request.headers["Authorization"] == "Bearer test-auth-token"
        assert request.headers["x-device-key"] == "test-device-key"

    @pytest.mark.asyncio
    async def test_missing_credentials_send_nothing(self, railway_api: RailwayApiStub) -> None:
        """Test that an authenticated call without credentials fails before any request."""
        async with RailwayClient(
            StaticCredentialsProvider(None, "key"),
            base_url=TEST_BASE_URL,
            transport=httpx.MockTransport(railway_api),
        ) as client:
            with pytest.raises(CredentialsMissing):
                await client.verify_credentials()

        assert railway_api.requests == []

    @pytest.mark.asyncio
    async def test_no_provider_means_missing_credentials(self) -> None:
        """Test that a client without a credentials provider refuses authenticated work."""
        async with RailwayClient(base_url=TEST_BASE_URL) as client:
            with pytest.raises(CredentialsMissing):
                client.require_credentials()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("messages", "expected"),
        [
            (["Invalid User Access Token!"], AuthTokenExpired),
            (["You are not authorized for this request"], DeviceKeyExpired),
            (["Please login first"], DeviceKeyExpired),
            (None, AuthTokenExpired),
        ],
    )
    async def test_unauthorized_classified(
        self,
        railway_client: RailwayClient,
        railway_api: RailwayApiStub,
        messages: list[str] | None,
        expected: type[AuthError],
    ) -> None:
        """Test that 401 bodies are classified into token or device-key expiry."""
        body = error_body(messages) if messages is not None else {}
        railway_api.on(PROFILE_PATH, httpx.Response(401, json=body))

        with pytest.raises(expected):
            await railway_client.verify_credentials()

        assert len(railway_api.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [403, 429])
    async def test_rate_limits_not_retried(
        self, railway_client: RailwayClient, railway_api: RailwayApiStub, status_code: int
    ) -> None:
        """Test that 403 and 429 raise RateLimited after a single attempt."""
        railway_api.on(PROFILE_PATH, httpx.Response(status_code))

        with pytest.raises(RateLimited):
            await railway_client.verify_credentials()

        assert len(railway_api.requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_retried_then_succeeds(
        self, railway_client: RailwayClient, railway_api: RailwayApiStub
    ) -> None:
        """Test that a 5xx followed by success is transparent to the caller."""
        railway_api.on_sequence(
            PROFILE_PATH,
            [httpx.Response(502), httpx.Response(200, json={"data": {"display_name": "Test User"}})],
        )

        profile = await railway_client.verify_credentials()

        assert profile == {"display_name": "Test User"}
        assert len(railway_api.requests) == 2

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(
        self, railway_client: RailwayClient, railway_api: RailwayApiStub
    ) -> None:
        """Test that persistent 5xx raises ServerUnavailable after 1 + retries attempts."""
        railway_api.on(PROFILE_PATH, httpx.Response(503))

        with pytest.raises(ServerUnavailable):
            await railway_client.verify_credentials()

        assert len(railway_api.requests) == 2

    @pytest.mark.asyncio
    async def test_network_failure_retried_then_raised(self, railway_api: RailwayApiStub) -> None:
        """Test that transport errors are retried and then reported as NetworkFailure."""
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ConnectError("connection refused", request=request)

        async with RailwayClient(
            StaticCredentialsProvider("t", "k"),
            base_url=TEST_BASE_URL,
            server_error_retries=2,
            transport=httpx.MockTransport(handler),
        ) as client:
            with pytest.raises(NetworkFailure):
                await client.verify_credentials()

        assert attempts == 3

    @pytest.mark.asyncio
    async def test_other_status_is_unexpected(self, railway_client: RailwayClient, railway_api: RailwayApiStub) -> None:
        """Test that other non-2xx statuses raise UnexpectedResponse with the status."""
        railway_api.on(PROFILE_PATH, httpx.Response(418))

        with pytest.raises(UnexpectedResponse) as exc_info:
            await railway_client.verify_credentials()

        assert exc_info.value.status_code == 418

    @pytest.mark.asyncio
    async def test_non_json_body_is_unexpected(
        self, railway_client: RailwayClient, railway_api: RailwayApiStub
    ) -> None:
        """Test that a 2xx body that is not JSON is reported, not crashed on."""
        railway_api.on(PROFILE_PATH, httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(UnexpectedResponse):
            await railway_client.verify_credentials()

    @pytest.mark.asyncio
    async def test_cancelled_token_sends_nothing(
        self, railway_client: RailwayClient, railway_api: RailwayApiStub
    ) -> None:
        """Test that a cancelled token stops the call before it is sent."""
        token = CancelToken()
        token.cancel()

        with pytest.raises(Canceled):
            await railway_client.verify_credentials(token)

        assert railway_api.requests == []

    @pytest.mark.asyncio
    async def test_request_span(
        self, railway_client: RailwayClient, railway_api: RailwayApiStub, otel_enabled_provider: tuple
    ) -> None:
        """Test that each call records a CLIENT span with status code and attempt count."""
        _, exporter = otel_enabled_provider
        railway_api.on_sequence(
            PROFILE_PATH,
            [httpx.Response(500), httpx.Response(200, json={"data": {"name": "x"}})],
        )

        await railway_client.verify_credentials()

        [span] = spans_named(exporter, "railway.profile")
        assert span.kind == SpanKind.CLIENT
        assert span.attributes["peer.service"] == "railway-api"
        assert span.attributes["http.status_code"] == 200
        assert span.attributes["railway.attempts"] == 2
        assert_span_status(span, StatusCode.OK)


class TestFetchTrainRoutes:
    """Tests for fetch_train_routes."""

    @pytest.mark.asyncio
    async def test_unauthenticated_schedule_lookup(self, railway_api: RailwayApiStub) -> None:
        """Test that schedules are fetched without credentials."""
        railway_api.on(
            TRAIN_ROUTES_PATH,
            schedule_body([stop("Dhaka", None, "07:00 am BST"), stop("Chattogram", "12:15 pm BST", None)]),
        )

        async with RailwayClient(base_url=TEST_BASE_URL, transport=httpx.MockTransport(railway_api)) as client:
            payload = await client.fetch_train_routes("787", "2025-09-28")

        assert payload.train_name == "SONAR BANGLA EXPRESS (787)"
        assert [route.city for route in payload.routes or []] == ["Dhaka", "Chattogram"]
        request = railway_api.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"model": "787", "departure_date_time": "2025-09-28"}
        assert "Authorization" not in request.headers


class TestSearchTrips:
    """Tests for search_trips."""

    @pytest.mark.asyncio
    async def test_query_parameters(self, railway_client: RailwayClient, railway_api: RailwayApiStub) -> None:
        """Test that the listing is requested with the journey date and seat class."""
        railway_api.on(SEARCH_TRIPS_PATH, trips_body([trip_json()]))

        trips = await railway_client.search_trips("Dhaka", "Chattogram", "28-Sep-2025", "S_CHAIR")

        assert len(trips) == 1
        params = railway_api.requests[0].url.params
        assert params["from_city"] == "Dhaka"
        assert params["to_city"] == "Chattogram"
        assert params["date_of_journey"] == "28-Sep-2025"
        assert params["seat_class"] == "S_CHAIR"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json=trips_body([])),
            httpx.Response(422, json=error_body(["No trips available"])),
        ],
    )
    async def test_no_trains(
        self, railway_client: RailwayClient, railway_api: RailwayApiStub, response: httpx.Response
    ) -> None:
        """Test that an empty listing or a 422 means no trains."""
        railway_api.on(SEARCH_TRIPS_PATH, response)

        with pytest.raises(NoDataFound, match="No trains found for the given criteria."):
            await railway_client.search_trips("Dhaka", "Chattogram", "28-Sep-2025", "S_CHAIR")


class TestFetchPairFares:
    """Tests for fetch_pair_fares."""

    @pytest.mark.asyncio
    async def test_cells_for_every_class(self, railway_client: RailwayClient, railway_api: RailwayApiStub) -> None:
        """Test that sold classes are filled in, berths get the surcharge and unsold classes are zero."""
        railway_api.on(
            SEARCH_TRIPS_PATH,
            trips_body(
                [
                    trip_json(train_model="702", trip_number="SUBORNO EXPRESS (702)"),
                    trip_json(
                        seat_types=[
                            seat_type_json("S_CHAIR", online=5, offline=2, fare=405.0, vat=0.0),
                            seat_type_json("AC_B", online=1, fare=1200.0, vat=180.0),
                        ]
                    ),
                ]
            ),
        )

        cells = await railway_client.fetch_pair_fares("787", "28-Sep-2025", "Dhaka", "Chattogram")

        assert set(cells) == set(SeatClass)
        assert cells[SeatClass.S_CHAIR].online == 5
        assert cells[SeatClass.S_CHAIR].offline == 2
        assert cells[SeatClass.S_CHAIR].fare == 405.0
        assert cells[SeatClass.AC_B].fare == 1250.0
        assert cells[SeatClass.AC_B].vat_amount == 180.0
        assert cells[SeatClass.SNIGDHA].total_seats == 0
        assert railway_api.requests[0].url.params["seat_class"] == "SHULOV"

    @pytest.mark.asyncio
    async def test_train_missing_from_listing(
        self, railway_client: RailwayClient, railway_api: RailwayApiStub
    ) -> None:
        """Test that a listing without the requested train is NoDataFound."""
        railway_api.on(SEARCH_TRIPS_PATH, trips_body([trip_json(train_model="702")]))

        with pytest.raises(NoDataFound, match="Train not found"):
            await railway_client.fetch_pair_fares("787", "28-Sep-2025", "Dhaka", "Chattogram")


class TestFetchSeatLayout:
    """Tests for fetch_seat_layout."""

    @pytest.mark.asyncio
    async def test_flattens_layout(self, railway_client: RailwayClient, railway_api: RailwayApiStub) -> None:
        """Test that the layout grid comes back as a flat seat list."""
        railway_api.on(
            SEAT_LAYOUT_PATH,
            seat_layout_body([[seat_json("KA-1", 1), seat_json("KA-2", 2, 3)], [{"seat_number": ""}]]),
        )

        seats = await railway_client.fetch_seat_layout(11, 22)

        assert [seat.seat_number for seat in seats] == ["KA-1", "KA-2"]
        params = railway_api.requests[0].url.params
        assert (params["trip_id"], params["trip_route_id"]) == ("11", "22")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("messages", "message", "error_key"),
        [
            ({"message": "Limit reached", "errorKey": "OrderLimitExceeded"}, "Limit reached", "OrderLimitExceeded"),
            (["Multiple order attempt detected"], "Multiple order attempt detected", ""),
        ],
    )
    async def test_rejection_parsed(
        self,
        railway_client: RailwayClient,
        railway_api: RailwayApiStub,
        messages: list[str] | dict[str, str],
        message: str,
        error_key: str,
    ) -> None:
        """Test that 422 refusals carry their message and errorKey."""
        railway_api.on(SEAT_LAYOUT_PATH, httpx.Response(422, json=error_body(messages)))

        with pytest.raises(RequestRejected) as exc_info:
            await railway_client.fetch_seat_layout(1, 1)

        assert exc_info.value.message == message
        assert exc_info.value.error_key == error_key


class TestVerifyCredentials:
    """Tests for verify_credentials."""

    @pytest.mark.asyncio
    async def test_empty_profile_fails_verification(
        self, railway_client: RailwayClient, railway_api: RailwayApiStub
    ) -> None:
        """Test that a 200 without a profile is still a verification failure."""
        railway_api.on(PROFILE_PATH, {"data": None})

        with pytest.raises(AuthError, match="Verification failed"):
            await railway_client.verify_credentials()
