"""Async client for the Bangladesh Railway booking API.

Wraps ``httpx.AsyncClient`` with the status handling every endpoint shares:

- 429 and 403 are rate limits and are never retried
- 401 is classified into token or device-key expiry from the error body
- 422 carries a business-rule refusal (message plus optional ``errorKey``)
- 5xx and transport failures are retried a small, configured number of times

Every call runs inside a CLIENT span and can be aborted through a
``CancelToken``.
"""

from __future__ import annotations

from typing import Any, Self

import httpx
import structlog
from opentelemetry.trace import SpanKind

from seatmatrix.core.concurrency import CancelToken
from seatmatrix.core.config import settings
from seatmatrix.core.credentials import Credentials, CredentialsProvider, validate_credentials
from seatmatrix.core.errors import (
    AuthError,
    AuthTokenExpired,
    CredentialsMissing,
    DeviceKeyExpired,
    NetworkFailure,
    NoDataFound,
    RateLimited,
    RequestRejected,
    ServerUnavailable,
    UnexpectedResponse,
)
from seatmatrix.core.telemetry import service_span
from seatmatrix.helpers.seat_layout import flatten_seat_layout
from seatmatrix.schemas.availability import RawSeat
from seatmatrix.schemas.matrix import BERTH_CLASSES, SEAT_CLASSES, FareCell, SeatClass
from seatmatrix.schemas.railway import SeatLayoutFloorPayload, TrainRoutesPayload, TripPayload

logger = structlog.get_logger(__name__)

RAILWAY_PEER_SERVICE = "railway-api"

# seat_class only narrows sorting upstream; every class is returned
PAIR_FARE_SEAT_CLASS = "SHULOV"

NO_TRAINS_FOUND_MESSAGE = "No trains found for the given criteria."
TRAIN_NOT_FOUND_MESSAGE = "Train not found"

_DEVICE_KEY_MARKERS = ("You are not authorized for this request", "Please login first")
_TOKEN_MARKER = "Invalid User Access Token!"


def _error_messages(response: httpx.Response) -> list[str] | dict[str, Any] | None:
    """Extract ``error.messages`` from an error body, if the body is JSON."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict) or not isinstance(body.get("error"), dict):
        return None
    messages = body["error"].get("messages")
    return messages if isinstance(messages, list | dict) else None


def classify_unauthorized(messages: list[str] | dict[str, Any] | None) -> AuthError:
    """
    Decide which credential a 401 response is complaining about.

    Examples:
        >>> type(classify_unauthorized(["Invalid User Access Token!"])).__name__
        'AuthTokenExpired'

        >>> type(classify_unauthorized(["Please login first"])).__name__
        'DeviceKeyExpired'

        >>> type(classify_unauthorized(None)).__name__
        'AuthTokenExpired'
    """
    if isinstance(messages, dict):
        messages = [str(messages.get("message", ""))]
    for message in messages or []:
        if any(marker in str(message) for marker in _DEVICE_KEY_MARKERS):
            return DeviceKeyExpired()
        if _TOKEN_MARKER in str(message):
            return AuthTokenExpired()
    return AuthTokenExpired()


def parse_rejection(messages: list[str] | dict[str, Any] | None) -> RequestRejected:
    """
    Build a RequestRejected from a 422 body.

    Examples:
        >>> parse_rejection({"message": "Limit reached", "errorKey": "OrderLimitExceeded"}).error_key
        'OrderLimitExceeded'

        >>> parse_rejection(["Multiple order attempt detected"]).message
        'Multiple order attempt detected'
    """
    if isinstance(messages, list) and messages:
        return RequestRejected(str(messages[0]))
    if isinstance(messages, dict):
        return RequestRejected(
            str(messages.get("message") or "Unable to fetch seat layout"),
            error_key=str(messages.get("errorKey") or ""),
        )
    return RequestRejected("Unable to fetch seat layout")


class RailwayClient:
    """
    Client for the railway API endpoints used for schedules, fares and seats.

    Use as an async context manager so the underlying connection pool is
    closed::

        async with RailwayClient(SettingsCredentialsProvider()) as client:
            schedule = await client.fetch_train_routes("787", "2025-09-28")

    Args:
        credentials_provider: Source of the token and device key for
            authenticated endpoints, read on every authenticated call. The
            schedule endpoint works without them.
        base_url: API root; defaults to settings
        timeout: Per-request timeout in seconds; defaults to settings
        server_error_retries: Extra attempts after a 5xx or transport error
        berth_surcharge: Added to berth class fares at ingestion
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        credentials_provider: CredentialsProvider | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        server_error_retries: int | None = None,
        berth_surcharge: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.credentials_provider = credentials_provider
        self.server_error_retries = (
            server_error_retries if server_error_retries is not None else settings.RAILWAY_SERVER_ERROR_RETRIES
        )
        self.berth_surcharge = berth_surcharge if berth_surcharge is not None else settings.BERTH_SURCHARGE
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.RAILWAY_API_BASE_URL,
            timeout=timeout if timeout is not None else settings.RAILWAY_REQUEST_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def require_credentials(self) -> Credentials:
        """
        Load and validate credentials for an authenticated call.

        Raises:
            CredentialsMissing: If there is no provider or it has no usable values
        """
        if self.credentials_provider is None:
            raise CredentialsMissing()
        return validate_credentials(self.credentials_provider)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        authenticated: bool = True,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> dict[str, Any]:
        """
        Send one request, retrying server and transport failures.

        Returns:
            Decoded JSON body of a 2xx response

        Raises:
            RailwayError: Mapped from the response status (see module docstring)
            Canceled: If the token is cancelled before or during the call
        """
        token = cancel_token or CancelToken()
        headers = self.require_credentials().headers() if authenticated else {}
        max_attempts = 1 + self.server_error_retries

        with service_span(
            f"railway.{operation}",
            RAILWAY_PEER_SERVICE,
            kind=SpanKind.CLIENT,
            **{"http.method": method, "http.route": path},
        ) as span:
            for attempt in range(1, max_attempts + 1):
                token.raise_if_cancelled()
                try:
                    response = await token.guard(
                        self._client.request(method, path, params=params, json=json, headers=headers)
                    )
                except httpx.TransportError as e:
                    if attempt < max_attempts:
                        logger.warning("railway_request_retry", operation=operation, attempt=attempt, error=str(e))
                        continue
                    logger.error("railway_network_failure", operation=operation, attempts=attempt, error=str(e))
                    raise NetworkFailure() from e

                span.set_attribute("http.status_code", response.status_code)
                span.set_attribute("railway.attempts", attempt)

                if response.status_code >= httpx.codes.INTERNAL_SERVER_ERROR:
                    if attempt < max_attempts:
                        logger.warning(
                            "railway_request_retry",
                            operation=operation,
                            attempt=attempt,
                            status_code=response.status_code,
                        )
                        continue
                    logger.error("railway_server_unavailable", operation=operation, status_code=response.status_code)
                    raise ServerUnavailable()

                self._raise_for_status(response, operation)
                try:
                    body = response.json()
                except ValueError as e:
                    raise UnexpectedResponse(response.status_code) from e
                return body if isinstance(body, dict) else {}

        # Unreachable: the loop either returns or raises
        raise ServerUnavailable()

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str) -> None:
        status_code = response.status_code
        if status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise RateLimited()
        if status_code == httpx.codes.FORBIDDEN:
            raise RateLimited("Rate limit exceeded. Please try again later.")
        if status_code == httpx.codes.UNAUTHORIZED:
            error = classify_unauthorized(_error_messages(response))
            logger.warning("railway_unauthorized", operation=operation, error_code=error.code)
            raise error
        if status_code == httpx.codes.UNPROCESSABLE_ENTITY:
            raise parse_rejection(_error_messages(response))
        if not response.is_success:
            raise UnexpectedResponse(status_code)

    # ==================== Endpoints ====================

    async def fetch_train_routes(
        self,
        train_model: str,
        departure_date: str,
        cancel_token: CancelToken | None = None,
    ) -> TrainRoutesPayload:
        """
        Fetch a train's stop schedule. No credentials needed.

        Args:
            train_model: Train number, e.g. "787"
            departure_date: ISO date, e.g. "2025-09-28"
        """
        body = await self._request(
            "POST",
            "/train-routes",
            operation="train_routes",
            authenticated=False,
            json={"model": train_model, "departure_date_time": departure_date},
            cancel_token=cancel_token,
        )
        return TrainRoutesPayload.model_validate(body.get("data") or {})

    async def search_trips(
        self,
        origin: str,
        destination: str,
        journey_date: str,
        seat_class: str,
        cancel_token: CancelToken | None = None,
    ) -> list[TripPayload]:
        """
        List trains running between two stations on a date.

        Args:
            journey_date: ``DD-MMM-YYYY``

        Raises:
            NoDataFound: If no train runs (empty list or a 422 refusal)
        """
        try:
            body = await self._request(
                "GET",
                "/bookings/search-trips-v2",
                operation="search_trips",
                params={
                    "from_city": origin,
                    "to_city": destination,
                    "date_of_journey": journey_date,
                    "seat_class": seat_class,
                },
                cancel_token=cancel_token,
            )
        except RequestRejected as e:
            raise NoDataFound(NO_TRAINS_FOUND_MESSAGE) from e

        trains = [TripPayload.model_validate(train) for train in (body.get("data") or {}).get("trains") or []]
        if not trains:
            raise NoDataFound(NO_TRAINS_FOUND_MESSAGE)
        return trains

    async def fetch_pair_fares(
        self,
        train_model: str,
        journey_date: str,
        origin: str,
        destination: str,
        cancel_token: CancelToken | None = None,
    ) -> dict[SeatClass, FareCell]:
        """
        Seat counts and fares of every seat class of one train between two stops.

        Classes the train does not sell come back as zero cells. Berth
        classes have the berth surcharge added to their base fare.

        Raises:
            NoDataFound: If the train is not in the listing for this pair
        """
        trips = await self.search_trips(origin, destination, journey_date, PAIR_FARE_SEAT_CLASS, cancel_token)
        trip = next((trip for trip in trips if trip.train_model == train_model), None)
        if trip is None:
            raise NoDataFound(TRAIN_NOT_FOUND_MESSAGE)

        cells = {seat_class: FareCell() for seat_class in SEAT_CLASSES}
        for seat in trip.seat_types:
            if seat.type not in cells:
                continue
            seat_class = SeatClass(seat.type)
            fare = seat.fare + (self.berth_surcharge if seat_class in BERTH_CLASSES else 0)
            cells[seat_class] = FareCell(
                online=seat.seat_counts.online,
                offline=seat.seat_counts.offline,
                fare=fare,
                vat_amount=seat.vat_amount,
            )
        return cells

    async def fetch_seat_layout(
        self,
        trip_id: int | str,
        trip_route_id: int | str,
        cancel_token: CancelToken | None = None,
    ) -> list[RawSeat]:
        """
        Every seat of one seat class on one trip, flattened out of the layout grid.

        Raises:
            RequestRejected: If the API refuses the lookup (422)
        """
        body = await self._request(
            "GET",
            "/bookings/seat-layout",
            operation="seat_layout",
            params={"trip_id": trip_id, "trip_route_id": trip_route_id},
            cancel_token=cancel_token,
        )
        raw_floors = (body.get("data") or {}).get("seatLayout") or []
        return flatten_seat_layout(SeatLayoutFloorPayload.model_validate(floor) for floor in raw_floors)

    async def verify_credentials(self, cancel_token: CancelToken | None = None) -> dict[str, Any]:
        """
        Check the stored credentials against the account profile endpoint.

        Returns:
            The account profile

        Raises:
            AuthError: If the credentials are rejected or no profile comes back
        """
        body = await self._request("GET", "/auth/profile", operation="profile", cancel_token=cancel_token)
        profile = body.get("data")
        if not profile:
            raise AuthError("Verification failed. Unable to verify your credentials.")
        return profile
