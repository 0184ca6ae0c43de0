"""Mapping of domain errors to HTTP responses."""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from seatmatrix.core.errors import (
    AuthError,
    Canceled,
    InvalidTravelDate,
    NetworkFailure,
    NoDataFound,
    RailwayError,
    RateLimited,
    RequestRejected,
    ScheduleNotRunningOnDate,
    SeatInfoUnavailable,
    ServerUnavailable,
    UnexpectedResponse,
)

# Client closed request (nginx convention)
STATUS_CLIENT_CLOSED_REQUEST = 499
STATUS_UNPROCESSABLE = 422

# Checked in order; first match wins
_STATUS_BY_ERROR: list[tuple[type[RailwayError], int]] = [
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (InvalidTravelDate, status.HTTP_400_BAD_REQUEST),
    (ScheduleNotRunningOnDate, STATUS_UNPROCESSABLE),
    (RequestRejected, STATUS_UNPROCESSABLE),
    (NoDataFound, status.HTTP_404_NOT_FOUND),
    (SeatInfoUnavailable, status.HTTP_409_CONFLICT),
    (RateLimited, status.HTTP_429_TOO_MANY_REQUESTS),
    (ServerUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NetworkFailure, status.HTTP_502_BAD_GATEWAY),
    (UnexpectedResponse, status.HTTP_502_BAD_GATEWAY),
    (Canceled, STATUS_CLIENT_CLOSED_REQUEST),
]


def status_code_for(exc: RailwayError) -> int:
    """
    HTTP status code for a domain error.

    Examples:
        >>> status_code_for(NoDataFound())
        404
        >>> status_code_for(RailwayError())
        500
    """
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def railway_error_handler(request: Request, exc: RailwayError) -> JSONResponse:
    """Render a RailwayError as ``{detail, code, requires_credentials}``."""
    content = {
        "detail": exc.user_message,
        "code": exc.code,
        "requires_credentials": exc.requires_credentials,
    }
    if isinstance(exc, SeatInfoUnavailable):
        content["details"] = exc.details
    return JSONResponse(status_code=status_code_for(exc), content=content)
