"""Domain exceptions for railway seat and fare lookups.

Every failure the service can report to a user is a ``RailwayError`` with a
human-readable ``user_message`` and a stable machine ``code``. Auth-family
errors set ``requires_credentials`` so front ends can send the user to
credential entry instead of just showing the message.
"""

from __future__ import annotations

from typing import Any


class RailwayError(Exception):
    """Base exception for railway service errors."""

    code = "railway_error"
    requires_credentials = False
    default_message = "Something went wrong while talking to Bangladesh Railway."

    def __init__(self, message: str | None = None) -> None:
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


# Auth family


class AuthError(RailwayError):
    """Base for errors the user can only fix by entering new credentials."""

    code = "auth_error"
    requires_credentials = True
    default_message = "Your Bangladesh Railway credentials are not valid. Please update them."


class CredentialsMissing(AuthError):
    """Raised when no auth token or device key is stored."""

    code = "credentials_missing"
    default_message = "Please add your Bangladesh Railway auth token and device key to continue."


class AuthTokenExpired(AuthError):
    """Raised when the remote service rejects the bearer token."""

    code = "auth_token_expired"
    default_message = "Your auth token has expired. Please update it and try again."


class DeviceKeyExpired(AuthError):
    """Raised when the remote service rejects the device key."""

    code = "device_key_expired"
    default_message = "Your device key has expired. Please update it and try again."


# Input / data problems


class InvalidTravelDate(RailwayError):
    """Raised when a travel date string cannot be parsed."""

    code = "invalid_travel_date"

    def __init__(self, value: str, expected_format: str) -> None:
        self.value = value
        self.expected_format = expected_format
        super().__init__(f"Invalid date format: {value}. Expected {expected_format} format.")


class ScheduleNotRunningOnDate(RailwayError):
    """Raised when the train does not run on the requested weekday."""

    code = "schedule_not_running"

    def __init__(self, train_name: str, weekday: str) -> None:
        self.train_name = train_name
        self.weekday = weekday
        super().__init__(f"{train_name} does not run on {weekday}.")


class NoDataFound(RailwayError):
    """Raised when a schedule, train or any seat at all could not be found."""

    code = "no_data_found"
    default_message = "No information found for this train. Please try another train or date."


class SeatInfoUnavailable(RailwayError):
    """Raised when every seat-layout lookup on a route was refused.

    ``details`` holds the per-train results gathered before giving up so
    callers can still show what was refused and why.
    """

    code = "seat_info_unavailable"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


# Transport / remote service


class RequestRejected(RailwayError):
    """Raised when the remote service answers 422 with a business-rule message."""

    code = "request_rejected"

    def __init__(self, message: str, error_key: str = "") -> None:
        self.message = message
        self.error_key = error_key
        super().__init__(message)


class RateLimited(RailwayError):
    """Raised on HTTP 429/403. Never retried."""

    code = "rate_limited"
    default_message = "You are requesting too frequently. Please wait and try after some time."


class ServerUnavailable(RailwayError):
    """Raised when the remote service keeps answering 5xx after retries."""

    code = "server_unavailable"
    default_message = (
        "We're unable to connect to the Bangladesh Railway website right now. Please try again in a few minutes."
    )


class NetworkFailure(RailwayError):
    """Raised when the remote service cannot be reached at all."""

    code = "network_failure"
    default_message = "Network connection failed. Please check your internet connection."


class UnexpectedResponse(RailwayError):
    """Raised for any other non-2xx response."""

    code = "unexpected_response"

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"HTTP error! status: {status_code}")


class Canceled(RailwayError):
    """Raised when the caller cancels a long operation. Not a user-facing failure."""

    code = "canceled"
    default_message = "Operation canceled"
