"""Railway account credentials.

The auth token and device key are owned by an external collaborator (the
app's encrypted store, request headers, or environment). The core only
reads them through a ``CredentialsProvider`` and refuses to start
authenticated work when either value is missing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from seatmatrix.core.config import settings
from seatmatrix.core.errors import CredentialsMissing


@dataclass(frozen=True)
class Credentials:
    """Bearer token and device key for authenticated railway API calls."""

    auth_token: str
    device_key: str

    def headers(self) -> dict[str, str]:
        """HTTP headers the railway API expects on authenticated calls."""
        return {
            "Authorization": f"Bearer {self.auth_token}",
            "x-device-key": self.device_key,
        }


class CredentialsProvider(Protocol):
    """Anything that can hand out the currently stored credentials."""

    def get_credentials(self) -> tuple[str | None, str | None]: ...


class SettingsCredentialsProvider:
    """Reads credentials from application settings (env / .env)."""

    def get_credentials(self) -> tuple[str | None, str | None]:
        return settings.RAILWAY_AUTH_TOKEN, settings.RAILWAY_DEVICE_KEY


class StaticCredentialsProvider:
    """Credentials supplied directly, e.g. from request headers."""

    def __init__(self, auth_token: str | None, device_key: str | None) -> None:
        self.auth_token = auth_token
        self.device_key = device_key

    def get_credentials(self) -> tuple[str | None, str | None]:
        return self.auth_token, self.device_key


def validate_credentials(provider: CredentialsProvider) -> Credentials:
    """
    Load and validate credentials before any authenticated call.

    Args:
        provider: Source of the stored token and device key

    Returns:
        Credentials with surrounding whitespace removed

    Raises:
        CredentialsMissing: If either value is absent or blank

    Examples:
        >>> validate_credentials(StaticCredentialsProvider(" tok ", "key")).auth_token
        'tok'

        >>> validate_credentials(StaticCredentialsProvider("tok", "  "))
        Traceback (most recent call last):
            ...
        seatmatrix.core.errors.CredentialsMissing: Please add your Bangladesh Railway auth token and device key to continue.
    """
    auth_token, device_key = provider.get_credentials()
    auth_token = (auth_token or "").strip()
    device_key = (device_key or "").strip()
    if not auth_token or not device_key:
        raise CredentialsMissing()
    return Credentials(auth_token=auth_token, device_key=device_key)
