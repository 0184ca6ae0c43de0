"""Pytest configuration and fixtures."""

import os

# Set DEBUG=true for all tests BEFORE any seatmatrix imports
# This must be done before seatmatrix.core.config loads settings
os.environ["DEBUG"] = "true"
os.environ["OTEL_SDK_DISABLED"] = "true"
os.environ["OTEL_ENABLED"] = "false"
os.environ.pop("SECRET_RAILWAY_AUTH_TOKEN", None)
os.environ.pop("SECRET_RAILWAY_DEVICE_KEY", None)

from collections.abc import AsyncGenerator, Generator

import httpx
import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from seatmatrix.api.dependencies import get_cancel_token, get_credentials_provider, get_railway_client
from seatmatrix.core.concurrency import CancelToken, ConcurrencyPool
from seatmatrix.core.credentials import CredentialsProvider, StaticCredentialsProvider
from seatmatrix.main import app
from seatmatrix.services.railway_client import RailwayClient

from tests.fixtures.otel import otel_enabled_provider, reset_telemetry_providers  # noqa: F401
from tests.helpers.railway_api import TEST_BASE_URL, RailwayApiStub


@pytest.fixture
def credentials_provider() -> StaticCredentialsProvider:
    """Valid-looking credentials; the stubbed API accepts anything."""
    return StaticCredentialsProvider("test-auth-token", "test-device-key")


@pytest.fixture
def railway_api() -> RailwayApiStub:
    """
    In-process stand-in for the railway API.

    Register handlers with ``railway_api.on(path, ...)`` and inspect
    ``railway_api.requests`` afterwards.
    """
    return RailwayApiStub()


@pytest.fixture
async def railway_client(
    railway_api: RailwayApiStub,
    credentials_provider: StaticCredentialsProvider,
) -> AsyncGenerator[RailwayClient]:
    """
    RailwayClient wired to the stub through ``httpx.MockTransport``.

    Yields:
        Client with one server-error retry and a 50 Taka berth surcharge
    """
    async with RailwayClient(
        credentials_provider,
        base_url=TEST_BASE_URL,
        server_error_retries=1,
        berth_surcharge=50.0,
        transport=httpx.MockTransport(railway_api),
    ) as client:
        yield client


@pytest.fixture
def pool() -> ConcurrencyPool:
    """Small pool so concurrency limits are exercised by short unit lists."""
    return ConcurrencyPool(max_concurrent=3)


@pytest.fixture
def client(railway_api: RailwayApiStub) -> Generator[TestClient]:
    """
    FastAPI test client whose railway client talks to the stub.

    Request headers still decide which credentials are used.

    Yields:
        Synchronous test client with app context
    """

    async def override_get_railway_client(
        credentials_provider: CredentialsProvider = Depends(get_credentials_provider),
    ) -> AsyncGenerator[RailwayClient]:
        async with RailwayClient(
            credentials_provider,
            base_url=TEST_BASE_URL,
            transport=httpx.MockTransport(railway_api),
        ) as railway_client:
            yield railway_client

    app.dependency_overrides[get_railway_client] = override_get_railway_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def cancelled_requests(client: TestClient) -> TestClient:
    """Test client whose requests behave as if the caller had already disconnected."""

    async def cancelled_token() -> CancelToken:
        token = CancelToken()
        token.cancel()
        return token

    app.dependency_overrides[get_cancel_token] = cancelled_token
    return client
