"""Shared FastAPI dependencies."""

import asyncio
from collections.abc import AsyncGenerator

import structlog
from fastapi import Depends, Header, Request

from seatmatrix.core.concurrency import CancelToken
from seatmatrix.core.credentials import CredentialsProvider, SettingsCredentialsProvider, StaticCredentialsProvider
from seatmatrix.services.railway_client import RailwayClient

logger = structlog.get_logger(__name__)

# How often a long request checks whether its client has gone away
DISCONNECT_POLL_SECONDS = 0.5


def get_credentials_provider(
    authorization: str | None = Header(None, description="Railway auth token as 'Bearer <token>'"),
    x_device_key: str | None = Header(None, description="Railway device key"),
) -> CredentialsProvider:
    """
    Credentials for this request.

    Request headers win when either is present; otherwise the server's
    configured credentials are used.
    """
    if authorization or x_device_key:
        auth_token = authorization.removeprefix("Bearer ").strip() if authorization else None
        return StaticCredentialsProvider(auth_token, x_device_key)
    return SettingsCredentialsProvider()


async def get_railway_client(
    credentials_provider: CredentialsProvider = Depends(get_credentials_provider),
) -> AsyncGenerator[RailwayClient]:
    """Railway API client scoped to one request."""
    async with RailwayClient(credentials_provider) as client:
        yield client


async def watch_disconnect(
    request: Request,
    token: CancelToken,
    poll_seconds: float = DISCONNECT_POLL_SECONDS,
) -> None:
    """Cancel ``token`` once the client that sent ``request`` disconnects."""
    while not token.cancelled:
        if await request.is_disconnected():
            logger.info("client_disconnected", method=request.method, path=request.url.path)
            token.cancel()
            return
        await asyncio.sleep(poll_seconds)


async def get_cancel_token(request: Request) -> AsyncGenerator[CancelToken]:
    """
    Cancellation token for one request.

    A background watcher cancels the token when the client disconnects, so
    queued railway calls are never dispatched for an answer nobody will read.
    The watcher stops with the request.
    """
    token = CancelToken()
    watcher = asyncio.create_task(watch_disconnect(request, token))
    try:
        yield token
    finally:
        watcher.cancel()
