"""API endpoints for the railway account behind the request's credentials."""

from typing import Any

from fastapi import APIRouter, Depends

from seatmatrix.api.dependencies import get_railway_client
from seatmatrix.services.railway_client import RailwayClient

router = APIRouter(prefix="/account", tags=["account"])


@router.get("/verify")
async def verify_account(client: RailwayClient = Depends(get_railway_client)) -> dict[str, Any]:
    """
    Check the auth token and device key against the railway account profile.

    Returns:
        The account profile reported by Bangladesh Railway
    """
    return await client.verify_credentials()
