"""API endpoints for point-to-point seat availability and train search."""

from fastapi import APIRouter, Depends, Query

from seatmatrix.api.dependencies import get_cancel_token, get_railway_client
from seatmatrix.core.concurrency import CancelToken
from seatmatrix.helpers.time_parsing import iso_to_display
from seatmatrix.schemas.availability import TrainAvailability, TrainSearchResult
from seatmatrix.schemas.matrix import SeatClass
from seatmatrix.services.availability_service import AvailabilityService
from seatmatrix.services.railway_client import RailwayClient

router = APIRouter(tags=["availability"])


@router.get("/availability", response_model=dict[str, TrainAvailability])
async def get_availability(
    origin: str = Query(..., description="Boarding station name"),
    destination: str = Query(..., description="Alighting station name"),
    date: str = Query(..., description="Journey date as YYYY-MM-DD"),
    seat_class: SeatClass = Query(SeatClass.S_CHAIR, description="Seat class used for the train listing"),
    client: RailwayClient = Depends(get_railway_client),
    cancel_token: CancelToken = Depends(get_cancel_token),
) -> dict[str, TrainAvailability]:
    """
    Categorized seat layout of every seat class of every train on a route.

    Returns:
        Mapping of trip number to train availability
    """
    service = AvailabilityService(client)
    return await service.check_availability(
        origin, destination, iso_to_display(date), seat_class, cancel_token=cancel_token
    )


@router.get("/trains/search", response_model=TrainSearchResult)
async def search_trains(
    origin: str = Query(..., description="Boarding station name"),
    destination: str = Query(..., description="Alighting station name"),
    client: RailwayClient = Depends(get_railway_client),
    cancel_token: CancelToken = Depends(get_cancel_token),
) -> TrainSearchResult:
    """Trains running between two stations, sorted by departure time."""
    service = AvailabilityService(client)
    return await service.search_trains(origin, destination, cancel_token=cancel_token)
