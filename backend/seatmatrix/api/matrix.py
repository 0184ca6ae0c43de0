"""API endpoints for train fare matrices and route composition."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from seatmatrix.api.dependencies import get_cancel_token, get_railway_client
from seatmatrix.core.concurrency import CancelToken
from seatmatrix.core.config import settings
from seatmatrix.helpers.route_composer import InvalidRouteQuery, compose_routes
from seatmatrix.helpers.time_parsing import iso_to_display
from seatmatrix.schemas.matrix import ComposedRoute, MatrixResult, RouteQueryRequest
from seatmatrix.services.matrix_service import MatrixService
from seatmatrix.services.railway_client import RailwayClient

router = APIRouter(tags=["matrix"])


# ==================== API Endpoints ====================


@router.get("/matrix", response_model=MatrixResult)
async def get_matrix(
    train_model: str = Query(..., description="Train number, e.g. '787'"),
    date: str = Query(..., description="Journey date as YYYY-MM-DD"),
    client: RailwayClient = Depends(get_railway_client),
    cancel_token: CancelToken = Depends(get_cancel_token),
) -> MatrixResult:
    """
    Build the fare/availability matrix of one train for one journey date.

    Issues one seat query per forward station pair, so this can take a while
    for long routes.

    Args:
        train_model: Train number
        date: Journey date (ISO)
        client: Railway API client with this request's credentials
        cancel_token: Cancelled when the client disconnects

    Returns:
        Fare matrices per seat class plus schedule metadata

    Raises:
        RailwayError: Rendered by the application error handler
    """
    journey_date = iso_to_display(date)
    service = MatrixService(client)
    return await service.compute_matrix(train_model, journey_date, date, cancel_token=cancel_token)


@router.post("/matrix/routes", response_model=list[ComposedRoute])
async def find_routes(request: RouteQueryRequest) -> list[ComposedRoute]:
    """
    Compose purchasable routes over an already built matrix.

    Direct tickets are preferred, then single-class chains, then one mixed
    class chain. No remote calls are made.

    Raises:
        HTTPException: 400 if the stations cannot be searched on this matrix
    """
    try:
        return compose_routes(request.matrix, request.origin, request.destination, settings.SERVICE_CHARGE)
    except InvalidRouteQuery as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
