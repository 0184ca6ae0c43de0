"""Pydantic models for Bangladesh Railway API payloads.

Only the fields we read are declared; everything else in the upstream
responses is ignored.
"""

from pydantic import BaseModel, ConfigDict, Field


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ==================== Schedule (POST /train-routes) ====================


class TrainRouteStopPayload(_Payload):
    """One stop in a train's schedule."""

    city: str
    arrival_time: str | None = None  # e.g. "10:15 pm BST"
    departure_time: str | None = None
    halt: str | int | None = None  # Minutes, sometimes wildly wrong upstream


class TrainRoutesPayload(_Payload):
    """The ``data`` object of a schedule lookup."""

    train_name: str | None = None
    routes: list[TrainRouteStopPayload] | None = None
    days: list[str] = Field(default_factory=list)  # Three-letter weekdays, e.g. ["Sat", "Sun"]
    total_duration: str | None = None


# ==================== Route listing (GET /bookings/search-trips-v2) ====================


class SeatCountsPayload(_Payload):
    online: int = 0
    offline: int = 0


class SeatTypePayload(_Payload):
    """Fare, counts and trip identifiers for one seat class on one train."""

    type: str
    fare: float = 0.0
    vat_amount: float = 0.0
    seat_counts: SeatCountsPayload = Field(default_factory=SeatCountsPayload)
    trip_id: int | str | None = None
    trip_route_id: int | str | None = None


class TripPayload(_Payload):
    """One train running between the searched stations."""

    trip_number: str | None = None
    train_model: str | None = None
    train_name: str | None = None
    departure_date_time: str | None = None  # e.g. "14 Oct, 10:15 PM"
    arrival_date_time: str | None = None
    travel_time: str | None = None
    origin_city_name: str | None = None
    destination_city_name: str | None = None
    from_station_name: str | None = None
    to_station_name: str | None = None
    seat_types: list[SeatTypePayload] = Field(default_factory=list)


# ==================== Seat layout (GET /bookings/seat-layout) ====================


class SeatPayload(_Payload):
    seat_number: str | None = None  # e.g. "KA-12" or "UMA-A-3"
    seat_availability: int | None = None
    ticket_type: int | None = None


class SeatLayoutFloorPayload(_Payload):
    layout: list[list[SeatPayload]] = Field(default_factory=list)
