"""Schemas for point-to-point seat availability."""

from pydantic import BaseModel, Field


class RawSeat(BaseModel):
    """A single seat from a seat-layout response."""

    seat_number: str  # Coach code, optional sub-letter, seat number: "KA-12", "UMA-A-3"
    seat_availability: int | None = None
    ticket_type: int | None = None


class CoachGroup(BaseModel):
    seats: list[str]
    count: int


class TicketTypeBucket(BaseModel):
    label: str
    seats: list[str]
    count: int
    grouped: dict[str, CoachGroup]


class SeatLayoutResult(BaseModel):
    """Seats of one seat class on one train, categorized and grouped by coach."""

    available_seats: list[str] = Field(default_factory=list)
    booking_process_seats: list[str] = Field(default_factory=list)
    available_count: int = 0
    booking_process_count: int = 0
    ticket_types: dict[str, TicketTypeBucket] = Field(default_factory=dict)  # "1".."4", "issued_combined"
    issued_total: int = 0
    grouped_seats: dict[str, CoachGroup] = Field(default_factory=dict)
    grouped_booking_process: dict[str, CoachGroup] = Field(default_factory=dict)
    grouped_ticket_types: dict[str, dict[str, CoachGroup]] = Field(default_factory=dict)


class RejectionInfo(BaseModel):
    """Why the railway API refused a seat-layout lookup (HTTP 422)."""

    message: str
    error_key: str = ""


class SeatClassAvailability(BaseModel):
    """Outcome of one seat-layout lookup."""

    seat_type: str
    layout: SeatLayoutResult | None = None
    rejected: bool = False
    error_info: RejectionInfo | None = None
    error_message: str | None = None


class TrainAvailability(BaseModel):
    """All seat classes of one train on the searched route."""

    from_station: str
    to_station: str
    departure_time: str
    arrival_time: str
    journey_duration: str
    seat_data: list[SeatClassAvailability] = Field(default_factory=list)
    all_seats_unavailable: bool = False


class TrainSummary(BaseModel):
    """A train found between two stations by the train search."""

    trip_number: str
    departure_time: str = ""
    arrival_time: str = ""
    travel_time: str = ""
    origin_city: str = ""
    destination_city: str = ""


class TrainSearchResult(BaseModel):
    trains: list[TrainSummary]
    dates: list[str]  # DD-MMM-YYYY dates that were searched
