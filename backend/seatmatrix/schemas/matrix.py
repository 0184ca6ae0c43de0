"""Schemas for train schedules, fare matrices and composed routes."""

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, Field


class SeatClass(StrEnum):
    """Travel classes sold by Bangladesh Railway, in search order."""

    S_CHAIR = "S_CHAIR"
    SHOVAN = "SHOVAN"
    SNIGDHA = "SNIGDHA"
    F_SEAT = "F_SEAT"
    F_CHAIR = "F_CHAIR"
    AC_S = "AC_S"
    F_BERTH = "F_BERTH"
    AC_B = "AC_B"
    SHULOV = "SHULOV"
    AC_CHAIR = "AC_CHAIR"


SEAT_CLASSES: list[SeatClass] = list(SeatClass)
BERTH_CLASSES: frozenset[SeatClass] = frozenset({SeatClass.AC_B, SeatClass.F_BERTH})


class RouteStop(BaseModel):
    """A stop in a train's schedule, with its resolved calendar date."""

    city: str
    arrival_time: str | None = None
    departure_time: str | None = None
    halt: str | None = None  # Minutes
    resolved_date: date | None = None
    display_date: str | None = None  # "DD Mon", only on stops either side of midnight


class TrainSchedule(BaseModel):
    """A train's ordered stop list and running days."""

    train_model: str
    train_name: str
    stops: list[RouteStop]
    running_days: list[str]
    total_duration: str = "N/A"

    @property
    def stations(self) -> list[str]:
        return [stop.city for stop in self.stops]


class FareCell(BaseModel):
    """Seat counts and fare for one seat class between two stations."""

    online: int = 0
    offline: int = 0
    fare: float = 0.0  # Base fare, berth surcharge already included
    vat_amount: float = 0.0

    @property
    def total_seats(self) -> int:
        return self.online + self.offline


# SeatClass -> origin station -> destination station -> FareCell
FareMatrix = dict[SeatClass, dict[str, dict[str, FareCell]]]


class MatrixResult(BaseModel):
    """A train's full origin/destination fare matrix plus schedule metadata."""

    train_model: str
    train_name: str
    date: str  # Journey date as DD-MMM-YYYY
    stations: list[str]
    seat_types: list[SeatClass] = Field(default_factory=lambda: list(SEAT_CLASSES))
    fare_matrices: FareMatrix
    has_data_map: dict[SeatClass, bool]
    routes: list[RouteStop]
    days: list[str]
    total_duration: str = "N/A"
    station_dates: dict[str, date]
    station_dates_formatted: dict[str, str]  # DD-MMM-YYYY
    has_segmented_dates: bool = False
    next_day_str: str = ""
    prev_day_str: str = ""

    def available_seat_types(self) -> list[SeatClass]:
        """Seat classes with at least one seat anywhere in the matrix, in enumeration order."""
        return [seat_type for seat_type in self.seat_types if self.has_data_map.get(seat_type)]


class RouteKind(StrEnum):
    DIRECT = "DIRECT"
    SEGMENTED = "SEGMENTED"
    MIXED_SEGMENTED = "MIXED_SEGMENTED"


class RouteSegment(BaseModel):
    """One purchasable ticket within a composed route."""

    from_station: str
    to_station: str
    seat_type: SeatClass
    base: float
    vat: float
    charge: float
    total: float
    seats: int
    date: str  # DD-MMM-YYYY departure date of from_station


class ComposedRoute(BaseModel):
    """A chain of contiguous segments covering origin to destination."""

    kind: RouteKind
    seat_type: SeatClass | None = None  # None for mixed routes
    segments: list[RouteSegment]
    total_fare: float


class RouteQueryRequest(BaseModel):
    """Request body for route composition over an already built matrix."""

    matrix: MatrixResult
    origin: str
    destination: str
