"""Tests for running-day validation."""

import pytest
from seatmatrix.core.errors import InvalidTravelDate, ScheduleNotRunningOnDate
from seatmatrix.helpers.schedule_validation import validate_running_day
from seatmatrix.schemas.matrix import TrainSchedule


@pytest.fixture
def schedule() -> TrainSchedule:
    """A train that is off on Wednesdays."""
    return TrainSchedule(
        train_model="787",
        train_name="SONAR BANGLA EXPRESS",
        stops=[],
        running_days=["Sat", "Sun", "Mon", "Tue", "Thu", "Fri"],
    )


def test_running_day_passes(schedule: TrainSchedule) -> None:
    """Test that a Sunday journey on a train that runs Sundays is accepted."""
    validate_running_day(schedule, "28-Sep-2025")


def test_off_day_raises_with_full_weekday_name(schedule: TrainSchedule) -> None:
    """Test that a Wednesday journey is refused, naming the train and the day."""
    with pytest.raises(ScheduleNotRunningOnDate) as exc_info:
        validate_running_day(schedule, "01-Oct-2025")

    assert exc_info.value.train_name == "SONAR BANGLA EXPRESS"
    assert exc_info.value.weekday == "Wednesday"
    assert exc_info.value.user_message == "SONAR BANGLA EXPRESS does not run on Wednesday."


def test_unparseable_date_raises(schedule: TrainSchedule) -> None:
    """Test that a malformed date is reported as such, not as an off day."""
    with pytest.raises(InvalidTravelDate):
        validate_running_day(schedule, "2025-09-28")
