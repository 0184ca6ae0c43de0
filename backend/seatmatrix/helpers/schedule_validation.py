"""Checks that a requested journey date matches a train's running days."""

from seatmatrix.core.errors import ScheduleNotRunningOnDate
from seatmatrix.helpers.time_parsing import parse_display_date
from seatmatrix.schemas.matrix import TrainSchedule


def validate_running_day(schedule: TrainSchedule, travel_date: str) -> None:
    """
    Ensure the train runs on the weekday of ``travel_date``.

    Args:
        schedule: Fetched train schedule
        travel_date: Journey date as ``DD-MMM-YYYY``

    Raises:
        InvalidTravelDate: If the date cannot be parsed
        ScheduleNotRunningOnDate: If the weekday is not a running day

    Example:
        >>> schedule = TrainSchedule(train_model="702", train_name="SUBORNO EXPRESS",
        ...                          stops=[], running_days=["Sat", "Sun"])
        >>> validate_running_day(schedule, "27-Sep-2025")
        >>> validate_running_day(schedule, "29-Sep-2025")
        Traceback (most recent call last):
            ...
        seatmatrix.core.errors.ScheduleNotRunningOnDate: SUBORNO EXPRESS does not run on Monday.
    """
    journey_date = parse_display_date(travel_date)
    if journey_date.strftime("%a") not in schedule.running_days:
        raise ScheduleNotRunningOnDate(schedule.train_name, journey_date.strftime("%A"))
