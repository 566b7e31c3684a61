"""Validation and conversion of HH:MM time picker values."""

from pydantic import BaseModel

from src.timetable.errors import TimeRangeIssue, ValidationError

MIN_SLOT_MINUTES = 15

MISSING_TIME_MESSAGE = "Start and end times are required"
INVALID_ORDER_MESSAGE = "The end time must be later than the start time"
TOO_SHORT_MESSAGE = (
    f"There must be at least {MIN_SLOT_MINUTES} minutes between start and end"
)


class TimeRangeCheck(BaseModel):
    valid: bool
    message: str | None = None
    issue: TimeRangeIssue | None = None

    def raise_for_issue(self) -> None:
        """Raise ValidationError if the range is invalid."""
        if not self.valid:
            raise ValidationError(self.message, issue=self.issue)


def to_minutes(value: str) -> int:
    """Convert "HH:MM" (seconds are ignored) to minutes after midnight.

    Raises:
        ValidationError: If the value is not a time.
    """
    try:
        hours, minutes = value.split(":")[:2]
        return int(hours) * 60 + int(minutes)
    except ValueError as e:
        raise ValidationError(f"Invalid time {value!r}", issue=TimeRangeIssue.MISSING_TIME) from e


def validate_time_range(start: str | None, end: str | None) -> TimeRangeCheck:
    """Check that a start/end pair forms a bookable slot.

    Pure function: no I/O, no state.
    """
    if not start or not end:
        return TimeRangeCheck(
            valid=False, message=MISSING_TIME_MESSAGE, issue=TimeRangeIssue.MISSING_TIME
        )

    try:
        start_minutes = to_minutes(start)
        end_minutes = to_minutes(end)
    except ValidationError as e:
        return TimeRangeCheck(valid=False, message=str(e), issue=e.issue)

    if end_minutes <= start_minutes:
        return TimeRangeCheck(
            valid=False, message=INVALID_ORDER_MESSAGE, issue=TimeRangeIssue.INVALID_ORDER
        )
    if end_minutes - start_minutes < MIN_SLOT_MINUTES:
        return TimeRangeCheck(
            valid=False, message=TOO_SHORT_MESSAGE, issue=TimeRangeIssue.TOO_SHORT
        )
    return TimeRangeCheck(valid=True)


def encode_duration(value: str | None) -> str:
    """Encode a HH:MM duration the way the evaluation endpoint expects it.

    "01:30" becomes "00-90": a fixed "00-" prefix then the total minutes,
    zero-padded to two digits. An empty value means the 15 minute default.
    """
    if not value:
        return f"00-{MIN_SLOT_MINUTES:02d}"
    return f"00-{to_minutes(value):02d}"
