"""Error hierarchy for the timetable booking workflow.

Validation errors stay local and block submission. Request errors come from
the HTTP layer and are mapped to user-facing messages by the caller, which
logs them and returns the form to an editable state.

Example:
    try:
        api.save_activite(payload)
    except SubmissionError as e:
        show_alert(e.user_message)
"""

from enum import Enum


class TimeRangeIssue(str, Enum):
    MISSING_TIME = "missing_time"
    INVALID_ORDER = "invalid_order"
    TOO_SHORT = "too_short"


class TimetableError(Exception):
    """Base exception for all timetable client errors."""

    user_message = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class ValidationError(TimetableError):
    """Local validation failure - never sent to the backend.

    Examples: end time before start time, missing required field, an id that
    is not in the loaded reference list.
    """

    user_message = "Please fill in every required field."

    def __init__(
        self, message: str | None = None, issue: TimeRangeIssue | None = None
    ) -> None:
        super().__init__(message)
        self.issue = issue


class AvailabilityError(TimetableError):
    """The slot is occupied or its availability could not be checked."""

    user_message = "slot unavailable"


class RequestError(TimetableError):
    """An HTTP call to the backend failed."""

    user_message = "The request to the server failed."

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(RequestError):
    """The request never reached the server (connection refused, DNS, timeout)."""

    user_message = (
        "The server could not be reached. Please check your network connection."
    )


class SubmissionError(RequestError):
    """The backend rejected a create, update or delete request."""

    user_message = "An unexpected error occurred while saving."

    @classmethod
    def from_status(cls, status_code: int | None) -> "SubmissionError":
        """Build the error with the message matching an HTTP status."""
        if status_code == 409:
            message = "This time slot is already taken."
        elif status_code is not None and 400 <= status_code < 500:
            message = "Invalid data. Please check the information entered."
        else:
            message = cls.user_message
        return cls(message, status_code=status_code)
