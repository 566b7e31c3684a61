"""Client for the timetable and recorded-session booking workflow.

Validates time ranges, checks slot availability against the school REST
API, keeps booking forms consistent and builds their save requests.
"""

from src.timetable.api import TimetableApi
from src.timetable.availability import AvailabilityChecker, AvailabilityContract
from src.timetable.config import TimetableConfig, get_config
from src.timetable.forms import ActivityFormController, FormMode, SessionFormController
from src.timetable.models import (
    ActivityDraft,
    AvailabilityResult,
    ScheduleSlotQuery,
    SessionContext,
    SessionDraft,
)
from src.timetable.time_range import validate_time_range
from src.timetable.weekday import derive_day

__all__ = [
    "ActivityDraft",
    "ActivityFormController",
    "AvailabilityChecker",
    "AvailabilityContract",
    "AvailabilityResult",
    "FormMode",
    "ScheduleSlotQuery",
    "SessionContext",
    "SessionDraft",
    "SessionFormController",
    "TimetableApi",
    "TimetableConfig",
    "derive_day",
    "get_config",
    "validate_time_range",
]
