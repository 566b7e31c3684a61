"""Slot availability checks against the backend.

Two backend contracts answer the same question. The boolean contract
(is-plage-horaire-valid) needs a second request for the free rooms; the
room-list contract (get-salles-dispo-heures) returns the free rooms
directly and an empty list means the slot is taken. Timetable activities
historically used the first and recorded sessions the second; both are
kept until the backend owners confirm which one is authoritative.
"""

import asyncio
from enum import Enum

from src.timetable.api import TimetableApi
from src.timetable.errors import AvailabilityError, TimetableError
from src.timetable.logging import get_logger
from src.timetable.models import AvailabilityResult, Room, ScheduleSlotQuery
from src.timetable.time_range import validate_time_range

logger = get_logger(__name__)

CHECK_FAILED_MESSAGE = "Error while checking availability"
EDIT_ROOMS_FAILED_MESSAGE = (
    "Error while loading rooms, only the current room is shown"
)


class AvailabilityContract(str, Enum):
    BOOLEAN = "boolean"
    ROOM_LIST = "room_list"


class AvailabilityChecker:
    """Answers "is this slot free, and which rooms are" for one backend contract.

    Neither check raises: every failure settles into an AvailabilityResult.
    """

    def __init__(
        self,
        api: TimetableApi,
        contract: AvailabilityContract = AvailabilityContract.ROOM_LIST,
    ) -> None:
        self.api = api
        self.contract = AvailabilityContract(contract)

    async def check(self, query: ScheduleSlotQuery) -> AvailabilityResult:
        """Check a slot in create mode."""
        time_check = validate_time_range(query.start_time, query.end_time)
        if not time_check.valid:
            return AvailabilityResult.unavailable(time_check.message)

        try:
            rooms = await self._fetch_available_rooms(query)
        except AvailabilityError as e:
            logger.info("slot_unavailable", **query.model_dump(mode="json"))
            return AvailabilityResult.unavailable(e.user_message)
        except TimetableError as e:
            logger.warning(
                "availability_check_failed",
                error=str(e),
                type=type(e).__name__,
                **query.model_dump(mode="json"),
            )
            return AvailabilityResult.unavailable(CHECK_FAILED_MESSAGE)

        logger.info(
            "availability_checked",
            rooms=len(rooms),
            contract=self.contract.value,
            **query.model_dump(mode="json"),
        )
        return AvailabilityResult.confirmed(rooms)

    async def check_for_edit(
        self, query: ScheduleSlotQuery, current_room: Room | None = None
    ) -> AvailabilityResult:
        """Load candidate rooms for an existing booking.

        The booking itself is not re-validated, so the result is always
        available. The booking's own room is kept in the candidates even when
        the backend reports it as occupied (by this very booking).
        """
        try:
            rooms = await self._fetch_rooms(query)
        except TimetableError as e:
            logger.warning("edit_rooms_failed", error=str(e), **query.model_dump(mode="json"))
            fallback = [current_room] if current_room is not None else []
            return AvailabilityResult.confirmed(fallback, error=EDIT_ROOMS_FAILED_MESSAGE)

        if current_room is not None and all(room.id != current_room.id for room in rooms):
            rooms.append(current_room)
        return AvailabilityResult.confirmed(rooms)

    async def _fetch_available_rooms(self, query: ScheduleSlotQuery) -> list[Room]:
        """Return the free rooms or raise AvailabilityError if the slot is taken."""
        if self.contract is AvailabilityContract.BOOLEAN:
            valid = await asyncio.to_thread(
                self.api.is_plage_horaire_valid,
                query.academic_year_id,
                query.class_id,
                query.day_id,
                query.start_time,
                query.end_time,
            )
            if not valid:
                raise AvailabilityError()
            return await self._fetch_rooms(query)

        rooms = await self._fetch_rooms(query)
        if not rooms:
            raise AvailabilityError()
        return rooms

    async def _fetch_rooms(self, query: ScheduleSlotQuery) -> list[Room]:
        if self.contract is AvailabilityContract.BOOLEAN:
            return await asyncio.to_thread(
                self.api.get_salles_disponibles,
                query.academic_year_id,
                query.class_id,
                query.day_id,
                query.start_time,
                query.end_time,
                query.slot_date.isoformat() if query.slot_date else "",
            )
        return await asyncio.to_thread(
            self.api.get_salles_dispo_heures,
            query.academic_year_id,
            query.class_id,
            query.day_id,
            query.start_time,
            query.end_time,
            query.slot_date,
        )
