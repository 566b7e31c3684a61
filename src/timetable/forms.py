"""Form controllers for booking timetable activities and recorded sessions.

A controller owns one draft and keeps its dependent fields consistent as the
user edits it:

- changing the class clears the class-scoped picks (subject, room, ...)
  and reloads the class-scoped pickers;
- changing any slot field clears the room and schedules a debounced check
  (availability in create mode, candidate rooms in edit mode);
- a check result is committed only if the slot it was computed for is still
  the current one.

Controllers must be driven from a running asyncio event loop.
"""

import asyncio
from collections.abc import Mapping
from datetime import date, datetime, time
from enum import Enum
from typing import Any, ClassVar

from src.timetable.api import TimetableApi
from src.timetable.availability import AvailabilityChecker, AvailabilityContract
from src.timetable.config import TimetableConfig
from src.timetable.debounce import Debouncer
from src.timetable.errors import TimetableError, ValidationError
from src.timetable.logging import get_logger
from src.timetable.models import (
    ActivityDraft,
    AvailabilityResult,
    Reference,
    ReferenceData,
    Room,
    ScheduleSlotQuery,
    SessionContext,
    SessionDraft,
    SubmitOutcome,
    parse_backend_datetime,
)
from src.timetable.payloads import ActivityRequestBuilder
from src.timetable.time_range import TimeRangeCheck, validate_time_range
from src.timetable.weekday import derive_day

log = get_logger(__name__)

INCOMPLETE_FORM_MESSAGE = (
    "Please fill in every required field and check that the time slot is available."
)
SUBMISSION_IN_PROGRESS_MESSAGE = "A save is already in progress."

EVALUATION_TYPE_LABELS = frozenset({"Devoir", "Évaluation"})


class FormMode(str, Enum):
    CREATE = "create"
    EDIT = "edit"


class FormSyncController:
    """Shared state machine of the activity and session forms."""

    draft_type: ClassVar[type[ActivityDraft]] = ActivityDraft
    required_fields: ClassVar[tuple[str, ...]] = ()
    slot_fields: ClassVar[tuple[str, ...]] = ("class_id", "day_id", "start_time", "end_time")
    class_scoped_fields: ClassVar[tuple[str, ...]] = ("subject_id", "room_id")
    debounce_setting: ClassVar[str] = "activity_check_debounce_seconds"
    entity_label: ClassVar[str] = "Item"

    def __init__(
        self,
        api: TimetableApi,
        context: SessionContext,
        config: TimetableConfig | None = None,
        checker: AvailabilityChecker | None = None,
        references: ReferenceData | None = None,
    ) -> None:
        self.api = api
        self.context = context
        self.config = config if config is not None else api.config
        self.checker = checker if checker is not None else self._default_checker()
        self.builder = ActivityRequestBuilder(context)
        self.references = references if references is not None else ReferenceData()

        self.mode = FormMode.CREATE
        self.draft = self.draft_type()
        self.source: dict[str, Any] | None = None
        self.availability = AvailabilityResult.unchecked()
        self.is_submitting = False
        self.reference_error: str | None = None

        self.check_debouncer = Debouncer(
            getattr(self.config, self.debounce_setting), name="availability_check"
        )
        self.edit_debouncer = Debouncer(
            self.config.edit_check_delay_seconds, name="edit_room_check"
        )
        self._edit_room: Room | None = None
        self._reference_task: asyncio.Task | None = None
        self._generation = 0
        self._closed = False

    def _default_checker(self) -> AvailabilityChecker:
        return AvailabilityChecker(self.api, self.config.availability_contract)

    # Lifecycle

    def open_for_create(self, class_id: int | None = None, day_id: int | None = None) -> None:
        """Start a blank draft, pre-selecting the class and day picked in the timetable."""
        self._restart(FormMode.CREATE)
        self.source = None
        self.draft = self._new_draft(class_id=class_id, day_id=day_id)
        if self.draft.class_id is not None:
            self._reload_class_references()
        self._on_slot_changed()
        log.info("form_opened", form=self.entity_label, mode=self.mode.value)

    def open_for_edit(self, source: Mapping[str, Any]) -> None:
        """Hydrate the draft from an existing record, then schedule loading its candidate rooms."""
        self._restart(FormMode.EDIT)
        self.source = dict(source)
        self.draft = self.draft_type.from_source(source)
        if self.draft.class_id is not None:
            self._reload_class_references()

        self._edit_room = self._source_room()
        self._on_slot_changed()
        log.info(
            "form_opened",
            form=self.entity_label,
            mode=self.mode.value,
            source_id=self.source_id,
        )

    def close(self) -> None:
        """Cancel pending timers; results of calls already in flight are dropped."""
        self._closed = True
        self.check_debouncer.cancel()
        self.edit_debouncer.cancel()

    async def wait_idle(self) -> None:
        """Wait for fired checks and reference reloads to settle."""
        await self.check_debouncer.wait()
        await self.edit_debouncer.wait()
        if self._reference_task is not None:
            await self._reference_task

    def _restart(self, mode: FormMode) -> None:
        self.check_debouncer.cancel()
        self.edit_debouncer.cancel()
        self._generation += 1
        self._closed = False
        self.mode = mode
        self.availability = AvailabilityResult.unchecked()
        self._edit_room = None

    def _new_draft(self, class_id: int | None, day_id: int | None) -> ActivityDraft:
        return self.draft_type(class_id=class_id, day_id=day_id)

    @property
    def source_id(self) -> int | None:
        if self.mode is not FormMode.EDIT or self.source is None:
            return None
        return self.source.get("id")

    def _source_room(self) -> Room | None:
        """The room the record being edited is booked in."""
        source = self.source or {}
        raw = source.get("raw_data") or {}
        for candidate in (raw.get("salle"), source.get("salle")):
            if isinstance(candidate, Mapping) and candidate.get("id") is not None:
                return Room.model_validate(candidate)
        if self.draft.room_id is not None:
            return Room(id=self.draft.room_id)
        return None

    # Field changes

    def set_field(self, name: str, value: Any) -> None:
        """Apply a user edit and the resets it implies."""
        if name not in self.draft_type.model_fields:
            raise ValueError(f"Unknown field {name!r}")

        previous_query = self._slot_query()
        changes = {name: self._coerce(name, value)}
        if name == "class_id":
            changes.update(dict.fromkeys(self.class_scoped_fields, None))
        if name in self.slot_fields:
            changes["room_id"] = None

        self.draft = self.draft.model_copy(update=changes)
        self._after_change(name)

        if name == "class_id":
            self._reload_class_references()
        if self._slot_query() != previous_query:
            self._on_slot_changed()

    def _coerce(self, name: str, value: Any) -> Any:
        return value

    def _after_change(self, name: str) -> None:
        pass

    # Availability

    def _slot_query(self) -> ScheduleSlotQuery:
        return self.draft.slot_query(self.context.academic_year_id)

    def _is_current(self, query: ScheduleSlotQuery, generation: int) -> bool:
        return (
            not self._closed
            and generation == self._generation
            and self._slot_query() == query
        )

    def _on_slot_changed(self) -> None:
        """Schedule a debounced check for the current slot.

        Create mode validates the slot. Edit mode only reloads the candidate
        rooms, keeping the booking's own room among them.
        """
        self.check_debouncer.cancel()
        self.edit_debouncer.cancel()
        self.availability = AvailabilityResult.unchecked()

        query = self._slot_query()
        if not query.is_complete:
            return
        generation = self._generation
        if self.mode is FormMode.EDIT:
            room = self._edit_room
            self.edit_debouncer.schedule(lambda: self._run_edit_check(query, room, generation))
        else:
            self.check_debouncer.schedule(lambda: self._run_check(query, generation))

    async def _run_check(self, query: ScheduleSlotQuery, generation: int) -> None:
        if not self._is_current(query, generation):
            return
        self.availability = AvailabilityResult.checking()
        result = await self.checker.check(query)
        if not self._is_current(query, generation):
            log.info("slot_check_discarded", **query.model_dump(mode="json"))
            return
        self.availability = result

    async def _run_edit_check(
        self, query: ScheduleSlotQuery, current_room: Room | None, generation: int
    ) -> None:
        if not self._is_current(query, generation):
            return
        self.availability = AvailabilityResult.checking()
        result = await self.checker.check_for_edit(query, current_room)
        if not self._is_current(query, generation):
            log.info("edit_check_discarded", **query.model_dump(mode="json"))
            return
        self.availability = result

    # Reference data

    async def load_references(self) -> bool:
        """Load the pickers that do not depend on the class.

        Returns:
            False if any list failed to load; reference_error then holds the message.
        """
        self.reference_error = None
        try:
            classes = await asyncio.to_thread(self.api.list_classes)
            days = await asyncio.to_thread(self.api.list_jours)
            activity_types = await asyncio.to_thread(self.api.list_types_activite)
            extra = await self._load_extra_references()
        except TimetableError as e:
            log.error("references_load_failed", error=str(e), type=type(e).__name__)
            self.reference_error = e.user_message
            return False

        self.references = self.references.model_copy(
            update={"classes": classes, "days": days, "activity_types": activity_types, **extra}
        )
        log.info(
            "references_loaded",
            classes=len(classes),
            days=len(days),
            activity_types=len(activity_types),
        )
        return True

    async def _load_extra_references(self) -> dict[str, list[Reference]]:
        return {}

    def _reload_class_references(self) -> None:
        self.references = self.references.model_copy(
            update={field: [] for field in self._class_reference_fields()}
        )
        class_id = self.draft.class_id
        if class_id is None:
            return
        self._reference_task = asyncio.get_running_loop().create_task(
            self._load_class_references(class_id, self._generation)
        )

    def _class_reference_fields(self) -> tuple[str, ...]:
        return ("subjects",)

    async def _fetch_class_references(self, class_id: int) -> dict[str, list[Reference]]:
        subjects = await asyncio.to_thread(self.api.list_matieres_by_classe, class_id)
        return {"subjects": subjects}

    async def _load_class_references(self, class_id: int, generation: int) -> None:
        try:
            loaded = await self._fetch_class_references(class_id)
        except TimetableError as e:
            log.warning("class_references_failed", class_id=class_id, error=str(e))
            self.reference_error = e.user_message
            return
        if generation != self._generation or self.draft.class_id != class_id:
            return
        self.references = self.references.model_copy(update=loaded)

    # Validation and submission

    def validate_time_range(self) -> TimeRangeCheck:
        return validate_time_range(self.draft.start_time, self.draft.end_time)

    def missing_fields(self) -> list[str]:
        return [
            field
            for field in self.required_fields
            if getattr(self.draft, field) in (None, "")
        ]

    def is_form_valid(self) -> bool:
        """True only with every required field, a valid range and a confirmed slot."""
        if self.missing_fields() or not self.validate_time_range().valid:
            return False
        if self.availability.available is not True or self.availability.loading:
            return False
        try:
            self.build_payload()
        except ValidationError:
            return False
        return True

    def build_payload(self) -> dict[str, Any]:
        raise NotImplementedError

    def _save(self, payload: dict[str, Any]) -> Any:
        raise NotImplementedError

    async def submit(self) -> SubmitOutcome:
        """Send the draft if the form is valid. Never raises."""
        if self.is_submitting:
            return SubmitOutcome(
                success=False,
                message=SUBMISSION_IN_PROGRESS_MESSAGE,
                error="SubmissionInProgress",
            )
        if not self.is_form_valid():
            log.info(
                "submit_blocked",
                form=self.entity_label,
                missing=self.missing_fields(),
                available=self.availability.available,
            )
            return SubmitOutcome(
                success=False, message=INCOMPLETE_FORM_MESSAGE, error="ValidationError"
            )

        self.is_submitting = True
        try:
            payload = self.build_payload()
            data = await asyncio.to_thread(self._save, payload)
        except TimetableError as e:
            log.error(
                "submit_failed",
                form=self.entity_label,
                error=str(e),
                type=type(e).__name__,
                status=getattr(e, "status_code", None),
            )
            return SubmitOutcome(success=False, message=e.user_message, error=type(e).__name__)
        finally:
            self.is_submitting = False

        verb = "created" if self.mode is FormMode.CREATE else "updated"
        log.info("submit_succeeded", form=self.entity_label, mode=self.mode.value)
        return SubmitOutcome(success=True, data=data, message=f"{self.entity_label} {verb}.")


class ActivityFormController(FormSyncController):
    """Weekly timetable activity form ("emploi du temps")."""

    draft_type = ActivityDraft
    required_fields = (
        "class_id",
        "day_id",
        "start_time",
        "end_time",
        "subject_id",
        "room_id",
        "activity_type_id",
    )
    entity_label = "Activity"

    def build_payload(self) -> dict[str, Any]:
        return self.builder.build_activity(
            self.draft,
            self.references,
            self.availability.candidate_rooms,
            activity_id=self.source_id,
        )

    def _save(self, payload: dict[str, Any]) -> Any:
        return self.api.save_activite(payload)


class SessionFormController(FormSyncController):
    """Recorded teaching session form ("séances saisies").

    The day follows the session date and cannot be set on its own.
    """

    draft_type = SessionDraft
    required_fields = (
        "class_id",
        "session_date",
        "start_time",
        "end_time",
        "subject_id",
        "activity_type_id",
    )
    slot_fields = ("class_id", "day_id", "start_time", "end_time", "session_date")
    class_scoped_fields = ("subject_id", "teacher_id", "room_id")
    debounce_setting = "session_check_debounce_seconds"
    entity_label = "Session"

    draft: SessionDraft

    def _default_checker(self) -> AvailabilityChecker:
        return AvailabilityChecker(self.api, AvailabilityContract.ROOM_LIST)

    def _new_draft(self, class_id: int | None, day_id: int | None) -> SessionDraft:
        # day_id is derived from today's date
        return SessionDraft(class_id=class_id, session_date=datetime.now())

    def set_field(self, name: str, value: Any) -> None:
        if name == "day_id" and self.draft.session_date is not None:
            # the day follows the date, so the slot does not change
            self.sync_day()
            return
        super().set_field(name, value)

    def _coerce(self, name: str, value: Any) -> Any:
        if name != "session_date" or value is None:
            return value
        if isinstance(value, str):
            return parse_backend_datetime(value)
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time())
        return value

    def _after_change(self, name: str) -> None:
        self.sync_day()

    def sync_day(self) -> None:
        """Overwrite day_id with the weekday of the session date."""
        if self.draft.session_date is None:
            return
        derived = derive_day(self.draft.session_date)
        if self.draft.day_id != derived:
            log.debug("day_resynced", day_id=self.draft.day_id, derived=derived)
            self.draft = self.draft.model_copy(update={"day_id": derived})

    def should_offer_evaluation(self) -> bool:
        """Evaluation generation only applies to homework and test activity types."""
        for activity_type in self.references.activity_types:
            if activity_type.id == self.draft.activity_type_id:
                return activity_type.libelle in EVALUATION_TYPE_LABELS
        return False

    async def _load_extra_references(self) -> dict[str, list[Reference]]:
        supervisors = await asyncio.to_thread(self.api.list_surveillants)
        return {"supervisors": supervisors}

    def _class_reference_fields(self) -> tuple[str, ...]:
        return ("subjects", "teachers")

    async def _fetch_class_references(self, class_id: int) -> dict[str, list[Reference]]:
        loaded = await super()._fetch_class_references(class_id)
        loaded["teachers"] = await asyncio.to_thread(
            self.api.list_professeurs_by_classe, class_id
        )
        return loaded

    def build_payload(self) -> dict[str, Any]:
        return self.builder.build_session(
            self.draft,
            self.references,
            self.availability.candidate_rooms,
            session_id=self.source_id,
        )

    def _save(self, payload: dict[str, Any]) -> Any:
        return self.api.save_seance(payload)
