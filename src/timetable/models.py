"""Pydantic models for timetable drafts, availability state and wire payloads.

All data structures use Pydantic v2 for validation, serialization, and type safety.
Python-side names are snake_case; the backend's field names are kept as aliases.
"""

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.timetable.weekday import derive_day


class Reference(BaseModel):
    """A backend entity as listed in a picker: class, day, subject, type, person."""

    model_config = ConfigDict(extra="allow")

    id: int
    libelle: str | None = None


class Room(Reference):
    """A room ("salle") offered for a slot."""


class SessionContext(BaseModel):
    """Per-user values every request is scoped by.

    Passed explicitly to the URL builder, the HTTP client and the controllers.
    """

    model_config = ConfigDict(frozen=True)

    school_id: int
    academic_year_id: int
    periodicity_id: int | None = None
    user_id: int | str | None = None
    personnel_id: int | None = None  # scopes the class list
    profile_id: int | None = None


class ScheduleSlotQuery(BaseModel):
    """A candidate booking: class, day, time range and academic year."""

    model_config = ConfigDict(frozen=True)

    class_id: int | None = None
    day_id: int | None = None
    slot_date: date | None = None
    start_time: str = ""  # HH:MM
    end_time: str = ""  # HH:MM
    academic_year_id: int | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.class_id and self.day_id and self.start_time and self.end_time)


class AvailabilityResult(BaseModel):
    """Outcome of a slot check.

    available is None until a check settles, then True or False.
    """

    available: bool | None = None
    candidate_rooms: list[Room] = Field(default_factory=list)
    error: str | None = None
    loading: bool = False

    @classmethod
    def unchecked(cls) -> "AvailabilityResult":
        return cls()

    @classmethod
    def checking(cls) -> "AvailabilityResult":
        return cls(loading=True)

    @classmethod
    def unavailable(cls, error: str) -> "AvailabilityResult":
        return cls(available=False, error=error)

    @classmethod
    def confirmed(
        cls, rooms: list[Room], error: str | None = None
    ) -> "AvailabilityResult":
        return cls(available=True, candidate_rooms=list(rooms), error=error)


def _first_id(source: Mapping[str, Any], flat_key: str, nested_key: str) -> int | None:
    """Resolve an id from a flat field, a nested object, or raw_data's nested object."""
    flat = source.get(flat_key)
    if flat is not None:
        return flat
    nested = source.get(nested_key)
    if isinstance(nested, Mapping) and nested.get("id") is not None:
        return nested["id"]
    raw = source.get("raw_data")
    if isinstance(raw, Mapping):
        raw_nested = raw.get(nested_key)
        if isinstance(raw_nested, Mapping) and raw_nested.get("id") is not None:
            return raw_nested["id"]
    return None


def _first_value(source: Mapping[str, Any], key: str) -> Any:
    value = source.get(key)
    if value:
        return value
    raw = source.get("raw_data")
    if isinstance(raw, Mapping):
        return raw.get(key)
    return None


class ActivityDraft(BaseModel):
    """Form state for a weekly timetable activity ("emploi du temps")."""

    class_id: int | None = None
    day_id: int | None = None
    start_time: str = ""
    end_time: str = ""
    subject_id: int | None = None
    room_id: int | None = None
    activity_type_id: int | None = None

    @classmethod
    def from_source(cls, source: Mapping[str, Any]) -> "ActivityDraft":
        """Hydrate a draft from an activity as listed by the backend.

        The listing may carry flat ids (classeId), nested objects (classe.id)
        or only the untouched record under raw_data; the first non-null wins.
        """
        return cls(
            class_id=_first_id(source, "classeId", "classe"),
            day_id=_first_id(source, "jourId", "jour"),
            start_time=_first_value(source, "heureDeb") or "",
            end_time=_first_value(source, "heureFin") or "",
            subject_id=_first_id(source, "matiereId", "matiere"),
            room_id=_first_id(source, "salleId", "salle"),
            activity_type_id=_first_id(source, "typeActiviteId", "typeActivite"),
        )

    def slot_query(self, academic_year_id: int | None) -> ScheduleSlotQuery:
        return ScheduleSlotQuery(
            class_id=self.class_id,
            day_id=self.day_id,
            start_time=self.start_time or "",
            end_time=self.end_time or "",
            academic_year_id=academic_year_id,
        )


class SessionDraft(ActivityDraft):
    """Form state for a recorded teaching session ("séance saisie").

    day_id is derived from session_date and is not independently editable.
    """

    session_date: datetime | None = None
    teacher_id: int | None = None
    supervisor_id: int | None = None
    evaluation_generated: bool = True
    period: int | None = None
    score_max: int | float = 0
    duration: str = "00:15"  # HH:MM picker value

    @model_validator(mode="after")
    def _derive_day_from_date(self) -> "SessionDraft":
        if self.session_date is not None:
            self.day_id = derive_day(self.session_date)
        return self

    @classmethod
    def from_source(cls, source: Mapping[str, Any]) -> "SessionDraft":
        activity = ActivityDraft.from_source(source)
        raw_date = _first_value(source, "dateSeance")
        duration = source.get("duree")
        return cls(
            **activity.model_dump(),
            session_date=parse_backend_datetime(raw_date) if raw_date else datetime.now(),
            teacher_id=_first_id(source, "professeurId", "professeur"),
            supervisor_id=_first_id(source, "surveillantId", "surveillant"),
            evaluation_generated=source.get("evaluationIndicator") == 1,
            period=_period_id(source.get("periode")),
            score_max=source.get("noteeSur") or 0,
            duration=minutes_to_hhmm(duration) if duration else "00:15",
        )

    def slot_query(self, academic_year_id: int | None) -> ScheduleSlotQuery:
        query = super().slot_query(academic_year_id)
        if self.session_date is None:
            return query
        return query.model_copy(update={"slot_date": self.session_date.date()})


def strip_utc_marker(value: str) -> str:
    """Drop the "[UTC]" zone suffix the backend appends to timestamps."""
    return value.replace("[UTC]", "")


def parse_backend_datetime(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(strip_utc_marker(value))


def _period_id(value: Any) -> int | None:
    if isinstance(value, Mapping):
        return value.get("id")
    return value or None


def minutes_to_hhmm(minutes: Any) -> str:
    if not isinstance(minutes, int) or isinstance(minutes, bool) or minutes <= 0:
        return "00:15"
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


class ReferenceData(BaseModel):
    """Reference collections the form pickers (and the payload builder) resolve ids against."""

    classes: list[Reference] = Field(default_factory=list)
    days: list[Reference] = Field(default_factory=list)
    subjects: list[Reference] = Field(default_factory=list)
    activity_types: list[Reference] = Field(default_factory=list)
    teachers: list[Reference] = Field(default_factory=list)
    supervisors: list[Reference] = Field(default_factory=list)


class Activity(BaseModel):
    """An existing timetable activity as shown in the class/day listing."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    start_time: str = Field(default="", alias="heureDeb")
    end_time: str = Field(default="", alias="heureFin")
    subject: Reference | None = Field(default=None, alias="matiere")
    room: Room | None = Field(default=None, alias="salle")
    activity_type: Reference | None = Field(default=None, alias="typeActivite")
    status: str | None = Field(default=None, alias="statut")
    raw_data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_backend(cls, record: Mapping[str, Any]) -> "Activity":
        return cls.model_validate({**record, "raw_data": dict(record)})

    @property
    def time_slot(self) -> str:
        return f"{self.start_time} - {self.end_time}"


class SubmitOutcome(BaseModel):
    """Result of a save attempt, ready to be shown to the user."""

    success: bool
    data: Any = None
    message: str | None = None
    error: str | None = None  # error class name when success is False


# Wire payloads. Labels are display-only on the backend and always sent as null.


class EntityRef(BaseModel):
    id: int
    libelle: None = None


class IdRef(BaseModel):
    id: int | str | None


class ActivityPayload(BaseModel):
    """Body of POST activite/saveAndDisplay."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    day: EntityRef = Field(alias="jour")
    start_time: str = Field(alias="heureDeb")
    end_time: str = Field(alias="heureFin")
    subject: EntityRef = Field(alias="matiere")
    class_ref: EntityRef = Field(alias="classe")
    room: EntityRef = Field(alias="salle")
    activity_type: EntityRef = Field(alias="typeActivite")
    user: int | str | None = None
    academic_year: str = Field(alias="annee")
    school: IdRef = Field(alias="ecole")
    main_teacher: None = Field(default=None, alias="profPrincipal")

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True)
        if data["id"] is None:
            del data["id"]
        return data


class EvaluationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int | None
    period: IdRef = Field(alias="periode")
    score_max: int | float | str = Field(alias="noteSur")
    duration: str = Field(alias="duree")

    @classmethod
    def sentinel(cls) -> "EvaluationPayload":
        """Placeholder the backend expects when no evaluation is generated."""
        return cls(id=0, period=IdRef(id=0), score_max="", duration="")


class SessionPayload(BaseModel):
    """Body of POST seances/saveAndDisplay."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    session_date: str = Field(alias="dateSeance")
    day: EntityRef = Field(alias="jour")
    start_time: str = Field(alias="heureDeb")
    end_time: str = Field(alias="heureFin")
    subject: EntityRef = Field(alias="matiere")
    class_ref: EntityRef = Field(alias="classe")
    teacher: IdRef | None = Field(alias="professeur")
    supervisor: IdRef | None = Field(alias="surveillant")
    room: EntityRef | None = Field(alias="salle")
    activity_type: EntityRef = Field(alias="typeActivite")
    evaluation_indicator: int = Field(alias="evaluationIndicator")
    evaluation: EvaluationPayload
    status: str = Field(default="MAN", alias="statut")
    academic_year: str = Field(alias="annee")
    user: int | str | None = None
    main_teacher: None = Field(default=None, alias="profPrincipal")

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True)
        if data["id"] is None:
            del data["id"]
        return data
