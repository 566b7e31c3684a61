"""Create/update request bodies for timetable activities and recorded sessions.

Draft ids are resolved against the reference lists the form already
loaded. The form refuses to submit until every id resolves, so a miss here
is a programming error and raises ValidationError. A session's day is the
weekday of its date, Sunday included, so it is not looked up in the
timetable's day list.
"""

from datetime import datetime, timezone
from typing import Any

from src.timetable.errors import ValidationError
from src.timetable.models import (
    ActivityDraft,
    ActivityPayload,
    EntityRef,
    EvaluationPayload,
    IdRef,
    Reference,
    ReferenceData,
    Room,
    SessionContext,
    SessionDraft,
    SessionPayload,
)
from src.timetable.time_range import encode_duration
from src.timetable.weekday import derive_day

DEFAULT_SCORE_MAX = 20
DEFAULT_PERIOD_ID = 1


def resolve(collection: list[Reference] | list[Room], entity_id: Any, name: str) -> Reference:
    """Find entity_id in a loaded reference list."""
    for entity in collection:
        if entity.id == entity_id:
            return entity
    raise ValidationError(f"Unknown {name} id {entity_id!r}")


def _optional_ref(collection: list[Reference], entity_id: Any, name: str) -> IdRef | None:
    if entity_id is None:
        return None
    return IdRef(id=resolve(collection, entity_id, name).id)


def _ref(collection: list[Reference] | list[Room], entity_id: Any, name: str) -> EntityRef:
    return EntityRef(id=resolve(collection, entity_id, name).id)


def to_backend_timestamp(value: datetime) -> str:
    """Format like JavaScript's toISOString: UTC, milliseconds, "Z" suffix.

    Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


class ActivityRequestBuilder:
    """Builds wire payloads from drafts. Pure: inputs are never modified."""

    def __init__(self, context: SessionContext) -> None:
        self.context = context

    def build_activity(
        self,
        draft: ActivityDraft,
        references: ReferenceData,
        rooms: list[Room],
        activity_id: int | None = None,
    ) -> dict[str, Any]:
        payload = ActivityPayload(
            id=activity_id,
            day=_ref(references.days, draft.day_id, "day"),
            start_time=draft.start_time,
            end_time=draft.end_time,
            subject=_ref(references.subjects, draft.subject_id, "subject"),
            class_ref=_ref(references.classes, draft.class_id, "class"),
            room=_ref(rooms, draft.room_id, "room"),
            activity_type=_ref(references.activity_types, draft.activity_type_id, "activity type"),
            user=self.context.user_id,
            academic_year=str(self.context.academic_year_id),
            school=IdRef(id=str(self.context.school_id)),
        )
        return payload.to_wire()

    def build_session(
        self,
        draft: SessionDraft,
        references: ReferenceData,
        rooms: list[Room],
        session_id: int | None = None,
    ) -> dict[str, Any]:
        if draft.session_date is None:
            raise ValidationError("The session date is required")

        if draft.evaluation_generated:
            evaluation = EvaluationPayload(
                id=None,
                period=IdRef(id=draft.period or DEFAULT_PERIOD_ID),
                score_max=draft.score_max or DEFAULT_SCORE_MAX,
                duration=encode_duration(draft.duration),
            )
        else:
            evaluation = EvaluationPayload.sentinel()

        payload = SessionPayload(
            id=session_id,
            session_date=to_backend_timestamp(draft.session_date),
            day=EntityRef(id=derive_day(draft.session_date)),
            start_time=draft.start_time,
            end_time=draft.end_time,
            subject=_ref(references.subjects, draft.subject_id, "subject"),
            class_ref=_ref(references.classes, draft.class_id, "class"),
            teacher=_optional_ref(references.teachers, draft.teacher_id, "teacher"),
            supervisor=_optional_ref(references.supervisors, draft.supervisor_id, "supervisor"),
            room=_ref(rooms, draft.room_id, "room") if draft.room_id is not None else None,
            activity_type=_ref(references.activity_types, draft.activity_type_id, "activity type"),
            evaluation_indicator=1 if draft.evaluation_generated else 0,
            evaluation=evaluation,
            academic_year=str(self.context.academic_year_id),
            user=self.context.user_id,
        )
        return payload.to_wire()
