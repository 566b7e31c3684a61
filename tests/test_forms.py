import asyncio
import unittest
from datetime import date, datetime

from src.timetable.errors import SubmissionError
from src.timetable.forms import (
    INCOMPLETE_FORM_MESSAGE,
    ActivityFormController,
    FormMode,
    SessionFormController,
)
from src.timetable.models import Reference, ReferenceData, SessionContext
from tests.fakes import FakeApi, make_config, rooms

CONTEXT = SessionContext(school_id=3, academic_year_id=226, user_id=7)

# Debounce delay, longer than any await a test makes while filling the form.
QUIET = 0.2


def _api() -> FakeApi:
    return FakeApi(
        make_config(
            activity_check_debounce_seconds=QUIET,
            session_check_debounce_seconds=QUIET,
            edit_check_delay_seconds=QUIET,
        )
    )


def _references() -> ReferenceData:
    return ReferenceData(
        classes=[Reference(id=12, libelle="6e A"), Reference(id=13, libelle="6e B")],
        days=[Reference(id=day) for day in range(1, 7)],
        subjects=[Reference(id=4, libelle="Maths")],
        activity_types=[Reference(id=1, libelle="Cours"), Reference(id=2, libelle="Devoir")],
    )


class ActivityFormTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.api = _api()
        self.api.subjects_by_class = {
            12: [Reference(id=4, libelle="Maths")],
            13: [Reference(id=5, libelle="Anglais")],
        }
        self.form = ActivityFormController(self.api, CONTEXT, references=_references())

    async def asyncTearDown(self) -> None:
        self.form.close()

    async def _fill_slot(self, start: str = "08:00", end: str = "09:00") -> None:
        self.form.open_for_create(class_id=12, day_id=1)
        self.form.set_field("start_time", start)
        self.form.set_field("end_time", end)
        await self.form.wait_idle()

    async def _confirm_slot(self) -> None:
        task = self.form.check_debouncer.fire_now()
        self.assertIsNotNone(task)
        await task

    async def test_class_change_clears_class_scoped_fields(self) -> None:
        self.form.open_for_create()
        for subject_id, room_id in [(4, 9), (None, 9), (4, None), (None, None)]:
            with self.subTest(subject_id=subject_id, room_id=room_id):
                self.form.draft = self.form.draft.model_copy(
                    update={"subject_id": subject_id, "room_id": room_id}
                )
                self.form.set_field("class_id", 13)
                self.assertIsNone(self.form.draft.subject_id)
                self.assertIsNone(self.form.draft.room_id)
        await self.form.wait_idle()
        self.assertEqual([s.id for s in self.form.references.subjects], [5])

    async def test_slot_change_clears_room_only(self) -> None:
        await self._fill_slot()
        self.form.set_field("subject_id", 4)
        for field, value in [("day_id", 2), ("start_time", "08:15"), ("end_time", "10:00")]:
            with self.subTest(field=field):
                self.form.set_field("room_id", 9)
                self.form.set_field(field, value)
                self.assertIsNone(self.form.draft.room_id)
                self.assertEqual(self.form.draft.subject_id, 4)

    async def test_unknown_field_is_rejected(self) -> None:
        self.form.open_for_create()

        with self.assertRaises(ValueError):
            self.form.set_field("teacher_id", 1)

    async def test_check_waits_for_quiet_input(self) -> None:
        await self._fill_slot()
        self.assertTrue(self.form.check_debouncer.pending)
        self.assertIsNone(self.form.availability.available)

        await asyncio.sleep(QUIET * 2)
        await self.form.wait_idle()

        self.assertTrue(self.form.availability.available)
        self.assertEqual(len(self.api.calls_to("get_salles_dispo_heures")), 1)

    async def test_rapid_edits_make_one_round_trip(self) -> None:
        await self._fill_slot()
        self.form.set_field("end_time", "09:30")
        self.form.set_field("end_time", "10:00")

        await self._confirm_slot()

        (args,) = self.api.calls_to("get_salles_dispo_heures")
        self.assertEqual(args[4], "10:00")
        self.assertTrue(self.form.availability.available)

    async def test_stale_result_is_discarded(self) -> None:
        self.api.rooms_by_start = {"08:00": rooms(1), "08:30": rooms(2, 3)}
        self.api.delays = {"08:00": 0.2}
        await self._fill_slot()

        slow = self.form.check_debouncer.fire_now()
        await asyncio.sleep(0.05)  # the 08:00 request is now in flight
        self.form.set_field("start_time", "08:30")
        fast = self.form.check_debouncer.fire_now()
        await fast
        await slow

        self.assertEqual(len(self.api.calls_to("get_salles_dispo_heures")), 2)
        self.assertEqual([r.id for r in self.form.availability.candidate_rooms], [2, 3])

    async def test_incomplete_slot_resets_result(self) -> None:
        await self._fill_slot()
        await self._confirm_slot()
        self.assertTrue(self.form.availability.available)

        self.form.set_field("end_time", "")

        self.assertIsNone(self.form.availability.available)
        self.assertEqual(self.form.availability.candidate_rooms, [])
        self.assertIsNone(self.form.availability.error)
        self.assertFalse(self.form.check_debouncer.pending)

    async def test_invalid_range_is_reported_without_backend_call(self) -> None:
        await self._fill_slot(start="08:00", end="08:10")
        await self._confirm_slot()

        self.assertFalse(self.form.availability.available)
        self.assertIn("15 minutes", self.form.availability.error)
        self.assertEqual(self.api.calls, [("list_matieres_by_classe", (12,))])

    async def test_submit_is_blocked_until_slot_is_confirmed(self) -> None:
        await self._fill_slot()
        self.form.set_field("subject_id", 4)
        self.form.set_field("activity_type_id", 1)
        self.form.set_field("room_id", 1)

        outcome = await self.form.submit()

        self.assertFalse(self.form.is_form_valid())
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.message, INCOMPLETE_FORM_MESSAGE)
        self.assertEqual(self.api.saved, [])

    async def test_submit_after_confirmation(self) -> None:
        await self._fill_slot()
        self.form.set_field("subject_id", 4)
        self.form.set_field("activity_type_id", 1)
        await self._confirm_slot()
        self.form.set_field("room_id", 2)

        self.assertTrue(self.form.is_form_valid())
        outcome = await self.form.submit()

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.message, "Activity created.")
        (payload,) = self.api.saved
        self.assertEqual(payload["salle"], {"id": 2, "libelle": None})
        self.assertNotIn("id", payload)
        self.assertFalse(self.form.is_submitting)

    async def test_room_outside_candidates_blocks_submit(self) -> None:
        await self._fill_slot()
        self.form.set_field("subject_id", 4)
        self.form.set_field("activity_type_id", 1)
        await self._confirm_slot()
        self.form.set_field("room_id", 77)

        self.assertFalse(self.form.is_form_valid())

    async def test_rejected_save_becomes_a_message(self) -> None:
        self.api.save_error = SubmissionError.from_status(409)
        await self._fill_slot()
        self.form.set_field("subject_id", 4)
        self.form.set_field("activity_type_id", 1)
        await self._confirm_slot()
        self.form.set_field("room_id", 1)

        outcome = await self.form.submit()

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error, "SubmissionError")
        self.assertIn("already taken", outcome.message)
        self.assertFalse(self.form.is_submitting)

    async def test_one_submission_at_a_time(self) -> None:
        self.form.open_for_create()
        self.form.is_submitting = True

        outcome = await self.form.submit()

        self.assertEqual(outcome.error, "SubmissionInProgress")
        self.assertEqual(self.api.saved, [])

    async def test_close_cancels_pending_check(self) -> None:
        await self._fill_slot()

        self.form.close()
        await asyncio.sleep(QUIET * 2)

        self.assertFalse(self.form.check_debouncer.pending)
        self.assertEqual(self.api.calls_to("get_salles_dispo_heures"), [])

    async def test_load_references(self) -> None:
        self.assertTrue(await self.form.load_references())

        self.assertEqual([c.id for c in self.form.references.classes], [10, 11])
        self.assertEqual(len(self.form.references.days), 6)
        self.assertEqual(len(self.form.references.activity_types), 2)


class ActivityEditTestCase(unittest.IsolatedAsyncioTestCase):
    SOURCE = {
        "id": 55,
        "classeId": 12,
        "classe": {"id": 99},
        "jour": {"id": 2, "libelle": "Mardi"},
        "heureDeb": "10:00",
        "heureFin": "11:00",
        "matiere": {"id": 4},
        "typeActivite": "Cours",
        "raw_data": {
            "salle": {"id": 42, "libelle": "Labo"},
            "typeActivite": {"id": 1, "libelle": "Cours"},
        },
    }

    def setUp(self) -> None:
        self.api = _api()
        self.api.available_rooms = rooms(7, 9)
        self.api.subjects_by_class = {12: [Reference(id=4, libelle="Maths")]}
        self.form = ActivityFormController(self.api, CONTEXT, references=_references())

    async def asyncTearDown(self) -> None:
        self.form.close()

    async def test_hydration_prefers_flat_then_nested_then_raw(self) -> None:
        self.form.open_for_edit(self.SOURCE)

        self.assertEqual(self.form.mode, FormMode.EDIT)
        self.assertEqual(
            self.form.draft.model_dump(),
            {
                "class_id": 12,
                "day_id": 2,
                "start_time": "10:00",
                "end_time": "11:00",
                "subject_id": 4,
                "room_id": 42,
                "activity_type_id": 1,
            },
        )
        await self.form.wait_idle()

    async def test_edit_loads_rooms_once_and_keeps_current(self) -> None:
        self.form.open_for_edit(self.SOURCE)
        self.assertFalse(self.form.check_debouncer.pending)

        await asyncio.sleep(QUIET * 2)
        await self.form.wait_idle()

        self.assertTrue(self.form.availability.available)
        self.assertEqual([r.id for r in self.form.availability.candidate_rooms], [7, 9, 42])
        self.assertEqual(len(self.api.calls_to("get_salles_dispo_heures")), 1)

    async def test_slot_edits_reload_rooms_without_create_checks(self) -> None:
        self.form.open_for_edit(self.SOURCE)
        await self.form.edit_debouncer.fire_now()

        self.form.set_field("end_time", "11:30")

        self.assertFalse(self.form.check_debouncer.pending)
        self.assertTrue(self.form.edit_debouncer.pending)
        self.assertIsNone(self.form.availability.available)
        self.assertIsNone(self.form.draft.room_id)

    async def test_slot_edit_before_rooms_load_can_still_be_saved(self) -> None:
        self.form.open_for_edit(self.SOURCE)
        self.form.set_field("end_time", "11:30")

        await asyncio.sleep(QUIET * 2)
        await self.form.wait_idle()

        self.assertTrue(self.form.availability.available)
        self.assertEqual([r.id for r in self.form.availability.candidate_rooms], [7, 9, 42])
        (args,) = self.api.calls_to("get_salles_dispo_heures")
        self.assertEqual(args[4], "11:30")

        self.form.set_field("room_id", 9)
        outcome = await self.form.submit()

        self.assertTrue(outcome.success)
        self.assertEqual(self.api.saved[0]["heureFin"], "11:30")
        self.assertEqual(self.api.saved[0]["salle"], {"id": 9, "libelle": None})

    async def test_update_sends_the_activity_id(self) -> None:
        self.form.open_for_edit(self.SOURCE)
        await self.form.edit_debouncer.fire_now()
        await self.form.wait_idle()

        outcome = await self.form.submit()

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.message, "Activity updated.")
        self.assertEqual(self.api.saved[0]["id"], 55)
        self.assertEqual(self.api.saved[0]["salle"], {"id": 42, "libelle": None})


class SessionFormTestCase(unittest.IsolatedAsyncioTestCase):
    WEDNESDAY = datetime(2024, 1, 17, 8, 0)

    def setUp(self) -> None:
        self.api = _api()
        self.api.subjects_by_class = {12: [Reference(id=4, libelle="Maths")]}
        self.api.teachers_by_class = {12: [Reference(id=30, libelle="Jean Kouassi")]}
        self.form = SessionFormController(self.api, CONTEXT, references=_references())

    async def asyncTearDown(self) -> None:
        self.form.close()

    def _fill_slot(self, session_date: datetime) -> None:
        self.form.open_for_create(class_id=12)
        self.form.set_field("session_date", session_date)
        self.form.set_field("start_time", "08:00")
        self.form.set_field("end_time", "09:00")
        self.form.set_field("subject_id", 4)
        self.form.set_field("activity_type_id", 2)

    async def test_new_session_starts_today(self) -> None:
        self.form.open_for_create()

        self.assertEqual(self.form.draft.session_date.date(), date.today())
        self.assertEqual(self.form.draft.day_id, date.today().isoweekday())
        self.assertEqual(self.form.draft.duration, "00:15")
        self.assertTrue(self.form.draft.evaluation_generated)

    async def test_day_follows_the_date(self) -> None:
        self.form.open_for_create()
        self.form.set_field("session_date", self.WEDNESDAY)
        self.assertEqual(self.form.draft.day_id, 3)

        self.form.set_field("day_id", 5)
        self.assertEqual(self.form.draft.day_id, 3)

        self.form.draft.day_id = 5
        self.form.sync_day()
        self.assertEqual(self.form.draft.day_id, 3)

    async def test_setting_the_day_keeps_the_room(self) -> None:
        self._fill_slot(self.WEDNESDAY)
        await self.form.check_debouncer.fire_now()
        self.form.set_field("room_id", 1)

        self.form.set_field("day_id", 5)

        self.assertEqual(self.form.draft.day_id, 3)
        self.assertEqual(self.form.draft.room_id, 1)
        self.assertFalse(self.form.check_debouncer.pending)
        self.assertTrue(self.form.availability.available)

    async def test_sunday_session_can_be_saved(self) -> None:
        self._fill_slot(datetime(2024, 1, 21, 8, 0))
        await self.form.check_debouncer.fire_now()
        await self.form.wait_idle()

        self.assertEqual(self.form.draft.day_id, 7)
        self.assertTrue(self.form.is_form_valid())
        outcome = await self.form.submit()

        self.assertTrue(outcome.success)
        self.assertEqual(self.api.saved[0]["jour"], {"id": 7, "libelle": None})

    async def test_plain_dates_are_accepted(self) -> None:
        self.form.open_for_create()

        self.form.set_field("session_date", date(2024, 1, 21))

        self.assertEqual(self.form.draft.day_id, 7)

    async def test_class_change_also_clears_teacher(self) -> None:
        self.form.open_for_create()
        self.form.set_field("class_id", 12)
        await self.form.wait_idle()
        self.assertEqual([t.id for t in self.form.references.teachers], [30])
        self.form.set_field("teacher_id", 30)
        self.form.set_field("subject_id", 4)

        self.form.set_field("class_id", 13)

        self.assertIsNone(self.form.draft.teacher_id)
        self.assertIsNone(self.form.draft.subject_id)
        self.assertEqual(self.form.references.teachers, [])
        await self.form.wait_idle()

    async def test_date_change_rechecks_with_the_date(self) -> None:
        self.form.open_for_create(class_id=12)
        self.form.set_field("session_date", self.WEDNESDAY)
        self.form.set_field("start_time", "08:00")
        self.form.set_field("end_time", "09:00")
        await self.form.check_debouncer.fire_now()

        self.form.set_field("session_date", datetime(2024, 1, 18, 8, 0))
        self.assertTrue(self.form.check_debouncer.pending)
        await self.form.check_debouncer.fire_now()

        first, second = self.api.calls_to("get_salles_dispo_heures")
        self.assertEqual((first[2], first[5]), (3, date(2024, 1, 17)))
        self.assertEqual((second[2], second[5]), (4, date(2024, 1, 18)))
        await self.form.wait_idle()

    async def test_room_is_optional(self) -> None:
        self.form.open_for_create(class_id=12)
        self.form.set_field("session_date", self.WEDNESDAY)
        self.form.set_field("start_time", "08:00")
        self.form.set_field("end_time", "09:00")
        self.form.set_field("subject_id", 4)
        self.form.set_field("activity_type_id", 2)
        await self.form.check_debouncer.fire_now()
        await self.form.wait_idle()

        outcome = await self.form.submit()

        self.assertTrue(outcome.success)
        (payload,) = self.api.saved
        self.assertIsNone(payload["salle"])
        self.assertEqual(payload["jour"], {"id": 3, "libelle": None})
        self.assertEqual(payload["evaluation"]["duree"], "00-15")

    async def test_evaluation_offered_for_homework(self) -> None:
        self.form.open_for_create()
        self.form.set_field("activity_type_id", 2)
        self.assertTrue(self.form.should_offer_evaluation())

        self.form.set_field("activity_type_id", 1)
        self.assertFalse(self.form.should_offer_evaluation())

    async def test_load_references_includes_supervisors(self) -> None:
        self.assertTrue(await self.form.load_references())

        self.assertEqual([s.id for s in self.form.references.supervisors], [500])


if __name__ == "__main__":
    unittest.main()
