import uuid
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import select, func

from missionhub.core.exceptions import ConflictError, InvalidInputError, NotFoundError
from missionhub.models import AttendanceLog, MissionStudent
from missionhub.services.attendance_form_service import AttendanceFormService
from missionhub.services.attendance_service import AttendanceService, local_day, mission_timezone
from missionhub.utils.form_answers import coerce_answers, coerce_value


def _today(mission):
    return datetime.now(mission_timezone(mission)).date()


QUESTIONS = [
    {"key": "mood", "label": "Mood", "type": "rating", "required": True, "order": 1},
    {"key": "topics", "label": "Topics", "type": "multi-select", "options": ["sql", "api"], "order": 2},
    {"key": "remote", "label": "Remote", "type": "boolean", "order": 3},
]


class TestMark:
    async def test_mark_twice_keeps_one_log(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)
        service = AttendanceService(db)
        day = _today(mission)

        first = await service.mark(mission.id, student.id, "present", date=day)
        second = await service.mark(mission.id, student.id, "absent", date=day, notes="left early")

        assert first.id == second.id
        count = await db.scalar(select(func.count()).select_from(AttendanceLog))
        assert count == 1
        assert second.status == "absent"
        assert second.notes == "left early"

    async def test_mark_records_group_and_activity(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)
        group = await factory.group(mission, "Morning", student_ids=[student.id])

        log = await AttendanceService(db).mark(mission.id, student.id, "present")

        assert log.group_id == group.id
        assert log.date == _today(mission)
        enrollment = await db.scalar(
            select(MissionStudent).where(MissionStudent.student_id == student.id)
            .execution_options(populate_existing=True)
        )
        assert enrollment.last_attendance_date == log.date

    async def test_date_before_enrollment(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)

        with pytest.raises(InvalidInputError) as exc:
            await AttendanceService(db).mark(
                mission.id, student.id, "present", date=_today(mission) - timedelta(days=3)
            )

        assert exc.value.details["field"] == "date"

    async def test_not_enrolled(self, db, factory, roster):
        batch, mission = roster
        stranger = await factory.student(batch)

        with pytest.raises(NotFoundError):
            await AttendanceService(db).mark(mission.id, stranger.id, "present")

    async def test_unknown_status(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)

        with pytest.raises(InvalidInputError):
            await AttendanceService(db).mark(mission.id, student.id, "late")

    async def test_answers_follow_active_form(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)
        await AttendanceFormService(db).create_form({
            "mission_id": mission.id, "title": "Daily check-in", "questions": QUESTIONS,
        })

        log = await AttendanceService(db).mark(
            mission.id, student.id, "present",
            answers={"mood": "4", "topics": "sql", "remote": "yes", "extra": "dropped"},
        )

        assert log.answers == {"mood": 4, "topics": ["sql"], "remote": True}

    async def test_missing_required_answer(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)
        await AttendanceFormService(db).create_form({
            "mission_id": mission.id, "title": "Daily check-in", "questions": QUESTIONS,
        })

        with pytest.raises(InvalidInputError) as exc:
            await AttendanceService(db).mark(mission.id, student.id, "present", answers={})

        assert exc.value.message == "Missing required answer: Mood"

    async def test_mark_without_answers_skips_required_questions(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)
        await AttendanceFormService(db).create_form({
            "mission_id": mission.id, "title": "Daily check-in", "questions": QUESTIONS,
        })

        log = await AttendanceService(db).mark(mission.id, student.id, "absent")

        assert log.status == "absent"
        assert log.answers == {}

    async def test_broken_pattern_in_stored_form(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)
        form = await AttendanceFormService(db).create_form({
            "mission_id": mission.id, "title": "Notes",
            "questions": [{"key": "note", "label": "Note", "type": "text"}],
        })
        # Bypasses the create-time checks
        form.questions = [{"key": "note", "label": "Note", "type": "text", "validation": {"pattern": "([a-z"}}]
        await db.commit()

        with pytest.raises(InvalidInputError) as exc:
            await AttendanceService(db).mark(mission.id, student.id, "present", answers={"note": "abc"})

        assert exc.value.code == "invalid_input"


class TestBulkMark:
    async def test_bulk_mark_group_members(self, db, factory, roster):
        batch, mission = roster
        a, b, outside = await factory.enrolled(mission, batch, 3)
        group = await factory.group(mission, "Evening", student_ids=[a.id, b.id])

        result = await AttendanceService(db).bulk_mark(mission.id, "present", group_id=group.id)

        assert result["count"] == 2
        assert result["marked_count"] == 2
        logs = (await db.execute(select(AttendanceLog.student_id))).scalars().all()
        assert set(logs) == {a.id, b.id}

    async def test_bulk_mark_reports_per_student(self, db, factory, roster):
        batch, mission = roster
        [a] = await factory.enrolled(mission, batch, 1)
        stranger = await factory.student(batch)

        result = await AttendanceService(db).bulk_mark(mission.id, "excused", student_ids=[a.id, stranger.id])

        assert result["marked_count"] == 1
        assert result["failed_count"] == 1
        failure = result["results"][1]
        assert failure["student_id"] == str(stranger.id)
        assert failure["ok"] is False
        assert failure["code"] == "not_found"

    async def test_exactly_one_selector(self, db, factory, roster):
        _, mission = roster
        group = await factory.group(mission, "G")

        with pytest.raises(InvalidInputError):
            await AttendanceService(db).bulk_mark(mission.id, "present")
        with pytest.raises(InvalidInputError):
            await AttendanceService(db).bulk_mark(mission.id, "present", group_id=group.id, student_ids=[uuid.uuid4()])

    async def test_group_of_another_mission(self, db, factory, roster):
        batch, mission = roster
        other = await factory.mission(batch)
        group = await factory.group(other, "Elsewhere")

        with pytest.raises(NotFoundError):
            await AttendanceService(db).bulk_mark(mission.id, "present", group_id=group.id)


EVERY_DAY = [0, 1, 2, 3, 4, 5, 6]


class TestSummary:
    async def test_single_present_day_is_full_rate(self, db, factory):
        batch = await factory.batch()
        mission = await factory.mission(batch, attendance_config={
            "timezone": "UTC", "working_days": EVERY_DAY, "holidays": [],
        })
        [student] = await factory.enrolled(mission, batch, 1)
        service = AttendanceService(db)
        await service.mark(mission.id, student.id, "present")

        summary = await service.student_summary(mission.id, student.id)

        assert summary["presents"] == 1
        assert summary["attendance_rate"] == 100
        assert summary["streak_present_days"] == 1

    async def test_rate_is_written_back(self, db, factory):
        batch = await factory.batch()
        # Every day is a working day so the rate does not depend on today's weekday
        mission = await factory.mission(batch, attendance_config={
            "timezone": "UTC", "working_days": [0, 1, 2, 3, 4, 5, 6], "holidays": [],
            "exclude_excused_from_rate": True,
        })
        [student] = await factory.enrolled(mission, batch, 1)
        enrollment = await db.scalar(select(MissionStudent).where(MissionStudent.student_id == student.id))
        enrollment.started_at = datetime.now(timezone.utc) - timedelta(days=3)
        await db.commit()

        service = AttendanceService(db)
        today = _today(mission)
        await service.mark(mission.id, student.id, "present", date=today - timedelta(days=3))
        await service.mark(mission.id, student.id, "excused", date=today - timedelta(days=2))
        await service.mark(mission.id, student.id, "absent", date=today - timedelta(days=1))
        await service.mark(mission.id, student.id, "present", date=today)

        summary = await service.student_summary(mission.id, student.id)

        assert summary["eligible_days"] == 4
        # Two presents over four days minus one excused
        assert summary["attendance_rate"] == 66
        assert summary["streak_present_days"] == 1
        assert enrollment.attendance_rate == 66

    async def test_holidays_are_not_counted(self, db, factory):
        batch = await factory.batch()
        today = datetime.now(ZoneInfo("UTC")).date()
        mission = await factory.mission(batch, attendance_config={
            "timezone": "UTC", "working_days": [0, 1, 2, 3, 4, 5, 6],
            "holidays": [today.isoformat()], "exclude_excused_from_rate": True,
        })
        [student] = await factory.enrolled(mission, batch, 1)

        summary = await AttendanceService(db).student_summary(mission.id, student.id)

        assert summary["eligible_days"] == 0
        assert summary["attendance_rate"] == 0

    async def test_present_on_holiday_does_not_count(self, db, factory):
        batch = await factory.batch()
        today = datetime.now(ZoneInfo("UTC")).date()
        mission = await factory.mission(batch, attendance_config={
            "timezone": "UTC", "working_days": EVERY_DAY,
            "holidays": [today.isoformat()], "exclude_excused_from_rate": True,
        })
        [student] = await factory.enrolled(mission, batch, 1)
        service = AttendanceService(db)
        await service.mark(mission.id, student.id, "present", date=today)

        summary = await service.student_summary(mission.id, student.id)

        assert summary["eligible_days"] == 0
        assert summary["presents"] == 0
        assert summary["attendance_rate"] == 0

    async def test_non_working_day_presence_does_not_inflate_rate(self, db, factory):
        batch = await factory.batch()
        today = datetime.now(ZoneInfo("UTC")).date()
        # Today is the only non-working weekday
        working_days = [d for d in EVERY_DAY if d != today.weekday()]
        mission = await factory.mission(batch, attendance_config={
            "timezone": "UTC", "working_days": working_days, "holidays": [],
        })
        [student] = await factory.enrolled(mission, batch, 1)
        enrollment = await db.scalar(select(MissionStudent).where(MissionStudent.student_id == student.id))
        enrollment.started_at = datetime.now(timezone.utc) - timedelta(days=2)
        await db.commit()

        service = AttendanceService(db)
        await service.mark(mission.id, student.id, "present", date=today - timedelta(days=2))
        await service.mark(mission.id, student.id, "absent", date=today - timedelta(days=1))
        await service.mark(mission.id, student.id, "present", date=today)

        summary = await service.student_summary(mission.id, student.id)

        assert summary["eligible_days"] == 2
        assert summary["presents"] == 1
        assert summary["attendance_rate"] == 50


class TestForms:
    async def test_single_active_form(self, db, roster):
        _, mission = roster
        service = AttendanceFormService(db)
        await service.create_form({"mission_id": mission.id, "title": "A", "questions": []})

        with pytest.raises(ConflictError):
            await service.create_form({"mission_id": mission.id, "title": "B", "questions": []})

        inactive = await service.create_form({"mission_id": mission.id, "title": "B", "active": False})
        assert inactive.active is False

    async def test_question_change_bumps_version(self, db, roster):
        _, mission = roster
        service = AttendanceFormService(db)
        form = await service.create_form({"mission_id": mission.id, "title": "A", "questions": QUESTIONS})

        updated = await service.update_form(form.id, {"title": "Renamed"})
        assert updated.version == 1

        updated = await service.update_form(form.id, {"questions": QUESTIONS[:1]})
        assert updated.version == 2

    async def test_duplicate_question_keys(self, db, roster):
        _, mission = roster
        with pytest.raises(InvalidInputError):
            await AttendanceFormService(db).create_form({
                "mission_id": mission.id, "title": "A", "questions": [QUESTIONS[0], QUESTIONS[0]],
            })


class TestAnswerCoercion:
    @pytest.mark.parametrize("question, value, expected", [
        ({"key": "n", "type": "number"}, "12.0", 12),
        ({"key": "n", "type": "number", "validation": {"min": 0, "max": 1}}, 0.5, 0.5),
        ({"key": "r", "type": "rating"}, 5, 5),
        ({"key": "s", "type": "scale"}, "7", 7),
        ({"key": "b", "type": "boolean"}, "No", False),
        ({"key": "d", "type": "date"}, "2026-03-01", "2026-03-01"),
        ({"key": "t", "type": "time"}, "09:30", "09:30:00"),
        ({"key": "e", "type": "email"}, " ada@example.com ", "ada@example.com"),
        ({"key": "p", "type": "phone"}, "+880 1711-000000", "+880 1711-000000"),
        ({"key": "u", "type": "url"}, "https://example.com/notes", "https://example.com/notes"),
        ({"key": "o", "type": "single-select", "options": ["a", "b"]}, "b", "b"),
    ])
    def test_valid_values(self, question, value, expected):
        assert coerce_value(question, value) == expected

    @pytest.mark.parametrize("question, value", [
        ({"key": "n", "type": "number"}, "many"),
        ({"key": "n", "type": "number"}, True),
        ({"key": "r", "type": "rating"}, 6),
        ({"key": "s", "type": "scale"}, 0),
        ({"key": "b", "type": "boolean"}, "maybe"),
        ({"key": "d", "type": "date"}, "01/03/2026"),
        ({"key": "e", "type": "email"}, "not-an-email"),
        ({"key": "u", "type": "url"}, "ftp//nowhere"),
        ({"key": "o", "type": "single-select", "options": ["a", "b"]}, "c"),
        ({"key": "m", "type": "multi-select", "options": ["a"]}, ["a", "z"]),
        ({"key": "x", "type": "text", "validation": {"max_length": 3}}, "long"),
        ({"key": "x", "type": "text", "validation": {"pattern": "[A-Z]+"}}, "abc"),
    ])
    def test_invalid_values(self, question, value):
        with pytest.raises(InvalidInputError):
            coerce_value(question, value)

    def test_optional_blank_answers_are_skipped(self):
        assert coerce_answers(QUESTIONS[1:], {"topics": [], "remote": None}) == {}

    def test_unknown_keys_are_dropped(self):
        assert coerce_answers([], {"anything": 1}) == {}

    def test_no_answers_submitted(self):
        assert coerce_answers(QUESTIONS, None) == {}

    async def test_form_with_invalid_pattern_is_rejected(self, db, roster):
        _, mission = roster
        with pytest.raises(InvalidInputError) as exc:
            await AttendanceFormService(db).create_form({
                "mission_id": mission.id, "title": "Notes",
                "questions": [{"key": "note", "label": "Note", "validation": {"pattern": "([a-z"}}],
            })
        assert exc.value.details["key"] == "note"


def test_local_day_treats_naive_values_as_utc():
    moment = datetime(2026, 1, 1, 20, 0)
    assert local_day(moment, ZoneInfo("Asia/Dhaka")) == date(2026, 1, 2)
    assert local_day(moment.replace(tzinfo=timezone.utc), ZoneInfo("UTC")) == date(2026, 1, 1)
