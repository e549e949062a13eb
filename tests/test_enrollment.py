import uuid

import pytest
from sqlalchemy import select, func

from missionhub.core.exceptions import ConflictError, InvalidInputError, NotFoundError, PreconditionError
from missionhub.models import MissionStudent, MentorAssignment, GroupStudent, MissionMentor, MentorshipGroup
from missionhub.services.enrollment_service import EnrollmentService
from missionhub.services.mentor_assignment_service import MentorAssignmentService


async def _count_enrollments(db, mission_id):
    return await db.scalar(
        select(func.count()).select_from(MissionStudent).where(MissionStudent.mission_id == mission_id)
    )


class TestEnroll:
    async def test_enroll_creates_active_enrollments(self, db, factory, roster):
        batch, mission = roster
        a = await factory.student(batch)
        b = await factory.student(batch)

        enrollments = await EnrollmentService(db).enroll(mission.id, [a.id, b.id])

        assert [e.student_id for e in enrollments] == [a.id, b.id]
        for enrollment in enrollments:
            assert enrollment.status == "active"
            assert enrollment.progress == 0
            assert enrollment.attendance_rate == 100
            assert enrollment.batch_id == batch.id
        assert mission.total_students == 2
        assert mission.student_ids == [str(a.id), str(b.id)]

    async def test_duplicate_enrollment_is_rejected_as_a_whole(self, db, factory, roster):
        batch, mission = roster
        a = await factory.student(batch)
        b = await factory.student(batch)
        service = EnrollmentService(db)
        await service.enroll(mission.id, [a.id])

        with pytest.raises(ConflictError) as exc:
            await service.enroll(mission.id, [b.id, a.id])

        assert exc.value.status_code == 400
        assert exc.value.details["existing_student_ids"] == [str(a.id)]
        assert await _count_enrollments(db, mission.id) == 1

    async def test_student_without_approved_membership(self, db, factory, roster):
        batch, mission = roster
        ok = await factory.student(batch)
        pending = await factory.student(batch, approved=False)

        with pytest.raises(PreconditionError) as exc:
            await EnrollmentService(db).enroll(mission.id, [ok.id, pending.id])

        assert exc.value.details["missing_batch_student_ids"] == [str(pending.id)]
        assert await _count_enrollments(db, mission.id) == 0

    async def test_non_student_ids_are_rejected(self, db, factory, roster):
        batch, mission = roster
        mentor = await factory.mentor()
        inactive = await factory.student(batch, active=False)
        unknown = uuid.uuid4()

        with pytest.raises(PreconditionError) as exc:
            await EnrollmentService(db).enroll(mission.id, [mentor.id, inactive.id, unknown])

        assert set(exc.value.details["invalid_student_ids"]) == {str(mentor.id), str(inactive.id), str(unknown)}

    async def test_capacity_reports_available_slots(self, db, factory):
        batch = await factory.batch()
        mission = await factory.mission(batch, max_students=2)
        students = [await factory.student(batch) for _ in range(3)]
        service = EnrollmentService(db)
        await service.enroll(mission.id, [students[0].id])

        with pytest.raises(ConflictError) as exc:
            await service.enroll(mission.id, [students[1].id, students[2].id])

        assert exc.value.status_code == 409
        assert exc.value.details["available_slots"] == 1
        assert await _count_enrollments(db, mission.id) == 1

    async def test_duplicate_ids_in_request(self, db, factory, roster):
        batch, mission = roster
        a = await factory.student(batch)

        with pytest.raises(InvalidInputError):
            await EnrollmentService(db).enroll(mission.id, [a.id, a.id])

    async def test_empty_request(self, db, roster):
        _, mission = roster
        with pytest.raises(InvalidInputError):
            await EnrollmentService(db).enroll(mission.id, [])

    async def test_unknown_mission(self, db, factory):
        batch = await factory.batch()
        a = await factory.student(batch)
        with pytest.raises(NotFoundError):
            await EnrollmentService(db).enroll(uuid.uuid4(), [a.id])


class TestEnrollmentUpdates:
    async def test_update_status_and_completion(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)
        service = EnrollmentService(db)

        enrollment = await service.update_status(mission.id, student.id, "completed")

        assert enrollment.status == "completed"
        assert enrollment.completed_at is not None

    async def test_update_status_rejects_unknown_value(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)

        with pytest.raises(InvalidInputError):
            await EnrollmentService(db).update_status(mission.id, student.id, "graduated")

    async def test_update_progress_bounds(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)
        service = EnrollmentService(db)

        enrollment = await service.update_progress(mission.id, student.id, 40)
        assert enrollment.progress == 40

        with pytest.raises(InvalidInputError):
            await service.update_progress(mission.id, student.id, 101)

    async def test_update_for_missing_enrollment(self, db, factory, roster):
        batch, mission = roster
        stranger = await factory.student(batch)
        with pytest.raises(NotFoundError):
            await EnrollmentService(db).update_progress(mission.id, stranger.id, 10)

    async def test_bulk_update_reports_missing_students(self, db, factory, roster):
        batch, mission = roster
        students = await factory.enrolled(mission, batch, 2)
        stranger = await factory.student(batch)

        result = await EnrollmentService(db).bulk_update(
            mission.id,
            [students[0].id, students[1].id, stranger.id],
            {"status": "on-hold", "progress": 55},
        )

        assert result["updated_count"] == 2
        assert result["failed"] == [{
            "student_id": str(stranger.id),
            "code": "not_enrolled",
            "message": "Student is not enrolled in this mission",
        }]
        rows = (await db.execute(
            select(MissionStudent).where(MissionStudent.mission_id == mission.id)
        )).scalars().all()
        assert {(r.status, r.progress) for r in rows} == {("on-hold", 55)}

    async def test_bulk_update_rejects_unknown_fields(self, db, factory, roster):
        batch, mission = roster
        [student] = await factory.enrolled(mission, batch, 1)

        with pytest.raises(InvalidInputError) as exc:
            await EnrollmentService(db).bulk_update(mission.id, [student.id], {"batch_id": str(batch.id)})

        assert exc.value.details["unknown_fields"] == ["batch_id"]


class TestRemove:
    async def test_remove_cascades_to_mentors_and_groups(self, db, factory, roster):
        batch, mission = roster
        a, b = await factory.enrolled(mission, batch, 2)
        mentor = await factory.mission_mentor(mission, max_students=5)
        await MentorAssignmentService(db).assign_to_mentor(mentor.id, [a.id, b.id])
        group = await factory.group(mission, "Alpha", student_ids=[a.id, b.id])

        result = await EnrollmentService(db).remove(mission.id, a.id)

        assert result == {"removed_count": 1, "mentor_links_removed": 1, "group_memberships_removed": 1}
        assert mission.student_ids == [str(b.id)]
        assert mission.total_students == 1

        mentor_row = await db.get(MissionMentor, mentor.id, populate_existing=True)
        group_row = await db.get(MentorshipGroup, group.id, populate_existing=True)
        assert mentor_row.current_workload == 1
        assert group_row.current_students == 1
        links = (await db.execute(select(MentorAssignment.student_id))).scalars().all()
        members = (await db.execute(select(GroupStudent.student_id))).scalars().all()
        assert links == [b.id]
        assert members == [b.id]

    async def test_remove_reopens_full_group(self, db, factory, roster):
        batch, mission = roster
        a, b = await factory.enrolled(mission, batch, 2)
        group = await factory.group(mission, "Pair", max_students=2, student_ids=[a.id, b.id])
        assert group.status == "full"

        await EnrollmentService(db).remove(mission.id, a.id)

        group_row = await db.get(MentorshipGroup, group.id, populate_existing=True)
        assert group_row.status == "active"
        assert group_row.current_students == 1

    async def test_remove_unknown_enrollment(self, db, factory, roster):
        batch, mission = roster
        stranger = await factory.student(batch)
        with pytest.raises(NotFoundError):
            await EnrollmentService(db).remove(mission.id, stranger.id)


class TestListing:
    async def test_enrolled_then_batch_only_rows(self, db, factory, roster):
        batch, mission = roster
        [enrolled] = await factory.enrolled(mission, batch, 1)
        waiting = await factory.student(batch)
        await factory.student(batch, approved=False)

        listing = await EnrollmentService(db).list_for_mission(mission.id, include_batch_students=True)

        assert [row.kind for row in listing.students] == ["enrolled", "batch_only"]
        assert listing.students[0].student_id == enrolled.id
        assert listing.students[1].student_id == waiting.id
        assert listing.enrolled_count == 1
        assert listing.batch_only_count == 1
        assert listing.debug is None

    async def test_debug_reports_summary_drift(self, db, factory, roster):
        batch, mission = roster
        await factory.enrolled(mission, batch, 2)
        mission.total_students = 5
        await db.commit()

        listing = await EnrollmentService(db).list_for_mission(mission.id, debug=True)

        assert listing.debug.enrolled_count == 2
        assert listing.debug.summary_total_students == 5
        assert listing.debug.summary_in_sync is False
        assert listing.debug.missing_from_mission == []
