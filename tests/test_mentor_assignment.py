import uuid

import pytest
from sqlalchemy import select

from missionhub.core.exceptions import ConflictError, InvalidInputError, NotFoundError, PreconditionError
from missionhub.models import MissionMentor, MentorAssignment
from missionhub.services.availability_service import AvailabilityService
from missionhub.services.mentor_assignment_service import MentorAssignmentService


async def _reload(db, mentor):
    return await db.get(MissionMentor, mentor.id, populate_existing=True)


class TestAddMentor:
    async def test_add_mentor(self, db, factory, roster):
        _, mission = roster
        user = await factory.mentor()

        mentor = await MentorAssignmentService(db).add_mentor(mission.id, user.id, role="primary", max_students=3)

        assert mentor.current_workload == 0
        assert mentor.status == "active"
        assert mentor.role == "primary"

    async def test_same_mentor_twice(self, db, factory, roster):
        _, mission = roster
        user = await factory.mentor()
        service = MentorAssignmentService(db)
        await service.add_mentor(mission.id, user.id)

        with pytest.raises(ConflictError):
            await service.add_mentor(mission.id, user.id)

    async def test_student_cannot_be_mentor(self, db, factory, roster):
        batch, mission = roster
        student = await factory.student(batch)

        with pytest.raises(PreconditionError):
            await MentorAssignmentService(db).add_mentor(mission.id, student.id)

    async def test_unknown_role(self, db, factory, roster):
        _, mission = roster
        user = await factory.mentor()

        with pytest.raises(InvalidInputError):
            await MentorAssignmentService(db).add_mentor(mission.id, user.id, role="owner")


class TestAssign:
    async def test_capacity_exceeded_leaves_workload_unchanged(self, db, factory, roster):
        batch, mission = roster
        a, b, c = await factory.enrolled(mission, batch, 3)
        mentor = await factory.mission_mentor(mission, max_students=2)
        service = MentorAssignmentService(db)
        await service.assign_to_mentor(mentor.id, [a.id, b.id])

        with pytest.raises(ConflictError) as exc:
            await service.assign_to_mentor(mentor.id, [c.id])

        [failure] = exc.value.details["failed"]
        assert failure["student_id"] == str(c.id)
        assert failure["code"] == "capacity_exceeded"
        assert (await _reload(db, mentor)).current_workload == 2

    async def test_partial_success_reports_failures(self, db, factory, roster):
        batch, mission = roster
        a, b, c = await factory.enrolled(mission, batch, 3)
        stranger = await factory.student(batch)
        mentor = await factory.mission_mentor(mission, max_students=2)

        result = await MentorAssignmentService(db).assign_to_mentor(mentor.id, [a.id, stranger.id, b.id, c.id])

        assert result["assigned_count"] == 2
        assert {f["code"] for f in result["failed"]} == {"not_enrolled", "capacity_exceeded"}
        assert result["mentor"]["current_workload"] == 2
        assert result["mentor"]["status"] == "overloaded"

    async def test_workload_matches_links(self, db, factory, roster):
        batch, mission = roster
        students = await factory.enrolled(mission, batch, 4)
        mentor = await factory.mission_mentor(mission)
        service = MentorAssignmentService(db)

        await service.assign_to_mentor(mentor.id, [s.id for s in students])
        await service.unassign(mentor.id, [students[0].id])

        links = (await db.execute(
            select(MentorAssignment).where(MentorAssignment.mission_mentor_id == mentor.id)
        )).scalars().all()
        assert (await _reload(db, mentor)).current_workload == len(links) == 3

    async def test_already_assigned(self, db, factory, roster):
        batch, mission = roster
        [a] = await factory.enrolled(mission, batch, 1)
        mentor = await factory.mission_mentor(mission)
        service = MentorAssignmentService(db)
        await service.assign_to_mentor(mentor.id, [a.id])

        with pytest.raises(ConflictError) as exc:
            await service.assign_to_mentor(mentor.id, [a.id])

        assert exc.value.details["failed"][0]["code"] == "already_assigned"
        assert (await _reload(db, mentor)).current_workload == 1

    async def test_primary_upgrade_moves_flag(self, db, factory, roster):
        batch, mission = roster
        [a] = await factory.enrolled(mission, batch, 1)
        first = await factory.mission_mentor(mission)
        second = await factory.mission_mentor(mission)
        service = MentorAssignmentService(db)

        await service.assign_to_mentor(first.id, [a.id], make_primary=True)
        await service.assign_to_mentor(second.id, [a.id])
        result = await service.assign_to_mentor(second.id, [a.id], make_primary=True)

        assert result["assigned"] == [{"student_id": str(a.id), "is_primary": True, "upgraded": True}]
        rows = (await db.execute(
            select(MentorAssignment.mission_mentor_id, MentorAssignment.is_primary)
            .where(MentorAssignment.student_id == a.id)
            .execution_options(populate_existing=True)
        )).all()
        assert dict(rows) == {first.id: False, second.id: True}
        assert (await _reload(db, second)).current_workload == 1

    async def test_unknown_mentor(self, db):
        with pytest.raises(NotFoundError):
            await MentorAssignmentService(db).assign_to_mentor(uuid.uuid4(), [uuid.uuid4()])


class TestConcurrentAssign:
    async def test_last_slot_goes_to_one_caller(self, db, factory, roster, session_factory):
        batch, mission = roster
        seated, first, second = await factory.enrolled(mission, batch, 3)
        mentor = await factory.mission_mentor(mission, max_students=2)
        await MentorAssignmentService(db).assign_to_mentor(mentor.id, [seated.id])

        async with session_factory() as session_a, session_factory() as session_b:
            # Both callers see one free slot before either writes
            stale_a = await session_a.get(MissionMentor, mentor.id)
            stale_b = await session_b.get(MissionMentor, mentor.id)
            assert stale_a.current_workload == stale_b.current_workload == 1

            result = await MentorAssignmentService(session_a).assign_to_mentor(mentor.id, [first.id])
            assert result["assigned_count"] == 1

            with pytest.raises(ConflictError) as exc:
                await MentorAssignmentService(session_b).assign_to_mentor(mentor.id, [second.id])
            assert exc.value.details["failed"][0]["code"] == "capacity_exceeded"

        stored = await _reload(db, mentor)
        assert stored.current_workload == 2
        links = (await db.execute(
            select(MentorAssignment.student_id).where(MentorAssignment.mission_mentor_id == mentor.id)
        )).scalars().all()
        assert set(links) == {seated.id, first.id}


class TestUnassign:
    async def test_unassign_reports_missing_links(self, db, factory, roster):
        batch, mission = roster
        a, b = await factory.enrolled(mission, batch, 2)
        mentor = await factory.mission_mentor(mission, max_students=2)
        service = MentorAssignmentService(db)
        await service.assign_to_mentor(mentor.id, [a.id, b.id])

        result = await service.unassign(mentor.id, [a.id, uuid.UUID(int=7)])

        assert result["unassigned"] == [str(a.id)]
        assert result["failed"][0]["code"] == "not_assigned"
        reloaded = await _reload(db, mentor)
        assert reloaded.current_workload == 1
        assert reloaded.status == "active"

    async def test_capacity_listing(self, db, factory, roster):
        batch, mission = roster
        a, b = await factory.enrolled(mission, batch, 2)
        mentor = await factory.mission_mentor(mission, max_students=4)
        service = MentorAssignmentService(db)
        await service.assign_to_mentor(mentor.id, [a.id, b.id])

        capacity = await service.get_capacity(mentor.id)

        assert capacity["capacity"]["remaining"] == 2
        assert capacity["capacity"]["ratio"] == 0.5
        assert {s["student_id"] for s in capacity["students"]} == {str(a.id), str(b.id)}


class TestCapacityClassification:
    @pytest.mark.parametrize("workload, max_students, expected", [
        (0, 0, "active"),
        (50, 0, "active"),
        (8, 10, "active"),
        (9, 10, "overloaded"),
        (10, 10, "overloaded"),
    ])
    def test_classification(self, workload, max_students, expected):
        mentor = MissionMentor(current_workload=workload, max_students=max_students, status="active")
        assert AvailabilityService.mentor_capacity(mentor)["status_classification"] == expected

    def test_inactive_mentor_stays_inactive(self):
        mentor = MissionMentor(current_workload=1, max_students=10, status="inactive")
        assert AvailabilityService.mentor_capacity(mentor)["status_classification"] == "inactive"

    def test_unlimited_mentor_has_no_remaining(self):
        mentor = MissionMentor(current_workload=3, max_students=0, status="active")
        capacity = AvailabilityService.mentor_capacity(mentor)
        assert capacity["remaining"] is None
        assert capacity["ratio"] == 0.0
