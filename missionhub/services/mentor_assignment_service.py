# missionhub/services/mentor_assignment_service.py
import logging
from typing import List, Dict, Any, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, or_, case

from .base_service import BaseService
from .mission_service import MissionService
from .enrollment_service import EnrollmentService
from .availability_service import AvailabilityService
from ..core.exceptions import NotFoundError, ConflictError, InvalidInputError, PreconditionError
from ..core.performance_monitor import monitor_performance
from ..models.base import utcnow
from ..models.user import User, UserRole
from ..models.roster.mission_student import MissionStudent
from ..models.roster.mission_mentor import MissionMentor, MentorAssignment, MentorRole
from ..utils.cache_invalidation import invalidate_mission_cache

logger = logging.getLogger(__name__)

MENTOR_ROLES = {role.value for role in MentorRole}


def _failure(student_id: UUID, code: str, message: str) -> Dict[str, str]:
    return {"student_id": str(student_id), "code": code, "message": message}


def _unique(ids: List[UUID]) -> List[UUID]:
    seen = set()
    unique = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            unique.append(i)
    return unique


class MentorAssignmentService(BaseService[MissionMentor]):
    def __init__(self, db: AsyncSession):
        super().__init__(MissionMentor, db)
        self.missions = MissionService(db)
        self.enrollments = EnrollmentService(db)

    async def get_mentor_or_404(self, mission_mentor_id: UUID) -> MissionMentor:
        mentor = await self.get(mission_mentor_id)
        if not mentor:
            raise NotFoundError("Mission mentor", mission_mentor_id)
        return mentor

    def mentor_payload(self, mentor: MissionMentor, user: Optional[User] = None) -> Dict[str, Any]:
        payload = {
            "id": str(mentor.id),
            "mission_id": str(mentor.mission_id),
            "mentor_id": str(mentor.mentor_id),
            "role": mentor.role,
            "max_students": mentor.max_students,
            "current_workload": mentor.current_workload,
            "status": mentor.status,
            "capacity": AvailabilityService.mentor_capacity(mentor),
        }
        if user is not None:
            payload["name"] = user.name
            payload["email"] = user.email
        return payload

    async def add_mentor(self, mission_id: UUID, mentor_id: UUID, role: str = MentorRole.SECONDARY.value,
                         max_students: int = 0) -> MissionMentor:
        """Attach a mentor user to a mission"""
        if role not in MENTOR_ROLES:
            raise InvalidInputError(f"Invalid mentor role '{role}'", field="role",
                                    details={"allowed": sorted(MENTOR_ROLES)})
        if max_students < 0:
            raise InvalidInputError("max_students cannot be negative", field="max_students")

        mission = await self.missions.get_or_404(mission_id)

        user = await self.db.get(User, mentor_id)
        if not user or user.role != UserRole.MENTOR.value or not user.is_active:
            raise PreconditionError("User is not an active mentor", details={"mentor_id": str(mentor_id)})

        existing = await self.db.execute(
            select(MissionMentor).where(
                MissionMentor.mission_id == mission_id,
                MissionMentor.mentor_id == mentor_id,
            )
        )
        current = existing.scalar_one_or_none()
        if current:
            raise ConflictError(
                "Mentor is already part of this mission",
                details={"mission_mentor_id": str(current.id)},
            )

        mentor = await self.create({
            "mission_id": mission_id,
            "mentor_id": mentor_id,
            "role": role,
            "max_students": max_students,
            "current_workload": 0,
        })
        await invalidate_mission_cache(mission_id)
        logger.info("Added mentor %s to mission %s as %s", user.email, mission.code, role)
        return mentor

    async def _demote_primary_links(self, mission_id: UUID, student_id: UUID, exclude_id: Optional[UUID] = None):
        stmt = (
            update(MentorAssignment)
            .where(
                MentorAssignment.mission_id == mission_id,
                MentorAssignment.student_id == student_id,
                MentorAssignment.is_primary.is_(True),
            )
            .values(is_primary=False)
            .execution_options(synchronize_session=False)
        )
        if exclude_id is not None:
            stmt = stmt.where(MentorAssignment.id != exclude_id)
        await self.db.execute(stmt)

    async def _reserve_slot(self, mentor: MissionMentor) -> bool:
        """Increment the workload only while it is below capacity."""
        result = await self.db.execute(
            update(MissionMentor)
            .where(
                MissionMentor.id == mentor.id,
                or_(
                    MissionMentor.max_students == 0,
                    MissionMentor.current_workload < MissionMentor.max_students,
                ),
            )
            .values(current_workload=MissionMentor.current_workload + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @monitor_performance("mentor_assignment.assign")
    async def assign_to_mentor(self, mission_mentor_id: UUID, student_ids: List[UUID],
                               make_primary: bool = False) -> Dict[str, Any]:
        """Link students to a mission mentor, reporting failures per student.

        Each slot is reserved with a conditional update, so concurrent calls
        cannot push the workload past max_students.
        """
        mentor = await self.get_mentor_or_404(mission_mentor_id)
        student_ids = _unique(student_ids)
        if not student_ids:
            raise InvalidInputError("student_ids must contain at least one student", field="student_ids")

        enrolled_result = await self.db.execute(
            select(MissionStudent.student_id).where(
                MissionStudent.mission_id == mentor.mission_id,
                MissionStudent.student_id.in_(student_ids),
            )
        )
        enrolled = set(enrolled_result.scalars().all())

        links_result = await self.db.execute(
            select(MentorAssignment).where(
                MentorAssignment.mission_mentor_id == mentor.id,
                MentorAssignment.student_id.in_(student_ids),
            )
        )
        existing_links = {link.student_id: link for link in links_result.scalars().all()}

        now = utcnow()
        assigned, failed = [], []
        for student_id in student_ids:
            if student_id not in enrolled:
                failed.append(_failure(student_id, "not_enrolled", "Student is not enrolled in this mission"))
                continue

            link = existing_links.get(student_id)
            if link is not None:
                if make_primary and not link.is_primary:
                    # Upgrade of an existing link; workload is unchanged
                    await self._demote_primary_links(mentor.mission_id, student_id, exclude_id=link.id)
                    link.is_primary = True
                    assigned.append({"student_id": str(student_id), "is_primary": True, "upgraded": True})
                else:
                    failed.append(_failure(student_id, "already_assigned",
                                           "Student is already assigned to this mentor"))
                continue

            if not await self._reserve_slot(mentor):
                failed.append(_failure(
                    student_id, "capacity_exceeded",
                    f"Mentor has reached the capacity of {mentor.max_students} student(s)",
                ))
                continue

            if make_primary:
                await self._demote_primary_links(mentor.mission_id, student_id)
            self.db.add(MentorAssignment(
                mission_id=mentor.mission_id,
                mission_mentor_id=mentor.id,
                student_id=student_id,
                is_primary=make_primary,
                assigned_at=now,
            ))
            assigned.append({"student_id": str(student_id), "is_primary": make_primary, "upgraded": False})

        if not assigned and failed:
            raise ConflictError(
                "None of the students could be assigned to this mentor",
                details={"mission_mentor_id": str(mentor.id), "failed": failed},
            )

        await self._flush("assign students to mentor")
        await self.enrollments.reclassify_mentors([mentor.id])
        await self._commit("assign students to mentor")
        await invalidate_mission_cache(mentor.mission_id)

        logger.info(
            "Assigned %d student(s) to mission mentor %s, %d failed",
            len(assigned), mentor.id, len(failed),
        )
        return {
            "assigned_count": len(assigned),
            "assigned": assigned,
            "failed": failed,
            "mentor": self.mentor_payload(mentor),
        }

    async def unassign(self, mission_mentor_id: UUID, student_ids: List[UUID]) -> Dict[str, Any]:
        mentor = await self.get_mentor_or_404(mission_mentor_id)
        student_ids = _unique(student_ids)

        links_result = await self.db.execute(
            select(MentorAssignment.id, MentorAssignment.student_id).where(
                MentorAssignment.mission_mentor_id == mentor.id,
                MentorAssignment.student_id.in_(student_ids),
            )
        )
        links = {student_id: link_id for link_id, student_id in links_result.all()}

        removed = [str(student_id) for student_id in student_ids if student_id in links]
        failed = [
            _failure(student_id, "not_assigned", "Student is not assigned to this mentor")
            for student_id in student_ids if student_id not in links
        ]

        if links:
            count = len(links)
            await self.db.execute(delete(MentorAssignment).where(MentorAssignment.id.in_(list(links.values()))))
            await self.db.execute(
                update(MissionMentor)
                .where(MissionMentor.id == mentor.id)
                .values(current_workload=case(
                    (MissionMentor.current_workload > count, MissionMentor.current_workload - count),
                    else_=0,
                ))
                .execution_options(synchronize_session=False)
            )
            await self.enrollments.reclassify_mentors([mentor.id])
            await self._commit("unassign students from mentor")
            await invalidate_mission_cache(mentor.mission_id)
            logger.info("Unassigned %d student(s) from mission mentor %s", count, mentor.id)

        return {
            "unassigned_count": len(removed),
            "unassigned": removed,
            "failed": failed,
            "mentor": self.mentor_payload(mentor),
        }

    async def get_capacity(self, mission_mentor_id: UUID) -> Dict[str, Any]:
        mentor = await self.get_mentor_or_404(mission_mentor_id)
        result = await self.db.execute(
            select(MentorAssignment)
            .where(MentorAssignment.mission_mentor_id == mentor.id)
            .order_by(MentorAssignment.assigned_at)
        )
        payload = self.mentor_payload(mentor)
        payload["students"] = [
            {
                "student_id": str(link.student_id),
                "is_primary": link.is_primary,
                "assigned_at": link.assigned_at.isoformat(),
            }
            for link in result.scalars().all()
        ]
        return payload

    async def list_mentors(self, mission_id: UUID, page: int = 1, size: int = 20,
                           status: Optional[str] = None) -> Dict[str, Any]:
        await self.missions.get_or_404(mission_id)
        result = await self.get_paginated(
            page=page, size=size, order_by="created_at",
            mission_id=mission_id, status=status,
        )

        mentor_ids = [mentor.mentor_id for mentor in result["items"]]
        users = {}
        if mentor_ids:
            users_result = await self.db.execute(select(User).where(User.id.in_(mentor_ids)))
            users = {user.id: user for user in users_result.scalars().all()}

        result["items"] = [self.mentor_payload(mentor, users.get(mentor.mentor_id)) for mentor in result["items"]]
        return result
