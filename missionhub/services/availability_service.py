# missionhub/services/availability_service.py
"""Read-only capacity and availability queries over a mission roster."""
import logging
from typing import Any, Dict, Iterable, List, Set
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.cache import cache
from ..core.exceptions import NotFoundError
from ..models.user import User
from ..models.shared.batch import StudentBatchMembership, MembershipStatus
from ..models.roster.mission import Mission
from ..models.roster.mission_student import MissionStudent, EnrollmentStatus
from ..models.roster.mission_mentor import MissionMentor, MentorStatus
from ..models.roster.mentorship_group import (
    MentorshipGroup, GroupMentor, GroupStudent, MEMBERSHIP_HOLDING_STATUSES
)
from ..utils.cache_invalidation import mission_cache_key

logger = logging.getLogger(__name__)

# Share of capacity at which a mentor is classified as overloaded
OVERLOAD_THRESHOLD = 0.9


class AvailabilityService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def mentor_capacity(mentor: MissionMentor) -> Dict[str, Any]:
        workload = mentor.current_workload or 0
        max_students = mentor.max_students or 0

        if not max_students:
            remaining = None
            ratio = 0.0
            classification = MentorStatus.ACTIVE.value
        else:
            remaining = max(max_students - workload, 0)
            ratio = round(workload / max_students, 4)
            classification = (
                MentorStatus.OVERLOADED.value if ratio >= OVERLOAD_THRESHOLD
                else MentorStatus.ACTIVE.value
            )

        if mentor.status == MentorStatus.INACTIVE.value:
            classification = MentorStatus.INACTIVE.value

        return {
            "current_workload": workload,
            "max_students": max_students,
            "remaining": remaining,
            "ratio": ratio,
            "status_classification": classification,
        }

    @staticmethod
    def group_capacity(group: MentorshipGroup) -> Dict[str, Any]:
        current = group.current_students or 0
        max_students = group.max_students or 0

        if not max_students:
            return {
                "current_students": current,
                "max_students": 0,
                "remaining": None,
                "percentage": 0.0,
                "is_full": False,
            }

        return {
            "current_students": current,
            "max_students": max_students,
            "remaining": max(max_students - current, 0),
            "percentage": round(current * 100.0 / max_students, 2),
            "is_full": current >= max_students,
        }

    async def available_mentors(self, mission_id: UUID) -> List[Dict[str, Any]]:
        """Mission mentors who are not linked to any group of the mission."""
        grouped = (
            select(GroupMentor.mentor_id)
            .join(MentorshipGroup, MentorshipGroup.id == GroupMentor.group_id)
            .where(MentorshipGroup.mission_id == mission_id)
        )
        stmt = (
            select(MissionMentor, User)
            .join(User, User.id == MissionMentor.mentor_id)
            .where(
                MissionMentor.mission_id == mission_id,
                MissionMentor.status != MentorStatus.INACTIVE.value,
                MissionMentor.mentor_id.not_in(grouped),
            )
            .order_by(User.name)
        )
        result = await self.db.execute(stmt)

        return [
            {
                "mission_mentor_id": mentor.id,
                "mentor_id": mentor.mentor_id,
                "name": user.name,
                "email": user.email,
                "role": mentor.role,
                "status": mentor.status,
                "capacity": self.mentor_capacity(mentor),
            }
            for mentor, user in result.all()
        ]

    async def available_students(self, mission_id: UUID) -> List[Dict[str, Any]]:
        """Active enrollments whose student is not in any group of the mission."""
        grouped = select(GroupStudent.student_id).where(GroupStudent.mission_id == mission_id)
        stmt = (
            select(MissionStudent, User)
            .join(User, User.id == MissionStudent.student_id)
            .where(
                MissionStudent.mission_id == mission_id,
                MissionStudent.status == EnrollmentStatus.ACTIVE.value,
                MissionStudent.student_id.not_in(grouped),
            )
            .order_by(User.name)
        )
        result = await self.db.execute(stmt)

        return [
            {
                "enrollment_id": enrollment.id,
                "student_id": enrollment.student_id,
                "name": user.name,
                "email": user.email,
                "student_code": user.student_code,
                "progress": enrollment.progress,
            }
            for enrollment, user in result.all()
        ]

    async def student_groups(self, mission_id: UUID, student_ids: Iterable[UUID]) -> Dict[UUID, Dict[str, Any]]:
        """Map each given student to the membership-holding group they belong to."""
        student_ids = list(student_ids)
        if not student_ids:
            return {}

        stmt = (
            select(GroupStudent.student_id, MentorshipGroup.id, MentorshipGroup.name)
            .join(MentorshipGroup, MentorshipGroup.id == GroupStudent.group_id)
            .where(
                GroupStudent.mission_id == mission_id,
                GroupStudent.student_id.in_(student_ids),
                MentorshipGroup.status.in_(MEMBERSHIP_HOLDING_STATUSES),
            )
        )
        result = await self.db.execute(stmt)
        return {
            student_id: {"group_id": group_id, "group_name": group_name}
            for student_id, group_id, group_name in result.all()
        }

    async def approved_batch_student_ids(self, batch_id: UUID) -> Set[UUID]:
        stmt = select(StudentBatchMembership.student_id).where(
            StudentBatchMembership.batch_id == batch_id,
            StudentBatchMembership.status == MembershipStatus.APPROVED.value,
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def mission_analytics(self, mission_id: UUID, use_cache: bool = True) -> Dict[str, Any]:
        """Dashboard aggregates for one mission"""
        cache_key = mission_cache_key(mission_id, "analytics")
        if use_cache:
            cached = await cache.get(cache_key)
            if cached is not None:
                return cached

        mission = await self.db.get(Mission, mission_id)
        if not mission:
            raise NotFoundError("Mission", mission_id)

        status_rows = await self.db.execute(
            select(MissionStudent.status, func.count())
            .where(MissionStudent.mission_id == mission_id)
            .group_by(MissionStudent.status)
        )
        by_status = {status.value: 0 for status in EnrollmentStatus}
        by_status.update({status: count for status, count in status_rows.all()})
        total_enrolled = sum(by_status.values())

        averages = await self.db.execute(
            select(func.avg(MissionStudent.progress), func.avg(MissionStudent.attendance_rate))
            .where(MissionStudent.mission_id == mission_id)
        )
        avg_progress, avg_attendance = averages.one()

        mentor_rows = await self.db.execute(
            select(MissionMentor.status, func.count(), func.coalesce(func.sum(MissionMentor.current_workload), 0))
            .where(MissionMentor.mission_id == mission_id)
            .group_by(MissionMentor.status)
        )
        mentors_by_status = {status.value: 0 for status in MentorStatus}
        total_workload = 0
        for status, count, workload in mentor_rows.all():
            mentors_by_status[status] = count
            total_workload += int(workload or 0)

        group_rows = await self.db.execute(
            select(MentorshipGroup.status, func.count())
            .where(MentorshipGroup.mission_id == mission_id)
            .group_by(MentorshipGroup.status)
        )
        groups_by_status = dict(group_rows.all())

        grouped_count = await self.db.scalar(
            select(func.count(func.distinct(GroupStudent.student_id)))
            .join(MissionStudent, (MissionStudent.student_id == GroupStudent.student_id)
                  & (MissionStudent.mission_id == GroupStudent.mission_id))
            .where(GroupStudent.mission_id == mission_id)
        ) or 0

        analytics = {
            "mission_id": str(mission_id),
            "max_students": mission.max_students,
            "enrollments": {
                "total": total_enrolled,
                "by_status": by_status,
                "average_progress": round(float(avg_progress or 0), 2),
                "average_attendance_rate": round(float(avg_attendance or 0), 2),
            },
            "mentors": {
                "total": sum(mentors_by_status.values()),
                "by_status": mentors_by_status,
                "total_workload": total_workload,
            },
            "groups": {
                "total": sum(groups_by_status.values()),
                "by_status": groups_by_status,
                "grouped_students": grouped_count,
                "ungrouped_students": max(total_enrolled - grouped_count, 0),
            },
        }

        if use_cache:
            await cache.set(cache_key, analytics)
        return analytics
