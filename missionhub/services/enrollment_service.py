# missionhub/services/enrollment_service.py
import logging
from typing import List, Optional, Dict, Any, Sequence
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, case

from .base_service import BaseService
from .mission_service import MissionService
from .availability_service import AvailabilityService
from ..core.exceptions import NotFoundError, ConflictError, InvalidInputError, PreconditionError
from ..core.performance_monitor import monitor_performance
from ..models.base import utcnow
from ..models.user import User, UserRole
from ..models.shared.batch import Batch, StudentBatchMembership, MembershipStatus
from ..models.roster.mission import Mission
from ..models.roster.mission_student import MissionStudent, EnrollmentStatus
from ..models.roster.mission_mentor import MissionMentor, MentorAssignment, MentorStatus
from ..models.roster.mentorship_group import MentorshipGroup, GroupStudent, GroupStatus
from ..schemas.enrollment_schemas import (
    EnrolledStudentRow, BatchOnlyStudentRow, ListingDebugInfo, MissionStudentListing
)
from ..utils.cache_invalidation import invalidate_mission_cache

logger = logging.getLogger(__name__)

ENROLLMENT_STATUSES = {status.value for status in EnrollmentStatus}
BULK_UPDATABLE_FIELDS = {"status", "progress", "attendance_rate", "notes"}


def _check_percentage(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise InvalidInputError(f"{field} must be an integer between 0 and 100", field=field)
    return value


def _check_status(status: Any) -> str:
    if status not in ENROLLMENT_STATUSES:
        raise InvalidInputError(
            f"Invalid enrollment status '{status}'",
            field="status",
            details={"allowed": sorted(ENROLLMENT_STATUSES)},
        )
    return status


class EnrollmentService(BaseService[MissionStudent]):
    def __init__(self, db: AsyncSession):
        super().__init__(MissionStudent, db)
        self.missions = MissionService(db)
        self.availability = AvailabilityService(db)

    async def get_enrollment(self, mission_id: UUID, student_id: UUID) -> Optional[MissionStudent]:
        stmt = select(MissionStudent).where(
            MissionStudent.mission_id == mission_id,
            MissionStudent.student_id == student_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_enrollment_or_404(self, mission_id: UUID, student_id: UUID) -> MissionStudent:
        enrollment = await self.get_enrollment(mission_id, student_id)
        if not enrollment:
            raise NotFoundError(
                "Enrollment",
                details={"mission_id": str(mission_id), "student_id": str(student_id)},
            )
        return enrollment

    async def enrolled_student_ids(self, mission_id: UUID) -> List[UUID]:
        stmt = (
            select(MissionStudent.student_id)
            .where(MissionStudent.mission_id == mission_id)
            .order_by(MissionStudent.started_at, MissionStudent.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _approved_batches(self, student_ids: Sequence[UUID]) -> Dict[UUID, List[UUID]]:
        """Approved batch ids per student."""
        stmt = (
            select(StudentBatchMembership.student_id, StudentBatchMembership.batch_id)
            .where(
                StudentBatchMembership.student_id.in_(student_ids),
                StudentBatchMembership.status == MembershipStatus.APPROVED.value,
            )
            .order_by(StudentBatchMembership.joined_at)
        )
        result = await self.db.execute(stmt)
        batches: Dict[UUID, List[UUID]] = {}
        for student_id, batch_id in result.all():
            batches.setdefault(student_id, []).append(batch_id)
        return batches

    @monitor_performance("enrollment.enroll")
    async def enroll(self, mission_id: UUID, student_ids: List[UUID]) -> List[MissionStudent]:
        """Enroll every given student or none of them.

        All checks run before the first insert, so a rejected call leaves the
        roster untouched and the error names the offending student ids.
        """
        if not student_ids:
            raise InvalidInputError("student_ids must contain at least one student", field="student_ids")

        seen = set()
        duplicates = []
        for student_id in student_ids:
            if student_id in seen and str(student_id) not in duplicates:
                duplicates.append(str(student_id))
            seen.add(student_id)
        if duplicates:
            raise InvalidInputError(
                "student_ids contains duplicates",
                field="student_ids",
                details={"duplicate_student_ids": duplicates},
            )

        # Serializes enrollment changes on this mission until commit
        mission = await self.missions.get_for_update(mission_id)

        users_result = await self.db.execute(select(User).where(User.id.in_(student_ids)))
        users = {user.id: user for user in users_result.scalars().all()}
        invalid = [
            str(student_id) for student_id in student_ids
            if student_id not in users
            or users[student_id].role != UserRole.STUDENT.value
            or not users[student_id].is_active
        ]
        if invalid:
            raise PreconditionError(
                "Some ids do not belong to active students",
                details={"invalid_student_ids": invalid},
            )

        approved = await self._approved_batches(student_ids)
        missing_batch = [str(student_id) for student_id in student_ids if student_id not in approved]
        if missing_batch:
            raise PreconditionError(
                "Some students have no approved batch membership",
                details={"missing_batch_student_ids": missing_batch},
            )

        existing_result = await self.db.execute(
            select(MissionStudent.student_id).where(
                MissionStudent.mission_id == mission_id,
                MissionStudent.student_id.in_(student_ids),
            )
        )
        existing = set(existing_result.scalars().all())
        if existing:
            raise ConflictError(
                "Some students are already enrolled in this mission",
                details={"existing_student_ids": [str(s) for s in student_ids if s in existing]},
                status_code=400,
            )

        if mission.max_students:
            current = await self.db.scalar(
                select(func.count()).select_from(MissionStudent).where(MissionStudent.mission_id == mission_id)
            )
            available = max(mission.max_students - current, 0)
            if len(student_ids) > available:
                raise ConflictError(
                    f"Mission capacity exceeded: only {available} slot(s) left",
                    details={
                        "available_slots": available,
                        "requested": len(student_ids),
                        "max_students": mission.max_students,
                    },
                )

        now = utcnow()
        enrollments = []
        for student_id in student_ids:
            batch_ids = approved[student_id]
            enrollment = MissionStudent(
                mission_id=mission_id,
                student_id=student_id,
                batch_id=mission.batch_id if mission.batch_id in batch_ids else batch_ids[0],
                status=EnrollmentStatus.ACTIVE.value,
                progress=0,
                attendance_rate=100,
                started_at=now,
                last_activity=now,
            )
            self.db.add(enrollment)
            enrollments.append(enrollment)

        await self._flush("enroll students")
        # New ids keep the request order at the end of the summary list
        mission.student_ids = list(mission.student_ids or []) + [str(s) for s in student_ids]
        await self.sync_mission_summary(mission)
        await self._commit("enroll students")
        await invalidate_mission_cache(mission_id)

        logger.info("Enrolled %d student(s) into mission %s", len(enrollments), mission.code)
        return enrollments

    async def update_status(self, mission_id: UUID, student_id: UUID, status: str) -> MissionStudent:
        status = _check_status(status)
        enrollment = await self.get_enrollment_or_404(mission_id, student_id)

        now = utcnow()
        enrollment.status = status
        enrollment.last_activity = now
        if status == EnrollmentStatus.COMPLETED.value:
            enrollment.completed_at = now

        await self._commit("update enrollment status")
        await invalidate_mission_cache(mission_id)
        logger.info("Enrollment of student %s in mission %s set to %s", student_id, mission_id, status)
        return enrollment

    async def update_progress(self, mission_id: UUID, student_id: UUID, progress: int) -> MissionStudent:
        progress = _check_percentage(progress, "progress")
        enrollment = await self.get_enrollment_or_404(mission_id, student_id)

        enrollment.progress = progress
        enrollment.last_activity = utcnow()

        await self._commit("update enrollment progress")
        await invalidate_mission_cache(mission_id)
        return enrollment

    @monitor_performance("enrollment.bulk_update")
    async def bulk_update(self, mission_id: UUID, student_ids: List[UUID], updates: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the same field updates to many enrollments, reporting per student."""
        if not updates:
            raise InvalidInputError("updates must not be empty", field="updates")
        unknown = sorted(set(updates) - BULK_UPDATABLE_FIELDS)
        if unknown:
            raise InvalidInputError(
                "Unsupported fields in updates",
                field="updates",
                details={"unknown_fields": unknown, "allowed": sorted(BULK_UPDATABLE_FIELDS)},
            )
        if "status" in updates:
            _check_status(updates["status"])
        for field in ("progress", "attendance_rate"):
            if field in updates:
                _check_percentage(updates[field], field)

        await self.missions.get_or_404(mission_id)

        result = await self.db.execute(
            select(MissionStudent).where(
                MissionStudent.mission_id == mission_id,
                MissionStudent.student_id.in_(student_ids),
            )
        )
        enrollments = {e.student_id: e for e in result.scalars().all()}

        now = utcnow()
        updated, failed = [], []
        for student_id in student_ids:
            enrollment = enrollments.get(student_id)
            if not enrollment:
                failed.append({
                    "student_id": str(student_id),
                    "code": "not_enrolled",
                    "message": "Student is not enrolled in this mission",
                })
                continue
            for field, value in updates.items():
                setattr(enrollment, field, value)
            enrollment.last_activity = now
            if updates.get("status") == EnrollmentStatus.COMPLETED.value:
                enrollment.completed_at = now
            updated.append(str(student_id))

        await self._commit("bulk update enrollments")
        await invalidate_mission_cache(mission_id)
        logger.info("Bulk updated %d enrollment(s) in mission %s, %d failed", len(updated), mission_id, len(failed))

        return {"updated_count": len(updated), "updated": updated, "failed": failed}

    async def remove(self, mission_id: UUID, student_id: UUID) -> Dict[str, int]:
        mission = await self.missions.get_for_update(mission_id)
        await self.get_enrollment_or_404(mission_id, student_id)

        detached = await self.detach_students(mission_id, [student_id])
        await self.sync_mission_summary(mission)
        await self._commit("remove student from mission")
        await invalidate_mission_cache(mission_id)

        logger.info("Removed student %s from mission %s", student_id, mission.code)
        return detached

    async def detach_students(self, mission_id: UUID, student_ids: Sequence[UUID]) -> Dict[str, int]:
        """Delete enrollments with their mentor links and group memberships.

        Mentor workloads and group counters are decremented for every removed
        link. Does not commit; the caller owns the transaction.
        """
        if not student_ids:
            return {"removed_count": 0, "mentor_links_removed": 0, "group_memberships_removed": 0}

        link_rows = await self.db.execute(
            select(MentorAssignment.mission_mentor_id, func.count())
            .where(MentorAssignment.mission_id == mission_id, MentorAssignment.student_id.in_(student_ids))
            .group_by(MentorAssignment.mission_mentor_id)
        )
        link_counts = link_rows.all()
        for mission_mentor_id, count in link_counts:
            await self.db.execute(
                update(MissionMentor)
                .where(MissionMentor.id == mission_mentor_id)
                .values(current_workload=case(
                    (MissionMentor.current_workload > count, MissionMentor.current_workload - count),
                    else_=0,
                ))
                .execution_options(synchronize_session=False)
            )
        await self.db.execute(
            delete(MentorAssignment)
            .where(MentorAssignment.mission_id == mission_id, MentorAssignment.student_id.in_(student_ids))
        )
        if link_counts:
            await self.reclassify_mentors([mission_mentor_id for mission_mentor_id, _ in link_counts])

        group_rows = await self.db.execute(
            select(GroupStudent.group_id, func.count())
            .where(GroupStudent.mission_id == mission_id, GroupStudent.student_id.in_(student_ids))
            .group_by(GroupStudent.group_id)
        )
        group_counts = group_rows.all()
        for group_id, count in group_counts:
            await self.db.execute(
                update(MentorshipGroup)
                .where(MentorshipGroup.id == group_id)
                .values(
                    current_students=case(
                        (MentorshipGroup.current_students > count, MentorshipGroup.current_students - count),
                        else_=0,
                    ),
                    status=case(
                        (MentorshipGroup.status == GroupStatus.FULL.value, GroupStatus.ACTIVE.value),
                        else_=MentorshipGroup.status,
                    ),
                )
                .execution_options(synchronize_session=False)
            )
        await self.db.execute(
            delete(GroupStudent)
            .where(GroupStudent.mission_id == mission_id, GroupStudent.student_id.in_(student_ids))
        )

        result = await self.db.execute(
            delete(MissionStudent)
            .where(MissionStudent.mission_id == mission_id, MissionStudent.student_id.in_(student_ids))
        )

        return {
            "removed_count": result.rowcount,
            "mentor_links_removed": sum(count for _, count in link_counts),
            "group_memberships_removed": sum(count for _, count in group_counts),
        }

    async def reclassify_mentors(self, mission_mentor_ids: Sequence[UUID]):
        """Recompute active/overloaded status from the stored workload."""
        result = await self.db.execute(
            select(MissionMentor)
            .where(MissionMentor.id.in_(mission_mentor_ids))
            .execution_options(populate_existing=True)
        )
        for mentor in result.scalars().all():
            if mentor.status == MentorStatus.INACTIVE.value:
                continue
            mentor.status = AvailabilityService.mentor_capacity(mentor)["status_classification"]
        await self._flush("reclassify mentors")

    async def sync_mission_summary(self, mission: Mission) -> Mission:
        """Recompute total_students and student_ids from the enrollment rows.

        Ids already listed keep their position; enrolled ids missing from the
        list are appended and ids without an enrollment are dropped.
        """
        enrolled = [str(student_id) for student_id in await self.enrolled_student_ids(mission.id)]
        enrolled_set = set(enrolled)

        listed = [student_id for student_id in (mission.student_ids or []) if student_id in enrolled_set]
        listed_set = set(listed)
        student_ids = listed + [student_id for student_id in enrolled if student_id not in listed_set]

        mission.student_ids = student_ids
        mission.total_students = len(student_ids)
        return mission

    async def list_for_mission(
        self,
        mission_id: UUID,
        include_batch_students: bool = False,
        debug: bool = False,
    ) -> MissionStudentListing:
        mission = await self.missions.get_or_404(mission_id)

        enrolled_result = await self.db.execute(
            select(MissionStudent, User, Batch)
            .outerjoin(User, User.id == MissionStudent.student_id)
            .outerjoin(Batch, Batch.id == MissionStudent.batch_id)
            .where(MissionStudent.mission_id == mission_id)
            .order_by(MissionStudent.started_at, MissionStudent.created_at)
        )
        rows: List[Any] = []
        enrolled_ids = set()
        for enrollment, user, batch in enrolled_result.all():
            enrolled_ids.add(enrollment.student_id)
            rows.append(EnrolledStudentRow(
                enrollment_id=enrollment.id,
                student_id=enrollment.student_id,
                name=user.name if user else None,
                email=user.email if user else None,
                student_code=user.student_code if user else None,
                batch_id=enrollment.batch_id,
                batch_code=batch.code if batch else None,
                status=enrollment.status,
                progress=enrollment.progress,
                attendance_rate=enrollment.attendance_rate,
                started_at=enrollment.started_at,
                last_activity=enrollment.last_activity,
                completed_at=enrollment.completed_at,
            ))

        batch_only_count = 0
        approved_ids = set()
        if include_batch_students or debug:
            member_result = await self.db.execute(
                select(StudentBatchMembership, User, Batch)
                .join(User, User.id == StudentBatchMembership.student_id)
                .join(Batch, Batch.id == StudentBatchMembership.batch_id)
                .where(
                    StudentBatchMembership.batch_id == mission.batch_id,
                    StudentBatchMembership.status == MembershipStatus.APPROVED.value,
                )
                .order_by(User.name)
            )
            for membership, user, batch in member_result.all():
                approved_ids.add(membership.student_id)
                if not include_batch_students or membership.student_id in enrolled_ids:
                    continue
                batch_only_count += 1
                rows.append(BatchOnlyStudentRow(
                    student_id=membership.student_id,
                    name=user.name,
                    email=user.email,
                    student_code=user.student_code,
                    batch_id=membership.batch_id,
                    batch_code=batch.code,
                    membership_status=membership.status,
                    joined_at=membership.joined_at,
                ))

        debug_info = None
        if debug:
            listed = set(mission.student_ids or [])
            debug_info = ListingDebugInfo(
                mission_id=mission.id,
                batch_id=mission.batch_id,
                enrolled_count=len(enrolled_ids),
                batch_approved_count=len(approved_ids),
                counts_match=len(enrolled_ids) == len(approved_ids),
                missing_from_mission=sorted(approved_ids - enrolled_ids, key=str),
                not_in_batch=sorted(enrolled_ids - approved_ids, key=str),
                summary_total_students=mission.total_students,
                summary_in_sync=(
                    mission.total_students == len(enrolled_ids)
                    and listed == {str(student_id) for student_id in enrolled_ids}
                ),
            )

        return MissionStudentListing(
            students=rows,
            total=len(rows),
            enrolled_count=len(enrolled_ids),
            batch_only_count=batch_only_count,
            debug=debug_info,
        )
