# missionhub/services/group_service.py
import logging
from typing import List, Dict, Any, Optional, Sequence
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, or_, case

from .base_service import BaseService
from .mission_service import MissionService
from .availability_service import AvailabilityService
from ..core.exceptions import RosterException, NotFoundError, ConflictError, InvalidInputError
from ..core.performance_monitor import monitor_performance
from ..models.base import utcnow
from ..models.user import User
from ..models.roster.mission_student import MissionStudent
from ..models.roster.mission_mentor import MissionMentor
from ..models.roster.mentorship_group import (
    MentorshipGroup, GroupMentor, GroupStudent, GroupType, GroupStatus
)
from ..utils.cache_invalidation import invalidate_mission_cache

logger = logging.getLogger(__name__)

GROUP_TYPES = {group_type.value for group_type in GroupType}
GROUP_STATUSES = {status.value for status in GroupStatus}


def _unique(ids: Sequence[UUID]) -> List[UUID]:
    seen = set()
    unique = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            unique.append(i)
    return unique


class GroupService(BaseService[MentorshipGroup]):
    def __init__(self, db: AsyncSession):
        super().__init__(MentorshipGroup, db)
        self.missions = MissionService(db)
        self.availability = AvailabilityService(db)

    async def get_group_or_404(self, group_id: UUID) -> MentorshipGroup:
        group = await self.get(group_id)
        if not group:
            raise NotFoundError("Mentorship group", group_id)
        return group

    def group_payload(self, group: MentorshipGroup) -> Dict[str, Any]:
        return {
            "id": str(group.id),
            "mission_id": str(group.mission_id),
            "name": group.name,
            "description": group.description,
            "group_type": group.group_type,
            "max_students": group.max_students,
            "current_students": group.current_students,
            "status": group.status,
            "capacity": AvailabilityService.group_capacity(group),
            "created_at": group.created_at.isoformat() if group.created_at else None,
        }

    async def create_group(
        self,
        mission_id: UUID,
        name: str,
        description: Optional[str] = None,
        group_type: str = GroupType.MENTORSHIP.value,
        max_students: int = 0,
        status: str = GroupStatus.ACTIVE.value,
        mentor_ids: Optional[List[UUID]] = None,
        primary_mentor_id: Optional[UUID] = None,
        student_ids: Optional[List[UUID]] = None,
    ) -> MentorshipGroup:
        """Create a group with its mentors and, optionally, its first students."""
        if group_type not in GROUP_TYPES:
            raise InvalidInputError(f"Invalid group type '{group_type}'", field="group_type",
                                    details={"allowed": sorted(GROUP_TYPES)})
        if status not in GROUP_STATUSES:
            raise InvalidInputError(f"Invalid group status '{status}'", field="status",
                                    details={"allowed": sorted(GROUP_STATUSES)})
        if max_students < 0:
            raise InvalidInputError("max_students cannot be negative", field="max_students")

        mission = await self.missions.get_or_404(mission_id)

        existing = await self.db.execute(
            select(MentorshipGroup.id).where(
                MentorshipGroup.mission_id == mission_id,
                MentorshipGroup.name == name,
            )
        )
        if existing.scalar_one_or_none():
            raise ConflictError(f"A group named '{name}' already exists in this mission", details={"name": name})

        mentor_ids = _unique(mentor_ids or [])
        if primary_mentor_id and primary_mentor_id not in mentor_ids:
            raise InvalidInputError("primary_mentor_id must be one of mentor_ids", field="primary_mentor_id")
        if mentor_ids:
            mentor_result = await self.db.execute(
                select(MissionMentor.mentor_id).where(
                    MissionMentor.mission_id == mission_id,
                    MissionMentor.mentor_id.in_(mentor_ids),
                )
            )
            known = set(mentor_result.scalars().all())
            missing = [str(mentor_id) for mentor_id in mentor_ids if mentor_id not in known]
            if missing:
                raise NotFoundError("Mission mentor", details={"missing_mentor_ids": missing})

        try:
            group = MentorshipGroup(
                mission_id=mission_id,
                name=name,
                description=description,
                group_type=group_type,
                max_students=max_students,
                current_students=0,
                status=status,
            )
            self.db.add(group)
            await self._flush("create mentorship group")

            for mentor_id in mentor_ids:
                self.db.add(GroupMentor(
                    group_id=group.id,
                    mentor_id=mentor_id,
                    is_primary=mentor_id == primary_mentor_id,
                ))

            if student_ids:
                await self._add_students(group, student_ids)

            await self._commit("create mentorship group")
        except RosterException:
            await self.db.rollback()
            raise

        await invalidate_mission_cache(mission_id)
        logger.info("Created group '%s' in mission %s with %d mentor(s)", name, mission.code, len(mentor_ids))
        return group

    async def _check_exclusive(self, group: MentorshipGroup, student_ids: List[UUID],
                               ignore_group_ids: Sequence[UUID] = ()):
        """Reject students that already hold a seat in another active group of the mission."""
        memberships = await self.availability.student_groups(group.mission_id, student_ids)
        conflicts = [
            {
                "student_id": str(student_id),
                "group_id": str(membership["group_id"]),
                "group_name": membership["group_name"],
            }
            for student_id, membership in memberships.items()
            if membership["group_id"] != group.id and membership["group_id"] not in ignore_group_ids
        ]
        if conflicts:
            names = ", ".join(sorted({conflict["group_name"] for conflict in conflicts}))
            raise ConflictError(
                f"Some students already belong to another active group: {names}",
                details={"conflicts": conflicts},
            )

    async def _check_not_members(self, group: MentorshipGroup, student_ids: List[UUID]):
        result = await self.db.execute(
            select(GroupStudent.student_id).where(
                GroupStudent.group_id == group.id,
                GroupStudent.student_id.in_(student_ids),
            )
        )
        already = set(result.scalars().all())
        if already:
            raise ConflictError(
                "Some students are already members of this group",
                details={"already_in_group": [str(s) for s in student_ids if s in already]},
            )

    async def _reserve_slots(self, group: MentorshipGroup, count: int):
        """Atomically grow current_students by count unless it would overflow."""
        result = await self.db.execute(
            update(MentorshipGroup)
            .where(
                MentorshipGroup.id == group.id,
                or_(
                    MentorshipGroup.max_students == 0,
                    MentorshipGroup.current_students + count <= MentorshipGroup.max_students,
                ),
            )
            .values(current_students=MentorshipGroup.current_students + count)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.refresh(group)
            available = max(group.max_students - group.current_students, 0)
            raise ConflictError(
                f"Group capacity exceeded: only {available} slot(s) left",
                details={
                    "available_slots": available,
                    "requested": count,
                    "max_students": group.max_students,
                },
            )

    async def _release_slots(self, group: MentorshipGroup, count: int):
        await self.db.execute(
            update(MentorshipGroup)
            .where(MentorshipGroup.id == group.id)
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

    async def _refresh_fullness(self, group: MentorshipGroup):
        await self.db.refresh(group)
        if group.is_full and group.status in (GroupStatus.ACTIVE.value, GroupStatus.RECRUITING.value):
            group.status = GroupStatus.FULL.value

    async def _add_students(self, group: MentorshipGroup, student_ids: List[UUID]) -> List[UUID]:
        student_ids = _unique(student_ids)
        if not student_ids:
            raise InvalidInputError("student_ids must contain at least one student", field="student_ids")

        enrolled_result = await self.db.execute(
            select(MissionStudent.student_id).where(
                MissionStudent.mission_id == group.mission_id,
                MissionStudent.student_id.in_(student_ids),
            )
        )
        enrolled = set(enrolled_result.scalars().all())
        missing = [str(s) for s in student_ids if s not in enrolled]
        if missing:
            raise NotFoundError(
                "Enrollment",
                details={"mission_id": str(group.mission_id), "missing_student_ids": missing},
            )

        await self._check_not_members(group, student_ids)
        await self._check_exclusive(group, student_ids)
        await self._reserve_slots(group, len(student_ids))

        now = utcnow()
        for student_id in student_ids:
            self.db.add(GroupStudent(
                group_id=group.id,
                mission_id=group.mission_id,
                student_id=student_id,
                joined_at=now,
            ))
        await self._flush("add students to group")
        await self._refresh_fullness(group)
        return student_ids

    @monitor_performance("group.assign")
    async def assign_to_group(self, group_id: UUID, student_ids: List[UUID]) -> Dict[str, Any]:
        """Add students to a group; the whole call is rejected if any student cannot join."""
        group = await self.get_group_or_404(group_id)
        added = await self._add_students(group, student_ids)
        await self._commit("assign students to group")
        await invalidate_mission_cache(group.mission_id)

        logger.info("Assigned %d student(s) to group '%s'", len(added), group.name)
        return {
            "assigned_count": len(added),
            "assigned": [str(student_id) for student_id in added],
            "group": self.group_payload(group),
        }

    async def remove_student(self, group_id: UUID, student_id: UUID) -> Dict[str, Any]:
        group = await self.get_group_or_404(group_id)
        result = await self.db.execute(
            delete(GroupStudent).where(
                GroupStudent.group_id == group.id,
                GroupStudent.student_id == student_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(
                "Group membership",
                details={"group_id": str(group_id), "student_id": str(student_id)},
            )

        await self._release_slots(group, 1)
        await self.db.refresh(group)
        await self._commit("remove student from group")
        await invalidate_mission_cache(group.mission_id)

        logger.info("Removed student %s from group '%s'", student_id, group.name)
        return self.group_payload(group)

    @monitor_performance("group.transfer")
    async def transfer_students(self, group_id: UUID, to_group_id: UUID, student_ids: List[UUID]) -> Dict[str, Any]:
        if group_id == to_group_id:
            raise InvalidInputError("Source and destination groups must differ", field="to_group_id")
        student_ids = _unique(student_ids)
        if not student_ids:
            raise InvalidInputError("student_ids must contain at least one student", field="student_ids")

        source = await self.get_group_or_404(group_id)
        target = await self.get_group_or_404(to_group_id)
        if source.mission_id != target.mission_id:
            raise InvalidInputError("Groups belong to different missions", field="to_group_id")

        member_result = await self.db.execute(
            select(GroupStudent.student_id).where(
                GroupStudent.group_id == source.id,
                GroupStudent.student_id.in_(student_ids),
            )
        )
        members = set(member_result.scalars().all())
        not_members = [str(s) for s in student_ids if s not in members]
        if not_members:
            raise NotFoundError(
                "Group membership",
                details={"group_id": str(source.id), "not_in_source_group": not_members},
            )

        await self._check_not_members(target, student_ids)
        await self._check_exclusive(target, student_ids, ignore_group_ids=[source.id])
        await self._reserve_slots(target, len(student_ids))

        await self.db.execute(
            delete(GroupStudent).where(
                GroupStudent.group_id == source.id,
                GroupStudent.student_id.in_(student_ids),
            )
        )
        await self._release_slots(source, len(student_ids))

        now = utcnow()
        for student_id in student_ids:
            self.db.add(GroupStudent(
                group_id=target.id,
                mission_id=target.mission_id,
                student_id=student_id,
                joined_at=now,
            ))
        await self._flush("transfer students")
        await self.db.refresh(source)
        await self._refresh_fullness(target)
        await self._commit("transfer students")
        await invalidate_mission_cache(source.mission_id)

        logger.info("Transferred %d student(s) from '%s' to '%s'", len(student_ids), source.name, target.name)
        return {
            "transferred_count": len(student_ids),
            "transferred": [str(student_id) for student_id in student_ids],
            "from_group": self.group_payload(source),
            "to_group": self.group_payload(target),
        }

    async def update_status(self, group_id: UUID, status: str) -> MentorshipGroup:
        if status not in GROUP_STATUSES:
            raise InvalidInputError(f"Invalid group status '{status}'", field="status",
                                    details={"allowed": sorted(GROUP_STATUSES)})
        group = await self.get_group_or_404(group_id)
        if group.status == GroupStatus.INACTIVE.value and status != GroupStatus.INACTIVE.value:
            # Members may have joined other groups while this one was inactive
            member_result = await self.db.execute(
                select(GroupStudent.student_id).where(GroupStudent.group_id == group.id)
            )
            member_ids = list(member_result.scalars().all())
            if member_ids:
                await self._check_exclusive(group, member_ids)

        group.status = status
        if status in (GroupStatus.ACTIVE.value, GroupStatus.RECRUITING.value) and group.is_full:
            group.status = GroupStatus.FULL.value
        await self._commit("update group status")
        await invalidate_mission_cache(group.mission_id)
        return group

    async def get_group_detail(self, group_id: UUID) -> Dict[str, Any]:
        group = await self.get_group_or_404(group_id)

        mentor_result = await self.db.execute(
            select(GroupMentor, User)
            .outerjoin(User, User.id == GroupMentor.mentor_id)
            .where(GroupMentor.group_id == group.id)
        )
        student_result = await self.db.execute(
            select(GroupStudent, User)
            .outerjoin(User, User.id == GroupStudent.student_id)
            .where(GroupStudent.group_id == group.id)
            .order_by(GroupStudent.joined_at)
        )

        payload = self.group_payload(group)
        payload["mentors"] = [
            {
                "mentor_id": str(link.mentor_id),
                "name": user.name if user else None,
                "is_primary": link.is_primary,
            }
            for link, user in mentor_result.all()
        ]
        payload["students"] = [
            {
                "student_id": str(member.student_id),
                "name": user.name if user else None,
                "joined_at": member.joined_at.isoformat(),
            }
            for member, user in student_result.all()
        ]
        return payload

    async def list_groups(self, mission_id: UUID, status: Optional[str] = None,
                          page: int = 1, size: int = 20) -> Dict[str, Any]:
        await self.missions.get_or_404(mission_id)
        result = await self.get_paginated(
            page=page, size=size, order_by="name",
            mission_id=mission_id, status=status,
        )

        group_ids = [group.id for group in result["items"]]
        mentors: Dict[UUID, List[str]] = {}
        if group_ids:
            mentor_result = await self.db.execute(
                select(GroupMentor.group_id, GroupMentor.mentor_id).where(GroupMentor.group_id.in_(group_ids))
            )
            for group_id, mentor_id in mentor_result.all():
                mentors.setdefault(group_id, []).append(str(mentor_id))

        items = []
        for group in result["items"]:
            payload = self.group_payload(group)
            payload["mentor_ids"] = mentors.get(group.id, [])
            items.append(payload)
        result["items"] = items
        return result
