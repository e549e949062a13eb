# missionhub/services/reconciliation_service.py
"""Bulk repair operations over one mission's enrollment set."""
import logging
from typing import Dict, Any
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from .base_service import BaseService
from .enrollment_service import EnrollmentService
from ..core.exceptions import InvalidInputError
from ..core.performance_monitor import monitor_performance
from ..models.roster.mission import Mission
from ..utils.cache_invalidation import invalidate_mission_cache

logger = logging.getLogger(__name__)

RECONCILE_ACTIONS = ("clear", "fix", "sync")


class ReconciliationService(BaseService[Mission]):
    def __init__(self, db: AsyncSession):
        super().__init__(Mission, db)
        self.enrollments = EnrollmentService(db)

    @monitor_performance("reconciliation.reconcile")
    async def reconcile(self, mission_id: UUID, action: str) -> Dict[str, Any]:
        if action not in RECONCILE_ACTIONS:
            raise InvalidInputError(
                f"Unknown reconcile action '{action}'",
                field="action",
                details={"allowed": list(RECONCILE_ACTIONS)},
            )
        handler = getattr(self, f"_{action}")
        return await handler(mission_id)

    async def _clear(self, mission_id: UUID) -> Dict[str, Any]:
        """Remove every enrollment of the mission. Irreversible."""
        mission = await self.enrollments.missions.get_for_update(mission_id)
        student_ids = await self.enrollments.enrolled_student_ids(mission_id)

        detached = await self.enrollments.detach_students(mission_id, student_ids)
        mission.student_ids = []
        mission.total_students = 0
        await self._commit("clear mission roster")
        await invalidate_mission_cache(mission_id)

        logger.warning("Cleared mission %s: %d enrollment(s) removed", mission.code, detached["removed_count"])
        return {
            "action": "clear",
            "removed_count": detached["removed_count"],
            "mentor_links_removed": detached["mentor_links_removed"],
            "group_memberships_removed": detached["group_memberships_removed"],
        }

    async def _fix(self, mission_id: UUID) -> Dict[str, Any]:
        """Drop enrollments whose student is no longer an approved member of the mission's batch."""
        mission = await self.enrollments.missions.get_for_update(mission_id)
        approved = await self.enrollments.availability.approved_batch_student_ids(mission.batch_id)
        enrolled = await self.enrollments.enrolled_student_ids(mission_id)

        stale = [student_id for student_id in enrolled if student_id not in approved]
        detached = await self.enrollments.detach_students(mission_id, stale)
        await self.enrollments.sync_mission_summary(mission)
        await self._commit("fix mission roster")
        await invalidate_mission_cache(mission_id)

        logger.info(
            "Fixed mission %s: %d enrollment(s) removed, %d remaining",
            mission.code, detached["removed_count"], mission.total_students,
        )
        return {
            "action": "fix",
            "removed_count": detached["removed_count"],
            "removed_student_ids": [str(student_id) for student_id in stale],
            "total_students": mission.total_students,
        }

    async def _sync(self, mission_id: UUID) -> Dict[str, Any]:
        # Enrollment rows are the only roster representation, nothing can drift
        logger.warning("Deprecated reconcile action 'sync' called for mission %s; nothing to do", mission_id)
        return {
            "action": "sync",
            "removed_count": 0,
            "synced_count": 0,
            "deprecated": True,
            "message": "The sync action is deprecated and performs no work; use 'fix' to repair the roster",
        }
