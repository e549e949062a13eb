# missionhub/services/attendance_form_service.py
import logging
import re
from collections import Counter
from typing import List, Optional, Dict, Any
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from .base_service import BaseService
from .mission_service import MissionService
from ..core.exceptions import NotFoundError, ConflictError, InvalidInputError
from ..models.roster.attendance import AttendanceForm

logger = logging.getLogger(__name__)


def _check_questions(questions: List[Dict[str, Any]]):
    counts = Counter(question["key"] for question in questions)
    duplicates = sorted(key for key, count in counts.items() if count > 1)
    if duplicates:
        raise InvalidInputError(
            "Question keys must be unique within a form",
            field="questions",
            details={"duplicate_keys": duplicates},
        )

    for question in questions:
        pattern = (question.get("validation") or {}).get("pattern")
        if pattern:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise InvalidInputError(
                    f"Invalid pattern for question '{question['key']}': {exc}",
                    field="questions",
                    details={"key": question["key"], "pattern": pattern},
                )


class AttendanceFormService(BaseService[AttendanceForm]):
    def __init__(self, db: AsyncSession):
        super().__init__(AttendanceForm, db)
        self.missions = MissionService(db)

    async def get_form(self, form_id: UUID) -> AttendanceForm:
        form = await self.get(form_id)
        if not form:
            raise NotFoundError("Attendance form", form_id)
        return form

    async def get_active_form(self, mission_id: UUID) -> Optional[AttendanceForm]:
        result = await self.db.execute(
            select(AttendanceForm)
            .where(AttendanceForm.mission_id == mission_id, AttendanceForm.active.is_(True))
            .order_by(AttendanceForm.updated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _ensure_single_active(self, mission_id: UUID, form_id: Optional[UUID] = None):
        active = await self.get_active_form(mission_id)
        if active and active.id != form_id:
            raise ConflictError(
                "An active attendance form already exists for this mission",
                details={"active_form_id": str(active.id)},
            )

    async def list_forms(self, mission_id: Optional[UUID] = None, active: Optional[bool] = None) -> List[AttendanceForm]:
        stmt = select(AttendanceForm).order_by(AttendanceForm.updated_at.desc())
        if mission_id:
            stmt = stmt.where(AttendanceForm.mission_id == mission_id)
        if active is not None:
            stmt = stmt.where(AttendanceForm.active.is_(active))
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def create_form(self, form_data: Dict[str, Any]) -> AttendanceForm:
        await self.missions.get_or_404(form_data["mission_id"])
        questions = form_data.get("questions") or []
        _check_questions(questions)
        if form_data.get("active", True):
            await self._ensure_single_active(form_data["mission_id"])

        form = await self.create({
            "mission_id": form_data["mission_id"],
            "title": form_data["title"],
            "active": form_data.get("active", True),
            "version": 1,
            "questions": questions,
            "created_by": form_data.get("created_by"),
            "updated_by": form_data.get("created_by"),
        })
        logger.info("Created attendance form '%s' for mission %s", form.title, form.mission_id)
        return form

    async def update_form(self, form_id: UUID, updates: Dict[str, Any]) -> AttendanceForm:
        form = await self.get_form(form_id)

        if updates.get("questions") is not None:
            _check_questions(updates["questions"])
            form.questions = updates["questions"]
            form.version = (form.version or 1) + 1
        if updates.get("active"):
            await self._ensure_single_active(form.mission_id, form.id)
        for field in ("title", "active", "updated_by"):
            if updates.get(field) is not None:
                setattr(form, field, updates[field])

        await self._commit("update attendance form")
        logger.info("Updated attendance form %s (version %d)", form.id, form.version)
        return form

    async def delete_form(self, form_id: UUID):
        if not await self.hard_delete(form_id):
            raise NotFoundError("Attendance form", form_id)
        logger.info("Deleted attendance form %s", form_id)
