# missionhub/services/mission_service.py
import logging
from typing import Optional, Dict, Any
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .base_service import BaseService
from ..core.exceptions import NotFoundError, ConflictError
from ..models.roster.mission import Mission, DEFAULT_ATTENDANCE_CONFIG
from ..models.shared.batch import Batch

logger = logging.getLogger(__name__)


class MissionService(BaseService[Mission]):
    def __init__(self, db: AsyncSession):
        super().__init__(Mission, db)

    async def get_or_404(self, mission_id: UUID) -> Mission:
        mission = await self.get(mission_id)
        if not mission:
            raise NotFoundError("Mission", mission_id)
        return mission

    async def get_for_update(self, mission_id: UUID) -> Mission:
        """Load the mission holding a row lock until the transaction ends."""
        stmt = (
            select(Mission)
            .where(Mission.id == mission_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        mission = result.scalar_one_or_none()
        if not mission:
            raise NotFoundError("Mission", mission_id)
        return mission

    async def get_by_code(self, code: str) -> Optional[Mission]:
        result = await self.db.execute(select(Mission).where(Mission.code == code))
        return result.scalar_one_or_none()

    async def create_mission(self, mission_data: Dict[str, Any]) -> Mission:
        """Create a mission tied to an existing batch"""
        batch = await self.db.get(Batch, mission_data["batch_id"])
        if not batch:
            raise NotFoundError("Batch", mission_data["batch_id"])

        if await self.get_by_code(mission_data["code"]):
            raise ConflictError(
                f"Mission code '{mission_data['code']}' already exists",
                details={"code": mission_data["code"]},
            )

        config = dict(DEFAULT_ATTENDANCE_CONFIG)
        config.update(mission_data.pop("attendance_config", None) or {})
        mission_data["attendance_config"] = config

        mission = await self.create(mission_data)
        logger.info("Created mission %s (%s) for batch %s", mission.code, mission.id, batch.code)
        return mission

    async def list_missions(self, page: int = 1, size: int = 20, status: Optional[str] = None,
                            batch_id: Optional[UUID] = None):
        return await self.get_paginated(
            page=page, size=size, order_by="created_at", sort="desc",
            status=status, batch_id=batch_id,
        )
