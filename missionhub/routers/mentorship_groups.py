# missionhub/routers/mentorship_groups.py
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.group_schemas import (
    GroupCreate, GroupStudentsRequest, GroupTransferRequest, GroupStatusUpdate
)
from ..services.group_service import GroupService
from ..utils.pagination import Paginator, PaginationParams

router = APIRouter(prefix="/api/v1/mentorship-groups", tags=["Mentorship Groups"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_group(
    group_data: GroupCreate,
    db: AsyncSession = Depends(get_db)
):
    """Create a group, optionally seeding mentors and students"""
    service = GroupService(db)
    group = await service.create_group(**group_data.model_dump())
    return {"success": True, "data": await service.get_group_detail(group.id)}


@router.get("")
async def list_groups(
    mission_id: UUID = Query(...),
    group_status: Optional[str] = Query(None, alias="status"),
    pagination: PaginationParams = Depends(Paginator.get_pagination_params),
    db: AsyncSession = Depends(get_db)
):
    service = GroupService(db)
    result = await service.list_groups(
        mission_id, status=group_status, page=pagination.page, size=pagination.size
    )
    return Paginator.page_response(result)


@router.get("/{group_id}")
async def get_group(group_id: UUID, db: AsyncSession = Depends(get_db)):
    service = GroupService(db)
    return {"success": True, "data": await service.get_group_detail(group_id)}


@router.post("/{group_id}/students")
async def assign_students_to_group(
    group_id: UUID,
    request: GroupStudentsRequest,
    db: AsyncSession = Depends(get_db)
):
    """Add students to a group; rejected as a whole on any conflict"""
    service = GroupService(db)
    result = await service.assign_to_group(group_id, request.student_ids)
    return {"success": True, **result}


@router.delete("/{group_id}/students/{student_id}")
async def remove_student_from_group(
    group_id: UUID,
    student_id: UUID,
    db: AsyncSession = Depends(get_db)
):
    service = GroupService(db)
    group = await service.remove_student(group_id, student_id)
    return {"success": True, "message": "Student removed from group", "group": group}


@router.post("/{group_id}/transfer-students")
async def transfer_students(
    group_id: UUID,
    request: GroupTransferRequest,
    db: AsyncSession = Depends(get_db)
):
    service = GroupService(db)
    result = await service.transfer_students(group_id, request.to_group_id, request.student_ids)
    return {"success": True, **result}


@router.patch("/{group_id}/status")
async def update_group_status(
    group_id: UUID,
    update: GroupStatusUpdate,
    db: AsyncSession = Depends(get_db)
):
    service = GroupService(db)
    group = await service.update_status(group_id, update.status)
    return {"success": True, "data": service.group_payload(group)}
