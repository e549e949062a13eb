# missionhub/routers/mission_mentors.py
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.assignment_schemas import (
    MissionMentorCreate, AssignStudentsRequest, UnassignStudentsRequest, MissionMentorResponse
)
from ..services.mentor_assignment_service import MentorAssignmentService
from ..utils.pagination import Paginator, PaginationParams

router = APIRouter(prefix="/api/v1/mission-mentors", tags=["Mission Mentors"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_mission_mentor(
    mentor_data: MissionMentorCreate,
    db: AsyncSession = Depends(get_db)
):
    service = MentorAssignmentService(db)
    mentor = await service.add_mentor(
        mentor_data.mission_id,
        mentor_data.mentor_id,
        role=mentor_data.role,
        max_students=mentor_data.max_students,
    )
    return {"success": True, "data": MissionMentorResponse.model_validate(mentor)}


@router.get("")
async def list_mission_mentors(
    mission_id: UUID = Query(...),
    mentor_status: Optional[str] = Query(None, alias="status"),
    pagination: PaginationParams = Depends(Paginator.get_pagination_params),
    db: AsyncSession = Depends(get_db)
):
    """Paginated mission mentors with their capacity"""
    service = MentorAssignmentService(db)
    result = await service.list_mentors(
        mission_id, page=pagination.page, size=pagination.size, status=mentor_status
    )
    return Paginator.page_response(result)


@router.get("/{mission_mentor_id}/capacity")
async def get_mentor_capacity(mission_mentor_id: UUID, db: AsyncSession = Depends(get_db)):
    service = MentorAssignmentService(db)
    return {"success": True, "data": await service.get_capacity(mission_mentor_id)}


@router.post("/{mission_mentor_id}/assign-students")
async def assign_students_to_mentor(
    mission_mentor_id: UUID,
    request: AssignStudentsRequest,
    db: AsyncSession = Depends(get_db)
):
    """Assign students to a mentor; failures are reported per student"""
    service = MentorAssignmentService(db)
    result = await service.assign_to_mentor(
        mission_mentor_id, request.student_ids, make_primary=request.make_primary
    )
    return {"success": True, **result}


@router.post("/{mission_mentor_id}/unassign-students")
async def unassign_students_from_mentor(
    mission_mentor_id: UUID,
    request: UnassignStudentsRequest,
    db: AsyncSession = Depends(get_db)
):
    service = MentorAssignmentService(db)
    result = await service.unassign(mission_mentor_id, request.student_ids)
    return {"success": True, **result}
