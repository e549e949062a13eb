# missionhub/routers/missions.py
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.mission_schemas import MissionCreate, MissionResponse
from ..schemas.enrollment_schemas import (
    EnrollStudentsRequest, StudentStatusUpdate, StudentProgressUpdate,
    BulkStudentUpdate, ReconcileRequest, MissionStudentResponse,
)
from ..services.mission_service import MissionService
from ..services.enrollment_service import EnrollmentService
from ..services.availability_service import AvailabilityService
from ..services.reconciliation_service import ReconciliationService
from ..utils.pagination import Paginator, PaginationParams

router = APIRouter(prefix="/api/v1/missions", tags=["Missions"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_mission(
    mission_data: MissionCreate,
    db: AsyncSession = Depends(get_db)
):
    """Create a mission for a batch"""
    service = MissionService(db)
    data = mission_data.model_dump(exclude={"attendance_config"})
    if mission_data.attendance_config:
        data["attendance_config"] = mission_data.attendance_config.model_dump(mode="json")
    mission = await service.create_mission(data)
    return {"success": True, "data": MissionResponse.model_validate(mission)}


@router.get("")
async def list_missions(
    pagination: PaginationParams = Depends(Paginator.get_pagination_params),
    mission_status: Optional[str] = Query(None, alias="status"),
    batch_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    service = MissionService(db)
    result = await service.list_missions(
        page=pagination.page, size=pagination.size, status=mission_status, batch_id=batch_id
    )
    return Paginator.page_response(result, MissionResponse.model_validate)


@router.get("/{mission_id}")
async def get_mission(mission_id: UUID, db: AsyncSession = Depends(get_db)):
    service = MissionService(db)
    mission = await service.get_or_404(mission_id)
    return {"success": True, "data": MissionResponse.model_validate(mission)}


@router.get("/{mission_id}/students")
async def list_mission_students(
    mission_id: UUID,
    include_batch_students: bool = Query(False),
    debug: bool = Query(False),
    db: AsyncSession = Depends(get_db)
):
    """Enrolled students, optionally merged with approved batch members not yet enrolled"""
    service = EnrollmentService(db)
    listing = await service.list_for_mission(
        mission_id, include_batch_students=include_batch_students, debug=debug
    )
    return {"success": True, **listing.model_dump(mode="json")}


@router.post("/{mission_id}/students", status_code=status.HTTP_201_CREATED)
async def enroll_students(
    mission_id: UUID,
    request: EnrollStudentsRequest,
    db: AsyncSession = Depends(get_db)
):
    """Enroll students; rejected as a whole if any student fails a check"""
    service = EnrollmentService(db)
    enrollments = await service.enroll(mission_id, request.student_ids)
    mission = await service.missions.get_or_404(mission_id)
    return {
        "success": True,
        "message": f"{len(enrollments)} student(s) enrolled",
        "enrollments": [MissionStudentResponse.model_validate(e) for e in enrollments],
        "total_students": mission.total_students,
    }


@router.patch("/{mission_id}/students")
async def update_student_status(
    mission_id: UUID,
    update: StudentStatusUpdate,
    student_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db)
):
    service = EnrollmentService(db)
    enrollment = await service.update_status(mission_id, student_id, update.status)
    return {"success": True, "student": MissionStudentResponse.model_validate(enrollment)}


@router.patch("/{mission_id}/students/progress")
async def update_student_progress(
    mission_id: UUID,
    update: StudentProgressUpdate,
    student_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db)
):
    service = EnrollmentService(db)
    enrollment = await service.update_progress(mission_id, student_id, update.progress)
    return {"success": True, "student": MissionStudentResponse.model_validate(enrollment)}


@router.put("/{mission_id}/students/bulk-update")
async def bulk_update_students(
    mission_id: UUID,
    request: BulkStudentUpdate,
    db: AsyncSession = Depends(get_db)
):
    service = EnrollmentService(db)
    result = await service.bulk_update(mission_id, request.student_ids, request.updates)
    return {"success": True, **result}


@router.delete("/{mission_id}/students")
async def remove_student(
    mission_id: UUID,
    student_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db)
):
    service = EnrollmentService(db)
    detached = await service.remove(mission_id, student_id)
    return {"success": True, "message": "Student removed from mission", **detached}


@router.put("/{mission_id}/students")
async def reconcile_students(
    mission_id: UUID,
    request: ReconcileRequest,
    db: AsyncSession = Depends(get_db)
):
    """Run a roster repair action: clear, fix or the deprecated sync"""
    service = ReconciliationService(db)
    result = await service.reconcile(mission_id, request.action)
    return {"success": True, **result}


@router.get("/{mission_id}/analytics")
async def mission_analytics(mission_id: UUID, db: AsyncSession = Depends(get_db)):
    service = AvailabilityService(db)
    return {"success": True, "data": await service.mission_analytics(mission_id)}


@router.get("/{mission_id}/available-students")
async def available_students(mission_id: UUID, db: AsyncSession = Depends(get_db)):
    """Active students not yet placed in any group"""
    await MissionService(db).get_or_404(mission_id)
    students = await AvailabilityService(db).available_students(mission_id)
    return {"success": True, "data": students, "count": len(students)}


@router.get("/{mission_id}/available-mentors")
async def available_mentors(mission_id: UUID, db: AsyncSession = Depends(get_db)):
    """Mentors not yet linked to any group"""
    await MissionService(db).get_or_404(mission_id)
    mentors = await AvailabilityService(db).available_mentors(mission_id)
    return {"success": True, "data": mentors, "count": len(mentors)}
