# missionhub/routers/attendance.py
from typing import Optional
from uuid import UUID
from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.attendance_schemas import (
    AttendanceFormCreate, AttendanceFormUpdate, AttendanceFormResponse,
    MarkAttendanceRequest, BulkMarkAttendanceRequest, AttendanceLogResponse,
)
from ..services.attendance_form_service import AttendanceFormService
from ..services.attendance_service import AttendanceService

router = APIRouter(prefix="/api/v1/attendance", tags=["Attendance"])


@router.post("/forms", status_code=status.HTTP_201_CREATED)
async def create_form(
    form_data: AttendanceFormCreate,
    db: AsyncSession = Depends(get_db)
):
    service = AttendanceFormService(db)
    data = form_data.model_dump(exclude={"questions"})
    data["questions"] = [q.model_dump(mode="json") for q in form_data.questions]
    form = await service.create_form(data)
    return {"success": True, "data": AttendanceFormResponse.model_validate(form)}


@router.get("/forms")
async def list_forms(
    mission_id: Optional[UUID] = Query(None),
    active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    service = AttendanceFormService(db)
    forms = await service.list_forms(mission_id=mission_id, active=active)
    return {"success": True, "data": [AttendanceFormResponse.model_validate(f) for f in forms]}


@router.get("/forms/{form_id}")
async def get_form(form_id: UUID, db: AsyncSession = Depends(get_db)):
    service = AttendanceFormService(db)
    form = await service.get_form(form_id)
    return {"success": True, "data": AttendanceFormResponse.model_validate(form)}


@router.patch("/forms/{form_id}")
async def update_form(
    form_id: UUID,
    form_data: AttendanceFormUpdate,
    db: AsyncSession = Depends(get_db)
):
    """Update a form; changing its questions bumps the version"""
    service = AttendanceFormService(db)
    updates = form_data.model_dump(exclude_unset=True, exclude={"questions"})
    if form_data.questions is not None:
        updates["questions"] = [q.model_dump(mode="json") for q in form_data.questions]
    form = await service.update_form(form_id, updates)
    return {"success": True, "data": AttendanceFormResponse.model_validate(form)}


@router.delete("/forms/{form_id}")
async def delete_form(form_id: UUID, db: AsyncSession = Depends(get_db)):
    service = AttendanceFormService(db)
    await service.delete_form(form_id)
    return {"success": True, "message": "Attendance form deleted"}


@router.post("/mark")
async def mark_attendance(
    request: MarkAttendanceRequest,
    db: AsyncSession = Depends(get_db)
):
    """Mark one student's attendance for a day; marking again overwrites"""
    service = AttendanceService(db)
    log = await service.mark(
        request.mission_id,
        request.student_id,
        request.status,
        notes=request.notes,
        answers=request.answers,
        date=request.date,
        source=request.source,
        marked_by=request.marked_by,
    )
    return {"success": True, "data": AttendanceLogResponse.model_validate(log)}


@router.post("/bulk-mark")
async def bulk_mark_attendance(
    request: BulkMarkAttendanceRequest,
    db: AsyncSession = Depends(get_db)
):
    service = AttendanceService(db)
    result = await service.bulk_mark(
        request.mission_id,
        request.status,
        notes=request.notes,
        group_id=request.group_id,
        student_ids=request.student_ids,
        date=request.date,
        source=request.source,
        marked_by=request.marked_by,
    )
    return {"success": True, "data": result}


@router.get("/logs")
async def list_logs(
    mission_id: UUID = Query(...),
    student_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    log_status: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db)
):
    service = AttendanceService(db)
    logs = await service.list_logs(
        mission_id, student_id=student_id, date_from=date_from, date_to=date_to, status=log_status
    )
    return {
        "success": True,
        "data": [AttendanceLogResponse.model_validate(log) for log in logs],
        "count": len(logs),
    }


@router.get("/summary/student")
async def student_summary(
    mission_id: UUID = Query(...),
    student_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db)
):
    service = AttendanceService(db)
    return {"success": True, "data": await service.student_summary(mission_id, student_id)}
