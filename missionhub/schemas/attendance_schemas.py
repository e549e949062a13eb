# missionhub/schemas/attendance_schemas.py
from typing import Optional, List, Dict, Any
from datetime import datetime, date as date_type
from uuid import UUID
import re
from pydantic import BaseModel, Field, field_validator

from ..models.roster.attendance import QuestionType, AttendanceSource


class QuestionValidation(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    pattern: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v):
        if v is not None:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"Invalid regular expression: {exc}")
        return v


class FormQuestion(BaseModel):
    key: str = Field(..., min_length=1, max_length=64)
    label: str = Field(..., min_length=1)
    type: QuestionType = QuestionType.TEXT
    required: bool = False
    options: Optional[List[str]] = None
    validation: Optional[QuestionValidation] = None
    order: int = 0


class AttendanceFormCreate(BaseModel):
    mission_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    active: bool = True
    questions: List[FormQuestion] = Field(default_factory=list)
    created_by: Optional[UUID] = None


class AttendanceFormUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    active: Optional[bool] = None
    questions: Optional[List[FormQuestion]] = None
    updated_by: Optional[UUID] = None


class AttendanceFormResponse(BaseModel):
    id: UUID
    mission_id: UUID
    title: str
    active: bool
    version: int
    questions: List[Dict[str, Any]]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MarkAttendanceRequest(BaseModel):
    mission_id: UUID
    student_id: UUID
    status: str = Field(..., min_length=1)
    notes: Optional[str] = None
    answers: Optional[Dict[str, Any]] = None
    date: Optional[date_type] = None
    source: AttendanceSource = AttendanceSource.ADMIN
    marked_by: Optional[UUID] = None

    class Config:
        use_enum_values = True
        validate_default = True


class BulkMarkAttendanceRequest(BaseModel):
    mission_id: UUID
    status: str = Field(..., min_length=1)
    notes: Optional[str] = None
    group_id: Optional[UUID] = None
    student_ids: Optional[List[UUID]] = None
    date: Optional[date_type] = None
    source: AttendanceSource = AttendanceSource.ADMIN
    marked_by: Optional[UUID] = None

    class Config:
        use_enum_values = True
        validate_default = True


class AttendanceLogResponse(BaseModel):
    id: UUID
    mission_id: UUID
    student_id: UUID
    group_id: Optional[UUID] = None
    date: date_type
    status: str
    source: str
    notes: Optional[str] = None
    answers: Optional[Dict[str, Any]] = None
    marked_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
