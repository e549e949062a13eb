# missionhub/schemas/mission_schemas.py
from typing import Optional, List
from datetime import datetime, date
from uuid import UUID
from pydantic import BaseModel, Field, field_validator

from ..models.roster.mission import MissionStatus


class AttendanceConfig(BaseModel):
    timezone: Optional[str] = Field(default=None, max_length=64)
    working_days: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])
    holidays: List[date] = Field(default_factory=list)
    exclude_excused_from_rate: bool = True

    @field_validator("working_days")
    @classmethod
    def validate_working_days(cls, v):
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("working_days must be between 0 (Monday) and 6 (Sunday)")
        return sorted(set(v))


class MissionCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=30)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    batch_id: UUID
    status: MissionStatus = MissionStatus.DRAFT
    max_students: int = Field(default=0, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    attendance_config: Optional[AttendanceConfig] = None

    class Config:
        use_enum_values = True
        validate_default = True


class MissionResponse(BaseModel):
    id: UUID
    code: str
    title: str
    description: Optional[str] = None
    batch_id: UUID
    status: str
    max_students: int
    total_students: int
    student_ids: List[str]
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    attendance_config: dict
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
