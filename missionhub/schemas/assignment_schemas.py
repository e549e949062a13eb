# missionhub/schemas/assignment_schemas.py
from typing import List
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field

from ..models.roster.mission_mentor import MentorRole


class MissionMentorCreate(BaseModel):
    mission_id: UUID
    mentor_id: UUID
    role: MentorRole = MentorRole.SECONDARY
    max_students: int = Field(default=0, ge=0)

    class Config:
        use_enum_values = True
        validate_default = True


class AssignStudentsRequest(BaseModel):
    student_ids: List[UUID] = Field(..., min_length=1)
    make_primary: bool = False


class UnassignStudentsRequest(BaseModel):
    student_ids: List[UUID] = Field(..., min_length=1)


class MissionMentorResponse(BaseModel):
    id: UUID
    mission_id: UUID
    mentor_id: UUID
    role: str
    max_students: int
    current_workload: int
    status: str
    created_at: datetime

    class Config:
        from_attributes = True
