# missionhub/schemas/group_schemas.py
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field

from ..models.roster.mentorship_group import GroupType, GroupStatus


class GroupCreate(BaseModel):
    mission_id: UUID
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    group_type: GroupType = GroupType.MENTORSHIP
    max_students: int = Field(default=0, ge=0)
    status: GroupStatus = GroupStatus.ACTIVE
    mentor_ids: List[UUID] = Field(default_factory=list)
    primary_mentor_id: Optional[UUID] = None
    student_ids: List[UUID] = Field(default_factory=list)

    class Config:
        use_enum_values = True
        validate_default = True


class GroupStudentsRequest(BaseModel):
    student_ids: List[UUID] = Field(..., min_length=1)


class GroupTransferRequest(BaseModel):
    to_group_id: UUID
    student_ids: List[UUID] = Field(..., min_length=1)


class GroupStatusUpdate(BaseModel):
    status: GroupStatus

    class Config:
        use_enum_values = True
        validate_default = True
