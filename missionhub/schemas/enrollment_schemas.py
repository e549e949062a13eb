# missionhub/schemas/enrollment_schemas.py
from typing import Optional, List, Literal, Union, Dict, Any, Annotated
from datetime import datetime, date
from uuid import UUID
from pydantic import BaseModel, Field


class EnrollStudentsRequest(BaseModel):
    student_ids: List[UUID] = Field(default_factory=list)


class StudentStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)


class StudentProgressUpdate(BaseModel):
    progress: int


class BulkStudentUpdate(BaseModel):
    student_ids: List[UUID] = Field(..., min_length=1)
    updates: Dict[str, Any]


class ReconcileRequest(BaseModel):
    action: str = Field(..., min_length=1)


class MissionStudentResponse(BaseModel):
    id: UUID
    mission_id: UUID
    student_id: UUID
    batch_id: UUID
    status: str
    progress: int
    attendance_rate: int
    started_at: datetime
    last_activity: datetime
    completed_at: Optional[datetime] = None
    last_attendance_date: Optional[date] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


# Listing rows. Enrolled rows are backed by a MissionStudent record, batch-only
# rows describe an approved batch member who has no enrollment yet.
class EnrolledStudentRow(BaseModel):
    kind: Literal["enrolled"] = "enrolled"
    enrollment_id: UUID
    student_id: UUID
    name: Optional[str] = None
    email: Optional[str] = None
    student_code: Optional[str] = None
    batch_id: UUID
    batch_code: Optional[str] = None
    status: str
    progress: int
    attendance_rate: int
    started_at: datetime
    last_activity: datetime
    completed_at: Optional[datetime] = None


class BatchOnlyStudentRow(BaseModel):
    kind: Literal["batch_only"] = "batch_only"
    student_id: UUID
    name: Optional[str] = None
    email: Optional[str] = None
    student_code: Optional[str] = None
    batch_id: UUID
    batch_code: Optional[str] = None
    membership_status: str
    joined_at: Optional[datetime] = None


StudentListingRow = Annotated[
    Union[EnrolledStudentRow, BatchOnlyStudentRow],
    Field(discriminator="kind"),
]


class ListingDebugInfo(BaseModel):
    mission_id: UUID
    batch_id: UUID
    enrolled_count: int
    batch_approved_count: int
    counts_match: bool
    missing_from_mission: List[UUID]
    not_in_batch: List[UUID]
    summary_total_students: int
    summary_in_sync: bool


class MissionStudentListing(BaseModel):
    students: List[StudentListingRow]
    total: int
    enrolled_count: int
    batch_only_count: int
    debug: Optional[ListingDebugInfo] = None
