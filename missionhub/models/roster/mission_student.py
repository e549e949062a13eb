# missionhub/models/roster/mission_student.py
import enum
from sqlalchemy import Column, String, Integer, Text, DateTime, Date, ForeignKey, Uuid, UniqueConstraint, Index
from ..base import Base, utcnow


class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "active"
    DEACTIVE = "deactive"
    IRREGULAR = "irregular"
    COMPLETED = "completed"
    DROPPED = "dropped"
    ON_HOLD = "on-hold"


class MissionStudent(Base):
    """A student's enrollment in one mission."""
    __tablename__ = "mission_students"

    mission_id = Column(Uuid(as_uuid=True), ForeignKey("missions.id"), nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    # Copied from the student's approved batch membership at enrollment time
    batch_id = Column(Uuid(as_uuid=True), ForeignKey("batches.id"), nullable=False, index=True)

    status = Column(String(20), default=EnrollmentStatus.ACTIVE.value, nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    attendance_rate = Column(Integer, default=100, nullable=False)

    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_activity = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True))
    last_attendance_date = Column(Date)
    notes = Column(Text)

    __table_args__ = (
        UniqueConstraint("mission_id", "student_id", name="uq_mission_students_mission_student"),
        Index("ix_mission_students_mission_status", "mission_id", "status"),
    )
