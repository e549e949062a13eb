# missionhub/models/roster/mission_mentor.py
import enum
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Uuid, UniqueConstraint, CheckConstraint, Index
from ..base import Base, utcnow


class MentorRole(str, enum.Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    MODERATOR = "moderator"


class MentorStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    OVERLOADED = "overloaded"


class MissionMentor(Base):
    __tablename__ = "mission_mentors"

    mission_id = Column(Uuid(as_uuid=True), ForeignKey("missions.id"), nullable=False, index=True)
    mentor_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), default=MentorRole.SECONDARY.value, nullable=False)

    # 0 means unlimited
    max_students = Column(Integer, default=0, nullable=False)
    current_workload = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default=MentorStatus.ACTIVE.value, nullable=False)

    __table_args__ = (
        UniqueConstraint("mission_id", "mentor_id", name="uq_mission_mentors_mission_mentor"),
        CheckConstraint("current_workload >= 0", name="ck_mission_mentors_workload_non_negative"),
    )


class MentorAssignment(Base):
    """Link between an enrolled student and one of the mission's mentors."""
    __tablename__ = "mentor_assignments"

    mission_id = Column(Uuid(as_uuid=True), ForeignKey("missions.id"), nullable=False, index=True)
    mission_mentor_id = Column(Uuid(as_uuid=True), ForeignKey("mission_mentors.id"), nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    assigned_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("mission_mentor_id", "student_id", name="uq_mentor_assignments_mentor_student"),
        Index("ix_mentor_assignments_mission_student", "mission_id", "student_id"),
    )
