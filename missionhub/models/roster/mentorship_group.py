# missionhub/models/roster/mentorship_group.py
import enum
from sqlalchemy import Column, String, Integer, Boolean, Text, DateTime, ForeignKey, Uuid, UniqueConstraint, CheckConstraint, Index
from ..base import Base, utcnow


class GroupType(str, enum.Enum):
    STUDY = "study"
    PROJECT = "project"
    MENTORSHIP = "mentorship"
    COLLABORATIVE = "collaborative"


class GroupStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    FULL = "full"
    RECRUITING = "recruiting"


# Groups in any of these states hold their members exclusively
MEMBERSHIP_HOLDING_STATUSES = (
    GroupStatus.ACTIVE.value,
    GroupStatus.FULL.value,
    GroupStatus.RECRUITING.value,
)


class MentorshipGroup(Base):
    __tablename__ = "mentorship_groups"

    mission_id = Column(Uuid(as_uuid=True), ForeignKey("missions.id"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    description = Column(Text)
    group_type = Column(String(20), default=GroupType.MENTORSHIP.value, nullable=False)

    # 0 means unlimited
    max_students = Column(Integer, default=0, nullable=False)
    current_students = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default=GroupStatus.ACTIVE.value, nullable=False)

    __table_args__ = (
        UniqueConstraint("mission_id", "name", name="uq_mentorship_groups_mission_name"),
        CheckConstraint("current_students >= 0", name="ck_mentorship_groups_current_non_negative"),
        Index("ix_mentorship_groups_mission_status", "mission_id", "status"),
    )

    @property
    def is_full(self) -> bool:
        if not self.max_students:
            return False
        return self.current_students >= self.max_students


class GroupMentor(Base):
    __tablename__ = "group_mentors"

    group_id = Column(Uuid(as_uuid=True), ForeignKey("mentorship_groups.id"), nullable=False, index=True)
    mentor_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("group_id", "mentor_id", name="uq_group_mentors_group_mentor"),
    )


class GroupStudent(Base):
    __tablename__ = "group_students"

    group_id = Column(Uuid(as_uuid=True), ForeignKey("mentorship_groups.id"), nullable=False, index=True)
    mission_id = Column(Uuid(as_uuid=True), ForeignKey("missions.id"), nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("group_id", "student_id", name="uq_group_students_group_student"),
        Index("ix_group_students_mission_student", "mission_id", "student_id"),
    )
