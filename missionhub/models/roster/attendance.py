# missionhub/models/roster/attendance.py
import enum
from sqlalchemy import Column, String, Integer, Boolean, Text, Date, ForeignKey, JSON, Uuid, UniqueConstraint, Index
from ..base import Base


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    EXCUSED = "excused"


class AttendanceSource(str, enum.Enum):
    STUDENT = "student"
    MENTOR = "mentor"
    ADMIN = "admin"
    SYSTEM = "system"


class QuestionType(str, enum.Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    PARAGRAPH = "paragraph"
    SINGLE_SELECT = "single-select"
    MULTI_SELECT = "multi-select"
    BOOLEAN = "boolean"
    NUMBER = "number"
    EMAIL = "email"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    URL = "url"
    PHONE = "phone"
    RATING = "rating"
    SCALE = "scale"


class AttendanceForm(Base):
    __tablename__ = "attendance_forms"

    mission_id = Column(Uuid(as_uuid=True), ForeignKey("missions.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    questions = Column(JSON, default=list, nullable=False)  # List of question definitions
    created_by = Column(Uuid(as_uuid=True))
    updated_by = Column(Uuid(as_uuid=True))

    __table_args__ = (
        Index("ix_attendance_forms_mission_active", "mission_id", "active"),
    )


class AttendanceLog(Base):
    __tablename__ = "attendance_logs"

    mission_id = Column(Uuid(as_uuid=True), ForeignKey("missions.id"), nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    group_id = Column(Uuid(as_uuid=True), ForeignKey("mentorship_groups.id"), index=True)

    # Calendar day in the mission's timezone
    date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False)
    source = Column(String(20), default=AttendanceSource.ADMIN.value, nullable=False)
    notes = Column(Text)
    answers = Column(JSON)
    marked_by = Column(Uuid(as_uuid=True))

    __table_args__ = (
        UniqueConstraint("mission_id", "student_id", "date", name="uq_attendance_logs_mission_student_date"),
        Index("ix_attendance_logs_mission_date", "mission_id", "date"),
    )
