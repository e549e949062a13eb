# missionhub/models/roster/mission.py
import enum
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, JSON, Uuid, CheckConstraint
from ..base import Base


class MissionStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


DEFAULT_ATTENDANCE_CONFIG = {
    "timezone": None,
    "working_days": [0, 1, 2, 3, 4],  # Monday..Friday, datetime.weekday() numbering
    "holidays": [],
    "exclude_excused_from_rate": True,
}


class Mission(Base):
    __tablename__ = "missions"

    code = Column(String(30), unique=True, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    batch_id = Column(Uuid(as_uuid=True), ForeignKey("batches.id"), nullable=False, index=True)
    status = Column(String(20), default=MissionStatus.DRAFT.value, nullable=False, index=True)
    start_date = Column(DateTime(timezone=True))
    end_date = Column(DateTime(timezone=True))

    # 0 means unlimited
    max_students = Column(Integer, default=0, nullable=False)

    # Enrollment summary; must mirror the mission_students rows
    total_students = Column(Integer, default=0, nullable=False)
    student_ids = Column(JSON, default=list, nullable=False)

    attendance_config = Column(JSON, default=lambda: dict(DEFAULT_ATTENDANCE_CONFIG), nullable=False)

    __table_args__ = (
        CheckConstraint("total_students >= 0", name="ck_missions_total_students_non_negative"),
        CheckConstraint("max_students >= 0", name="ck_missions_max_students_non_negative"),
    )

    @property
    def is_unlimited(self) -> bool:
        return not self.max_students
