# missionhub/models/shared/batch.py
"""Batch and batch membership models shared with the academic administration side."""
import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid, UniqueConstraint
from ..base import Base, utcnow


class MembershipStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Batch(Base):
    __tablename__ = "batches"

    code = Column(String(30), unique=True, nullable=False, index=True)
    title = Column(String(200), nullable=False)


class StudentBatchMembership(Base):
    __tablename__ = "student_batch_memberships"

    student_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    batch_id = Column(Uuid(as_uuid=True), ForeignKey("batches.id"), nullable=False, index=True)
    status = Column(String(20), default=MembershipStatus.PENDING.value, nullable=False, index=True)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("student_id", "batch_id", name="uq_batch_membership_student_batch"),
    )
