import enum
from sqlalchemy import Column, String, Boolean
from .base import Base


class UserRole(str, enum.Enum):
    STUDENT = "student"
    MENTOR = "mentor"
    ADMIN = "admin"


class User(Base):
    """Account record owned by the authentication service; read-only here."""
    __tablename__ = "users"

    name = Column(String(120), nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)
    role = Column(String(20), default=UserRole.STUDENT.value, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    student_code = Column(String(30), index=True)
