# missionhub/models/__init__.py
"""Import all models here, needed for Alembic migration."""
from .base import Base
from .user import User, UserRole

# Shared models
from .shared.batch import Batch, StudentBatchMembership, MembershipStatus

# Roster models
from .roster.mission import Mission, MissionStatus
from .roster.mission_student import MissionStudent, EnrollmentStatus
from .roster.mission_mentor import MissionMentor, MentorAssignment, MentorRole, MentorStatus
from .roster.mentorship_group import (
    MentorshipGroup, GroupMentor, GroupStudent, GroupType, GroupStatus
)
from .roster.attendance import (
    AttendanceForm, AttendanceLog, AttendanceStatus, AttendanceSource, QuestionType
)

# This ensures all models are loaded when importing models
