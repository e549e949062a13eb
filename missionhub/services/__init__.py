from .base_service import BaseService
from .mission_service import MissionService
from .availability_service import AvailabilityService
from .enrollment_service import EnrollmentService
from .mentor_assignment_service import MentorAssignmentService
from .group_service import GroupService
from .reconciliation_service import ReconciliationService
from .attendance_form_service import AttendanceFormService
from .attendance_service import AttendanceService

__all__ = [
    "BaseService",
    "MissionService",
    "AvailabilityService",
    "EnrollmentService",
    "MentorAssignmentService",
    "GroupService",
    "ReconciliationService",
    "AttendanceFormService",
    "AttendanceService"
]
