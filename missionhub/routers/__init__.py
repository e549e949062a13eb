from . import health, missions, mission_mentors, mentorship_groups, attendance

__all__ = [
    "health",
    "missions",
    "mission_mentors",
    "mentorship_groups",
    "attendance"
]
