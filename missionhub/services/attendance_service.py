# missionhub/services/attendance_service.py
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Dict, Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from .base_service import BaseService
from .mission_service import MissionService
from .enrollment_service import EnrollmentService
from .attendance_form_service import AttendanceFormService
from ..core.config import settings
from ..core.exceptions import RosterException, NotFoundError, InvalidInputError
from ..core.performance_monitor import monitor_performance
from ..models.base import utcnow
from ..models.roster.mission import Mission
from ..models.roster.mentorship_group import MentorshipGroup, GroupStudent
from ..models.roster.attendance import AttendanceLog, AttendanceStatus, AttendanceSource
from ..utils.form_answers import coerce_answers
from ..utils.cache_invalidation import invalidate_mission_cache

logger = logging.getLogger(__name__)

ATTENDANCE_STATUSES = {status.value for status in AttendanceStatus}
ATTENDANCE_SOURCES = {source.value for source in AttendanceSource}


def _check_status(status: str) -> str:
    if status not in ATTENDANCE_STATUSES:
        raise InvalidInputError(
            f"Invalid attendance status '{status}'",
            field="status",
            details={"allowed": sorted(ATTENDANCE_STATUSES)},
        )
    return status


def mission_timezone(mission: Mission) -> ZoneInfo:
    name = (mission.attendance_config or {}).get("timezone") or settings.default_timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r on mission %s, using %s", name, mission.id, settings.default_timezone)
        return ZoneInfo(settings.default_timezone)


def local_day(moment: datetime, tz: ZoneInfo) -> date:
    # SQLite hands back naive datetimes; stored values are UTC
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


class AttendanceService(BaseService[AttendanceLog]):
    def __init__(self, db: AsyncSession):
        super().__init__(AttendanceLog, db)
        self.missions = MissionService(db)
        self.enrollments = EnrollmentService(db)
        self.forms = AttendanceFormService(db)

    async def _current_group_id(self, mission_id: UUID, student_id: UUID) -> Optional[UUID]:
        groups = await self.enrollments.availability.student_groups(mission_id, [student_id])
        membership = groups.get(student_id)
        return membership["group_id"] if membership else None

    async def mark(
        self,
        mission_id: UUID,
        student_id: UUID,
        status: str,
        notes: Optional[str] = None,
        answers: Optional[Dict[str, Any]] = None,
        date: Optional[date] = None,
        source: str = AttendanceSource.ADMIN.value,
        marked_by: Optional[UUID] = None,
        use_form: bool = True,
        commit: bool = True,
    ) -> AttendanceLog:
        """Record one student's attendance for a day.

        A second mark for the same mission, student and day overwrites the
        first one.
        """
        _check_status(status)
        if source not in ATTENDANCE_SOURCES:
            raise InvalidInputError(f"Invalid attendance source '{source}'", field="source")

        mission = await self.missions.get_or_404(mission_id)
        enrollment = await self.enrollments.get_enrollment_or_404(mission_id, student_id)

        tz = mission_timezone(mission)
        day = date or datetime.now(tz).date()
        started_on = local_day(enrollment.started_at, tz)
        if day < started_on:
            raise InvalidInputError(
                "Date is before the student joined the mission",
                field="date",
                details={"date": day.isoformat(), "started_on": started_on.isoformat()},
            )

        # Answers are only kept when an active form defines them
        form = await self.forms.get_active_form(mission_id) if use_form else None
        stored_answers = coerce_answers(form.questions or [], answers) if form else None
        group_id = await self._current_group_id(mission_id, student_id)

        result = await self.db.execute(
            select(AttendanceLog).where(
                AttendanceLog.mission_id == mission_id,
                AttendanceLog.student_id == student_id,
                AttendanceLog.date == day,
            )
        )
        log = result.scalar_one_or_none()
        if log is None:
            log = AttendanceLog(id=uuid.uuid4(), mission_id=mission_id, student_id=student_id, date=day)
            self.db.add(log)

        log.status = status
        log.source = source
        log.notes = notes
        log.answers = stored_answers
        log.group_id = group_id
        log.marked_by = marked_by

        enrollment.last_activity = utcnow()
        if enrollment.last_attendance_date is None or enrollment.last_attendance_date < day:
            enrollment.last_attendance_date = day

        if commit:
            await self._commit("mark attendance")
            await invalidate_mission_cache(mission_id)
            logger.info("Marked student %s %s on %s in mission %s", student_id, status, day, mission.code)
        return log

    @monitor_performance("attendance.bulk_mark")
    async def bulk_mark(
        self,
        mission_id: UUID,
        status: str,
        notes: Optional[str] = None,
        group_id: Optional[UUID] = None,
        student_ids: Optional[List[UUID]] = None,
        date: Optional[date] = None,
        source: str = AttendanceSource.ADMIN.value,
        marked_by: Optional[UUID] = None,
    ) -> Dict[str, Any]:
        """Mark every targeted student; one student's failure never stops the others."""
        if (group_id is None) == (student_ids is None):
            raise InvalidInputError("Provide exactly one of group_id or student_ids")
        if student_ids is not None and not student_ids:
            raise InvalidInputError("student_ids must contain at least one student", field="student_ids")
        _check_status(status)

        await self.missions.get_or_404(mission_id)

        if group_id is not None:
            group = await self.db.get(MentorshipGroup, group_id)
            if not group or group.mission_id != mission_id:
                raise NotFoundError("Mentorship group", group_id)
            member_result = await self.db.execute(
                select(GroupStudent.student_id)
                .where(GroupStudent.group_id == group_id)
                .order_by(GroupStudent.joined_at)
            )
            targets = list(member_result.scalars().all())
        else:
            targets = list(dict.fromkeys(student_ids))

        results = []
        for student_id in targets:
            try:
                log = await self.mark(
                    mission_id, student_id, status,
                    notes=notes, date=date, source=source, marked_by=marked_by,
                    use_form=False, commit=False,
                )
            except RosterException as e:
                results.append({"student_id": str(student_id), "ok": False, "code": e.code, "error": e.message})
                continue
            results.append({"student_id": str(student_id), "ok": True, "log_id": str(log.id)})

        marked = sum(1 for r in results if r["ok"])
        if marked:
            await self._commit("bulk mark attendance")
            await invalidate_mission_cache(mission_id)

        logger.info("Bulk marked %d of %d student(s) %s in mission %s", marked, len(results), status, mission_id)
        return {
            "count": len(results),
            "marked_count": marked,
            "failed_count": len(results) - marked,
            "results": results,
        }

    async def list_logs(
        self,
        mission_id: UUID,
        student_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[str] = None,
    ) -> List[AttendanceLog]:
        await self.missions.get_or_404(mission_id)
        if date_from and date_to and date_from > date_to:
            raise InvalidInputError("date_from must not be after date_to", field="date_from")

        stmt = select(AttendanceLog).where(AttendanceLog.mission_id == mission_id)
        if student_id:
            stmt = stmt.where(AttendanceLog.student_id == student_id)
        if date_from:
            stmt = stmt.where(AttendanceLog.date >= date_from)
        if date_to:
            stmt = stmt.where(AttendanceLog.date <= date_to)
        if status:
            stmt = stmt.where(AttendanceLog.status == _check_status(status))

        result = await self.db.execute(stmt.order_by(AttendanceLog.date.desc(), AttendanceLog.student_id))
        return result.scalars().all()

    async def student_summary(self, mission_id: UUID, student_id: UUID) -> Dict[str, Any]:
        """Attendance rate over the mission's working days since enrollment."""
        mission = await self.missions.get_or_404(mission_id)
        enrollment = await self.enrollments.get_enrollment_or_404(mission_id, student_id)

        tz = mission_timezone(mission)
        config = mission.attendance_config or {}
        working_days = set(config.get("working_days", [0, 1, 2, 3, 4]))
        holidays = {str(holiday) for holiday in config.get("holidays", [])}
        exclude_excused = config.get("exclude_excused_from_rate", True) is not False

        start = local_day(enrollment.started_at, tz)
        today = datetime.now(tz).date()

        result = await self.db.execute(
            select(AttendanceLog.date, AttendanceLog.status)
            .where(
                AttendanceLog.mission_id == mission_id,
                AttendanceLog.student_id == student_id,
                AttendanceLog.date >= start,
                AttendanceLog.date <= today,
            )
            .order_by(AttendanceLog.date)
        )

        def is_eligible(day: date) -> bool:
            return day.weekday() in working_days and day.isoformat() not in holidays

        # Logs on weekends or holidays do not count towards the rate
        statuses = [status for log_day, status in result.all() if is_eligible(log_day)]

        presents = statuses.count(AttendanceStatus.PRESENT.value)
        absents = statuses.count(AttendanceStatus.ABSENT.value)
        excused = statuses.count(AttendanceStatus.EXCUSED.value)

        streak = 0
        for status in reversed(statuses):
            if status != AttendanceStatus.PRESENT.value:
                break
            streak += 1

        eligible_days = 0
        day = start
        while day <= today:
            if is_eligible(day):
                eligible_days += 1
            day += timedelta(days=1)

        if eligible_days == 0:
            rate = 0
        else:
            denominator = max(1, eligible_days - (excused if exclude_excused else 0))
            rate = min(100, presents * 100 // denominator)

        enrollment.attendance_rate = rate
        await self._commit("update attendance rate")
        await invalidate_mission_cache(mission_id)

        return {
            "mission_id": str(mission_id),
            "student_id": str(student_id),
            "started_on": start.isoformat(),
            "eligible_days": eligible_days,
            "presents": presents,
            "absents": absents,
            "excused": excused,
            "attendance_rate": rate,
            "streak_present_days": streak,
        }
