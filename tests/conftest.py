import os

# Must be set before missionhub.core.config builds its settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CACHE_ENABLED"] = "false"

import pytest
import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from missionhub.core.database import get_db
from missionhub.main import app
from missionhub.models import (
    Base, User, UserRole, Batch, StudentBatchMembership, MembershipStatus, Mission, MissionStatus
)
from missionhub.services.enrollment_service import EnrollmentService
from missionhub.services.mentor_assignment_service import MentorAssignmentService
from missionhub.services.group_service import GroupService


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'roster.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


class RosterFactory:
    """Seeds users, batches and missions straight into the database."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.counter = 0

    def _next(self) -> int:
        self.counter += 1
        return self.counter

    async def batch(self, code=None) -> Batch:
        n = self._next()
        batch = Batch(code=code or f"B-{n}", title=f"Batch {n}")
        self.db.add(batch)
        await self.db.commit()
        return batch

    async def student(self, batch=None, approved=True, name=None, active=True) -> User:
        n = self._next()
        user = User(
            name=name or f"Student {n:03d}",
            email=f"student{n}@example.com",
            role=UserRole.STUDENT.value,
            is_active=active,
            student_code=f"S{n:04d}",
        )
        self.db.add(user)
        await self.db.flush()
        if batch is not None:
            self.db.add(StudentBatchMembership(
                student_id=user.id,
                batch_id=batch.id,
                status=MembershipStatus.APPROVED.value if approved else MembershipStatus.PENDING.value,
            ))
        await self.db.commit()
        return user

    async def mentor(self, name=None) -> User:
        n = self._next()
        user = User(
            name=name or f"Mentor {n:03d}",
            email=f"mentor{n}@example.com",
            role=UserRole.MENTOR.value,
            is_active=True,
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def mission(self, batch, max_students=0, attendance_config=None) -> Mission:
        n = self._next()
        mission = Mission(
            code=f"M-{n}",
            title=f"Mission {n}",
            batch_id=batch.id,
            status=MissionStatus.ACTIVE.value,
            max_students=max_students,
            total_students=0,
            student_ids=[],
        )
        if attendance_config is not None:
            mission.attendance_config = attendance_config
        self.db.add(mission)
        await self.db.commit()
        return mission

    async def enrolled(self, mission, batch, count):
        """Create count approved students and enroll them into the mission."""
        students = [await self.student(batch) for _ in range(count)]
        await EnrollmentService(self.db).enroll(mission.id, [s.id for s in students])
        return students

    async def mission_mentor(self, mission, max_students=0, role="secondary"):
        mentor = await self.mentor()
        return await MentorAssignmentService(self.db).add_mentor(
            mission.id, mentor.id, role=role, max_students=max_students
        )

    async def group(self, mission, name, max_students=0, student_ids=None, status="active"):
        return await GroupService(self.db).create_group(
            mission.id, name, max_students=max_students, status=status, student_ids=student_ids
        )


@pytest.fixture
def factory(db):
    return RosterFactory(db)


@pytest.fixture
async def roster(factory):
    """An active mission over one batch with no enrollments yet."""
    batch = await factory.batch()
    mission = await factory.mission(batch)
    return batch, mission
