import os
from types import SimpleNamespace
from typing import AsyncGenerator, Dict

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.main import app
from app.auth.models import StudentProfile, User
from app.auth.security import create_user_token
from app.core.models import SchoolClass
from app.db.session import Base, get_db


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test; StaticPool keeps every session on the same connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Session for calling services directly and for inspecting state."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def client(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app; each request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def school(session_factory: async_sessionmaker) -> SimpleNamespace:
    """
    One class with four enrolled students, plus an admin, a teacher and a student
    enrolled in a different class. Seeded on its own session so the returned
    objects stay detached and usable after any rollback in db_session.
    """
    async with session_factory() as session:
        return await _seed_school(session)


async def _seed_school(db_session: AsyncSession) -> SimpleNamespace:
    admin = User(full_name="Asha Admin", email="admin@example.com", role="admin")
    teacher = User(full_name="Tarun Teacher", email="teacher@example.com", role="teacher")
    db_session.add_all([admin, teacher])
    await db_session.flush()

    class_a = SchoolClass(name="10", section="A", incharge_id=teacher.id)
    class_b = SchoolClass(name="10", section="B")
    db_session.add_all([class_a, class_b])
    await db_session.flush()

    students = []
    for i, name in enumerate(["Anil", "Bina", "Chetan", "Divya"]):
        student = User(full_name=name, email=f"student{i}@example.com", role="student")
        student.student_profile = StudentProfile(class_id=class_a.id)
        students.append(student)
    outsider = User(full_name="Esha", email="outsider@example.com", role="student")
    outsider.student_profile = StudentProfile(class_id=class_b.id)
    db_session.add_all(students + [outsider])
    await db_session.commit()

    return SimpleNamespace(
        admin=admin,
        teacher=teacher,
        class_a=class_a,
        class_b=class_b,
        students=students,
        outsider=outsider,
    )


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_user_token(user.id, user.role)}"}


@pytest.fixture()
def headers():
    """Bearer header factory: headers(user)."""
    return auth_headers
