"""
Pytest configuration and fixtures for audit trail tests.

Provides common test fixtures for the async client, database sessions,
test users, and authentication headers.
"""
import pytest
import pytest_asyncio
import uuid
from typing import AsyncGenerator

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from audittrail.main import app
from audittrail.core.database import get_db, Base
from audittrail.core.roles import UserRole
from audittrail.core.security import create_access_token
from audittrail.models.user import User
from audittrail.audit.audit_logger import AuditLogger
from audittrail.audit.context import AuditActor


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine backed by a throwaway SQLite file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'audit_test.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(test_engine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for tests."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def audit_logger(session_maker) -> AuditLogger:
    """AuditLogger writing to the test database."""
    return AuditLogger(session_factory=session_maker)


@pytest_asyncio.fixture(scope="function")
async def admin_user(db_session: AsyncSession) -> User:
    """Create an admin user."""
    user = User(
        id=uuid.uuid4(),
        email="admin@parchi.test",
        role=UserRole.ADMIN.value,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture(scope="function")
async def student_user(db_session: AsyncSession) -> User:
    """Create a student user."""
    user = User(
        id=uuid.uuid4(),
        email="Ayesha.Student@uni.test",
        role=UserRole.STUDENT.value,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


def _headers_for(user: User) -> dict:
    token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    """Authentication headers for the admin user."""
    return _headers_for(admin_user)


@pytest.fixture
def student_headers(student_user: User) -> dict:
    """Authentication headers for the student user."""
    return _headers_for(student_user)


@pytest.fixture
def admin_actor(admin_user: User) -> AuditActor:
    return AuditActor(id=admin_user.id, email=admin_user.email, role=admin_user.role)


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database override."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
