# tests/conftest.py — Shared test fixtures
import os
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ADMIN_EMAIL"] = "admin@taskcollab.com"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User, TaskItem, TaskStatus, UserRole, utcnow
from auth import AuthService
from database import get_db_session
from main import app, init_app_state, teardown_app_state


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory):
    """HTTP test client with overridden DB dependency and fresh app state"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    # ASGITransport does not run the lifespan, so install state directly
    init_app_state(app)
    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    await teardown_app_state(app)


async def _make_user(db_session, name, username, email, password, role=UserRole.USER) -> User:
    user = User(
        name=name,
        username=username,
        email=email,
        password_hash=AuthService.hash_password(password),
        role=role,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session):
    """Create a regular user"""
    return await _make_user(
        db_session, "Test User", "testuser", "testuser@taskcollab.com", "TestPassword123!",
    )


@pytest_asyncio.fixture
async def other_user(db_session):
    """Create a second regular user"""
    return await _make_user(
        db_session, "Jane Smith", "janesmith", "jane@taskcollab.com", "JanePassword123!",
    )


@pytest_asyncio.fixture
async def admin_user(db_session):
    """Create an admin user"""
    return await _make_user(
        db_session, "Admin User", "admin", "admin@taskcollab.com", "AdminPassword123!",
        role=UserRole.ADMIN,
    )


async def make_task(
    db_session,
    creator: User,
    title: str = "Task",
    status: TaskStatus = TaskStatus.TODO,
    updated_at: datetime = None,
    assignee: User = None,
) -> TaskItem:
    """Insert a task directly, bypassing the API"""
    stamp = updated_at or utcnow()
    task = TaskItem(
        title=title,
        status=status,
        created_by_id=creator.id,
        assigned_to_id=assignee.id if assignee else None,
        created_at=stamp,
        updated_at=stamp,
        is_archived=False,
    )
    db_session.add(task)
    await db_session.commit()
    await db_session.refresh(task)
    return task


def naive_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; compare everything as naive UTC"""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token(AuthService.token_claims(user))
    return {"Authorization": f"Bearer {token}"}
