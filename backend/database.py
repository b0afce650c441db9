# database.py - Async database setup and demo seeding
import os
import logging
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from contextlib import asynccontextmanager

logger = logging.getLogger("taskboard.db")

# Database configuration
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite+aiosqlite:///./taskboard.db"
)

_engine_kwargs = {
    "echo": os.getenv("SQL_ECHO", "false").lower() == "true",
    "future": True,
    "pool_pre_ping": True,
}
if not DATABASE_URL.startswith("sqlite"):
    # Connection pooling for server databases
    _engine_kwargs.update(pool_size=20, max_overflow=0, pool_recycle=3600)

engine = create_async_engine(DATABASE_URL, **_engine_kwargs)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)

DEMO_USERS = [
    {"name": "Admin User", "email": "admin@taskcollab.com", "username": "admin", "role": "Admin"},
    {"name": "John Doe", "email": "john@example.com", "username": "johndoe", "role": "User"},
    {"name": "Jane Smith", "email": "jane@example.com", "username": "janesmith", "role": "User"},
    {"name": "Mike Johnson", "email": "mike@example.com", "username": "mikejohnson", "role": "User"},
    {"name": "Sarah Chen", "email": "sarah@example.com", "username": "sarahchen", "role": "User"},
]


async def get_db_session():
    """Dependency for getting database session (FastAPI Depends)"""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Initialize database and create tables"""
    from models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized")


async def seed_db(session: AsyncSession) -> int:
    """Insert the demo users when the user table is empty. Returns rows added."""
    from models import User, UserRole

    result = await session.execute(select(func.count(User.id)))
    if (result.scalar() or 0) > 0:
        return 0

    for entry in DEMO_USERS:
        # Seeded accounts have no password and cannot log in
        session.add(User(
            name=entry["name"],
            email=entry["email"],
            username=entry["username"],
            password_hash="",
            role=UserRole(entry["role"]),
        ))
    await session.commit()
    logger.info(f"Seeded {len(DEMO_USERS)} demo users")
    return len(DEMO_USERS)


async def close_db():
    """Close database connection pool"""
    await engine.dispose()


@asynccontextmanager
async def get_db_context():
    """Context manager for database operations outside of FastAPI request cycle"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
