# repositories.py — Data access for tasks and users
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from models import TaskItem, TaskStatus, User


class TaskRepository:
    """Task queries and writes bound to one AsyncSession"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _with_people(self, stmt):
        return stmt.options(
            selectinload(TaskItem.created_by),
            selectinload(TaskItem.assigned_to),
        )

    async def _paged(self, stmt, page: int, page_size: int) -> Tuple[List[TaskItem], int]:
        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            self._with_people(stmt)
            .order_by(TaskItem.updated_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def get_by_id(self, task_id: str) -> Optional[TaskItem]:
        stmt = (
            self._with_people(select(TaskItem).where(TaskItem.id == task_id))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_paged(
        self,
        page: int,
        page_size: int,
        status: Optional[TaskStatus] = None,
        assigned_to_id: Optional[str] = None,
        created_by_id: Optional[str] = None,
        search: Optional[str] = None,
        include_archived: bool = False,
    ) -> Tuple[List[TaskItem], int]:
        stmt = select(TaskItem)
        if not include_archived:
            stmt = stmt.where(TaskItem.is_archived.is_(False))
        if status is not None:
            stmt = stmt.where(TaskItem.status == status)
        if assigned_to_id:
            stmt = stmt.where(TaskItem.assigned_to_id == assigned_to_id)
        if created_by_id:
            stmt = stmt.where(TaskItem.created_by_id == created_by_id)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(
                TaskItem.title.ilike(pattern),
                TaskItem.description.ilike(pattern),
            ))
        return await self._paged(stmt, page, page_size)

    async def list_by_creator(self, user_id: str, page: int, page_size: int) -> Tuple[List[TaskItem], int]:
        stmt = select(TaskItem).where(
            TaskItem.created_by_id == user_id, TaskItem.is_archived.is_(False)
        )
        return await self._paged(stmt, page, page_size)

    async def list_by_assignee(self, user_id: str, page: int, page_size: int) -> Tuple[List[TaskItem], int]:
        stmt = select(TaskItem).where(
            TaskItem.assigned_to_id == user_id, TaskItem.is_archived.is_(False)
        )
        return await self._paged(stmt, page, page_size)

    async def list_board(self) -> List[TaskItem]:
        stmt = (
            self._with_people(select(TaskItem).where(TaskItem.is_archived.is_(False)))
            .order_by(TaskItem.updated_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add(self, task: TaskItem) -> TaskItem:
        self.session.add(task)
        await self.session.flush()
        return task

    async def delete(self, task: TaskItem) -> None:
        await self.session.delete(task)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    # --- Archiver contract ---

    async def list_archivable(self, now: datetime, delay_seconds: int) -> List[TaskItem]:
        """Done, unarchived tasks whose last update is at least delay_seconds before now"""
        threshold = now - timedelta(seconds=delay_seconds)
        stmt = select(TaskItem).where(
            TaskItem.status == TaskStatus.DONE,
            TaskItem.is_archived.is_(False),
            TaskItem.updated_at <= threshold,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_archived(self, tasks: List[TaskItem], now: datetime, delay_seconds: int) -> List[str]:
        """Archive the given tasks in one conditional UPDATE and commit.

        The eligibility rule is re-checked in the WHERE clause, so a task edited
        after it was listed is skipped. Returns the ids actually archived.
        """
        if not tasks:
            return []
        threshold = now - timedelta(seconds=delay_seconds)
        stmt = (
            update(TaskItem)
            .where(
                TaskItem.id.in_([t.id for t in tasks]),
                TaskItem.status == TaskStatus.DONE,
                TaskItem.is_archived.is_(False),
                TaskItem.updated_at <= threshold,
            )
            .values(is_archived=True, archived_at=now)
            .returning(TaskItem.id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            archived_ids = list(result.scalars().all())
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return archived_ids

    async def update_unarchived(self, task_id: str, **values) -> bool:
        """Apply an edit only while the task is still active. False if it was archived meanwhile."""
        stmt = (
            update(TaskItem)
            .where(TaskItem.id == task_id, TaskItem.is_archived.is_(False))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def list_all(self) -> List[User]:
        result = await self.session.execute(select(User).order_by(User.name.asc()))
        return list(result.scalars().all())

    async def find_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_email_or_username(self, value: str) -> Optional[User]:
        value = value.lower()
        stmt = select(User).where(or_(
            func.lower(User.email) == value,
            func.lower(User.username) == value,
        ))
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def exists(self, email: str, username: str) -> bool:
        stmt = select(func.count(User.id)).where(or_(
            func.lower(User.email) == email.lower(),
            func.lower(User.username) == username.lower(),
        ))
        result = await self.session.execute(stmt)
        return (result.scalar() or 0) > 0

    async def add(self, user: User) -> User:
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        return user


def task_repository_scope(session_factory: async_sessionmaker):
    """Build a factory of `async with` scopes yielding a TaskRepository on a fresh session"""

    @asynccontextmanager
    async def _scope():
        async with session_factory() as session:
            yield TaskRepository(session)

    return _scope
