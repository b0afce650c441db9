# task_service.py — Task use cases: CRUD, board view, cached single reads
import math
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from fastapi import HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import CurrentUser
from cache import TaskCache, task_cache_key
from models import TaskItem, TaskStatus, User, utcnow
from notifications import BoardNotifier
from repositories import TaskRepository, UserRepository

logger = logging.getLogger("taskboard.tasks")


# ============================================================
# SCHEMAS
# ============================================================

class UserSummary(BaseModel):
    id: str
    name: str
    initials: str


class TaskOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    created_by: UserSummary
    assigned_to: Optional[UserSummary] = None
    created_at: str
    updated_at: str
    is_archived: bool
    archived_at: Optional[str] = None


class TaskListOut(BaseModel):
    data: List[TaskOut]
    page: int
    page_size: int
    total_count: int
    total_pages: int


# ============================================================
# HELPERS
# ============================================================

def get_initials(name: str) -> str:
    """'John Doe' -> 'JD', 'Cher' -> 'C', '' -> '?'"""
    parts = (name or "").split()
    if not parts:
        return "?"
    if len(parts) == 1:
        return parts[0][0].upper()
    return f"{parts[0][0]}{parts[-1][0]}".upper()


def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary(id=user.id, name=user.name, initials=get_initials(user.name))


def task_to_out(task: TaskItem) -> dict:
    status = task.status.value if isinstance(task.status, TaskStatus) else task.status
    return TaskOut(
        id=task.id,
        title=task.title,
        description=task.description,
        status=status,
        created_by=_summary(task.created_by),
        assigned_to=_summary(task.assigned_to),
        created_at=_ts(task.created_at),
        updated_at=_ts(task.updated_at),
        is_archived=bool(task.is_archived),
        archived_at=_ts(task.archived_at),
    ).model_dump()


def parse_status(value: str) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {value}")


def _page(items: List[TaskItem], total: int, page: int, page_size: int) -> dict:
    return TaskListOut(
        data=[task_to_out(t) for t in items],
        page=page,
        page_size=page_size,
        total_count=total,
        total_pages=math.ceil(total / page_size) if page_size else 0,
    ).model_dump()


# ============================================================
# SERVICE
# ============================================================

class TaskService:
    """Coordinates the repository, the read cache and board notifications"""

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[TaskCache] = None,
        notifier: Optional[BoardNotifier] = None,
    ):
        self.tasks = TaskRepository(db)
        self.users = UserRepository(db)
        self.cache = cache
        self.notifier = notifier

    # --- cache access; a broken cache behaves like an empty one ---

    def _cache_get(self, task_id: str) -> Optional[dict]:
        if self.cache is None:
            return None
        try:
            return self.cache.get(task_cache_key(task_id))
        except Exception as e:
            logger.warning(f"Cache read failed for task {task_id}: {e}")
            return None

    def _cache_set(self, task_id: str, payload: dict):
        if self.cache is None:
            return
        try:
            self.cache.set(task_cache_key(task_id), payload)
        except Exception as e:
            logger.warning(f"Cache write failed for task {task_id}: {e}")

    def _cache_remove(self, task_id: str):
        if self.cache is None:
            return
        try:
            self.cache.remove(task_cache_key(task_id))
        except Exception as e:
            logger.warning(f"Cache eviction failed for task {task_id}: {e}")

    async def _notify(self, method: str, *args):
        if self.notifier is None:
            return
        try:
            await getattr(self.notifier, method)(*args)
        except Exception as e:
            logger.warning(f"Board notification {method} failed: {e}")

    # --- reads ---

    async def get_task(self, task_id: str) -> Tuple[Optional[dict], bool]:
        """Return (task payload or None, cache_hit)"""
        cached = self._cache_get(task_id)
        if cached is not None:
            return cached, True

        task = await self.tasks.get_by_id(task_id)
        if task is None:
            return None, False

        payload = task_to_out(task)
        self._cache_set(task_id, payload)
        return payload, False

    async def list_tasks(
        self,
        page: int,
        page_size: int,
        status: Optional[str] = None,
        assigned_to: Optional[str] = None,
        created_by: Optional[str] = None,
        search: Optional[str] = None,
        include_archived: bool = False,
    ) -> dict:
        status_filter = None
        if status:
            try:
                status_filter = TaskStatus(status)
            except ValueError:
                status_filter = None
        items, total = await self.tasks.list_paged(
            page, page_size, status_filter, assigned_to, created_by, search, include_archived,
        )
        return _page(items, total, page, page_size)

    async def list_my_tasks(self, user_id: str, page: int, page_size: int) -> dict:
        items, total = await self.tasks.list_by_creator(user_id, page, page_size)
        return _page(items, total, page, page_size)

    async def list_assigned_tasks(self, user_id: str, page: int, page_size: int) -> dict:
        items, total = await self.tasks.list_by_assignee(user_id, page, page_size)
        return _page(items, total, page, page_size)

    async def get_board(self) -> Dict[str, List[dict]]:
        columns: Dict[str, List[dict]] = {s.value: [] for s in TaskStatus}
        for task in await self.tasks.list_board():
            status = task.status.value if isinstance(task.status, TaskStatus) else task.status
            columns[status].append(task_to_out(task))
        return columns

    # --- writes ---

    async def _check_assignee(self, assigned_to_id: Optional[str]):
        if assigned_to_id and not await self.users.get_by_id(assigned_to_id):
            raise HTTPException(status_code=400, detail=f"Unknown assignee: {assigned_to_id}")

    async def _load_for_write(self, task_id: str, user: CurrentUser, action: str) -> TaskItem:
        task = await self.tasks.get_by_id(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        if task.created_by_id != user.id and not user.is_admin:
            raise HTTPException(status_code=403, detail=f"You don't have permission to {action} this task")
        return task

    async def create_task(
        self,
        user: CurrentUser,
        title: str,
        description: Optional[str],
        status: str,
        assigned_to_id: Optional[str],
    ) -> dict:
        task_status = parse_status(status)
        await self._check_assignee(assigned_to_id)

        now = utcnow()
        task = TaskItem(
            title=title,
            description=description,
            status=task_status,
            created_by_id=user.id,
            assigned_to_id=assigned_to_id or None,
            created_at=now,
            updated_at=now,
            is_archived=False,
        )
        await self.tasks.add(task)
        await self.tasks.commit()

        created = task_to_out(await self.tasks.get_by_id(task.id))
        logger.info(f"Task {task.id} created by {user.username}")

        await self._notify("task_created", created, user.name)
        if task.assigned_to_id:
            await self._notify("task_assigned", created, task.assigned_to_id)
        return created

    async def update_task(
        self,
        task_id: str,
        user: CurrentUser,
        title: str,
        description: Optional[str],
        status: str,
        assigned_to_id: Optional[str],
    ) -> dict:
        task = await self._load_for_write(task_id, user, "edit")
        if task.is_archived:
            raise HTTPException(status_code=409, detail="Archived tasks cannot be edited")
        task_status = parse_status(status)
        await self._check_assignee(assigned_to_id)

        previous_assignee = task.assigned_to_id
        new_assignee = assigned_to_id or None
        # Guarded write: the archiver may have archived the task since it was loaded
        applied = await self.tasks.update_unarchived(
            task_id,
            title=title,
            description=description,
            status=task_status,
            assigned_to_id=new_assignee,
            updated_at=utcnow(),
        )
        if not applied:
            await self.tasks.rollback()
            raise HTTPException(status_code=409, detail="Archived tasks cannot be edited")
        await self.tasks.commit()
        self._cache_remove(task_id)

        updated = task_to_out(await self.tasks.get_by_id(task_id))
        await self._notify("task_updated", updated)
        if new_assignee and new_assignee != previous_assignee:
            await self._notify("task_assigned", updated, new_assignee)
        return updated

    async def delete_task(self, task_id: str, user: CurrentUser) -> None:
        task = await self._load_for_write(task_id, user, "delete")
        await self.tasks.delete(task)
        await self.tasks.commit()
        self._cache_remove(task_id)
        logger.info(f"Task {task_id} deleted by {user.username}")
        await self._notify("task_deleted", task_id)
