# routers/tasks.py — Task board endpoints with cached single-task reads
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from cache import TaskCache, get_task_cache
from database import get_db_session
from notifications import BoardNotifier, get_notifier
from task_service import TaskService, TaskOut, TaskListOut

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])


# --- Schemas ---

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: str = "ToDo"
    assigned_to_id: Optional[str] = None


class TaskUpdate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: str
    assigned_to_id: Optional[str] = None


def get_task_service(
    db: AsyncSession = Depends(get_db_session),
    cache: Optional[TaskCache] = Depends(get_task_cache),
    notifier: Optional[BoardNotifier] = Depends(get_notifier),
) -> TaskService:
    return TaskService(db, cache, notifier)


# ============================================================
# LIST / BOARD
# ============================================================

@router.get("", response_model=TaskListOut)
async def list_tasks(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    status: Optional[str] = None,
    assigned_to: Optional[str] = None,
    created_by: Optional[str] = None,
    search: Optional[str] = None,
    include_archived: bool = False,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """List tasks with optional filtering and pagination"""
    if include_archived and not user.is_admin:
        raise HTTPException(status_code=403, detail="Only admins can list archived tasks")
    return await service.list_tasks(
        page, page_size, status, assigned_to, created_by, search, include_archived,
    )


@router.get("/board")
async def get_board(
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Active tasks grouped by status column"""
    return {"columns": await service.get_board()}


@router.get("/my", response_model=TaskListOut)
async def list_my_tasks(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Tasks created by the current user"""
    return await service.list_my_tasks(user.id, page, page_size)


@router.get("/assigned", response_model=TaskListOut)
async def list_assigned_tasks(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Tasks assigned to the current user"""
    return await service.list_assigned_tasks(user.id, page, page_size)


# ============================================================
# SINGLE TASK
# ============================================================

@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get a single task. X-Cache reports whether it came from the read cache."""
    task, cache_hit = await service.get_task(task_id)
    if task is None:
        raise HTTPException(
            status_code=404, detail="Task not found", headers={"X-Cache": "MISS"},
        )
    response.headers["X-Cache"] = "HIT" if cache_hit else "MISS"
    return task


@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Create a new task"""
    return await service.create_task(
        user, data.title, data.description, data.status, data.assigned_to_id,
    )


@router.put("/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: str,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Update a task (creator or admin only)"""
    return await service.update_task(
        task_id, user, data.title, data.description, data.status, data.assigned_to_id,
    )


@router.delete("/{task_id}", status_code=204)
async def delete_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Delete a task (creator or admin only)"""
    await service.delete_task(task_id, user)
    return Response(status_code=204)
