# routers/users.py — User directory for assignment pickers
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from models import User
from repositories import UserRepository
from task_service import get_initials

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


# --- Schemas ---

class UserListItem(BaseModel):
    id: str
    name: str
    initials: str


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    initials: str
    created_at: str


def _user_to_out(u: User) -> UserOut:
    return UserOut(
        id=u.id,
        name=u.name,
        email=u.email,
        initials=get_initials(u.name),
        created_at=u.created_at.isoformat() if u.created_at else "",
    )


# --- Endpoints ---

@router.get("", response_model=List[UserListItem])
async def list_users(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """List all users"""
    users = await UserRepository(db).list_all()
    return [UserListItem(id=u.id, name=u.name, initials=get_initials(u.name)) for u in users]


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Get a specific user"""
    target = await UserRepository(db).get_by_id(user_id)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_to_out(target)
