# routers/auth.py — Registration, login and token refresh
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, UserRegister, UserLogin, LoginResponse, RefreshRequest,
    RefreshTokenStore, get_current_user, get_refresh_store, CurrentUser,
)
from database import get_db_session
from repositories import UserRepository

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


@router.post("/register", response_model=LoginResponse, status_code=201)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
    store: RefreshTokenStore = Depends(get_refresh_store),
):
    """Register a new user account"""
    user = await AuthService.register_user(user_data, db)
    return AuthService.build_login_response(user, store)


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
    store: RefreshTokenStore = Depends(get_refresh_store),
):
    """Authenticate with username or email and receive tokens"""
    user = await AuthService.authenticate_user(
        credentials.username_or_email, credentials.password, db
    )
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return AuthService.build_login_response(user, store)


@router.post("/refresh", response_model=LoginResponse)
async def refresh_token(
    refresh_req: RefreshRequest,
    db: AsyncSession = Depends(get_db_session),
    store: RefreshTokenStore = Depends(get_refresh_store),
):
    """Exchange a refresh token (single use) for a new token pair"""
    user_id = store.consume(refresh_req.refresh_token)

    user = await UserRepository(db).get_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return AuthService.build_login_response(user, store)


@router.get("/me")
async def get_current_user_info(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Get current authenticated user information"""
    record = await UserRepository(db).get_by_id(user.id)
    return {
        "id": user.id,
        "name": user.name,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "created_at": record.created_at.isoformat() if record and record.created_at else None,
    }
