# auth.py — Authentication for the task board
# Features:
# - bcrypt password hashing
# - HS256 JWT access tokens with JTI
# - One-time opaque refresh tokens held in an app-scoped store
# - Admin role granted to the configured ADMIN_EMAIL

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from models import User, UserRole
from repositories import UserRepository

logger = logging.getLogger("taskboard.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@taskcollab.com")
MIN_PASSWORD_LENGTH = 8

security = HTTPBearer()


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v


class UserLogin(BaseModel):
    username_or_email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    username: str
    email: str
    role: str


class CurrentUser(BaseModel):
    id: str
    name: str
    username: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


# ============================================================
# REFRESH TOKEN STORE
# ============================================================

class RefreshTokenStore:
    """Opaque refresh tokens, valid once, created and torn down with the app"""

    def __init__(self, ttl: timedelta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)):
        self.ttl = ttl
        self._tokens: Dict[str, Tuple[str, datetime]] = {}

    def issue(self, user_id: str) -> str:
        token = secrets.token_urlsafe(48)
        self._tokens[token] = (user_id, datetime.now(timezone.utc) + self.ttl)
        return token

    def consume(self, token: str) -> str:
        """Invalidate the token and return its user id"""
        entry = self._tokens.pop(token, None)
        if entry is None:
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        user_id, expires_at = entry
        if expires_at < datetime.now(timezone.utc):
            raise HTTPException(status_code=401, detail="Refresh token expired")
        return user_id

    def clear(self):
        self._tokens.clear()

    def __len__(self) -> int:
        return len(self._tokens)


def get_refresh_store(request: Request) -> RefreshTokenStore:
    store = getattr(request.app.state, "refresh_tokens", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Token store unavailable")
    return store


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Password hashing, token issuance and account operations"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
            "iat": now,
            "type": "access",
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
        """Return the payload of a valid access token, else None"""
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except JWTError:
            return None
        if payload.get("type") != "access" or not payload.get("sub"):
            return None
        return payload

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    def token_claims(user: User) -> Dict[str, Any]:
        return {
            "sub": user.id,
            "username": user.username,
            "email": user.email,
            "role": user.role.value if isinstance(user.role, UserRole) else user.role,
        }

    @staticmethod
    def build_login_response(user: User, store: RefreshTokenStore) -> LoginResponse:
        claims = AuthService.token_claims(user)
        return LoginResponse(
            access_token=AuthService.create_access_token(claims),
            refresh_token=store.issue(user.id),
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user_id=user.id,
            username=user.username,
            email=user.email,
            role=claims["role"],
        )

    @staticmethod
    async def register_user(data: UserRegister, db: AsyncSession) -> User:
        users = UserRepository(db)
        if await users.exists(data.email, data.username):
            raise HTTPException(status_code=409, detail="Email or username already exists")

        role = UserRole.ADMIN if data.email.lower() == ADMIN_EMAIL.lower() else UserRole.USER
        user = User(
            name=data.name,
            username=data.username,
            email=data.email,
            password_hash=AuthService.hash_password(data.password),
            role=role,
        )
        user = await users.add(user)
        logger.info(f"Registered user {user.username} ({role.value})")
        return user

    @staticmethod
    async def authenticate_user(username_or_email: str, password: str, db: AsyncSession) -> Optional[User]:
        user = await UserRepository(db).find_by_email_or_username(username_or_email)
        if not user or not AuthService.verify_password(password, user.password_hash):
            return None
        return user


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    payload = AuthService.verify_token(credentials.credentials)

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await UserRepository(db).get_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return CurrentUser(
        id=user.id,
        name=user.name,
        username=user.username,
        email=user.email,
        role=user.role.value if isinstance(user.role, UserRole) else user.role,
    )
