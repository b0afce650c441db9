# models.py — Database models for the task collaboration board
# - UUID string primary keys
# - Two-tier role system (Admin, User)
# - Tasks are archived in place, never deleted by the archiver

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, Boolean, Enum as SQLEnum, ForeignKey, Text, Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, PyEnum):
    ADMIN = "Admin"
    USER = "User"


class TaskStatus(str, PyEnum):
    TODO = "ToDo"
    DEVELOPMENT = "Development"
    REVIEW = "Review"
    MERGE = "Merge"
    DONE = "Done"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False, default="")
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False, default="")
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    created_tasks = relationship("TaskItem", back_populates="created_by", foreign_keys="TaskItem.created_by_id")
    assigned_tasks = relationship("TaskItem", back_populates="assigned_to", foreign_keys="TaskItem.assigned_to_id")


# ============================================================
# TASKS
# ============================================================

class TaskItem(Base):
    """Task card on the board"""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(TaskStatus), nullable=False, default=TaskStatus.TODO, index=True)

    # Assignment
    created_by_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)

    # Timestamps. updated_at has no onupdate hook: only user edits bump it,
    # archival must leave it alone.
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Archival
    is_archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    created_by = relationship("User", back_populates="created_tasks", foreign_keys=[created_by_id])
    assigned_to = relationship("User", back_populates="assigned_tasks", foreign_keys=[assigned_to_id])

    __table_args__ = (
        Index("idx_task_archive_scan", "status", "is_archived", "updated_at"),
    )
