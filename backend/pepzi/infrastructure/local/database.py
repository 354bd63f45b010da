"""
SQLite database configuration and ORM models.

This module defines the SQLAlchemy ORM models and database initialization.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    JSON,
)
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from pepzi.core.config import get_settings
from pepzi.utils.datetime_utils import now_utc


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def _utcnow() -> datetime:
    return now_utc().replace(tzinfo=None)


# ===========================================
# ORM Models
# ===========================================


class GoalORM(Base):
    """Goal ORM model. The plan is stored as JSON."""

    __tablename__ = "goals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    category = Column(String(50), default="general")
    description = Column(Text, nullable=True)
    target_date = Column(Date, nullable=True)
    status = Column(String(20), default="active", index=True)
    plan_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class MicroGoalORM(Base):
    """Micro-goal ORM model."""

    __tablename__ = "micro_goals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    goal_id = Column(String(36), ForeignKey("goals.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    order_index = Column(Integer, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    criteria_json = Column(JSON, nullable=True)


class ScheduleBlockORM(Base):
    """Schedule block ORM model. Times are stored as naive UTC."""

    __tablename__ = "schedule_blocks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    goal_id = Column(String(36), nullable=True, index=True)
    micro_goal_id = Column(String(36), nullable=True)
    type = Column(String(30), nullable=False)
    scheduled_start = Column(DateTime, nullable=False, index=True)
    duration_mins = Column(Integer, nullable=False)
    status = Column(String(20), default="planned", index=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(10), default="user")
    is_conflict = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class UserConstraintsORM(Base):
    """One constraints row per user."""

    __tablename__ = "user_constraints"

    user_id = Column(String(255), primary_key=True)
    wake_time = Column(String(5), default="07:00")
    sleep_time = Column(String(5), default="23:00")
    work_schedule_json = Column(JSON, nullable=True, default=dict)
    daily_commute_mins = Column(Integer, default=0)
    fixed_commitments_json = Column(JSON, nullable=True, default=list)
    timezone = Column(String(64), default="UTC")
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


# ===========================================
# Database Session Management
# ===========================================

_engine = None


def get_engine():
    """Get the shared async engine instance."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(settings.DATABASE_URL, echo=False)
    return _engine


def get_session_factory():
    """Get async session factory."""
    return sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


async def init_db():
    """Initialize database tables."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db():
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
