"""
Shared fixtures: an in-memory SQLite database per test.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pepzi.infrastructure.local.constraints_repository import SqliteConstraintsRepository
from pepzi.infrastructure.local.database import Base
from pepzi.infrastructure.local.goal_repository import SqliteGoalRepository
from pepzi.infrastructure.local.schedule_block_repository import SqliteScheduleBlockRepository
from pepzi.services.user_locks import UserLockRegistry


@pytest.fixture
async def session_factory():
    # StaticPool keeps one connection so every session sees the same in-memory database
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def test_user_id():
    return "test_user"


@pytest.fixture
def block_repo(session_factory):
    return SqliteScheduleBlockRepository(session_factory=session_factory)


@pytest.fixture
def goal_repo(session_factory):
    return SqliteGoalRepository(session_factory=session_factory)


@pytest.fixture
def constraints_repo(session_factory):
    return SqliteConstraintsRepository(session_factory=session_factory)


@pytest.fixture
def locks():
    return UserLockRegistry()
