"""
Unit tests for the persistence timeout guard and per-user locks.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from pepzi.core.exceptions import PersistenceTimeoutError
from pepzi.services.persistence_guard import guarded
from pepzi.services.user_locks import UserLockRegistry


async def _value(value):
    return value


async def _slow():
    await asyncio.sleep(1)


async def _unavailable():
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


@pytest.mark.asyncio
async def test_guarded_returns_result():
    assert await guarded(_value(42)) == 42


@pytest.mark.asyncio
async def test_guarded_times_out():
    with pytest.raises(PersistenceTimeoutError) as exc_info:
        await guarded(_slow(), timeout=0.01)

    assert exc_info.value.details == {"timeout_seconds": 0.01}


@pytest.mark.asyncio
async def test_guarded_maps_operational_error():
    with pytest.raises(PersistenceTimeoutError):
        await guarded(_unavailable())


@pytest.mark.asyncio
async def test_user_lock_serializes_same_user():
    locks = UserLockRegistry()
    order: list[str] = []

    async def writer(name: str):
        async with locks.hold("test_user"):
            order.append(f"{name}:start")
            await asyncio.sleep(0.01)
            order.append(f"{name}:end")

    await asyncio.gather(writer("a"), writer("b"))

    assert order == ["a:start", "a:end", "b:start", "b:end"]
    assert locks.is_locked("test_user") is False


@pytest.mark.asyncio
async def test_user_locks_are_independent_per_user():
    locks = UserLockRegistry()

    async with locks.hold("alice"):
        assert locks.is_locked("alice")
        assert not locks.is_locked("bob")
