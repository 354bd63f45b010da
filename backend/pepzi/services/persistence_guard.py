"""
Timeout wrapper for persistence calls made by the scheduling engine.

No call blocks indefinitely and nothing is retried here. Slow or
unreachable storage surfaces as PersistenceTimeoutError; retrying the whole
mutation is the caller's decision.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from sqlalchemy.exc import OperationalError

from pepzi.core.config import get_settings
from pepzi.core.exceptions import PersistenceTimeoutError
from pepzi.core.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar("T")


async def guarded(call: Awaitable[T], timeout: Optional[float] = None) -> T:
    """Await a repository call with the configured persistence timeout."""
    limit = timeout if timeout is not None else get_settings().PERSISTENCE_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(call, timeout=limit)
    except asyncio.TimeoutError as exc:
        logger.warning(f"Persistence call timed out after {limit}s")
        raise PersistenceTimeoutError(
            "Data store did not respond in time",
            details={"timeout_seconds": limit},
        ) from exc
    except OperationalError as exc:
        logger.warning(f"Persistence call failed: {exc}")
        raise PersistenceTimeoutError("Data store unavailable") from exc
