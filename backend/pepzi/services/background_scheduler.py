"""
Background scheduler service for periodic jobs.

Keeps every user's allocation horizon rolling forward once a week.
Uses APScheduler for in-process scheduling without external dependencies.
Allocation is idempotent, so a late or repeated run places nothing twice.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from pepzi.core.config import get_settings
from pepzi.core.exceptions import PepziError
from pepzi.core.logger import logger
from pepzi.interfaces.goal_repository import IGoalRepository
from pepzi.interfaces.schedule_block_repository import IScheduleBlockRepository
from pepzi.services.allocation_planner import AllocationService
from pepzi.utils.datetime_utils import now_utc

WEEKDAY_CODES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class BackgroundScheduler:
    """
    Background scheduler for periodic jobs.

    Features:
    - Weekly rolling allocation for all users with active goals
    - Startup check for a missed weekly run
    - Staggered processing to avoid load spikes
    """

    def __init__(
        self,
        goal_repo: IGoalRepository,
        block_repo: IScheduleBlockRepository,
        allocation_service: AllocationService,
        stagger_seconds: float = 0.5,
    ):
        self._goal_repo = goal_repo
        self._block_repo = block_repo
        self._allocation_service = allocation_service
        self._stagger_seconds = stagger_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._missed_task: Optional[asyncio.Task] = None

    @staticmethod
    def _calculate_last_run_slot(now: Optional[datetime] = None, day: str = "sun", hour: int = 18) -> datetime:
        """
        Most recent scheduled slot (weekday ``day`` at ``hour``:00 UTC) at or before ``now``.
        """
        if now is None:
            now = now_utc()
        target_weekday = WEEKDAY_CODES.index(day)
        days_since = (now.weekday() - target_weekday) % 7
        slot = (now - timedelta(days=days_since)).replace(hour=hour, minute=0, second=0, microsecond=0)
        if slot > now:
            slot -= timedelta(days=7)
        return slot

    async def start(self):
        """Start the scheduler and check for a missed run."""
        settings = get_settings()

        if settings.is_test:
            logger.info("Background scheduler disabled in test environment")
            return
        if not settings.ROLLING_ALLOCATION_ENABLED:
            logger.info("Rolling allocation disabled")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_rolling_allocation,
            CronTrigger(
                day_of_week=settings.ROLLING_ALLOCATION_DAY,
                hour=settings.ROLLING_ALLOCATION_HOUR,
                minute=0,
            ),
            id="weekly_rolling_allocation",
            name="Weekly Rolling Allocation",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "Background scheduler started:\n"
            f"  - Rolling allocation: {settings.ROLLING_ALLOCATION_DAY} "
            f"{settings.ROLLING_ALLOCATION_HOUR:02d}:00"
        )

        self._missed_task = asyncio.create_task(self._check_and_run_missed_background())

    async def stop(self):
        """Stop the scheduler."""
        if self._missed_task and not self._missed_task.done():
            self._missed_task.cancel()
        self._missed_task = None
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Background scheduler stopped")

    async def _check_and_run_missed_background(self):
        try:
            await self._check_and_run_missed()
        except Exception as e:
            logger.error(f"Missed rolling allocation check failed: {e}")

    async def _check_and_run_missed(self, now: Optional[datetime] = None) -> dict[str, int]:
        """
        Allocate for users whose newest planner-made block predates the last slot.

        Users who never had a planner run count as missed.
        """
        settings = get_settings()
        slot = self._calculate_last_run_slot(
            now, day=settings.ROLLING_ALLOCATION_DAY, hour=settings.ROLLING_ALLOCATION_HOUR
        )
        missed: list[str] = []
        for user_id in await self._goal_repo.list_user_ids_with_active_goals():
            latest = await self._block_repo.latest_planner_created_at(user_id)
            if latest is None or latest < slot:
                missed.append(user_id)
        if not missed:
            logger.info("No missed rolling allocation detected")
            return {}
        logger.info(f"Running missed rolling allocation for {len(missed)} users")
        return await self._allocate_users(missed)

    async def run_rolling_allocation(self) -> dict[str, int]:
        """Allocate the default horizon for every user with active goals."""
        user_ids = await self._goal_repo.list_user_ids_with_active_goals()
        return await self._allocate_users(user_ids)

    async def _allocate_users(self, user_ids: list[str]) -> dict[str, int]:
        placed_by_user: dict[str, int] = {}
        for user_id in user_ids:
            try:
                result = await self._allocation_service.allocate(user_id)
                placed_by_user[user_id] = len(result.placed)
            except PepziError as e:
                # One user's failure must not stop the others
                logger.error(f"Rolling allocation failed for {user_id}: {e.message}")
            await asyncio.sleep(self._stagger_seconds)
        logger.info(
            f"Rolling allocation finished for {len(user_ids)} users, "
            f"{sum(placed_by_user.values())} sessions placed"
        )
        return placed_by_user


_scheduler_instance: Optional[BackgroundScheduler] = None


async def start_background_scheduler():
    global _scheduler_instance
    from pepzi.api.deps import (
        get_allocation_service,
        get_goal_repository,
        get_schedule_block_repository,
    )

    _scheduler_instance = BackgroundScheduler(
        goal_repo=get_goal_repository(),
        block_repo=get_schedule_block_repository(),
        allocation_service=get_allocation_service(),
    )
    await _scheduler_instance.start()


async def stop_background_scheduler():
    global _scheduler_instance
    if _scheduler_instance:
        await _scheduler_instance.stop()
        _scheduler_instance = None
