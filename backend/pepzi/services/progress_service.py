"""
Progress and streak aggregation.

Everything here is derived on demand from goals and blocks and is never
stored, so it cannot drift from the underlying records.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from pepzi.core.config import get_settings
from pepzi.core.exceptions import NotFoundError
from pepzi.interfaces.constraints_repository import IConstraintsRepository
from pepzi.interfaces.goal_repository import IGoalRepository
from pepzi.interfaces.schedule_block_repository import IScheduleBlockRepository
from pepzi.models.enums import BlockStatus, GoalStatus
from pepzi.models.goal import Goal, GoalProgress, GoalSessionStats
from pepzi.models.schedule_block import BacklogResponse, BacklogSession, ScheduleBlock
from pepzi.services.persistence_guard import guarded
from pepzi.utils.datetime_utils import (
    ensure_utc,
    get_user_today,
    local_day_start,
    now_utc,
    to_local_datetime,
)

DEFAULT_TOTAL_WEEKS = 12
# Days before an overdue session slips when its goal has nothing else planned
DEFAULT_SLIP_DAYS = 7


def compute_progress(goal: Goal) -> GoalProgress:
    total = len(goal.micro_goals)
    completed = sum(1 for micro_goal in goal.micro_goals if micro_goal.is_completed)
    percent = round(completed / total * 100) if total else 0
    return GoalProgress(
        goal_id=goal.id,
        percent_complete=percent,
        completed_micro_goals=completed,
        total_micro_goals=total,
    )


def compute_streak(
    blocks: Iterable[ScheduleBlock],
    active_goal_ids: set[UUID],
    as_of: date,
    timezone: str,
) -> int:
    """
    Consecutive local days, walking back from ``as_of``, with at least one
    completed block linked to an active goal. Stops at the first empty day.
    """
    days = {
        to_local_datetime(block.scheduled_start, timezone).date()
        for block in blocks
        if block.status == BlockStatus.COMPLETED and block.goal_id in active_goal_ids
    }
    streak = 0
    day = as_of
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def _plan_total_weeks(goal: Goal) -> int:
    plan = goal.plan
    if plan is None:
        return DEFAULT_TOTAL_WEEKS
    if plan.phases:
        return sum(phase.duration_weeks for phase in plan.phases)
    if plan.total_estimated_hours:
        return max(1, math.ceil(plan.total_estimated_hours / plan.weekly_hours))
    return DEFAULT_TOTAL_WEEKS


def compute_session_stats(
    goal: Goal,
    blocks: Iterable[ScheduleBlock],
    now: Optional[datetime] = None,
) -> GoalSessionStats:
    """Hours logged against the plan's estimate and pace relative to it."""
    now = ensure_utc(now or now_utc())
    blocks = list(blocks)
    completed = [block for block in blocks if block.status == BlockStatus.COMPLETED]
    skipped = sum(1 for block in blocks if block.status == BlockStatus.SKIPPED)
    upcoming = sum(
        1 for block in blocks if block.status == BlockStatus.PLANNED and block.scheduled_start > now
    )
    minutes_logged = sum(block.duration_mins for block in completed)
    hours_logged = round(minutes_logged / 60, 2)

    stats = GoalSessionStats(
        goal_id=goal.id,
        completed_sessions=len(completed),
        skipped_sessions=skipped,
        upcoming_sessions=upcoming,
        minutes_logged=minutes_logged,
        hours_logged=hours_logged,
    )
    plan = goal.plan
    if plan is None or not plan.total_estimated_hours:
        return stats

    total_weeks = _plan_total_weeks(goal)
    hours_percent = round(hours_logged / plan.total_estimated_hours * 100)
    weeks_since_start = max(1, (now - ensure_utc(goal.created_at)).days // 7)
    expected_percent = min(100, round(weeks_since_start / total_weeks * 100))
    days_ahead = round((hours_percent - expected_percent) * total_weeks * 7 / 100)
    if days_ahead > 0:
        message = f"{days_ahead} day{'s' if days_ahead > 1 else ''} ahead"
    elif days_ahead < 0:
        message = f"{abs(days_ahead)} day{'s' if days_ahead < -1 else ''} behind"
    else:
        message = "On track"

    stats.total_estimated_hours = plan.total_estimated_hours
    stats.hours_percent = hours_percent
    stats.days_ahead = days_ahead
    stats.pace_message = message
    return stats


def compute_backlog(
    overdue: Iterable[ScheduleBlock],
    upcoming: Iterable[ScheduleBlock],
    goal_names: dict[UUID, str],
    today: date,
    timezone: str,
) -> BacklogResponse:
    """
    Rank overdue sessions by urgency.

    A session slips once the next planned session of its goal starts, so the
    soonest slip comes first, then the longest overdue.
    """
    midnight = local_day_start(today, timezone)
    next_start: dict[UUID, datetime] = {}
    for block in upcoming:
        if block.goal_id is None or block.status != BlockStatus.PLANNED:
            continue
        start = ensure_utc(block.scheduled_start)
        if start < midnight:
            continue
        if block.goal_id not in next_start or start < next_start[block.goal_id]:
            next_start[block.goal_id] = start

    sessions: list[BacklogSession] = []
    for block in overdue:
        upcoming_start = next_start.get(block.goal_id) if block.goal_id else None
        if upcoming_start is None:
            days_until_slip = DEFAULT_SLIP_DAYS
        else:
            days_until_slip = math.ceil((upcoming_start - midnight) / timedelta(days=1))
        sessions.append(
            BacklogSession(
                block=block,
                goal_name=goal_names.get(block.goal_id) if block.goal_id else None,
                days_overdue=(today - to_local_datetime(block.scheduled_start, timezone).date()).days,
                next_session_start=upcoming_start,
                days_until_slip=days_until_slip,
            )
        )
    sessions.sort(
        key=lambda entry: (entry.days_until_slip, -entry.days_overdue, entry.block.scheduled_start)
    )
    return BacklogResponse(sessions=sessions, count=len(sessions))


class ProgressService:
    def __init__(
        self,
        goal_repo: IGoalRepository,
        block_repo: IScheduleBlockRepository,
        constraints_repo: IConstraintsRepository,
    ):
        self._goal_repo = goal_repo
        self._block_repo = block_repo
        self._constraints_repo = constraints_repo

    async def _get_goal(self, user_id: str, goal_id: UUID) -> Goal:
        goal = await guarded(self._goal_repo.get(user_id, goal_id))
        if not goal:
            raise NotFoundError(f"Goal {goal_id} not found")
        return goal

    async def recompute(self, user_id: str, goal_id: UUID) -> GoalProgress:
        return compute_progress(await self._get_goal(user_id, goal_id))

    async def session_stats(self, user_id: str, goal_id: UUID) -> GoalSessionStats:
        goal = await self._get_goal(user_id, goal_id)
        blocks = await guarded(self._block_repo.list_for_goal(user_id, goal_id))
        return compute_session_stats(goal, blocks)

    async def _timezone(self, user_id: str) -> str:
        constraints = await guarded(self._constraints_repo.get(user_id))
        return constraints.timezone if constraints else get_settings().DEFAULT_TIMEZONE

    async def streak(self, user_id: str, as_of: Optional[date] = None) -> tuple[date, int]:
        timezone = await self._timezone(user_id)
        as_of = as_of or get_user_today(timezone)
        goals = await guarded(self._goal_repo.list(user_id, status=GoalStatus.ACTIVE))
        blocks = await guarded(self._block_repo.list_by_status(user_id, BlockStatus.COMPLETED))
        return as_of, compute_streak(blocks, {goal.id for goal in goals}, as_of, timezone)

    async def backlog(self, user_id: str, today: Optional[date] = None) -> BacklogResponse:
        """Planned goal sessions from before the user's local today."""
        timezone = await self._timezone(user_id)
        today = today or get_user_today(timezone)
        midnight = local_day_start(today, timezone)
        overdue = await guarded(self._block_repo.list_overdue_sessions(user_id, midnight))
        goal_ids = {block.goal_id for block in overdue if block.goal_id}
        goals = await guarded(self._goal_repo.list(user_id))
        upcoming: list[ScheduleBlock] = []
        for goal_id in goal_ids:
            upcoming.extend(
                await guarded(self._block_repo.list_future_planned_for_goal(user_id, goal_id, midnight))
            )
        names = {goal.id: goal.name for goal in goals}
        return compute_backlog(overdue, upcoming, names, today, timezone)
