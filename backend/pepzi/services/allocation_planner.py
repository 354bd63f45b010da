"""
Allocation planner.

Distributes goal sessions into free time across a multi-week horizon.

Per week, goals are placed greedily: the goal furthest behind (largest
carried backlog, then most minutes still needed) claims time first. Each
session goes to the day with the most free time left, ties broken by the
earlier date, and takes the earliest interval of that day that fits.
Unplaceable minutes are carried to the next week and finally reported as
shortfalls. Infeasibility never raises.

Re-running over an unchanged schedule places nothing new: minutes already
covered by a goal's sessions in a week count against that week's target.
"""

from __future__ import annotations

import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID, uuid4

from pepzi.core.config import get_settings
from pepzi.core.exceptions import InvariantViolationError
from pepzi.core.logger import setup_logger
from pepzi.interfaces.constraints_repository import IConstraintsRepository
from pepzi.interfaces.goal_repository import IGoalRepository
from pepzi.interfaces.schedule_block_repository import IScheduleBlockRepository
from pepzi.models.availability import AllocationResult, ConstraintIssue, Shortfall, WeekShortfall
from pepzi.models.constraints import UserConstraints, default_constraints
from pepzi.models.enums import (
    OCCUPYING_STATUSES,
    SEQUENTIAL_CRITERIA,
    BlockStatus,
    BlockType,
    CreatedBy,
    CriteriaType,
    GoalStatus,
)
from pepzi.models.goal import Goal, GoalPlan, MicroGoal
from pepzi.models.schedule_block import ScheduleBlock
from pepzi.services.availability_service import (
    TimeInterval,
    block_intervals_for_day,
    clip_intervals,
    free_time_intervals,
    subtract_intervals,
)
from pepzi.services.conflict_resolver import validate_planned
from pepzi.services.persistence_guard import guarded
from pepzi.services.user_locks import UserLockRegistry
from pepzi.utils.datetime_utils import (
    local_day_start,
    local_minutes_to_utc,
    now_utc,
    to_local_datetime,
    week_start,
)

logger = setup_logger(__name__)

# Statuses whose minutes count as already handled for a (goal, week)
COVERING_STATUSES = frozenset({BlockStatus.PLANNED, BlockStatus.COMPLETED, BlockStatus.SKIPPED})


@dataclass
class PlannerConfig:
    min_session_minutes: int = 30
    max_session_minutes: int = 120
    buffer_minutes: int = 0

    @classmethod
    def from_settings(cls) -> "PlannerConfig":
        settings = get_settings()
        return cls(
            min_session_minutes=settings.MIN_SESSION_MINUTES,
            max_session_minutes=settings.MAX_SESSION_MINUTES,
            buffer_minutes=settings.SESSION_BUFFER_MINUTES,
        )


@dataclass
class _MicroGoalCursor:
    """Walks a goal's open micro-goals in order while sessions are placed."""

    micro_goals: list[MicroGoal]
    sessions: Counter = field(default_factory=Counter)
    minutes: Counter = field(default_factory=Counter)

    def current(self) -> Optional[MicroGoal]:
        for micro_goal in self.micro_goals:
            if micro_goal.is_completed:
                continue
            criteria = micro_goal.criteria
            if criteria is None or criteria.type not in SEQUENTIAL_CRITERIA:
                # Manual steps are not worked by sessions; the goal is referenced alone
                return None
            if self._covered(micro_goal) < criteria.required_amount():
                return micro_goal
        return None

    def _covered(self, micro_goal: MicroGoal) -> int:
        if micro_goal.criteria.type == CriteriaType.SESSION_COUNT:
            return self.sessions[micro_goal.id]
        return self.minutes[micro_goal.id]

    def record(self, micro_goal_id: UUID, minutes: int) -> None:
        self.sessions[micro_goal_id] += 1
        self.minutes[micro_goal_id] += minutes


def session_length(plan: GoalPlan, config: PlannerConfig) -> int:
    """Preferred session length in minutes, clamped to the configured bounds."""
    if plan.session_minutes:
        minutes = plan.session_minutes
    else:
        sessions_per_week = plan.sessions_per_week or max(1, math.ceil(plan.weekly_hours / 1.5))
        minutes = round(plan.weekly_hours * 60 / sessions_per_week)
    return max(config.min_session_minutes, min(config.max_session_minutes, minutes))


def weekly_target_minutes(goal: Goal, week: date, timezone: str) -> int:
    """
    Minutes the goal should get in the week starting ``week``.

    Phases are counted from the week the goal was created. Past the last
    phase, or when a phase has no pacing of its own, plan.weekly_hours applies.
    """
    plan = goal.plan
    if plan is None:
        return 0
    if goal.target_date and goal.target_date < week:
        return 0
    weekly_hours = plan.weekly_hours
    if plan.phases:
        origin = week_start(to_local_datetime(goal.created_at, timezone).date())
        elapsed_weeks = max(0, (week - origin).days // 7)
        boundary = 0
        for phase in plan.phases:
            boundary += phase.duration_weeks
            if elapsed_weeks < boundary:
                if phase.weekly_hours:
                    weekly_hours = phase.weekly_hours
                break
    return round(weekly_hours * 60)


def _block_local_date(block: ScheduleBlock, timezone: str) -> date:
    return to_local_datetime(block.scheduled_start, timezone).date()


def allocate(
    user_id: str,
    goals: list[Goal],
    horizon_start: date,
    horizon_weeks: int,
    existing_blocks: list[ScheduleBlock],
    constraints: UserConstraints,
    now: Optional[datetime] = None,
    config: Optional[PlannerConfig] = None,
) -> AllocationResult:
    """
    Propose planned goal sessions for the horizon.

    ``existing_blocks`` must contain every block in the horizon plus the
    goals' earlier sessions (for micro-goal coverage). Nothing is persisted.
    """
    config = config or PlannerConfig()
    now = now or now_utc()
    timezone = constraints.timezone
    local_now = to_local_datetime(now, timezone)
    today = local_now.date()
    now_minutes = local_now.hour * 60 + local_now.minute

    active_goals = [goal for goal in goals if goal.status == GoalStatus.ACTIVE and goal.plan is not None]
    first_week = week_start(horizon_start)
    weeks = [first_week + timedelta(weeks=offset) for offset in range(horizon_weeks)]
    horizon_end = weeks[-1] + timedelta(days=7) if weeks else first_week

    occupying = [block for block in existing_blocks if block.status in OCCUPYING_STATUSES]

    # Free minutes per day, consumed as sessions are placed
    day_free: dict[date, list[TimeInterval]] = {}
    issues: list[ConstraintIssue] = []

    def free_for(day: date) -> list[TimeInterval]:
        if day not in day_free:
            intervals, day_issues = free_time_intervals(day, constraints)
            issues.extend(day_issues)
            if day < today:
                intervals = []
            else:
                intervals = subtract_intervals(intervals, block_intervals_for_day(occupying, day, timezone))
                if day == today:
                    intervals = clip_intervals(intervals, now_minutes)
            day_free[day] = intervals
        return day_free[day]

    covered: Counter = Counter()
    cursors = {goal.id: _MicroGoalCursor(goal.micro_goals) for goal in active_goals}
    for block in existing_blocks:
        if block.type != BlockType.GOAL_SESSION or block.goal_id not in cursors:
            continue
        if block.micro_goal_id and block.status in OCCUPYING_STATUSES:
            cursors[block.goal_id].sessions[block.micro_goal_id] += 1
            cursors[block.goal_id].minutes[block.micro_goal_id] += block.duration_mins
        local_day = _block_local_date(block, timezone)
        if not (first_week <= local_day < horizon_end):
            continue
        if block.status in COVERING_STATUSES:
            covered[(block.goal_id, week_start(local_day))] += block.duration_mins

    backlog: dict[UUID, int] = defaultdict(int)
    placed: list[ScheduleBlock] = []
    week_shortfalls: list[WeekShortfall] = []
    created_at = now_utc()

    for week in weeks:
        days = [week + timedelta(days=offset) for offset in range(7)]
        remaining = {
            goal.id: max(
                0,
                weekly_target_minutes(goal, week, timezone) + backlog[goal.id] - covered[(goal.id, week)],
            )
            for goal in active_goals
        }
        order = sorted(
            active_goals,
            key=lambda goal: (-backlog[goal.id], -remaining[goal.id], goal.created_at, str(goal.id)),
        )
        for goal in order:
            needed = remaining[goal.id]
            preferred = session_length(goal.plan, config)
            usable_days = [day for day in days if goal.target_date is None or day <= goal.target_date]
            while needed > 0:
                chunk = min(preferred, needed)
                slot = _find_slot(usable_days, chunk, config, free_for)
                if slot is None:
                    break
                day, interval, length = slot
                cursor = cursors[goal.id]
                micro_goal = cursor.current()
                block = ScheduleBlock(
                    id=uuid4(),
                    user_id=user_id,
                    type=BlockType.GOAL_SESSION,
                    scheduled_start=local_minutes_to_utc(day, interval.start_minutes, timezone),
                    duration_mins=length,
                    status=BlockStatus.PLANNED,
                    goal_id=goal.id,
                    micro_goal_id=micro_goal.id if micro_goal else None,
                    created_by=CreatedBy.PLANNER,
                    created_at=created_at,
                    updated_at=created_at,
                )
                if micro_goal:
                    cursor.record(micro_goal.id, length)
                placed.append(block)
                consumed = TimeInterval(
                    interval.start_minutes,
                    interval.start_minutes + length + config.buffer_minutes,
                )
                day_free[day] = subtract_intervals(day_free[day], [consumed])
                needed -= length

            backlog[goal.id] = needed
            if needed > 0:
                week_shortfalls.append(WeekShortfall(goal_id=goal.id, week_start=week, minutes=needed))

    shortfalls = [
        Shortfall(goal_id=goal.id, minutes=backlog[goal.id])
        for goal in active_goals
        if backlog[goal.id] > 0
    ]
    placed.sort(key=lambda block: block.scheduled_start)
    return AllocationResult(
        placed=placed,
        shortfalls=shortfalls,
        week_shortfalls=week_shortfalls,
        issues=_dedupe_issues(issues),
    )


def _find_slot(
    days: list[date],
    chunk: int,
    config: PlannerConfig,
    free_for,
) -> Optional[tuple[date, TimeInterval, int]]:
    """
    Pick a day and interval for one session.

    A full-length slot anywhere in the week beats a partial one. A partial
    session is never shorter than the minimum length.
    """
    ranked = sorted(
        days,
        key=lambda day: (-sum(interval.length for interval in free_for(day)), day),
    )
    for day in ranked:
        for interval in free_for(day):
            if interval.length >= chunk:
                return day, interval, chunk
    minimum = config.min_session_minutes
    for day in ranked:
        for interval in free_for(day):
            if interval.length >= minimum:
                return day, interval, min(interval.length, chunk)
    return None


def _dedupe_issues(issues: list[ConstraintIssue]) -> list[ConstraintIssue]:
    seen: set[tuple] = set()
    unique: list[ConstraintIssue] = []
    for issue in sorted(issues, key=lambda entry: (entry.date, entry.code)):
        key = (issue.date, issue.code, issue.message)
        if key in seen:
            continue
        seen.add(key)
        unique.append(issue)
    return unique


class AllocationService:
    """Runs the planner for a user and commits its proposal as one batch."""

    def __init__(
        self,
        goal_repo: IGoalRepository,
        block_repo: IScheduleBlockRepository,
        constraints_repo: IConstraintsRepository,
        locks: UserLockRegistry,
        config: Optional[PlannerConfig] = None,
    ):
        self._goal_repo = goal_repo
        self._block_repo = block_repo
        self._constraints_repo = constraints_repo
        self._locks = locks
        self._config = config or PlannerConfig.from_settings()

    async def allocate(
        self,
        user_id: str,
        horizon_weeks: Optional[int] = None,
        horizon_start: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> AllocationResult:
        settings = get_settings()
        weeks = min(horizon_weeks or settings.DEFAULT_HORIZON_WEEKS, settings.MAX_HORIZON_WEEKS)
        now = now or now_utc()

        async with self._locks.hold(user_id):
            constraints = await guarded(self._constraints_repo.get(user_id))
            if constraints is None:
                constraints = default_constraints(user_id, settings.DEFAULT_TIMEZONE)
            start_day = horizon_start or to_local_datetime(now, constraints.timezone).date()
            first_week = week_start(start_day)
            window_start = local_day_start(first_week, constraints.timezone)
            window_end = local_day_start(first_week + timedelta(weeks=weeks), constraints.timezone)

            goals = await guarded(self._goal_repo.list(user_id, status=GoalStatus.ACTIVE))
            existing = await guarded(self._block_repo.list_in_range(user_id, window_start, window_end))
            known = {block.id for block in existing}
            for goal in goals:
                history = await guarded(self._block_repo.list_for_goal(user_id, goal.id))
                existing.extend(block for block in history if block.id not in known)
                known.update(block.id for block in history)

            result = allocate(
                user_id=user_id,
                goals=goals,
                horizon_start=start_day,
                horizon_weeks=weeks,
                existing_blocks=existing,
                constraints=constraints,
                now=now,
                config=self._config,
            )

            problems = validate_planned(
                result.placed,
                [block for block in existing if block.status in OCCUPYING_STATUSES],
                constraints,
            )
            if problems:
                logger.error(f"Planner produced an invalid schedule for {user_id}: {problems}")
                raise InvariantViolationError("Planner output failed validation", details=problems)

            if result.placed:
                # One batch: either the whole run is stored or none of it
                result.placed = await guarded(self._block_repo.insert_many(user_id, result.placed))

        for issue in result.issues:
            logger.warning(f"Skipped time on {issue.date} for {user_id}: {issue.message}")
        shortfall_minutes = sum(entry.minutes for entry in result.shortfalls)
        logger.info(
            f"Allocated {len(result.placed)} sessions for {user_id} over {weeks} weeks "
            f"(shortfall {shortfall_minutes} min, {len(result.issues)} constraint issues)"
        )
        return result
