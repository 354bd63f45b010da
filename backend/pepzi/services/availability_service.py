"""
Availability model.

Computes the free intervals of a single local calendar day from the user's
constraints: the wake/sleep window minus work, commute and fixed
commitments. Every query builds a fresh snapshot; nothing is cached because
constraints can change between calls.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pepzi.core.config import get_settings
from pepzi.core.exceptions import InvalidConstraintsError
from pepzi.core.logger import setup_logger
from pepzi.interfaces.constraints_repository import IConstraintsRepository
from pepzi.interfaces.goal_repository import IGoalRepository
from pepzi.interfaces.schedule_block_repository import IScheduleBlockRepository
from pepzi.models.availability import (
    BusyInterval,
    ConstraintIssue,
    DayAvailability,
    FeasibilityReport,
    FreeInterval,
    WeekdayAvailability,
)
from pepzi.models.constraints import UserConstraints, default_constraints
from pepzi.models.enums import OCCUPYING_STATUSES, GoalStatus, Weekday
from pepzi.models.schedule_block import ScheduleBlock
from pepzi.services.persistence_guard import guarded
from pepzi.utils.datetime_utils import (
    MINUTES_PER_DAY,
    format_minutes,
    get_user_today,
    local_day_start,
    local_minutes_to_utc,
    parse_time_to_minutes,
    to_local_datetime,
    week_start,
)

logger = setup_logger(__name__)

# Free hours kept in reserve before a week counts as feasible
FEASIBILITY_BUFFER_HOURS = 2.0


@dataclass
class TimeInterval:
    start_minutes: int
    end_minutes: int

    @property
    def length(self) -> int:
        return self.end_minutes - self.start_minutes


def merge_intervals(intervals: Iterable[TimeInterval]) -> list[TimeInterval]:
    """Union of intervals, sorted ascending. Touching intervals are joined."""
    ordered = sorted(
        (entry for entry in intervals if entry.end_minutes > entry.start_minutes),
        key=lambda entry: entry.start_minutes,
    )
    merged: list[TimeInterval] = []
    for interval in ordered:
        if merged and interval.start_minutes <= merged[-1].end_minutes:
            merged[-1].end_minutes = max(merged[-1].end_minutes, interval.end_minutes)
        else:
            merged.append(TimeInterval(interval.start_minutes, interval.end_minutes))
    return merged


def subtract_intervals(base: list[TimeInterval], remove: Iterable[TimeInterval]) -> list[TimeInterval]:
    """Interval difference. Each removal splits a piece into zero, one or two pieces."""
    intervals = base
    for block in remove:
        next_intervals: list[TimeInterval] = []
        for interval in intervals:
            if block.end_minutes <= interval.start_minutes or block.start_minutes >= interval.end_minutes:
                next_intervals.append(interval)
                continue
            if block.start_minutes > interval.start_minutes:
                next_intervals.append(TimeInterval(interval.start_minutes, block.start_minutes))
            if block.end_minutes < interval.end_minutes:
                next_intervals.append(TimeInterval(block.end_minutes, interval.end_minutes))
        intervals = next_intervals
    return [interval for interval in intervals if interval.end_minutes > interval.start_minutes]


def clip_intervals(intervals: list[TimeInterval], start_minutes: int) -> list[TimeInterval]:
    clipped: list[TimeInterval] = []
    for interval in intervals:
        if interval.end_minutes <= start_minutes:
            continue
        clipped.append(TimeInterval(max(interval.start_minutes, start_minutes), interval.end_minutes))
    return clipped


def validate_timezone(timezone: str) -> None:
    """Raise InvalidConstraintsError for names the tz database does not know."""
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidConstraintsError(f"Unknown timezone {timezone}") from exc


def resolve_day_window(constraints: UserConstraints) -> tuple[int, int, Optional[str]]:
    """
    Resolve the wake/sleep window to minutes.

    A sleep time of 00:00 means midnight at the end of the day, unless wake
    is 00:00 too: equal times are always a zero-length window. Returns an
    issue message when the window is empty or inverted.
    """
    wake = parse_time_to_minutes(constraints.wake_time)
    sleep = parse_time_to_minutes(constraints.sleep_time)
    if wake is None or sleep is None:
        return 0, 0, f"Unparseable wake/sleep window {constraints.wake_time}-{constraints.sleep_time}"
    if sleep == wake:
        return wake, sleep, f"Wake and sleep time are both {constraints.wake_time}"
    if sleep == 0:
        sleep = MINUTES_PER_DAY
    if sleep <= wake:
        return wake, sleep, (
            f"Sleep time {constraints.sleep_time} is not after wake time {constraints.wake_time}"
        )
    return wake, sleep, None


def build_busy_intervals(
    day: date,
    constraints: UserConstraints,
) -> tuple[list[BusyInterval], list[ConstraintIssue]]:
    """
    Constraint-derived busy time for one day, labelled by source.

    Time outside the wake/sleep window is labelled "sleep". Commute is only
    materialized on days with work, directly before and after it.
    """
    busy: list[BusyInterval] = []
    issues: list[ConstraintIssue] = []
    wake, sleep, window_issue = resolve_day_window(constraints)
    if window_issue:
        issues.append(ConstraintIssue(date=day, code="inverted_window", message=window_issue))
        busy.append(BusyInterval(start_minutes=0, end_minutes=MINUTES_PER_DAY, label="sleep"))
        return busy, issues

    if wake > 0:
        busy.append(BusyInterval(start_minutes=0, end_minutes=wake, label="sleep"))
    if sleep < MINUTES_PER_DAY:
        busy.append(BusyInterval(start_minutes=sleep, end_minutes=MINUTES_PER_DAY, label="sleep"))

    weekday = Weekday.from_index(day.weekday())
    work = constraints.work_schedule.get(weekday)
    if work is not None:
        work_start = parse_time_to_minutes(work.start)
        work_end = parse_time_to_minutes(work.end)
        if work_start is None or work_end is None or work_end <= work_start:
            issues.append(
                ConstraintIssue(
                    date=day,
                    code="invalid_work_hours",
                    message=f"Work hours {work.start}-{work.end} on {weekday.value} are ignored",
                )
            )
        else:
            busy.append(BusyInterval(start_minutes=work_start, end_minutes=work_end, label="work"))
            commute = constraints.daily_commute_mins
            if commute > 0:
                busy.append(
                    BusyInterval(
                        start_minutes=max(0, work_start - commute),
                        end_minutes=work_start,
                        label="commute",
                    )
                )
                busy.append(
                    BusyInterval(
                        start_minutes=work_end,
                        end_minutes=min(MINUTES_PER_DAY, work_end + commute),
                        label="commute",
                    )
                )

    for commitment in constraints.fixed_commitments:
        if commitment.day != weekday:
            continue
        start = parse_time_to_minutes(commitment.start)
        end = parse_time_to_minutes(commitment.end)
        if start is None or end is None or end <= start:
            issues.append(
                ConstraintIssue(
                    date=day,
                    code="invalid_commitment",
                    message=f"Commitment '{commitment.name}' {commitment.start}-{commitment.end} is ignored",
                )
            )
            continue
        busy.append(
            BusyInterval(
                start_minutes=start,
                end_minutes=end,
                label=f"commitment:{commitment.name}" if commitment.name else "commitment",
            )
        )

    busy.sort(key=lambda entry: (entry.start_minutes, entry.end_minutes))
    return [entry for entry in busy if entry.end_minutes > entry.start_minutes], issues


def free_time_intervals(day: date, constraints: UserConstraints) -> tuple[list[TimeInterval], list[ConstraintIssue]]:
    """Free intervals in local minutes, before any schedule blocks are subtracted."""
    busy, issues = build_busy_intervals(day, constraints)
    wake, sleep, window_issue = resolve_day_window(constraints)
    if window_issue:
        return [], issues
    remove = merge_intervals(TimeInterval(entry.start_minutes, entry.end_minutes) for entry in busy)
    return subtract_intervals([TimeInterval(wake, sleep)], remove), issues


def block_intervals_for_day(
    blocks: Iterable[ScheduleBlock],
    day: date,
    timezone: str,
) -> list[TimeInterval]:
    """Occupying blocks projected onto a local day as minute intervals."""
    day_start = local_day_start(day, timezone)
    day_end = day_start + timedelta(days=1)
    intervals: list[TimeInterval] = []
    for block in blocks:
        if block.status not in OCCUPYING_STATUSES:
            continue
        start = to_local_datetime(block.scheduled_start, timezone)
        end = to_local_datetime(block.scheduled_end, timezone)
        if end <= day_start or start >= day_end:
            continue
        start_minutes = max(0, _minutes_between(day_start, start))
        end_minutes = min(MINUTES_PER_DAY, _minutes_between(day_start, end))
        intervals.append(TimeInterval(start_minutes, end_minutes))
    return merge_intervals(intervals)


def _minutes_between(day_start: datetime, value: datetime) -> int:
    # Wall-clock difference so DST days still map onto 0..1440
    naive_start = day_start.replace(tzinfo=None)
    naive_value = value.replace(tzinfo=None)
    return math.floor((naive_value - naive_start).total_seconds() / 60)


def to_free_intervals(day: date, intervals: list[TimeInterval], timezone: str) -> list[FreeInterval]:
    return [
        FreeInterval(
            start=local_minutes_to_utc(day, interval.start_minutes, timezone),
            end=local_minutes_to_utc(day, interval.end_minutes, timezone),
            start_minutes=interval.start_minutes,
            end_minutes=interval.end_minutes,
        )
        for interval in intervals
    ]


def free_intervals(
    day: date,
    constraints: UserConstraints,
    blocks: Optional[Iterable[ScheduleBlock]] = None,
) -> DayAvailability:
    """
    Free intervals for one local calendar day.

    Sorted ascending and non-overlapping. Occupying blocks, when given, are
    subtracted as well. Invalid constraints produce issues, never exceptions.
    """
    intervals, issues = free_time_intervals(day, constraints)
    if blocks is not None:
        intervals = subtract_intervals(intervals, block_intervals_for_day(blocks, day, constraints.timezone))
    busy, _ = build_busy_intervals(day, constraints)
    return DayAvailability(
        date=day,
        timezone=constraints.timezone,
        free_intervals=to_free_intervals(day, intervals, constraints.timezone),
        busy_intervals=busy,
        issues=issues,
    )


def session_constraint_collisions(block: ScheduleBlock, constraints: UserConstraints) -> list[str]:
    """Labels of constraint-derived busy time a block would sit on."""
    timezone = constraints.timezone
    first_day = to_local_datetime(block.scheduled_start, timezone).date()
    last_day = to_local_datetime(block.scheduled_end - timedelta(minutes=1), timezone).date()
    labels: list[str] = []
    day = first_day
    while day <= last_day:
        projected = block_intervals_for_day([block], day, timezone)
        busy, _ = build_busy_intervals(day, constraints)
        for interval in projected:
            for entry in busy:
                if interval.start_minutes < entry.end_minutes and entry.start_minutes < interval.end_minutes:
                    label = (
                        f"{entry.label} {day.isoformat()} "
                        f"{format_minutes(entry.start_minutes)}-{format_minutes(entry.end_minutes)}"
                    )
                    if label not in labels:
                        labels.append(label)
        day += timedelta(days=1)
    return labels


class AvailabilityService:
    """Availability queries backed by the constraint and block repositories."""

    def __init__(
        self,
        constraints_repo: IConstraintsRepository,
        block_repo: IScheduleBlockRepository,
        goal_repo: Optional[IGoalRepository] = None,
    ):
        self._constraints_repo = constraints_repo
        self._block_repo = block_repo
        self._goal_repo = goal_repo

    async def get_constraints(self, user_id: str) -> UserConstraints:
        constraints = await guarded(self._constraints_repo.get(user_id))
        if constraints:
            return constraints
        return default_constraints(user_id, get_settings().DEFAULT_TIMEZONE)

    async def get_day(self, user_id: str, day: date, include_blocks: bool = True) -> DayAvailability:
        constraints = await self.get_constraints(user_id)
        blocks = None
        if include_blocks:
            start = local_day_start(day, constraints.timezone)
            blocks = await guarded(
                self._block_repo.list_in_range(
                    user_id,
                    start,
                    start + timedelta(days=1),
                    statuses=OCCUPYING_STATUSES,
                )
            )
        return free_intervals(day, constraints, blocks)

    async def feasibility(self, user_id: str, week_of: Optional[date] = None) -> FeasibilityReport:
        """Compare a week's free hours with the weekly hours active goals need."""
        constraints = await self.get_constraints(user_id)
        monday = week_start(week_of or get_user_today(constraints.timezone))

        by_weekday: list[WeekdayAvailability] = []
        issues: list[ConstraintIssue] = []
        total_free = 0
        for offset in range(7):
            day = monday + timedelta(days=offset)
            intervals, day_issues = free_time_intervals(day, constraints)
            minutes = sum(interval.length for interval in intervals)
            total_free += minutes
            issues.extend(day_issues)
            by_weekday.append(
                WeekdayAvailability(weekday=Weekday.from_index(offset).value, free_minutes=minutes)
            )

        hours_needed = 0.0
        if self._goal_repo is not None:
            goals = await guarded(self._goal_repo.list(user_id, status=GoalStatus.ACTIVE))
            hours_needed = sum(goal.plan.weekly_hours for goal in goals if goal.plan)

        free_hours = round(total_free / 60, 1)
        buffer_hours = round(free_hours - hours_needed, 1)
        is_feasible = buffer_hours >= FEASIBILITY_BUFFER_HOURS
        suggestion = None
        if not is_feasible:
            if hours_needed > free_hours:
                suggestion = (
                    f"Active goals need {hours_needed:g}h per week but only {free_hours:g}h are free. "
                    "Pause a goal or lower its weekly hours."
                )
            else:
                suggestion = (
                    f"Only {buffer_hours:g}h of slack remain each week. "
                    "Consider reducing weekly hours to leave room for rest."
                )
        logger.info(
            f"Feasibility for {user_id} week {monday}: free={free_hours}h needed={hours_needed}h"
        )
        return FeasibilityReport(
            week_start=monday,
            by_weekday=by_weekday,
            free_hours=free_hours,
            hours_needed=round(hours_needed, 1),
            buffer_hours=buffer_hours,
            is_feasible=is_feasible,
            suggestion=suggestion,
            issues=issues,
        )
