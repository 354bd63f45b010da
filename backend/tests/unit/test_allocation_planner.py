"""
Unit tests for the allocation planner.
"""

from collections import Counter
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from pepzi.core.exceptions import InvariantViolationError
from pepzi.models.constraints import FixedCommitment, UserConstraints, WorkHours
from pepzi.models.enums import BlockStatus, BlockType, CreatedBy, CriteriaType, GoalStatus, Weekday
from pepzi.models.goal import CompletionCriteria, Goal, GoalPlan, MicroGoal, PlanPhase
from pepzi.models.schedule_block import ScheduleBlock
from pepzi.services.allocation_planner import (
    AllocationService,
    PlannerConfig,
    allocate,
    session_length,
    weekly_target_minutes,
)
from pepzi.services.conflict_resolver import validate, validate_planned
from pepzi.services.user_locks import UserLockRegistry

MONDAY = date(2026, 3, 2)
MONDAY_MIDNIGHT = datetime(2026, 3, 2, 0, 0, tzinfo=timezone.utc)
SATURDAY_MIDNIGHT = datetime(2026, 3, 7, 0, 0, tzinfo=timezone.utc)
CREATED = datetime(2026, 2, 23, tzinfo=timezone.utc)
WEEKDAYS = [Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY]


def _goal(
    weekly_hours: float,
    session_minutes: int = 60,
    micro_goals: list[MicroGoal] | None = None,
    goal_id=None,
    created_at: datetime = CREATED,
    **plan_fields,
) -> Goal:
    goal_id = goal_id or uuid4()
    return Goal(
        id=goal_id,
        user_id="test_user",
        name="Learn guitar",
        plan=GoalPlan(weekly_hours=weekly_hours, session_minutes=session_minutes, **plan_fields),
        micro_goals=micro_goals or [],
        created_at=created_at,
        updated_at=created_at,
    )


def _micro_goal(goal_id, index: int, criteria_type: CriteriaType, target: int | None = None) -> MicroGoal:
    return MicroGoal(
        id=uuid4(),
        goal_id=goal_id,
        name=f"Step {index}",
        order_index=index,
        criteria=CompletionCriteria(type=criteria_type, target_value=target),
    )


def _evenings_only() -> UserConstraints:
    return UserConstraints(user_id="test_user", wake_time="21:00", sleep_time="23:00")


def _office_week() -> UserConstraints:
    return UserConstraints(
        user_id="test_user",
        work_schedule={day: WorkHours(start="09:00", end="17:00") for day in WEEKDAYS},
    )


def _run(goals, constraints, now, weeks=1, existing=None):
    return allocate(
        user_id="test_user",
        goals=goals,
        horizon_start=MONDAY,
        horizon_weeks=weeks,
        existing_blocks=existing or [],
        constraints=constraints,
        now=now,
        config=PlannerConfig(),
    )


def test_session_length_uses_plan_then_clamps():
    config = PlannerConfig(min_session_minutes=30, max_session_minutes=120)

    assert session_length(GoalPlan(weekly_hours=3, session_minutes=45), config) == 45
    assert session_length(GoalPlan(weekly_hours=3, session_minutes=240), config) == 120
    assert session_length(GoalPlan(weekly_hours=4, sessions_per_week=4), config) == 60
    # 3h without a session count: ceil(3 / 1.5) = 2 sessions of 90 minutes
    assert session_length(GoalPlan(weekly_hours=3), config) == 90
    assert session_length(GoalPlan(weekly_hours=0.25, sessions_per_week=1), config) == 30


def test_weekly_target_follows_phases():
    goal = _goal(
        5,
        phases=[
            PlanPhase(focus="Foundations", duration_weeks=2, weekly_hours=2),
            PlanPhase(focus="Build", duration_weeks=2),
        ],
    )
    origin = date(2026, 2, 23)

    assert weekly_target_minutes(goal, origin, "UTC") == 120
    assert weekly_target_minutes(goal, origin + timedelta(weeks=1), "UTC") == 120
    assert weekly_target_minutes(goal, origin + timedelta(weeks=2), "UTC") == 300
    assert weekly_target_minutes(goal, origin + timedelta(weeks=10), "UTC") == 300


def test_weekly_target_is_zero_after_target_date():
    goal = _goal(5).model_copy(update={"target_date": date(2026, 2, 28)})

    assert weekly_target_minutes(goal, MONDAY, "UTC") == 0


def test_places_weekly_hours_in_free_time():
    goal = _goal(3)

    result = _run([goal], _office_week(), MONDAY_MIDNIGHT)

    assert sum(block.duration_mins for block in result.placed) == 180
    assert result.shortfalls == []
    assert all(block.status == BlockStatus.PLANNED for block in result.placed)
    assert all(block.created_by == CreatedBy.PLANNER for block in result.placed)
    assert all(block.type == BlockType.GOAL_SESSION for block in result.placed)
    assert validate(result.placed) == []
    assert validate_planned(result.placed, [], _office_week()) == []


def test_sessions_never_land_in_work_hours():
    result = _run([_goal(3)], _office_week(), MONDAY_MIDNIGHT)

    for block in result.placed:
        if block.scheduled_start.weekday() < 5:
            start = block.scheduled_start.hour * 60 + block.scheduled_start.minute
            end = start + block.duration_mins
            assert end <= 9 * 60 or start >= 17 * 60


def _office_week_with_commute(wake_time: str = "07:00") -> UserConstraints:
    return UserConstraints(
        user_id="test_user",
        wake_time=wake_time,
        sleep_time="23:00",
        work_schedule={day: WorkHours(start="09:00", end="17:00") for day in WEEKDAYS},
        daily_commute_mins=30,
    )


def _outside_commute_and_work(block: ScheduleBlock) -> bool:
    start = block.scheduled_start.hour * 60 + block.scheduled_start.minute
    end = start + block.duration_mins
    return end <= 8 * 60 + 30 or start >= 17 * 60 + 30


def test_office_week_with_commute_places_all_sessions():
    constraints = _office_week_with_commute()

    result = _run([_goal(3)], constraints, MONDAY_MIDNIGHT)

    assert sum(block.duration_mins for block in result.placed) == 180
    assert len(result.placed) == 3
    assert result.shortfalls == []
    assert all(
        _outside_commute_and_work(block)
        for block in result.placed
        if block.scheduled_start.weekday() < 5
    )
    assert validate_planned(result.placed, [], constraints) == []


def test_weekday_sessions_skip_commute_slots():
    # Weekends are taken, and the 07:30-08:30 morning gap is too short for 90 minutes
    constraints = _office_week_with_commute(wake_time="07:30").model_copy(
        update={
            "fixed_commitments": [
                FixedCommitment(day=day, start="07:00", end="23:00", name="Away")
                for day in (Weekday.SATURDAY, Weekday.SUNDAY)
            ]
        }
    )

    result = _run([_goal(3, session_minutes=90)], constraints, MONDAY_MIDNIGHT)

    assert sorted(block.scheduled_start for block in result.placed) == [
        datetime(2026, 3, 2, 17, 30, tzinfo=timezone.utc),
        datetime(2026, 3, 3, 17, 30, tzinfo=timezone.utc),
    ]
    assert all(_outside_commute_and_work(block) for block in result.placed)
    assert result.shortfalls == []
    assert validate_planned(result.placed, [], constraints) == []


def test_sessions_spread_to_day_with_most_free_time():
    result = _run([_goal(3)], _office_week(), MONDAY_MIDNIGHT)

    starts = sorted(block.scheduled_start for block in result.placed)
    # Weekend days have 16h free against 8h on work days
    assert starts == [
        datetime(2026, 3, 7, 7, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 7, 8, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 8, 7, 0, tzinfo=timezone.utc),
    ]


def test_shortfall_when_week_has_less_room_than_needed():
    # Only Saturday and Sunday evenings remain: 4h for a 10h goal
    goal = _goal(10)

    result = _run([goal], _evenings_only(), SATURDAY_MIDNIGHT)

    assert len(result.placed) == 4
    assert sum(block.duration_mins for block in result.placed) == 240
    assert [(entry.goal_id, entry.minutes) for entry in result.shortfalls] == [(goal.id, 360)]
    assert [(entry.week_start, entry.minutes) for entry in result.week_shortfalls] == [(MONDAY, 360)]


def test_past_days_and_past_time_are_not_used():
    now = datetime(2026, 3, 4, 12, 30, tzinfo=timezone.utc)

    result = _run([_goal(3)], UserConstraints(user_id="test_user"), now)

    assert result.placed
    assert all(block.scheduled_start >= now for block in result.placed)


def test_backlog_carries_into_next_week():
    goal = _goal(6)

    result = _run([goal], _evenings_only(), SATURDAY_MIDNIGHT, weeks=2)

    first_week = [block for block in result.placed if block.scheduled_start.date() < date(2026, 3, 9)]
    second_week = [block for block in result.placed if block.scheduled_start.date() >= date(2026, 3, 9)]
    assert sum(block.duration_mins for block in first_week) == 240
    # 6h target plus 2h carried over
    assert sum(block.duration_mins for block in second_week) == 480
    assert result.shortfalls == []
    assert [(entry.week_start, entry.minutes) for entry in result.week_shortfalls] == [(MONDAY, 120)]


def test_rerun_over_unchanged_schedule_places_nothing():
    goal = _goal(3)
    first = _run([goal], UserConstraints(user_id="test_user"), MONDAY_MIDNIGHT)

    second = _run([goal], UserConstraints(user_id="test_user"), MONDAY_MIDNIGHT, existing=first.placed)

    assert len(first.placed) == 3
    assert second.placed == []
    assert second.shortfalls == []


def test_skipped_sessions_count_as_handled_for_the_week():
    goal = _goal(1)
    skipped = ScheduleBlock(
        id=uuid4(),
        user_id="test_user",
        type=BlockType.GOAL_SESSION,
        scheduled_start=datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc),
        duration_mins=60,
        status=BlockStatus.SKIPPED,
        goal_id=goal.id,
        created_at=CREATED,
        updated_at=CREATED,
    )

    result = _run([goal], UserConstraints(user_id="test_user"), MONDAY_MIDNIGHT, existing=[skipped])

    assert result.placed == []


def test_existing_blocks_are_avoided():
    goal = _goal(1)
    busy = [
        ScheduleBlock(
            id=uuid4(),
            user_id="test_user",
            type=BlockType.FIXED_COMMITMENT,
            scheduled_start=datetime(2026, 3, day, 21, 0, tzinfo=timezone.utc),
            duration_mins=60,
            created_at=CREATED,
            updated_at=CREATED,
        )
        for day in (7, 8)
    ]

    result = _run([goal], _evenings_only(), SATURDAY_MIDNIGHT, existing=busy)

    assert [block.scheduled_start for block in result.placed] == [
        datetime(2026, 3, 7, 22, 0, tzinfo=timezone.utc)
    ]
    assert validate(result.placed + busy) == []


def test_partial_session_is_at_least_minimum_length():
    goal = _goal(2, session_minutes=90)
    constraints = UserConstraints(user_id="test_user", wake_time="22:00", sleep_time="23:00")

    result = _run([goal], constraints, SATURDAY_MIDNIGHT)

    assert [block.duration_mins for block in result.placed] == [60, 60]
    assert result.shortfalls == []


def test_goal_furthest_behind_is_placed_first():
    behind = _goal(2, created_at=CREATED + timedelta(days=1))
    ahead = _goal(1)

    result = _run([ahead, behind], _evenings_only(), SATURDAY_MIDNIGHT)

    placed_by_goal = Counter(block.goal_id for block in result.placed)
    assert placed_by_goal[behind.id] == 2
    assert placed_by_goal[ahead.id] == 1
    first = min(result.placed, key=lambda block: block.scheduled_start)
    assert first.goal_id == behind.id


def test_inactive_goals_and_goals_without_plan_are_ignored():
    paused = _goal(3).model_copy(update={"status": GoalStatus.PAUSED})
    no_plan = _goal(3).model_copy(update={"plan": None})

    result = _run([paused, no_plan], UserConstraints(user_id="test_user"), MONDAY_MIDNIGHT)

    assert result.placed == []
    assert result.shortfalls == []


def test_sessions_link_to_open_micro_goals_in_order():
    goal_id = uuid4()
    first = _micro_goal(goal_id, 1, CriteriaType.SESSION_COUNT, 2)
    second = _micro_goal(goal_id, 2, CriteriaType.SESSION_COUNT, 5)
    goal = _goal(3, goal_id=goal_id, micro_goals=[first, second])

    result = _run([goal], _office_week(), MONDAY_MIDNIGHT)

    linked = Counter(block.micro_goal_id for block in result.placed)
    assert linked == Counter({first.id: 2, second.id: 1})


def test_completed_and_manual_micro_goals_are_not_linked():
    goal_id = uuid4()
    done = _micro_goal(goal_id, 1, CriteriaType.SESSION_COUNT, 1).model_copy(
        update={"completed_at": CREATED}
    )
    manual = _micro_goal(goal_id, 2, CriteriaType.MANUAL)
    later = _micro_goal(goal_id, 3, CriteriaType.SESSION_COUNT, 3)
    goal = _goal(1, goal_id=goal_id, micro_goals=[done, manual, later])

    result = _run([goal], _office_week(), MONDAY_MIDNIGHT)

    assert len(result.placed) == 1
    assert result.placed[0].goal_id == goal.id
    assert result.placed[0].micro_goal_id is None


def test_inverted_window_reported_as_issue():
    constraints = UserConstraints(user_id="test_user", wake_time="23:00", sleep_time="07:00")

    result = _run([_goal(1)], constraints, MONDAY_MIDNIGHT)

    assert result.placed == []
    assert {issue.code for issue in result.issues} == {"inverted_window"}
    assert len(result.issues) == 7


@pytest.mark.asyncio
async def test_allocation_service_commits_one_batch():
    goal = _goal(3)
    goal_repo = AsyncMock()
    goal_repo.list.return_value = [goal]
    block_repo = AsyncMock()
    block_repo.list_in_range.return_value = []
    block_repo.list_for_goal.return_value = []
    block_repo.insert_many.side_effect = lambda user_id, blocks: blocks
    constraints_repo = AsyncMock()
    constraints_repo.get.return_value = UserConstraints(user_id="test_user")
    service = AllocationService(goal_repo, block_repo, constraints_repo, UserLockRegistry(), PlannerConfig())

    result = await service.allocate("test_user", horizon_weeks=1, now=MONDAY_MIDNIGHT)

    assert len(result.placed) == 3
    block_repo.insert_many.assert_awaited_once()
    assert block_repo.insert_many.call_args.args[0] == "test_user"


@pytest.mark.asyncio
async def test_allocation_service_skips_insert_when_nothing_to_place():
    goal = _goal(1)
    existing = [
        ScheduleBlock(
            id=uuid4(),
            user_id="test_user",
            type=BlockType.GOAL_SESSION,
            scheduled_start=datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc),
            duration_mins=60,
            goal_id=goal.id,
            created_at=CREATED,
            updated_at=CREATED,
        )
    ]
    goal_repo = AsyncMock()
    goal_repo.list.return_value = [goal]
    block_repo = AsyncMock()
    block_repo.list_in_range.return_value = list(existing)
    block_repo.list_for_goal.return_value = list(existing)
    constraints_repo = AsyncMock()
    constraints_repo.get.return_value = None
    service = AllocationService(goal_repo, block_repo, constraints_repo, UserLockRegistry(), PlannerConfig())

    result = await service.allocate("test_user", horizon_weeks=1, now=MONDAY_MIDNIGHT)

    assert result.placed == []
    block_repo.insert_many.assert_not_awaited()


@pytest.mark.asyncio
async def test_allocation_service_rejects_invalid_planner_output(monkeypatch):
    goal = _goal(1)
    goal_repo = AsyncMock()
    goal_repo.list.return_value = [goal]
    block_repo = AsyncMock()
    block_repo.list_in_range.return_value = []
    block_repo.list_for_goal.return_value = []
    constraints_repo = AsyncMock()
    constraints_repo.get.return_value = UserConstraints(user_id="test_user")
    monkeypatch.setattr(
        "pepzi.services.allocation_planner.validate_planned",
        lambda proposed, existing, constraints: ["block overlaps sleep"],
    )
    service = AllocationService(goal_repo, block_repo, constraints_repo, UserLockRegistry(), PlannerConfig())

    with pytest.raises(InvariantViolationError):
        await service.allocate("test_user", horizon_weeks=1, now=MONDAY_MIDNIGHT)
    block_repo.insert_many.assert_not_awaited()
