"""
Unit tests for the SQLite goal and constraints repositories.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from pepzi.core.exceptions import NotFoundError
from pepzi.models.constraints import FixedCommitment, UserConstraintsUpdate, WorkHours
from pepzi.models.enums import CriteriaType, GoalStatus, Weekday
from pepzi.models.goal import (
    CompletionCriteria,
    GoalCreate,
    GoalPlan,
    GoalUpdate,
    MicroGoalCreate,
    PlanPhase,
)


def _goal_create(name: str = "Learn guitar") -> GoalCreate:
    return GoalCreate(
        name=name,
        category="music",
        plan=GoalPlan(
            weekly_hours=3,
            session_minutes=45,
            phases=[PlanPhase(focus="Chords", duration_weeks=4, weekly_hours=2)],
        ),
        micro_goals=[
            MicroGoalCreate(
                name="Learn five chords",
                criteria=CompletionCriteria(type=CriteriaType.SESSION_COUNT, target_value=4),
            ),
            MicroGoalCreate(name="Play a song"),
        ],
    )


@pytest.mark.asyncio
async def test_create_goal(goal_repo, test_user_id):
    goal = await goal_repo.create(test_user_id, _goal_create())

    assert goal.user_id == test_user_id
    assert goal.status == GoalStatus.ACTIVE
    assert goal.plan.phases[0].weekly_hours == 2
    assert [entry.order_index for entry in goal.micro_goals] == [1, 2]
    assert goal.micro_goals[0].criteria.target_value == 4
    assert goal.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_get_goal_scoped_to_user(goal_repo, test_user_id):
    goal = await goal_repo.create(test_user_id, _goal_create())

    assert (await goal_repo.get(test_user_id, goal.id)).name == "Learn guitar"
    assert await goal_repo.get("someone_else", goal.id) is None


@pytest.mark.asyncio
async def test_list_goals_by_status(goal_repo, test_user_id):
    first = await goal_repo.create(test_user_id, _goal_create("First"))
    second = await goal_repo.create(test_user_id, _goal_create("Second"))
    await goal_repo.update(test_user_id, second.id, GoalUpdate(status=GoalStatus.PAUSED))

    active = await goal_repo.list(test_user_id, status=GoalStatus.ACTIVE)
    everything = await goal_repo.list(test_user_id)

    assert [goal.id for goal in active] == [first.id]
    assert len(everything) == 2


@pytest.mark.asyncio
async def test_update_unknown_goal_raises(goal_repo, test_user_id):
    with pytest.raises(NotFoundError):
        await goal_repo.update(test_user_id, uuid4(), GoalUpdate(name="Nope"))


@pytest.mark.asyncio
async def test_update_plan(goal_repo, test_user_id):
    goal = await goal_repo.create(test_user_id, _goal_create())

    updated = await goal_repo.update(test_user_id, goal.id, GoalUpdate(plan=GoalPlan(weekly_hours=5)))

    assert updated.plan.weekly_hours == 5
    assert updated.plan.phases == []


@pytest.mark.asyncio
async def test_complete_micro_goal_is_idempotent(goal_repo, test_user_id):
    goal = await goal_repo.create(test_user_id, _goal_create())
    micro_goal_id = goal.micro_goals[0].id
    first_time = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

    await goal_repo.complete_micro_goal(test_user_id, goal.id, micro_goal_id, first_time)
    again = await goal_repo.complete_micro_goal(
        test_user_id, goal.id, micro_goal_id, datetime(2026, 3, 3, tzinfo=timezone.utc)
    )

    assert again.micro_goals[0].completed_at == first_time
    assert again.next_open_micro_goal().id == goal.micro_goals[1].id


@pytest.mark.asyncio
async def test_complete_unknown_micro_goal_raises(goal_repo, test_user_id):
    goal = await goal_repo.create(test_user_id, _goal_create())

    with pytest.raises(NotFoundError):
        await goal_repo.complete_micro_goal(
            test_user_id, goal.id, uuid4(), datetime(2026, 3, 2, tzinfo=timezone.utc)
        )


@pytest.mark.asyncio
async def test_list_user_ids_with_active_goals(goal_repo):
    await goal_repo.create("alice", _goal_create())
    paused = await goal_repo.create("bob", _goal_create())
    await goal_repo.update("bob", paused.id, GoalUpdate(status=GoalStatus.PAUSED))

    assert await goal_repo.list_user_ids_with_active_goals() == ["alice"]


@pytest.mark.asyncio
async def test_constraints_upsert_and_get(constraints_repo, test_user_id):
    assert await constraints_repo.get(test_user_id) is None

    saved = await constraints_repo.upsert(
        test_user_id,
        UserConstraintsUpdate(
            wake_time="06:30",
            sleep_time="00:00",
            work_schedule={Weekday.MONDAY: WorkHours(start="09:00", end="17:00"), Weekday.SUNDAY: None},
            daily_commute_mins=20,
            fixed_commitments=[
                FixedCommitment(day=Weekday.TUESDAY, start="19:00", end="20:30", name="Choir")
            ],
            timezone="Europe/Berlin",
        ),
    )
    loaded = await constraints_repo.get(test_user_id)

    assert saved.user_id == test_user_id
    assert loaded.wake_time == "06:30"
    assert loaded.sleep_time == "00:00"
    assert loaded.work_schedule[Weekday.MONDAY].end == "17:00"
    assert loaded.work_schedule[Weekday.SUNDAY] is None
    assert loaded.fixed_commitments[0].name == "Choir"
    assert loaded.timezone == "Europe/Berlin"
    assert await constraints_repo.list_user_ids() == [test_user_id]


@pytest.mark.asyncio
async def test_constraints_upsert_replaces_existing(constraints_repo, test_user_id):
    await constraints_repo.upsert(test_user_id, UserConstraintsUpdate(daily_commute_mins=30))

    updated = await constraints_repo.upsert(test_user_id, UserConstraintsUpdate())

    assert updated.daily_commute_mins == 0
    assert await constraints_repo.list_user_ids() == [test_user_id]
