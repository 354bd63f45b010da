"""
Unit tests for the SQLite schedule block repository.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from pepzi.models.enums import BlockStatus, BlockType, CreatedBy
from pepzi.models.schedule_block import ScheduleBlock

DAY = datetime(2030, 1, 7, tzinfo=timezone.utc)


def _make_block(user_id: str, start: datetime, minutes: int = 60, **fields) -> ScheduleBlock:
    return ScheduleBlock(
        id=uuid4(),
        user_id=user_id,
        type=fields.pop("type", BlockType.GOAL_SESSION),
        scheduled_start=start,
        duration_mins=minutes,
        created_by=CreatedBy.PLANNER,
        created_at=DAY,
        updated_at=DAY,
        **fields,
    )


@pytest.mark.asyncio
async def test_insert_many_round_trips_utc(block_repo, test_user_id):
    block = _make_block(test_user_id, DAY + timedelta(hours=9), notes="warm up")

    (saved,) = await block_repo.insert_many(test_user_id, [block])
    loaded = await block_repo.get(test_user_id, block.id)

    assert saved.id == block.id
    assert loaded.scheduled_start == DAY + timedelta(hours=9)
    assert loaded.scheduled_start.tzinfo is not None
    assert loaded.notes == "warm up"
    assert loaded.created_by == CreatedBy.PLANNER


@pytest.mark.asyncio
async def test_list_in_range_includes_blocks_crossing_the_start(block_repo, test_user_id):
    crossing = _make_block(test_user_id, DAY - timedelta(minutes=30))
    ended = _make_block(test_user_id, DAY - timedelta(hours=2))
    inside = _make_block(test_user_id, DAY + timedelta(hours=5))
    after = _make_block(test_user_id, DAY + timedelta(days=1))
    await block_repo.insert_many(test_user_id, [crossing, ended, inside, after])

    blocks = await block_repo.list_in_range(test_user_id, DAY, DAY + timedelta(days=1))

    assert [block.id for block in blocks] == [crossing.id, inside.id]


@pytest.mark.asyncio
async def test_list_in_range_filters_status_and_user(block_repo, test_user_id):
    planned = _make_block(test_user_id, DAY + timedelta(hours=1))
    skipped = _make_block(test_user_id, DAY + timedelta(hours=3), status=BlockStatus.SKIPPED)
    foreign = _make_block("someone_else", DAY + timedelta(hours=5))
    await block_repo.insert_many(test_user_id, [planned, skipped])
    await block_repo.insert_many("someone_else", [foreign])

    blocks = await block_repo.list_in_range(
        test_user_id, DAY, DAY + timedelta(days=1), statuses=[BlockStatus.PLANNED]
    )

    assert [block.id for block in blocks] == [planned.id]


@pytest.mark.asyncio
async def test_apply_changes_upserts_and_deletes_together(block_repo, test_user_id):
    first = _make_block(test_user_id, DAY + timedelta(hours=1))
    second = _make_block(test_user_id, DAY + timedelta(hours=3))
    await block_repo.insert_many(test_user_id, [first, second])
    new = _make_block(test_user_id, DAY + timedelta(hours=6))

    saved = await block_repo.apply_changes(
        test_user_id,
        [first.model_copy(update={"is_conflict": True}), new],
        delete_ids=[second.id],
    )

    assert {block.id for block in saved} == {first.id, new.id}
    assert (await block_repo.get(test_user_id, first.id)).is_conflict is True
    assert await block_repo.get(test_user_id, second.id) is None
    assert await block_repo.get(test_user_id, new.id) is not None


@pytest.mark.asyncio
async def test_list_by_status_and_for_goal(block_repo, test_user_id):
    goal_id = uuid4()
    done = _make_block(
        test_user_id,
        DAY + timedelta(hours=1),
        status=BlockStatus.COMPLETED,
        goal_id=goal_id,
        completed_at=DAY + timedelta(hours=2),
    )
    planned = _make_block(test_user_id, DAY + timedelta(hours=4), goal_id=goal_id)
    other = _make_block(test_user_id, DAY + timedelta(hours=6))
    await block_repo.insert_many(test_user_id, [done, planned, other])

    completed = await block_repo.list_by_status(test_user_id, BlockStatus.COMPLETED)
    for_goal = await block_repo.list_for_goal(test_user_id, goal_id)

    assert [block.id for block in completed] == [done.id]
    assert completed[0].completed_at == DAY + timedelta(hours=2)
    assert [block.id for block in for_goal] == [done.id, planned.id]


@pytest.mark.asyncio
async def test_list_future_planned_for_goal(block_repo, test_user_id):
    goal_id = uuid4()
    past = _make_block(test_user_id, DAY - timedelta(days=1), goal_id=goal_id)
    future = _make_block(test_user_id, DAY + timedelta(days=1), goal_id=goal_id)
    future_done = _make_block(
        test_user_id, DAY + timedelta(days=2), goal_id=goal_id, status=BlockStatus.COMPLETED
    )
    other_goal = _make_block(test_user_id, DAY + timedelta(days=1, hours=2), goal_id=uuid4())
    await block_repo.insert_many(test_user_id, [past, future, future_done, other_goal])

    found = await block_repo.list_future_planned_for_goal(test_user_id, goal_id, DAY)

    assert [block.id for block in found] == [future.id]


@pytest.mark.asyncio
async def test_list_overdue_sessions(block_repo, test_user_id):
    overdue = _make_block(test_user_id, DAY - timedelta(days=2))
    done = _make_block(test_user_id, DAY - timedelta(days=1), status=BlockStatus.COMPLETED)
    skipped = _make_block(test_user_id, DAY - timedelta(hours=5), status=BlockStatus.SKIPPED)
    commitment = _make_block(test_user_id, DAY - timedelta(hours=3), type=BlockType.FIXED_COMMITMENT)
    upcoming = _make_block(test_user_id, DAY + timedelta(hours=1))
    await block_repo.insert_many(test_user_id, [overdue, done, skipped, commitment, upcoming])

    found = await block_repo.list_overdue_sessions(test_user_id, DAY)

    assert [block.id for block in found] == [overdue.id]


@pytest.mark.asyncio
async def test_latest_planner_created_at(block_repo, test_user_id):
    assert await block_repo.latest_planner_created_at(test_user_id) is None

    older = _make_block(test_user_id, DAY).model_copy(update={"created_at": DAY - timedelta(days=7)})
    newer = _make_block(test_user_id, DAY + timedelta(hours=2))
    manual = _make_block(test_user_id, DAY + timedelta(hours=4)).model_copy(
        update={"created_by": CreatedBy.USER, "created_at": DAY + timedelta(days=1)}
    )
    await block_repo.insert_many(test_user_id, [older, newer, manual])

    assert await block_repo.latest_planner_created_at(test_user_id) == DAY
