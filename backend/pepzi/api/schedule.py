"""
Schedule API endpoints.

Mutations answer 409 with the colliding block ids when an edit overlaps
the schedule and ``force`` was not set. Clients roll back optimistic
drag-and-drop moves on that response.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from pepzi.api.deps import Allocation, Availability, BlockRepo, CurrentUser, Mutator, Progress
from pepzi.core.exceptions import ConflictError, NotFoundError, ValidationError
from pepzi.models.availability import AllocationRequest, AllocationResult, DayAvailability, StreakResponse
from pepzi.models.result import Err
from pepzi.models.schedule_block import (
    BacklogResponse,
    ConflictPair,
    ScheduleBlock,
    ScheduleBlockCreate,
    ScheduleBlockUpdate,
)
from pepzi.services.conflict_resolver import validate
from pepzi.services.persistence_guard import guarded
from pepzi.utils.datetime_utils import ensure_utc

router = APIRouter()

MAX_RANGE = timedelta(days=366)


def _conflict_exception(error: ConflictError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "message": error.message,
            "colliding_block_ids": [str(block_id) for block_id in error.colliding_block_ids],
            "constraint_conflicts": error.constraint_conflicts,
        },
    )


def _not_found(e: NotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _check_range(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = ensure_utc(start), ensure_utc(end)
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end must be after start",
        )
    if end - start > MAX_RANGE:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="range must not exceed 366 days",
        )
    return start, end


@router.get("", response_model=list[ScheduleBlock])
async def get_schedule(
    user: CurrentUser,
    repo: BlockRepo,
    start: datetime = Query(...),
    end: datetime = Query(...),
):
    """Blocks overlapping [start, end)."""
    start, end = _check_range(start, end)
    return await guarded(repo.list_in_range(user.id, start, end))


@router.post("/allocate", response_model=AllocationResult)
async def allocate_schedule(
    user: CurrentUser,
    service: Allocation,
    payload: Optional[AllocationRequest] = None,
):
    payload = payload or AllocationRequest()
    return await service.allocate(
        user.id,
        horizon_weeks=payload.horizon_weeks,
        horizon_start=payload.horizon_start,
    )


@router.post("/blocks", response_model=ScheduleBlock, status_code=status.HTTP_201_CREATED)
async def create_block(
    payload: ScheduleBlockCreate,
    user: CurrentUser,
    mutator: Mutator,
):
    try:
        result = await mutator.insert_block(user.id, payload)
    except NotFoundError as e:
        raise _not_found(e)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    if isinstance(result, Err):
        raise _conflict_exception(result.error)
    return result.value


@router.patch("/blocks/{block_id}", response_model=ScheduleBlock)
async def update_block(
    block_id: UUID,
    payload: ScheduleBlockUpdate,
    user: CurrentUser,
    mutator: Mutator,
):
    """Move, resize, complete, skip or annotate a block."""
    try:
        result = await mutator.update_block(user.id, block_id, payload)
    except NotFoundError as e:
        raise _not_found(e)
    if isinstance(result, Err):
        raise _conflict_exception(result.error)
    return result.value


@router.post("/blocks/{block_id}/push-to-next-week", response_model=ScheduleBlock)
async def push_block_to_next_week(
    block_id: UUID,
    user: CurrentUser,
    mutator: Mutator,
    force: bool = Query(False),
):
    try:
        result = await mutator.push_to_next_week(user.id, block_id, force=force)
    except NotFoundError as e:
        raise _not_found(e)
    if isinstance(result, Err):
        raise _conflict_exception(result.error)
    return result.value


@router.delete("/blocks/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_block(
    block_id: UUID,
    user: CurrentUser,
    mutator: Mutator,
):
    try:
        await mutator.delete_block(user.id, block_id)
    except NotFoundError as e:
        raise _not_found(e)


@router.get("/conflicts", response_model=list[ConflictPair])
async def list_conflicts(
    user: CurrentUser,
    repo: BlockRepo,
    start: datetime = Query(...),
    end: datetime = Query(...),
):
    """Overlapping pairs in the window, acknowledged or not."""
    start, end = _check_range(start, end)
    blocks = await guarded(repo.list_in_range(user.id, start, end))
    return validate(blocks, start, end)


@router.get("/free-intervals", response_model=DayAvailability)
async def get_free_intervals(
    user: CurrentUser,
    service: Availability,
    day: date = Query(..., alias="date"),
    include_blocks: bool = Query(True),
):
    return await service.get_day(user.id, day, include_blocks=include_blocks)


@router.get("/streak", response_model=StreakResponse)
async def get_streak(
    user: CurrentUser,
    service: Progress,
    as_of: Optional[date] = Query(None),
):
    as_of_day, days = await service.streak(user.id, as_of)
    return StreakResponse(user_id=user.id, as_of=as_of_day, streak_days=days)


@router.get("/backlog", response_model=BacklogResponse)
async def get_backlog(
    user: CurrentUser,
    service: Progress,
    today: Optional[date] = Query(None),
):
    """Overdue goal sessions, most urgent first."""
    return await service.backlog(user.id, today)
