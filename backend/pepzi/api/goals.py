"""
Goal API endpoints.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from pepzi.api.deps import CurrentUser, Goals, Progress
from pepzi.core.exceptions import NotFoundError, ValidationError
from pepzi.models.enums import GoalStatus
from pepzi.models.goal import GoalCreate, GoalProgress, GoalSessionStats, GoalUpdate, GoalWithProgress
from pepzi.services.goal_service import with_progress

router = APIRouter()


@router.post("", response_model=GoalWithProgress, status_code=status.HTTP_201_CREATED)
async def create_goal(
    payload: GoalCreate,
    user: CurrentUser,
    service: Goals,
):
    """Create a goal. With generate_plan, the plan provider fills in the plan."""
    goal = await service.create_goal(user.id, payload)
    return with_progress(goal)


@router.get("", response_model=list[GoalWithProgress])
async def list_goals(
    user: CurrentUser,
    service: Goals,
    goal_status: Optional[GoalStatus] = Query(None, alias="status"),
):
    goals = await service.list_goals(user.id, status=goal_status)
    return [with_progress(goal) for goal in goals]


@router.get("/{goal_id}", response_model=GoalWithProgress)
async def get_goal(
    goal_id: UUID,
    user: CurrentUser,
    service: Goals,
):
    try:
        return with_progress(await service.get_goal(user.id, goal_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.patch("/{goal_id}", response_model=GoalWithProgress)
async def update_goal(
    goal_id: UUID,
    payload: GoalUpdate,
    user: CurrentUser,
    service: Goals,
):
    try:
        return with_progress(await service.update_goal(user.id, goal_id, payload))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{goal_id}/archive", response_model=GoalWithProgress)
async def archive_goal(
    goal_id: UUID,
    user: CurrentUser,
    service: Goals,
):
    """Soft-archive a goal and drop its future planned sessions."""
    try:
        return with_progress(await service.archive_goal(user.id, goal_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{goal_id}/regenerate-plan", response_model=GoalWithProgress)
async def regenerate_plan(
    goal_id: UUID,
    user: CurrentUser,
    service: Goals,
):
    try:
        return with_progress(await service.regenerate_plan(user.id, goal_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.post("/{goal_id}/micro-goals/{micro_goal_id}/complete", response_model=GoalWithProgress)
async def complete_micro_goal(
    goal_id: UUID,
    micro_goal_id: UUID,
    user: CurrentUser,
    service: Goals,
):
    try:
        return with_progress(await service.complete_micro_goal(user.id, goal_id, micro_goal_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{goal_id}/progress", response_model=GoalProgress)
async def get_goal_progress(
    goal_id: UUID,
    user: CurrentUser,
    service: Progress,
):
    try:
        return await service.recompute(user.id, goal_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{goal_id}/sessions", response_model=GoalSessionStats)
async def get_goal_session_stats(
    goal_id: UUID,
    user: CurrentUser,
    service: Progress,
):
    try:
        return await service.session_stats(user.id, goal_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
