"""
User constraints API endpoints.
"""

from __future__ import annotations

from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Query, status

from pepzi.api.deps import Availability, ConstraintsRepo, CurrentUser
from pepzi.core.config import get_settings
from pepzi.core.exceptions import InvalidConstraintsError
from pepzi.models.availability import FeasibilityReport
from pepzi.models.constraints import UserConstraints, UserConstraintsUpdate, default_constraints
from pepzi.services.availability_service import validate_timezone
from pepzi.services.persistence_guard import guarded

router = APIRouter()


@router.get("", response_model=UserConstraints)
async def get_constraints(
    user: CurrentUser,
    repo: ConstraintsRepo,
):
    constraints = await guarded(repo.get(user.id))
    if constraints:
        return constraints
    return default_constraints(user.id, get_settings().DEFAULT_TIMEZONE)


@router.put("", response_model=UserConstraints)
async def update_constraints(
    payload: UserConstraintsUpdate,
    user: CurrentUser,
    repo: ConstraintsRepo,
):
    """
    Replace the user's constraints.

    Inverted windows are stored and reported per day by availability
    queries; only malformed values are rejected here.
    """
    try:
        validate_timezone(payload.timezone)
    except InvalidConstraintsError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return await guarded(repo.upsert(user.id, payload))


@router.get("/feasibility", response_model=FeasibilityReport)
async def get_feasibility(
    user: CurrentUser,
    service: Availability,
    week_of: Optional[date] = Query(None),
):
    return await service.feasibility(user.id, week_of)
