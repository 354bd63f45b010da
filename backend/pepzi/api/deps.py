"""
Dependency injection for API endpoints.

This module provides FastAPI dependencies that inject the correct
infrastructure implementations based on environment configuration.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from pepzi.core.config import get_settings
from pepzi.interfaces.auth_provider import IAuthProvider, User
from pepzi.interfaces.constraints_repository import IConstraintsRepository
from pepzi.interfaces.goal_repository import IGoalRepository
from pepzi.interfaces.plan_provider import IPlanProvider
from pepzi.interfaces.schedule_block_repository import IScheduleBlockRepository
from pepzi.services.allocation_planner import AllocationService
from pepzi.services.availability_service import AvailabilityService
from pepzi.services.block_mutator import BlockMutator
from pepzi.services.goal_service import GoalService
from pepzi.services.progress_service import ProgressService
from pepzi.services.user_locks import UserLockRegistry


# ===========================================
# Repository Dependencies
# ===========================================


@lru_cache()
def get_goal_repository() -> IGoalRepository:
    """Get goal repository instance."""
    from pepzi.infrastructure.local.goal_repository import SqliteGoalRepository

    return SqliteGoalRepository()


@lru_cache()
def get_schedule_block_repository() -> IScheduleBlockRepository:
    """Get schedule block repository instance."""
    from pepzi.infrastructure.local.schedule_block_repository import SqliteScheduleBlockRepository

    return SqliteScheduleBlockRepository()


@lru_cache()
def get_constraints_repository() -> IConstraintsRepository:
    """Get user constraints repository instance."""
    from pepzi.infrastructure.local.constraints_repository import SqliteConstraintsRepository

    return SqliteConstraintsRepository()


@lru_cache()
def get_plan_provider() -> IPlanProvider:
    """Get plan provider instance."""
    settings = get_settings()
    if settings.PLAN_PROVIDER == "litellm":
        from pepzi.infrastructure.local.litellm_plan_provider import LiteLLMPlanProvider

        return LiteLLMPlanProvider()

    from pepzi.infrastructure.local.fixture_plan_provider import FixturePlanProvider

    return FixturePlanProvider()


@lru_cache()
def get_auth_provider() -> IAuthProvider:
    """Get auth provider instance."""
    settings = get_settings()
    if settings.AUTH_PROVIDER == "jwt":
        from pepzi.infrastructure.auth.jwt_auth import JwtAuthProvider

        return JwtAuthProvider(settings)

    from pepzi.infrastructure.local.mock_auth import MockAuthProvider

    return MockAuthProvider(enabled=True)


# ===========================================
# Service Dependencies
# ===========================================


@lru_cache()
def get_user_locks() -> UserLockRegistry:
    """Single registry so every writer of a user shares one lock."""
    return UserLockRegistry()


def get_availability_service() -> AvailabilityService:
    return AvailabilityService(
        constraints_repo=get_constraints_repository(),
        block_repo=get_schedule_block_repository(),
        goal_repo=get_goal_repository(),
    )


def get_allocation_service() -> AllocationService:
    return AllocationService(
        goal_repo=get_goal_repository(),
        block_repo=get_schedule_block_repository(),
        constraints_repo=get_constraints_repository(),
        locks=get_user_locks(),
    )


def get_block_mutator() -> BlockMutator:
    return BlockMutator(
        block_repo=get_schedule_block_repository(),
        goal_repo=get_goal_repository(),
        constraints_repo=get_constraints_repository(),
        locks=get_user_locks(),
    )


def get_progress_service() -> ProgressService:
    return ProgressService(
        goal_repo=get_goal_repository(),
        block_repo=get_schedule_block_repository(),
        constraints_repo=get_constraints_repository(),
    )


def get_goal_service() -> GoalService:
    return GoalService(
        goal_repo=get_goal_repository(),
        block_repo=get_schedule_block_repository(),
        plan_provider=get_plan_provider(),
        locks=get_user_locks(),
    )


# ===========================================
# User Authentication
# ===========================================


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    auth_provider: IAuthProvider = Depends(get_auth_provider),
) -> User:
    """
    Get current authenticated user.

    The user id from here is passed explicitly into every engine call.
    """
    if not auth_provider.is_enabled():
        return User(id="dev_user", email="dev@example.com", display_name="Developer")

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
        )

    # Extract token from "Bearer <token>"
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Invalid scheme")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
        )

    try:
        return await auth_provider.verify_token(token)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )


# ===========================================
# Type Aliases for Dependency Injection
# ===========================================

BlockRepo = Annotated[IScheduleBlockRepository, Depends(get_schedule_block_repository)]
ConstraintsRepo = Annotated[IConstraintsRepository, Depends(get_constraints_repository)]
Availability = Annotated[AvailabilityService, Depends(get_availability_service)]
Allocation = Annotated[AllocationService, Depends(get_allocation_service)]
Mutator = Annotated[BlockMutator, Depends(get_block_mutator)]
Progress = Annotated[ProgressService, Depends(get_progress_service)]
Goals = Annotated[GoalService, Depends(get_goal_service)]
CurrentUser = Annotated[User, Depends(get_current_user)]
