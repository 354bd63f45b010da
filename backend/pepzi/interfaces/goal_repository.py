"""
Goal repository interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from pepzi.models.enums import GoalStatus
from pepzi.models.goal import Goal, GoalCreate, GoalUpdate, MicroGoalCreate


class IGoalRepository(ABC):
    """Goals with their ordered micro-goals."""

    @abstractmethod
    async def create(self, user_id: str, goal: GoalCreate) -> Goal:
        pass

    @abstractmethod
    async def get(self, user_id: str, goal_id: UUID) -> Optional[Goal]:
        pass

    @abstractmethod
    async def list(
        self,
        user_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        pass

    @abstractmethod
    async def update(self, user_id: str, goal_id: UUID, update: GoalUpdate) -> Goal:
        """Raises NotFoundError when the goal does not exist."""
        pass

    @abstractmethod
    async def replace_micro_goals(
        self,
        user_id: str,
        goal_id: UUID,
        micro_goals: list[MicroGoalCreate],
    ) -> Goal:
        """Replace open micro-goals, keeping completed ones first in order."""
        pass

    @abstractmethod
    async def complete_micro_goal(
        self,
        user_id: str,
        goal_id: UUID,
        micro_goal_id: UUID,
        completed_at: datetime,
    ) -> Goal:
        """Set the completion timestamp. Idempotent for completed micro-goals."""
        pass

    @abstractmethod
    async def list_user_ids_with_active_goals(self) -> list[str]:
        pass
