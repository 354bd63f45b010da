"""
Schedule block repository interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from pepzi.models.enums import BlockStatus
from pepzi.models.schedule_block import ScheduleBlock


class IScheduleBlockRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str, block_id: UUID) -> Optional[ScheduleBlock]:
        pass

    @abstractmethod
    async def list_in_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[Iterable[BlockStatus]] = None,
    ) -> list[ScheduleBlock]:
        """Blocks overlapping [start, end), ordered by start."""
        pass

    @abstractmethod
    async def list_for_goal(self, user_id: str, goal_id: UUID) -> list[ScheduleBlock]:
        pass

    @abstractmethod
    async def list_by_status(self, user_id: str, status: BlockStatus) -> list[ScheduleBlock]:
        pass

    @abstractmethod
    async def insert_many(self, user_id: str, blocks: list[ScheduleBlock]) -> list[ScheduleBlock]:
        """Insert all blocks in one transaction, or none of them."""
        pass

    @abstractmethod
    async def apply_changes(
        self,
        user_id: str,
        upserts: list[ScheduleBlock],
        delete_ids: Optional[list[UUID]] = None,
    ) -> list[ScheduleBlock]:
        """Upsert and delete in one transaction."""
        pass

    @abstractmethod
    async def list_future_planned_for_goal(
        self, user_id: str, goal_id: UUID, after: datetime
    ) -> list[ScheduleBlock]:
        """Planned blocks of a goal starting at or after ``after``."""
        pass

    @abstractmethod
    async def latest_planner_created_at(self, user_id: str) -> Optional[datetime]:
        """Creation time of the newest planner-made block, if any."""
        pass

    @abstractmethod
    async def list_overdue_sessions(self, user_id: str, before: datetime) -> list[ScheduleBlock]:
        """Goal sessions still planned that started before ``before``."""
        pass
