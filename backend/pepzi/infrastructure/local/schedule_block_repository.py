"""
SQLite implementation of schedule block repository.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import and_, delete, func, select

from pepzi.infrastructure.local.database import ScheduleBlockORM, get_session_factory
from pepzi.interfaces.schedule_block_repository import IScheduleBlockRepository
from pepzi.models.enums import BlockStatus, BlockType, CreatedBy
from pepzi.models.schedule_block import ScheduleBlock
from pepzi.utils.datetime_utils import MINUTES_PER_DAY, ensure_utc, now_utc


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


class SqliteScheduleBlockRepository(IScheduleBlockRepository):
    """SQLite implementation of schedule block repository."""

    def __init__(self, session_factory=None):
        """
        Initialize repository.

        Args:
            session_factory: Optional session factory (for testing)
        """
        self._session_factory = session_factory or get_session_factory()

    def _orm_to_model(self, orm: ScheduleBlockORM) -> ScheduleBlock:
        return ScheduleBlock(
            id=UUID(orm.id),
            user_id=orm.user_id,
            type=BlockType(orm.type),
            scheduled_start=ensure_utc(orm.scheduled_start),
            duration_mins=orm.duration_mins,
            status=BlockStatus(orm.status),
            goal_id=UUID(orm.goal_id) if orm.goal_id else None,
            micro_goal_id=UUID(orm.micro_goal_id) if orm.micro_goal_id else None,
            notes=orm.notes,
            created_by=CreatedBy(orm.created_by),
            is_conflict=bool(orm.is_conflict),
            completed_at=ensure_utc(orm.completed_at),
            created_at=ensure_utc(orm.created_at),
            updated_at=ensure_utc(orm.updated_at),
        )

    def _apply_to_orm(self, orm: ScheduleBlockORM, block: ScheduleBlock) -> None:
        orm.goal_id = str(block.goal_id) if block.goal_id else None
        orm.micro_goal_id = str(block.micro_goal_id) if block.micro_goal_id else None
        orm.type = block.type.value
        orm.scheduled_start = _to_db(block.scheduled_start)
        orm.duration_mins = block.duration_mins
        orm.status = block.status.value
        orm.notes = block.notes
        orm.created_by = block.created_by.value
        orm.is_conflict = block.is_conflict
        orm.completed_at = _to_db(block.completed_at)
        orm.updated_at = _to_db(now_utc())

    async def get(self, user_id: str, block_id: UUID) -> Optional[ScheduleBlock]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScheduleBlockORM).where(
                    ScheduleBlockORM.id == str(block_id),
                    ScheduleBlockORM.user_id == user_id,
                )
            )
            orm = result.scalar_one_or_none()
            return self._orm_to_model(orm) if orm else None

    async def list_in_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        statuses: Optional[Iterable[BlockStatus]] = None,
    ) -> list[ScheduleBlock]:
        # A block is at most one day long, so starts up to a day earlier can still overlap
        lookback = _to_db(start) - timedelta(minutes=MINUTES_PER_DAY)
        async with self._session_factory() as session:
            query = select(ScheduleBlockORM).where(
                and_(
                    ScheduleBlockORM.user_id == user_id,
                    ScheduleBlockORM.scheduled_start >= lookback,
                    ScheduleBlockORM.scheduled_start < _to_db(end),
                )
            )
            if statuses is not None:
                query = query.where(ScheduleBlockORM.status.in_([s.value for s in statuses]))
            result = await session.execute(query.order_by(ScheduleBlockORM.scheduled_start.asc()))
            blocks = [self._orm_to_model(orm) for orm in result.scalars().all()]
        start_utc = ensure_utc(start)
        return [block for block in blocks if block.scheduled_end > start_utc]

    async def list_for_goal(self, user_id: str, goal_id: UUID) -> list[ScheduleBlock]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScheduleBlockORM)
                .where(
                    ScheduleBlockORM.user_id == user_id,
                    ScheduleBlockORM.goal_id == str(goal_id),
                )
                .order_by(ScheduleBlockORM.scheduled_start.asc())
            )
            return [self._orm_to_model(orm) for orm in result.scalars().all()]

    async def list_by_status(self, user_id: str, status: BlockStatus) -> list[ScheduleBlock]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScheduleBlockORM)
                .where(
                    ScheduleBlockORM.user_id == user_id,
                    ScheduleBlockORM.status == status.value,
                )
                .order_by(ScheduleBlockORM.scheduled_start.asc())
            )
            return [self._orm_to_model(orm) for orm in result.scalars().all()]

    async def insert_many(self, user_id: str, blocks: list[ScheduleBlock]) -> list[ScheduleBlock]:
        if not blocks:
            return []
        async with self._session_factory() as session:
            orms: list[ScheduleBlockORM] = []
            for block in blocks:
                orm = ScheduleBlockORM(
                    id=str(block.id),
                    user_id=user_id,
                    created_at=_to_db(block.created_at),
                )
                self._apply_to_orm(orm, block)
                session.add(orm)
                orms.append(orm)
            # Single commit: either every block of the run lands or none does
            await session.commit()
            return [self._orm_to_model(orm) for orm in orms]

    async def apply_changes(
        self,
        user_id: str,
        upserts: list[ScheduleBlock],
        delete_ids: Optional[list[UUID]] = None,
    ) -> list[ScheduleBlock]:
        async with self._session_factory() as session:
            saved: list[ScheduleBlockORM] = []
            for block in upserts:
                result = await session.execute(
                    select(ScheduleBlockORM).where(
                        ScheduleBlockORM.id == str(block.id),
                        ScheduleBlockORM.user_id == user_id,
                    )
                )
                orm = result.scalar_one_or_none()
                if orm is None:
                    orm = ScheduleBlockORM(
                        id=str(block.id),
                        user_id=user_id,
                        created_at=_to_db(block.created_at),
                    )
                    session.add(orm)
                self._apply_to_orm(orm, block)
                saved.append(orm)
            if delete_ids:
                await session.execute(
                    delete(ScheduleBlockORM).where(
                        ScheduleBlockORM.user_id == user_id,
                        ScheduleBlockORM.id.in_([str(block_id) for block_id in delete_ids]),
                    )
                )
            await session.commit()
            return [self._orm_to_model(orm) for orm in saved]

    async def list_future_planned_for_goal(
        self, user_id: str, goal_id: UUID, after: datetime
    ) -> list[ScheduleBlock]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScheduleBlockORM)
                .where(
                    ScheduleBlockORM.user_id == user_id,
                    ScheduleBlockORM.goal_id == str(goal_id),
                    ScheduleBlockORM.status == BlockStatus.PLANNED.value,
                    ScheduleBlockORM.scheduled_start >= _to_db(after),
                )
                .order_by(ScheduleBlockORM.scheduled_start.asc())
            )
            return [self._orm_to_model(orm) for orm in result.scalars().all()]

    async def list_overdue_sessions(self, user_id: str, before: datetime) -> list[ScheduleBlock]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScheduleBlockORM)
                .where(
                    ScheduleBlockORM.user_id == user_id,
                    ScheduleBlockORM.type == BlockType.GOAL_SESSION.value,
                    ScheduleBlockORM.status == BlockStatus.PLANNED.value,
                    ScheduleBlockORM.scheduled_start < _to_db(before),
                )
                .order_by(ScheduleBlockORM.scheduled_start.asc())
            )
            return [self._orm_to_model(orm) for orm in result.scalars().all()]

    async def latest_planner_created_at(self, user_id: str) -> Optional[datetime]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.max(ScheduleBlockORM.created_at)).where(
                    ScheduleBlockORM.user_id == user_id,
                    ScheduleBlockORM.created_by == CreatedBy.PLANNER.value,
                )
            )
            return ensure_utc(result.scalar_one_or_none())
