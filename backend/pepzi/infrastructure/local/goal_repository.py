"""
SQLite implementation of goal repository.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import delete, select

from pepzi.core.exceptions import NotFoundError
from pepzi.infrastructure.local.database import GoalORM, MicroGoalORM, get_session_factory
from pepzi.interfaces.goal_repository import IGoalRepository
from pepzi.models.enums import GoalStatus
from pepzi.models.goal import (
    CompletionCriteria,
    Goal,
    GoalCreate,
    GoalPlan,
    GoalUpdate,
    MicroGoal,
    MicroGoalCreate,
)
from pepzi.utils.datetime_utils import ensure_utc, now_utc


class SqliteGoalRepository(IGoalRepository):
    """SQLite implementation of goal repository."""

    def __init__(self, session_factory=None):
        """
        Initialize repository.

        Args:
            session_factory: Optional session factory (for testing)
        """
        self._session_factory = session_factory or get_session_factory()

    def _micro_orm_to_model(self, orm: MicroGoalORM) -> MicroGoal:
        return MicroGoal(
            id=UUID(orm.id),
            goal_id=UUID(orm.goal_id),
            name=orm.name,
            order_index=orm.order_index,
            completed_at=ensure_utc(orm.completed_at),
            criteria=CompletionCriteria(**orm.criteria_json) if orm.criteria_json else None,
        )

    def _orm_to_model(self, orm: GoalORM, micro_goals: list[MicroGoalORM]) -> Goal:
        return Goal(
            id=UUID(orm.id),
            user_id=orm.user_id,
            name=orm.name,
            category=orm.category or "general",
            description=orm.description,
            target_date=orm.target_date,
            status=GoalStatus(orm.status),
            plan=GoalPlan(**orm.plan_json) if orm.plan_json else None,
            micro_goals=[self._micro_orm_to_model(entry) for entry in micro_goals],
            created_at=ensure_utc(orm.created_at),
            updated_at=ensure_utc(orm.updated_at),
        )

    async def _load_micro_goals(self, session, goal_ids: list[str]) -> dict[str, list[MicroGoalORM]]:  # noqa: ANN001
        grouped: dict[str, list[MicroGoalORM]] = defaultdict(list)
        if not goal_ids:
            return grouped
        result = await session.execute(
            select(MicroGoalORM)
            .where(MicroGoalORM.goal_id.in_(goal_ids))
            .order_by(MicroGoalORM.order_index.asc())
        )
        for orm in result.scalars().all():
            grouped[orm.goal_id].append(orm)
        return grouped

    async def _get_orm(self, session, user_id: str, goal_id: UUID) -> GoalORM:  # noqa: ANN001
        result = await session.execute(
            select(GoalORM).where(GoalORM.id == str(goal_id), GoalORM.user_id == user_id)
        )
        orm = result.scalar_one_or_none()
        if not orm:
            raise NotFoundError(f"Goal {goal_id} not found")
        return orm

    async def _reload(self, session, orm: GoalORM) -> Goal:  # noqa: ANN001
        grouped = await self._load_micro_goals(session, [orm.id])
        return self._orm_to_model(orm, grouped.get(orm.id, []))

    async def create(self, user_id: str, goal: GoalCreate) -> Goal:
        async with self._session_factory() as session:
            orm = GoalORM(
                id=str(uuid4()),
                user_id=user_id,
                name=goal.name,
                category=goal.category,
                description=goal.description,
                target_date=goal.target_date,
                status=GoalStatus.ACTIVE.value,
                plan_json=goal.plan.model_dump(mode="json") if goal.plan else None,
            )
            session.add(orm)
            await session.flush()
            for index, micro_goal in enumerate(goal.micro_goals, start=1):
                session.add(
                    MicroGoalORM(
                        id=str(uuid4()),
                        goal_id=orm.id,
                        user_id=user_id,
                        name=micro_goal.name,
                        order_index=index,
                        criteria_json=micro_goal.criteria.model_dump(mode="json") if micro_goal.criteria else None,
                    )
                )
            await session.commit()
            await session.refresh(orm)
            return await self._reload(session, orm)

    async def get(self, user_id: str, goal_id: UUID) -> Optional[Goal]:
        async with self._session_factory() as session:
            try:
                orm = await self._get_orm(session, user_id, goal_id)
            except NotFoundError:
                return None
            return await self._reload(session, orm)

    async def list(
        self,
        user_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        async with self._session_factory() as session:
            query = select(GoalORM).where(GoalORM.user_id == user_id)
            if status:
                query = query.where(GoalORM.status == status.value)
            result = await session.execute(query.order_by(GoalORM.created_at.asc(), GoalORM.id.asc()))
            orms = result.scalars().all()
            grouped = await self._load_micro_goals(session, [orm.id for orm in orms])
            return [self._orm_to_model(orm, grouped.get(orm.id, [])) for orm in orms]

    async def update(self, user_id: str, goal_id: UUID, update: GoalUpdate) -> Goal:
        async with self._session_factory() as session:
            orm = await self._get_orm(session, user_id, goal_id)
            update_data = update.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                if field == "plan":
                    orm.plan_json = update.plan.model_dump(mode="json") if update.plan else None
                elif field == "status" and value is not None:
                    orm.status = GoalStatus(value).value
                else:
                    setattr(orm, field, value)
            orm.updated_at = now_utc().replace(tzinfo=None)
            await session.commit()
            await session.refresh(orm)
            return await self._reload(session, orm)

    async def replace_micro_goals(
        self,
        user_id: str,
        goal_id: UUID,
        micro_goals: list[MicroGoalCreate],
    ) -> Goal:
        async with self._session_factory() as session:
            orm = await self._get_orm(session, user_id, goal_id)
            grouped = await self._load_micro_goals(session, [orm.id])
            completed = [entry for entry in grouped.get(orm.id, []) if entry.completed_at is not None]
            await session.execute(
                delete(MicroGoalORM).where(
                    MicroGoalORM.goal_id == orm.id,
                    MicroGoalORM.completed_at.is_(None),
                )
            )
            # Re-densify: completed steps keep their relative order, new steps follow
            for index, entry in enumerate(completed, start=1):
                entry.order_index = index
            for offset, micro_goal in enumerate(micro_goals, start=len(completed) + 1):
                session.add(
                    MicroGoalORM(
                        id=str(uuid4()),
                        goal_id=orm.id,
                        user_id=user_id,
                        name=micro_goal.name,
                        order_index=offset,
                        criteria_json=micro_goal.criteria.model_dump(mode="json") if micro_goal.criteria else None,
                    )
                )
            orm.updated_at = now_utc().replace(tzinfo=None)
            await session.commit()
            return await self._reload(session, orm)

    async def complete_micro_goal(
        self,
        user_id: str,
        goal_id: UUID,
        micro_goal_id: UUID,
        completed_at: datetime,
    ) -> Goal:
        async with self._session_factory() as session:
            orm = await self._get_orm(session, user_id, goal_id)
            result = await session.execute(
                select(MicroGoalORM).where(
                    MicroGoalORM.id == str(micro_goal_id),
                    MicroGoalORM.goal_id == orm.id,
                )
            )
            micro_orm = result.scalar_one_or_none()
            if not micro_orm:
                raise NotFoundError(f"Micro-goal {micro_goal_id} not found")
            if micro_orm.completed_at is None:
                micro_orm.completed_at = ensure_utc(completed_at).replace(tzinfo=None)
                orm.updated_at = now_utc().replace(tzinfo=None)
                await session.commit()
            return await self._reload(session, orm)

    async def list_user_ids_with_active_goals(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(GoalORM.user_id)
                .where(GoalORM.status == GoalStatus.ACTIVE.value)
                .distinct()
            )
            return list(result.scalars().all())
