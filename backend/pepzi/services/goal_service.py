"""
Goal lifecycle: creation with optional plan generation, updates, archival.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pepzi.core.exceptions import NotFoundError, ValidationError
from pepzi.core.logger import setup_logger
from pepzi.interfaces.goal_repository import IGoalRepository
from pepzi.interfaces.plan_provider import IPlanProvider
from pepzi.interfaces.schedule_block_repository import IScheduleBlockRepository
from pepzi.models.enums import GoalStatus
from pepzi.models.goal import Goal, GoalCreate, GoalUpdate, GoalWithProgress, PlanRequest
from pepzi.services.block_mutator import SNAPSHOT_MARGIN
from pepzi.services.conflict_resolver import resolve_delete_many
from pepzi.services.persistence_guard import guarded
from pepzi.services.progress_service import compute_progress
from pepzi.services.user_locks import UserLockRegistry
from pepzi.utils.datetime_utils import now_utc

logger = setup_logger(__name__)


def with_progress(goal: Goal) -> GoalWithProgress:
    return GoalWithProgress(**goal.model_dump(), progress=compute_progress(goal))


class GoalService:
    def __init__(
        self,
        goal_repo: IGoalRepository,
        block_repo: IScheduleBlockRepository,
        plan_provider: IPlanProvider,
        locks: UserLockRegistry,
    ):
        self._goal_repo = goal_repo
        self._block_repo = block_repo
        self._plan_provider = plan_provider
        self._locks = locks

    async def create_goal(self, user_id: str, payload: GoalCreate) -> Goal:
        if payload.plan is None and payload.generate_plan:
            generated = await self._plan_provider.generate(
                PlanRequest(
                    name=payload.name,
                    category=payload.category,
                    description=payload.description,
                    target_date=payload.target_date,
                    today=now_utc().date(),
                )
            )
            payload = payload.model_copy(
                update={
                    "plan": generated.plan,
                    "micro_goals": payload.micro_goals or generated.micro_goals,
                }
            )
        goal = await guarded(self._goal_repo.create(user_id, payload))
        logger.info(f"Created goal {goal.id} for {user_id} (plan={'yes' if goal.plan else 'no'})")
        return goal

    async def get_goal(self, user_id: str, goal_id: UUID) -> Goal:
        goal = await guarded(self._goal_repo.get(user_id, goal_id))
        if not goal:
            raise NotFoundError(f"Goal {goal_id} not found")
        return goal

    async def list_goals(self, user_id: str, status: Optional[GoalStatus] = None) -> list[Goal]:
        return await guarded(self._goal_repo.list(user_id, status=status))

    async def update_goal(self, user_id: str, goal_id: UUID, update: GoalUpdate) -> Goal:
        if update.status == GoalStatus.ARCHIVED:
            return await self.archive_goal(user_id, goal_id)
        return await guarded(self._goal_repo.update(user_id, goal_id, update))

    async def archive_goal(self, user_id: str, goal_id: UUID) -> Goal:
        """
        Soft-archive a goal.

        Future planned sessions of the goal are deleted; past and completed
        blocks stay so history and streaks remain intact.
        """
        async with self._locks.hold(user_id):
            goal = await guarded(
                self._goal_repo.update(user_id, goal_id, GoalUpdate(status=GoalStatus.ARCHIVED))
            )
            future = await guarded(
                self._block_repo.list_future_planned_for_goal(user_id, goal_id, now_utc())
            )
            if future:
                snapshot = await guarded(
                    self._block_repo.list_in_range(
                        user_id,
                        future[0].scheduled_start - SNAPSHOT_MARGIN,
                        max(block.scheduled_end for block in future) + SNAPSHOT_MARGIN,
                    )
                )
                resolution = resolve_delete_many(snapshot, future)
                await guarded(
                    self._block_repo.apply_changes(user_id, resolution.upserts, resolution.delete_ids)
                )
        logger.info(f"Archived goal {goal_id} for {user_id}, removed {len(future)} future sessions")
        return goal

    async def regenerate_plan(self, user_id: str, goal_id: UUID) -> Goal:
        goal = await self.get_goal(user_id, goal_id)
        if goal.status == GoalStatus.ARCHIVED:
            raise ValidationError("Archived goals cannot be re-planned")
        generated = await self._plan_provider.generate(
            PlanRequest(
                name=goal.name,
                category=goal.category,
                description=goal.description,
                target_date=goal.target_date,
                today=now_utc().date(),
            )
        )
        await guarded(self._goal_repo.update(user_id, goal_id, GoalUpdate(plan=generated.plan)))
        return await guarded(
            self._goal_repo.replace_micro_goals(user_id, goal_id, generated.micro_goals)
        )

    async def complete_micro_goal(self, user_id: str, goal_id: UUID, micro_goal_id: UUID) -> Goal:
        goal = await guarded(
            self._goal_repo.complete_micro_goal(user_id, goal_id, micro_goal_id, now_utc())
        )
        if goal.micro_goals and all(entry.is_completed for entry in goal.micro_goals):
            logger.info(f"All micro-goals of {goal_id} completed")
        return goal
