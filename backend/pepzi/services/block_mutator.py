"""
Block mutator.

Transactional single-block edits. Each operation runs under the user's
write lock: load the block and its neighbourhood, build the proposed state,
resolve it, then persist every change in one transaction. A rejected edit
returns Err(ConflictError) and writes nothing.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID, uuid4

from pepzi.core.config import get_settings
from pepzi.core.exceptions import InvariantViolationError, NotFoundError, ValidationError
from pepzi.core.logger import setup_logger
from pepzi.interfaces.constraints_repository import IConstraintsRepository
from pepzi.interfaces.goal_repository import IGoalRepository
from pepzi.interfaces.schedule_block_repository import IScheduleBlockRepository
from pepzi.models.constraints import UserConstraints, default_constraints
from pepzi.models.enums import BlockStatus, BlockType, CreatedBy, CriteriaType
from pepzi.models.result import Err, Ok, Result
from pepzi.models.schedule_block import ScheduleBlock, ScheduleBlockCreate, ScheduleBlockUpdate
from pepzi.services.conflict_resolver import Resolution, resolve, resolve_delete
from pepzi.services.persistence_guard import guarded
from pepzi.services.progress_service import compute_progress
from pepzi.services.user_locks import UserLockRegistry
from pepzi.utils.datetime_utils import MINUTES_PER_DAY, ensure_utc, now_utc

logger = setup_logger(__name__)

# Neighbourhood loaded around a block; blocks never exceed one day
SNAPSHOT_MARGIN = timedelta(days=1)


class BlockMutator:
    def __init__(
        self,
        block_repo: IScheduleBlockRepository,
        goal_repo: IGoalRepository,
        constraints_repo: IConstraintsRepository,
        locks: UserLockRegistry,
    ):
        self._block_repo = block_repo
        self._goal_repo = goal_repo
        self._constraints_repo = constraints_repo
        self._locks = locks

    # ===========================================
    # Public operations
    # ===========================================

    async def move_block(
        self, user_id: str, block_id: UUID, new_start: datetime, force: bool = False
    ) -> Result[ScheduleBlock]:
        return await self.update_block(
            user_id, block_id, ScheduleBlockUpdate(scheduled_start=new_start, force=force)
        )

    async def resize_block(
        self, user_id: str, block_id: UUID, new_duration: int, force: bool = False
    ) -> Result[ScheduleBlock]:
        if new_duration <= 0 or new_duration > MINUTES_PER_DAY:
            raise InvariantViolationError(f"Invalid block duration {new_duration}")
        return await self.update_block(
            user_id, block_id, ScheduleBlockUpdate(duration_mins=new_duration, force=force)
        )

    async def complete_block(
        self, user_id: str, block_id: UUID, completed_at: Optional[datetime] = None
    ) -> Result[ScheduleBlock]:
        return await self.update_block(
            user_id,
            block_id,
            ScheduleBlockUpdate(status=BlockStatus.COMPLETED, completed_at=completed_at or now_utc()),
        )

    async def skip_block(self, user_id: str, block_id: UUID) -> Result[ScheduleBlock]:
        return await self.update_block(user_id, block_id, ScheduleBlockUpdate(status=BlockStatus.SKIPPED))

    async def push_to_next_week(
        self, user_id: str, block_id: UUID, force: bool = False
    ) -> Result[ScheduleBlock]:
        """Move a block by exactly one week through the normal move path."""
        block = await self._get_block(user_id, block_id)
        return await self.move_block(
            user_id, block_id, block.scheduled_start + timedelta(weeks=1), force=force
        )

    async def update_block(
        self, user_id: str, block_id: UUID, update: ScheduleBlockUpdate
    ) -> Result[ScheduleBlock]:
        """Apply a partial edit (start, duration, status, notes)."""
        async with self._locks.hold(user_id):
            current = await self._get_block(user_id, block_id)
            proposed = self._apply_update(current, update)

            time_changed = (
                proposed.scheduled_start != current.scheduled_start
                or proposed.duration_mins != current.duration_mins
            )
            starts_occupying = proposed.occupies_time and not current.occupies_time
            stops_occupying = current.occupies_time and not proposed.occupies_time

            snapshot = await self._snapshot(user_id, current, proposed)
            constraints = await self._constraints(user_id)
            result = resolve(
                snapshot,
                proposed,
                previous=current,
                force=update.force,
                constraints=constraints,
                check_overlap=time_changed or starts_occupying or stops_occupying,
            )
            if isinstance(result, Err):
                logger.info(
                    f"Rejected edit of block {block_id} for {user_id}: "
                    f"collides with {[str(i) for i in result.error.colliding_block_ids]} "
                    f"{result.error.constraint_conflicts}"
                )
                return result

            saved = await self._persist(user_id, result.value)

        if saved.status == BlockStatus.COMPLETED and current.status != BlockStatus.COMPLETED:
            await self._on_completed(user_id, saved)
        return Ok(saved)

    async def insert_block(self, user_id: str, payload: ScheduleBlockCreate) -> Result[ScheduleBlock]:
        """
        Insert a new block.

        Inserting again with the same client-supplied id returns the stored
        block unchanged, so retries are safe.
        """
        async with self._locks.hold(user_id):
            if payload.id is not None:
                existing = await guarded(self._block_repo.get(user_id, payload.id))
                if existing is not None:
                    return Ok(existing)
            await self._check_goal_link(user_id, payload)

            timestamp = now_utc()
            proposed = ScheduleBlock(
                id=payload.id or uuid4(),
                user_id=user_id,
                type=payload.type,
                scheduled_start=ensure_utc(payload.scheduled_start),
                duration_mins=payload.duration_mins,
                status=BlockStatus.PLANNED,
                goal_id=payload.goal_id,
                micro_goal_id=payload.micro_goal_id,
                notes=payload.notes,
                created_by=CreatedBy.USER,
                created_at=timestamp,
                updated_at=timestamp,
            )
            self._check_invariants(proposed)
            snapshot = await self._snapshot(user_id, proposed)
            constraints = await self._constraints(user_id)
            result = resolve(snapshot, proposed, force=payload.force, constraints=constraints)
            if isinstance(result, Err):
                logger.info(f"Rejected insert for {user_id}: {result.error.details}")
                return result
            saved = await self._persist(user_id, result.value)
        return Ok(saved)

    async def delete_block(self, user_id: str, block_id: UUID) -> None:
        async with self._locks.hold(user_id):
            current = await self._get_block(user_id, block_id)
            snapshot = await self._snapshot(user_id, current)
            resolution = resolve_delete(snapshot, current)
            await guarded(
                self._block_repo.apply_changes(user_id, resolution.upserts, resolution.delete_ids)
            )
        logger.info(f"Deleted block {block_id} for {user_id}")

    # ===========================================
    # Helpers
    # ===========================================

    async def _get_block(self, user_id: str, block_id: UUID) -> ScheduleBlock:
        block = await guarded(self._block_repo.get(user_id, block_id))
        if not block:
            raise NotFoundError(f"Block {block_id} not found")
        return block

    async def _check_goal_link(self, user_id: str, payload: ScheduleBlockCreate) -> None:
        if payload.goal_id is None:
            if payload.micro_goal_id is not None:
                raise ValidationError("micro_goal_id requires goal_id")
            return
        goal = await guarded(self._goal_repo.get(user_id, payload.goal_id))
        if not goal:
            raise NotFoundError(f"Goal {payload.goal_id} not found")
        if payload.micro_goal_id is not None and all(
            entry.id != payload.micro_goal_id for entry in goal.micro_goals
        ):
            raise ValidationError(
                f"Micro-goal {payload.micro_goal_id} does not belong to goal {goal.id}"
            )

    async def _constraints(self, user_id: str) -> UserConstraints:
        constraints = await guarded(self._constraints_repo.get(user_id))
        return constraints or default_constraints(user_id, get_settings().DEFAULT_TIMEZONE)

    async def _snapshot(self, user_id: str, *blocks: ScheduleBlock) -> list[ScheduleBlock]:
        start = min(block.scheduled_start for block in blocks) - SNAPSHOT_MARGIN
        end = max(block.scheduled_end for block in blocks) + SNAPSHOT_MARGIN
        return await guarded(self._block_repo.list_in_range(user_id, start, end))

    def _apply_update(self, current: ScheduleBlock, update: ScheduleBlockUpdate) -> ScheduleBlock:
        changes = update.model_dump(exclude_unset=True, exclude={"force"})
        if "status" in changes and changes["status"] is None:
            changes.pop("status")
        if changes.get("status") == BlockStatus.COMPLETED and not changes.get("completed_at"):
            changes["completed_at"] = current.completed_at or now_utc()
        if "status" in changes and changes["status"] != BlockStatus.COMPLETED:
            changes["completed_at"] = None
        if changes.get("scheduled_start") is None:
            changes.pop("scheduled_start", None)
        if changes.get("duration_mins") is None:
            changes.pop("duration_mins", None)
        changes["updated_at"] = now_utc()
        proposed = current.model_copy(update=changes)
        self._check_invariants(proposed)
        return proposed

    def _check_invariants(self, block: ScheduleBlock) -> None:
        if block.duration_mins <= 0 or block.duration_mins > MINUTES_PER_DAY:
            raise InvariantViolationError(
                f"Block {block.id} has invalid duration {block.duration_mins}"
            )
        if block.type == BlockType.GOAL_SESSION and block.micro_goal_id and not block.goal_id:
            raise InvariantViolationError(f"Block {block.id} links a micro-goal without its goal")

    async def _persist(self, user_id: str, resolution: Resolution) -> ScheduleBlock:
        saved = await guarded(
            self._block_repo.apply_changes(user_id, resolution.upserts, resolution.delete_ids)
        )
        by_id = {block.id: block for block in saved}
        return by_id[resolution.block.id]

    async def _on_completed(self, user_id: str, block: ScheduleBlock) -> None:
        """Mark the linked micro-goal complete once its criteria are covered."""
        if not block.goal_id:
            return
        goal = await guarded(self._goal_repo.get(user_id, block.goal_id))
        if not goal:
            return
        micro_goal = None
        if block.micro_goal_id:
            micro_goal = next((entry for entry in goal.micro_goals if entry.id == block.micro_goal_id), None)
        if micro_goal and not micro_goal.is_completed and micro_goal.criteria:
            criteria = micro_goal.criteria
            goal_blocks = await guarded(self._block_repo.list_for_goal(user_id, goal.id))
            done = [
                entry
                for entry in goal_blocks
                if entry.micro_goal_id == micro_goal.id and entry.status == BlockStatus.COMPLETED
            ]
            if criteria.type == CriteriaType.SESSION_COUNT:
                covered = len(done)
            elif criteria.type == CriteriaType.TIME_SPENT:
                covered = sum(entry.duration_mins for entry in done)
            else:
                covered = 0
            if covered and covered >= criteria.required_amount():
                goal = await guarded(
                    self._goal_repo.complete_micro_goal(
                        user_id, goal.id, micro_goal.id, block.completed_at or now_utc()
                    )
                )
                logger.info(f"Micro-goal {micro_goal.id} completed by block {block.id}")
        progress = compute_progress(goal)
        logger.info(
            f"Goal {goal.id} progress {progress.percent_complete}% "
            f"({progress.completed_micro_goals}/{progress.total_micro_goals})"
        )
