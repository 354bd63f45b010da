"""
Conflict resolver.

Validates schedules and single-block edits against the no-overlap rule.
Overlaps are never repaired by moving other blocks: an edit is either
rejected with a ConflictError, or, when forced, kept as a soft conflict with
both sides flagged for review.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from pepzi.core.exceptions import ConflictError
from pepzi.models.constraints import UserConstraints
from pepzi.models.enums import BlockType
from pepzi.models.result import Err, Ok, Result
from pepzi.models.schedule_block import ConflictPair, ScheduleBlock
from pepzi.services.availability_service import session_constraint_collisions


@dataclass
class Resolution:
    """Outcome of resolving an edit: the edited block plus every flag change."""

    block: Optional[ScheduleBlock]
    upserts: list[ScheduleBlock] = field(default_factory=list)
    delete_ids: list[UUID] = field(default_factory=list)


def find_overlaps(candidate: ScheduleBlock, others: Iterable[ScheduleBlock]) -> list[ScheduleBlock]:
    """Occupying blocks (other than the candidate itself) overlapping the candidate."""
    if not candidate.occupies_time:
        return []
    return [
        other
        for other in others
        if other.id != candidate.id and other.occupies_time and candidate.overlaps(other)
    ]


def validate(
    blocks: Iterable[ScheduleBlock],
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
) -> list[ConflictPair]:
    """
    All overlapping pairs of occupying blocks, optionally limited to a window.

    Pairs where both blocks carry the soft-conflict flag are reported as
    acknowledged.
    """
    active = sorted(
        (
            block
            for block in blocks
            if block.occupies_time
            and (window_start is None or block.scheduled_end > window_start)
            and (window_end is None or block.scheduled_start < window_end)
        ),
        key=lambda block: (block.scheduled_start, str(block.id)),
    )
    pairs: list[ConflictPair] = []
    for index, first in enumerate(active):
        for second in active[index + 1:]:
            if second.scheduled_start >= first.scheduled_end:
                break
            pairs.append(
                ConflictPair(
                    first_id=first.id,
                    second_id=second.id,
                    overlap_start=max(first.scheduled_start, second.scheduled_start),
                    overlap_end=min(first.scheduled_end, second.scheduled_end),
                    acknowledged=first.is_conflict and second.is_conflict,
                )
            )
    return pairs


def validate_planned(
    proposed: list[ScheduleBlock],
    existing: Iterable[ScheduleBlock],
    constraints: UserConstraints,
) -> list[str]:
    """
    Problems with planner output, empty when the proposal is sound.

    Work, commute, commitment and sleep time are treated as always occupied.
    """
    problems: list[str] = []
    existing_list = list(existing)
    for index, block in enumerate(proposed):
        if block.duration_mins <= 0:
            problems.append(f"block {block.id} has non-positive duration {block.duration_mins}")
            continue
        for other in find_overlaps(block, existing_list):
            problems.append(f"block {block.id} overlaps existing block {other.id}")
        for other in find_overlaps(block, proposed[index + 1:]):
            problems.append(f"block {block.id} overlaps proposed block {other.id}")
        for label in session_constraint_collisions(block, constraints):
            problems.append(f"block {block.id} overlaps {label}")
    return problems


def _refresh_flags(
    state: dict[UUID, ScheduleBlock],
    affected_ids: Iterable[UUID],
) -> list[ScheduleBlock]:
    """Clear the flag on affected blocks that no longer overlap anything."""
    changed: list[ScheduleBlock] = []
    for block_id in affected_ids:
        block = state.get(block_id)
        if block is None or not block.is_conflict:
            continue
        if not find_overlaps(block, state.values()):
            cleared = block.model_copy(update={"is_conflict": False})
            state[block_id] = cleared
            changed.append(cleared)
    return changed


def resolve(
    snapshot: list[ScheduleBlock],
    edited: ScheduleBlock,
    previous: Optional[ScheduleBlock] = None,
    force: bool = False,
    constraints: Optional[UserConstraints] = None,
    check_overlap: bool = True,
) -> Result[Resolution]:
    """
    Resolve a move, resize, status change or insert of ``edited``.

    ``snapshot`` must hold every block near both the old and new position.
    Returns Err(ConflictError) without touching anything when the edit
    collides and ``force`` is not set.
    """
    state = {block.id: block for block in snapshot}
    state.pop(edited.id, None)

    collisions = find_overlaps(edited, state.values()) if check_overlap else []
    constraint_labels: list[str] = []
    if check_overlap and constraints is not None and edited.type == BlockType.GOAL_SESSION and edited.occupies_time:
        constraint_labels = session_constraint_collisions(edited, constraints)

    if (collisions or constraint_labels) and not force:
        return Err(
            ConflictError(
                "Block overlaps existing schedule",
                colliding_block_ids=[block.id for block in collisions],
                constraint_conflicts=constraint_labels,
            )
        )

    upserts: list[ScheduleBlock] = []
    if collisions or constraint_labels:
        edited = edited.model_copy(update={"is_conflict": True})
        for other in collisions:
            if not other.is_conflict:
                flagged = other.model_copy(update={"is_conflict": True})
                state[other.id] = flagged
                upserts.append(flagged)
    elif check_overlap:
        # Nothing collides any more, so the edited block's flag goes too
        edited = edited.model_copy(update={"is_conflict": False})
    state[edited.id] = edited

    affected: set[UUID] = set()
    if previous is not None:
        affected.update(block.id for block in find_overlaps(previous, state.values()))
    upserts.extend(_refresh_flags(state, affected - {edited.id}))

    return Ok(Resolution(block=edited, upserts=[edited] + upserts))


def resolve_delete(snapshot: list[ScheduleBlock], deleted: ScheduleBlock) -> Resolution:
    """Deleting never conflicts. Former partners lose a now stale flag."""
    return resolve_delete_many(snapshot, [deleted])


def resolve_delete_many(snapshot: list[ScheduleBlock], deleted: list[ScheduleBlock]) -> Resolution:
    """
    Delete several blocks at once.

    Every surviving block that overlapped one of them is re-checked against
    the remaining state, so partners flagged only because of a deleted block
    are cleared in the same change set.
    """
    delete_ids = [block.id for block in deleted]
    removed = set(delete_ids)
    state = {block.id: block for block in snapshot if block.id not in removed}
    affected: list[UUID] = []
    for block in deleted:
        for other in find_overlaps(block, state.values()):
            if other.id not in affected:
                affected.append(other.id)
    return Resolution(block=None, upserts=_refresh_flags(state, affected), delete_ids=delete_ids)
