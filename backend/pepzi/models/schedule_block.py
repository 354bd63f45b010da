"""
Schedule block model definitions.
"""

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from pepzi.models.enums import OCCUPYING_STATUSES, BlockStatus, BlockType, CreatedBy
from pepzi.utils.datetime_utils import MINUTES_PER_DAY, ensure_utc, intervals_overlap


class ScheduleBlockCreate(BaseModel):
    """Schema for inserting a block directly."""

    # Client-chosen id makes retries of the same insert idempotent
    id: Optional[UUID] = None
    type: BlockType = BlockType.GOAL_SESSION
    scheduled_start: datetime
    duration_mins: int = Field(..., ge=1, le=MINUTES_PER_DAY)
    goal_id: Optional[UUID] = None
    micro_goal_id: Optional[UUID] = None
    notes: Optional[str] = Field(None, max_length=2000)
    force: bool = False

    @field_validator("scheduled_start")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ScheduleBlockUpdate(BaseModel):
    """Partial edit of a block. ``force`` keeps an overlap as a soft conflict."""

    scheduled_start: Optional[datetime] = None
    duration_mins: Optional[int] = Field(None, ge=1, le=MINUTES_PER_DAY)
    status: Optional[BlockStatus] = None
    notes: Optional[str] = Field(None, max_length=2000)
    completed_at: Optional[datetime] = None
    force: bool = False

    @field_validator("scheduled_start", "completed_at")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class ScheduleBlock(BaseModel):
    """Concrete time-boxed calendar entry."""

    id: UUID
    user_id: str
    type: BlockType
    scheduled_start: datetime
    duration_mins: int
    status: BlockStatus = BlockStatus.PLANNED
    goal_id: Optional[UUID] = None
    micro_goal_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_by: CreatedBy = CreatedBy.USER
    # Set when the user kept an overlap on purpose
    is_conflict: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def scheduled_end(self) -> datetime:
        return self.scheduled_start + timedelta(minutes=self.duration_mins)

    @property
    def occupies_time(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    def overlaps(self, other: "ScheduleBlock") -> bool:
        return intervals_overlap(
            self.scheduled_start, self.scheduled_end, other.scheduled_start, other.scheduled_end
        )


class ConflictPair(BaseModel):
    """Two overlapping blocks found by validation."""

    first_id: UUID
    second_id: UUID
    overlap_start: datetime
    overlap_end: datetime
    # Both sides carry the soft-conflict flag
    acknowledged: bool


class BacklogSession(BaseModel):
    """A goal session from an earlier day that was neither completed nor skipped."""

    block: ScheduleBlock
    goal_name: Optional[str] = None
    days_overdue: int
    # Next planned session of the same goal from today on
    next_session_start: Optional[datetime] = None
    days_until_slip: int


class BacklogResponse(BaseModel):
    sessions: list[BacklogSession] = Field(default_factory=list)
    count: int = 0
