"""
Availability and allocation result models.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from pepzi.models.schedule_block import ScheduleBlock


class ConstraintIssue(BaseModel):
    """An InvalidConstraints report for one day. Never fatal."""

    date: date
    code: str
    message: str


class FreeInterval(BaseModel):
    start: datetime
    end: datetime
    start_minutes: int
    end_minutes: int

    @property
    def minutes(self) -> int:
        return self.end_minutes - self.start_minutes


class BusyInterval(BaseModel):
    """Constraint-derived busy time (work, commute, commitment, sleep)."""

    start_minutes: int
    end_minutes: int
    label: str


class DayAvailability(BaseModel):
    date: date
    timezone: str
    free_intervals: list[FreeInterval] = Field(default_factory=list)
    busy_intervals: list[BusyInterval] = Field(default_factory=list)
    issues: list[ConstraintIssue] = Field(default_factory=list)

    @property
    def free_minutes(self) -> int:
        return sum(interval.minutes for interval in self.free_intervals)


class Shortfall(BaseModel):
    """Minutes a goal still needs after the whole horizon was allocated."""

    goal_id: UUID
    minutes: int


class WeekShortfall(BaseModel):
    goal_id: UUID
    week_start: date
    minutes: int


class AllocationRequest(BaseModel):
    horizon_weeks: Optional[int] = Field(None, ge=1, le=52)
    horizon_start: Optional[date] = None


class AllocationResult(BaseModel):
    placed: list[ScheduleBlock] = Field(default_factory=list)
    shortfalls: list[Shortfall] = Field(default_factory=list)
    week_shortfalls: list[WeekShortfall] = Field(default_factory=list)
    issues: list[ConstraintIssue] = Field(default_factory=list)


class WeekdayAvailability(BaseModel):
    weekday: str
    free_minutes: int


class FeasibilityReport(BaseModel):
    """Weekly free time compared with what active goals need."""

    week_start: date
    by_weekday: list[WeekdayAvailability] = Field(default_factory=list)
    free_hours: float
    hours_needed: float
    buffer_hours: float
    is_feasible: bool
    suggestion: Optional[str] = None
    issues: list[ConstraintIssue] = Field(default_factory=list)


class StreakResponse(BaseModel):
    user_id: str
    as_of: date
    streak_days: int
