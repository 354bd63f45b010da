"""
Goal, plan and micro-goal model definitions.

A goal carries a weekly time budget (its plan) and an ordered list of
micro-goals. The plan is usually produced by the plan provider and is
treated as already validated.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from pepzi.models.enums import CriteriaType, GoalStatus


class PlanPhase(BaseModel):
    """One pacing phase of a goal plan."""

    focus: str = Field(..., min_length=1, max_length=500)
    duration_weeks: int = Field(..., ge=1, le=104)
    # Overrides plan.weekly_hours while this phase is active
    weekly_hours: Optional[float] = Field(None, gt=0, le=80)


class GoalPlan(BaseModel):
    """Time budget and pacing for a goal."""

    weekly_hours: float = Field(..., gt=0, le=80)
    total_estimated_hours: Optional[float] = Field(None, gt=0)
    sessions_per_week: Optional[int] = Field(None, ge=1, le=21)
    session_minutes: Optional[int] = Field(None, ge=5, le=480)
    phases: list[PlanPhase] = Field(default_factory=list)


class CompletionCriteria(BaseModel):
    """Exactly one criteria type per micro-goal."""

    type: CriteriaType
    description: str = Field("", max_length=500)
    # Sessions for SESSION_COUNT, minutes for TIME_SPENT
    target_value: Optional[int] = Field(None, ge=1)

    def required_amount(self) -> int:
        if self.target_value:
            return self.target_value
        return 1 if self.type == CriteriaType.SESSION_COUNT else 60


class MicroGoalCreate(BaseModel):
    """Schema for creating a micro-goal."""

    name: str = Field(..., min_length=1, max_length=200)
    criteria: Optional[CompletionCriteria] = None


class MicroGoal(BaseModel):
    """Ordered completable step within a goal."""

    id: UUID
    goal_id: UUID
    name: str
    order_index: int = Field(..., ge=1)
    completed_at: Optional[datetime] = None
    criteria: Optional[CompletionCriteria] = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class GoalBase(BaseModel):
    """Base goal fields."""

    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field("general", max_length=50)
    description: Optional[str] = Field(None, max_length=2000)
    target_date: Optional[date] = None


class GoalCreate(GoalBase):
    """Schema for creating a new goal."""

    plan: Optional[GoalPlan] = None
    micro_goals: list[MicroGoalCreate] = Field(default_factory=list)
    # Ask the plan provider for a plan when none is given
    generate_plan: bool = False


class GoalUpdate(BaseModel):
    """Schema for updating an existing goal."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=2000)
    target_date: Optional[date] = None
    status: Optional[GoalStatus] = None
    plan: Optional[GoalPlan] = None


class Goal(GoalBase):
    """Complete goal model."""

    id: UUID
    user_id: str
    status: GoalStatus = GoalStatus.ACTIVE
    plan: Optional[GoalPlan] = None
    micro_goals: list[MicroGoal] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def validate_micro_goal_order(self):
        indices = [micro_goal.order_index for micro_goal in self.micro_goals]
        if sorted(indices) != list(range(1, len(indices) + 1)):
            raise ValueError("micro-goal order indices must be unique and dense from 1")
        self.micro_goals.sort(key=lambda micro_goal: micro_goal.order_index)
        return self

    def next_open_micro_goal(self) -> Optional[MicroGoal]:
        """Lowest order_index micro-goal without a completion timestamp."""
        for micro_goal in self.micro_goals:
            if not micro_goal.is_completed:
                return micro_goal
        return None


class GoalProgress(BaseModel):
    """Derived progress, recomputed on demand."""

    goal_id: UUID
    percent_complete: int = Field(..., ge=0, le=100)
    completed_micro_goals: int = 0
    total_micro_goals: int = 0


class GoalSessionStats(BaseModel):
    """Session-level statistics derived from schedule blocks."""

    goal_id: UUID
    completed_sessions: int = 0
    skipped_sessions: int = 0
    upcoming_sessions: int = 0
    minutes_logged: int = 0
    hours_logged: float = 0.0
    total_estimated_hours: Optional[float] = None
    hours_percent: Optional[int] = None
    # Positive when ahead of the plan's weekly pace, negative when behind
    days_ahead: Optional[int] = None
    pace_message: Optional[str] = None


class GoalWithProgress(Goal):
    """Goal with derived progress attached."""

    progress: GoalProgress


class PlanRequest(BaseModel):
    """Input handed to the plan provider."""

    name: str
    category: str = "general"
    description: Optional[str] = None
    target_date: Optional[date] = None
    today: Optional[date] = None


class GeneratedPlan(BaseModel):
    """Plan provider output: plan structure plus ordered micro-goals."""

    plan: GoalPlan
    micro_goals: list[MicroGoalCreate] = Field(default_factory=list)
