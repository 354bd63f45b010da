"""Pydantic models (schemas) for the application."""

from pepzi.models.enums import BlockStatus, BlockType, CreatedBy, CriteriaType, GoalStatus, Weekday
from pepzi.models.goal import (
    CompletionCriteria,
    Goal,
    GoalCreate,
    GoalPlan,
    GoalProgress,
    GoalUpdate,
    MicroGoal,
    PlanPhase,
)
from pepzi.models.schedule_block import ScheduleBlock, ScheduleBlockCreate, ScheduleBlockUpdate
from pepzi.models.constraints import FixedCommitment, UserConstraints, WorkHours
from pepzi.models.result import Err, Ok
