"""Abstract interfaces for infrastructure abstraction."""

from pepzi.interfaces.auth_provider import IAuthProvider
from pepzi.interfaces.constraints_repository import IConstraintsRepository
from pepzi.interfaces.goal_repository import IGoalRepository
from pepzi.interfaces.plan_provider import IPlanProvider
from pepzi.interfaces.schedule_block_repository import IScheduleBlockRepository
