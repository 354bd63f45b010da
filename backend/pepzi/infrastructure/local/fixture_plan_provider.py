"""
Deterministic plan provider.

Builds plans from per-category defaults without any network call. Used in
local development and tests so allocation never depends on a live model.
"""

import math
from datetime import timedelta

from pepzi.interfaces.plan_provider import IPlanProvider
from pepzi.models.enums import CriteriaType
from pepzi.models.goal import (
    CompletionCriteria,
    GeneratedPlan,
    GoalPlan,
    MicroGoalCreate,
    PlanPhase,
    PlanRequest,
)
from pepzi.utils.datetime_utils import now_utc

# (weekly hours, session minutes)
CATEGORY_DEFAULTS: dict[str, tuple[float, int]] = {
    "fitness": (4.5, 60),
    "language": (3.0, 45),
    "music": (3.5, 45),
    "business": (6.0, 90),
    "education": (5.0, 60),
    "creative": (4.0, 60),
}
DEFAULT_PROFILE = (3.0, 60)
DEFAULT_WEEKS = 12

PHASE_FOCUS = ("Foundations", "Build", "Consolidate")
PHASE_INTENSITY = (0.75, 1.0, 1.0)


class FixturePlanProvider(IPlanProvider):
    """Category-driven plan with three phases and session-count milestones."""

    async def generate(self, request: PlanRequest) -> GeneratedPlan:
        weekly_hours, session_minutes = CATEGORY_DEFAULTS.get(request.category.lower(), DEFAULT_PROFILE)
        today = request.today or now_utc().date()
        if request.target_date and request.target_date > today:
            total_weeks = max(3, math.ceil((request.target_date - today) / timedelta(weeks=1)))
        else:
            total_weeks = DEFAULT_WEEKS

        base_weeks = total_weeks // 3
        durations = [base_weeks, base_weeks, total_weeks - 2 * base_weeks]
        phases = [
            PlanPhase(
                focus=f"{focus}: {request.name}",
                duration_weeks=weeks,
                weekly_hours=round(weekly_hours * intensity, 2),
            )
            for focus, weeks, intensity in zip(PHASE_FOCUS, durations, PHASE_INTENSITY)
        ]
        total_hours = round(
            sum(phase.weekly_hours * phase.duration_weeks for phase in phases), 1
        )
        sessions_per_week = max(1, round(weekly_hours * 60 / session_minutes))

        micro_goals = []
        for phase, weeks in zip(phases, durations):
            sessions = max(1, round(phase.weekly_hours * 60 / session_minutes) * weeks)
            micro_goals.append(
                MicroGoalCreate(
                    name=f"Complete {phase.focus.split(':')[0].lower()} sessions",
                    criteria=CompletionCriteria(
                        type=CriteriaType.SESSION_COUNT,
                        description=f"{sessions} completed sessions",
                        target_value=sessions,
                    ),
                )
            )
        micro_goals.append(
            MicroGoalCreate(
                name=f"Review progress on {request.name}",
                criteria=CompletionCriteria(
                    type=CriteriaType.MANUAL,
                    description="Self-assessment against the original goal",
                ),
            )
        )

        return GeneratedPlan(
            plan=GoalPlan(
                weekly_hours=weekly_hours,
                total_estimated_hours=total_hours,
                sessions_per_week=sessions_per_week,
                session_minutes=session_minutes,
                phases=phases,
            ),
            micro_goals=micro_goals,
        )
