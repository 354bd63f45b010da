"""
Plan provider interface.

Produces the initial plan of a goal from its description. The scheduling
engine never calls it; goal creation does.
"""

from abc import ABC, abstractmethod

from pepzi.models.goal import GeneratedPlan, PlanRequest


class IPlanProvider(ABC):
    @abstractmethod
    async def generate(self, request: PlanRequest) -> GeneratedPlan:
        """
        Generate a plan for a goal.

        Raises:
            PlanGenerationError: If no usable plan could be produced
        """
        pass
