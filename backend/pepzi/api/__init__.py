"""API routers."""

from pepzi.api import constraints, goals, schedule

__all__ = ["constraints", "goals", "schedule"]
