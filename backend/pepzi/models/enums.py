"""
Enum definitions for the application.

Values are the lowercase wire strings used by the API and the database.
"""

from enum import Enum


class GoalStatus(str, Enum):
    """Goal lifecycle status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    ARCHIVED = "archived"


class BlockType(str, Enum):
    """Kind of time a schedule block represents."""

    GOAL_SESSION = "goal_session"
    WORK = "work"
    COMMUTE = "commute"
    FIXED_COMMITMENT = "fixed_commitment"
    SLEEP = "sleep"


class BlockStatus(str, Enum):
    """
    Schedule block status.

    PLANNED and COMPLETED blocks occupy time. SKIPPED and CANCELLED do not.
    """

    PLANNED = "planned"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


OCCUPYING_STATUSES = frozenset({BlockStatus.PLANNED, BlockStatus.COMPLETED})


class CreatedBy(str, Enum):
    """Who created the block."""

    USER = "user"
    PLANNER = "planner"


class CriteriaType(str, Enum):
    """
    How a micro-goal is judged complete.

    SESSION_COUNT and TIME_SPENT are satisfied by completed sessions, so the
    planner works micro-goals of these types in order. The others are
    completed manually.
    """

    SESSION_COUNT = "session_count"
    TIME_SPENT = "time_spent"
    MILESTONE = "milestone"
    MANUAL = "manual"


SEQUENTIAL_CRITERIA = frozenset({CriteriaType.SESSION_COUNT, CriteriaType.TIME_SPENT})


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        """Map ``date.weekday()`` (Monday=0) to a Weekday."""
        return list(cls)[index]
