"""
User constraint models (wake/sleep window, work, commute, commitments).
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from pepzi.models.enums import Weekday

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$|^24:00$"

DEFAULT_WAKE_TIME = "07:00"
DEFAULT_SLEEP_TIME = "23:00"


class WorkHours(BaseModel):
    start: str = Field(..., pattern=HHMM_PATTERN)
    end: str = Field(..., pattern=HHMM_PATTERN)


class FixedCommitment(BaseModel):
    """Recurring weekly commitment such as a class or a team practice."""

    day: Weekday
    start: str = Field(..., pattern=HHMM_PATTERN)
    end: str = Field(..., pattern=HHMM_PATTERN)
    name: str = Field("", max_length=200)


class UserConstraintsBase(BaseModel):
    wake_time: str = Field(DEFAULT_WAKE_TIME, pattern=HHMM_PATTERN)
    sleep_time: str = Field(DEFAULT_SLEEP_TIME, pattern=HHMM_PATTERN)
    # Keyed by weekday; a missing or null entry means no work that day
    work_schedule: dict[Weekday, Optional[WorkHours]] = Field(default_factory=dict)
    daily_commute_mins: int = Field(0, ge=0, le=480)
    fixed_commitments: list[FixedCommitment] = Field(default_factory=list)
    timezone: str = "UTC"


class UserConstraintsUpdate(UserConstraintsBase):
    """Full replacement payload for PUT."""

    pass


class UserConstraints(UserConstraintsBase):
    user_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def default_constraints(user_id: str, timezone: str = "UTC") -> UserConstraints:
    return UserConstraints(user_id=user_id, timezone=timezone)
