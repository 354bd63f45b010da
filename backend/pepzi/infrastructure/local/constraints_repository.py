"""
SQLite implementation of user constraints repository.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from pepzi.infrastructure.local.database import UserConstraintsORM, get_session_factory
from pepzi.interfaces.constraints_repository import IConstraintsRepository
from pepzi.models.constraints import FixedCommitment, UserConstraints, UserConstraintsUpdate, WorkHours
from pepzi.models.enums import Weekday
from pepzi.utils.datetime_utils import ensure_utc, now_utc


class SqliteConstraintsRepository(IConstraintsRepository):
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session_factory()

    def _orm_to_model(self, orm: UserConstraintsORM) -> UserConstraints:
        work_schedule = {
            Weekday(day): WorkHours(**hours) if hours else None
            for day, hours in (orm.work_schedule_json or {}).items()
        }
        return UserConstraints(
            user_id=orm.user_id,
            wake_time=orm.wake_time,
            sleep_time=orm.sleep_time,
            work_schedule=work_schedule,
            daily_commute_mins=orm.daily_commute_mins or 0,
            fixed_commitments=[FixedCommitment(**entry) for entry in (orm.fixed_commitments_json or [])],
            timezone=orm.timezone or "UTC",
            created_at=ensure_utc(orm.created_at),
            updated_at=ensure_utc(orm.updated_at),
        )

    async def get(self, user_id: str) -> Optional[UserConstraints]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserConstraintsORM).where(UserConstraintsORM.user_id == user_id)
            )
            orm = result.scalar_one_or_none()
            return self._orm_to_model(orm) if orm else None

    async def upsert(self, user_id: str, update: UserConstraintsUpdate) -> UserConstraints:
        payload = update.model_dump(mode="json")
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserConstraintsORM).where(UserConstraintsORM.user_id == user_id)
            )
            orm = result.scalar_one_or_none()
            if orm is None:
                orm = UserConstraintsORM(user_id=user_id)
                session.add(orm)
            orm.wake_time = payload["wake_time"]
            orm.sleep_time = payload["sleep_time"]
            orm.work_schedule_json = payload["work_schedule"]
            orm.daily_commute_mins = payload["daily_commute_mins"]
            orm.fixed_commitments_json = payload["fixed_commitments"]
            orm.timezone = payload["timezone"]
            orm.updated_at = now_utc().replace(tzinfo=None)
            await session.commit()
            await session.refresh(orm)
            return self._orm_to_model(orm)

    async def list_user_ids(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(select(UserConstraintsORM.user_id))
            return list(result.scalars().all())
