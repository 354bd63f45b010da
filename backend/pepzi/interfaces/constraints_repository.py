"""
User constraints repository interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from pepzi.models.constraints import UserConstraints, UserConstraintsUpdate


class IConstraintsRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserConstraints]:
        pass

    @abstractmethod
    async def upsert(self, user_id: str, update: UserConstraintsUpdate) -> UserConstraints:
        pass

    @abstractmethod
    async def list_user_ids(self) -> list[str]:
        pass
