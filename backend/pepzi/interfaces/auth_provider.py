"""
Authentication provider interface.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel


class User(BaseModel):
    """Authenticated user as seen by the API layer."""

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None


class IAuthProvider(ABC):
    @abstractmethod
    async def verify_token(self, token: str) -> User:
        """Verify a bearer token and return its user. Raises on invalid tokens."""
        pass

    @abstractmethod
    def is_enabled(self) -> bool:
        """Whether a missing token must be rejected."""
        pass
