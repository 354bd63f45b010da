"""
Custom exceptions for the application.
"""

from typing import Any, Optional
from uuid import UUID


class PepziError(Exception):
    """Base exception for pepzi."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(PepziError):
    """Resource not found."""

    pass


class ValidationError(PepziError):
    """Validation error."""

    pass


class InvalidConstraintsError(ValidationError):
    """Malformed or inverted time window in user constraints."""

    pass


class AuthenticationError(PepziError):
    """Authentication failed."""

    pass


class InfrastructureError(PepziError):
    """Infrastructure-related error (DB, external services, etc.)."""

    pass


class PersistenceTimeoutError(InfrastructureError):
    """Data store unreachable or too slow. Safe to retry the whole mutation."""

    pass


class PlanGenerationError(InfrastructureError):
    """External plan generator returned nothing usable."""

    pass


class BusinessLogicError(PepziError):
    """Business logic constraint violation."""

    pass


class ConflictError(BusinessLogicError):
    """A proposed block overlaps existing blocks or fixed constraints."""

    def __init__(
        self,
        message: str,
        colliding_block_ids: Optional[list[UUID]] = None,
        constraint_conflicts: Optional[list[str]] = None,
    ):
        self.colliding_block_ids = list(colliding_block_ids or [])
        self.constraint_conflicts = list(constraint_conflicts or [])
        super().__init__(
            message,
            details={
                "colliding_block_ids": [str(block_id) for block_id in self.colliding_block_ids],
                "constraint_conflicts": self.constraint_conflicts,
            },
        )


class InvariantViolationError(PepziError):
    """Internal invariant broken (programming defect, never coerced)."""

    pass
