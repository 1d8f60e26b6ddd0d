"""Error taxonomy for the allocation and consolidation engine.

Every operation surfaces one of these to its caller. The API layer maps
each class to an HTTP status and a structured failure body.
"""

from typing import Optional


class FreightMeshError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500

    def __init__(self, message: str, cause: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        """Structured failure payload."""
        return {
            "success": False,
            "error": type(self).__name__,
            "detail": self.message,
            "cause": self.cause,
        }


class ValidationError(FreightMeshError):
    """Missing or malformed input (e.g. no company id)."""

    status_code = 400


class NotFoundError(FreightMeshError):
    """Truck, driver, route or opportunity is absent."""

    status_code = 404


class StateConflictError(FreightMeshError):
    """Operation conflicts with the current state of a record."""

    status_code = 409


class InvalidArgumentError(StateConflictError):
    """A route id that is not part of the opportunity."""

    status_code = 400


class CapacityError(FreightMeshError):
    """Pending load exists but no eligible truck can take it."""

    status_code = 422
