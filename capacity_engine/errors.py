"""
Error types raised by the capacity analytics engine.
"""

from typing import Optional


class CapacityEngineError(Exception):
    """Base class for engine errors."""
    code = "capacity_engine_error"


class InsufficientDataError(CapacityEngineError):
    """Not enough history for a statistical operation."""
    code = "insufficient_history"

    def __init__(
        self,
        message: str,
        required: Optional[int] = None,
        available: Optional[int] = None
    ):
        super().__init__(message)
        self.required = required
        self.available = available


class ValidationError(CapacityEngineError):
    """Malformed or out-of-range input record."""
    code = "validation_error"


class NotFoundError(CapacityEngineError):
    """Unknown team, member, or alert id."""
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id
