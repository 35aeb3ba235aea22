"""Typed errors raised by the order engine.

Services raise these at the point a business rule is violated; the HTTP
layer maps them to responses via ``status_code`` and ``code``.
"""

from typing import Any, Dict, List, Optional


class OrderEngineError(Exception):
    """Base class for all order engine errors."""

    status_code = 400
    code = "order_engine_error"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(message)


class ValidationError(OrderEngineError):
    """Malformed or incomplete input."""

    code = "validation_error"


class NotFoundError(OrderEngineError):
    """Referenced order, KOT or invoice does not exist (or the id is malformed)."""

    status_code = 404
    code = "not_found"


class InvalidTransitionError(OrderEngineError):
    """Requested status change is not allowed from the current status."""

    code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot transition from {from_status} to {to_status}")


class ConflictError(OrderEngineError):
    """A uniqueness invariant or a concurrent modification check failed."""

    code = "conflict"


class InvalidStateError(OrderEngineError):
    """Mutation attempted on an entity in a terminal state."""

    code = "invalid_state"
