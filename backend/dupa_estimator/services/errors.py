"""
Error taxonomy for the pricing and instantiation engine.

Every error carries a ``retryable`` flag so callers can tell transient I/O
failures (raised by repository collaborators) from permanent validation or
resolution failures. The engine itself never retries.
"""
from typing import Optional


class EngineError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "field": self.field,
            "retryable": self.retryable,
        }


class ValidationError(EngineError):
    """Malformed template, negative quantity or negative percentage."""


class NotFoundError(EngineError):
    """Template, project or BOQ line item does not exist."""


class RateResolutionError(EngineError):
    """No master rate for a location / date / code. Permanent; never retried."""

    def __init__(
        self,
        kind: str,
        key: str,
        location: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.key = key
        self.location = location
        if message is None:
            where = f" at location '{location}'" if location else ""
            message = f"No {kind} rate found for '{key}'{where}"
        super().__init__(message, field=kind)


class ComputationError(EngineError):
    """Arithmetic failure in a pure computation (e.g. zero hauling capacity)."""


class StateTransitionError(EngineError):
    """An instantiation run was moved along an edge its state machine lacks."""


class RepositoryUnavailableError(EngineError):
    """Transient persistence or master-data failure; safe to retry."""

    retryable = True


class RateLookupTimeoutError(EngineError):
    """Rate lookups did not complete within the caller's budget."""

    retryable = True
