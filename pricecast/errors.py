"""
PriceCast Exceptions.

Centralized exception definitions with:
- Error codes for client handling
- HTTP status code hints for adapters
- Structured error details

Callers can tell apart input errors (fix and resend), conflicts (retry the
whole operation), dependency failures (retry with backoff) and internal faults
(investigate).
"""

from enum import Enum
from typing import Any, Dict, Iterable, Optional

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(str, Enum):
    """Application error codes."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"
    INVALID_TRANSITION = "E1003"
    UNKNOWN_KPI = "E1004"
    CONCURRENCY_CONFLICT = "E1005"

    # Plan limit errors (3xxx)
    LIMIT_EXCEEDED = "E3001"

    # External service errors (5xxx)
    DEPENDENCY_ERROR = "E5000"

    # Data errors (6xxx)
    INVARIANT_VIOLATION = "E6001"
    CONFIGURATION_ERROR = "E6002"


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class PriceCastError(Exception):
    """Base exception for the pricing decision engine."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        super().__init__(message)

    def to_detail(self) -> ErrorDetail:
        """Convert to a serializable error detail."""
        return ErrorDetail(
            code=self.code.value,
            message=self.message,
            field=self.field,
            details=self.details,
        )


# ============================================================================
# SPECIFIC EXCEPTIONS
# ============================================================================


class ValidationError(PriceCastError):
    """Bad input shape or range."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            field=field,
            details=details,
        )


class NotFoundError(PriceCastError):
    """Resource not found error."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            code=code,
            status_code=404,
            details={"resource": resource, "identifier": identifier, **(details or {})},
        )


class UnknownKPIError(NotFoundError):
    """KPI key is not predicted by the chosen scenario."""

    def __init__(self, kpi_key: str, allowed: Iterable[str] = ()):
        super().__init__(
            resource="KPI",
            identifier=kpi_key,
            details={"allowed": sorted(allowed)},
            code=ErrorCode.UNKNOWN_KPI,
        )


class InvalidTransitionError(PriceCastError):
    """Lifecycle violation."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            message=f"Cannot move decision from '{current}' to '{requested}'",
            code=ErrorCode.INVALID_TRANSITION,
            status_code=409,
            details={"current": current, "requested": requested},
        )


class ConcurrencyConflictError(PriceCastError):
    """Lost an optimistic-lock race. Retry the whole operation."""

    def __init__(self, resource: str, identifier: str, expected_revision: Optional[int] = None):
        super().__init__(
            message=f"{resource} {identifier} was modified concurrently",
            code=ErrorCode.CONCURRENCY_CONFLICT,
            status_code=409,
            details={
                "resource": resource,
                "identifier": identifier,
                "expected_revision": expected_revision,
            },
        )


class LimitExceededError(PriceCastError):
    """Plan limit reached for the current period."""

    def __init__(self, action: str, limit: int, used: int, reason: str = ""):
        super().__init__(
            message=reason or f"Plan limit reached for {action} ({used}/{limit})",
            code=ErrorCode.LIMIT_EXCEEDED,
            status_code=429,
            details={"action": action, "limit": limit, "used": used},
        )


class DependencyError(PriceCastError):
    """An external collaborator failed or timed out."""

    def __init__(self, dependency: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.dependency = dependency
        super().__init__(
            message=f"{dependency}: {message}",
            code=ErrorCode.DEPENDENCY_ERROR,
            status_code=503,
            details={"dependency": dependency, **(details or {})},
        )


class ConfigurationError(PriceCastError):
    """The elasticity table or settings are misconfigured."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            details=details,
        )
        logger.error("configuration_error", error=message, **self.details)


class InvariantViolationError(PriceCastError):
    """Stored state breaks an append-only invariant. Signals a bug."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVARIANT_VIOLATION,
            status_code=500,
            details=details,
        )
        logger.error("invariant_violation", error=message, **self.details)
