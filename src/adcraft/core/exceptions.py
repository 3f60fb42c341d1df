"""
adcraft.core.exceptions - Custom Exception Hierarchy
======================================================

This module defines the structured exception hierarchy for AdCraft.
Components raise and catch specific exception types that carry a
machine-readable error code and a ``details`` dict, never bare strings.

Exception Hierarchy:
    AdCraftError (base)
        ├── ConfigurationError       - Invalid config, missing required values
        ├── StateError               - Document store read/write failures
        ├── SessionNotFoundError     - Unknown session id            (404)
        ├── SessionStateError        - Illegal state transition       (400)
        ├── InvalidRequestError      - Malformed request payload      (400)
        ├── HandoffValidationError   - Handoff preconditions not met  (400)
        ├── BudgetExceededError      - Budget gate rejected a call    (402)
        ├── ConcurrencyLimitError    - Generation cap reached         (429)
        ├── GenerationFailedError    - All fallbacks exhausted        (500)
        ├── GenerationCancelledError - Caller cancelled an in-flight generation (409)
        ├── FallbackUnavailableError - A fallback could not substitute a result
        └── ServiceError             - Typed failure from an external dependency
                ├── RateLimitedError
                ├── UnauthorizedError
                ├── ServiceTimeoutError
                ├── InvalidArgumentError
                ├── ResourceNotFoundError
                └── ServiceUnavailableError

Typed Boundary Errors:
    Generation, storage and document-store clients raise ServiceError
    subclasses. Each subclass declares its retryability, severity and
    error category so the ErrorHandler can classify it by TYPE. Plain
    third-party exceptions still go through the substring heuristics in
    adcraft.orchestration.classification.

Usage:
    >>> from adcraft.core.exceptions import RateLimitedError
    >>> raise RateLimitedError(
    ...     message="rate limit exceeded, retry after 30",
    ...     service="imagen",
    ...     retry_after_ms=30000,
    ... )
"""

from __future__ import annotations

from typing import Any, Optional

from adcraft.core.enums import ErrorCategory, ErrorSeverity


# =============================================================================
# Base Exception
# =============================================================================
class AdCraftError(Exception):
    """Base exception for all AdCraft errors.

    Attributes:
        message: Human-readable error description (logged, never shown
            verbatim to end users).
        error_code: Machine-readable code, UPPER_SNAKE_CASE. The HTTP layer
            maps it to a status code and a localized user message.
        details: Arbitrary dict with additional debugging context.

    Example:
        >>> try:
        ...     await maya.chat(session_id, "hello")
        ... except AdCraftError as e:
        ...     print(f"[{e.error_code}] {e.message}")
    """

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception to a dictionary.

        Returns:
            Dictionary with error_type, message, error_code, and details.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration / State Errors
# =============================================================================
class ConfigurationError(AdCraftError):
    """Raised when AdCraft configuration is invalid or missing.

    Example:
        >>> raise ConfigurationError(
        ...     message="Unknown generation provider: 'dalle'",
        ...     details={"provider": "dalle"},
        ... )
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIGURATION_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class StateError(AdCraftError):
    """Raised when a document store operation fails.

    Attributes:
        collection: The collection involved, if known.
        document_id: The document involved, if known.
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        document_id: Optional[str] = None,
        error_code: str = "STATE_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched = {**(details or {})}
        if collection is not None:
            enriched["collection"] = collection
        if document_id is not None:
            enriched["document_id"] = document_id
        super().__init__(message=message, error_code=error_code, details=enriched)
        self.collection = collection
        self.document_id = document_id


# =============================================================================
# Session Errors
# =============================================================================
class SessionNotFoundError(AdCraftError):
    """Raised when a session id does not resolve to a stored session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Session not found: {session_id}",
            error_code="SESSION_NOT_FOUND",
            details={"session_id": session_id},
        )
        self.session_id = session_id


class SessionStateError(AdCraftError):
    """Raised when a request is not legal in the session's current state.

    Example:
        >>> raise SessionStateError(
        ...     session_id="s-1",
        ...     current="created",
        ...     requested="creating",
        ... )
    """

    def __init__(
        self,
        session_id: str,
        current: str,
        requested: str,
        message: Optional[str] = None,
    ) -> None:
        super().__init__(
            message=message
            or f"Session {session_id} cannot move from '{current}' to '{requested}'",
            error_code="SESSION_INVALID_STATE",
            details={
                "session_id": session_id,
                "current": current,
                "requested": requested,
            },
        )
        self.session_id = session_id


class InvalidRequestError(AdCraftError):
    """Raised when a request payload fails validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched = {**(details or {})}
        if field is not None:
            enriched["field"] = field
        super().__init__(message=message, error_code="VALIDATION_ERROR", details=enriched)
        self.field = field


class HandoffValidationError(AdCraftError):
    """Raised when a handoff is requested but the session is not ready for it.

    Attributes:
        errors: The hard validation errors reported by the HandoffValidator.
        warnings: Advisory warnings collected alongside them.
    """

    def __init__(
        self,
        session_id: str,
        errors: list[str],
        warnings: Optional[list[str]] = None,
    ) -> None:
        super().__init__(
            message=f"Handoff validation failed for session {session_id}: "
            + "; ".join(errors),
            error_code="HANDOFF_VALIDATION_FAILED",
            details={
                "session_id": session_id,
                "errors": list(errors),
                "warnings": list(warnings or []),
            },
        )
        self.errors = list(errors)
        self.warnings = list(warnings or [])


# =============================================================================
# Cost / Capacity Errors
# =============================================================================
class BudgetExceededError(AdCraftError):
    """Raised when a paid operation would break the session budget.

    Never retried and never swallowed by the ErrorHandler.

    Attributes:
        current_cost: Cumulative cost already spent in the session.
        estimated_cost: Predicted cost of the rejected operation.
        limit: The limit that would have been broken.
    """

    def __init__(
        self,
        message: str,
        current_cost: float,
        estimated_cost: float,
        limit: float,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code="BUDGET_EXCEEDED",
            details={
                **(details or {}),
                "current_cost": round(current_cost, 4),
                "estimated_cost": round(estimated_cost, 4),
                "limit": limit,
            },
        )
        self.current_cost = current_cost
        self.estimated_cost = estimated_cost
        self.limit = limit


class ConcurrencyLimitError(AdCraftError):
    """Raised when a session already has the maximum number of active generations."""

    def __init__(self, session_id: str, active: int, limit: int) -> None:
        super().__init__(
            message=(
                f"Session {session_id} has {active} active generations "
                f"(limit {limit})"
            ),
            error_code="RATE_LIMITED",
            details={"session_id": session_id, "active": active, "limit": limit},
        )
        self.active = active
        self.limit = limit


class GenerationFailedError(AdCraftError):
    """Raised when a generation failed and no fallback could substitute a result."""

    def __init__(
        self,
        message: str,
        operation: str,
        error_record_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code="GENERATION_FAILED",
            details={"operation": operation, "error_record_id": error_record_id},
        )
        self.operation = operation
        self.error_record_id = error_record_id


class GenerationCancelledError(AdCraftError):
    """Raised when a caller cancelled a generation while it was in flight.

    The late result is discarded and the session is left untouched.
    """

    def __init__(self, session_id: str, operation: str) -> None:
        super().__init__(
            message=f"{operation} was cancelled for session {session_id}",
            error_code="GENERATION_CANCELLED",
            details={"session_id": session_id, "operation": operation},
        )
        self.session_id = session_id
        self.operation = operation


class FallbackUnavailableError(AdCraftError):
    """Raised by a fallback handler that cannot produce a result.

    The ErrorHandler treats it like any other failing strategy and moves on
    to the next one in the list.
    """

    def __init__(self, message: str, fallback_type: str) -> None:
        super().__init__(
            message=message,
            error_code="FALLBACK_UNAVAILABLE",
            details={"fallback_type": fallback_type},
        )
        self.fallback_type = fallback_type


# =============================================================================
# Typed Boundary Errors
# =============================================================================
# Raised by external-capability clients (generation, storage, document store).
# Class attributes carry the classification so the ErrorHandler never has to
# sniff the message for these.
# =============================================================================
class ServiceError(AdCraftError):
    """Base class for typed failures raised by external dependencies.

    Class Attributes:
        retryable: Whether repeating the same call can succeed.
        severity: Default severity of this failure type.
        category: Category override, or None to keep the caller's category.
        code: Default error code.

    Attributes:
        service: Name of the dependency that failed (e.g. "imagen").
    """

    retryable: bool = True
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    category: Optional[ErrorCategory] = None
    code: str = "SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched = {**(details or {})}
        if service is not None:
            enriched["service"] = service
        super().__init__(message=message, error_code=self.code, details=enriched)
        self.service = service


class RateLimitedError(ServiceError):
    """The dependency throttled the request.

    Attributes:
        retry_after_ms: Provider-suggested wait, when it sent one.
    """

    retryable = True
    severity = ErrorSeverity.MEDIUM
    category = ErrorCategory.RATE_LIMIT
    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        retry_after_ms: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, service=service, details=details)
        self.retry_after_ms = retry_after_ms
        if retry_after_ms is not None:
            self.details["retry_after_ms"] = retry_after_ms


class UnauthorizedError(ServiceError):
    """Credentials were rejected. Repeating the call will not help."""

    retryable = False
    severity = ErrorSeverity.HIGH
    category = ErrorCategory.AUTHENTICATION
    code = "UNAUTHORIZED"


class ServiceTimeoutError(ServiceError):
    """The dependency did not answer in time."""

    retryable = True
    severity = ErrorSeverity.MEDIUM
    code = "SERVICE_TIMEOUT"


class InvalidArgumentError(ServiceError):
    """The dependency rejected the request content."""

    retryable = False
    severity = ErrorSeverity.LOW
    code = "INVALID_ARGUMENT"


class ResourceNotFoundError(ServiceError):
    """The requested remote resource does not exist."""

    retryable = False
    severity = ErrorSeverity.LOW
    code = "RESOURCE_NOT_FOUND"


class ServiceUnavailableError(ServiceError):
    """The dependency is temporarily down."""

    retryable = True
    severity = ErrorSeverity.MEDIUM
    code = "SERVICE_UNAVAILABLE"
