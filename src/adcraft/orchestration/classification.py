"""
adcraft.orchestration.classification - Failure Classification Rules
=====================================================================

Pure functions that turn a raised error into the inputs of an ErrorResolution:
message, severity, retryability, retry-after hint and guarded service name.
Nothing here touches breakers, history or I/O, so every rule can be tested on
its own and classifying the same error twice always gives the same answer.

Classification Order:
    1. Typed boundary errors (ServiceError subclasses) are classified by
       their declared attributes.
    2. Anything else (opaque third-party exceptions, strings, dict payloads)
       falls back to substring rules on the lower-cased message:

       Severity:
           "quota" / "limit"          → HIGH
           "auth" / "permission"      → HIGH
           "network" / "timeout"      → MEDIUM
           "validation" / "invalid"   → LOW
           otherwise                  → MEDIUM

       Retryability:
           "invalid", "malformed", "unauthorized", "forbidden",
           "not found" (without "network")                     → False
           "timeout", "network", "rate limit", "quota",
           "service unavailable", "internal"                   → True
           otherwise                                           → True

    The RATE_LIMIT category always classifies as MEDIUM and retryable, so a
    "rate limit exceeded" message is not promoted to HIGH by the "limit" rule.

Resolution:
    VALIDATION / BUDGET category     → FAIL (never retried, never absorbed)
    CRITICAL severity                → FALLBACK + user notification
    retryable and severity != LOW    → RETRY (max_retries, retry_delay)
    otherwise                        → FALLBACK
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any, Optional

from adcraft.core.enums import (
    ErrorCategory,
    ErrorSeverity,
    ResolutionStrategy,
)
from adcraft.core.exceptions import AdCraftError, RateLimitedError, ServiceError
from adcraft.core.models import ErrorResolution, FallbackStrategy


# =============================================================================
# Category → Service Mapping
# =============================================================================
# The breaker consulted for a failure is chosen by category alone.
# =============================================================================
SERVICE_BY_CATEGORY: dict[ErrorCategory, str] = {
    ErrorCategory.GENERATION_API: "imagen",
    ErrorCategory.OBJECT_STORAGE: "storage",
    ErrorCategory.DOCUMENT_STORE: "firestore",
    ErrorCategory.VISION_API: "gemini",
    ErrorCategory.MODEL_API: "vertex-ai",
    ErrorCategory.AUTHENTICATION: "auth",
    ErrorCategory.RATE_LIMIT: "rate-limit",
    ErrorCategory.NETWORK: "network",
    ErrorCategory.VALIDATION: "validation",
    ErrorCategory.BUDGET: "budget",
}

NON_RECOVERABLE_CATEGORIES = frozenset({ErrorCategory.VALIDATION, ErrorCategory.BUDGET})

DEFAULT_RATE_LIMIT_RETRY_MS = 60_000

_RETRY_AFTER_PATTERN = re.compile(r"retry after (\d+)", re.IGNORECASE)

_NON_RETRYABLE_MARKERS = ("invalid", "malformed", "unauthorized", "forbidden")
_RETRYABLE_MARKERS = (
    "timeout",
    "network",
    "rate limit",
    "quota",
    "service unavailable",
    "internal",
)


def service_for_category(category: ErrorCategory) -> str:
    """Return the breaker name guarding ``category``."""
    return SERVICE_BY_CATEGORY[category]


# =============================================================================
# Message Extraction
# =============================================================================
def extract_message(error: Any) -> str:
    """Extract a human-readable message from anything that was raised or returned.

    Order:
        str                     → itself
        AdCraftError            → .message
        other exceptions        → str(exc), or the class name when empty
        mapping                 → ["message"], then ["error"]
        object                  → .message, then .error
        anything else           → JSON dump

    Example:
        >>> extract_message({"error": "quota exhausted"})
        'quota exhausted'
    """
    if isinstance(error, str):
        return error
    if isinstance(error, AdCraftError):
        return error.message
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if isinstance(error, Mapping):
        for key in ("message", "error"):
            value = error.get(key)
            if isinstance(value, str) and value:
                return value
    else:
        for attr in ("message", "error"):
            value = getattr(error, attr, None)
            if isinstance(value, str) and value:
                return value
    return json.dumps(error, default=str)


def serialize_error(error: Any) -> dict[str, Any]:
    """Build the ``original_error`` payload stored on an ErrorRecord."""
    if isinstance(error, AdCraftError):
        return error.to_dict()
    if isinstance(error, BaseException):
        return {"error_type": error.__class__.__name__, "message": extract_message(error)}
    if isinstance(error, Mapping):
        return {"error_type": "dict", **{str(k): v for k, v in error.items()}}
    return {"error_type": type(error).__name__, "message": extract_message(error)}


# =============================================================================
# Severity / Retryability
# =============================================================================
def classify_severity(
    error: Any,
    category: Optional[ErrorCategory] = None,
) -> ErrorSeverity:
    """Infer severity from the error type, then from its message."""
    if category == ErrorCategory.RATE_LIMIT:
        return ErrorSeverity.MEDIUM
    if isinstance(error, ServiceError):
        return error.severity

    message = extract_message(error).lower()
    if "quota" in message or "limit" in message:
        return ErrorSeverity.HIGH
    if "auth" in message or "permission" in message:
        return ErrorSeverity.HIGH
    if "network" in message or "timeout" in message:
        return ErrorSeverity.MEDIUM
    if "validation" in message or "invalid" in message:
        return ErrorSeverity.LOW
    return ErrorSeverity.MEDIUM


def is_retryable(error: Any, category: Optional[ErrorCategory] = None) -> bool:
    """Infer whether repeating the failed call can succeed."""
    if category in NON_RECOVERABLE_CATEGORIES:
        return False
    if category == ErrorCategory.RATE_LIMIT:
        return True
    if isinstance(error, ServiceError):
        return error.retryable

    message = extract_message(error).lower()
    if any(marker in message for marker in _NON_RETRYABLE_MARKERS):
        return False
    if "not found" in message and "network" not in message:
        return False
    if any(marker in message for marker in _RETRYABLE_MARKERS):
        return True
    return True


def infer_category(error: Any, default: ErrorCategory) -> ErrorCategory:
    """Category declared by a typed error, else ``default``."""
    if isinstance(error, ServiceError) and error.category is not None:
        return error.category
    return default


# =============================================================================
# Retry-After Extraction
# =============================================================================
def extract_retry_after_ms(error: Any) -> Optional[int]:
    """Extract the provider's suggested wait in milliseconds.

    Sources, in order: RateLimitedError.retry_after_ms, a ``retry-after``
    header (seconds), then a "retry after N" phrase in the message.
    """
    if isinstance(error, RateLimitedError) and error.retry_after_ms is not None:
        return error.retry_after_ms

    headers = error.get("headers") if isinstance(error, Mapping) else getattr(error, "headers", None)
    if isinstance(headers, Mapping):
        for key, value in headers.items():
            if str(key).lower() == "retry-after":
                try:
                    return int(float(value) * 1000)
                except (TypeError, ValueError):
                    break

    match = _RETRY_AFTER_PATTERN.search(extract_message(error))
    if match:
        return int(match.group(1)) * 1000
    return None


# =============================================================================
# Resolution
# =============================================================================
def determine_resolution(
    category: ErrorCategory,
    severity: ErrorSeverity,
    retryable: bool,
    fallback_options: Optional[list[FallbackStrategy]] = None,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> ErrorResolution:
    """Choose what to do about a failure. Deterministic in its inputs.

    Example:
        >>> determine_resolution(
        ...     ErrorCategory.RATE_LIMIT, ErrorSeverity.MEDIUM, True
        ... ).strategy
        <ResolutionStrategy.RETRY: 'retry'>
    """
    options = list(fallback_options or [])

    if category in NON_RECOVERABLE_CATEGORIES:
        return ErrorResolution(strategy=ResolutionStrategy.FAIL, user_notification=True)

    if severity == ErrorSeverity.CRITICAL:
        return ErrorResolution(
            strategy=ResolutionStrategy.FALLBACK,
            fallback_options=options,
            user_notification=True,
        )

    if retryable and severity != ErrorSeverity.LOW:
        return ErrorResolution(
            strategy=ResolutionStrategy.RETRY,
            max_retries=max_retries,
            retry_delay=retry_delay,
            fallback_options=options,
        )

    return ErrorResolution(strategy=ResolutionStrategy.FALLBACK, fallback_options=options)
