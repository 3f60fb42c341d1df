"""
adcraft.core.models - Core Data Models
========================================

This module defines the Pydantic data models shared by the resilience layer
and the handoff machinery. Session state lives in adcraft.core.state.

Model Hierarchy:
    ErrorContext       → What failed, where, and how badly? (immutable)
    ErrorResolution    → What did we decide to do about it? (immutable)
    FallbackStrategy   → A substitute action, as tagged data (immutable)
    ErrorRecord        → History entry tying the above together
    HandleResult       → What ErrorHandler.handle() returns to its caller
    HandoffPackage     → Context passed from one stage to the next (immutable)
    HandoffResult      → Outcome of HandoffValidator.prepare()

Data Flow:
    ┌──────────────┐  raises   ┌──────────────┐  ErrorRecord  ┌──────────────┐
    │ External call│ ────────→ │ ErrorHandler │ ────────────→ │ error history│
    └──────────────┘           └──────┬───────┘               └──────────────┘
                                      │ HandleResult
                                      ↓
                               ┌──────────────┐  HandoffPackage ┌─────────────┐
                               │ Orchestrator │ ──────────────→ │ next stage  │
                               └──────────────┘                 └─────────────┘
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from adcraft.core.enums import (
    AgentType,
    ErrorCategory,
    ErrorSeverity,
    FallbackType,
    Locale,
    ResolutionStrategy,
)


# =============================================================================
# Helpers
# =============================================================================
def _now() -> datetime:
    """Get the current UTC timestamp."""
    return datetime.now(timezone.utc)


# =============================================================================
# Error Context
# =============================================================================
# Created at the moment a wrapped call raises. Frozen: later stages read it
# but nothing may rewrite what happened.
# =============================================================================
class ErrorContext(BaseModel):
    """Describes one failure occurrence.

    Attributes:
        session_id: Pipeline session the failure belongs to.
        operation: Name of the wrapped operation (e.g. "generate_asset").
        category: Which dependency family failed.
        severity: How badly the failure affects the pipeline.
        timestamp: When the failure was observed (UTC).
        metadata: Free-form context (model, prompt length, file name...).
        retryable: Whether repeating the operation can succeed.
        recoverable: Whether any fallback may substitute a result.

    Example:
        >>> ctx = ErrorContext(
        ...     session_id="s-1",
        ...     operation="generate_asset",
        ...     category=ErrorCategory.GENERATION_API,
        ...     severity=ErrorSeverity.MEDIUM,
        ... )
    """

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(description="Pipeline session identifier")
    operation: str = Field(description="Name of the failed operation")
    category: ErrorCategory = Field(description="Dependency family that failed")
    severity: ErrorSeverity = Field(
        default=ErrorSeverity.MEDIUM,
        description="Impact of the failure",
    )
    timestamp: datetime = Field(
        default_factory=_now,
        description="When the failure was observed",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form failure context",
    )
    retryable: bool = Field(default=True, description="Repeating may succeed")
    recoverable: bool = Field(default=True, description="A fallback may substitute")


# =============================================================================
# Fallback Strategy
# =============================================================================
# A fallback is DATA: a type tag plus parameters. The FallbackCatalog maps the
# type tag to an async handler, so strategies can be logged, serialized and
# compared without holding live closures.
# =============================================================================
class FallbackStrategy(BaseModel):
    """A named alternative action, dispatched by type through a handler table.

    Attributes:
        type: Which handler executes this strategy.
        description: Human-readable description (logged and reported).
        parameters: Handler inputs (e.g. {"model": "imagen-3"}).

    Example:
        >>> FallbackStrategy(
        ...     type=FallbackType.ALTERNATE_SERVICE,
        ...     description="Use a cheaper image model",
        ...     parameters={"model": "imagen-3"},
        ... )
    """

    model_config = ConfigDict(frozen=True)

    type: FallbackType = Field(description="Handler selector")
    description: str = Field(description="Human-readable description")
    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Inputs passed to the handler",
    )


# =============================================================================
# Error Resolution
# =============================================================================
class ErrorResolution(BaseModel):
    """Decision value computed deterministically from an ErrorContext.

    Attributes:
        strategy: RETRY, FALLBACK, FAIL or IGNORE.
        max_retries: Attempts for RETRY (None otherwise).
        retry_delay: Seconds between attempts for RETRY (None otherwise).
        fallback_options: Ordered fallback candidates.
        user_notification: Whether the user should be told about the failure.
    """

    model_config = ConfigDict(frozen=True)

    strategy: ResolutionStrategy = Field(description="Chosen resolution")
    max_retries: Optional[int] = Field(default=None, ge=0)
    retry_delay: Optional[float] = Field(default=None, ge=0.0)
    fallback_options: list[FallbackStrategy] = Field(default_factory=list)
    user_notification: bool = Field(default=False)


# =============================================================================
# Error Record
# =============================================================================
class ErrorRecord(BaseModel):
    """History entry for one handled failure.

    Created by the ErrorHandler and appended to its bounded history. The only
    permitted mutation is ``mark_resolved()``.

    Attributes:
        id: Unique record identifier.
        context: The ErrorContext of the failure.
        original_error: Serialized payload of the raised exception.
        message: Extracted human-readable message.
        resolution: The computed ErrorResolution.
        fallback_used: The strategy that produced the substitute result.
        resolved: Whether the failure was absorbed.
        resolved_at: When it was absorbed.
    """

    id: str = Field(default_factory=lambda: f"err_{uuid4().hex[:12]}")
    context: ErrorContext
    original_error: dict[str, Any] = Field(default_factory=dict)
    message: str
    resolution: ErrorResolution
    fallback_used: Optional[FallbackStrategy] = None
    resolved: bool = False
    resolved_at: Optional[datetime] = None

    def mark_resolved(self, fallback: Optional[FallbackStrategy] = None) -> None:
        """Mark the failure absorbed, optionally naming the fallback that did it."""
        self.resolved = True
        self.resolved_at = _now()
        if fallback is not None:
            self.fallback_used = fallback


# =============================================================================
# Handle Result
# =============================================================================
class HandleResult(BaseModel):
    """Outcome of ErrorHandler.handle().

    Attributes:
        success: True when a retry or fallback produced a usable result
            (or the resolution was IGNORE).
        result: The substitute or retried result, if any.
        fallback_used: The strategy that produced ``result``.
        should_retry: True when the caller should retry itself (a RETRY
            resolution without an operation to re-invoke).
        retry_after_ms: Suggested wait before retrying (rate-limit path).
        error_record: The history entry for this failure.
    """

    success: bool
    result: Any = None
    fallback_used: Optional[FallbackStrategy] = None
    should_retry: bool = False
    retry_after_ms: Optional[int] = None
    error_record: ErrorRecord


# =============================================================================
# Handoff Package
# =============================================================================
class HandoffPackage(BaseModel):
    """Serialized context passed from one agent stage to the next.

    Created once per successful handoff and persisted with the session.

    Attributes:
        handoff_id: Unique package identifier.
        session_id: Owning session.
        source_agent: Stage handing off.
        target_agent: Stage receiving.
        payload: The upstream analysis or creative direction.
        confidence: Upstream confidence score (0-1).
        cost_so_far: Cumulative session spend at handoff time (USD).
        locale: User locale carried downstream.
        estimated_processing_time: Downstream processing estimate (seconds).
        warnings: Advisory warnings raised during validation.
        created_at: Package creation time.
    """

    model_config = ConfigDict(frozen=True)

    handoff_id: str = Field(default_factory=lambda: f"handoff_{uuid4().hex[:12]}")
    session_id: str
    source_agent: AgentType
    target_agent: AgentType
    payload: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    cost_so_far: float = Field(default=0.0, ge=0.0)
    locale: Locale = Locale.EN
    estimated_processing_time: int = Field(default=0, ge=0)
    warnings: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class HandoffResult(BaseModel):
    """Outcome of HandoffValidator.prepare().

    ``package`` is set if and only if ``is_valid`` is True.
    """

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    package: Optional[HandoffPackage] = None
