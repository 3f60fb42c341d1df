"""
adcraft.orchestration.error_handler - Resilient Error Handling Core
=====================================================================

This module implements the ErrorHandler: every paid, unreliable external call
made by an agent stage (vision analysis, image generation, video generation,
object storage, document store) runs through it. When a call fails, the
handler classifies the failure, consults the circuit breaker of the service
behind it, and then retries, falls back, fails or ignores.

Architecture Context:

    ┌───────────────────────────────────────────────────────────────────────┐
    │                        ORCHESTRATION LAYER                            │
    │                                                                       │
    │  ┌──────────────┐   execute()  ┌────────────────┐   check / record   │
    │  │ Agent stage  │ ───────────> │  ErrorHandler  │ ─────────────────> │
    │  │ (Maya/David/ │              │                │   CircuitBreaker   │
    │  │  Zara)       │ <─────────── │  1. Record     │   Registry         │
    │  └──────────────┘ CallOutcome  │  2. Breaker?   │                    │
    │                                │  3. Dispatch   │   get_strategies   │
    │                                │  4. Fallbacks  │ ─────────────────> │
    │                                └────────────────┘   FallbackCatalog  │
    │                                        │                              │
    │                                        v                              │
    │                              ┌─────────────────┐                      │
    │                              │ Error history   │ (bounded deque)      │
    │                              └─────────────────┘                      │
    └───────────────────────────────────────────────────────────────────────┘

handle() Decision Tree:

    failure
       │
       v
    build ErrorRecord (message, resolution) ──> append to history
       │
       v
    resolution FAIL? (validation / budget) ──> YES ──> record breaker failure,
       │                                               return unsuccessful
       NO
       │
       v
    breaker for category's service permits? ──> NO ──> FALLBACK CHAIN
       │                                               (no retry)
      YES
       │
       v
    ├── RETRY    → re-invoke operation up to max_retries times
    │               success → record_success, resolved
    │               exhausted → should_retry=False, FALLBACK CHAIN
    │               no operation → should_retry=True (caller retries)
    ├── FALLBACK → FALLBACK CHAIN
    ├── IGNORE   → success, no result
    └── FAIL     → record_failure, unsuccessful

    FALLBACK CHAIN: custom fallbacks, then the category's catalog list
    (universal graceful degradation last). First strategy that does not
    raise wins. All raise → unsuccessful, record stays unresolved.

Breaker Accounting:
    execute() checks the breaker before the primary call and records the
    primary call's success or failure. handle() records every retry attempt
    and the FAIL path. Image fallbacks that re-issue the request check and
    record the imagen breaker too. A tripped breaker therefore stops every
    call to its service for every session in the process.

Usage:
    >>> handler = ErrorHandler(registry, catalog, ResilienceConfig())
    >>> outcome = await handler.execute(
    ...     lambda: provider.generate(request),
    ...     session_id="s-1",
    ...     operation="generate_asset",
    ...     category=ErrorCategory.GENERATION_API,
    ... )
    >>> outcome.degraded
    False
"""

from __future__ import annotations

import asyncio
from collections import Counter, deque
from typing import Any, Awaitable, Callable, Mapping, Optional

import structlog
from pydantic import BaseModel, Field

from adcraft.core.config import ResilienceConfig
from adcraft.core.enums import (
    CircuitBreakerState,
    ErrorCategory,
    ErrorSeverity,
    FallbackType,
    ResolutionStrategy,
)
from adcraft.core.exceptions import (
    AdCraftError,
    FallbackUnavailableError,
    GenerationFailedError,
    ServiceError,
)
from adcraft.core.models import (
    ErrorContext,
    ErrorRecord,
    ErrorResolution,
    FallbackStrategy,
    HandleResult,
)
from adcraft.orchestration.circuit_breaker import (
    CircuitBreakerRegistry,
    CircuitBreakerSnapshot,
)
from adcraft.orchestration.classification import (
    DEFAULT_RATE_LIMIT_RETRY_MS,
    NON_RECOVERABLE_CATEGORIES,
    classify_severity,
    determine_resolution,
    extract_message,
    extract_retry_after_ms,
    infer_category,
    is_retryable,
    serialize_error,
    service_for_category,
)
from adcraft.orchestration.fallbacks import FallbackCatalog, FallbackHandler

logger = structlog.get_logger()

Operation = Callable[[], Awaitable[Any]]


# =============================================================================
# Result Models
# =============================================================================
class CallOutcome(BaseModel):
    """Result of ErrorHandler.execute().

    Attributes:
        result: The primary result, the retried result, or the fallback's
            substitute.
        degraded: True when a fallback produced ``result``.
        fallback_used: The strategy that produced ``result``.
        error_record: History entry, when the primary call failed.
    """

    result: Any = None
    degraded: bool = False
    fallback_used: Optional[FallbackStrategy] = None
    error_record: Optional[ErrorRecord] = None


class ErrorStats(BaseModel):
    """Health/metrics snapshot of the resilience layer.

    Attributes:
        total_errors: Failures handled since startup.
        errors_by_category: Failure counts per category.
        errors_by_severity: Failure counts per severity.
        resolved_errors: Failures absorbed by a retry, fallback or ignore.
        circuit_breakers: State of every breaker.
        recent_errors: The last N ErrorRecords, oldest first.
    """

    total_errors: int = 0
    errors_by_category: dict[str, int] = Field(default_factory=dict)
    errors_by_severity: dict[str, int] = Field(default_factory=dict)
    resolved_errors: int = 0
    circuit_breakers: dict[str, CircuitBreakerSnapshot] = Field(default_factory=dict)
    recent_errors: list[ErrorRecord] = Field(default_factory=list)


class HealthReport(BaseModel):
    """Outcome of ErrorHandler.health_check()."""

    healthy: bool
    status: str
    open_circuits: list[str] = Field(default_factory=list)
    total_errors: int = 0
    unresolved_recent: int = 0


# =============================================================================
# ErrorHandler
# =============================================================================
class ErrorHandler:
    """Classifies failures and retries, falls back, fails or ignores them.

    One instance per process context, built by the AdCraft facade and shared
    by all agent stages.

    Attributes:
        breakers: The shared CircuitBreakerRegistry.
        catalog: The FallbackCatalog (owns the session cache).
        config: Retry and history settings.

    Example:
        >>> result = await handler.handle(
        ...     error,
        ...     handler.build_context(error, "s-1", "upload", ErrorCategory.OBJECT_STORAGE),
        ... )
        >>> result.success
        True
    """

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        catalog: FallbackCatalog,
        config: Optional[ResilienceConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.breakers = breakers
        self.catalog = catalog
        self.config = config or ResilienceConfig()
        self._sleep = sleep

        # Bounded history for reporting; the counters below cover every
        # failure ever handled, including records rotated out of the deque.
        self._history: deque[ErrorRecord] = deque(maxlen=self.config.history_limit)
        self._total_errors: int = 0
        self._resolved_errors: int = 0
        self._by_category: Counter[str] = Counter()
        self._by_severity: Counter[str] = Counter()

        self._logger = logger.bind(component="error_handler")

    # =========================================================================
    # Context Construction
    # =========================================================================

    def build_context(
        self,
        error: Any,
        session_id: str,
        operation: str,
        category: ErrorCategory,
        metadata: Optional[dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        retryable: Optional[bool] = None,
    ) -> ErrorContext:
        """Classify ``error`` and freeze it into an ErrorContext.

        Explicit ``severity``/``retryable`` override the classification.
        """
        return ErrorContext(
            session_id=session_id,
            operation=operation,
            category=category,
            severity=severity or classify_severity(error, category),
            retryable=is_retryable(error, category) if retryable is None else retryable,
            recoverable=category not in NON_RECOVERABLE_CATEGORIES,
            metadata=dict(metadata or {}),
        )

    # =========================================================================
    # Core Operation
    # =========================================================================

    async def handle(
        self,
        error: Any,
        context: ErrorContext,
        custom_fallbacks: Optional[list[FallbackStrategy]] = None,
        operation: Optional[Operation] = None,
        handlers: Optional[Mapping[FallbackType, FallbackHandler]] = None,
        strategy: Optional[ResolutionStrategy] = None,
        retry_delay: Optional[float] = None,
        service: Optional[str] = None,
    ) -> HandleResult:
        """Handle one failure.

        Args:
            error: The raised exception (or provider error payload).
            context: Frozen failure context (see build_context()).
            custom_fallbacks: Caller strategies, tried before the catalog's.
            operation: Zero-argument coroutine factory re-invoked by RETRY.
            handlers: Per-call fallback handler overrides.
            strategy: Force a resolution strategy (IGNORE for best-effort work).
            retry_delay: Override the configured delay between retries.
            service: Breaker to consult, when it is not the category's own.

        Returns:
            HandleResult with success flag, result, fallback used,
            should_retry flag and the ErrorRecord.
        """
        fallbacks = [*(custom_fallbacks or []), *self.catalog.get_strategies(context.category)]
        resolution = determine_resolution(
            context.category,
            context.severity,
            context.retryable,
            fallback_options=fallbacks,
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay if retry_delay is None else retry_delay,
        )
        if strategy is not None and strategy != resolution.strategy:
            resolution = resolution.model_copy(update={"strategy": strategy})

        record = self._record(error, context, resolution)
        service = service or service_for_category(context.category)

        # --- Non-recoverable: never retried, never absorbed ---
        if resolution.strategy == ResolutionStrategy.FAIL:
            await self.breakers.record_failure(service)
            return HandleResult(success=False, error_record=record)

        # --- Breaker open: skip retry entirely ---
        if not await self.breakers.check(service):
            self._logger.warning(
                "circuit_open_skipping_retry",
                service=service,
                session_id=context.session_id,
                operation=context.operation,
            )
            return await self._run_fallbacks(record, fallbacks, handlers)

        if resolution.strategy == ResolutionStrategy.IGNORE:
            self._mark_resolved(record)
            return HandleResult(success=True, error_record=record)

        if resolution.strategy == ResolutionStrategy.RETRY:
            if operation is None:
                return HandleResult(
                    success=False,
                    should_retry=True,
                    retry_after_ms=context.metadata.get("retry_after_ms"),
                    error_record=record,
                )
            retried = await self._retry(record, resolution, service, operation)
            if retried is not None:
                return retried
            outcome = await self._run_fallbacks(record, fallbacks, handlers)
            return outcome.model_copy(update={"should_retry": False})

        return await self._run_fallbacks(record, fallbacks, handlers)

    # =========================================================================
    # Guarded Execution
    # =========================================================================

    async def execute(
        self,
        operation: Operation,
        *,
        session_id: str,
        operation_name: str,
        category: ErrorCategory,
        metadata: Optional[dict[str, Any]] = None,
        custom_fallbacks: Optional[list[FallbackStrategy]] = None,
        handlers: Optional[Mapping[FallbackType, FallbackHandler]] = None,
        best_effort: bool = False,
    ) -> CallOutcome:
        """Run ``operation`` behind the breaker and handle any failure.

        Internal AdCraft errors that are not dependency failures (budget,
        validation, session state) propagate unchanged. A RateLimitedError
        is handed to handle_rate_limit_error() with ``category``'s fallbacks.

        Args:
            best_effort: Resolve a failure with IGNORE (success, no result).

        Raises:
            GenerationFailedError: The call failed and nothing could
                substitute a result.
        """
        service = service_for_category(category)

        if await self.breakers.check(service):
            try:
                result = await operation()
            except AdCraftError as exc:
                if not isinstance(exc, ServiceError):
                    raise
                await self.breakers.record_failure(service)
                error: Any = exc
            except Exception as exc:
                await self.breakers.record_failure(service)
                error = exc
            else:
                await self.breakers.record_success(service)
                return CallOutcome(result=result)
        else:
            error = ServiceError(
                message=f"Circuit open for {service}",
                service=service,
            )

        if not best_effort and infer_category(error, category) == ErrorCategory.RATE_LIMIT:
            handled = await self.handle_rate_limit_error(
                error,
                session_id,
                service,
                operation,
                operation_name=operation_name,
                metadata=metadata,
                fallback_category=category,
                custom_fallbacks=custom_fallbacks,
                handlers=handlers,
            )
        else:
            context = self.build_context(error, session_id, operation_name, category, metadata)
            handled = await self.handle(
                error,
                context,
                custom_fallbacks=custom_fallbacks,
                operation=operation,
                handlers=handlers,
                strategy=ResolutionStrategy.IGNORE if best_effort else None,
            )
        if not handled.success:
            raise GenerationFailedError(
                message=f"{operation_name} failed: {handled.error_record.message}",
                operation=operation_name,
                error_record_id=handled.error_record.id,
            )
        return CallOutcome(
            result=handled.result,
            degraded=handled.fallback_used is not None,
            fallback_used=handled.fallback_used,
            error_record=handled.error_record,
        )

    # =========================================================================
    # Specialized Entry Points
    # =========================================================================

    async def handle_image_generation_error(
        self,
        error: Any,
        session_id: str,
        request: dict[str, Any],
        regenerate: Optional[Callable[[dict[str, Any]], Awaitable[Any]]] = None,
    ) -> HandleResult:
        """Handle an image generation failure.

        Fallback order: cheaper model, reduced parameters, demo placeholder,
        graceful degradation. The first two need ``regenerate`` to re-issue
        the request; without it they are skipped. They also go through the
        imagen breaker, so while it is open the chain ends in the
        placeholder without calling the provider.

        A RateLimitedError is filed under RATE_LIMIT and retried after the
        provider's wait, with the same fallbacks behind it.
        """
        service = service_for_category(ErrorCategory.GENERATION_API)
        metadata = {"model": request.get("model"), "prompt_length": len(request.get("prompt", ""))}

        async def alternate_model(strategy: FallbackStrategy, ctx: ErrorContext) -> Any:
            if regenerate is None:
                raise FallbackUnavailableError("No generator bound", strategy.type.value)
            current = request.get("model")
            model = strategy.parameters.get("model_map", {}).get(
                current, strategy.parameters.get("default_model")
            )
            if model is None or model == current:
                raise FallbackUnavailableError(
                    f"No cheaper model than {current}", strategy.type.value
                )
            return await self._guarded(
                service, strategy, lambda: regenerate({**request, "model": model})
            )

        async def simplified(strategy: FallbackStrategy, ctx: ErrorContext) -> Any:
            if regenerate is None:
                raise FallbackUnavailableError("No generator bound", strategy.type.value)
            params = {k: v for k, v in strategy.parameters.items() if k != "kind"}
            return await self._guarded(
                service, strategy, lambda: regenerate({**request, **params})
            )

        operation = (lambda: regenerate(request)) if regenerate is not None else None
        handlers = {
            FallbackType.ALTERNATE_SERVICE: alternate_model,
            FallbackType.SIMPLIFIED_OPERATION: simplified,
        }
        if infer_category(error, ErrorCategory.GENERATION_API) == ErrorCategory.RATE_LIMIT:
            return await self.handle_rate_limit_error(
                error,
                session_id,
                service,
                operation,
                operation_name="image_generation",
                metadata=metadata,
                fallback_category=ErrorCategory.GENERATION_API,
                handlers=handlers,
            )

        context = self.build_context(
            error,
            session_id,
            "image_generation",
            ErrorCategory.GENERATION_API,
            metadata=metadata,
        )
        return await self.handle(error, context, operation=operation, handlers=handlers)

    async def handle_storage_error(
        self,
        error: Any,
        session_id: str,
        file_name: str,
        operation: Optional[Operation] = None,
    ) -> HandleResult:
        """Handle an object storage failure.

        The fallback continues without persisting the file: a placeholder
        URL with ``stored: False``.
        """
        context = self.build_context(
            error,
            session_id,
            "file_upload",
            ErrorCategory.OBJECT_STORAGE,
            metadata={"file_name": file_name},
        )
        return await self.handle(error, context, operation=operation)

    async def handle_document_store_error(
        self,
        error: Any,
        session_id: str,
        operation_name: str,
        data: Optional[dict[str, Any]] = None,
        operation: Optional[Operation] = None,
    ) -> HandleResult:
        """Handle a document store failure.

        Fallbacks: cached session data, then temporary in-memory data built
        from ``data``. Both results carry ``stale: True`` and a warning.
        """
        context = self.build_context(
            error,
            session_id,
            operation_name,
            ErrorCategory.DOCUMENT_STORE,
            metadata={"data": data or {}},
        )
        return await self.handle(error, context, operation=operation)

    async def handle_rate_limit_error(
        self,
        error: Any,
        session_id: str,
        service: str,
        operation: Optional[Operation] = None,
        *,
        operation_name: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        fallback_category: Optional[ErrorCategory] = None,
        custom_fallbacks: Optional[list[FallbackStrategy]] = None,
        handlers: Optional[Mapping[FallbackType, FallbackHandler]] = None,
    ) -> HandleResult:
        """Handle a provider throttling response.

        Severity is always MEDIUM and the failure always retryable. The wait
        comes from the error (header or "retry after N"), defaulting to 60s,
        and is returned as ``retry_after_ms``. Retries wait that long and
        count against the breaker of ``service``.

        Args:
            fallback_category: Category of the throttled call. Its catalog
                strategies run before demo mode once retries are exhausted.
        """
        retry_after_ms = extract_retry_after_ms(error) or DEFAULT_RATE_LIMIT_RETRY_MS
        context = self.build_context(
            error,
            session_id,
            operation_name or f"{service}_request",
            ErrorCategory.RATE_LIMIT,
            metadata={**(metadata or {}), "service": service, "retry_after_ms": retry_after_ms},
            severity=ErrorSeverity.MEDIUM,
            retryable=True,
        )
        fallbacks = list(custom_fallbacks or [])
        if fallback_category is not None:
            fallbacks.extend(
                s for s in self.catalog.get_strategies(fallback_category)
                if s.type != FallbackType.GRACEFUL_DEGRADATION
            )
        result = await self.handle(
            error,
            context,
            custom_fallbacks=fallbacks,
            operation=operation,
            handlers=handlers,
            retry_delay=retry_after_ms / 1000,
            service=service,
        )
        return result.model_copy(update={"retry_after_ms": retry_after_ms})

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_error_stats(self) -> ErrorStats:
        """Snapshot of error counts, breaker states and recent records."""
        recent = list(self._history)[-self.config.recent_errors:]
        return ErrorStats(
            total_errors=self._total_errors,
            errors_by_category=dict(self._by_category),
            errors_by_severity=dict(self._by_severity),
            resolved_errors=self._resolved_errors,
            circuit_breakers=self.breakers.snapshot(),
            recent_errors=[r.model_copy(deep=True) for r in recent],
        )

    def history(self, session_id: Optional[str] = None) -> list[ErrorRecord]:
        """Records still in the history buffer, optionally for one session."""
        return [
            r for r in self._history
            if session_id is None or r.context.session_id == session_id
        ]

    def health_check(self) -> HealthReport:
        """Report whether the resilience layer is serving normally.

        Runs the classification rules on a fixed sample message (without
        recording it) and inspects breaker states. Any open breaker makes
        the status "degraded".
        """
        sample = "service unavailable: health check"
        classifier_ok = (
            is_retryable(sample) is True
            and classify_severity(sample) == ErrorSeverity.MEDIUM
            and extract_message(sample) == sample
        )
        open_circuits = [
            name for name, snap in self.breakers.snapshot().items()
            if snap.state == CircuitBreakerState.OPEN
        ]
        recent = list(self._history)[-self.config.recent_errors:]
        healthy = classifier_ok and not open_circuits
        return HealthReport(
            healthy=healthy,
            status="healthy" if healthy else "degraded",
            open_circuits=open_circuits,
            total_errors=self._total_errors,
            unresolved_recent=sum(1 for r in recent if not r.resolved),
        )

    # =========================================================================
    # Internal
    # =========================================================================

    def _record(
        self,
        error: Any,
        context: ErrorContext,
        resolution: ErrorResolution,
    ) -> ErrorRecord:
        record = ErrorRecord(
            context=context,
            original_error=serialize_error(error),
            message=extract_message(error),
            resolution=resolution,
        )
        self._history.append(record)
        self._total_errors += 1
        self._by_category[context.category.value] += 1
        self._by_severity[context.severity.value] += 1

        self._logger.warning(
            "error_handled",
            error_id=record.id,
            category=context.category.value,
            severity=context.severity.value,
            operation=context.operation,
            session_id=context.session_id,
            retryable=context.retryable,
            strategy=resolution.strategy.value,
            message=record.message,
        )
        return record

    def _mark_resolved(
        self,
        record: ErrorRecord,
        fallback: Optional[FallbackStrategy] = None,
    ) -> None:
        record.mark_resolved(fallback)
        self._resolved_errors += 1

    async def _retry(
        self,
        record: ErrorRecord,
        resolution: ErrorResolution,
        service: str,
        operation: Operation,
    ) -> Optional[HandleResult]:
        """Re-invoke ``operation``; None when every attempt failed."""
        attempts = resolution.max_retries or 0
        base_delay = resolution.retry_delay or 0.0

        for attempt in range(attempts):
            delay = base_delay * (self.config.backoff_multiplier ** attempt)
            if delay > 0:
                await self._sleep(delay)
            if not await self.breakers.check(service):
                self._logger.warning(
                    "retry_aborted_circuit_open",
                    service=service,
                    error_id=record.id,
                    attempt=attempt + 1,
                )
                return None
            try:
                result = await operation()
            except AdCraftError as exc:
                if not isinstance(exc, ServiceError):
                    raise
                await self.breakers.record_failure(service)
                self._log_retry_failure(record, attempt, exc)
            except Exception as exc:
                await self.breakers.record_failure(service)
                self._log_retry_failure(record, attempt, exc)
            else:
                await self.breakers.record_success(service)
                self._mark_resolved(record)
                self._logger.info(
                    "retry_succeeded",
                    error_id=record.id,
                    attempt=attempt + 1,
                    service=service,
                )
                return HandleResult(success=True, result=result, error_record=record)

        self._logger.warning(
            "retries_exhausted",
            error_id=record.id,
            attempts=attempts,
            service=service,
        )
        return None

    async def _guarded(
        self,
        service: str,
        strategy: FallbackStrategy,
        call: Operation,
    ) -> Any:
        """Run a fallback's provider call behind the breaker of ``service``."""
        if not await self.breakers.check(service):
            raise FallbackUnavailableError(
                message=f"Circuit open for {service}",
                fallback_type=strategy.type.value,
            )
        try:
            result = await call()
        except AdCraftError as exc:
            if isinstance(exc, ServiceError):
                await self.breakers.record_failure(service)
            raise
        except Exception:
            await self.breakers.record_failure(service)
            raise
        await self.breakers.record_success(service)
        return result

    def _log_retry_failure(self, record: ErrorRecord, attempt: int, exc: Exception) -> None:
        self._logger.info(
            "retry_attempt_failed",
            error_id=record.id,
            attempt=attempt + 1,
            error=extract_message(exc),
        )

    async def _run_fallbacks(
        self,
        record: ErrorRecord,
        strategies: list[FallbackStrategy],
        handlers: Optional[Mapping[FallbackType, FallbackHandler]],
    ) -> HandleResult:
        for strategy in strategies:
            try:
                result = await self.catalog.execute(strategy, record.context, handlers)
            except Exception as exc:
                self._logger.info(
                    "fallback_failed",
                    error_id=record.id,
                    fallback_type=strategy.type.value,
                    error=extract_message(exc),
                )
                continue

            self._mark_resolved(record, strategy)
            self._logger.info(
                "fallback_succeeded",
                error_id=record.id,
                fallback_type=strategy.type.value,
                description=strategy.description,
                session_id=record.context.session_id,
            )
            return HandleResult(
                success=True,
                result=result,
                fallback_used=strategy,
                error_record=record,
            )

        self._logger.error(
            "fallbacks_exhausted",
            error_id=record.id,
            category=record.context.category.value,
            session_id=record.context.session_id,
        )
        return HandleResult(success=False, error_record=record)
