"""
adcraft.orchestration.circuit_breaker - Per-Service Circuit Breakers
======================================================================

This module implements the Circuit Breaker Registry: one breaker per external
service name (imagen, storage, firestore, gemini, vertex-ai, ...), shared by
every session in the process. When a dependency keeps failing, its breaker
opens and the ErrorHandler stops calling it for a cool-down period, going
straight to fallbacks instead.

State Machine (per service):

        ┌────────┐   failure_threshold    ┌────────┐
        │ CLOSED │ ─────────────────────> │  OPEN  │
        └────────┘                         └────┬───┘
             ^                                  │ check() after
             │ one success                      │ next_attempt_time
        ┌────┴────┐                             │
        │HALF_OPEN│ <───────────────────────────┘
        │         │ ──(one failure)──> OPEN (fresh timeout)
        └─────────┘

Invariants:
    - OPEN implies next_attempt_time is set.
    - Exactly one check() performs the OPEN → HALF_OPEN transition.
    - A single success in HALF_OPEN closes the breaker and zeroes the count.
    - A single failure in HALF_OPEN re-opens it without re-accumulating.
    - Breakers for different services never share a lock.

Scope:
    State is process-local memory. A multi-instance deployment has one
    independent registry per instance, and a restart closes every breaker.

Usage:
    >>> registry = CircuitBreakerRegistry(["imagen", "storage"])
    >>> if await registry.check("imagen"):
    ...     try:
    ...         result = await provider.generate(request)
    ...         await registry.record_success("imagen")
    ...     except Exception:
    ...         await registry.record_failure("imagen")
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel, Field

from adcraft.core.enums import CircuitBreakerState

logger = structlog.get_logger()


# =============================================================================
# Snapshot Model
# =============================================================================
# Monotonic timestamps mean nothing outside the process, so snapshots report
# the remaining cool-down in seconds instead of raw clock values.
# =============================================================================
class CircuitBreakerSnapshot(BaseModel):
    """Read-only view of one breaker, for health reports.

    Attributes:
        service_name: The guarded service.
        state: Current breaker state.
        failure_count: Failures recorded since the last close.
        failure_threshold: Failures that open a closed breaker.
        recovery_timeout: Open-state cool-down in seconds.
        retry_in_seconds: Remaining cool-down while OPEN, else None.
    """

    service_name: str
    state: CircuitBreakerState
    failure_count: int = Field(ge=0)
    failure_threshold: int
    recovery_timeout: float
    retry_in_seconds: Optional[float] = None


# =============================================================================
# CircuitBreaker
# =============================================================================
class CircuitBreaker:
    """Breaker for a single external service.

    Attributes:
        service_name: Name of the guarded service.
        failure_threshold: Consecutive failures before CLOSED → OPEN.
        recovery_timeout: Seconds OPEN blocks calls.

    Example:
        >>> breaker = CircuitBreaker("imagen", failure_threshold=3)
        >>> await breaker.record_failure()
        >>> breaker.failure_count
        1
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.service_name: str = service_name
        self.failure_threshold: int = failure_threshold
        self.recovery_timeout: float = recovery_timeout
        self._clock = clock

        self._state: CircuitBreakerState = CircuitBreakerState.CLOSED
        self._failure_count: int = 0
        self._last_failure_time: Optional[float] = None
        self._next_attempt_time: Optional[float] = None

        # Writes to one service's counters are serialized; other services
        # have their own lock.
        self._lock: asyncio.Lock = asyncio.Lock()
        self._logger = logger.bind(component="circuit_breaker", service=service_name)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> CircuitBreakerState:
        """Current state. Managed only by check() and record_*()."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Failures recorded since the breaker last closed."""
        return self._failure_count

    @property
    def last_failure_time(self) -> Optional[float]:
        """Clock value of the most recent failure."""
        return self._last_failure_time

    @property
    def next_attempt_time(self) -> Optional[float]:
        """Clock value after which an OPEN breaker admits a trial call."""
        return self._next_attempt_time

    # =========================================================================
    # Public Methods
    # =========================================================================

    async def check(self) -> bool:
        """Return whether a call to this service is currently permitted.

        Decision Logic:
            - CLOSED:    True
            - OPEN:      False until next_attempt_time, then transition to
                         HALF_OPEN and return True (the single trial call)
            - HALF_OPEN: True
        """
        async with self._lock:
            if self._state == CircuitBreakerState.CLOSED:
                return True

            if self._state == CircuitBreakerState.OPEN:
                now = self._clock()
                if self._next_attempt_time is not None and now >= self._next_attempt_time:
                    self._state = CircuitBreakerState.HALF_OPEN
                    self._logger.info(
                        "circuit_breaker_half_open",
                        failure_count=self._failure_count,
                    )
                    return True
                return False

            return True

    async def record_success(self) -> None:
        """Record a successful call.

        HALF_OPEN closes the breaker and zeroes the failure count. In any
        other state this is a no-op.
        """
        async with self._lock:
            if self._state != CircuitBreakerState.HALF_OPEN:
                return

            self._state = CircuitBreakerState.CLOSED
            self._failure_count = 0
            self._next_attempt_time = None
            self._logger.info("circuit_breaker_closed", reason="trial_succeeded")

    async def record_failure(self) -> None:
        """Record a failed call.

        Effects:
            - CLOSED:    count += 1; open once count reaches the threshold
            - HALF_OPEN: re-open immediately with a fresh timeout
            - OPEN:      count += 1 (cool-down unchanged)
        """
        async with self._lock:
            now = self._clock()
            self._failure_count += 1
            self._last_failure_time = now

            if self._state == CircuitBreakerState.HALF_OPEN:
                self._open(now)
                self._logger.warning(
                    "circuit_breaker_reopened",
                    reason="trial_failed",
                    failure_count=self._failure_count,
                )
            elif (
                self._state == CircuitBreakerState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._open(now)
                self._logger.warning(
                    "circuit_breaker_opened",
                    failure_count=self._failure_count,
                    failure_threshold=self.failure_threshold,
                    recovery_timeout=self.recovery_timeout,
                )

    async def reset(self) -> None:
        """Force the breaker back to CLOSED with a zero count."""
        async with self._lock:
            self._state = CircuitBreakerState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._next_attempt_time = None
            self._logger.info("circuit_breaker_reset")

    def snapshot(self) -> CircuitBreakerSnapshot:
        """Build a read-only view of this breaker."""
        retry_in: Optional[float] = None
        if self._state == CircuitBreakerState.OPEN and self._next_attempt_time is not None:
            retry_in = round(max(0.0, self._next_attempt_time - self._clock()), 3)
        return CircuitBreakerSnapshot(
            service_name=self.service_name,
            state=self._state,
            failure_count=self._failure_count,
            failure_threshold=self.failure_threshold,
            recovery_timeout=self.recovery_timeout,
            retry_in_seconds=retry_in,
        )

    # =========================================================================
    # Internal
    # =========================================================================

    def _open(self, now: float) -> None:
        self._state = CircuitBreakerState.OPEN
        self._next_attempt_time = now + self.recovery_timeout

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(service={self.service_name!r}, "
            f"state={self._state.value}, failures={self._failure_count})"
        )


# =============================================================================
# CircuitBreakerRegistry
# =============================================================================
# One instance per process context, constructed by the AdCraft facade and
# injected into the ErrorHandler. Unknown service names get a breaker on
# first use with the registry defaults.
# =============================================================================
class CircuitBreakerRegistry:
    """Process-wide map of service name → CircuitBreaker.

    Example:
        >>> registry = CircuitBreakerRegistry(["imagen"], failure_threshold=2)
        >>> await registry.record_failure("imagen")
        >>> await registry.record_failure("imagen")
        >>> await registry.check("imagen")
        False
    """

    def __init__(
        self,
        services: Optional[Iterable[str]] = None,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        for name in services or ():
            self.get(name)

    def get(self, service: str) -> CircuitBreaker:
        """Return the breaker for ``service``, creating it on first use."""
        breaker = self._breakers.get(service)
        if breaker is None:
            breaker = CircuitBreaker(
                service,
                failure_threshold=self.failure_threshold,
                recovery_timeout=self.recovery_timeout,
                clock=self._clock,
            )
            self._breakers[service] = breaker
        return breaker

    async def check(self, service: str) -> bool:
        """Whether calls to ``service`` are currently permitted."""
        return await self.get(service).check()

    async def record_success(self, service: str) -> None:
        """Record a successful call to ``service``."""
        await self.get(service).record_success()

    async def record_failure(self, service: str) -> None:
        """Record a failed call to ``service``."""
        await self.get(service).record_failure()

    async def reset(self, service: Optional[str] = None) -> None:
        """Reset one breaker, or all of them when ``service`` is None."""
        targets = [self.get(service)] if service else list(self._breakers.values())
        for breaker in targets:
            await breaker.reset()

    def snapshot(self) -> dict[str, CircuitBreakerSnapshot]:
        """Read-only view of every breaker, keyed by service name."""
        return {name: b.snapshot() for name, b in sorted(self._breakers.items())}

    @property
    def services(self) -> list[str]:
        """Names of all services with a breaker."""
        return sorted(self._breakers)

    def __contains__(self, service: object) -> bool:
        return service in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
