"""
adcraft.orchestration - Resilience and Pipeline Control Layer
===============================================================

This package contains the components that sit between the agent stages and
their unreliable, paid dependencies, plus the session state machine that
carries a pipeline run from one stage to the next.

Components:
    - CircuitBreakerRegistry: Per-service breakers shared by all sessions
    - FallbackCatalog:        Ordered substitute actions per error category
    - ErrorHandler:           Classify, retry, fall back, fail or ignore
    - BudgetGuard:            Cost estimates and the hard budget gate
    - HandoffValidator:       Stage completion checks and HandoffPackages
    - SessionManager:         Session persistence, status transitions and
                              the per-session generation cap
"""

from adcraft.orchestration.budget import BudgetGuard, BudgetStatus
from adcraft.orchestration.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitBreakerSnapshot,
)
from adcraft.orchestration.error_handler import (
    CallOutcome,
    ErrorHandler,
    ErrorStats,
    HealthReport,
)
from adcraft.orchestration.fallbacks import FallbackCatalog, SessionCache
from adcraft.orchestration.handoff import HandoffValidator
from adcraft.orchestration.session_manager import GenerationSlot, SessionManager

__all__ = [
    # Circuit breakers
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitBreakerSnapshot",
    # Fallbacks
    "FallbackCatalog",
    "SessionCache",
    # Error handling
    "CallOutcome",
    "ErrorHandler",
    "ErrorStats",
    "HealthReport",
    # Budget and handoff
    "BudgetGuard",
    "BudgetStatus",
    "HandoffValidator",
    # Sessions
    "GenerationSlot",
    "SessionManager",
]
