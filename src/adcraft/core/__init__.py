"""
adcraft.core - Foundation Layer
=================================

The building blocks every other AdCraft package depends on:

    - config:      Configuration management (AdCraftConfig and its sections)
    - enums:       Type-safe enumerations (AgentType, ErrorCategory, ...)
    - models:      Resilience and handoff data models
    - state:       Session state models
    - exceptions:  Structured exception hierarchy
    - logging:     structlog configuration

Dependency Rule:
    core/ depends on NOTHING else in the adcraft package.
"""

from adcraft.core.config import (
    AdCraftConfig,
    BudgetConfig,
    GenerationConfig,
    PipelineConfig,
    ResilienceConfig,
)
from adcraft.core.enums import (
    AgentType,
    CircuitBreakerState,
    ErrorCategory,
    ErrorSeverity,
    FallbackType,
    Locale,
    ResolutionStrategy,
    SessionStatus,
)
from adcraft.core.exceptions import (
    AdCraftError,
    BudgetExceededError,
    ConcurrencyLimitError,
    ConfigurationError,
    HandoffValidationError,
    ServiceError,
    SessionNotFoundError,
    SessionStateError,
    StateError,
)
from adcraft.core.models import (
    ErrorContext,
    ErrorRecord,
    ErrorResolution,
    FallbackStrategy,
    HandleResult,
    HandoffPackage,
    HandoffResult,
)
from adcraft.core.state import SessionState

__all__ = [
    # Config
    "AdCraftConfig",
    "ResilienceConfig",
    "BudgetConfig",
    "PipelineConfig",
    "GenerationConfig",
    # Enums
    "AgentType",
    "SessionStatus",
    "ErrorCategory",
    "ErrorSeverity",
    "ResolutionStrategy",
    "FallbackType",
    "CircuitBreakerState",
    "Locale",
    # Models
    "ErrorContext",
    "ErrorRecord",
    "ErrorResolution",
    "FallbackStrategy",
    "HandleResult",
    "HandoffPackage",
    "HandoffResult",
    "SessionState",
    # Exceptions
    "AdCraftError",
    "ConfigurationError",
    "StateError",
    "SessionNotFoundError",
    "SessionStateError",
    "HandoffValidationError",
    "BudgetExceededError",
    "ConcurrencyLimitError",
    "ServiceError",
]
