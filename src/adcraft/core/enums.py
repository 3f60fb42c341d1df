"""
adcraft.core.enums - Type-Safe Enumerations
=============================================

This module defines all enumeration types used throughout AdCraft.
Every enum inherits from both `str` and `Enum`, which means:
    - They serialize to strings in JSON/YAML (Pydantic-friendly)
    - They compare equal to plain strings: AgentType.CREATIVE_DIRECTOR == "creative_director"
    - They survive a round trip through the document store unchanged

Architecture Mapping:

    ┌─────────────────────────────────────────────────────────────────┐
    │  PIPELINE                                                       │
    │    AgentType:      The 3 pipeline stages (Maya → David → Zara)  │
    │    SessionStatus:  Session lifecycle (CREATED → READY → ...)    │
    │    *Phase:         Per-stage sub-phases                         │
    ├─────────────────────────────────────────────────────────────────┤
    │  RESILIENCE                                                     │
    │    ErrorCategory / ErrorSeverity: failure classification        │
    │    ResolutionStrategy: retry | fallback | fail | ignore         │
    │    FallbackType: the five fallback flavours                     │
    │    CircuitBreakerState: closed | open | half_open               │
    ├─────────────────────────────────────────────────────────────────┤
    │  PRESENTATION                                                   │
    │    Locale: en | ja                                              │
    │    AssetStatus / AssetType: generated creative assets           │
    └─────────────────────────────────────────────────────────────────┘
"""

from enum import Enum


# =============================================================================
# Agent Type Enumeration
# =============================================================================
# The three sequential stages of the pipeline. Each value maps to one
# orchestrator class in adcraft.agents:
#
#   PRODUCT_INTELLIGENCE → agents/product_intelligence.py  (Maya)
#   CREATIVE_DIRECTOR    → agents/creative_director.py     (David)
#   VIDEO_PRODUCER       → agents/video_producer.py        (Zara)
# =============================================================================
class AgentType(str, Enum):
    """The three agent stages of the AdCraft pipeline.

    Execution Order:
        1. PRODUCT_INTELLIGENCE: product analysis and strategy chat (Maya)
        2. CREATIVE_DIRECTOR:    visual direction and asset generation (David)
        3. VIDEO_PRODUCER:       narrative, music and final video (Zara)

    Usage:
        >>> AgentType.CREATIVE_DIRECTOR.next_stage()
        <AgentType.VIDEO_PRODUCER: 'video_producer'>
    """

    PRODUCT_INTELLIGENCE = "product_intelligence"
    CREATIVE_DIRECTOR = "creative_director"
    VIDEO_PRODUCER = "video_producer"

    @property
    def persona(self) -> str:
        """Display name of the agent persona for this stage."""
        return _PERSONAS[self]

    def next_stage(self) -> "AgentType | None":
        """Return the stage that follows this one, or None for the last stage."""
        order = list(AgentType)
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None


_PERSONAS = {
    AgentType.PRODUCT_INTELLIGENCE: "Maya",
    AgentType.CREATIVE_DIRECTOR: "David",
    AgentType.VIDEO_PRODUCER: "Zara",
}


# =============================================================================
# Session Status Enumeration
# =============================================================================
# The session state machine enforced by SessionManager:
#
#   CREATED → READY → (ANALYZING | CREATING | AWAITING_INPUT)* → COMPLETED
#                ↑             │
#                └─────────────┘  every request returns to READY
#
# ERROR is terminal for a stage only when all fallbacks are exhausted.
# =============================================================================
class SessionStatus(str, Enum):
    """Lifecycle states of a pipeline session within its current stage.

    State Transitions:
        CREATED → READY:          stage initialized
        READY → ANALYZING:        processing an analysis/chat request
        READY → CREATING:         processing a generation request
        READY → AWAITING_INPUT:   waiting on a user selection
        (any busy) → READY:       request completed (always)
        READY → COMPLETED:        handoff accepted or production accepted
        (any) → ERROR:            unrecoverable stage failure
    """

    CREATED = "created"
    READY = "ready"
    ANALYZING = "analyzing"
    CREATING = "creating"
    AWAITING_INPUT = "awaiting_input"
    COMPLETED = "completed"
    ERROR = "error"


# =============================================================================
# Per-Stage Phases
# =============================================================================
class ProductPhase(str, Enum):
    """Sub-phases of the product intelligence stage (Maya)."""

    ANALYSIS = "analysis"
    CONVERSATION = "conversation"
    HANDOFF = "handoff"


class CreativePhase(str, Enum):
    """Sub-phases of the creative direction stage (David).

    Order:
        ANALYSIS → CREATIVE_DEVELOPMENT → ASSET_GENERATION → FINALIZATION
    """

    ANALYSIS = "analysis"
    CREATIVE_DEVELOPMENT = "creative_development"
    ASSET_GENERATION = "asset_generation"
    FINALIZATION = "finalization"


class ProductionPhase(str, Enum):
    """Sub-phases of the video production stage (Zara)."""

    PLANNING = "planning"
    NARRATIVE_SELECTION = "narrative_selection"
    PRODUCTION = "production"
    DELIVERY = "delivery"


# =============================================================================
# Error Category Enumeration
# =============================================================================
# Every wrapped external call failure is tagged with one of these categories.
# The category decides which circuit breaker is consulted and which fallback
# list the catalog returns.
# =============================================================================
class ErrorCategory(str, Enum):
    """Classification of a failure by the dependency that produced it."""

    GENERATION_API = "generation_api"     # Image generation (Imagen)
    OBJECT_STORAGE = "object_storage"     # Asset uploads
    DOCUMENT_STORE = "document_store"     # Session persistence
    VISION_API = "vision_api"             # Product image analysis (Gemini)
    MODEL_API = "model_api"               # Chat / video models (Vertex AI)
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    VALIDATION = "validation"
    BUDGET = "budget"


class ErrorSeverity(str, Enum):
    """How badly a failure affects the pipeline."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResolutionStrategy(str, Enum):
    """What the ErrorHandler decided to do about a failure.

    RETRY    → re-invoke the failed operation a bounded number of times
    FALLBACK → walk the ordered fallback list until one succeeds
    FAIL     → record a breaker failure and report failure
    IGNORE   → treat as success with no result (best-effort operations)
    """

    RETRY = "retry"
    FALLBACK = "fallback"
    FAIL = "fail"
    IGNORE = "ignore"


class FallbackType(str, Enum):
    """The kind of substitute action a FallbackStrategy performs."""

    DEMO_PLACEHOLDER = "demo_placeholder"
    CACHED_RESPONSE = "cached_response"
    SIMPLIFIED_OPERATION = "simplified_operation"
    ALTERNATE_SERVICE = "alternate_service"
    GRACEFUL_DEGRADATION = "graceful_degradation"


# =============================================================================
# Circuit Breaker State
# =============================================================================
#   CLOSED    = requests flow
#   OPEN      = requests blocked until the cool-down elapses
#   HALF_OPEN = one trial call decides between CLOSED and OPEN
# =============================================================================
class CircuitBreakerState(str, Enum):
    """States of a per-service circuit breaker.

    State Machine:
        CLOSED ──(failures >= threshold)──> OPEN
        OPEN ──(timeout elapsed, next check)──> HALF_OPEN
        HALF_OPEN ──(one success)──> CLOSED
        HALF_OPEN ──(one failure)──> OPEN
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# =============================================================================
# Presentation Enumerations
# =============================================================================
class Locale(str, Enum):
    """Supported user-facing locales."""

    EN = "en"
    JA = "ja"


class AssetType(str, Enum):
    """Kinds of visual assets the creative director can produce."""

    PRODUCT_HERO = "product_hero"
    LIFESTYLE_SCENE = "lifestyle_scene"
    BACKGROUND = "background"
    MOOD_BOARD = "mood_board"
    STYLE_FRAME = "style_frame"


class AssetStatus(str, Enum):
    """Lifecycle of a generated asset."""

    PENDING = "pending"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"
    DEGRADED = "degraded"     # produced by a fallback, not the primary model
