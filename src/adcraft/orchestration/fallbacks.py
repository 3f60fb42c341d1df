"""
adcraft.orchestration.fallbacks - Fallback Strategy Catalog
=============================================================

This module holds the ordered list of substitute actions tried for each error
category, and the handler table that executes them.

A FallbackStrategy is plain data (type + description + parameters). The
catalog maps each FallbackType to an async handler:

    handler(strategy: FallbackStrategy, context: ErrorContext) -> Any

A handler either returns a substitute result or raises; raising moves the
ErrorHandler on to the next strategy. Callers that need dependency-specific
behaviour (re-issuing an image request on a cheaper model, for instance)
pass per-call handler overrides instead of baking closures into the catalog.

Catalog (category → ordered strategies, universal last):

    GENERATION_API  → ALTERNATE_SERVICE (cheaper model)
                      SIMPLIFIED_OPERATION (standard quality, 30 steps)
                      DEMO_PLACEHOLDER (demo asset)
    OBJECT_STORAGE  → DEMO_PLACEHOLDER (placeholder URL, stored=False)
    DOCUMENT_STORE  → CACHED_RESPONSE (session cache)
                      SIMPLIFIED_OPERATION (temporary in-memory session)
    MODEL_API       → DEMO_PLACEHOLDER (demo video)
    RATE_LIMIT      → DEMO_PLACEHOLDER (demo mode)
    AUTHENTICATION  → DEMO_PLACEHOLDER (demo mode)
    (every category)→ GRACEFUL_DEGRADATION (never raises)

Session Cache:
    The CACHED_RESPONSE handler reads the catalog's SessionCache. The
    SessionManager writes every session it loads or saves into that cache,
    so a document-store outage can be bridged with the last known copy.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Awaitable, Callable, Mapping, Optional
from uuid import uuid4

import structlog

from adcraft.core.enums import ErrorCategory, FallbackType
from adcraft.core.exceptions import FallbackUnavailableError
from adcraft.core.models import ErrorContext, FallbackStrategy

logger = structlog.get_logger()

FallbackHandler = Callable[[FallbackStrategy, ErrorContext], Awaitable[Any]]

DEMO_ASSET_URL = "https://placeholder.adcraft.ai/demo-asset.png"
DEMO_VIDEO_URL = "https://placeholder.adcraft.ai/demo-video.mp4"
PLACEHOLDER_STORAGE_URL = "https://placeholder-storage.adcraft.ai"


# =============================================================================
# Universal Strategy
# =============================================================================
UNIVERSAL_FALLBACK = FallbackStrategy(
    type=FallbackType.GRACEFUL_DEGRADATION,
    description="Continue with reduced functionality",
)


# =============================================================================
# Static Catalog
# =============================================================================
DEFAULT_STRATEGIES: dict[ErrorCategory, list[FallbackStrategy]] = {
    ErrorCategory.GENERATION_API: [
        FallbackStrategy(
            type=FallbackType.ALTERNATE_SERVICE,
            description="Retry on a cheaper image model",
            parameters={
                "model_map": {"imagen-4-ultra": "imagen-4"},
                "default_model": "imagen-3",
            },
        ),
        FallbackStrategy(
            type=FallbackType.SIMPLIFIED_OPERATION,
            description="Retry with reduced quality parameters",
            parameters={"simplified": True, "quality": "standard", "inference_steps": 30},
        ),
        FallbackStrategy(
            type=FallbackType.DEMO_PLACEHOLDER,
            description="Return a demo placeholder asset",
            parameters={"kind": "asset"},
        ),
    ],
    ErrorCategory.OBJECT_STORAGE: [
        FallbackStrategy(
            type=FallbackType.DEMO_PLACEHOLDER,
            description="Continue without persisting the file",
            parameters={"kind": "storage_reference"},
        ),
    ],
    ErrorCategory.DOCUMENT_STORE: [
        FallbackStrategy(
            type=FallbackType.CACHED_RESPONSE,
            description="Use cached session data",
        ),
        FallbackStrategy(
            type=FallbackType.SIMPLIFIED_OPERATION,
            description="Use temporary in-memory session data",
            parameters={"kind": "in_memory_session"},
        ),
    ],
    ErrorCategory.MODEL_API: [
        FallbackStrategy(
            type=FallbackType.DEMO_PLACEHOLDER,
            description="Return a demo video",
            parameters={"kind": "video"},
        ),
    ],
    ErrorCategory.RATE_LIMIT: [
        FallbackStrategy(
            type=FallbackType.DEMO_PLACEHOLDER,
            description="Switch the service to demo mode",
            parameters={"kind": "demo_mode"},
        ),
    ],
    ErrorCategory.AUTHENTICATION: [
        FallbackStrategy(
            type=FallbackType.DEMO_PLACEHOLDER,
            description="Switch the service to demo mode",
            parameters={"kind": "demo_mode"},
        ),
    ],
}


# =============================================================================
# Session Cache
# =============================================================================
class SessionCache:
    """Bounded LRU of the last known session documents.

    Example:
        >>> cache = SessionCache(max_entries=2)
        >>> cache.put("s-1", {"status": "ready"})
        >>> cache.get("s-1")
        {'status': 'ready'}
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self._max_entries = max_entries
        self._entries: OrderedDict[str, dict[str, Any]] = OrderedDict()

    def put(self, session_id: str, data: dict[str, Any]) -> None:
        self._entries[session_id] = data
        self._entries.move_to_end(session_id)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def get(self, session_id: str) -> Optional[dict[str, Any]]:
        data = self._entries.get(session_id)
        if data is not None:
            self._entries.move_to_end(session_id)
        return data

    def drop(self, session_id: str) -> None:
        self._entries.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# FallbackCatalog
# =============================================================================
class FallbackCatalog:
    """Static per-category fallback lists plus the handler table.

    Attributes:
        session_cache: Last known session documents for CACHED_RESPONSE.

    Example:
        >>> catalog = FallbackCatalog()
        >>> [s.type for s in catalog.get_strategies(ErrorCategory.OBJECT_STORAGE)]
        [<FallbackType.DEMO_PLACEHOLDER: 'demo_placeholder'>,
         <FallbackType.GRACEFUL_DEGRADATION: 'graceful_degradation'>]
    """

    def __init__(
        self,
        strategies: Optional[Mapping[ErrorCategory, list[FallbackStrategy]]] = None,
        handlers: Optional[Mapping[FallbackType, FallbackHandler]] = None,
        session_cache: Optional[SessionCache] = None,
    ) -> None:
        source = DEFAULT_STRATEGIES if strategies is None else strategies
        self._strategies: dict[ErrorCategory, tuple[FallbackStrategy, ...]] = {
            category: tuple(items) for category, items in source.items()
        }
        self.session_cache = session_cache or SessionCache()
        self._handlers: dict[FallbackType, FallbackHandler] = {
            FallbackType.DEMO_PLACEHOLDER: self._demo_placeholder,
            FallbackType.CACHED_RESPONSE: self._cached_response,
            FallbackType.SIMPLIFIED_OPERATION: self._simplified_operation,
            FallbackType.ALTERNATE_SERVICE: self._unbound,
            FallbackType.GRACEFUL_DEGRADATION: self._graceful_degradation,
        }
        if handlers:
            self._handlers.update(handlers)
        self._logger = logger.bind(component="fallback_catalog")

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_strategies(self, category: ErrorCategory) -> list[FallbackStrategy]:
        """Ordered strategies for ``category`` with the universal one appended."""
        return [*self._strategies.get(category, ()), UNIVERSAL_FALLBACK]

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(
        self,
        strategy: FallbackStrategy,
        context: ErrorContext,
        handlers: Optional[Mapping[FallbackType, FallbackHandler]] = None,
    ) -> Any:
        """Run ``strategy`` through its handler.

        Args:
            strategy: The strategy to execute.
            context: The failure being compensated.
            handlers: Per-call overrides, consulted before the table.

        Raises:
            Whatever the handler raises. The caller treats any exception as
            "try the next strategy".
        """
        handler = (handlers or {}).get(strategy.type) or self._handlers[strategy.type]
        return await handler(strategy, context)

    # =========================================================================
    # Default Handlers
    # =========================================================================

    async def _demo_placeholder(self, strategy: FallbackStrategy, context: ErrorContext) -> Any:
        kind = strategy.parameters.get("kind", "asset")
        if kind == "asset":
            return {
                "id": f"demo_{uuid4().hex[:10]}",
                "type": "demo",
                "url": DEMO_ASSET_URL,
                "description": "Demo asset - generation temporarily unavailable",
                "fallback": True,
            }
        if kind == "video":
            return {
                "id": f"demo_{uuid4().hex[:10]}",
                "type": "demo",
                "url": DEMO_VIDEO_URL,
                "fallback": True,
            }
        if kind == "storage_reference":
            file_name = context.metadata.get("file_name", f"{uuid4().hex}.bin")
            return {
                "file_name": file_name,
                "url": f"{PLACEHOLDER_STORAGE_URL}/{file_name}",
                "size": 0,
                "fallback": True,
                "stored": False,
            }
        if kind == "demo_mode":
            return {
                "demo_mode": True,
                "service": context.metadata.get("service", context.category.value),
                "fallback": True,
            }
        raise FallbackUnavailableError(
            message=f"Unknown placeholder kind: {kind}",
            fallback_type=strategy.type.value,
        )

    async def _cached_response(self, strategy: FallbackStrategy, context: ErrorContext) -> Any:
        cached = self.session_cache.get(context.session_id)
        if cached is None:
            raise FallbackUnavailableError(
                message=f"No cached data for session {context.session_id}",
                fallback_type=strategy.type.value,
            )
        return {
            "session_id": context.session_id,
            "cached": cached,
            "status": "active",
            "warning": "Using cached session data",
            "stale": True,
            "fallback": True,
        }

    async def _simplified_operation(self, strategy: FallbackStrategy, context: ErrorContext) -> Any:
        if strategy.parameters.get("kind") == "in_memory_session":
            return {
                "session_id": context.session_id,
                "temporary": True,
                "data": context.metadata.get("data", {}),
                "warning": "Session data is temporary and may be lost",
                "stale": True,
                "fallback": True,
            }
        return await self._unbound(strategy, context)

    async def _unbound(self, strategy: FallbackStrategy, context: ErrorContext) -> Any:
        raise FallbackUnavailableError(
            message=f"No operation bound for {strategy.type.value} in {context.operation}",
            fallback_type=strategy.type.value,
        )

    async def _graceful_degradation(self, strategy: FallbackStrategy, context: ErrorContext) -> Any:
        return {
            "degraded": True,
            "warning": "Operating with reduced functionality",
            "operation": context.operation,
            "category": context.category.value,
            "fallback": True,
        }
