"""
adcraft.facade - AdCraft Top-Level Facade
===========================================

The single entry point that builds every component, injects the shared
services into the three stages and owns their lifecycle. Nothing in AdCraft
is a module-level singleton: one facade is one process context, with one
circuit breaker registry and one error history shared by all sessions.

Architecture Context:

    ┌───────────────────────────────────────────────────────────────┐
    │                      AdCraft (Facade)                          │
    │                                                                │
    │   maya ─┐        david ─┐        zara ─┐     (agent stages)   │
    │         └───────────────┴──────────────┤                       │
    │  ┌─────────────────────────────────────▼───────────────────┐  │
    │  │ Orchestration: SessionManager, HandoffValidator,         │  │
    │  │ BudgetGuard, ErrorHandler → CircuitBreakerRegistry,      │  │
    │  │                               FallbackCatalog            │  │
    │  └─────────────────────────────────────┬───────────────────┘  │
    │  ┌─────────────────────────────────────▼───────────────────┐  │
    │  │ Infrastructure: DocumentStore, ObjectStorage             │  │
    │  │ Integrations:   BaseGenerationProvider                   │  │
    │  └─────────────────────────────────────────────────────────┘  │
    └───────────────────────────────────────────────────────────────┘

Usage:
    >>> async with AdCraft(AdCraftConfig()) as adcraft:
    ...     session = await adcraft.maya.initialize()
    ...     await adcraft.maya.analyze(session.session_id, "Ceramic pour-over set")
    ...     await adcraft.maya.handoff(session.session_id)
    ...     await adcraft.david.initialize(session.session_id)
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from pydantic import BaseModel

from adcraft.agents.creative_director import CreativeDirectorAgent
from adcraft.agents.product_intelligence import ProductIntelligenceAgent
from adcraft.agents.video_producer import VideoProducerAgent
from adcraft.core.config import AdCraftConfig
from adcraft.core.enums import AgentType
from adcraft.infrastructure.document_store import DocumentStore, InMemoryDocumentStore
from adcraft.infrastructure.object_storage import InMemoryObjectStorage, ObjectStorage
from adcraft.integrations.generation.base import BaseGenerationProvider
from adcraft.integrations.generation.factory import create_generation_provider
from adcraft.orchestration.budget import BudgetGuard
from adcraft.orchestration.circuit_breaker import CircuitBreakerRegistry
from adcraft.orchestration.error_handler import ErrorHandler, ErrorStats, HealthReport
from adcraft.orchestration.fallbacks import FallbackCatalog
from adcraft.orchestration.handoff import HandoffValidator
from adcraft.orchestration.session_manager import SessionManager

logger = structlog.get_logger()


class PipelineHealth(BaseModel):
    """Health and metrics snapshot of one AdCraft instance."""

    healthy: bool
    status: str
    environment: str
    provider: str
    resilience: HealthReport
    errors: ErrorStats


class AdCraft:
    """Top-level facade for the AdCraft pipeline.

    Lifecycle:
        1. ``AdCraft(config)``      build and wire every component
        2. ``await initialize()``   connect the document store
        3. use ``maya`` / ``david`` / ``zara``
        4. ``await shutdown()``     disconnect

    Attributes:
        config: The AdCraft configuration.
        provider: Generation provider shared by all stages.
        document_store: Session persistence.
        object_storage: Generated media storage.
        breakers: Process-wide circuit breaker registry.
        error_handler: Shared ErrorHandler.
        budget: BudgetGuard.
        validator: HandoffValidator.
        session_manager: SessionManager.
        maya / david / zara: The three stage agents.
    """

    def __init__(
        self,
        config: Optional[AdCraftConfig] = None,
        generation_provider: Optional[BaseGenerationProvider] = None,
        document_store: Optional[DocumentStore] = None,
        object_storage: Optional[ObjectStorage] = None,
    ) -> None:
        self.config = config or AdCraftConfig()

        # --- Infrastructure / integrations ---
        self.provider = generation_provider or create_generation_provider(self.config.generation)
        self.document_store = document_store or InMemoryDocumentStore()
        self.object_storage = object_storage or InMemoryObjectStorage()

        # --- Resilience ---
        resilience = self.config.resilience
        self.breakers = CircuitBreakerRegistry(
            services=resilience.services,
            failure_threshold=resilience.failure_threshold,
            recovery_timeout=resilience.recovery_timeout,
        )
        self.catalog = FallbackCatalog()
        self.error_handler = ErrorHandler(self.breakers, self.catalog, resilience)

        # --- Pipeline control ---
        self.budget = BudgetGuard(self.config.budget)
        self.validator = HandoffValidator(self.budget, self.config.pipeline)
        self.session_manager = SessionManager(
            self.document_store,
            self.error_handler,
            cache=self.catalog.session_cache,
            config=self.config.pipeline,
        )

        # --- Agent stages ---
        shared: dict[str, Any] = {
            "sessions": self.session_manager,
            "errors": self.error_handler,
            "budget": self.budget,
            "validator": self.validator,
            "provider": self.provider,
            "storage": self.object_storage,
            "config": self.config,
        }
        self.maya = ProductIntelligenceAgent(**shared)
        self.david = CreativeDirectorAgent(**shared)
        self.zara = VideoProducerAgent(**shared)

        self._initialized = False
        self._logger = logger.bind(component="adcraft")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Connect backends. Idempotent."""
        if self._initialized:
            return
        await self.document_store.connect()
        self._initialized = True
        self._logger.info(
            "adcraft_initialized",
            environment=self.config.environment,
            provider=self.provider.provider_name,
            breakers=len(self.breakers),
        )

    async def shutdown(self) -> None:
        """Disconnect backends. Idempotent."""
        if not self._initialized:
            return
        await self.document_store.disconnect()
        self._initialized = False
        self._logger.info("adcraft_shutdown_complete")

    async def __aenter__(self) -> AdCraft:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    # =========================================================================
    # Accessors
    # =========================================================================

    def agent(self, agent_type: AgentType) -> Any:
        """The stage agent serving ``agent_type``."""
        return {
            AgentType.PRODUCT_INTELLIGENCE: self.maya,
            AgentType.CREATIVE_DIRECTOR: self.david,
            AgentType.VIDEO_PRODUCER: self.zara,
        }[agent_type]

    def health(self) -> PipelineHealth:
        """Error counts, breaker states and the resilience self-test."""
        report = self.error_handler.health_check()
        return PipelineHealth(
            healthy=report.healthy,
            status=report.status,
            environment=self.config.environment,
            provider=self.provider.provider_name,
            resilience=report,
            errors=self.error_handler.get_error_stats(),
        )

    def __repr__(self) -> str:
        return (
            f"AdCraft(environment={self.config.environment!r}, "
            f"initialized={self._initialized})"
        )
