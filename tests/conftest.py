"""
Shared Test Fixtures for AdCraft
==================================

This module provides reusable pytest fixtures used across the entire
test suite. Fixtures are organized by layer:

    1. Configuration fixtures (retries without delays)
    2. Infrastructure fixtures (DocumentStore, ObjectStorage)
    3. Orchestration fixtures (breakers, fallbacks, ErrorHandler, budget,
       handoff validator, SessionManager)
    4. Integration fixtures (mock generation provider)
    5. Agent and facade fixtures
"""

from __future__ import annotations

import pytest

from adcraft.agents.creative_director import CreativeDirectorAgent
from adcraft.agents.product_intelligence import ProductIntelligenceAgent
from adcraft.agents.video_producer import VideoProducerAgent
from adcraft.core.config import AdCraftConfig, ResilienceConfig
from adcraft.facade import AdCraft
from adcraft.infrastructure.document_store import InMemoryDocumentStore
from adcraft.infrastructure.object_storage import InMemoryObjectStorage
from adcraft.integrations.generation.mock import MockGenerationProvider
from adcraft.orchestration.budget import BudgetGuard
from adcraft.orchestration.circuit_breaker import CircuitBreakerRegistry
from adcraft.orchestration.error_handler import ErrorHandler
from adcraft.orchestration.fallbacks import FallbackCatalog
from adcraft.orchestration.handoff import HandoffValidator
from adcraft.orchestration.session_manager import SessionManager


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def config():
    """AdCraft configuration with defaults, except retries never sleep."""
    return AdCraftConfig(resilience=ResilienceConfig(retry_delay=0.0))


# =============================================================================
# Infrastructure
# =============================================================================

@pytest.fixture
def document_store():
    """Fresh InMemoryDocumentStore."""
    return InMemoryDocumentStore()


@pytest.fixture
def object_storage():
    """Fresh InMemoryObjectStorage."""
    return InMemoryObjectStorage()


# =============================================================================
# Orchestration
# =============================================================================

@pytest.fixture
def breakers(config):
    """Breaker registry with the configured services."""
    resilience = config.resilience
    return CircuitBreakerRegistry(
        resilience.services,
        failure_threshold=resilience.failure_threshold,
        recovery_timeout=resilience.recovery_timeout,
    )


@pytest.fixture
def catalog():
    """FallbackCatalog with the default strategies."""
    return FallbackCatalog()


@pytest.fixture
def error_handler(breakers, catalog, config):
    """ErrorHandler wired to the registry and catalog."""
    return ErrorHandler(breakers, catalog, config.resilience)


@pytest.fixture
def budget(config):
    """BudgetGuard with the default $300 / $5 limits."""
    return BudgetGuard(config.budget)


@pytest.fixture
def validator(budget, config):
    """HandoffValidator using the shared budget guard."""
    return HandoffValidator(budget, config.pipeline)


@pytest.fixture
def session_manager(document_store, error_handler, catalog, config):
    """SessionManager over the in-memory document store."""
    return SessionManager(
        document_store,
        error_handler,
        cache=catalog.session_cache,
        config=config.pipeline,
    )


# =============================================================================
# Generation Provider
# =============================================================================

@pytest.fixture
def mock_provider():
    """Fresh MockGenerationProvider with no queued results."""
    return MockGenerationProvider()


# =============================================================================
# Agents
# =============================================================================

@pytest.fixture
def agent_deps(session_manager, error_handler, budget, validator, mock_provider,
               object_storage, config):
    """Keyword arguments shared by every stage agent."""
    return {
        "sessions": session_manager,
        "errors": error_handler,
        "budget": budget,
        "validator": validator,
        "provider": mock_provider,
        "storage": object_storage,
        "config": config,
    }


@pytest.fixture
def maya(agent_deps):
    """Product intelligence stage."""
    return ProductIntelligenceAgent(**agent_deps)


@pytest.fixture
def david(agent_deps):
    """Creative direction stage."""
    return CreativeDirectorAgent(**agent_deps)


@pytest.fixture
def zara(agent_deps):
    """Video production stage."""
    return VideoProducerAgent(**agent_deps)


# =============================================================================
# Pipeline Progress
# =============================================================================
# Each fixture returns a session id advanced to the start of one stage, so
# stage tests do not repeat the upstream steps.
# =============================================================================

@pytest.fixture
async def maya_session(maya):
    """Session with a completed product analysis, still with Maya."""
    session = await maya.initialize()
    await maya.analyze(session.session_id, "Ceramic pour-over coffee set")
    return session.session_id


@pytest.fixture
async def david_session(maya, david, maya_session):
    """Session handed to David and initialized."""
    await maya.handoff(maya_session)
    await david.initialize(maya_session)
    return maya_session


@pytest.fixture
async def zara_session(david, zara, david_session):
    """Session handed to Zara and initialized."""
    await david.select_visual_decision(david_session, "style", "minimalist")
    await david.generate_asset(david_session, "Hero shot on marble")
    await david.handoff(david_session)
    await zara.initialize(david_session)
    return david_session


# =============================================================================
# Facade
# =============================================================================

@pytest.fixture
async def adcraft(config, mock_provider):
    """Initialized AdCraft facade with a mock provider."""
    async with AdCraft(config, generation_provider=mock_provider) as instance:
        yield instance
