"""
AdCraft Test Suite
==================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/          → Tests for adcraft.core (config, exceptions, models, state)
    ├── test_agents/        → Tests for adcraft.agents (stage base + Maya, David, Zara)
    ├── test_orchestration/ → Tests for adcraft.orchestration (breakers, errors, sessions)
    ├── test_infrastructure/→ Tests for adcraft.infrastructure (document store, storage)
    ├── test_integrations/  → Tests for adcraft.integrations (generation providers)
    ├── test_api/           → Tests for adcraft.api (envelope, routes)
    ├── test_integration/   → End-to-end pipeline tests
    └── conftest.py         → Shared pytest fixtures

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_orchestration # Run only orchestration tests
    pytest --cov=adcraft            # Run with coverage report
"""
