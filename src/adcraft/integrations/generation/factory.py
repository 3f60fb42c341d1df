"""
adcraft.integrations.generation.factory - Generation Provider Factory
=======================================================================

Maps ``GenerationConfig.provider`` to a concrete provider.

Usage:
    >>> provider = create_generation_provider(GenerationConfig(provider="mock"))
    >>> type(provider).__name__
    'MockGenerationProvider'
"""

from __future__ import annotations

from adcraft.core.config import GenerationConfig
from adcraft.core.exceptions import ConfigurationError
from adcraft.integrations.generation.base import BaseGenerationProvider


def create_generation_provider(config: GenerationConfig) -> BaseGenerationProvider:
    """Create a generation provider from configuration.

    Raises:
        ConfigurationError: If the provider name is not recognized.
    """
    provider_name = config.provider.lower()

    if provider_name == "mock":
        from adcraft.integrations.generation.mock import MockGenerationProvider
        return MockGenerationProvider(config)

    raise ConfigurationError(
        message=(
            f"Unknown generation provider: '{provider_name}'. "
            f"Available providers: 'mock'."
        ),
        details={"provider": provider_name},
    )
