"""
adcraft.integrations.generation - Generation Providers
========================================================

Vision analysis, chat, image and video generation behind one interface.

Available Providers:
    - BaseGenerationProvider: Abstract contract.
    - MockGenerationProvider: Deterministic in-process provider.

Usage:
    >>> from adcraft.integrations.generation import create_generation_provider
    >>> provider = create_generation_provider(config.generation)
    >>> result = await provider.generate(GenerationRequest(kind="image", prompt="..."))
"""

from adcraft.integrations.generation.base import (
    BaseGenerationProvider,
    GenerationRequest,
    GenerationResult,
)
from adcraft.integrations.generation.factory import create_generation_provider
from adcraft.integrations.generation.mock import MockGenerationProvider

__all__ = [
    "BaseGenerationProvider",
    "GenerationRequest",
    "GenerationResult",
    "MockGenerationProvider",
    "create_generation_provider",
]
