"""
AdCraft - Resilient Agent Pipeline for Product Commercials
============================================================

AdCraft turns a product description (or photo) into a short video
commercial through three conversational agent stages:

    Maya (product intelligence)  →  David (creative direction)  →  Zara (video production)
    analysis + strategy chat        visual decisions + assets       narrative, music, video

Architecture Layers (top to bottom):
    1. API Layer            - FastAPI routes and the response envelope
    2. Agent Layer          - The three stage agents
    3. Orchestration Layer  - Sessions, handoffs, budget, error handling, circuit breakers
    4. Infrastructure Layer - Document store and object storage
    5. Integration Layer    - Generation providers

Quick Start:
    >>> from adcraft import AdCraft
    >>> async with AdCraft() as adcraft:
    ...     session = await adcraft.maya.initialize()
"""

# =============================================================================
# Package Version
# =============================================================================
__version__ = "0.1.0"

# =============================================================================
# Package-Level Exports
# =============================================================================
# The AdCraft facade is the main entry point. For specific components, import
# from submodules directly:
#   from adcraft.core.config import AdCraftConfig
#   from adcraft.orchestration import ErrorHandler
# =============================================================================
from adcraft.facade import AdCraft

__all__ = ["AdCraft", "__version__"]
