"""
adcraft.integrations.generation.base - Abstract Generation Provider
=====================================================================

This module defines the contract every generation backend implements. Agent
stages never talk to vision, image or video APIs directly; they build a
GenerationRequest and hand it to a BaseGenerationProvider, always through
the ErrorHandler.

    ┌───────────────┐   generate(request)   ┌──────────────────────────┐
    │  Agent stage  │ ────────────────────→ │  BaseGenerationProvider  │
    │ (Maya/David/  │                       │  (abstract)              │
    │  Zara)        │ ←── GenerationResult ─ │                          │
    └───────────────┘                       └────────────┬─────────────┘
                                                         │
                                           ┌─────────────┴─────────────┐
                                           │                           │
                                     ┌─────▼─────┐         ┌───────────▼──────┐
                                     │   Mock    │         │ Gemini / Imagen  │
                                     │ Provider  │         │ / Veo (external) │
                                     └───────────┘         └──────────────────┘

Request Kinds:
    - "analysis": vision analysis of a product image or description
    - "chat":     one conversational turn
    - "image":    image generation (model + quality tier)
    - "video":    video generation (duration in parameters)

Failure Contract:
    Providers raise ServiceError subclasses (RateLimitedError,
    ServiceTimeoutError, ...) when they can classify the failure, or any
    other exception when they cannot. Cost accounting happens in the agent
    stages from BudgetGuard prices, never in the provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from adcraft.core.config import GenerationConfig

GenerationKind = Literal["analysis", "chat", "image", "video"]


# =============================================================================
# Request / Result Models
# =============================================================================
class GenerationRequest(BaseModel):
    """One call to a generation backend.

    Attributes:
        kind: What to generate.
        prompt: Prompt text (product description, user message, image
            prompt or video brief).
        model: Model identifier. None means the provider default.
        quality: Image quality tier.
        parameters: Kind-specific extras (duration, style, inference_steps,
            conversation history...).

    Example:
        >>> GenerationRequest(kind="image", prompt="Hero shot", model="imagen-4")
    """

    kind: GenerationKind
    prompt: str = Field(default="", description="Prompt or brief")
    model: Optional[str] = Field(default=None, description="Model identifier")
    quality: str = Field(default="standard", description="Image quality tier")
    parameters: dict[str, Any] = Field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Plain-dict form used by the ErrorHandler fallbacks."""
        return self.model_dump()


class GenerationResult(BaseModel):
    """Standardized response from any generation provider.

    Attributes:
        kind: What was generated.
        content: Text output (analysis summary, chat reply, caption).
        data: Structured output (analysis fields, quick actions, job info,
            a video's poster frame bytes under "thumbnail").
        media: Binary output for images and videos.
        mime_type: Content type of ``media``.
        model: Model that produced the result.
        metadata: Provider extras (latency, request id...).
        created_at: When the result was produced (UTC).
    """

    kind: GenerationKind
    content: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    media: Optional[bytes] = None
    mime_type: Optional[str] = None
    model: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


# =============================================================================
# Abstract Base Provider
# =============================================================================
class BaseGenerationProvider(ABC):
    """Abstract base class for generation providers.

    Attributes:
        _config: Generation settings (provider name, default models).
    """

    def __init__(self, config: GenerationConfig) -> None:
        self._config = config

    @property
    def provider_name(self) -> str:
        return self._config.provider

    @property
    def image_model(self) -> str:
        """Default image model used when a request names none."""
        return self._config.image_model

    @property
    def config(self) -> GenerationConfig:
        return self._config

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run one generation request.

        Raises:
            ServiceError: Classified provider failure.
            Exception: Any unclassified provider failure.
        """
        ...

    async def validate(self) -> bool:
        """Check that the provider is configured. Override in real providers."""
        return True

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"provider={self.provider_name!r}, "
            f"image_model={self.image_model!r})"
        )
