"""
adcraft.integrations.generation.mock - Mock Generation Provider
=================================================================

In-process provider that answers every request kind without calling any
external API. It is the default provider for development and tests.

How It Works:
    The provider keeps a FIFO queue of outcomes. Each generate() call:
    1. Records the request in call_history.
    2. Raises if a failure is configured (set_should_fail) or the next
       queued outcome is an exception.
    3. Returns the next queued GenerationResult, if any.
    4. Otherwise builds a deterministic default for the request kind.

Usage:
    >>> provider = MockGenerationProvider()
    >>> provider.queue_error(RateLimitedError("rate limit exceeded", service="imagen"))
    >>> await provider.generate(GenerationRequest(kind="image", prompt="hero"))
    Traceback (most recent call last):
    ...
    RateLimitedError: rate limit exceeded
    >>> result = await provider.generate(GenerationRequest(kind="image", prompt="hero"))
    >>> result.mime_type
    'image/png'
"""

from __future__ import annotations

import asyncio
import hashlib
from collections import deque
from typing import Any, Optional, Union
from uuid import uuid4

import structlog

from adcraft.core.config import GenerationConfig
from adcraft.integrations.generation.base import (
    BaseGenerationProvider,
    GenerationRequest,
    GenerationResult,
)

logger = structlog.get_logger()

QueuedOutcome = Union[GenerationResult, BaseException]


class MockGenerationProvider(BaseGenerationProvider):
    """Mock provider with queued outcomes, call tracking and failure injection.

    Attributes:
        _outcomes: FIFO of results or exceptions to return/raise next.
        _call_history: Every request received, in order.
        _should_fail: When set, every call raises ``_failure``.
        _latency: Seconds to sleep before answering.

    Example:
        >>> provider = MockGenerationProvider()
        >>> provider.set_should_fail(True)
        >>> await provider.generate(GenerationRequest(kind="chat", prompt="hi"))
        Traceback (most recent call last):
        ...
        RuntimeError: Mock generation API error
    """

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        latency: float = 0.0,
    ) -> None:
        super().__init__(config or GenerationConfig(provider="mock"))
        self._outcomes: deque[QueuedOutcome] = deque()
        self._call_history: list[GenerationRequest] = []
        self._should_fail = False
        self._failure: BaseException = RuntimeError("Mock generation API error")
        self._latency = latency
        self._logger = logger.bind(component="mock_generation_provider")

    # =========================================================================
    # Inspection
    # =========================================================================

    @property
    def call_history(self) -> list[GenerationRequest]:
        return self._call_history

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    def calls_of(self, kind: str) -> list[GenerationRequest]:
        """Recorded requests of one kind."""
        return [r for r in self._call_history if r.kind == kind]

    # =========================================================================
    # Scripting
    # =========================================================================

    def queue_result(self, result: GenerationResult) -> None:
        self._outcomes.append(result)

    def queue_error(self, error: BaseException, times: int = 1) -> None:
        """Make the next ``times`` calls raise ``error``."""
        self._outcomes.extend([error] * times)

    def set_should_fail(
        self,
        should_fail: bool,
        error: Optional[BaseException] = None,
    ) -> None:
        """Make every call raise ``error`` (a RuntimeError by default)."""
        self._should_fail = should_fail
        if error is not None:
            self._failure = error

    def clear(self) -> None:
        self._outcomes.clear()
        self._call_history.clear()
        self._should_fail = False

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self._call_history.append(request)
        self._logger.debug(
            "mock_generate_called",
            kind=request.kind,
            model=request.model,
            queue_size=len(self._outcomes),
        )

        if self._latency > 0:
            await asyncio.sleep(self._latency)

        if self._should_fail:
            raise self._failure

        if self._outcomes:
            outcome = self._outcomes.popleft()
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome

        return self._default_result(request)

    # =========================================================================
    # Defaults
    # =========================================================================

    def _default_result(self, request: GenerationRequest) -> GenerationResult:
        if request.kind == "analysis":
            return GenerationResult(
                kind="analysis",
                content="Product analysis complete",
                data=self._mock_analysis(request.prompt),
                model="gemini-pro-vision",
                metadata={"source": "mock"},
            )
        if request.kind == "chat":
            return GenerationResult(
                kind="chat",
                content=f"Noted: {request.prompt.strip()[:80]}",
                data={"quick_actions": ["Continue", "Refine", "Hand off"]},
                model="gemini-pro",
                metadata={"source": "mock"},
            )
        if request.kind == "image":
            model = request.model or self.image_model
            return GenerationResult(
                kind="image",
                content=request.prompt,
                media=b"\x89PNG mock:" + self._digest(request).encode(),
                mime_type="image/png",
                model=model,
                metadata={"source": "mock", "quality": request.quality},
            )
        duration = int(request.parameters.get("duration", self._config.video_duration))
        return GenerationResult(
            kind="video",
            content=request.prompt,
            data={
                "job_id": f"job_{uuid4().hex[:10]}",
                "duration": duration,
                "thumbnail": b"mock-jpg:" + self._digest(request).encode(),
            },
            media=b"mock-mp4:" + self._digest(request).encode(),
            mime_type="video/mp4",
            model=request.model or "veo-2",
            metadata={"source": "mock"},
        )

    @staticmethod
    def _mock_analysis(prompt: str) -> dict[str, Any]:
        name = prompt.strip().split("\n", 1)[0][:60] or "Product"
        return {
            "product": {
                "name": name,
                "category": "consumer goods",
                "description": prompt.strip(),
            },
            "target_audience": {
                "primary": "urban professionals",
                "age_range": "25-40",
            },
            "key_features": ["premium materials", "minimal design"],
            "positioning": "Accessible premium",
            "insights": ["Lifestyle imagery resonates with the audience"],
            "confidence": 0.85,
        }

    @staticmethod
    def _digest(request: GenerationRequest) -> str:
        return hashlib.sha256(
            f"{request.kind}:{request.model}:{request.prompt}".encode()
        ).hexdigest()[:16]
