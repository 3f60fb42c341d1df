"""
Tests for adcraft.integrations.generation
===========================================

What's Being Tested:
    - GenerationRequest / GenerationResult models
    - MockGenerationProvider defaults for every request kind
    - Scripting: queued results, queued errors, permanent failure, clear()
    - Call tracking
    - create_generation_provider() factory

All tests use the mock provider with no external API.
"""

import pytest

from adcraft.core.config import GenerationConfig
from adcraft.core.exceptions import ConfigurationError, RateLimitedError
from adcraft.integrations.generation import (
    BaseGenerationProvider,
    GenerationRequest,
    GenerationResult,
    MockGenerationProvider,
    create_generation_provider,
)


# =============================================================================
# Test: Models
# =============================================================================
class TestModels:
    """Tests for request and result models."""

    def test_request_defaults(self) -> None:
        request = GenerationRequest(kind="image", prompt="hero")
        assert request.model is None
        assert request.quality == "standard"
        assert request.as_dict()["prompt"] == "hero"

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(Exception):
            GenerationRequest(kind="audio")


# =============================================================================
# Test: Default Results
# =============================================================================
class TestMockDefaults:
    """Tests for the deterministic default outputs."""

    async def test_analysis(self, mock_provider) -> None:
        result = await mock_provider.generate(
            GenerationRequest(kind="analysis", prompt="Ceramic pour-over set\nHand thrown")
        )
        assert result.data["product"]["name"] == "Ceramic pour-over set"
        assert result.data["target_audience"]["primary"]
        assert 0.0 <= result.data["confidence"] <= 1.0

    async def test_chat_offers_quick_actions(self, mock_provider) -> None:
        result = await mock_provider.generate(GenerationRequest(kind="chat", prompt="hi"))
        assert result.content == "Noted: hi"
        assert result.data["quick_actions"]

    async def test_image_uses_default_model(self, mock_provider) -> None:
        result = await mock_provider.generate(GenerationRequest(kind="image", prompt="hero"))
        assert result.model == "imagen-4"
        assert result.mime_type == "image/png"
        assert result.media.startswith(b"\x89PNG")

    async def test_image_is_deterministic(self, mock_provider) -> None:
        request = GenerationRequest(kind="image", prompt="hero", model="imagen-3")
        first = await mock_provider.generate(request)
        second = await mock_provider.generate(request)
        assert first.media == second.media

    async def test_video_duration(self, mock_provider) -> None:
        result = await mock_provider.generate(
            GenerationRequest(kind="video", prompt="brief", parameters={"duration": 30})
        )
        assert result.data["duration"] == 30
        assert result.data["job_id"].startswith("job_")
        assert result.mime_type == "video/mp4"


# =============================================================================
# Test: Scripting and Tracking
# =============================================================================
class TestMockScripting:
    """Tests for queued outcomes and failure injection."""

    async def test_queued_result_first(self, mock_provider) -> None:
        mock_provider.queue_result(GenerationResult(kind="chat", content="scripted"))
        result = await mock_provider.generate(GenerationRequest(kind="chat", prompt="x"))
        assert result.content == "scripted"

    async def test_queued_error_then_default(self, mock_provider) -> None:
        mock_provider.queue_error(RateLimitedError("rate limit exceeded", service="imagen"))
        with pytest.raises(RateLimitedError):
            await mock_provider.generate(GenerationRequest(kind="image", prompt="hero"))
        result = await mock_provider.generate(GenerationRequest(kind="image", prompt="hero"))
        assert result.kind == "image"

    async def test_should_fail(self, mock_provider) -> None:
        mock_provider.set_should_fail(True)
        with pytest.raises(RuntimeError, match="Mock generation API error"):
            await mock_provider.generate(GenerationRequest(kind="chat"))

    async def test_should_fail_custom_error(self, mock_provider) -> None:
        mock_provider.set_should_fail(True, TimeoutError("deadline"))
        with pytest.raises(TimeoutError):
            await mock_provider.generate(GenerationRequest(kind="chat"))

    async def test_call_tracking_and_clear(self, mock_provider) -> None:
        await mock_provider.generate(GenerationRequest(kind="chat", prompt="a"))
        await mock_provider.generate(GenerationRequest(kind="image", prompt="b"))
        assert mock_provider.call_count == 2
        assert [r.prompt for r in mock_provider.calls_of("image")] == ["b"]

        mock_provider.set_should_fail(True)
        mock_provider.clear()
        assert mock_provider.call_count == 0
        await mock_provider.generate(GenerationRequest(kind="chat"))

    async def test_validate(self, mock_provider) -> None:
        assert await mock_provider.validate() is True


# =============================================================================
# Test: Factory
# =============================================================================
class TestFactory:
    """Tests for create_generation_provider()."""

    def test_mock(self) -> None:
        provider = create_generation_provider(GenerationConfig(provider="Mock"))
        assert isinstance(provider, MockGenerationProvider)
        assert isinstance(provider, BaseGenerationProvider)
        assert "MockGenerationProvider" in repr(provider)

    def test_unknown_provider(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            create_generation_provider(GenerationConfig(provider="dalle"))
        assert exc_info.value.details["provider"] == "dalle"
