"""
End-to-End Integration Tests for AdCraft
==========================================

These tests exercise the full pipeline through the facade with real
in-memory components (document store, object storage, breakers, error
handler) and the mock generation provider.

Test Scenarios:
    1. Happy path: Maya → David → Zara → completed, costs accumulated
    2. Degraded run: generation outages absorbed by fallbacks
    3. Budget exhaustion stops the pipeline before the next charge
    4. Sessions are independent of each other
    5. Session state survives a fresh facade over the same store
"""

from __future__ import annotations

import pytest

from adcraft.core.enums import AgentType, AssetStatus, SessionStatus
from adcraft.core.exceptions import BudgetExceededError, ServiceUnavailableError
from adcraft.facade import AdCraft
from adcraft.infrastructure.document_store import InMemoryDocumentStore
from adcraft.orchestration.fallbacks import DEMO_ASSET_URL, DEMO_VIDEO_URL


async def _run_pipeline(adcraft: AdCraft, description: str = "Ceramic pour-over coffee set"):
    """Drive one session through all three stages and return it."""
    session = await adcraft.maya.initialize()
    sid = session.session_id
    await adcraft.maya.analyze(sid, description)
    await adcraft.maya.chat(sid, "Who is the audience?")
    await adcraft.maya.handoff(sid)

    await adcraft.david.initialize(sid)
    await adcraft.david.select_visual_decision(sid, "style", "minimalist")
    await adcraft.david.select_visual_decision(sid, "color_palette", "sand, white")
    await adcraft.david.generate_asset(sid, "Hero shot on marble")
    await adcraft.david.handoff(sid)

    await adcraft.zara.initialize(sid)
    await adcraft.zara.select_narrative(sid, "story-driven")
    await adcraft.zara.select_music(sid, "lo-fi")
    await adcraft.zara.start_production(sid)
    return await adcraft.zara.accept_production(sid)


# =============================================================================
# Test: Happy Path
# =============================================================================
class TestHappyPath:
    """The full three-stage run with healthy services."""

    async def test_pipeline_completes(self, adcraft) -> None:
        session = await _run_pipeline(adcraft)

        assert session.status == SessionStatus.COMPLETED
        assert session.current_agent == AgentType.VIDEO_PRODUCER
        assert session.completed_stages == [
            AgentType.PRODUCT_INTELLIGENCE,
            AgentType.CREATIVE_DIRECTOR,
            AgentType.VIDEO_PRODUCER,
        ]
        assert session.production.video_url.endswith("/commercial.mp4")
        assert session.creative.color_palette == ["sand", "white"]

    async def test_costs_accumulate(self, adcraft) -> None:
        session = await _run_pipeline(adcraft)
        costs = session.costs.by_category
        assert costs["analysis"] == pytest.approx(0.20)
        assert costs["chat"] == pytest.approx(0.15)
        assert costs["image_generation"] == pytest.approx(0.04)
        assert costs["video_generation"] == pytest.approx(1.5)
        assert session.costs.total == pytest.approx(0.20 + 0.15 + 0.04 + 1.5)

    async def test_media_stored(self, adcraft) -> None:
        session = await _run_pipeline(adcraft)
        sid = session.session_id
        assert len(adcraft.object_storage) == 3
        assert adcraft.object_storage.read(f"{sid}/commercial.mp4")
        assert adcraft.object_storage.read(f"{sid}/commercial.jpg")

    async def test_handoff_history(self, adcraft) -> None:
        session = await _run_pipeline(adcraft)
        latest = session.latest_handoff(AgentType.VIDEO_PRODUCER)
        assert latest.source_agent == AgentType.CREATIVE_DIRECTOR
        assert latest.target_agent == AgentType.VIDEO_PRODUCER
        assert len(session.handoffs) == 2

    async def test_healthy_after_run(self, adcraft) -> None:
        await _run_pipeline(adcraft)
        health = adcraft.health()
        assert health.healthy is True
        assert health.errors.total_errors == 0


# =============================================================================
# Test: Degraded Run
# =============================================================================
class TestDegradedRun:
    """Generation outages are absorbed; the user still reaches a result."""

    async def test_transient_outage_is_invisible(self, adcraft, mock_provider) -> None:
        mock_provider.queue_error(ServiceUnavailableError("imagen down", service="imagen"))
        session = await _run_pipeline(adcraft)
        assert session.status == SessionStatus.COMPLETED
        assert session.creative.assets[0].status == AssetStatus.READY
        assert adcraft.health().errors.resolved_errors >= 1

    async def test_media_outage_uses_demo_content(self, adcraft, mock_provider) -> None:
        """Images and video fall back to demo content; analysis stays live."""
        sid = (await adcraft.maya.initialize()).session_id
        await adcraft.maya.analyze(sid, "Desk lamp")
        await adcraft.maya.handoff(sid)
        await adcraft.david.initialize(sid)
        await adcraft.david.select_visual_decision(sid, "style", "minimalist")

        mock_provider.set_should_fail(True)
        asset = await adcraft.david.generate_asset(sid, "Lamp on desk")
        assert asset.asset.url == DEMO_ASSET_URL

        await adcraft.david.handoff(sid)
        await adcraft.zara.initialize(sid)
        await adcraft.zara.select_narrative(sid, "story-driven")
        production = await adcraft.zara.start_production(sid)
        assert production.production.video_url == DEMO_VIDEO_URL

        session = await adcraft.zara.accept_production(sid)
        assert session.status == SessionStatus.COMPLETED
        assert session.costs.total == pytest.approx(0.20)


# =============================================================================
# Test: Budget
# =============================================================================
class TestBudget:
    """The budget gate stops spending before it happens."""

    async def test_exhausted_budget_blocks_production(self, adcraft, mock_provider) -> None:
        sid = (await adcraft.maya.initialize()).session_id
        await adcraft.maya.analyze(sid, "Desk lamp")
        await adcraft.maya.handoff(sid)
        await adcraft.david.initialize(sid)
        await adcraft.david.select_visual_decision(sid, "style", "minimalist")
        await adcraft.david.generate_asset(sid, "Lamp on desk")
        await adcraft.david.handoff(sid)
        await adcraft.zara.initialize(sid)
        await adcraft.zara.select_narrative(sid, "story-driven")

        await adcraft.session_manager.record_cost(sid, "chat", 299.0)
        with pytest.raises(BudgetExceededError):
            await adcraft.zara.start_production(sid)
        assert mock_provider.calls_of("video") == []


# =============================================================================
# Test: Isolation and Persistence
# =============================================================================
class TestSessions:
    """Sessions are independent and live in the document store."""

    async def test_sessions_are_independent(self, adcraft) -> None:
        first = await _run_pipeline(adcraft, "Desk lamp")
        second = (await adcraft.maya.initialize()).session_id

        stored = await adcraft.session_manager.get_session(second)
        assert stored.current_agent == AgentType.PRODUCT_INTELLIGENCE
        assert stored.costs.total == 0.0
        assert first.session_id != second

    async def test_state_survives_new_facade(self, config, mock_provider) -> None:
        store = InMemoryDocumentStore()
        async with AdCraft(config, generation_provider=mock_provider, document_store=store) as a:
            sid = (await a.maya.initialize()).session_id
            await a.maya.analyze(sid, "Desk lamp")
            await a.maya.handoff(sid)

        async with AdCraft(config, generation_provider=mock_provider, document_store=store) as b:
            session = await b.david.initialize(sid)
            assert session.current_agent == AgentType.CREATIVE_DIRECTOR
            assert session.status == SessionStatus.READY
            assert session.creative.confidence == 0.5
