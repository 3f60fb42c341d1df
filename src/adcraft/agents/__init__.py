"""
adcraft.agents - Pipeline Stage Agents
========================================

The three stages of the AdCraft pipeline, each a thin coordinator over the
generation provider, the ErrorHandler, the SessionManager and the
HandoffValidator.

    ┌────────────────────┐  handoff  ┌────────────────────┐  handoff  ┌────────────────────┐
    │ Maya               │ ────────→ │ David              │ ────────→ │ Zara               │
    │ ProductIntelligence│           │ CreativeDirector   │           │ VideoProducer      │
    │ analyze, chat      │           │ select_visual,     │           │ select_narrative,  │
    │                    │           │ generate_asset     │           │ select_music,      │
    │                    │           │                    │           │ start_production   │
    └────────────────────┘           └────────────────────┘           └────────────────────┘
"""

from adcraft.agents.base import BaseStageAgent, ChatReply, StageStatus
from adcraft.agents.creative_director import (
    AssetReply,
    CreativeDirectorAgent,
    DecisionReply,
)
from adcraft.agents.product_intelligence import AnalysisReply, ProductIntelligenceAgent
from adcraft.agents.video_producer import ProductionReply, VideoProducerAgent

__all__ = [
    "BaseStageAgent",
    "ChatReply",
    "StageStatus",
    "ProductIntelligenceAgent",
    "AnalysisReply",
    "CreativeDirectorAgent",
    "AssetReply",
    "DecisionReply",
    "VideoProducerAgent",
    "ProductionReply",
]
