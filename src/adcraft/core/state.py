"""
adcraft.core.state - Session State Models
===========================================

This module defines the long-lived per-session record that every agent stage
reads and mutates, plus the per-stage sub-states it aggregates.

State Layout:

    SessionState
        ├── costs: CostBreakdown              (cumulative, by category)
        ├── conversation: [ConversationMessage] (append-only)
        ├── product: ProductAnalysisState     (Maya)
        ├── creative: CreativeDirectionState  (David)
        │       ├── visual_decisions: [VisualDecision]
        │       └── assets: [GeneratedAsset]
        ├── production: ProductionState       (Zara)
        └── handoffs: [HandoffPackage]        (0, 1 or 2)

Persistence:
    SessionManager stores the model as a plain dict in the "sessions"
    collection of the DocumentStore (``model_dump(mode="json")``) and rebuilds
    it with ``SessionState.model_validate``. Writes are read-modify-write and
    last-write-wins.

Example:
    >>> state = SessionState(
    ...     session_id="s-1",
    ...     current_agent=AgentType.PRODUCT_INTELLIGENCE,
    ... )
    >>> state.costs.add("analysis", 0.25)
    >>> state.costs.total
    0.25
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from adcraft.core.enums import (
    AgentType,
    AssetStatus,
    AssetType,
    Locale,
    SessionStatus,
)
from adcraft.core.models import HandoffPackage


# =============================================================================
# Helper Functions
# =============================================================================
def _now() -> datetime:
    """Get the current UTC timestamp."""
    return datetime.now(timezone.utc)


# =============================================================================
# Cost Breakdown
# =============================================================================
# Cost categories mirror the paid operations of the pipeline. The budget guard
# reads ``total``; the status endpoints report the full breakdown.
# =============================================================================
CostCategory = Literal[
    "analysis",
    "chat",
    "image_generation",
    "video_generation",
    "storage",
]


class CostBreakdown(BaseModel):
    """Cumulative session spend in USD, split by category.

    Attributes:
        total: Sum of all categories.
        by_category: Spend per cost category.
    """

    total: float = Field(default=0.0, ge=0.0)
    by_category: dict[str, float] = Field(default_factory=dict)

    def add(self, category: CostCategory, amount: float) -> None:
        """Add ``amount`` to ``category`` and to the running total."""
        if amount < 0:
            raise ValueError("Cost amounts cannot be negative")
        self.by_category[category] = round(self.by_category.get(category, 0.0) + amount, 6)
        self.total = round(self.total + amount, 6)


# =============================================================================
# Conversation
# =============================================================================
class ConversationMessage(BaseModel):
    """One turn of the session conversation.

    Attributes:
        id: Message identifier.
        role: "user", "agent" or "system".
        agent: Stage that produced or received the message.
        content: Message text.
        timestamp: When it was appended.
        metadata: Free-form data (quick actions, cost, fallback flags).
    """

    id: str = Field(default_factory=lambda: f"msg_{uuid4().hex[:12]}")
    role: Literal["user", "agent", "system"]
    agent: AgentType
    content: str
    timestamp: datetime = Field(default_factory=_now)
    metadata: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Stage 1: Product Intelligence (Maya)
# =============================================================================
class ProductAnalysisState(BaseModel):
    """Analysis results accumulated by the product intelligence stage.

    Attributes:
        completed: Whether the product analysis finished.
        product: Product facts (name, category, description...).
        target_audience: Audience profile. Required for handoff.
        key_features: Features worth showing in the commercial.
        visual_preferences: Optional style hints for the creative stage.
        positioning: Market positioning statement.
        insights: Strategic insights gathered in conversation.
        confidence: Analysis confidence score (0-1).
    """

    completed: bool = False
    product: dict[str, Any] = Field(default_factory=dict)
    target_audience: dict[str, Any] = Field(default_factory=dict)
    key_features: list[str] = Field(default_factory=list)
    visual_preferences: Optional[dict[str, Any]] = None
    positioning: Optional[str] = None
    insights: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


# =============================================================================
# Stage 2: Creative Direction (David)
# =============================================================================
class VisualDecision(BaseModel):
    """A creative decision made with (or for) the user.

    Attributes:
        id: Decision identifier.
        kind: What the decision is about ("style", "color_palette", "composition"...).
        choice: The chosen option.
        options: The options presented.
        finalized: Only finalized decisions count for the handoff.
    """

    id: str = Field(default_factory=lambda: f"decision_{uuid4().hex[:10]}")
    kind: str
    choice: str
    options: list[str] = Field(default_factory=list)
    finalized: bool = False


class GeneratedAsset(BaseModel):
    """A visual asset produced by the creative stage.

    Attributes:
        id: Asset identifier.
        type: Asset kind.
        status: Lifecycle status. DEGRADED marks fallback output.
        url: Where the asset can be fetched.
        prompt: Generation prompt.
        model: Model that produced it ("demo" for placeholders).
        quality: Quality tier requested.
        cost: Actual cost charged (USD).
        fallback: True when a fallback produced the asset.
        stored: False when object storage was bypassed.
        created_at: Creation time.
    """

    id: str = Field(default_factory=lambda: f"asset_{uuid4().hex[:10]}")
    type: AssetType = AssetType.PRODUCT_HERO
    status: AssetStatus = AssetStatus.PENDING
    url: Optional[str] = None
    prompt: str = ""
    model: Optional[str] = None
    quality: str = "standard"
    cost: float = Field(default=0.0, ge=0.0)
    fallback: bool = False
    stored: bool = True
    created_at: datetime = Field(default_factory=_now)


class CreativeDirectionState(BaseModel):
    """Creative work accumulated by the creative direction stage.

    Attributes:
        style_direction: Chosen overall visual style.
        color_palette: Chosen colours.
        visual_decisions: Decisions made so far.
        assets: Generated assets.
        confidence: Creative confidence score (0-1).
    """

    style_direction: Optional[str] = None
    color_palette: list[str] = Field(default_factory=list)
    visual_decisions: list[VisualDecision] = Field(default_factory=list)
    assets: list[GeneratedAsset] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def finalized_decisions(self) -> list[VisualDecision]:
        """Decisions marked final."""
        return [d for d in self.visual_decisions if d.finalized]

    @property
    def ready_assets(self) -> list[GeneratedAsset]:
        """Assets that finished generating (including degraded ones)."""
        return [
            a for a in self.assets
            if a.status in (AssetStatus.READY, AssetStatus.DEGRADED)
        ]


# =============================================================================
# Stage 3: Video Production (Zara)
# =============================================================================
class ProductionState(BaseModel):
    """Production choices and results of the video production stage.

    Attributes:
        narrative_style: Chosen narrative style.
        music_genre: Chosen music genre.
        duration: Target video length in seconds.
        video_url: Final video location once produced.
        thumbnail_url: Poster frame location, when one was stored.
        job_id: Generation job identifier.
        fallback: True when the video was produced by a fallback.
        accepted: True once the user accepted the production.
    """

    narrative_style: Optional[str] = None
    music_genre: Optional[str] = None
    duration: int = 15
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    job_id: Optional[str] = None
    fallback: bool = False
    accepted: bool = False


# =============================================================================
# Session State
# =============================================================================
class SessionState(BaseModel):
    """The long-lived record of one end-to-end pipeline run.

    Attributes:
        session_id: Unique session identifier.
        current_agent: Stage currently owning the session.
        status: State machine status within the current stage.
        phase: Sub-phase of the current stage (see the *Phase enums).
        locale: User-facing locale.
        costs: Cumulative spend breakdown.
        conversation: Append-only conversation history.
        ready_for_handoff: Set by the current stage when it has enough
            material to hand off.
        product: Stage 1 sub-state.
        creative: Stage 2 sub-state.
        production: Stage 3 sub-state.
        handoffs: Accepted handoff packages, in order.
        completed_stages: Stages that finished and handed off.
        active_generations: Generation operations currently in flight.
        created_at: Session creation time.
        updated_at: Last modification time.
    """

    session_id: str = Field(default_factory=lambda: f"session_{uuid4().hex}")
    current_agent: AgentType = AgentType.PRODUCT_INTELLIGENCE
    status: SessionStatus = SessionStatus.CREATED
    phase: str = "analysis"
    locale: Locale = Locale.EN
    costs: CostBreakdown = Field(default_factory=CostBreakdown)
    conversation: list[ConversationMessage] = Field(default_factory=list)
    ready_for_handoff: bool = False
    product: ProductAnalysisState = Field(default_factory=ProductAnalysisState)
    creative: CreativeDirectionState = Field(default_factory=CreativeDirectionState)
    production: ProductionState = Field(default_factory=ProductionState)
    handoffs: list[HandoffPackage] = Field(default_factory=list)
    completed_stages: list[AgentType] = Field(default_factory=list)
    active_generations: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def is_completed(self) -> bool:
        """Whether the session's current stage is completed."""
        return self.status == SessionStatus.COMPLETED

    def messages_for(self, agent: AgentType) -> list[ConversationMessage]:
        """Conversation turns belonging to one stage."""
        return [m for m in self.conversation if m.agent == agent]

    def latest_handoff(self, target: AgentType) -> Optional[HandoffPackage]:
        """Most recent package addressed to ``target``, if any."""
        for package in reversed(self.handoffs):
            if package.target_agent == target:
                return package
        return None
