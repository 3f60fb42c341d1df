"""
adcraft.agents.creative_director - David, Creative Direction Stage
====================================================================

Second stage of the pipeline. David turns Maya's analysis into a visual
direction: the user makes visual decisions (style, colour palette,
composition) and David generates the visual assets the video will use.

Phases:
    analysis ──initialize──> creative_development ──generate_asset──>
    asset_generation ──ready──> finalization

Asset Generation Flow:

    generate_asset(prompt, model, quality)
        │
        ├─ price the image (BudgetGuard) ── over budget → BudgetExceededError
        ├─ session → CREATING
        ├─ admit a generation slot ──────── at the cap → ConcurrencyLimitError
        ├─ provider call behind the "imagen" breaker
        │     failure → handle_image_generation_error:
        │               retry → cheaper model → reduced quality → demo asset
        ├─ cancelled meanwhile? ─────────── discard → GenerationCancelledError
        ├─ upload the image (storage failure → placeholder, stored=False)
        └─ persist asset + actual cost, session → READY

Handoff Readiness:
    At least one finalized visual decision and one usable asset.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from pydantic import BaseModel, Field

from adcraft.agents.base import BaseStageAgent
from adcraft.core.enums import (
    AgentType,
    AssetStatus,
    AssetType,
    CreativePhase,
    SessionStatus,
)
from adcraft.core.exceptions import GenerationFailedError, InvalidRequestError
from adcraft.core.models import HandoffPackage
from adcraft.core.state import GeneratedAsset, SessionState, VisualDecision
from adcraft.integrations.generation.base import GenerationRequest, GenerationResult

IMAGE_SERVICE = "imagen"


class AssetReply(BaseModel):
    """Outcome of one asset generation."""

    asset: GeneratedAsset
    cost: float = 0.0
    degraded: bool = False
    fallback_type: Optional[str] = None
    ready_for_handoff: bool = False
    phase: str


class DecisionReply(BaseModel):
    """Outcome of a visual decision."""

    decision: VisualDecision
    finalized_decisions: int = 0
    ready_for_handoff: bool = False
    phase: str
    warnings: list[str] = Field(default_factory=list)


class CreativeDirectorAgent(BaseStageAgent):
    """David: visual direction and asset generation.

    Example:
        >>> await david.initialize(session_id)
        >>> await david.select_visual_decision(session_id, "style", "minimalist")
        >>> reply = await david.generate_asset(session_id, "Hero shot on marble")
        >>> reply.asset.status
        <AssetStatus.READY: 'ready'>
    """

    agent_type = AgentType.CREATIVE_DIRECTOR

    # =========================================================================
    # Visual Decisions
    # =========================================================================

    async def select_visual_decision(
        self,
        session_id: str,
        kind: str,
        choice: str,
        options: Optional[list[str]] = None,
        finalize: bool = True,
    ) -> DecisionReply:
        """Record a visual decision made by the user.

        "style" decisions set the style direction; "color_palette" decisions
        take a comma-separated list of colours.

        Raises:
            InvalidRequestError: Missing kind or choice.
        """
        if not kind or not kind.strip():
            raise InvalidRequestError("Decision kind is required", field="kind")
        if not choice or not choice.strip():
            raise InvalidRequestError("Decision choice is required", field="choice")

        decision = VisualDecision(
            kind=kind.strip(),
            choice=choice.strip(),
            options=list(options or []),
            finalized=finalize,
        )

        async with self.sessions.begin_request(
            session_id, self.agent_type, SessionStatus.AWAITING_INPUT
        ):

            def apply(s: SessionState) -> None:
                creative = s.creative
                creative.visual_decisions = [
                    d for d in creative.visual_decisions if d.kind != decision.kind
                ]
                creative.visual_decisions.append(decision)
                if decision.kind == "style":
                    creative.style_direction = decision.choice
                elif decision.kind == "color_palette":
                    creative.color_palette = [
                        c.strip() for c in decision.choice.split(",") if c.strip()
                    ]
                creative.confidence = self._confidence(s)
                self._advance_phase(s)

            updated = await self.sessions.mutate(session_id, apply)

        warnings = []
        if not updated.creative.style_direction:
            warnings.append("No style direction selected yet")
        return DecisionReply(
            decision=decision,
            finalized_decisions=len(updated.creative.finalized_decisions),
            ready_for_handoff=updated.ready_for_handoff,
            phase=updated.phase,
            warnings=warnings,
        )

    # =========================================================================
    # Asset Generation
    # =========================================================================

    async def generate_asset(
        self,
        session_id: str,
        prompt: str,
        asset_type: AssetType = AssetType.PRODUCT_HERO,
        model: Optional[str] = None,
        quality: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AssetReply:
        """Generate one visual asset.

        Args:
            session_id: Session to generate for.
            prompt: Image prompt.
            asset_type: Kind of asset.
            model: Image model; defaults to the configured model.
            quality: Quality tier; defaults to the configured tier.
            cancel: Caller-owned event; setting it discards the result.

        Raises:
            InvalidRequestError: Empty prompt, unknown model or quality, or
                the session asset limit was reached.
            BudgetExceededError: The image would break the budget.
            ConcurrencyLimitError: The session runs too many generations.
            GenerationCancelledError: Cancelled while in flight.
            GenerationFailedError: Nothing could substitute a result.
        """
        if not prompt or not prompt.strip():
            raise InvalidRequestError("Asset prompt cannot be empty", field="prompt")
        model = model or self.config.generation.image_model
        quality = quality or self.config.generation.default_quality
        estimate = self.budget.estimate_image(model, quality)

        async with self.sessions.begin_request(
            session_id, self.agent_type, SessionStatus.CREATING
        ) as session:
            limit = self.config.pipeline.max_assets_per_session
            if len(session.creative.assets) >= limit:
                raise InvalidRequestError(
                    f"Session already has {limit} assets",
                    field="prompt",
                    details={"limit": limit},
                )
            self.budget.ensure_within_budget(
                session.costs.total, estimate, "generate_asset", session_id=session_id
            )

            async with self.sessions.generation_slot(session_id) as slot:
                request = GenerationRequest(
                    kind="image",
                    prompt=prompt,
                    model=model,
                    quality=quality,
                    parameters={"asset_type": asset_type.value},
                )
                produced, fallback_type = await self._generate_image(
                    session_id, request, session.costs.total
                )
                self._discard_if_cancelled(slot, cancel, "generate_asset")

                asset = GeneratedAsset(type=asset_type, prompt=prompt, quality=quality)
                cost = 0.0
                if isinstance(produced, tuple):
                    result, used = produced
                    stored = await self._upload(
                        session_id,
                        result.media or b"",
                        f"{session_id}/{asset.id}.png",
                        result.mime_type or "image/png",
                    )
                    self._discard_if_cancelled(slot, cancel, "generate_asset")
                    cost = self.budget.estimate_image(used.model or model, used.quality)
                    asset.url = stored.url
                    asset.stored = stored.stored
                    asset.model = result.model or used.model
                    asset.quality = used.quality
                    asset.status = AssetStatus.READY if stored.stored else AssetStatus.DEGRADED
                elif isinstance(produced, dict) and produced.get("url"):
                    asset.url = produced["url"]
                    asset.model = "demo"
                    asset.fallback = True
                    asset.stored = False
                    asset.status = AssetStatus.DEGRADED
                else:
                    asset.status = AssetStatus.FAILED
                    asset.fallback = True
                asset.cost = cost

            if cost > 0:
                await self.sessions.record_cost(session_id, "image_generation", cost)

            def apply(s: SessionState) -> None:
                s.creative.assets.append(asset)
                s.creative.confidence = self._confidence(s)
                self._advance_phase(s)

            updated = await self.sessions.mutate(session_id, apply)

        self._logger.info(
            "asset_generated",
            session_id=session_id,
            asset_id=asset.id,
            status=asset.status.value,
            model=asset.model,
            cost=cost,
            fallback_type=fallback_type,
        )
        return AssetReply(
            asset=asset,
            cost=cost,
            degraded=fallback_type is not None,
            fallback_type=fallback_type,
            ready_for_handoff=updated.ready_for_handoff,
            phase=updated.phase,
        )

    async def _generate_image(
        self,
        session_id: str,
        request: GenerationRequest,
        spent: float,
    ) -> tuple[Any, Optional[str]]:
        """Call the image provider, degrading through the image fallbacks.

        Returns:
            ((GenerationResult, request actually served), fallback type or None)
            for a real image, or (placeholder dict, fallback type) otherwise.
        """
        served: list[GenerationRequest] = []

        async def call(req: GenerationRequest) -> GenerationResult:
            result = await self.provider.generate(req)
            served.append(req)
            return result

        async def regenerate(params: dict[str, Any]) -> GenerationResult:
            req = GenerationRequest(**{
                k: v for k, v in params.items()
                if k in GenerationRequest.model_fields
            })
            if "inference_steps" in params:
                req.parameters = {**req.parameters, "inference_steps": params["inference_steps"]}
            self.budget.ensure_within_budget(
                spent,
                self.budget.estimate_image(req.model or request.model or "imagen-4", req.quality),
                "generate_asset_fallback",
                session_id=session_id,
            )
            return await call(req)

        result, error = await self._guarded_call(IMAGE_SERVICE, lambda: call(request))
        if error is None:
            return (result, served[-1]), None

        handled = await self.errors.handle_image_generation_error(
            error, session_id, request.as_dict(), regenerate=regenerate
        )
        if not handled.success:
            raise GenerationFailedError(
                message=f"Image generation failed: {handled.error_record.message}",
                operation="generate_asset",
                error_record_id=handled.error_record.id,
            )
        fallback_type = handled.fallback_used.type.value if handled.fallback_used else None
        if isinstance(handled.result, GenerationResult) and served:
            return (handled.result, served[-1]), fallback_type
        return handled.result, fallback_type

    # =========================================================================
    # Hooks
    # =========================================================================

    def _on_initialize(self, session: SessionState, package: Optional[HandoffPackage]) -> None:
        if package is not None:
            session.creative.confidence = min(package.confidence, 0.5)
            preferences = package.payload.get("visual_preferences") or {}
            if preferences.get("style") and not session.creative.style_direction:
                session.creative.visual_decisions.append(
                    VisualDecision(
                        kind="style",
                        choice=str(preferences["style"]),
                        options=[str(preferences["style"])],
                        finalized=False,
                    )
                )
        session.phase = CreativePhase.CREATIVE_DEVELOPMENT.value

    def _is_ready_for_handoff(self, session: SessionState) -> bool:
        creative = session.creative
        return bool(creative.finalized_decisions) and bool(creative.ready_assets)

    def _status_details(self, session: SessionState) -> dict[str, Any]:
        creative = session.creative
        return {
            "style_direction": creative.style_direction,
            "color_palette": creative.color_palette,
            "finalized_decisions": len(creative.finalized_decisions),
            "assets": len(creative.assets),
            "ready_assets": len(creative.ready_assets),
            "degraded_assets": sum(1 for a in creative.assets if a.fallback),
            "confidence": creative.confidence,
        }

    # =========================================================================
    # Internal
    # =========================================================================

    def _advance_phase(self, session: SessionState) -> None:
        session.ready_for_handoff = self._is_ready_for_handoff(session)
        if session.ready_for_handoff:
            session.phase = CreativePhase.FINALIZATION.value
        elif session.creative.assets:
            session.phase = CreativePhase.ASSET_GENERATION.value

    @staticmethod
    def _confidence(session: SessionState) -> float:
        creative = session.creative
        score = 0.4
        score += 0.15 * min(len(creative.finalized_decisions), 2)
        score += 0.1 * min(len(creative.ready_assets), 2)
        if any(a.fallback for a in creative.assets):
            score -= 0.1
        return round(max(0.0, min(1.0, score)), 2)
