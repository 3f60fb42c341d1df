"""
adcraft.agents.video_producer - Zara, Video Production Stage
==============================================================

Final stage of the pipeline. Zara takes David's creative direction, lets the
user pick a narrative style and a music genre, produces the commercial and
closes the pipeline once the user accepts the video.

Phases:
    planning ──initialize──> narrative_selection ──start_production──>
    production ──video ready──> delivery

    A production that raises returns the session to the phase it started in.

Completion:
    There is no next stage. ``accept_production()`` moves the session from
    READY to COMPLETED, which ends the pipeline run.

Video Generation:
    Priced per 15 seconds (BudgetGuard.estimate_video) and checked against
    both the session budget and the per-operation cap before the provider is
    called. Failures go through the MODEL_API fallbacks (demo video).

Thumbnail:
    When the provider returns a poster frame it is stored next to the video
    as a best-effort upload. Losing it never fails the production.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from pydantic import BaseModel

from adcraft.agents.base import BaseStageAgent
from adcraft.core.enums import (
    AgentType,
    ErrorCategory,
    ProductionPhase,
    SessionStatus,
)
from adcraft.core.exceptions import InvalidRequestError, SessionStateError
from adcraft.core.models import HandoffPackage
from adcraft.core.state import ProductionState, SessionState
from adcraft.infrastructure.object_storage import StoredObject
from adcraft.integrations.generation.base import GenerationRequest, GenerationResult
from adcraft.orchestration.session_manager import GenerationSlot

MIN_DURATION = 5
MAX_DURATION = 60
DEFAULT_MUSIC_GENRE = "ambient"


class ProductionReply(BaseModel):
    """Outcome of a production step."""

    production: ProductionState
    cost: float = 0.0
    degraded: bool = False
    phase: str


class ProducedVideo(BaseModel):
    """What one generation run produced, before it is applied to the session."""

    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    job_id: Optional[str] = None
    cost: float = 0.0
    degraded: bool = False


class VideoProducerAgent(BaseStageAgent):
    """Zara: narrative, music and final video."""

    agent_type = AgentType.VIDEO_PRODUCER

    async def select_narrative(self, session_id: str, style: str) -> ProductionReply:
        """Choose the narrative style of the commercial."""
        if not style or not style.strip():
            raise InvalidRequestError("Narrative style is required", field="style")
        return await self._select(session_id, narrative_style=style.strip())

    async def select_music(self, session_id: str, genre: str) -> ProductionReply:
        """Choose the music genre of the commercial."""
        if not genre or not genre.strip():
            raise InvalidRequestError("Music genre is required", field="genre")
        return await self._select(session_id, music_genre=genre.strip())

    async def start_production(
        self,
        session_id: str,
        duration: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ProductionReply:
        """Generate the commercial video.

        Raises:
            InvalidRequestError: No narrative selected, or duration out of range.
            BudgetExceededError: The video would break the budget or the
                per-operation cap.
            ConcurrencyLimitError: The session runs too many generations.
            GenerationCancelledError: Cancelled while in flight.
            GenerationFailedError: Nothing could substitute a video.
        """
        session = await self.sessions.get_session(session_id)
        duration = duration or session.production.duration
        if not MIN_DURATION <= duration <= MAX_DURATION:
            raise InvalidRequestError(
                f"Duration must be between {MIN_DURATION} and {MAX_DURATION} seconds",
                field="duration",
            )
        if not session.production.narrative_style:
            raise InvalidRequestError(
                "Select a narrative style before starting production",
                field="narrative_style",
            )
        estimate = self.budget.estimate_video(duration)

        async with self.sessions.begin_request(
            session_id, self.agent_type, SessionStatus.CREATING
        ) as session:
            self.budget.ensure_within_budget(
                session.costs.total, estimate, "video_generation", session_id=session_id
            )

            async with self.sessions.generation_slot(session_id) as slot:
                previous_phase = session.phase
                await self.sessions.mutate(session_id, self._enter_production)
                try:
                    produced = await self._produce(session, slot, duration, estimate, cancel)
                except Exception:

                    def restore(s: SessionState) -> None:
                        s.phase = previous_phase

                    await self.sessions.mutate(session_id, restore)
                    raise

            if produced.cost > 0:
                await self.sessions.record_cost(session_id, "video_generation", produced.cost)

            def apply(s: SessionState) -> None:
                s.production.duration = duration
                s.production.video_url = produced.video_url
                s.production.thumbnail_url = produced.thumbnail_url
                s.production.job_id = produced.job_id
                s.production.fallback = produced.degraded
                s.production.music_genre = s.production.music_genre or DEFAULT_MUSIC_GENRE
                s.phase = (
                    ProductionPhase.DELIVERY.value
                    if produced.video_url
                    else ProductionPhase.NARRATIVE_SELECTION.value
                )
                s.ready_for_handoff = self._is_ready_for_handoff(s)

            updated = await self.sessions.mutate(session_id, apply)

        self._logger.info(
            "production_finished",
            session_id=session_id,
            duration=duration,
            degraded=produced.degraded,
            cost=produced.cost,
        )
        return ProductionReply(
            production=updated.production,
            cost=produced.cost,
            degraded=produced.degraded,
            phase=updated.phase,
        )

    async def accept_production(self, session_id: str) -> SessionState:
        """Accept the produced video and complete the pipeline run.

        Raises:
            SessionStateError: No video has been produced yet.
        """
        session = await self.sessions.get_session(session_id)
        if not session.production.video_url:
            raise SessionStateError(
                session_id=session_id,
                current=session.phase,
                requested=SessionStatus.COMPLETED.value,
                message="No video has been produced for this session yet",
            )

        def accept(s: SessionState) -> None:
            s.production.accepted = True

        await self.sessions.mutate(session_id, accept)
        return await self.sessions.complete_final_stage(session_id)

    # =========================================================================
    # Hooks
    # =========================================================================

    def _on_initialize(self, session: SessionState, package: Optional[HandoffPackage]) -> None:
        session.production.duration = self.config.generation.video_duration
        session.phase = ProductionPhase.NARRATIVE_SELECTION.value

    def _is_ready_for_handoff(self, session: SessionState) -> bool:
        return bool(session.production.video_url)

    def _status_details(self, session: SessionState) -> dict[str, Any]:
        production = session.production
        return {
            "narrative_style": production.narrative_style,
            "music_genre": production.music_genre,
            "duration": production.duration,
            "video_url": production.video_url,
            "thumbnail_url": production.thumbnail_url,
            "fallback": production.fallback,
            "accepted": production.accepted,
            "estimated_cost": self.budget.estimate_video(production.duration),
        }

    # =========================================================================
    # Internal
    # =========================================================================

    async def _select(self, session_id: str, **changes: str) -> ProductionReply:
        async with self.sessions.begin_request(
            session_id, self.agent_type, SessionStatus.AWAITING_INPUT
        ):

            def apply(s: SessionState) -> None:
                for key, value in changes.items():
                    setattr(s.production, key, value)
                if s.phase == ProductionPhase.PLANNING.value:
                    s.phase = ProductionPhase.NARRATIVE_SELECTION.value

            updated = await self.sessions.mutate(session_id, apply)
        return ProductionReply(production=updated.production, phase=updated.phase)

    async def _produce(
        self,
        session: SessionState,
        slot: GenerationSlot,
        duration: int,
        estimate: float,
        cancel: Optional[asyncio.Event],
    ) -> ProducedVideo:
        """Generate the video and store it with its thumbnail."""
        session_id = session.session_id
        request = GenerationRequest(
            kind="video",
            prompt=self._brief(session),
            parameters={
                "duration": duration,
                "narrative_style": session.production.narrative_style,
                "music_genre": session.production.music_genre or DEFAULT_MUSIC_GENRE,
                "assets": [a.url for a in session.creative.ready_assets if a.url],
            },
        )
        outcome = await self.errors.execute(
            lambda: self.provider.generate(request),
            session_id=session_id,
            operation_name="video_generation",
            category=ErrorCategory.MODEL_API,
            metadata={"duration": duration},
        )
        self._discard_if_cancelled(slot, cancel, "video_generation")

        result = outcome.result
        if isinstance(result, GenerationResult):
            stored = await self._upload(
                session_id,
                result.media or b"",
                f"{session_id}/commercial.mp4",
                result.mime_type or "video/mp4",
            )
            thumbnail_url = await self._store_thumbnail(session_id, result)
            self._discard_if_cancelled(slot, cancel, "video_generation")
            return ProducedVideo(
                video_url=stored.url,
                thumbnail_url=thumbnail_url,
                job_id=result.data.get("job_id"),
                cost=estimate,
                degraded=outcome.degraded,
            )
        if isinstance(result, dict):
            return ProducedVideo(
                video_url=result.get("url"),
                job_id=result.get("id"),
                degraded=outcome.degraded,
            )
        return ProducedVideo(degraded=outcome.degraded)

    async def _store_thumbnail(
        self,
        session_id: str,
        result: GenerationResult,
    ) -> Optional[str]:
        """Upload the provider's poster frame. A failed upload is ignored."""
        thumbnail = result.data.get("thumbnail")
        if not thumbnail:
            return None
        outcome = await self.errors.execute(
            lambda: self.storage.upload(thumbnail, f"{session_id}/commercial.jpg", "image/jpeg"),
            session_id=session_id,
            operation_name="thumbnail_upload",
            category=ErrorCategory.OBJECT_STORAGE,
            best_effort=True,
        )
        stored = outcome.result
        if isinstance(stored, StoredObject) and stored.stored:
            return stored.url
        return None

    @staticmethod
    def _enter_production(session: SessionState) -> None:
        session.phase = ProductionPhase.PRODUCTION.value

    @staticmethod
    def _brief(session: SessionState) -> str:
        package = session.latest_handoff(AgentType.VIDEO_PRODUCER)
        style = session.creative.style_direction
        if style is None and package is not None:
            style = package.payload.get("style_direction")
        product = {}
        if package is not None:
            product = package.payload.get("product_analysis", {}).get("product", {})
        name = product.get("name", "the product")
        return (
            f"{session.production.narrative_style} commercial for {name}"
            + (f", {style} visual style" if style else "")
        )
