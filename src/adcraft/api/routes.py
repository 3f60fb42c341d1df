"""
adcraft.api.routes - Agent Stage Endpoints
============================================

One router for the three stages. Every stage answers the common actions
(initialize, status, chat, handoff, cancel); stage-specific actions live
under the persona's path.

    POST /api/agents/{agent}/initialize
    GET  /api/agents/{agent}/status?sessionId=...
    POST /api/agents/{agent}/chat
    POST /api/agents/{agent}/handoff          (zara: accept the video)
    POST /api/agents/{agent}/cancel
    POST /api/agents/maya/analyze
    POST /api/agents/david/select-visual
    POST /api/agents/david/generate-asset
    POST /api/agents/zara/select-narrative
    POST /api/agents/zara/select-music
    POST /api/agents/zara/start-production
    GET  /api/health

Bodies use camelCase keys. Handlers raise AdCraftError subclasses; the
exception handlers in adcraft.api.app turn them into error envelopes.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from adcraft.api.envelope import success_response
from adcraft.core.enums import AgentType, AssetType, Locale
from adcraft.facade import AdCraft

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["AdCraft"])

AgentName = Literal["maya", "david", "zara"]

AGENTS_BY_NAME: dict[str, AgentType] = {
    "maya": AgentType.PRODUCT_INTELLIGENCE,
    "david": AgentType.CREATIVE_DIRECTOR,
    "zara": AgentType.VIDEO_PRODUCER,
}


# =============================================================================
# Request Bodies
# =============================================================================
class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InitializeRequest(ApiModel):
    session_id: Optional[str] = None
    locale: Optional[Locale] = None


class SessionRequest(ApiModel):
    session_id: str


class ChatRequest(SessionRequest):
    message: str


class AnalyzeRequest(SessionRequest):
    description: str = ""
    image_url: Optional[str] = None
    visual_preferences: Optional[dict[str, Any]] = None


class VisualDecisionRequest(SessionRequest):
    kind: str
    choice: str
    options: list[str] = Field(default_factory=list)
    finalize: bool = True


class GenerateAssetRequest(SessionRequest):
    prompt: str
    asset_type: AssetType = AssetType.PRODUCT_HERO
    model: Optional[str] = None
    quality: Optional[Literal["draft", "standard", "high", "premium"]] = None


class NarrativeRequest(SessionRequest):
    style: str


class MusicRequest(SessionRequest):
    genre: str


class ProductionRequest(SessionRequest):
    duration: Optional[int] = None


# =============================================================================
# Helpers
# =============================================================================
def _adcraft(request: Request) -> AdCraft:
    return request.app.state.adcraft


def _agent(request: Request, name: str) -> Any:
    return _adcraft(request).agent(AGENTS_BY_NAME[name])


def _ok(request: Request, data: Any) -> JSONResponse:
    return success_response(data, request.state.request_id)


# =============================================================================
# Common Stage Actions
# =============================================================================
@router.post("/agents/{agent}/initialize", summary="Start a stage for a session")
async def initialize_stage(agent: AgentName, body: InitializeRequest, request: Request):
    session = await _agent(request, agent).initialize(body.session_id, body.locale)
    structlog.contextvars.bind_contextvars(session_id=session.session_id)
    return _ok(request, {
        "sessionId": session.session_id,
        "agent": session.current_agent,
        "status": session.status,
        "phase": session.phase,
        "locale": session.locale,
    })


@router.get("/agents/{agent}/status", summary="Stage status and cost summary")
async def stage_status(
    agent: AgentName,
    request: Request,
    session_id: str = Query(..., alias="sessionId", min_length=1),
):
    return _ok(request, await _agent(request, agent).status(session_id))


@router.post("/agents/{agent}/chat", summary="Send a chat message to the stage")
async def chat(agent: AgentName, body: ChatRequest, request: Request):
    return _ok(request, await _agent(request, agent).chat(body.session_id, body.message))


@router.post("/agents/{agent}/handoff", summary="Hand the session to the next stage")
async def handoff(agent: AgentName, body: SessionRequest, request: Request):
    if agent == "zara":
        session = await _adcraft(request).zara.accept_production(body.session_id)
        return _ok(request, {
            "sessionId": session.session_id,
            "status": session.status,
            "videoUrl": session.production.video_url,
            "completedStages": session.completed_stages,
            "costs": session.costs,
        })
    result = await _agent(request, agent).handoff(body.session_id)
    return _ok(request, result)


@router.post("/agents/{agent}/cancel", summary="Cancel in-flight generations")
async def cancel(agent: AgentName, body: SessionRequest, request: Request):
    cancelled = _agent(request, agent).cancel(body.session_id)
    logger.info("generations_cancel_requested", session_id=body.session_id, cancelled=cancelled)
    return _ok(request, {"sessionId": body.session_id, "cancelled": cancelled})


# =============================================================================
# Maya
# =============================================================================
@router.post("/agents/maya/analyze", summary="Analyze the product")
async def analyze_product(body: AnalyzeRequest, request: Request):
    reply = await _adcraft(request).maya.analyze(
        body.session_id,
        body.description,
        image_url=body.image_url,
        visual_preferences=body.visual_preferences,
    )
    return _ok(request, reply)


# =============================================================================
# David
# =============================================================================
@router.post("/agents/david/select-visual", summary="Record a visual decision")
async def select_visual(body: VisualDecisionRequest, request: Request):
    reply = await _adcraft(request).david.select_visual_decision(
        body.session_id,
        body.kind,
        body.choice,
        options=body.options,
        finalize=body.finalize,
    )
    return _ok(request, reply)


@router.post("/agents/david/generate-asset", summary="Generate a visual asset")
async def generate_asset(body: GenerateAssetRequest, request: Request):
    reply = await _adcraft(request).david.generate_asset(
        body.session_id,
        body.prompt,
        asset_type=body.asset_type,
        model=body.model,
        quality=body.quality,
    )
    return _ok(request, reply)


# =============================================================================
# Zara
# =============================================================================
@router.post("/agents/zara/select-narrative", summary="Choose the narrative style")
async def select_narrative(body: NarrativeRequest, request: Request):
    return _ok(request, await _adcraft(request).zara.select_narrative(body.session_id, body.style))


@router.post("/agents/zara/select-music", summary="Choose the music genre")
async def select_music(body: MusicRequest, request: Request):
    return _ok(request, await _adcraft(request).zara.select_music(body.session_id, body.genre))


@router.post("/agents/zara/start-production", summary="Produce the commercial")
async def start_production(body: ProductionRequest, request: Request):
    reply = await _adcraft(request).zara.start_production(body.session_id, body.duration)
    return _ok(request, reply)


# =============================================================================
# Health
# =============================================================================
@router.get("/health", tags=["Health"], summary="Error counts and breaker states")
async def health(request: Request):
    return _ok(request, _adcraft(request).health())
