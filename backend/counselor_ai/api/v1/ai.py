"""
AI assistant API endpoints.

Provides endpoints for:
- Provider selection and model listing
- Provider health and failover status
- Chat completion (plain and streamed as server-sent events)
- Usage, cache and error statistics
"""
import json
import logging
from contextlib import aclosing
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ...dependencies import (
    get_ai_provider_service,
    get_cache,
    get_cost_tracker,
    get_error_handler,
    get_health_monitor,
)
from ...services.ai_provider import (
    STATIC_MODELS,
    AICacheService,
    AICostTracker,
    AIErrorHandler,
    AIHealthMonitor,
    AINotConfiguredError,
    AIProviderError,
    AIProviderService,
    AIRateLimitError,
    ChatCompletionRequest,
    ChatMessage,
    ProviderType,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai-assistant", tags=["AI Assistant"])


# =============================================================================
# SCHEMAS
# =============================================================================


class MessageSchema(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Schema for a chat completion request."""
    messages: List[MessageSchema] = Field(..., min_length=1, description="Ordered conversation")
    temperature: Optional[float] = Field(
        None,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (0-2), provider setting when omitted"
    )
    format: Optional[Literal["json", "text"]] = Field(
        None,
        description="Ask the provider for structured JSON output"
    )

    def to_request(self) -> ChatCompletionRequest:
        return ChatCompletionRequest(
            messages=[ChatMessage.from_dict(m.model_dump()) for m in self.messages],
            temperature=self.temperature,
            format=self.format,
        )


class ChatResponse(BaseModel):
    message: str
    provider: str
    model: str


class SetProviderRequest(BaseModel):
    """Schema for switching the active provider."""
    provider: str = Field(..., description="Provider: ollama, openai or gemini")
    model: Optional[str] = Field(None, description="Model, provider default when omitted")
    ollama_base_url: Optional[str] = Field(None, description="Ollama server URL")


class SetProviderResponse(BaseModel):
    success: bool = True
    provider: str
    model: str


class ModelsResponse(BaseModel):
    provider: str
    current_model: str
    available_models: List[str]
    is_available: bool


class ProviderStatusResponse(BaseModel):
    """Status of the active provider; active is False when it cannot serve requests."""
    active: bool
    provider: str
    model: str
    best_provider: Optional[str] = None
    providers: Dict[str, Any] = {}
    monitor_jobs: List[Dict[str, Any]] = []
    rate_limit_remaining: Dict[str, int] = {}


# =============================================================================
# PROVIDER ENDPOINTS
# =============================================================================


@router.get("/models", response_model=ModelsResponse)
async def list_models(
    service: AIProviderService = Depends(get_ai_provider_service)
) -> ModelsResponse:
    """
    List models of the active provider.

    Falls back to the static catalogue when the live query fails.
    """
    config = service.current_config

    try:
        models = await service.list_models()
    except Exception as e:
        logger.warning(f"[AI] Failed to list models for {config.provider.value}: {e}")
        models = list(STATIC_MODELS[config.provider])

    return ModelsResponse(
        provider=config.provider.value,
        current_model=config.model,
        available_models=models,
        is_available=await service.is_available()
    )


@router.post("/set-provider", response_model=SetProviderResponse)
async def set_provider(
    body: SetProviderRequest,
    service: AIProviderService = Depends(get_ai_provider_service)
) -> SetProviderResponse:
    """Switch the active provider (and optionally its model)."""
    try:
        config = service.set_provider(body.provider, body.model, body.ollama_base_url)
    except AINotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return SetProviderResponse(provider=config.provider.value, model=config.model)


@router.get("/health")
async def get_health(
    service: AIProviderService = Depends(get_ai_provider_service)
) -> Dict[str, Any]:
    """
    Availability of the active provider.

    Always answers; an unreachable provider is reported as unavailable.
    """
    return await service.get_status()


@router.get("/status", response_model=ProviderStatusResponse)
async def get_status(
    service: AIProviderService = Depends(get_ai_provider_service),
    monitor: AIHealthMonitor = Depends(get_health_monitor)
) -> ProviderStatusResponse:
    """Active provider plus the health monitor's view of every provider."""
    status = await service.get_status()
    best = monitor.get_best_provider()
    limiter = service.rate_limiter

    return ProviderStatusResponse(
        active=status["available"],
        provider=status["provider"],
        model=status["model"],
        best_provider=best.value if best else None,
        providers=monitor.get_health_status(),
        monitor_jobs=monitor.get_jobs_status(),
        rate_limit_remaining={p.value: limiter.remaining(p) for p in ProviderType} if limiter is not None else {}
    )


# =============================================================================
# CHAT ENDPOINTS
# =============================================================================


@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    service: AIProviderService = Depends(get_ai_provider_service)
) -> ChatResponse:
    """Single chat completion with the active provider."""
    config = service.current_config

    try:
        message = await service.chat(body.to_request())
    except AIRateLimitError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except AIProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return ChatResponse(message=message, provider=config.provider.value, model=config.model)


def _sse(data) -> str:
    if not isinstance(data, str):
        data = json.dumps(data, ensure_ascii=False)
    return f"data: {data}\n\n"


@router.post("/chat-stream")
async def chat_stream(
    body: ChatRequest,
    service: AIProviderService = Depends(get_ai_provider_service)
) -> StreamingResponse:
    """
    Streamed chat completion as server-sent events.

    Frames: data: {"content": "..."} per chunk, then data: [DONE].
    A failure after the stream has started is sent as data: {"error": "..."}.
    """
    request = body.to_request()

    async def event_stream():
        try:
            async with aclosing(service.chat_stream(request)) as chunks:
                async for chunk in chunks:
                    yield _sse({"content": chunk})
        except Exception as e:
            logger.error(f"[AI] Stream failed: {e}")
            yield _sse({"error": str(e)})
            return
        yield _sse("[DONE]")

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    )


# =============================================================================
# STATISTICS
# =============================================================================


@router.get("/usage")
async def get_usage(
    tracker: AICostTracker = Depends(get_cost_tracker)
) -> Dict[str, Any]:
    """Token usage and estimated cost (today, rolling 30 days, per provider)."""
    return {
        "daily": tracker.get_daily_stats(),
        "monthly_total": tracker.get_monthly_total(),
        "providers": tracker.get_provider_breakdown()
    }


@router.get("/cache/stats")
async def get_cache_stats(
    cache: Optional[AICacheService] = Depends(get_cache)
) -> Dict[str, Any]:
    if cache is None:
        return {"enabled": False}
    return {"enabled": True, **cache.get_stats()}


@router.delete("/cache")
async def clear_cache(
    cache: Optional[AICacheService] = Depends(get_cache)
) -> Dict[str, Any]:
    if cache is None:
        return {"success": True, "cleared": 0}
    cleared = len(cache)
    cache.clear()
    return {"success": True, "cleared": cleared}


@router.get("/errors")
async def get_errors(
    limit: int = Query(50, ge=1, le=100, description="Number of recent errors to return"),
    error_handler: AIErrorHandler = Depends(get_error_handler)
) -> Dict[str, Any]:
    """Error statistics and the most recent failures."""
    return {
        "stats": error_handler.get_error_stats(),
        "recent": [record.to_dict() for record in error_handler.get_recent_errors(limit)]
    }
