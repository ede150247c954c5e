"""
Dependency Injection for FastAPI endpoints.

The AI services are built once by create_ai_services() during application
startup and stored on app.state. Endpoints obtain them through the
getters below using FastAPI's Depends() pattern, so tests can swap them
with dependency_overrides.

Service Hierarchy:
    Level 0: Settings
    Level 1: Cache, cost tracker, rate limiter, error handler
    Level 2: Provider service (active adapter)
    Level 3: Health monitor (failover on top of the provider service)
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, HTTPException, Request

from .config import Settings, get_settings
from .services.ai_provider import (
    AIAdapterFactory,
    AICacheService,
    AICostTracker,
    AIErrorHandler,
    AIHealthMonitor,
    AINotConfiguredError,
    AIProviderService,
    ProviderConfig,
    ProviderRateLimiter,
    ProviderType,
    build_initial_config,
    default_model_for,
)

logger = logging.getLogger(__name__)


@dataclass
class AIServices:
    """Process-wide AI service instances, owned by the application."""
    settings: Settings
    factory: AIAdapterFactory
    provider_service: AIProviderService
    health_monitor: AIHealthMonitor
    error_handler: AIErrorHandler
    cost_tracker: AICostTracker
    cache: Optional[AICacheService] = None
    rate_limiter: Optional[ProviderRateLimiter] = None


def _build_provider_service(
    settings: Settings,
    factory: AIAdapterFactory,
    **components
) -> AIProviderService:
    config = build_initial_config(settings)
    try:
        return AIProviderService(config, factory, **components)
    except AINotConfiguredError as e:
        logger.error(f"[AI] {config.provider.value} cannot be used ({e}), falling back to Ollama")

    fallback = ProviderConfig(
        provider=ProviderType.OLLAMA,
        model=default_model_for(ProviderType.OLLAMA),
        temperature=config.temperature,
        ollama_base_url=settings.ollama_base_url,
    )
    return AIProviderService(fallback, factory, **components)


def create_ai_services(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> AIServices:
    """
    Composition root for the AI subsystem.

    Falls back to Ollama when the configured provider lacks credentials.

    Raises:
        UnknownProviderError: If AI_PROVIDER names an unsupported provider
    """
    settings = settings or get_settings()
    factory = AIAdapterFactory(settings, transport=transport)

    cache = None
    if settings.ai_cache_enabled:
        cache = AICacheService(
            ttl_seconds=settings.ai_cache_ttl_hours * 3600,
            max_size=settings.ai_cache_max_size,
        )
    rate_limiter = ProviderRateLimiter() if settings.ai_rate_limit_enabled else None
    cost_tracker = AICostTracker()
    error_handler = AIErrorHandler()

    provider_service = _build_provider_service(
        settings,
        factory,
        cache=cache,
        cost_tracker=cost_tracker,
        rate_limiter=rate_limiter,
        error_handler=error_handler,
    )

    health_monitor = AIHealthMonitor.from_factory(
        provider_service,
        factory,
        interval_seconds=settings.ai_health_check_interval,
        failure_threshold=settings.ai_health_failure_threshold,
        check_timeout=settings.ai_health_check_timeout,
    )

    return AIServices(
        settings=settings,
        factory=factory,
        provider_service=provider_service,
        health_monitor=health_monitor,
        error_handler=error_handler,
        cost_tracker=cost_tracker,
        cache=cache,
        rate_limiter=rate_limiter,
    )


# =============================================================================
# AI SERVICE DEPENDENCIES
# =============================================================================

def get_ai_services(request: Request) -> AIServices:
    """
    AI service bundle created at startup.

    Usage:
        @router.get("/")
        async def endpoint(services: AIServices = Depends(get_ai_services)):
            ...
    """
    services = getattr(request.app.state, "ai_services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="AI services not initialized")
    return services


def get_ai_provider_service(services: AIServices = Depends(get_ai_services)) -> AIProviderService:
    return services.provider_service


def get_health_monitor(services: AIServices = Depends(get_ai_services)) -> AIHealthMonitor:
    return services.health_monitor


def get_cost_tracker(services: AIServices = Depends(get_ai_services)) -> AICostTracker:
    return services.cost_tracker


def get_error_handler(services: AIServices = Depends(get_ai_services)) -> AIErrorHandler:
    return services.error_handler


def get_cache(services: AIServices = Depends(get_ai_services)) -> Optional[AICacheService]:
    """Response cache, or None when caching is disabled."""
    return services.cache
