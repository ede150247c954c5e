"""
Pytest configuration and shared fixtures.

Provides:
- Settings with test credentials (no .env, no network)
- Fake adapters/factory standing in for provider APIs
- Manual clocks for TTL, rate limit and latency tests
- FastAPI app with dependency overrides and an async HTTP client
- Mock utilities for httpx
"""
import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

# Set test environment BEFORE any app imports
os.environ["DEBUG"] = "false"
os.environ["LOG_DIR"] = ""  # No log files during tests
os.environ["AI_PROVIDER"] = ""
os.environ["AI_MODEL"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["AI_HEALTH_MONITOR_ENABLED"] = "false"

import httpx
from fastapi import FastAPI

from counselor_ai.config import Settings
from counselor_ai.dependencies import AIServices, get_ai_services
from counselor_ai.main import app as fastapi_app
from counselor_ai.services.ai_provider import (
    AIAdapter,
    AICacheService,
    AICostTracker,
    AIErrorHandler,
    AIHealthMonitor,
    AINotConfiguredError,
    AIProviderService,
    ProviderConfig,
    ProviderRateLimiter,
    ProviderType,
    default_model_for,
)


# =============================================================================
# CLOCKS
# =============================================================================

class ManualClock:
    """Monotonic-style clock advanced explicitly by tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ManualDateTimeClock:
    """UTC datetime clock advanced explicitly by tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def datetime_clock() -> ManualDateTimeClock:
    return ManualDateTimeClock()


# =============================================================================
# FAKE PROVIDERS
# =============================================================================

class FakeAdapter(AIAdapter):
    """
    In-memory adapter.

    Attributes tests can tweak:
        response: text returned by chat()
        chunks: pieces yielded by chat_stream()
        available: bool returned by is_available(), or an exception to raise
        error: raised by chat(), and by chat_stream() after the chunks
        gate: asyncio.Event awaited by chat() before answering
        latency/clock: is_available() advances clock by latency
    """

    def __init__(self, provider: ProviderType, response: str = "Bonjour !"):
        self.provider = provider
        self.model = default_model_for(provider)
        self.response = response
        self.chunks: List[str] = ["Bon", "jour", " !"]
        self.available = True
        self.error: Optional[BaseException] = None
        self.models_error: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None
        self.latency = 0.0
        self.clock: Optional[ManualClock] = None
        self.calls: List = []
        self.availability_checks = 0
        self.stream_closed = False

    async def is_available(self) -> bool:
        self.availability_checks += 1
        if self.clock is not None:
            self.clock.advance(self.latency)
        if isinstance(self.available, BaseException):
            raise self.available
        return self.available

    async def list_models(self) -> List[str]:
        if self.models_error is not None:
            raise self.models_error
        return [f"{self.provider.value}-local"]

    async def chat(self, request) -> str:
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.response

    async def chat_stream(self, request):
        self.calls.append(request)
        try:
            for chunk in self.chunks:
                yield chunk
            if self.error is not None:
                raise self.error
        finally:
            self.stream_closed = True


class FakeAdapterFactory:
    """Hands out one shared FakeAdapter per provider and records the configs used."""

    def __init__(self):
        self.adapters: Dict[ProviderType, FakeAdapter] = {p: FakeAdapter(p) for p in ProviderType}
        self.unconfigured = set()
        self.created: List[ProviderConfig] = []

    def create_adapter(self, config) -> FakeAdapter:
        provider = ProviderType.parse(config.provider)
        if provider in self.unconfigured:
            raise AINotConfiguredError(f"{provider.value} API key is required")
        self.created.append(config)
        adapter = self.adapters[provider]
        adapter.model = config.model
        return adapter

    def create_probe_adapter(self, provider, ollama_base_url=None) -> FakeAdapter:
        provider = ProviderType.parse(provider)
        if provider in self.unconfigured:
            raise AINotConfiguredError(f"{provider.value} API key is required")
        return self.adapters[provider]


@pytest.fixture
def fake_factory() -> FakeAdapterFactory:
    return FakeAdapterFactory()


@pytest.fixture
def settings() -> Settings:
    """Settings with credentials for every provider."""
    return Settings(
        _env_file=None,
        ai_provider="ollama",
        openai_api_key="sk-test",
        gemini_api_key="gemini-test",
        log_dir="",
        ai_health_monitor_enabled=False,
    )


@pytest.fixture
def provider_service(fake_factory) -> AIProviderService:
    """Service on Ollama with cache, tracker, rate limiter and error handler."""
    return AIProviderService(
        ProviderConfig(provider=ProviderType.OLLAMA, model="llama3"),
        fake_factory,
        cache=AICacheService(),
        cost_tracker=AICostTracker(),
        rate_limiter=ProviderRateLimiter(),
        error_handler=AIErrorHandler(),
    )


@pytest.fixture
def ai_services(settings, fake_factory, provider_service) -> AIServices:
    monitor = AIHealthMonitor(provider_service, adapter_builder=fake_factory.create_probe_adapter)
    return AIServices(
        settings=settings,
        factory=fake_factory,
        provider_service=provider_service,
        health_monitor=monitor,
        error_handler=provider_service.error_handler,
        cost_tracker=provider_service.cost_tracker,
        cache=provider_service.cache,
        rate_limiter=provider_service.rate_limiter,
    )


# =============================================================================
# APPLICATION FIXTURES
# =============================================================================

@pytest_asyncio.fixture
async def app(ai_services: AIServices) -> AsyncGenerator[FastAPI, None]:
    """
    FastAPI application with test dependency overrides.
    Replaces the startup-built AI services with the fake-backed bundle.
    """
    fastapi_app.dependency_overrides[get_ai_services] = lambda: ai_services

    yield fastapi_app

    # Cleanup overrides after test
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Async HTTP client for testing endpoints.
    Uses httpx.AsyncClient with ASGITransport for in-process testing.
    """
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
        follow_redirects=True
    ) as ac:
        yield ac


# =============================================================================
# MOCK FIXTURES FOR HTTPX
# =============================================================================

@pytest.fixture
def mock_httpx_response():
    """Factory for creating mock httpx responses."""
    def _create(status_code=200, json_data=None, text=""):
        response = MagicMock()
        response.status_code = status_code
        response.text = text
        response.json.return_value = json_data or {}
        response.raise_for_status = MagicMock()
        if status_code >= 400:
            from httpx import HTTPStatusError
            response.raise_for_status.side_effect = HTTPStatusError(
                message=f"HTTP {status_code}",
                request=MagicMock(),
                response=response
            )
        return response
    return _create


class TrackingStream(httpx.AsyncByteStream):
    """Response body that records whether the connection was released."""

    def __init__(self, chunks: List[bytes]):
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self):
        self.closed = True


@pytest.fixture
def streaming_transport():
    """
    Factory for an httpx.MockTransport serving a streamed body.

    Returns (transport, stream, requests) where requests collects every
    request sent through the transport.
    """
    def _create(lines: List[str], status_code: int = 200):
        stream = TrackingStream([(line + "\n").encode("utf-8") for line in lines])
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(status_code, stream=stream)

        return httpx.MockTransport(handler), stream, requests
    return _create


@pytest.fixture
def mock_chat_response_ollama():
    return {
        "model": "llama3",
        "message": {"role": "assistant", "content": "<think>hmm</think>Je vous écoute."},
        "done": True
    }


@pytest.fixture
def mock_chat_response_openai():
    return {
        "id": "chatcmpl-1",
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": "Je vous écoute."}}]
    }


@pytest.fixture
def mock_chat_response_gemini():
    return {
        "candidates": [{"content": {"role": "model", "parts": [{"text": "Je vous "}, {"text": "écoute."}]}}]
    }
