"""
Tests for AI assistant API endpoints.
"""
import json

import httpx
import pytest
from httpx import AsyncClient

from counselor_ai.main import app as fastapi_app
from counselor_ai.services.ai_provider import (
    AIAdapterFactory,
    AIProviderService,
    AIResponseError,
    ProviderConfig,
    ProviderRateLimiter,
    ProviderType,
    STATIC_MODELS,
)

BASE = "/api/v1/ai-assistant"


def chat_body(content: str = "hello", **extra) -> dict:
    return {"messages": [{"role": "user", "content": content}], "temperature": 0, **extra}


def sse_frames(text: str) -> list:
    return [line[len("data: "):] for line in text.split("\n") if line.startswith("data: ")]


class TestProviderEndpoints:
    """Tests for /models, /set-provider, /health and /status."""

    @pytest.mark.asyncio
    async def test_models(self, client: AsyncClient):
        response = await client.get(f"{BASE}/models")

        assert response.status_code == 200
        assert response.json() == {
            "provider": "ollama",
            "current_model": "llama3",
            "available_models": ["ollama-local"],
            "is_available": True,
        }

    @pytest.mark.asyncio
    async def test_models_fallback_to_static_list(self, client: AsyncClient, fake_factory):
        fake_factory.adapters[ProviderType.OLLAMA].models_error = AIResponseError("ollama", status_code=500)

        response = await client.get(f"{BASE}/models")

        assert response.status_code == 200
        assert response.json()["available_models"] == STATIC_MODELS[ProviderType.OLLAMA]

    @pytest.mark.asyncio
    async def test_set_provider(self, client: AsyncClient, provider_service):
        response = await client.post(f"{BASE}/set-provider", json={"provider": "gemini"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "provider": "gemini", "model": "gemini-2.5-flash"}
        assert provider_service.get_provider() is ProviderType.GEMINI

    @pytest.mark.asyncio
    async def test_set_provider_with_model(self, client: AsyncClient):
        response = await client.post(f"{BASE}/set-provider", json={"provider": "openai", "model": "gpt-4o"})
        assert response.json()["model"] == "gpt-4o"

    @pytest.mark.asyncio
    async def test_set_unknown_provider(self, client: AsyncClient, provider_service):
        response = await client.post(f"{BASE}/set-provider", json={"provider": "mistral-cloud"})

        assert response.status_code == 400
        assert "mistral-cloud" in response.json()["detail"]
        assert provider_service.get_provider() is ProviderType.OLLAMA

    @pytest.mark.asyncio
    async def test_set_unconfigured_provider(self, client: AsyncClient, fake_factory, provider_service):
        fake_factory.unconfigured.add(ProviderType.OPENAI)

        response = await client.post(f"{BASE}/set-provider", json={"provider": "openai"})

        assert response.status_code == 400
        assert provider_service.get_provider() is ProviderType.OLLAMA

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get(f"{BASE}/health")

        assert response.status_code == 200
        assert response.json() == {"provider": "ollama", "model": "llama3", "available": True}

    @pytest.mark.asyncio
    async def test_health_never_fails(self, client: AsyncClient, fake_factory):
        fake_factory.adapters[ProviderType.OLLAMA].available = RuntimeError("connection reset")

        response = await client.get(f"{BASE}/health")

        assert response.status_code == 200
        assert response.json()["available"] is False

    @pytest.mark.asyncio
    async def test_status_inactive_when_unavailable(self, client: AsyncClient, fake_factory):
        fake_factory.adapters[ProviderType.OLLAMA].available = False

        response = await client.get(f"{BASE}/status")

        assert response.status_code == 200
        data = response.json()
        assert data["active"] is False
        assert data["provider"] == "ollama"
        assert data["best_provider"] is None
        assert set(data["providers"]) == {"ollama", "openai", "gemini"}
        assert data["providers"]["gemini"]["status"] == "unknown"
        assert data["monitor_jobs"] == []

    @pytest.mark.asyncio
    async def test_status_after_health_checks(self, client: AsyncClient, ai_services):
        await ai_services.health_monitor.check_all()

        data = (await client.get(f"{BASE}/status")).json()

        assert data["active"] is True
        assert data["best_provider"] in {"ollama", "openai", "gemini"}
        assert data["providers"]["ollama"]["status"] == "healthy"


    @pytest.mark.asyncio
    async def test_status_reports_rate_limit_budget(self, client: AsyncClient, provider_service):
        provider_service.rate_limiter = ProviderRateLimiter(limits={"ollama": 2, "openai": 5, "gemini": 5})
        await client.post(f"{BASE}/chat", json=chat_body())

        data = (await client.get(f"{BASE}/status")).json()

        assert data["rate_limit_remaining"] == {"ollama": 1, "openai": 5, "gemini": 5}

    @pytest.mark.asyncio
    async def test_status_without_rate_limiter(self, client: AsyncClient, provider_service):
        provider_service.rate_limiter = None

        data = (await client.get(f"{BASE}/status")).json()

        assert data["rate_limit_remaining"] == {}


class TestChatEndpoint:
    """Tests for POST /chat."""

    @pytest.mark.asyncio
    async def test_chat(self, client: AsyncClient):
        response = await client.post(f"{BASE}/chat", json=chat_body())

        assert response.status_code == 200
        assert response.json() == {"message": "Bonjour !", "provider": "ollama", "model": "llama3"}

    @pytest.mark.asyncio
    async def test_repeated_chat_served_from_cache(self, client: AsyncClient, fake_factory):
        await client.post(f"{BASE}/chat", json=chat_body())
        response = await client.post(f"{BASE}/chat", json=chat_body())

        assert response.json()["message"] == "Bonjour !"
        assert len(fake_factory.adapters[ProviderType.OLLAMA].calls) == 1

    @pytest.mark.asyncio
    async def test_json_format_forwarded(self, client: AsyncClient, fake_factory):
        await client.post(f"{BASE}/chat", json=chat_body(format="json"))

        request = fake_factory.adapters[ProviderType.OLLAMA].calls[0]
        assert request.wants_json is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"messages": []},
        {"messages": [{"role": "tool", "content": "x"}]},
        {"messages": [{"role": "user", "content": "x"}], "temperature": 3},
        {"messages": [{"role": "user", "content": "x"}], "format": "xml"},
    ])
    async def test_invalid_body(self, client: AsyncClient, body):
        response = await client.post(f"{BASE}/chat", json=body)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_provider_failure_returns_502(self, client: AsyncClient, fake_factory):
        fake_factory.adapters[ProviderType.OLLAMA].error = AIResponseError("ollama", status_code=500)

        response = await client.post(f"{BASE}/chat", json=chat_body())

        assert response.status_code == 502
        assert response.json()["detail"] == "Ollama API failed: HTTP 500"

    @pytest.mark.asyncio
    async def test_unexpected_payload_returns_502(self, client: AsyncClient, ai_services, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": [None]}))
        ai_services.provider_service = AIProviderService(
            ProviderConfig("openai", "gpt-4o-mini"),
            AIAdapterFactory(settings, transport=transport),
        )

        response = await client.post(f"{BASE}/chat", json=chat_body())

        assert response.status_code == 502
        assert response.json()["detail"].startswith("OpenAI API failed: unexpected response shape")

    @pytest.mark.asyncio
    async def test_rate_limited_returns_429(self, client: AsyncClient, provider_service):
        provider_service.rate_limiter = ProviderRateLimiter(limits={"ollama": 1})

        assert (await client.post(f"{BASE}/chat", json=chat_body("one"))).status_code == 200
        response = await client.post(f"{BASE}/chat", json=chat_body("two"))

        assert response.status_code == 429
        assert "Rate limit exceeded" in response.json()["detail"]


class TestChatStreamEndpoint:
    """Tests for POST /chat-stream (server-sent events)."""

    @pytest.mark.asyncio
    async def test_stream(self, client: AsyncClient):
        response = await client.post(f"{BASE}/chat-stream", json=chat_body())

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = sse_frames(response.text)
        assert frames[-1] == "[DONE]"
        assert [json.loads(f)["content"] for f in frames[:-1]] == ["Bon", "jour", " !"]

    @pytest.mark.asyncio
    async def test_stream_failure_sent_as_error_frame(self, client: AsyncClient, fake_factory):
        fake_factory.adapters[ProviderType.OLLAMA].error = AIResponseError("ollama", message="malformed stream frame")

        response = await client.post(f"{BASE}/chat-stream", json=chat_body())

        frames = sse_frames(response.text)
        assert "[DONE]" not in frames
        assert json.loads(frames[-1]) == {"error": "Ollama API failed: malformed stream frame"}

    @pytest.mark.asyncio
    async def test_stream_rate_limited(self, client: AsyncClient, provider_service):
        provider_service.rate_limiter = ProviderRateLimiter(limits={"ollama": 1})
        await client.post(f"{BASE}/chat-stream", json=chat_body())

        response = await client.post(f"{BASE}/chat-stream", json=chat_body())

        frames = sse_frames(response.text)
        assert len(frames) == 1
        assert "Rate limit exceeded" in json.loads(frames[0])["error"]


class TestStatisticsEndpoints:
    """Tests for /usage, /cache and /errors."""

    @pytest.mark.asyncio
    async def test_usage(self, client: AsyncClient):
        await client.post(f"{BASE}/chat", json=chat_body())

        data = (await client.get(f"{BASE}/usage")).json()

        assert data["daily"]["requests"] == 1
        assert data["monthly_total"] == 0.0
        assert data["providers"]["ollama"]["requests"] == 1

    @pytest.mark.asyncio
    async def test_cache_stats_and_clear(self, client: AsyncClient):
        await client.post(f"{BASE}/chat", json=chat_body())

        stats = (await client.get(f"{BASE}/cache/stats")).json()
        assert stats["enabled"] is True
        assert stats["size"] == 1

        cleared = (await client.delete(f"{BASE}/cache")).json()
        assert cleared == {"success": True, "cleared": 1}
        assert (await client.get(f"{BASE}/cache/stats")).json()["size"] == 0

    @pytest.mark.asyncio
    async def test_cache_disabled(self, client: AsyncClient, ai_services):
        ai_services.cache = None

        assert (await client.get(f"{BASE}/cache/stats")).json() == {"enabled": False}
        assert (await client.delete(f"{BASE}/cache")).json()["cleared"] == 0

    @pytest.mark.asyncio
    async def test_errors(self, client: AsyncClient, fake_factory):
        fake_factory.adapters[ProviderType.OLLAMA].error = AIResponseError("ollama", status_code=500)
        await client.post(f"{BASE}/chat", json=chat_body())

        data = (await client.get(f"{BASE}/errors")).json()

        assert data["stats"]["total"] == 1
        assert data["stats"]["by_provider"] == {"ollama": 1}
        assert data["recent"][0]["operation"] == "chat-completion"
        assert data["recent"][0]["error_type"] == "AIResponseError"


class TestServicesNotInitialized:

    @pytest.mark.asyncio
    async def test_returns_503_without_startup(self, client: AsyncClient):
        fastapi_app.dependency_overrides.clear()

        response = await client.get(f"{BASE}/health")

        assert response.status_code == 503
