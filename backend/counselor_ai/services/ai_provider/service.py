"""
AI provider service: the facade the rest of the application talks to.
"""
import logging
import math
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from .base import AIAdapter, ChatCompletionRequest
from .cache import AICacheService
from .config import ProviderConfig, ProviderType
from .cost_tracker import AICostTracker
from .error_handler import AIErrorHandler
from .exceptions import AIRateLimitError
from .factory import AIAdapterFactory
from .rate_limiter import ProviderRateLimiter

logger = logging.getLogger(__name__)


def estimate_tokens(*texts: str) -> int:
    """Rough token count (~4 characters per token)."""
    return math.ceil(sum(len(t) for t in texts) / 4)


@dataclass(frozen=True)
class ActiveProvider:
    """Config and the adapter built from it, swapped together."""
    config: ProviderConfig
    adapter: AIAdapter


class AIProviderService:
    """
    Holds the active provider and routes chat calls through it.

    Chat pipeline: cache -> rate limit -> adapter -> cache store -> cost tracking.

    Each call captures the active (config, adapter) snapshot once, so a
    concurrent set_provider only affects calls started after it.
    """

    def __init__(
        self,
        config: ProviderConfig,
        factory: AIAdapterFactory,
        cache: Optional[AICacheService] = None,
        cost_tracker: Optional[AICostTracker] = None,
        rate_limiter: Optional[ProviderRateLimiter] = None,
        error_handler: Optional[AIErrorHandler] = None
    ):
        self._factory = factory
        self.cache = cache
        self.cost_tracker = cost_tracker
        self.rate_limiter = rate_limiter
        self.error_handler = error_handler or AIErrorHandler()

        # Raises AINotConfiguredError when credentials are missing
        self._active = ActiveProvider(config, factory.create_adapter(config))
        logger.info(f"[AI] Provider initialized: {config.provider.value} ({config.model})")

    # =========================================================================
    # PROVIDER SELECTION
    # =========================================================================

    @property
    def current_config(self) -> ProviderConfig:
        return self._active.config

    def get_provider(self) -> ProviderType:
        return self._active.config.provider

    def get_model(self) -> str:
        return self._active.config.model

    def set_provider(
        self,
        provider,
        model: Optional[str] = None,
        ollama_base_url: Optional[str] = None
    ) -> ProviderConfig:
        """
        Switch the active provider.

        The adapter is built before the swap; on a configuration error the
        previous provider stays active.

        Raises:
            UnknownProviderError: If the provider is not supported
            AINotConfiguredError: If the provider's credentials are missing
        """
        current = self._active
        config = current.config.switch_to(provider, model, ollama_base_url)
        adapter = self._factory.create_adapter(config)

        self._active = ActiveProvider(config, adapter)
        logger.info(
            f"[AI] Provider switched: {current.config.provider.value} ({current.config.model})"
            f" -> {config.provider.value} ({config.model})"
        )
        return config

    # =========================================================================
    # DELEGATION
    # =========================================================================

    async def is_available(self) -> bool:
        try:
            return await self._active.adapter.is_available()
        except Exception as e:
            logger.warning(f"[AI] Availability check failed: {e}")
            return False

    async def list_models(self) -> List[str]:
        return await self._active.adapter.list_models()

    async def get_status(self) -> Dict[str, Any]:
        """Status snapshot for status endpoints; never raises."""
        active = self._active
        return {
            "provider": active.config.provider.value,
            "model": active.config.model,
            "available": await self.is_available(),
        }

    def _check_rate_limit(self, provider: ProviderType) -> None:
        if self.rate_limiter is not None and not self.rate_limiter.check(provider):
            raise AIRateLimitError(provider)

    def _cache_lookup(self, request: ChatCompletionRequest) -> Optional[str]:
        if self.cache is None:
            return None
        try:
            return self.cache.get(request.messages, request.temperature)
        except Exception as e:
            logger.warning(f"[AI] Cache lookup skipped: {e}")
            return None

    def _cache_store(self, request: ChatCompletionRequest, response: str, config: ProviderConfig) -> None:
        if self.cache is None or not response:
            return
        try:
            self.cache.set(request.messages, request.temperature, response, config.provider.value, config.model)
        except Exception as e:
            logger.warning(f"[AI] Cache store skipped: {e}")

    def _track_usage(self, request: ChatCompletionRequest, response: str, config: ProviderConfig, task_type: str) -> None:
        if self.cost_tracker is None:
            return
        try:
            self.cost_tracker.track(
                config.provider.value,
                config.model,
                estimate_tokens(request.prompt_text(), response),
                task_type=task_type,
            )
        except Exception as e:
            logger.warning(f"[AI] Usage tracking skipped: {e}")

    async def chat(self, request: ChatCompletionRequest, task_type: str = "chat") -> str:
        """
        Single chat completion.

        Raises:
            AIRateLimitError: If the provider's local request budget is exhausted
            AIProviderError: If the provider call fails
        """
        active = self._active

        cached = self._cache_lookup(request)
        if cached is not None:
            logger.info("[AI] Served from cache")
            return cached

        try:
            self._check_rate_limit(active.config.provider)
            response = await active.adapter.chat(request)
        except Exception as e:
            self.error_handler.handle(e, active.config.provider, active.config.model, "chat-completion")
            raise

        logger.info(f"[AI] Response received ({len(response)} chars) from {active.config.provider.value}")
        self._cache_store(request, response, active.config)
        self._track_usage(request, response, active.config, task_type)
        return response

    async def chat_stream(self, request: ChatCompletionRequest, task_type: str = "chat") -> AsyncIterator[str]:
        """
        Streamed chat completion; chunks are yielded as they arrive.

        Usage is tracked once the stream is fully consumed. Streams are not cached.
        """
        active = self._active
        received: List[str] = []

        try:
            self._check_rate_limit(active.config.provider)
            async with aclosing(active.adapter.chat_stream(request)) as stream:
                async for chunk in stream:
                    received.append(chunk)
                    yield chunk
        except Exception as e:
            self.error_handler.handle(e, active.config.provider, active.config.model, "chat-stream")
            raise

        self._track_usage(request, "".join(received), active.config, task_type)
