"""
AI Provider module - unified chat completion access for the counselor assistant.

Supports multiple providers:
- Ollama (self-hosted)
- OpenAI API
- Google Gemini API

Usage:
    from counselor_ai.services.ai_provider import AIProviderService, ChatCompletionRequest, ChatMessage

    service = AIProviderService(build_initial_config(settings), AIAdapterFactory(settings))
    text = await service.chat(ChatCompletionRequest([ChatMessage("user", "Bonjour")]))
"""
from .base import (
    AIAdapter,
    ChatCompletionRequest,
    ChatMessage,
    ProviderHealth,
    ResponseFormat,
)
from .cache import AICacheService, CacheEntry
from .config import (
    DEFAULT_MODELS,
    STATIC_MODELS,
    ProviderConfig,
    ProviderType,
    build_initial_config,
    default_model_for,
)
from .cost_tracker import AICostTracker, UsageRecord
from .error_handler import AIErrorHandler, AIErrorRecord, ErrorSeverity
from .exceptions import (
    AIError,
    AINotConfiguredError,
    AIProviderError,
    AIRateLimitError,
    AIResponseError,
    AITimeoutError,
    UnknownProviderError,
)
from .factory import AIAdapterFactory, create_adapter
from .health_monitor import AIHealthMonitor
from .rate_limiter import ProviderRateLimiter
from .service import AIProviderService

# Re-export public types
__all__ = [
    "AIProviderService",
    "AIAdapterFactory",
    "create_adapter",
    "AIHealthMonitor",
    "AICacheService",
    "CacheEntry",
    "AICostTracker",
    "UsageRecord",
    "ProviderRateLimiter",
    "AIErrorHandler",
    "AIErrorRecord",
    "ErrorSeverity",
    "AIAdapter",
    "ChatMessage",
    "ChatCompletionRequest",
    "ResponseFormat",
    "ProviderHealth",
    "ProviderConfig",
    "ProviderType",
    "DEFAULT_MODELS",
    "STATIC_MODELS",
    "build_initial_config",
    "default_model_for",
    "AIError",
    "AINotConfiguredError",
    "UnknownProviderError",
    "AIProviderError",
    "AITimeoutError",
    "AIResponseError",
    "AIRateLimitError",
]
