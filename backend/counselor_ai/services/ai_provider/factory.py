"""
Adapter factory: ProviderConfig -> adapter instance.
"""
import logging
from typing import Callable, Dict, Optional

import httpx

from ...config import Settings, get_settings
from .adapters import GeminiAdapter, OllamaAdapter, OpenAIAdapter
from .base import AIAdapter
from .config import ProviderConfig, ProviderType, default_model_for
from .exceptions import UnknownProviderError

logger = logging.getLogger(__name__)


def _common_kwargs(config: ProviderConfig, settings: Settings, transport) -> Dict:
    return {
        "temperature": config.temperature,
        "timeout": settings.ai_request_timeout,
        "max_retries": settings.ai_max_retries,
        "transport": transport,
    }


def _build_ollama(config: ProviderConfig, settings: Settings, transport) -> AIAdapter:
    return OllamaAdapter(
        config.model,
        base_url=config.ollama_base_url or settings.ollama_base_url,
        **_common_kwargs(config, settings, transport)
    )


def _build_openai(config: ProviderConfig, settings: Settings, transport) -> AIAdapter:
    return OpenAIAdapter(
        config.model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        **_common_kwargs(config, settings, transport)
    )


def _build_gemini(config: ProviderConfig, settings: Settings, transport) -> AIAdapter:
    return GeminiAdapter(
        config.model,
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
        **_common_kwargs(config, settings, transport)
    )


_BUILDERS: Dict[ProviderType, Callable[[ProviderConfig, Settings, Optional[httpx.AsyncBaseTransport]], AIAdapter]] = {
    ProviderType.OLLAMA: _build_ollama,
    ProviderType.OPENAI: _build_openai,
    ProviderType.GEMINI: _build_gemini,
}


class AIAdapterFactory:
    """Builds a fresh adapter for a provider configuration. Instances are never cached."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    def create_adapter(self, config: ProviderConfig) -> AIAdapter:
        """
        Build the adapter for a config.

        Raises:
            UnknownProviderError: If the provider is not supported
            AINotConfiguredError: If required credentials are missing
        """
        provider = ProviderType.parse(config.provider)
        builder = _BUILDERS.get(provider)
        if builder is None:
            raise UnknownProviderError(provider.value)
        adapter = builder(config, self.settings, self._transport)
        logger.debug(f"[AI] Adapter created: {provider.value} ({config.model})")
        return adapter

    def create_probe_adapter(self, provider, ollama_base_url: Optional[str] = None) -> AIAdapter:
        """Adapter used by the health monitor: provider default model and settings."""
        provider = ProviderType.parse(provider)
        return self.create_adapter(ProviderConfig(
            provider=provider,
            model=default_model_for(provider),
            temperature=self.settings.ai_temperature,
            ollama_base_url=ollama_base_url or self.settings.ollama_base_url,
        ))


def create_adapter(config: ProviderConfig, settings: Optional[Settings] = None) -> AIAdapter:
    """Convenience wrapper around AIAdapterFactory.create_adapter."""
    return AIAdapterFactory(settings).create_adapter(config)
