"""
AI provider configuration types and selection rules.
"""
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional

from .exceptions import UnknownProviderError

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    """Supported AI provider types."""
    OLLAMA = "ollama"    # self-hosted Ollama server
    OPENAI = "openai"    # OpenAI official API
    GEMINI = "gemini"    # Google Gemini API

    @classmethod
    def parse(cls, value) -> "ProviderType":
        """Convert a provider name, raising UnknownProviderError for anything else."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownProviderError(value) from None


DEFAULT_MODELS: Dict[ProviderType, str] = {
    ProviderType.GEMINI: "gemini-2.5-flash",
    ProviderType.OPENAI: "gpt-4o-mini",
    ProviderType.OLLAMA: "llama3",
}

# Catalogue served by adapters without a model listing call, and
# fallback lists when a live query fails.
STATIC_MODELS: Dict[ProviderType, List[str]] = {
    ProviderType.GEMINI: ["gemini-2.5-flash", "gemini-2.5-pro", "gemini-2.0-flash", "gemini-2.0-flash-exp"],
    ProviderType.OPENAI: ["gpt-4o-mini", "gpt-4o", "gpt-4-turbo", "gpt-3.5-turbo"],
    ProviderType.OLLAMA: ["llama3", "mistral", "codellama"],
}


def default_model_for(provider: ProviderType) -> str:
    return DEFAULT_MODELS[ProviderType.parse(provider)]


@dataclass(frozen=True)
class ProviderConfig:
    """
    Selection of the active AI provider.

    Replaced as a whole on every provider switch.
    """
    provider: ProviderType
    model: str
    temperature: float = 0.0
    ollama_base_url: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "provider", ProviderType.parse(self.provider))

    def switch_to(
        self,
        provider,
        model: Optional[str] = None,
        ollama_base_url: Optional[str] = None
    ) -> "ProviderConfig":
        """
        Build the config for a provider switch.

        Without an explicit model the current model is kept when the
        provider is unchanged, otherwise the new provider's default is used.
        """
        provider = ProviderType.parse(provider)
        if not model:
            model = self.model if provider == self.provider else default_model_for(provider)
        return replace(
            self,
            provider=provider,
            model=model,
            ollama_base_url=ollama_base_url or self.ollama_base_url,
        )


def select_provider(settings, requested: Optional[str] = None) -> ProviderType:
    """
    Pick the provider to start with.

    Priority: explicit request > configured provider > Gemini key >
    OpenAI key > Ollama (local, no credentials).
    """
    if requested:
        return ProviderType.parse(requested)

    if settings.ai_provider:
        logger.info(f"[AI] Provider loaded from settings: {settings.ai_provider}")
        return ProviderType.parse(settings.ai_provider)

    if settings.gemini_api_key:
        logger.info("[AI] Gemini API key found, using Gemini by default")
        return ProviderType.GEMINI

    if settings.openai_api_key:
        logger.info("[AI] OpenAI API key found, using OpenAI by default")
        return ProviderType.OPENAI

    logger.info("[AI] No API key configured, using local Ollama by default")
    return ProviderType.OLLAMA


def select_model(settings, provider: ProviderType, requested: Optional[str] = None) -> str:
    """
    Pick the model for a provider.

    Priority: explicit request > configured model (only if it belongs to
    the configured provider) > provider default.
    """
    if requested:
        return requested

    if settings.ai_model and settings.ai_provider and ProviderType.parse(settings.ai_provider) == provider:
        return settings.ai_model

    return default_model_for(provider)


def build_initial_config(
    settings,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    ollama_base_url: Optional[str] = None
) -> ProviderConfig:
    """Resolve the startup ProviderConfig from explicit values and settings."""
    selected = select_provider(settings, provider)
    return ProviderConfig(
        provider=selected,
        model=select_model(settings, selected, model),
        temperature=settings.ai_temperature if temperature is None else temperature,
        ollama_base_url=ollama_base_url or settings.ollama_base_url,
    )
