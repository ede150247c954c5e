"""
Custom exceptions for AI provider module.
"""
from typing import Optional

PROVIDER_DISPLAY_NAMES = {
    "ollama": "Ollama",
    "openai": "OpenAI",
    "gemini": "Gemini",
}


def display_name(provider) -> str:
    """Human-readable provider name used in error messages."""
    key = getattr(provider, "value", provider)
    return PROVIDER_DISPLAY_NAMES.get(key, str(key))


class AIError(Exception):
    """Base exception for AI-related errors."""
    pass


class AINotConfiguredError(AIError):
    """Raised when a provider cannot be built from its configuration (e.g. missing API key)."""

    def __init__(self, message: str = "AI provider not configured. Check the AI settings."):
        self.message = message
        super().__init__(self.message)


class UnknownProviderError(AINotConfiguredError):
    """Raised when a provider name is not one of the supported providers."""

    def __init__(self, provider):
        self.provider = provider
        super().__init__(f"Unknown AI provider: {provider!r}")


class AIProviderError(AIError):
    """Network or API failure of a provider call, wrapped with the provider name."""

    def __init__(self, provider, reason: str):
        self.provider = getattr(provider, "value", provider)
        self.reason = reason
        self.message = f"{display_name(provider)} API failed: {reason}"
        super().__init__(self.message)


class AITimeoutError(AIProviderError):
    """Raised when a provider request times out."""

    def __init__(self, provider, timeout: float):
        self.timeout = timeout
        super().__init__(provider, f"request timed out after {timeout} seconds")


class AIResponseError(AIProviderError):
    """Raised when a provider returns an error status or an unusable body."""

    def __init__(
        self,
        provider,
        status_code: Optional[int] = None,
        message: Optional[str] = None,
        response_body: Optional[str] = None
    ):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(provider, message or f"HTTP {status_code}")


class AIRateLimitError(AIError):
    """Raised when the local per-provider request budget is exhausted."""

    def __init__(self, provider):
        self.provider = getattr(provider, "value", provider)
        self.message = f"Rate limit exceeded for {self.provider}. Please try again in a minute."
        super().__init__(self.message)
