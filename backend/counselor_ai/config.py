"""
Configuration management.
All settings can be overridden via environment variables or a .env file.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application
    app_name: str = Field(default="counselor-ai", description="Application name")
    app_port: int = Field(default=8765, description="Application port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Root log level")
    log_dir: str = Field(default="./data/logs", description="Directory for rotating log files")

    # Active provider selection
    ai_provider: Optional[str] = Field(default=None, description="ollama, openai or gemini")
    ai_model: Optional[str] = Field(default=None, description="Model for the configured provider")
    ai_temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Default sampling temperature")

    # Provider endpoints and credentials
    ollama_base_url: str = Field(default="http://localhost:11434", description="Ollama server URL")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API base URL")
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API key")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API base URL"
    )

    # Requests
    ai_request_timeout: float = Field(default=120.0, gt=0, description="Chat request timeout in seconds")
    ai_max_retries: int = Field(default=2, ge=1, description="Attempts for non-streaming chat calls")

    # Response cache
    ai_cache_enabled: bool = Field(default=True, description="Cache chat responses")
    ai_cache_ttl_hours: float = Field(default=24.0, gt=0, description="Cache entry time-to-live")
    ai_cache_max_size: int = Field(default=1000, ge=1, description="Maximum cached responses")

    # Health monitoring and failover
    ai_health_monitor_enabled: bool = Field(default=True, description="Run the provider health monitor")
    ai_health_check_interval: int = Field(default=60, ge=1, description="Seconds between health checks")
    ai_health_failure_threshold: int = Field(default=3, ge=1, description="Failures before failover")
    ai_health_check_timeout: float = Field(default=10.0, gt=0, description="Timeout of a single probe")

    # Local rate limiting
    ai_rate_limit_enabled: bool = Field(default=True, description="Apply per-provider request limits")

    @field_validator("openai_api_key", "gemini_api_key", "ai_provider", "ai_model", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Treat empty or whitespace-only values as not configured."""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("ollama_base_url", "openai_base_url", "gemini_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
