"""
Base types and adapter interface for AI providers.
"""
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

MESSAGE_ROLES = ("system", "user", "assistant")


class ResponseFormat(str, Enum):
    """Requested output mode of a chat completion."""
    JSON = "json"
    TEXT = "text"


@dataclass(frozen=True)
class ChatMessage:
    """
    A chat message for the AI provider.

    Attributes:
        role: Message role - 'system', 'user', or 'assistant'
        content: Message text
    """
    role: str
    content: str

    def __post_init__(self):
        if self.role not in MESSAGE_ROLES:
            raise ValueError(f"Invalid message role: {self.role!r}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API payload."""
        return {
            "role": self.role,
            "content": self.content
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(role=data["role"], content=data["content"])


@dataclass(frozen=True)
class ChatCompletionRequest:
    """
    A single chat completion request.

    Attributes:
        messages: Ordered conversation; order is meaningful
        temperature: Overrides the adapter default when set (0.0-2.0)
        format: Optional output mode; JSON maps to the provider's structured output
    """
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    format: Optional[ResponseFormat] = None

    def __post_init__(self):
        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be within [0, 2], got {self.temperature}")
        if self.format is not None and not isinstance(self.format, ResponseFormat):
            object.__setattr__(self, "format", ResponseFormat(self.format))

    @property
    def wants_json(self) -> bool:
        return self.format == ResponseFormat.JSON

    def serialize_for_cache(self) -> str:
        """Stable serialization of (messages, temperature) used as the cache key input."""
        return json.dumps(
            {
                "messages": [m.to_dict() for m in self.messages],
                "temperature": self.temperature,
            },
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def prompt_text(self) -> str:
        return "\n".join(m.content for m in self.messages)


def split_system_message(messages: List[ChatMessage]) -> Tuple[Optional[str], List[ChatMessage]]:
    """
    Extract the first system message.

    Returns:
        (system instruction or None, remaining messages in original order)
    """
    system = None
    rest = []
    for message in messages:
        if message.role == "system" and system is None:
            system = message.content
        else:
            rest.append(message)
    return system, rest


@dataclass
class ProviderHealth:
    """
    Rolling health record of one provider, written only by that provider's checks.

    Attributes:
        provider: Provider name
        is_healthy: Result of the last check (False until a check succeeds)
        last_checked: Time of the last check, None before the first one
        consecutive_failures: Failed checks since the last success
        average_response_time: Smoothed probe latency in milliseconds
        error_rate: Smoothed failure ratio in [0, 1]
    """
    provider: str
    is_healthy: bool = False
    last_checked: Optional[Any] = None
    consecutive_failures: int = 0
    average_response_time: float = 0.0
    error_rate: float = 0.0

    @property
    def checked(self) -> bool:
        return self.last_checked is not None

    def score(self) -> float:
        """Latency weighted by reliability; higher is better."""
        return (1.0 / max(self.average_response_time, 1.0)) * (1.0 - self.error_rate)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "is_healthy": self.is_healthy,
            "status": "unknown" if not self.checked else ("healthy" if self.is_healthy else "unhealthy"),
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
            "consecutive_failures": self.consecutive_failures,
            "average_response_time": round(self.average_response_time, 2),
            "error_rate": round(self.error_rate, 4),
        }


class AIAdapter(ABC):
    """
    Interface implemented by every provider adapter.

    All adapters must implement these methods to be usable by the
    AIProviderService facade and the health monitor.
    """

    provider: str

    @abstractmethod
    async def is_available(self) -> bool:
        """
        Check whether the provider can currently serve requests.

        Never raises; returns False on any failure.
        """
        ...

    @abstractmethod
    async def list_models(self) -> List[str]:
        """
        List models offered by the provider.

        Raises:
            AIProviderError: If a live query fails
        """
        ...

    @abstractmethod
    async def chat(self, request: ChatCompletionRequest) -> str:
        """
        Send a chat completion request.

        Returns:
            The generated text

        Raises:
            AIProviderError: On network or API failure
        """
        ...

    @abstractmethod
    def chat_stream(self, request: ChatCompletionRequest) -> AsyncIterator[str]:
        """
        Stream a chat completion as incremental text chunks.

        The iterator is finite and not restartable. Closing it early
        releases the underlying connection.

        Raises:
            AIProviderError: On network or API failure, or a malformed frame
        """
        ...
