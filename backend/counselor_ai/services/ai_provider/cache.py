"""
Content-addressed response cache for chat completions.

Keyed by SHA-256 of the serialized (messages, temperature) pair; provider
and model are not part of the key, so a hit may return an answer produced
by another provider than the active one.
"""
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .base import ChatCompletionRequest, ChatMessage

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 24 * 60 * 60
MAX_CACHE_SIZE = 1000


@dataclass
class CacheEntry:
    """A cached chat response."""
    response: str
    timestamp: float
    provider: str
    model: str
    hit_count: int = 0


def cache_key(messages: List[ChatMessage], temperature: Optional[float]) -> str:
    serialized = ChatCompletionRequest(messages=list(messages), temperature=temperature).serialize_for_cache()
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


class AICacheService:
    """
    Process-wide TTL cache with bounded size.

    Expired entries are dropped lazily on lookup. When full, the entry with
    the lowest hit count is evicted before inserting (oldest first on ties).
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_size: int = MAX_CACHE_SIZE,
        clock: Callable[[], float] = time.time
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, messages: List[ChatMessage], temperature: Optional[float]) -> Optional[str]:
        key = cache_key(messages, temperature)
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() - entry.timestamp > self.ttl_seconds:
            del self._entries[key]
            logger.debug(f"[AI] Cache entry expired: {key[:12]}")
            return None

        entry.hit_count += 1
        logger.debug(f"[AI] Cache hit: {key[:12]} (hits: {entry.hit_count})")
        return entry.response

    def set(
        self,
        messages: List[ChatMessage],
        temperature: Optional[float],
        response: str,
        provider: str,
        model: str
    ) -> None:
        key = cache_key(messages, temperature)

        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_one()

        self._entries[key] = CacheEntry(
            response=response,
            timestamp=self._clock(),
            provider=getattr(provider, "value", provider),
            model=model,
        )

    def _evict_one(self) -> None:
        victim = min(self._entries, key=lambda k: self._entries[k].hit_count)
        evicted = self._entries.pop(victim)
        logger.debug(f"[AI] Cache full, evicted {victim[:12]} (hits: {evicted.hit_count})")

    def clear(self) -> None:
        self._entries.clear()
        logger.info("[AI] Response cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        by_provider: Dict[str, int] = {}
        for entry in self._entries.values():
            by_provider[entry.provider] = by_provider.get(entry.provider, 0) + 1
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "total_hits": sum(e.hit_count for e in self._entries.values()),
            "by_provider": by_provider,
        }
