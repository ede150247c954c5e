"""
Fixed-window request limiter per provider.
"""
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

WINDOW_SECONDS = 60.0

REQUESTS_PER_WINDOW: Dict[str, int] = {
    "gemini": 15,
    "openai": 60,
    "ollama": 1000,
}


@dataclass
class _Window:
    count: int
    reset_at: float


class ProviderRateLimiter:
    """Counts requests per provider in 60-second windows."""

    def __init__(
        self,
        limits: Optional[Dict[str, int]] = None,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.limits = dict(REQUESTS_PER_WINDOW if limits is None else limits)
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    def check(self, provider) -> bool:
        """Consume one request slot; False when the provider's budget is exhausted."""
        provider = getattr(provider, "value", provider)
        now = self._clock()
        window = self._windows.get(provider)

        if window is None or now > window.reset_at:
            self._windows[provider] = _Window(count=1, reset_at=now + self.window_seconds)
            return True

        if window.count >= self.limits.get(provider, 1000):
            return False

        window.count += 1
        return True

    def remaining(self, provider) -> int:
        provider = getattr(provider, "value", provider)
        limit = self.limits.get(provider, 1000)
        window = self._windows.get(provider)
        if window is None or self._clock() > window.reset_at:
            return limit
        return max(0, limit - window.count)
