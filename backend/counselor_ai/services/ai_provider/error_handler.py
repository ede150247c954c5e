"""
Central bookkeeping of failed AI calls.

Classifies failures by severity, keeps a bounded history for the admin
API and warns when one provider fails too often within an hour.
"""
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_LOG_SIZE = 100
ERROR_THRESHOLD = 10
THRESHOLD_WINDOW_SECONDS = 60 * 60


class ErrorSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


_SEVERITY_MARKERS = [
    (ErrorSeverity.CRITICAL, ("api key", "authentication", "unauthorized", "http 401", "http 403")),
    (ErrorSeverity.HIGH, ("rate limit", "quota", "http 429")),
    (ErrorSeverity.MEDIUM, ("timed out", "timeout", "connect", "network")),
]

_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.WARNING,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def classify(error: BaseException) -> ErrorSeverity:
    message = str(error).lower()
    for severity, markers in _SEVERITY_MARKERS:
        if any(marker in message for marker in markers):
            return severity
    return ErrorSeverity.LOW


@dataclass
class AIErrorRecord:
    error_type: str
    message: str
    provider: str
    model: Optional[str]
    operation: str
    severity: ErrorSeverity
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.error_type,
            "message": self.message,
            "provider": self.provider,
            "model": self.model,
            "operation": self.operation,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
        }


class AIErrorHandler:
    """Records AI failures. Never raises into the caller."""

    def __init__(
        self,
        max_log_size: int = MAX_LOG_SIZE,
        threshold: int = ERROR_THRESHOLD,
        clock: Callable[[], float] = time.monotonic
    ):
        self.threshold = threshold
        self._clock = clock
        self._log: Deque[AIErrorRecord] = deque(maxlen=max_log_size)
        self._counters: Dict[str, Dict[str, float]] = {}

    def handle(self, error: BaseException, provider, model: Optional[str], operation: str) -> Optional[AIErrorRecord]:
        try:
            provider = getattr(provider, "value", provider)
            severity = classify(error)
            record = AIErrorRecord(
                error_type=type(error).__name__,
                message=str(error),
                provider=provider,
                model=model,
                operation=operation,
                severity=severity,
            )
            self._log.append(record)
            logger.log(
                _LOG_LEVELS[severity],
                f"[AI] {operation} failed [{severity.value}] on {provider}"
                f"{f' ({model})' if model else ''}: {record.error_type}: {record.message}"
            )
            self._check_threshold(provider)
            return record
        except Exception as e:
            logger.error(f"[AI] Failed to record AI error: {e}")
            return None

    def _check_threshold(self, provider: str) -> None:
        now = self._clock()
        counter = self._counters.get(provider)

        if counter is None or now - counter["window_start"] > THRESHOLD_WINDOW_SECONDS:
            self._counters[provider] = {"count": 1, "window_start": now}
            return

        counter["count"] += 1
        if counter["count"] == self.threshold:
            logger.critical(
                f"[AI] Error threshold reached for {provider}: {int(counter['count'])} errors within the last hour"
            )

    def get_recent_errors(self, limit: int = 50) -> List[AIErrorRecord]:
        return list(self._log)[-limit:]

    def get_error_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "total": len(self._log),
            "by_severity": {s.value: 0 for s in ErrorSeverity},
            "by_operation": {},
            "by_provider": {},
        }
        for record in self._log:
            stats["by_severity"][record.severity.value] += 1
            stats["by_operation"][record.operation] = stats["by_operation"].get(record.operation, 0) + 1
            stats["by_provider"][record.provider] = stats["by_provider"].get(record.provider, 0) + 1
        return stats

    def clear(self) -> None:
        self._log.clear()
        self._counters.clear()
        logger.info("[AI] Error log cleared")
