"""
Token usage and cost ledger for AI calls.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

RETENTION_DAYS = 30

# USD per 1K tokens; self-hosted and unknown models cost nothing
COST_PER_1K_TOKENS: Dict[str, float] = {
    "gpt-4o-mini": 0.00015,
    "gpt-4o": 0.0025,
    "gpt-4-turbo": 0.01,
    "gpt-3.5-turbo": 0.0005,
    "gemini-2.5-flash": 0.0003,
    "gemini-2.5-pro": 0.00125,
    "gemini-2.0-flash": 0.0001,
    "gemini-2.0-flash-exp": 0.0,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def estimate_cost(provider: str, model: str, token_count: int) -> float:
    if provider == "ollama":
        return 0.0
    return token_count / 1000 * COST_PER_1K_TOKENS.get(model, 0.0)


@dataclass
class UsageRecord:
    """One tracked AI call."""
    timestamp: datetime
    provider: str
    model: str
    token_count: int
    estimated_cost: float
    task_type: str = "chat"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class AICostTracker:
    """Append-only usage ledger pruned to a rolling 30-day window."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._records: List[UsageRecord] = []

    def track(self, provider: str, model: str, token_count: int, task_type: str = "chat") -> UsageRecord:
        provider = getattr(provider, "value", provider)
        record = UsageRecord(
            timestamp=self._clock(),
            provider=provider,
            model=model,
            token_count=max(0, int(token_count)),
            estimated_cost=estimate_cost(provider, model, token_count),
            task_type=task_type,
        )
        self._records.append(record)
        self._prune()
        return record

    def _cutoff(self) -> datetime:
        return self._clock() - timedelta(days=RETENTION_DAYS)

    def _prune(self) -> None:
        cutoff = self._cutoff()
        if self._records and self._records[0].timestamp < cutoff:
            self._records = [r for r in self._records if r.timestamp >= cutoff]

    def _retained(self) -> List[UsageRecord]:
        cutoff = self._cutoff()
        return [r for r in self._records if r.timestamp >= cutoff]

    def get_records(self) -> List[UsageRecord]:
        return self._retained()

    def get_daily_stats(self, day: Optional[date] = None) -> Dict[str, Any]:
        """Totals for one UTC calendar day (today by default)."""
        day = day or self._clock().date()
        records = [r for r in self._retained() if r.timestamp.astimezone(timezone.utc).date() == day]

        by_provider: Dict[str, float] = {}
        for r in records:
            by_provider[r.provider] = by_provider.get(r.provider, 0.0) + r.estimated_cost

        return {
            "date": day.isoformat(),
            "requests": len(records),
            "tokens": sum(r.token_count for r in records),
            "cost": sum(r.estimated_cost for r in records),
            "by_provider": by_provider,
        }

    def get_monthly_total(self) -> float:
        return sum(r.estimated_cost for r in self._retained())

    def get_provider_breakdown(self) -> Dict[str, Dict[str, Any]]:
        breakdown: Dict[str, Dict[str, Any]] = {}
        for r in self._retained():
            stats = breakdown.setdefault(r.provider, {"requests": 0, "tokens": 0, "cost": 0.0})
            stats["requests"] += 1
            stats["tokens"] += r.token_count
            stats["cost"] += r.estimated_cost
        return breakdown
