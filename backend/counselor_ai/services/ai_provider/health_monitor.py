"""
Background health monitoring and automatic failover for AI providers.

Every provider gets its own APScheduler interval job, so a slow probe only
delays that provider's next check. Per provider the state moves
unknown -> healthy <-> unhealthy. When the active provider reaches the
failure threshold, the service is switched to the best healthy alternative.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .base import AIAdapter, ProviderHealth
from .config import ProviderType
from .factory import AIAdapterFactory
from .service import AIProviderService

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 60
FAILURE_THRESHOLD = 3
CHECK_TIMEOUT_SECONDS = 10.0
ERROR_RATE_DECAY = 0.9
ERROR_RATE_STEP = 0.1


class AIHealthMonitor:
    """Polls provider availability, keeps rolling health and fails over."""

    def __init__(
        self,
        provider_service: AIProviderService,
        adapter_builder: Optional[Callable[[ProviderType], AIAdapter]] = None,
        providers: Optional[Iterable[ProviderType]] = None,
        interval_seconds: int = CHECK_INTERVAL_SECONDS,
        failure_threshold: int = FAILURE_THRESHOLD,
        check_timeout: float = CHECK_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.perf_counter
    ):
        self._service = provider_service
        self._adapter_builder = adapter_builder
        self.providers = [ProviderType.parse(p) for p in (providers or list(ProviderType))]
        self.interval_seconds = interval_seconds
        self.failure_threshold = failure_threshold
        self.check_timeout = check_timeout
        self._clock = clock
        self._health: Dict[ProviderType, ProviderHealth] = {
            p: ProviderHealth(provider=p.value) for p in self.providers
        }
        self._scheduler: Optional[AsyncIOScheduler] = None

    @classmethod
    def from_factory(cls, provider_service: AIProviderService, factory: AIAdapterFactory, **kwargs) -> "AIHealthMonitor":
        """Monitor probing adapters built with each provider's default model."""
        def build(provider: ProviderType) -> AIAdapter:
            return factory.create_probe_adapter(
                provider, ollama_base_url=provider_service.current_config.ollama_base_url
            )
        return cls(provider_service, adapter_builder=build, **kwargs)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self):
        """Run a first check of all providers, then schedule periodic checks."""
        if self._scheduler is not None:
            return

        await self.check_all()

        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # One running check per provider
                "misfire_grace_time": self.interval_seconds,
            }
        )
        for provider in self.providers:
            self._scheduler.add_job(
                self.check_provider,
                trigger=IntervalTrigger(seconds=self.interval_seconds),
                args=[provider],
                id=f"ai_health_{provider.value}",
                name=f"AI health check ({provider.value})",
                replace_existing=True
            )
        self._scheduler.start()
        logger.info(f"[AI Health] Monitor started ({len(self.providers)} providers, every {self.interval_seconds}s)")

    async def stop(self):
        """Stop periodic checks so the process can exit."""
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("[AI Health] Monitor stopped")

    def is_running(self) -> bool:
        return self._scheduler is not None

    def get_jobs_status(self) -> List[Dict[str, Any]]:
        """Scheduled health check jobs (empty when stopped)."""
        if self._scheduler is None:
            return []
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            }
            for job in self._scheduler.get_jobs()
        ]

    # =========================================================================
    # CHECKS
    # =========================================================================

    async def check_all(self) -> Dict[str, ProviderHealth]:
        """Check every provider concurrently; one failing check never blocks the others."""
        results = await asyncio.gather(
            *(self.check_provider(p) for p in self.providers),
            return_exceptions=True
        )
        for provider, result in zip(self.providers, results):
            if isinstance(result, BaseException):
                logger.error(f"[AI Health] Check crashed for {provider.value}: {result}")
        return {p.value: self._health[p] for p in self.providers}

    async def _probe(self, provider: ProviderType) -> bool:
        adapter = self._adapter_builder(provider)
        return bool(await asyncio.wait_for(adapter.is_available(), timeout=self.check_timeout))

    async def check_provider(self, provider) -> ProviderHealth:
        """Probe one provider, update its health record and fail over if needed."""
        provider = ProviderType.parse(provider)
        health = self._health.setdefault(provider, ProviderHealth(provider=provider.value))

        start = self._clock()
        try:
            available = await self._probe(provider)
        except asyncio.TimeoutError:
            logger.warning(f"[AI Health] {provider.value} probe timed out after {self.check_timeout}s")
            available = False
        except Exception as e:
            logger.warning(f"[AI Health] {provider.value} probe failed: {e}")
            available = False
        elapsed_ms = (self._clock() - start) * 1000

        health.last_checked = datetime.now(timezone.utc)
        if available:
            health.is_healthy = True
            health.consecutive_failures = 0
            if health.average_response_time == 0:
                health.average_response_time = elapsed_ms
            else:
                health.average_response_time = (health.average_response_time + elapsed_ms) / 2
            health.error_rate *= ERROR_RATE_DECAY
        else:
            health.is_healthy = False
            health.consecutive_failures += 1
            health.error_rate = min(1.0, health.error_rate + ERROR_RATE_STEP)
            logger.warning(
                f"[AI Health] {provider.value} unhealthy "
                f"({health.consecutive_failures} consecutive failures)"
            )

        if provider == self._service.get_provider() and health.consecutive_failures == self.failure_threshold:
            self._failover(provider)

        return health

    # =========================================================================
    # FAILOVER
    # =========================================================================

    def get_best_provider(self, exclude: Optional[ProviderType] = None) -> Optional[ProviderType]:
        """Healthy provider with the best latency/error-rate score, or None."""
        candidates = [
            h for p, h in self._health.items()
            if h.is_healthy and p != exclude
        ]
        if not candidates:
            return None
        best = max(candidates, key=lambda h: h.score())
        return ProviderType(best.provider)

    def _failover(self, failing: ProviderType) -> Optional[ProviderType]:
        target = self.get_best_provider(exclude=failing)
        if target is None:
            logger.error(f"[AI Health] {failing.value} is down and no healthy provider is available")
            return None

        try:
            self._service.set_provider(target)
        except Exception as e:
            logger.error(f"[AI Health] Failover from {failing.value} to {target.value} failed: {e}")
            return None

        logger.warning(f"[AI Health] Failover: {failing.value} -> {target.value}")
        return target

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_provider_health(self, provider) -> Optional[ProviderHealth]:
        return self._health.get(ProviderType.parse(provider))

    def get_health_status(self) -> Dict[str, Any]:
        return {p.value: h.to_dict() for p, h in self._health.items()}
