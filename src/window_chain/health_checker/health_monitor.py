"""Backend health monitor implementation."""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from ..config import FallbackConfig
from ..model_client import GenerationOptions
from ..utils import elapsed_ms, race_with_timeout
from .health_models import HealthRecord
from .health_status import HealthState

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Probes registered backends and keeps one health record per backend."""

    def __init__(self, config: Optional[FallbackConfig] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize health monitor.

        Args:
            config: Supplies the probe timeout, interval and prompt
            clock: Time source for ``last_check_at``
        """
        self.config = config or FallbackConfig()
        self._clock = clock

        self._backends: Dict[str, Any] = {}
        self._records: Dict[str, HealthRecord] = {}
        self._primary: Optional[str] = None
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def primary(self) -> Optional[str]:
        return self._primary

    def register(self, name: str, backend: Any = None, primary: bool = False) -> None:
        """Register a backend with an UNKNOWN record.

        A backend of None is tracked from live outcomes only and never probed.
        """
        self._backends[name] = backend
        self._records[name] = HealthRecord()
        if primary:
            self._primary = name
        logger.info(f"Registered backend {name}{' (primary)' if primary else ''}")

    def remove(self, name: str) -> bool:
        """Remove a backend and its record."""
        if name not in self._records:
            return False
        del self._records[name]
        self._backends.pop(name, None)
        if self._primary == name:
            self._primary = None
        logger.info(f"Removed backend {name}")
        return True

    def get_backend(self, name: str) -> Any:
        return self._backends.get(name)

    def get_record(self, name: str) -> Optional[HealthRecord]:
        return self._records.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._records)

    async def probe(self, name: str) -> Optional[HealthRecord]:
        """Send the probe prompt to one backend and store the outcome.

        Failures are recorded, never raised.
        """
        backend = self._backends.get(name)
        if backend is None:
            return self._records.get(name)

        start = time.perf_counter()
        try:
            await race_with_timeout(
                lambda: backend.generate(self.config.health_probe_prompt, GenerationOptions()),
                self.config.timeout,
                backend=name
            )
        except Exception as e:
            logger.warning(f"Health check failed for {name}: {e}")
            return self.record_failure(name, e)

        return self.record_success(name, elapsed_ms(start))

    async def probe_all(self) -> Dict[str, HealthRecord]:
        """Probe every registered backend concurrently."""
        names = [name for name, backend in self._backends.items() if backend is not None]
        await asyncio.gather(*(self.probe(name) for name in names))
        return dict(self._records)

    def record_success(self, name: str, latency_ms: float) -> Optional[HealthRecord]:
        """Mark a backend healthy after a successful call."""
        if name not in self._records:
            logger.debug(f"Ignoring success for unregistered backend {name}")
            return None
        record = replace(
            self._records[name],
            state=HealthState.HEALTHY,
            latency_ms=latency_ms,
            last_check_at=self._clock(),
            error_count=0,
            last_error=None
        )
        self._records[name] = record
        return record

    def record_failure(self, name: str, error: BaseException) -> Optional[HealthRecord]:
        """Mark a backend unhealthy after a failed call."""
        if name not in self._records:
            logger.debug(f"Ignoring failure for unregistered backend {name}")
            return None
        previous = self._records[name]
        record = replace(
            previous,
            state=HealthState.UNHEALTHY,
            last_check_at=self._clock(),
            error_count=previous.error_count + 1,
            last_error=str(error) or type(error).__name__
        )
        self._records[name] = record
        return record

    def rank_healthy_alternates(self) -> List[str]:
        """Healthy non-primary backends, fastest first.

        sorted() is stable, so equal latencies keep registration order.
        """
        candidates = [
            name for name, record in self._records.items()
            if name != self._primary and record.healthy and self._backends.get(name) is not None
        ]
        return sorted(
            candidates,
            key=lambda name: self._records[name].latency_ms
            if self._records[name].latency_ms is not None else float("inf")
        )

    def get_health_status(self) -> Dict[str, Any]:
        """Snapshot of the primary record and every fallback record."""
        return {
            "primary": self._records.get(self._primary) if self._primary else None,
            "fallbacks": {
                name: record for name, record in self._records.items()
                if name != self._primary
            }
        }

    async def start(self):
        """Start periodic probing."""
        if self._monitor_task is not None:
            logger.warning("Health monitoring is already running")
            return

        self._monitor_task = asyncio.create_task(self._health_monitoring_loop())
        logger.info("Started backend health monitoring")

    async def stop(self):
        """Stop periodic probing."""
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None
        logger.info("Stopped backend health monitoring")

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None

    async def _health_monitoring_loop(self):
        """Main health monitoring loop."""
        while True:
            try:
                await self.probe_all()
                await asyncio.sleep(self.config.health_check_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in health monitoring loop: {e}")
                await asyncio.sleep(self.config.health_check_interval)
