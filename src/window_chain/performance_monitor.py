"""Window Chain - Performance Monitoring.

Rolling statistics over named numeric metrics, recorded by the fallback
coordinator and the session, plus operation timing for decorated functions.
"""

import asyncio
import logging
import math
import statistics
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from functools import wraps
from typing import Any, Callable, Deque, Dict, List, Optional

import psutil

from .config import AnalyticsConfig

# Setup logging
logger = logging.getLogger(__name__)


@dataclass
class MetricSample:
    """One recorded value."""
    value: float
    timestamp: float


@dataclass
class MetricStats:
    """Aggregates for one metric, computed on read."""
    name: str
    count: int = 0
    average: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    variance: Optional[float] = None
    standard_deviation: Optional[float] = None
    p95: Optional[float] = None
    p99: Optional[float] = None
    last_updated: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MetricAlert:
    """A metric aggregate that crossed its configured threshold."""
    metric: str
    key: str
    value: float
    threshold: float
    timestamp: float


def percentile(values: List[float], p: float) -> float:
    """Linear-interpolated percentile of a non-empty list."""
    ordered = sorted(values)
    position = (len(ordered) - 1) * p / 100
    base = math.floor(position)
    rest = position - base

    if base + 1 < len(ordered):
        return ordered[base] + rest * (ordered[base + 1] - ordered[base])
    return ordered[base]


class PerformanceRecorder:
    """Thread-safe metric recorder with optional rolling window."""

    def __init__(self, config: Optional[AnalyticsConfig] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize performance recorder.

        Args:
            config: Window, sample cap and alert thresholds
            clock: Time source for sample timestamps
        """
        self.config = config or AnalyticsConfig()
        self._clock = clock

        self._samples: Dict[str, Deque[MetricSample]] = {}
        self._alerts: Deque[MetricAlert] = deque(maxlen=1000)
        self._lock = threading.Lock()

    def record(self, name: str, value: float) -> None:
        """Record a metric value."""
        now = self._clock()
        with self._lock:
            samples = self._samples.get(name)
            if samples is None:
                samples = deque(maxlen=self.config.max_samples)
                self._samples[name] = samples
            samples.append(MetricSample(float(value), now))
            self._prune(samples, now)

            if name in self.config.alert_thresholds:
                self._check_alerts(name, samples, now)

    def record_attempt(self, backend: str, latency_ms: float, success: bool,
                       timed_out: bool = False) -> None:
        """Record the outcome of one call against a backend."""
        self.record(f"{backend}.latency_ms", latency_ms)
        self.record(f"{backend}.success", 1.0 if success else 0.0)
        self.record(f"{backend}.timeout", 1.0 if timed_out else 0.0)

    def get_stats(self, name: str) -> MetricStats:
        """Aggregate one metric; unknown metrics give a zero-count result."""
        with self._lock:
            samples = self._samples.get(name)
            if samples:
                self._prune(samples, self._clock())
            if not samples:
                return MetricStats(name=name)
            return self._aggregate(name, samples)

    def get_all_stats(self) -> Dict[str, MetricStats]:
        with self._lock:
            now = self._clock()
            result = {}
            for name, samples in self._samples.items():
                self._prune(samples, now)
                result[name] = self._aggregate(name, samples) if samples else MetricStats(name=name)
            return result

    def reset(self, name: Optional[str] = None) -> None:
        """Forget one metric, or everything when no name is given."""
        with self._lock:
            if name is None:
                self._samples.clear()
                self._alerts.clear()
            else:
                self._samples.pop(name, None)

    def get_alerts(self) -> List[MetricAlert]:
        """Alerts raised inside the current window."""
        with self._lock:
            if self.config.window_seconds is None:
                return list(self._alerts)
            cutoff = self._clock() - self.config.window_seconds
            return [alert for alert in self._alerts if alert.timestamp > cutoff]

    def sample_process_metrics(self) -> Dict[str, float]:
        """Record resident memory (MB) and CPU usage of this process."""
        process = psutil.Process()
        metrics = {
            "process.memory_mb": process.memory_info().rss / 1024 / 1024,
            "process.cpu_percent": process.cpu_percent(interval=None),
        }
        for name, value in metrics.items():
            self.record(name, value)
        return metrics

    def _prune(self, samples: Deque[MetricSample], now: float):
        if self.config.window_seconds is None:
            return
        cutoff = now - self.config.window_seconds
        while samples and samples[0].timestamp <= cutoff:
            samples.popleft()

    def _aggregate(self, name: str, samples: Deque[MetricSample]) -> MetricStats:
        values = [sample.value for sample in samples]
        variance = statistics.pvariance(values)
        return MetricStats(
            name=name,
            count=len(values),
            average=statistics.fmean(values),
            min=min(values),
            max=max(values),
            variance=variance,
            standard_deviation=math.sqrt(variance),
            p95=percentile(values, 95),
            p99=percentile(values, 99),
            last_updated=samples[-1].timestamp
        )

    def _check_alerts(self, name: str, samples: Deque[MetricSample], now: float):
        stats = self._aggregate(name, samples).to_dict()
        for key, threshold in self.config.alert_thresholds[name].items():
            value = stats.get(key)
            if value is not None and value > threshold:
                self._alerts.append(MetricAlert(name, key, value, threshold, now))
                logger.warning(f"Metric {name}.{key}={value:.2f} exceeds threshold {threshold}")


def monitor_performance(recorder: PerformanceRecorder, operation_name: Optional[str] = None):
    """Decorator recording ``<operation>.duration_ms`` and ``<operation>.success``."""
    def decorator(func: Callable) -> Callable:
        op_name = operation_name or f"{func.__module__}.{func.__name__}"

        def finish(start_time: float, success: bool):
            recorder.record(f"{op_name}.duration_ms", (time.perf_counter() - start_time) * 1000.0)
            recorder.record(f"{op_name}.success", 1.0 if success else 0.0)

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                start_time = time.perf_counter()
                success = True

                try:
                    return await func(*args, **kwargs)
                except Exception:
                    success = False
                    raise
                finally:
                    finish(start_time, success)

            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            success = True

            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                finish(start_time, success)

        return sync_wrapper

    return decorator
