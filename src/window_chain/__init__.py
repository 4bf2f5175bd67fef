"""Window Chain - caching and fallback layer for on-device language models.

Provides a TTL/eviction response cache with transparent compression, a
fallback coordinator with health-monitored alternates, and rolling
performance statistics, tied together by ``Session`` and composed into
prompt pipelines by ``CompositionBuilder``.
"""

__version__ = "1.0.0"
__author__ = "Window Chain Team"

from .cache_store import CacheDecorator, CacheStats, CacheStore, EvictionPolicy
from .composition import CompositionBuilder
from .config import (
    AnalyticsConfig,
    CacheConfig,
    CompressionConfig,
    Config,
    FallbackConfig,
    LoggingConfig,
)
from .data_compression import CompressionAlgorithm, CompressionCodec, CompressionLevel
from .exceptions import (
    Aborted,
    AllStrategiesExhausted,
    BackendFailure,
    ConfigurationError,
    ErrorCategory,
    InvalidInput,
    MalformedData,
    OperationTimeout,
    UnsupportedAlgorithm,
    WindowChainError,
)
from .fallback import FallbackContext, FallbackCoordinator, FallbackStrategy
from .health_checker import HealthMonitor, HealthRecord, HealthState
from .logging_config import setup_logging
from .model_client import CancellationToken, GenerationOptions, LanguageModel, normalize_stream
from .models import Availability, CompressedBlob, ModelCapabilities
from .performance_monitor import MetricStats, PerformanceRecorder, monitor_performance
from .session import Session

__all__ = [
    "Aborted",
    "AllStrategiesExhausted",
    "AnalyticsConfig",
    "Availability",
    "BackendFailure",
    "CacheConfig",
    "CacheDecorator",
    "CacheStats",
    "CacheStore",
    "CancellationToken",
    "CompositionBuilder",
    "CompressedBlob",
    "CompressionAlgorithm",
    "CompressionCodec",
    "CompressionConfig",
    "CompressionLevel",
    "Config",
    "ConfigurationError",
    "ErrorCategory",
    "EvictionPolicy",
    "FallbackConfig",
    "FallbackContext",
    "FallbackCoordinator",
    "FallbackStrategy",
    "GenerationOptions",
    "HealthMonitor",
    "HealthRecord",
    "HealthState",
    "InvalidInput",
    "LanguageModel",
    "LoggingConfig",
    "MalformedData",
    "MetricStats",
    "ModelCapabilities",
    "OperationTimeout",
    "PerformanceRecorder",
    "Session",
    "UnsupportedAlgorithm",
    "WindowChainError",
    "monitor_performance",
    "normalize_stream",
    "setup_logging",
]
