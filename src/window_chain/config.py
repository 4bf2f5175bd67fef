"""
Window Chain - configuration.

Defines all configuration parameters and their environment overrides.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Sequence
import os

from .exceptions import ConfigurationError


FALLBACK_STRATEGY_NAMES = ("retry", "alternate", "degrade")
EVICTION_POLICY_NAMES = ("lru", "lfu", "fifo")
COMPRESSION_ALGORITHM_NAMES = ("lz", "deflate", "lzma")
COMPRESSION_LEVEL_NAMES = ("fast", "default", "max")


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class CompressionConfig:
    """Compression configuration"""
    enabled: bool = True
    algorithm: str = "lz"
    level: str = "default"
    threshold: int = 1024  # bytes of serialized JSON

    def __post_init__(self):
        if self.algorithm not in COMPRESSION_ALGORITHM_NAMES:
            raise ConfigurationError(
                f"Unknown compression algorithm: {self.algorithm}", field="algorithm"
            )
        if self.level not in COMPRESSION_LEVEL_NAMES:
            raise ConfigurationError(f"Unknown compression level: {self.level}", field="level")
        if self.threshold < 0:
            raise ConfigurationError("threshold must be >= 0", field="threshold")


@dataclass
class CacheConfig:
    """Cache configuration"""
    enabled: bool = True
    max_size: int = 100
    default_ttl: Optional[float] = 3600.0  # seconds
    eviction_policy: str = "lru"
    cleanup_interval: float = 60.0

    def __post_init__(self):
        if self.eviction_policy not in EVICTION_POLICY_NAMES:
            raise ConfigurationError(
                f"Unknown eviction policy: {self.eviction_policy}", field="eviction_policy"
            )
        if self.max_size < 1:
            raise ConfigurationError("max_size must be >= 1", field="max_size")
        if self.default_ttl is not None and self.default_ttl <= 0:
            raise ConfigurationError("default_ttl must be positive", field="default_ttl")


@dataclass(frozen=True)
class FallbackConfig:
    """Fallback chain configuration. Frozen: reorder strategies by building a new coordinator."""
    fallback_strategies: Sequence[str] = field(
        default_factory=lambda: list(FALLBACK_STRATEGY_NAMES)
    )
    max_attempts: int = 3
    timeout: float = 10.0  # per attempt, seconds
    health_check_interval: float = 60.0
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    degrade_max_length: int = 100
    health_probe_prompt: str = "Test prompt for health check"

    def __post_init__(self):
        # Stored as a tuple so the order cannot be mutated after construction
        object.__setattr__(self, "fallback_strategies", tuple(self.fallback_strategies))
        for name in self.fallback_strategies:
            if name not in FALLBACK_STRATEGY_NAMES:
                raise ConfigurationError(
                    f"Unknown fallback strategy: {name}", field="fallback_strategies"
                )
        if len(set(self.fallback_strategies)) != len(self.fallback_strategies):
            raise ConfigurationError(
                "Fallback strategies must not repeat", field="fallback_strategies"
            )
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1", field="max_attempts")
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive", field="timeout")
        if self.health_check_interval <= 0:
            raise ConfigurationError(
                "health_check_interval must be positive", field="health_check_interval"
            )
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ConfigurationError("retry delays must be >= 0", field="retry_base_delay")
        if self.degrade_max_length < 1:
            raise ConfigurationError(
                "degrade_max_length must be >= 1", field="degrade_max_length"
            )


@dataclass
class AnalyticsConfig:
    """Performance recorder configuration"""
    window_seconds: Optional[float] = None  # None keeps every sample
    max_samples: Optional[int] = None
    alert_thresholds: Dict[str, Dict[str, float]] = field(default_factory=dict)
    sample_process: bool = False  # add process CPU/memory to session analytics

    def __post_init__(self):
        if self.window_seconds is not None and self.window_seconds <= 0:
            raise ConfigurationError("window_seconds must be positive", field="window_seconds")
        if self.max_samples is not None and self.max_samples < 1:
            raise ConfigurationError("max_samples must be >= 1", field="max_samples")


@dataclass
class Config:
    """Top-level configuration"""
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)

    @classmethod
    def load_from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Config":
        """Load configuration from WINDOW_CHAIN_* environment variables."""
        env = os.environ if environ is None else environ
        defaults = cls()

        logging_config = LoggingConfig(
            level=env.get("WINDOW_CHAIN_LOG_LEVEL", defaults.logging.level).upper(),
            format=env.get("WINDOW_CHAIN_LOG_FORMAT", defaults.logging.format),
            file_path=env.get("WINDOW_CHAIN_LOG_FILE", defaults.logging.file_path),
        )

        cache_config = CacheConfig(
            enabled=_env_bool(env, "WINDOW_CHAIN_CACHE_ENABLED", defaults.cache.enabled),
            max_size=int(env.get("WINDOW_CHAIN_CACHE_MAX_SIZE", str(defaults.cache.max_size))),
            default_ttl=_env_optional_float(
                env, "WINDOW_CHAIN_CACHE_TTL", defaults.cache.default_ttl
            ),
            eviction_policy=env.get(
                "WINDOW_CHAIN_CACHE_POLICY", defaults.cache.eviction_policy
            ).lower(),
        )

        compression_config = CompressionConfig(
            enabled=_env_bool(
                env, "WINDOW_CHAIN_COMPRESSION_ENABLED", defaults.compression.enabled
            ),
            algorithm=env.get(
                "WINDOW_CHAIN_COMPRESSION_ALGORITHM", defaults.compression.algorithm
            ).lower(),
            level=env.get("WINDOW_CHAIN_COMPRESSION_LEVEL", defaults.compression.level).lower(),
            threshold=int(env.get(
                "WINDOW_CHAIN_COMPRESSION_THRESHOLD", str(defaults.compression.threshold)
            )),
        )

        strategies = env.get("WINDOW_CHAIN_FALLBACK_STRATEGIES")
        fallback_config = FallbackConfig(
            fallback_strategies=(
                [s.strip().lower() for s in strategies.split(",") if s.strip()]
                if strategies is not None
                else list(defaults.fallback.fallback_strategies)
            ),
            max_attempts=int(env.get(
                "WINDOW_CHAIN_FALLBACK_MAX_ATTEMPTS", str(defaults.fallback.max_attempts)
            )),
            timeout=float(env.get("WINDOW_CHAIN_FALLBACK_TIMEOUT", str(defaults.fallback.timeout))),
            health_check_interval=float(env.get(
                "WINDOW_CHAIN_HEALTH_CHECK_INTERVAL", str(defaults.fallback.health_check_interval)
            )),
        )

        analytics_config = AnalyticsConfig(
            window_seconds=_env_optional_float(
                env, "WINDOW_CHAIN_METRIC_WINDOW", defaults.analytics.window_seconds
            ),
            sample_process=_env_bool(
                env, "WINDOW_CHAIN_SAMPLE_PROCESS", defaults.analytics.sample_process
            ),
        )

        return cls(
            logging=logging_config,
            cache=cache_config,
            compression=compression_config,
            fallback=fallback_config,
            analytics=analytics_config,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Flatten the configuration for diagnostics."""
        return asdict(self)


def _env_bool(env, name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(env, name: str, default: Optional[float]) -> Optional[float]:
    value = env.get(name)
    if value is None:
        return default
    if value.strip().lower() in ("", "none", "off"):
        return None
    return float(value)
