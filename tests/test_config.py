import dataclasses

import pytest

from window_chain.config import (
    AnalyticsConfig,
    CacheConfig,
    Config,
    FallbackConfig,
)
from window_chain.exceptions import ConfigurationError


def test_defaults():
    config = Config()

    assert config.cache.max_size == 100
    assert config.cache.eviction_policy == "lru"
    assert config.compression.algorithm == "lz"
    assert config.compression.threshold == 1024
    assert config.fallback.fallback_strategies == ("retry", "alternate", "degrade")
    assert config.fallback.max_attempts == 3
    assert config.fallback.timeout == 10.0
    assert config.fallback.health_check_interval == 60.0


def test_load_from_env():
    config = Config.load_from_env({
        "WINDOW_CHAIN_LOG_LEVEL": "debug",
        "WINDOW_CHAIN_CACHE_MAX_SIZE": "5",
        "WINDOW_CHAIN_CACHE_TTL": "none",
        "WINDOW_CHAIN_CACHE_POLICY": "LFU",
        "WINDOW_CHAIN_COMPRESSION_ENABLED": "false",
        "WINDOW_CHAIN_COMPRESSION_ALGORITHM": "deflate",
        "WINDOW_CHAIN_FALLBACK_STRATEGIES": "degrade, retry",
        "WINDOW_CHAIN_FALLBACK_TIMEOUT": "2.5",
        "WINDOW_CHAIN_METRIC_WINDOW": "300",
        "WINDOW_CHAIN_SAMPLE_PROCESS": "yes",
    })

    assert config.logging.level == "DEBUG"
    assert config.cache.max_size == 5
    assert config.cache.default_ttl is None
    assert config.cache.eviction_policy == "lfu"
    assert config.compression.enabled is False
    assert config.compression.algorithm == "deflate"
    assert config.fallback.fallback_strategies == ("degrade", "retry")
    assert config.fallback.timeout == 2.5
    assert config.analytics.window_seconds == 300.0
    assert config.analytics.sample_process is True


def test_empty_environment_gives_defaults():
    assert Config.load_from_env({}).to_dict() == Config().to_dict()


@pytest.mark.parametrize("kwargs", [
    {"fallback_strategies": ["retry", "panic"]},
    {"fallback_strategies": ["retry", "retry"]},
    {"max_attempts": 0},
    {"timeout": 0},
    {"health_check_interval": -1},
    {"retry_base_delay": -0.5},
])
def test_invalid_fallback_config(kwargs):
    with pytest.raises(ConfigurationError):
        FallbackConfig(**kwargs)


def test_fallback_config_is_immutable():
    config = FallbackConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.timeout = 1.0


def test_invalid_cache_config():
    with pytest.raises(ConfigurationError) as exc_info:
        CacheConfig(eviction_policy="mru")
    assert exc_info.value.field == "eviction_policy"

    with pytest.raises(ConfigurationError):
        CacheConfig(max_size=0)


def test_invalid_analytics_config():
    with pytest.raises(ConfigurationError):
        AnalyticsConfig(window_seconds=0)
