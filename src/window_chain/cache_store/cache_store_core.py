"""Cache Store Core Module.

This module contains the main CacheStore class implementation.
"""

import asyncio
import hashlib
import json
import logging
import time
from functools import wraps
from typing import Any, Callable, Dict, Optional, Set, Tuple, Union

from ..config import CacheConfig
from ..data_compression import CompressionAlgorithm, CompressionCodec
from ..exceptions import ConfigurationError
from ..models import CompressedBlob
from .cache_entry import CacheEntry
from .cache_policy import EvictionPolicy
from .cache_stats import CacheStats

logger = logging.getLogger(__name__)

_MISSING = object()

# Victim selection key per policy; min() keeps the first of equal entries
_VICTIM_KEYS: Dict[EvictionPolicy, Callable[[CacheEntry], float]] = {
    EvictionPolicy.LRU: lambda entry: entry.last_accessed_at,
    EvictionPolicy.LFU: lambda entry: entry.hit_count,
    EvictionPolicy.FIFO: lambda entry: entry.created_at,
}


class CacheStore:
    """Key/value cache with lazy TTL expiry and policy-driven eviction."""

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: Optional[float] = 3600.0,
        policy: Union[str, EvictionPolicy] = EvictionPolicy.LRU,
        codec: Optional[CompressionCodec] = None,
        on_evict: Optional[Callable[[str, CacheEntry], None]] = None,
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = 60.0
    ):
        """Initialize cache store.

        Args:
            max_size: Maximum number of live entries
            default_ttl: Seconds an entry stays valid when ``set`` gets no ttl;
                None keeps entries until evicted
            policy: Eviction policy or its name
            codec: Compresses values on ``set`` and restores them on ``get``
            on_evict: Called with the key and entry of each evicted entry
            clock: Time source in seconds
            cleanup_interval: Seconds between background sweeps once started
        """
        if max_size < 1:
            raise ConfigurationError("max_size must be >= 1", field="max_size")

        self.max_size = max_size
        self.default_ttl = default_ttl
        self.policy = EvictionPolicy.parse(policy)
        self.codec = codec
        self.on_evict = on_evict
        self._clock = clock
        self.cleanup_interval = cleanup_interval

        self._cache: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "expired": 0,
            "evictions": 0
        }

        self._cleanup_task = None

        logger.info(f"CacheStore initialized with policy={self.policy.value}, max_size={max_size}")

    @classmethod
    def from_config(cls, config: CacheConfig, codec: Optional[CompressionCodec] = None,
                    **kwargs) -> "CacheStore":
        return cls(
            max_size=config.max_size,
            default_ttl=config.default_ttl,
            policy=config.eviction_policy,
            codec=codec,
            cleanup_interval=config.cleanup_interval,
            **kwargs
        )

    async def start(self):
        """Start the background expiry sweep."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info("CacheStore started")

    async def stop(self):
        """Stop the background expiry sweep."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        logger.info("CacheStore stopped")

    async def get(self, key: str, default: Any = None) -> Any:
        """Get value from cache; expired entries count as misses."""
        async with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._stats["misses"] += 1
                return default

            now = self._clock()
            if entry.is_expired(now):
                del self._cache[key]
                self._stats["misses"] += 1
                self._stats["expired"] += 1
                logger.debug(f"Expired key={key}")
                return default

            entry.touch(now)
            self._stats["hits"] += 1
            raw_value = entry.raw_value

        return self._decode(raw_value)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Set value in cache, evicting one entry if the store is full."""
        raw_value, compressed, algorithm = self._encode(value)

        async with self._lock:
            now = self._clock()
            if ttl is None:
                ttl = self.default_ttl

            if key in self._cache:
                # Overwrite: re-insert so iteration order follows insertion time
                del self._cache[key]
            else:
                self._ensure_capacity(now)

            self._cache[key] = CacheEntry.create(
                key, raw_value, now, ttl, compressed=compressed, algorithm=algorithm
            )
            logger.debug(f"Cached key={key}, ttl={ttl}, compressed={compressed}")

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                logger.debug(f"Deleted key={key}")
                return True
            return False

    async def clear(self) -> None:
        """Clear all cache entries and counters."""
        async with self._lock:
            self._cache.clear()
            self._stats = {
                "hits": 0,
                "misses": 0,
                "expired": 0,
                "evictions": 0
            }
            logger.info("Cache cleared successfully")

    async def purge_expired(self) -> int:
        """Remove every expired entry now; returns how many were removed."""
        async with self._lock:
            return self._cleanup_expired(self._clock())

    async def _cleanup_loop(self):
        """Background task for periodic cleanup."""
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                await self.purge_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in cache cleanup loop: {e}")

    def _encode(self, value: Any) -> Tuple[Any, bool, CompressionAlgorithm]:
        if self.codec is None:
            return value, False, CompressionAlgorithm.NONE
        blob = self.codec.compress(value)
        return blob, blob.compressed, CompressionAlgorithm(blob.algorithm)

    def _decode(self, raw_value: Any) -> Any:
        if isinstance(raw_value, CompressedBlob):
            if self.codec is None:
                raise RuntimeError("Compressed entry found but no codec is configured")
            return self.codec.decompress(raw_value)
        return raw_value

    def _ensure_capacity(self, now: float):
        """Make room for one new entry."""
        if len(self._cache) < self.max_size:
            return

        self._cleanup_expired(now)
        if len(self._cache) >= self.max_size:
            self._evict_entry()

    def _evict_entry(self):
        """Evict an entry based on the cache policy."""
        if not self._cache:
            return

        victim = min(self._cache.values(), key=_VICTIM_KEYS[self.policy])
        del self._cache[victim.key]
        self._stats["evictions"] += 1

        logger.debug(f"Evicted key={victim.key} using policy={self.policy.value}")

        if self.on_evict is not None:
            try:
                self.on_evict(victim.key, victim)
            except Exception as e:
                logger.error(f"on_evict callback failed for key={victim.key}: {e}")

    def _cleanup_expired(self, now: float) -> int:
        """Clean up expired cache entries."""
        expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]

        for key in expired_keys:
            del self._cache[key]
            self._stats["expired"] += 1

        if expired_keys:
            logger.info(f"Cleaned up {len(expired_keys)} expired cache entries")
        return len(expired_keys)

    def stats(self) -> CacheStats:
        """Get cache statistics."""
        created = [entry.created_at for entry in self._cache.values()]

        return CacheStats(
            size=len(self._cache),
            hits=self._stats["hits"],
            misses=self._stats["misses"],
            hit_rate=CacheStats.calculate_hit_rate(self._stats["hits"], self._stats["misses"]),
            oldest_entry=min(created) if created else None,
            newest_entry=max(created) if created else None,
            evictions=self._stats["evictions"],
            expired=self._stats["expired"]
        )

    def get_cache_info(self) -> Dict[str, Any]:
        """Get detailed cache information."""
        now = self._clock()
        entries_info = []

        for key, entry in list(self._cache.items()):
            entries_info.append({
                "key": key,
                "compressed": entry.compressed,
                "algorithm": entry.algorithm.value,
                "created_at": entry.created_at,
                "expires_at": entry.expires_at,
                "last_accessed_at": entry.last_accessed_at,
                "hit_count": entry.hit_count,
                "expired": entry.is_expired(now)
            })

        return {
            "policy": self.policy.value,
            "max_size": self.max_size,
            "default_ttl": self.default_ttl,
            "entries": entries_info
        }

    async def exists(self, key: str) -> bool:
        """Check if a live entry exists without touching access stats."""
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._cache[key]
                self._stats["expired"] += 1
                return False
            return True

    async def keys(self) -> Set[str]:
        """Get all cache keys."""
        async with self._lock:
            return set(self._cache.keys())

    async def size(self) -> int:
        """Get number of stored entries, expired ones included until swept."""
        async with self._lock:
            return len(self._cache)

    def __len__(self) -> int:
        return len(self._cache)

    @staticmethod
    def create_key(*args, **kwargs) -> str:
        """Create a cache key from arguments."""
        key_data = {
            "args": args,
            "kwargs": sorted(kwargs.items()) if kwargs else {}
        }

        key_str = json.dumps(key_data, sort_keys=True, default=str)
        return hashlib.sha256(key_str.encode()).hexdigest()


class CacheDecorator:
    """Decorator for caching async function results."""

    def __init__(self, cache_store: CacheStore, ttl: Optional[float] = None):
        """Initialize cache decorator."""
        self.cache_store = cache_store
        self.ttl = ttl

    def __call__(self, func):
        """Decorate function with caching."""
        @wraps(func)
        async def wrapper(*args, **kwargs):
            cache_key = f"{func.__name__}_{self.cache_store.create_key(*args, **kwargs)}"

            cached_result = await self.cache_store.get(cache_key, _MISSING)
            if cached_result is not _MISSING:
                return cached_result

            result = await func(*args, **kwargs)
            await self.cache_store.set(cache_key, result, self.ttl)

            return result

        return wrapper
