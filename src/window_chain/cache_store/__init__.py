"""Cache Store Module.

This module provides the response cache with lazy TTL expiry, LRU/LFU/FIFO
eviction and optional value compression.
"""

from .cache_stats import CacheStats
from .cache_policy import EvictionPolicy
from .cache_entry import CacheEntry
from .cache_store_core import CacheStore, CacheDecorator

__all__ = [
    "CacheStats",
    "EvictionPolicy",
    "CacheEntry",
    "CacheStore",
    "CacheDecorator"
]
