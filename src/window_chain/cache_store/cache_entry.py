"""Cache Entry Module.

This module defines the cache entry data structure and related functionality.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Optional

from ..data_compression import CompressionAlgorithm


@dataclass
class CacheEntry:
    """Cache entry with metadata."""
    key: str
    raw_value: Any
    compressed: bool = False
    algorithm: CompressionAlgorithm = CompressionAlgorithm.NONE
    created_at: float = field(default_factory=time.time)
    expires_at: Optional[float] = None
    last_accessed_at: float = 0.0
    hit_count: int = 0

    def __post_init__(self):
        if not self.last_accessed_at:
            self.last_accessed_at = self.created_at

    @classmethod
    def create(cls, key: str, raw_value: Any, now: float, ttl: Optional[float],
               compressed: bool = False,
               algorithm: CompressionAlgorithm = CompressionAlgorithm.NONE) -> "CacheEntry":
        """Build an entry whose expiry is ``now + ttl``."""
        return cls(
            key=key,
            raw_value=raw_value,
            compressed=compressed,
            algorithm=algorithm,
            created_at=now,
            expires_at=now + ttl if ttl is not None else None,
            last_accessed_at=now,
        )

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if the cache entry has expired."""
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) > self.expires_at

    def touch(self, now: Optional[float] = None):
        """Update access metadata."""
        self.last_accessed_at = time.time() if now is None else now
        self.hit_count += 1
