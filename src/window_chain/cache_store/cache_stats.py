"""Cache Statistics Module.

This module defines the cache statistics data structure.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass
class CacheStats:
    """Cache statistics."""
    size: int = 0
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    oldest_entry: Optional[float] = None
    newest_entry: Optional[float] = None
    evictions: int = 0
    expired: int = 0

    def __getitem__(self, key: str) -> Any:
        """Allow dict-like access to stats."""
        return getattr(self, key)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def calculate_hit_rate(hits: int, misses: int) -> float:
        """Calculate hit rate, 0.0 when nothing was accessed."""
        total = hits + misses
        return hits / total if total > 0 else 0.0
