"""Cache eviction policies."""

from enum import Enum
from typing import Union

from ..exceptions import ConfigurationError


class EvictionPolicy(Enum):
    """Rule selecting the victim when the store is full."""
    LRU = "lru"    # min last_accessed_at
    LFU = "lfu"    # min hit_count
    FIFO = "fifo"  # min created_at

    @classmethod
    def parse(cls, value: Union[str, "EvictionPolicy"]) -> "EvictionPolicy":
        """Resolve a policy name, rejecting unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown eviction policy: {value}", field="eviction_policy"
            ) from None
