"""Health state enum."""

from enum import Enum


class HealthState(Enum):
    """Backend health states."""
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
