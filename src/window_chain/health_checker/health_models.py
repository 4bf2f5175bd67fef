"""Health record data models."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .health_status import HealthState


@dataclass(frozen=True)
class HealthRecord:
    """Last known health of one backend.

    Records are immutable; every probe or live-call outcome produces a new one.
    """
    state: HealthState = HealthState.UNKNOWN
    latency_ms: Optional[float] = None
    last_check_at: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.state == HealthState.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        data["healthy"] = self.healthy
        return data
