"""Backend Health Monitor Module.

Tracks per-backend health from periodic probes and live call outcomes.
"""

from .health_status import HealthState
from .health_models import HealthRecord
from .health_monitor import HealthMonitor

__all__ = [
    'HealthState',
    'HealthRecord',
    'HealthMonitor'
]
