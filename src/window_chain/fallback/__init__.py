"""Fallback Module.

Runs a primary operation and, when it fails or times out, walks a fixed chain
of recovery strategies.
"""

from .fallback_strategies import FallbackContext, FallbackStrategy, simplify_prompt
from .fallback_coordinator import PRIMARY_BACKEND, FallbackCoordinator

__all__ = [
    'FallbackContext',
    'FallbackStrategy',
    'simplify_prompt',
    'PRIMARY_BACKEND',
    'FallbackCoordinator'
]
