"""Fallback strategy definitions."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..model_client import CancellationToken, GenerationOptions

_WHITESPACE = re.compile(r"\s+")


class FallbackStrategy(Enum):
    """Recovery strategies, applied in configured order"""
    RETRY = "retry"          # re-run the primary operation with backoff
    ALTERNATE = "alternate"  # hand the input to the healthiest fallback backend
    DEGRADE = "degrade"      # re-run the primary operation on a simplified input


@dataclass
class FallbackContext:
    """Input handed to the operation and to the alternate backends."""
    input: str = ""
    options: Optional[GenerationOptions] = None
    cancellation: Optional[CancellationToken] = None

    def __post_init__(self):
        if self.cancellation is None and self.options is not None:
            self.cancellation = self.options.cancellation


def simplify_prompt(text: str, max_length: int = 100) -> str:
    """Join non-blank lines, collapse whitespace and truncate."""
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    return _WHITESPACE.sub(" ", " ".join(lines))[:max_length]
