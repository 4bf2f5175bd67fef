"""
Window Chain exceptions.

Defines the error taxonomy shared by the cache, compression, health and
fallback layers.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Error categories."""
    INVALID_INPUT = "invalid_input"
    CONFIGURATION = "configuration"
    UNSUPPORTED_ALGORITHM = "unsupported_algorithm"
    MALFORMED_DATA = "malformed_data"
    TIMEOUT = "timeout"
    ABORTED = "aborted"
    BACKEND_FAILURE = "backend_failure"
    STRATEGIES_EXHAUSTED = "strategies_exhausted"


class WindowChainError(Exception):
    """Base class for all library errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.BACKEND_FAILURE,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.details = details or {}
        self.timestamp = timestamp or datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for logging or reporting."""
        return {
            "error": type(self).__name__,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class InvalidInput(WindowChainError):
    """Bad arguments, e.g. compressing None."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.INVALID_INPUT, **kwargs)


class ConfigurationError(WindowChainError):
    """Malformed configuration detected at construction time."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            details={"field": field},
            **kwargs
        )
        self.field = field


class UnsupportedAlgorithm(WindowChainError):
    """Compression algorithm is not registered."""

    def __init__(self, algorithm: Any, **kwargs):
        super().__init__(
            f"Unsupported compression algorithm: {algorithm}",
            category=ErrorCategory.UNSUPPORTED_ALGORITHM,
            details={"algorithm": str(algorithm)},
            **kwargs
        )
        self.algorithm = algorithm


class MalformedData(WindowChainError):
    """Payload could not be decoded back into its serialization."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.MALFORMED_DATA, **kwargs)


class OperationTimeout(WindowChainError):
    """An attempt exceeded its configured time bound."""

    def __init__(self, timeout: float, backend: Optional[str] = None, **kwargs):
        super().__init__(
            f"Operation timeout after {timeout:g}s",
            category=ErrorCategory.TIMEOUT,
            details={"timeout": timeout, "backend": backend},
            **kwargs
        )
        self.timeout = timeout
        self.backend = backend


class Aborted(WindowChainError):
    """Caller cancellation. Never retried."""

    def __init__(self, message: str = "Operation aborted", **kwargs):
        super().__init__(message, category=ErrorCategory.ABORTED, **kwargs)


class BackendFailure(WindowChainError):
    """Wraps an error raised by a generation backend."""

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        **kwargs
    ):
        super().__init__(
            message,
            category=ErrorCategory.BACKEND_FAILURE,
            details={"backend": backend},
            **kwargs
        )
        self.backend = backend
        self.original_error = original_error

    @classmethod
    def wrap(cls, error: BaseException, backend: Optional[str] = None) -> "WindowChainError":
        """Wrap a raw exception; library errors are returned unchanged."""
        if isinstance(error, WindowChainError):
            return error
        return cls(str(error) or type(error).__name__, backend=backend, original_error=error)


class AllStrategiesExhausted(WindowChainError):
    """Every configured fallback strategy failed.

    The message is the message of the original (first) failure so callers
    see the root cause.
    """

    def __init__(
        self,
        original_error: WindowChainError,
        strategy_errors: Optional[Dict[str, str]] = None,
        **kwargs
    ):
        attempted: List[str] = list((strategy_errors or {}).keys())
        super().__init__(
            original_error.message,
            category=ErrorCategory.STRATEGIES_EXHAUSTED,
            details={
                "original_category": original_error.category.value,
                "attempted_strategies": attempted,
                "strategy_errors": dict(strategy_errors or {})
            },
            **kwargs
        )
        self.original_error = original_error
        self.strategy_errors = dict(strategy_errors or {})
