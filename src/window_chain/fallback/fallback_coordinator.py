"""Fallback coordinator implementation."""

import inspect
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config import FallbackConfig
from ..exceptions import (
    Aborted,
    AllStrategiesExhausted,
    BackendFailure,
    InvalidInput,
    OperationTimeout,
)
from ..health_checker import HealthMonitor, HealthRecord
from ..model_client import GenerationOptions, LanguageModel
from ..performance_monitor import PerformanceRecorder
from ..utils import backoff_delay, elapsed_ms, race_with_timeout, sleep_with_cancellation
from .fallback_strategies import FallbackContext, FallbackStrategy, simplify_prompt

logger = logging.getLogger(__name__)

PRIMARY_BACKEND = "primary"

Operation = Callable[..., Awaitable[Any]]


class FallbackCoordinator:
    """Timeout-bounded execution with retry, alternate and degrade recovery."""

    def __init__(
        self,
        primary: Optional[LanguageModel] = None,
        config: Optional[FallbackConfig] = None,
        recorder: Optional[PerformanceRecorder] = None,
        health_monitor: Optional[HealthMonitor] = None
    ):
        """Initialize fallback coordinator.

        Args:
            primary: Primary backend, probed by the health monitor when given
            config: Strategy order, attempt limits and timeouts
            recorder: Receives per-attempt metrics
            health_monitor: Shared health map; one is created when omitted
        """
        self.config = config or FallbackConfig()
        self.recorder = recorder or PerformanceRecorder()
        self.health_monitor = health_monitor or HealthMonitor(self.config)
        self.health_monitor.register(PRIMARY_BACKEND, primary, primary=True)

        self._strategies = [FallbackStrategy(name) for name in self.config.fallback_strategies]
        self._handlers = {
            FallbackStrategy.RETRY: self._retry,
            FallbackStrategy.ALTERNATE: self._alternate,
            FallbackStrategy.DEGRADE: self._degrade,
        }

        self._usage: Dict[str, Dict[str, int]] = {}
        self._strategy_usage = {strategy.value: 0 for strategy in FallbackStrategy}

        logger.info(
            f"FallbackCoordinator initialized with strategies="
            f"{[s.value for s in self._strategies]}, timeout={self.config.timeout}s"
        )

    async def execute(self, operation: Operation, context: Optional[FallbackContext] = None) -> Any:
        """Run the operation, recovering through the strategy chain on failure.

        Raises:
            Aborted: the context's cancellation token fired
            AllStrategiesExhausted: every strategy failed; carries the first error
            WindowChainError: the first failure itself when no strategy is configured
        """
        context = context or FallbackContext()
        call = self._bind(operation)

        try:
            return await self._attempt(PRIMARY_BACKEND, lambda: call(context), context)
        except Aborted:
            raise
        except Exception as e:
            first_error = e

        original = BackendFailure.wrap(first_error, PRIMARY_BACKEND)
        if not self._strategies:
            if original is first_error:
                raise original
            raise original from first_error

        logger.warning(f"Primary operation failed: {original.message}; starting fallback chain")

        strategy_errors: Dict[str, str] = {}
        for strategy in self._strategies:
            self._strategy_usage[strategy.value] += 1
            self.recorder.record(f"fallback.{strategy.value}", 1)

            try:
                result = await self._handlers[strategy](call, context)
            except Aborted:
                raise
            except Exception as e:
                strategy_errors[strategy.value] = str(e) or type(e).__name__
                logger.warning(f"Fallback strategy {strategy.value} failed: {e}")
                continue

            logger.info(f"Recovered with fallback strategy {strategy.value}")
            return result

        logger.error(f"All fallback strategies failed: {original.message}")
        raise AllStrategiesExhausted(original, strategy_errors) from original

    def calculate_delay(self, attempt: int) -> float:
        """Backoff before retry ``attempt + 1`` (0-based)."""
        return backoff_delay(attempt, self.config.retry_base_delay, self.config.retry_max_delay)

    async def add_fallback(self, name: str, backend: LanguageModel) -> HealthRecord:
        """Register an alternate backend and probe it once."""
        if name == PRIMARY_BACKEND:
            raise InvalidInput(f"Backend name '{PRIMARY_BACKEND}' is reserved")
        self.health_monitor.register(name, backend)
        return await self.health_monitor.probe(name)

    def remove_fallback(self, name: str) -> bool:
        if name == PRIMARY_BACKEND:
            return False
        self._usage.pop(name, None)
        return self.health_monitor.remove(name)

    async def start(self):
        """Start periodic health probes."""
        await self.health_monitor.start()

    async def stop(self):
        await self.health_monitor.stop()

    def get_health_status(self) -> Dict[str, Any]:
        return self.health_monitor.get_health_status()

    def get_stats(self) -> Dict[str, Any]:
        """Usage and success rate per backend, plus strategy usage counts."""
        status = self.health_monitor.get_health_status()
        return {
            "primary": self._backend_stats(PRIMARY_BACKEND, status["primary"]),
            "fallbacks": {
                name: self._backend_stats(name, record)
                for name, record in status["fallbacks"].items()
            },
            "strategies": dict(self._strategy_usage)
        }

    def _backend_stats(self, name: str, record: Optional[HealthRecord]) -> Dict[str, Any]:
        usage = self._usage.get(name, {"calls": 0, "successes": 0})
        calls = usage["calls"]
        return {
            "health": record,
            "usage": calls,
            "success_rate": usage["successes"] / calls if calls else 0.0
        }

    @staticmethod
    def _bind(operation: Operation) -> Callable[[FallbackContext], Awaitable[Any]]:
        """Adapt zero-argument operations to the one-argument call form."""
        try:
            parameters = inspect.signature(operation).parameters
        except (TypeError, ValueError):
            return operation
        if not parameters:
            return lambda _context: operation()
        return operation

    async def _attempt(self, backend: str, factory: Callable[[], Awaitable[Any]],
                       context: FallbackContext) -> Any:
        """One timeout-bounded call, recorded against ``backend``."""
        start = time.perf_counter()
        try:
            result = await race_with_timeout(
                factory, self.config.timeout, context.cancellation, backend=backend
            )
        except Aborted:
            raise
        except OperationTimeout as e:
            self._record(backend, start, success=False, timed_out=True, error=e)
            raise
        except Exception as e:
            self._record(backend, start, success=False, timed_out=False, error=e)
            raise

        self._record(backend, start, success=True, timed_out=False)
        return result

    def _record(self, backend: str, start: float, success: bool, timed_out: bool,
                error: Optional[BaseException] = None):
        latency_ms = elapsed_ms(start)
        self.recorder.record_attempt(backend, latency_ms, success, timed_out)

        usage = self._usage.setdefault(backend, {"calls": 0, "successes": 0})
        usage["calls"] += 1
        if success:
            usage["successes"] += 1
            self.health_monitor.record_success(backend, latency_ms)
        else:
            self.health_monitor.record_failure(backend, error)

    async def _retry(self, call, context: FallbackContext) -> Any:
        last_error: Optional[Exception] = None
        for attempt in range(self.config.max_attempts):
            try:
                return await self._attempt(PRIMARY_BACKEND, lambda: call(context), context)
            except Aborted:
                raise
            except Exception as e:
                last_error = e
                if attempt == self.config.max_attempts - 1:
                    break
                delay = self.calculate_delay(attempt)
                logger.info(
                    f"Retry attempt {attempt + 1}/{self.config.max_attempts} failed: {e}; "
                    f"waiting {delay:.2f}s"
                )
                await sleep_with_cancellation(delay, context.cancellation)
        raise last_error

    async def _alternate(self, call, context: FallbackContext) -> Any:
        if not context.input:
            raise BackendFailure("No prompt to send to a fallback backend")

        ranked = self.health_monitor.rank_healthy_alternates()
        if not ranked:
            raise BackendFailure("No healthy fallback backends available")

        name = ranked[0]
        backend = self.health_monitor.get_backend(name)
        options = context.options or GenerationOptions(cancellation=context.cancellation)
        logger.info(f"Switching to fallback backend {name}")
        return await self._attempt(
            name, lambda: backend.generate(context.input, options), context
        )

    async def _degrade(self, call, context: FallbackContext) -> Any:
        simplified = replace(
            context, input=simplify_prompt(context.input, self.config.degrade_max_length)
        )
        logger.info(f"Degrading prompt to {len(simplified.input)} characters")
        return await self._attempt(PRIMARY_BACKEND, lambda: call(simplified), simplified)
