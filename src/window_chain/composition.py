"""Window Chain - composition builder.

Chains prompt calls and plain functions into one async pipeline. Steps run in
order; ``retry``, ``timeout`` and ``catch`` attach to the step added just
before them.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .exceptions import Aborted, ConfigurationError, InvalidInput
from .model_client import CancellationToken, GenerationOptions
from .performance_monitor import PerformanceRecorder, monitor_performance
from .utils import backoff_delay, race_with_timeout, sleep_with_cancellation

logger = logging.getLogger(__name__)


@dataclass
class StepRetry:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    condition: Optional[Callable[[Exception], bool]] = None


@dataclass
class CompositionStep:
    """One pipeline step and the policies attached to it."""
    kind: str
    functions: Sequence[Callable] = ()
    template: Optional[str] = None
    options: Optional[GenerationOptions] = None
    retry: Optional[StepRetry] = None
    timeout: Optional[float] = None
    handler: Optional[Callable] = None


async def _call(function: Callable, *args) -> Any:
    result = function(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class CompositionBuilder:
    """Fluent builder for prompt pipelines.

    Example::

        summarize = (
            CompositionBuilder(session, name="summarize")
            .pipe(str.strip)
            .prompt("Summarize: {input}").timeout(5.0).retry(max_attempts=2)
            .build()
        )
        text = await summarize(document)
    """

    def __init__(self, session=None, recorder: Optional[PerformanceRecorder] = None,
                 name: str = "composition"):
        """Initialize composition builder.

        Args:
            session: ``Session`` used by prompt steps
            recorder: Receives ``<name>.duration_ms`` and ``<name>.success``;
                defaults to the session's recorder
            name: Metric prefix for the built pipeline
        """
        self.session = session
        self.recorder = recorder or (session.recorder if session is not None else None)
        self.name = name
        self.steps: List[CompositionStep] = []
        self.middleware: List[Callable] = []
        self.validators: List[tuple] = []

    def pipe(self, function: Callable) -> "CompositionBuilder":
        """Transform the current value with a sync or async function."""
        self.steps.append(CompositionStep("pipe", (function,)))
        return self

    def prompt(self, template: str = "{input}",
               options: Optional[GenerationOptions] = None) -> "CompositionBuilder":
        """Send ``template.format(input=value)`` through the session."""
        if self.session is None:
            raise ConfigurationError("Prompt steps need a session", field="session")
        self.steps.append(CompositionStep("prompt", template=template, options=options))
        return self

    def branch(self, condition: Callable, if_true: Callable,
               if_false: Optional[Callable] = None) -> "CompositionBuilder":
        """Run ``if_true`` or ``if_false`` depending on ``condition(value)``.

        A missing ``if_false`` passes the value through unchanged.
        """
        self.steps.append(CompositionStep("branch", (condition, if_true, if_false)))
        return self

    def parallel(self, functions: Sequence[Callable]) -> "CompositionBuilder":
        """Run every function on the same value concurrently; the result is a list."""
        if not functions:
            raise InvalidInput("parallel() needs at least one function")
        self.steps.append(CompositionStep("parallel", tuple(functions)))
        return self

    def retry(self, max_attempts: int = 3, base_delay: float = 1.0, max_delay: float = 30.0,
              condition: Optional[Callable[[Exception], bool]] = None) -> "CompositionBuilder":
        """Retry the previous step with exponential backoff."""
        if max_attempts < 1:
            raise InvalidInput("max_attempts must be >= 1")
        self._last_step("retry").retry = StepRetry(max_attempts, base_delay, max_delay, condition)
        return self

    def timeout(self, seconds: float) -> "CompositionBuilder":
        """Bound each attempt of the previous step."""
        if seconds <= 0:
            raise InvalidInput("timeout must be positive")
        self._last_step("timeout").timeout = seconds
        return self

    def catch(self, handler: Callable) -> "CompositionBuilder":
        """Recover from a failure of the previous step with ``handler(error, value)``."""
        self._last_step("catch").handler = handler
        return self

    def use(self, middleware: Callable) -> "CompositionBuilder":
        """Transform the input before the first step."""
        self.middleware.append(middleware)
        return self

    def validate(self, predicate: Callable[[Any], bool],
                 message: str = "Validation failed") -> "CompositionBuilder":
        """Check the final result; a falsy predicate raises ``InvalidInput``."""
        self.validators.append((predicate, message))
        return self

    def build(self) -> Callable[..., Awaitable[Any]]:
        """Freeze the pipeline into ``await run(value, cancellation=None)``."""
        steps = list(self.steps)
        middleware = list(self.middleware)
        validators = list(self.validators)

        async def run(value: Any, cancellation: Optional[CancellationToken] = None) -> Any:
            for function in middleware:
                value = await _call(function, value)

            for index, step in enumerate(steps):
                logger.debug(f"{self.name}: step {index} ({step.kind})")
                try:
                    value = await self._run_with_retry(step, value, cancellation)
                except Aborted:
                    raise
                except Exception as e:
                    if step.handler is None:
                        raise
                    logger.info(f"{self.name}: step {index} ({step.kind}) recovered from {e}")
                    value = await _call(step.handler, e, value)

            for predicate, message in validators:
                if not await _call(predicate, value):
                    raise InvalidInput(message)
            return value

        if self.recorder is not None:
            return monitor_performance(self.recorder, self.name)(run)
        return run

    def _last_step(self, method: str) -> CompositionStep:
        if not self.steps:
            raise InvalidInput(f"{method}() must follow a step")
        return self.steps[-1]

    async def _run_with_retry(self, step: CompositionStep, value: Any,
                              cancellation: Optional[CancellationToken]) -> Any:
        policy = step.retry or StepRetry(max_attempts=1)
        for attempt in range(policy.max_attempts):
            try:
                return await self._run_bounded(step, value, cancellation)
            except Aborted:
                raise
            except Exception as e:
                last_attempt = attempt == policy.max_attempts - 1
                if last_attempt or (policy.condition is not None and not policy.condition(e)):
                    raise
                delay = backoff_delay(attempt, policy.base_delay, policy.max_delay)
                logger.info(
                    f"{self.name}: {step.kind} attempt {attempt + 1}/{policy.max_attempts} "
                    f"failed: {e}; waiting {delay:.2f}s"
                )
                await sleep_with_cancellation(delay, cancellation)

    async def _run_bounded(self, step: CompositionStep, value: Any,
                           cancellation: Optional[CancellationToken]) -> Any:
        if step.timeout is None and cancellation is None:
            return await self._run_step(step, value, cancellation)
        return await race_with_timeout(
            lambda: self._run_step(step, value, cancellation),
            step.timeout,
            cancellation,
            backend=self.name
        )

    async def _run_step(self, step: CompositionStep, value: Any,
                        cancellation: Optional[CancellationToken]) -> Any:
        if step.kind == "pipe":
            return await _call(step.functions[0], value)

        if step.kind == "prompt":
            options = step.options or GenerationOptions()
            if cancellation is not None and options.cancellation is None:
                options = replace(options, cancellation=cancellation)
            return await self.session.prompt(step.template.format(input=value), options)

        if step.kind == "branch":
            condition, if_true, if_false = step.functions
            chosen = if_true if await _call(condition, value) else if_false
            return value if chosen is None else await _call(chosen, value)

        if step.kind == "parallel":
            return list(await asyncio.gather(*(_call(fn, value) for fn in step.functions)))

        raise InvalidInput(f"Unknown step kind: {step.kind}")
