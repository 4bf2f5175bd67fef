"""Window Chain - host language model interface.

The generation call itself is supplied by the host runtime. This module
defines the shape the rest of the package expects from it, the options
passed along, and the cancellation token callers use to abort requests.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Optional, Protocol, runtime_checkable

from .exceptions import Aborted, BackendFailure, WindowChainError
from .models import ModelCapabilities

logger = logging.getLogger(__name__)


class CancellationToken:
    """Caller-owned cancellation signal.

    Once cancelled, in-flight attempts stop waiting and raise ``Aborted``.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason = "Operation aborted"

    def cancel(self, reason: Optional[str] = None) -> None:
        if reason:
            self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Aborted(self.reason)


@dataclass
class GenerationOptions:
    """Options forwarded to the host model."""
    temperature: Optional[float] = None
    top_k: Optional[int] = None
    cancellation: Optional[CancellationToken] = None

    def cache_fields(self) -> dict:
        """Fields that change the response and therefore the cache key."""
        return {"temperature": self.temperature, "top_k": self.top_k}


@runtime_checkable
class LanguageModel(Protocol):
    """A named generation endpoint provided by the host."""

    async def generate(self, text: str, options: GenerationOptions) -> str:
        ...

    def generate_streaming(self, text: str, options: GenerationOptions) -> AsyncIterator[str]:
        ...

    async def check_capabilities(self) -> ModelCapabilities:
        ...


_END_OF_STREAM = object()


async def _next_chunk(iterator: AsyncIterator[str]) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END_OF_STREAM


async def normalize_stream(
    chunks: AsyncIterable[str],
    cancellation: Optional[CancellationToken] = None
) -> AsyncIterator[str]:
    """Yield only the new text of each chunk.

    Hosts either send cumulative prefixes ("Hel", "Hello") or pure deltas
    ("Hel", "lo"); both come out as deltas. The mode is decided once, by the
    second non-empty chunk: the stream is cumulative only when that chunk
    extends the first. Empty deltas are dropped.

    Each wait for the next chunk is raced against ``cancellation``, so a
    cancelled stream raises ``Aborted`` without waiting for the host.
    """
    iterator = chunks.__aiter__()
    cancel_waiter = None
    if cancellation is not None:
        cancel_waiter = asyncio.ensure_future(cancellation.wait())

    received = ""
    cumulative: Optional[bool] = None
    try:
        while True:
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            next_chunk = asyncio.ensure_future(_next_chunk(iterator))
            if cancel_waiter is not None:
                done, _ = await asyncio.wait(
                    {next_chunk, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                if next_chunk not in done:
                    next_chunk.cancel()
                    await asyncio.wait({next_chunk})
                    raise Aborted(cancellation.reason)
            chunk = await next_chunk
            if chunk is _END_OF_STREAM:
                break
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            if not chunk:
                continue

            if cumulative is None and received:
                cumulative = chunk.startswith(received) and len(chunk) > len(received)

            if cumulative and chunk.startswith(received):
                delta = chunk[len(received):]
                received = chunk
            else:
                if cumulative:
                    logger.warning("Cumulative stream chunk does not extend the text so far")
                delta = chunk
                received += chunk

            if delta:
                yield delta
    except WindowChainError:
        raise
    except Exception as e:
        logger.warning(f"Stream failed: {e}")
        raise BackendFailure(f"Stream failed: {e}", original_error=e) from e
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
