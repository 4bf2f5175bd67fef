import asyncio
from typing import List, Optional

import pytest

from window_chain.models import ModelCapabilities


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class MockModel:
    """In-memory language model.

    Fails the first ``fail_times`` calls, or every call when ``always_fail``.
    Probes count as calls.
    """

    def __init__(
        self,
        name: str = "mock",
        response: Optional[str] = None,
        fail_times: int = 0,
        always_fail: bool = False,
        delay: float = 0.0,
        chunks: Optional[List[str]] = None,
        availability: str = "readily"
    ):
        self.name = name
        self.response = response
        self.fail_times = fail_times
        self.always_fail = always_fail
        self.delay = delay
        self.chunks = chunks or []
        self.availability = availability
        self.calls: List[str] = []
        self.stream_calls: List[str] = []

    async def generate(self, text, options=None):
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.always_fail or len(self.calls) <= self.fail_times:
            raise RuntimeError(f"{self.name} failed")
        return self.response if self.response is not None else f"{self.name}: {text}"

    async def generate_streaming(self, text, options=None):
        self.stream_calls.append(text)
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk

    async def check_capabilities(self):
        return ModelCapabilities(
            availability=self.availability,
            default_temperature=0.8,
            default_top_k=3,
            max_top_k=8
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_model():
    return MockModel()
