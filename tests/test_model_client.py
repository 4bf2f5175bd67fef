import asyncio

import pytest
from pydantic import ValidationError

from window_chain.exceptions import Aborted, BackendFailure
from window_chain.model_client import (
    CancellationToken,
    GenerationOptions,
    LanguageModel,
    normalize_stream,
)
from window_chain.models import Availability, ModelCapabilities
from conftest import MockModel


async def chunks_of(*chunks, error=None):
    for chunk in chunks:
        yield chunk
    if error is not None:
        raise error


async def collect(stream):
    return [delta async for delta in stream]


@pytest.mark.asyncio
async def test_cumulative_chunks_become_deltas():
    deltas = await collect(normalize_stream(chunks_of("Hel", "Hello", "Hello world")))
    assert deltas == ["Hel", "lo", " world"]


@pytest.mark.asyncio
async def test_delta_chunks_pass_through():
    deltas = await collect(normalize_stream(chunks_of("Hel", "lo", " world")))
    assert deltas == ["Hel", "lo", " world"]


@pytest.mark.asyncio
async def test_empty_deltas_dropped():
    deltas = await collect(normalize_stream(chunks_of("", "Hi", "", "Hi!", "Hi!")))
    assert deltas == ["Hi", "!"]


@pytest.mark.asyncio
async def test_repeated_delta_chunks_are_kept():
    deltas = await collect(normalize_stream(chunks_of("ha", "ha", "ha")))
    assert "".join(deltas) == "hahaha"


@pytest.mark.asyncio
async def test_delta_stream_stays_delta_after_prefix_match():
    deltas = await collect(normalize_stream(chunks_of("a", "b", "ab")))
    assert "".join(deltas) == "abab"


@pytest.mark.asyncio
async def test_stream_errors_wrapped():
    stream = normalize_stream(chunks_of("partial", error=ConnectionError("socket closed")))

    received = []
    with pytest.raises(BackendFailure, match="Stream failed: socket closed"):
        async for delta in stream:
            received.append(delta)

    assert received == ["partial"]


@pytest.mark.asyncio
async def test_abort_passes_through_stream():
    token = CancellationToken()

    async def source():
        yield "one"
        token.cancel()
        yield "two"

    received = []
    with pytest.raises(Aborted):
        async for delta in normalize_stream(source(), token):
            received.append(delta)

    assert received == ["one"]


@pytest.mark.asyncio
async def test_cancellation_token():
    token = CancellationToken()
    assert token.cancelled is False
    token.raise_if_cancelled()

    token.cancel("stop")

    assert token.cancelled is True
    assert token.reason == "stop"
    await token.wait()
    with pytest.raises(Aborted, match="stop"):
        token.raise_if_cancelled()


def test_generation_options_cache_fields():
    options = GenerationOptions(temperature=0.2, top_k=4, cancellation=CancellationToken())
    assert options.cache_fields() == {"temperature": 0.2, "top_k": 4}


def test_mock_model_satisfies_protocol():
    assert isinstance(MockModel(), LanguageModel)


@pytest.mark.parametrize("reported, ready, download, unavailable", [
    ("readily", True, False, False),
    ("after-download", False, True, False),
    ("no", False, False, True),
    ("ready", True, False, False),
])
def test_availability_spellings(reported, ready, download, unavailable):
    capabilities = ModelCapabilities(availability=reported)
    assert capabilities.is_ready() is ready
    assert capabilities.needs_download() is download
    assert capabilities.is_unavailable() is unavailable


def test_unknown_availability_rejected():
    with pytest.raises(ValidationError):
        ModelCapabilities(availability="maybe")


def test_recommended_params_fill_defaults():
    capabilities = ModelCapabilities(
        availability=Availability.READY, default_temperature=0.7, default_top_k=3, max_top_k=8
    )
    assert capabilities.recommended_params() == {"temperature": 0.7, "top_k": 3}
    assert capabilities.recommended_params(temperature=0.1) == {"temperature": 0.1, "top_k": 3}


def test_validate_options():
    capabilities = ModelCapabilities(availability="readily", max_top_k=8)

    assert capabilities.validate_options(temperature=1.0, top_k=8).valid is True

    result = capabilities.validate_options(temperature=2.5, top_k=10)
    assert result.valid is False
    assert result.issues == [
        "top_k value 10 exceeds maximum 8",
        "temperature must be between 0 and 2",
    ]


@pytest.mark.asyncio
async def test_cancel_while_host_stalls_between_chunks():
    token = CancellationToken()
    closed = []

    async def stalling():
        try:
            yield "first"
            await asyncio.sleep(3)
            yield "second"
        finally:
            closed.append(True)

    asyncio.get_running_loop().call_later(0.05, token.cancel, "user left")
    loop = asyncio.get_running_loop()
    start = loop.time()

    received = []
    with pytest.raises(Aborted, match="user left"):
        async for delta in normalize_stream(stalling(), token):
            received.append(delta)

    assert loop.time() - start < 1.0
    assert received == ["first"]
    assert closed == [True]
