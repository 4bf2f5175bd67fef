import json
import random

import pytest

from window_chain.config import CompressionConfig
from window_chain.data_compression import CompressionCodec, LZWCodec
from window_chain.exceptions import (
    ConfigurationError,
    InvalidInput,
    MalformedData,
    UnsupportedAlgorithm,
)
from window_chain.models import CompressedBlob

SAMPLE = {
    "prompt": "Summarize the following notes.\n" * 40,
    "scores": [0.5, 1.25, -3, 1e10],
    "nested": {"ok": True, "missing": None, "text": "naïve café ☕ 日本語"},
}


@pytest.mark.parametrize("algorithm", ["lz", "deflate", "lzma"])
def test_round_trip(algorithm):
    codec = CompressionCodec(algorithm=algorithm, threshold=16)
    blob = codec.compress(SAMPLE)

    assert blob.compressed is True
    assert blob.algorithm == algorithm
    assert codec.decompress(blob) == SAMPLE


@pytest.mark.parametrize("level", ["fast", "default", "max"])
def test_levels_round_trip(level):
    codec = CompressionCodec(algorithm="deflate", level=level, threshold=0)
    assert codec.decompress(codec.compress(SAMPLE)) == SAMPLE


def test_values_below_threshold_stay_uncompressed():
    codec = CompressionCodec(threshold=1024)
    blob = codec.compress({"short": "value"})

    assert blob.compressed is False
    assert blob.algorithm == "none"
    assert json.loads(blob.data) == {"short": "value"}
    assert codec.decompress(blob) == {"short": "value"}


def test_threshold_counts_utf8_bytes():
    text = "日" * 10  # 10 characters, 30 bytes, 32 with JSON quotes
    assert CompressionCodec(threshold=32).compress(text).compressed is True
    assert CompressionCodec(threshold=33).compress(text).compressed is False


def test_disabled_compression_never_compresses():
    codec = CompressionCodec(CompressionConfig(enabled=False, threshold=0))
    blob = codec.compress(SAMPLE)
    assert blob.compressed is False
    assert codec.decompress(blob) == SAMPLE


def test_scalar_values_round_trip():
    codec = CompressionCodec(threshold=0)
    for value in ["", "text", 0, 3.5, False, [], {}]:
        assert codec.decompress(codec.compress(value)) == value


def test_compress_none_rejected():
    with pytest.raises(InvalidInput, match="Cannot compress undefined data"):
        CompressionCodec().compress(None)


def test_compress_unserializable_rejected():
    with pytest.raises(InvalidInput):
        CompressionCodec().compress({"when": object()})
    with pytest.raises(InvalidInput):
        CompressionCodec().compress(float("nan"))


def test_decompress_accepts_mapping():
    codec = CompressionCodec(threshold=0)
    blob = codec.compress(SAMPLE)
    assert codec.decompress(blob.model_dump()) == SAMPLE


def test_unknown_algorithm_rejected():
    blob = {"compressed": True, "algorithm": "brotli", "data": "AAAA"}
    with pytest.raises(UnsupportedAlgorithm, match="Unsupported compression algorithm: brotli"):
        CompressionCodec().decompress(blob)


def test_malformed_payloads_rejected():
    codec = CompressionCodec()

    with pytest.raises(MalformedData):
        codec.decompress({"compressed": True, "algorithm": "deflate", "data": "not base64!"})
    with pytest.raises(MalformedData):
        codec.decompress({"compressed": True, "algorithm": "deflate", "data": "AAAA"})
    with pytest.raises(MalformedData):
        codec.decompress({"compressed": False, "algorithm": "none", "data": "{broken"})
    with pytest.raises(MalformedData):
        codec.decompress({"algorithm": "none"})
    with pytest.raises(MalformedData):
        codec.decompress("just a string")


def test_stats_for_compressed_blob():
    codec = CompressionCodec(threshold=0)
    value = "abc" * 500
    blob = codec.compress(value)

    stats = codec.get_stats(blob)

    assert stats.original_size == len(json.dumps(value))
    assert stats.compressed_size < stats.original_size
    assert stats.compression_ratio > 1
    assert stats.space_saved == stats.original_size - stats.compressed_size
    assert stats.algorithm == "lz"


def test_stats_for_uncompressed_blob():
    codec = CompressionCodec()
    stats = codec.get_stats(codec.compress("hello"))

    assert stats.original_size == stats.compressed_size == 7
    assert stats.compression_ratio == 1.0
    assert stats.space_saved == 0
    assert stats.algorithm == "none"


def test_stats_never_report_negative_savings():
    codec = CompressionCodec(threshold=0)
    stats = codec.get_stats(codec.compress("x"))
    assert stats.space_saved == 0


def test_invalid_config_rejected():
    with pytest.raises(ConfigurationError):
        CompressionCodec(algorithm="zstd")
    with pytest.raises(ConfigurationError):
        CompressionConfig(level="ultra")


def test_registered_algorithms():
    assert CompressionCodec().registered_algorithms == ["lz", "deflate", "lzma"]


def test_lzw_handles_repeated_patterns():
    codec = LZWCodec()
    data = b"TOBEORNOTTOBEORTOBEORNOT" * 20

    payload = codec.compress(data)

    assert len(payload) < len(data)
    assert codec.decompress(payload) == data
    assert codec.compress(b"") == b""
    assert codec.decompress(b"") == b""


def test_lzw_survives_full_dictionary():
    rng = random.Random(7)
    data = bytes(rng.getrandbits(8) for _ in range(150_000))

    codec = LZWCodec()
    assert codec.decompress(codec.compress(data)) == data


def test_lzw_rejects_corrupt_payload():
    codec = LZWCodec()
    with pytest.raises(MalformedData):
        codec.decompress(b"\x00")
    with pytest.raises(MalformedData):
        codec.decompress(b"\x00\x41\xff\xff")


def test_blob_is_plain_pydantic_model():
    blob = CompressedBlob(compressed=False, data='"x"')
    assert blob.algorithm == "none"
