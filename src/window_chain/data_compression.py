"""Cache value compression.

Serializes values to JSON and, above a size threshold, compresses the UTF-8
bytes with one of the registered codecs. Compressed payloads are base64 text
so blobs can live in any string-valued backing store.
"""

import base64
import binascii
import json
import logging
import lzma
import struct
import zlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from .config import CompressionConfig
from .exceptions import InvalidInput, MalformedData, UnsupportedAlgorithm
from .models import CompressedBlob

logger = logging.getLogger(__name__)


class CompressionAlgorithm(Enum):
    """Compression algorithms"""
    NONE = "none"
    LZ = "lz"
    DEFLATE = "deflate"
    LZMA = "lzma"


class CompressionLevel(Enum):
    """Speed/size trade-off"""
    FAST = "fast"
    DEFAULT = "default"
    MAX = "max"


@dataclass
class CompressionStats:
    """Size figures for one blob"""
    original_size: int
    compressed_size: int
    compression_ratio: float
    space_saved: int
    algorithm: str


class LZWCodec:
    """Dictionary (LZW) codec over bytes.

    Codes are written as big-endian 16-bit integers. Once every code is
    assigned the dictionary is frozen on both sides.
    """

    MAX_CODE = 0xFFFF

    def compress(self, data: bytes, level: CompressionLevel = CompressionLevel.DEFAULT) -> bytes:
        if not data:
            return b""

        dictionary: Dict[bytes, int] = {bytes([i]): i for i in range(256)}
        next_code = 256
        codes = []
        current = b""

        for byte in data:
            candidate = current + bytes([byte])
            if candidate in dictionary:
                current = candidate
                continue
            codes.append(dictionary[current])
            if next_code <= self.MAX_CODE:
                dictionary[candidate] = next_code
                next_code += 1
            current = bytes([byte])

        codes.append(dictionary[current])
        return struct.pack(f">{len(codes)}H", *codes)

    def decompress(self, payload: bytes) -> bytes:
        if not payload:
            return b""
        if len(payload) % 2:
            raise MalformedData("LZ payload has odd length")

        codes = struct.unpack(f">{len(payload) // 2}H", payload)
        dictionary: Dict[int, bytes] = {i: bytes([i]) for i in range(256)}
        next_code = 256

        if codes[0] not in dictionary:
            raise MalformedData(f"Invalid LZ code: {codes[0]}")
        previous = dictionary[codes[0]]
        output = [previous]

        for code in codes[1:]:
            if code in dictionary:
                entry = dictionary[code]
            elif code == next_code:
                entry = previous + previous[:1]
            else:
                raise MalformedData(f"Invalid LZ code: {code}")

            output.append(entry)
            if next_code <= self.MAX_CODE:
                dictionary[next_code] = previous + entry[:1]
                next_code += 1
            previous = entry

        return b"".join(output)


class DeflateCodec:
    """zlib deflate stream"""

    LEVELS = {
        CompressionLevel.FAST: 1,
        CompressionLevel.DEFAULT: 6,
        CompressionLevel.MAX: 9,
    }

    def compress(self, data: bytes, level: CompressionLevel = CompressionLevel.DEFAULT) -> bytes:
        return zlib.compress(data, level=self.LEVELS[level])

    def decompress(self, payload: bytes) -> bytes:
        try:
            return zlib.decompress(payload)
        except zlib.error as e:
            raise MalformedData(f"Deflate payload is corrupt: {e}") from e


class LZMACodec:
    """xz container"""

    PRESETS = {
        CompressionLevel.FAST: 0,
        CompressionLevel.DEFAULT: 6,
        CompressionLevel.MAX: 9,
    }

    def compress(self, data: bytes, level: CompressionLevel = CompressionLevel.DEFAULT) -> bytes:
        return lzma.compress(data, preset=self.PRESETS[level])

    def decompress(self, payload: bytes) -> bytes:
        try:
            return lzma.decompress(payload)
        except lzma.LZMAError as e:
            raise MalformedData(f"LZMA payload is corrupt: {e}") from e


class CompressionCodec:
    """Reversible transform applied to cache values above a size threshold."""

    def __init__(
        self,
        config: Optional[CompressionConfig] = None,
        algorithm: Optional[str] = None,
        level: Optional[str] = None,
        threshold: Optional[int] = None
    ):
        config = config or CompressionConfig()
        # Explicit arguments win over the config; CompressionConfig validates names
        self.config = CompressionConfig(
            enabled=config.enabled,
            algorithm=algorithm if algorithm is not None else config.algorithm,
            level=level if level is not None else config.level,
            threshold=threshold if threshold is not None else config.threshold,
        )
        self.algorithm = CompressionAlgorithm(self.config.algorithm)
        self.level = CompressionLevel(self.config.level)
        self.threshold = self.config.threshold

        self._codecs = {
            CompressionAlgorithm.LZ: LZWCodec(),
            CompressionAlgorithm.DEFLATE: DeflateCodec(),
            CompressionAlgorithm.LZMA: LZMACodec(),
        }

    @property
    def registered_algorithms(self):
        return [algorithm.value for algorithm in self._codecs]

    def compress(self, value: Any) -> CompressedBlob:
        """Serialize and, above the threshold, compress a value.

        Raises:
            InvalidInput: value is None or not JSON-serializable
        """
        if value is None:
            raise InvalidInput("Cannot compress undefined data")

        try:
            serialized = json.dumps(value, ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Value is not JSON-serializable: {e}") from e

        raw = serialized.encode("utf-8")
        if not self.config.enabled or len(raw) < self.threshold:
            return CompressedBlob(compressed=False, algorithm=CompressionAlgorithm.NONE.value,
                                  data=serialized)

        payload = self._codecs[self.algorithm].compress(raw, self.level)
        logger.debug(
            f"Compressed {len(raw)} bytes to {len(payload)} bytes with {self.algorithm.value}"
        )
        return CompressedBlob(
            compressed=True,
            algorithm=self.algorithm.value,
            data=base64.b64encode(payload).decode("ascii")
        )

    def decompress(self, blob: Union[CompressedBlob, Mapping[str, Any]]) -> Any:
        """Recover the original value.

        Raises:
            UnsupportedAlgorithm: blob names an unregistered codec
            MalformedData: payload or JSON cannot be decoded
        """
        blob = self._coerce_blob(blob)
        serialized = self._decode(blob)
        try:
            return json.loads(serialized)
        except ValueError as e:
            raise MalformedData(f"Failed to parse decompressed data: {e}") from e

    def get_stats(self, blob: Union[CompressedBlob, Mapping[str, Any]]) -> CompressionStats:
        """Size figures for a blob; no side effects."""
        blob = self._coerce_blob(blob)

        if not blob.compressed:
            size = len(blob.data.encode("utf-8"))
            return CompressionStats(
                original_size=size,
                compressed_size=size,
                compression_ratio=1.0,
                space_saved=0,
                algorithm=CompressionAlgorithm.NONE.value
            )

        original_size = len(self._decode(blob).encode("utf-8"))
        compressed_size = len(self._b64decode(blob.data))
        return CompressionStats(
            original_size=original_size,
            compressed_size=compressed_size,
            compression_ratio=original_size / compressed_size if compressed_size else 1.0,
            space_saved=max(0, original_size - compressed_size),
            algorithm=blob.algorithm
        )

    def _coerce_blob(self, blob) -> CompressedBlob:
        if isinstance(blob, CompressedBlob):
            return blob
        if not isinstance(blob, Mapping):
            raise MalformedData("Invalid compressed data format")
        try:
            return CompressedBlob.model_validate(dict(blob))
        except ValidationError as e:
            raise MalformedData(f"Invalid compressed data format: {e}") from e

    def _decode(self, blob: CompressedBlob) -> str:
        if not blob.compressed:
            return blob.data

        try:
            algorithm = CompressionAlgorithm(blob.algorithm)
        except ValueError:
            raise UnsupportedAlgorithm(blob.algorithm) from None
        codec = self._codecs.get(algorithm)
        if codec is None:
            raise UnsupportedAlgorithm(blob.algorithm)

        raw = codec.decompress(self._b64decode(blob.data))
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedData(f"Decompressed data is not UTF-8: {e}") from e

    @staticmethod
    def _b64decode(data: str) -> bytes:
        try:
            return base64.b64decode(data.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise MalformedData(f"Payload is not valid base64: {e}") from e
