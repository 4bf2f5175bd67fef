"""Window Chain - prompt session.

Wires the cache, compression codec, fallback coordinator and performance
recorder around one host language model.
"""

import hashlib
import json
import logging
import time
from typing import Any, AsyncIterator, Callable, Dict, Optional

from .cache_store import CacheStats, CacheStore
from .config import Config
from .data_compression import CompressionCodec
from .exceptions import BackendFailure, InvalidInput
from .fallback import FallbackContext, FallbackCoordinator
from .health_checker import HealthRecord
from .model_client import GenerationOptions, LanguageModel, normalize_stream
from .models import ModelCapabilities
from .performance_monitor import MetricStats, PerformanceRecorder
from .utils import elapsed_ms

logger = logging.getLogger(__name__)


class Session:
    """Cached, fallback-protected access to a language model."""

    def __init__(
        self,
        model: LanguageModel,
        config: Optional[Config] = None,
        recorder: Optional[PerformanceRecorder] = None,
        capabilities: Optional[ModelCapabilities] = None,
        clock: Callable[[], float] = time.time
    ):
        self.model = model
        self.config = config or Config()
        self.capabilities = capabilities
        self.recorder = recorder or PerformanceRecorder(self.config.analytics, clock=clock)

        self.codec = CompressionCodec(self.config.compression)
        self.cache: Optional[CacheStore] = None
        if self.config.cache.enabled:
            self.cache = CacheStore.from_config(self.config.cache, codec=self.codec, clock=clock)

        self.fallback = FallbackCoordinator(model, self.config.fallback, self.recorder)

    @classmethod
    async def create(cls, model: LanguageModel, config: Optional[Config] = None,
                     **kwargs) -> "Session":
        """Check model capabilities and build a session.

        Raises:
            BackendFailure: the host reports the model as unavailable
        """
        capabilities = await model.check_capabilities()
        if capabilities.is_unavailable():
            raise BackendFailure("Language model is not available")
        if capabilities.needs_download():
            logger.warning("Language model must be downloaded before first use")
        return cls(model, config, capabilities=capabilities, **kwargs)

    @staticmethod
    def cache_key(text: str, options: GenerationOptions) -> str:
        """Key covering the prompt and every option that changes the response."""
        key_data = {"text": text, **options.cache_fields()}
        key_str = json.dumps(key_data, sort_keys=True)
        return f"prompt_{hashlib.sha256(key_str.encode('utf-8')).hexdigest()}"

    async def prompt(self, text: str, options: Optional[GenerationOptions] = None,
                     use_cache: bool = True) -> str:
        """Generate a response, served from the cache when possible."""
        options = options or GenerationOptions()
        self._validate_options(options)
        start = time.perf_counter()

        try:
            cache_key = None
            if self.cache is not None and use_cache:
                cache_key = self.cache_key(text, options)
                cached = await self.cache.get(cache_key)
                if cached is not None:
                    self.recorder.record("cache_hit", 1)
                    self.recorder.record("cache_latency_ms", elapsed_ms(start))
                    return cached
                self.recorder.record("cache_miss", 1)

            async def generate(context: FallbackContext) -> str:
                return await self.model.generate(context.input, context.options)

            response = await self.fallback.execute(generate, FallbackContext(text, options))
            self.recorder.record("prompt_latency_ms", elapsed_ms(start))

            if cache_key is not None:
                await self.cache.set(cache_key, response)
            return response
        except Exception:
            self.recorder.record("error", 1)
            raise

    async def prompt_streaming(self, text: str, options: Optional[GenerationOptions] = None,
                               use_cache: bool = True) -> AsyncIterator[str]:
        """Yield response deltas; the full text is cached once the stream ends.

        Streams go straight to the primary model without the fallback chain.
        """
        options = options or GenerationOptions()
        self._validate_options(options)
        start = time.perf_counter()

        cache_key = None
        if self.cache is not None and use_cache:
            cache_key = self.cache_key(text, options)
            cached = await self.cache.get(cache_key)
            if cached is not None:
                self.recorder.record("cache_hit", 1)
                self.recorder.record("cache_latency_ms", elapsed_ms(start))
                yield cached
                return
            self.recorder.record("cache_miss", 1)

        parts = []
        try:
            stream = self.model.generate_streaming(text, options)
            async for delta in normalize_stream(stream, options.cancellation):
                parts.append(delta)
                yield delta
        except Exception:
            self.recorder.record("error", 1)
            raise

        self.recorder.record("prompt_latency_ms", elapsed_ms(start))
        if cache_key is not None:
            await self.cache.set(cache_key, "".join(parts))

    async def add_fallback(self, name: str, backend: LanguageModel) -> HealthRecord:
        return await self.fallback.add_fallback(name, backend)

    def remove_fallback(self, name: str) -> bool:
        return self.fallback.remove_fallback(name)

    def get_cache_stats(self) -> Optional[CacheStats]:
        return self.cache.stats() if self.cache is not None else None

    def get_fallback_stats(self) -> Dict[str, Any]:
        return self.fallback.get_stats()

    def get_analytics(self) -> Dict[str, MetricStats]:
        if self.config.analytics.sample_process:
            self.recorder.sample_process_metrics()
        return self.recorder.get_all_stats()

    async def start(self):
        """Start background cache sweeps and health probes."""
        if self.cache is not None:
            await self.cache.start()
        await self.fallback.start()

    async def close(self):
        await self.fallback.stop()
        if self.cache is not None:
            await self.cache.stop()

    async def __aenter__(self) -> "Session":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _validate_options(self, options: GenerationOptions):
        if self.capabilities is None:
            return
        validation = self.capabilities.validate_options(options.temperature, options.top_k)
        if not validation.valid:
            raise InvalidInput("; ".join(validation.issues))
