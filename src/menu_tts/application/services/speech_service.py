"""
Speech Service

The request pipeline behind ``GET /tts/{text}``:

    text → cache key → placement (usage metrics) → tiered lookup
        hit  → audio from the answering tier
        miss → synthesis (one in flight per key) → store into the tiers
    → usage record + request duration metric

Concurrent requests for the same uncached text share a single synthesis call;
every waiter receives the same bytes or the same exception.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from menu_tts.core.concurrency.single_flight import SingleFlight
from menu_tts.core.config.constants import CacheTier, PlacementStrategy, Stage
from menu_tts.core.logging.logger import get_logger, log_stage
from menu_tts.infrastructure.cache.cache_key import derive_cache_key
from menu_tts.infrastructure.cache.tiered_cache import TieredAudioCache
from menu_tts.infrastructure.cache.usage_metrics import CacheMetricsTracker
from menu_tts.infrastructure.monitoring.metrics_collector import get_metrics_collector
from menu_tts.infrastructure.speech.synthesis_client import SynthesisClient

logger = get_logger(__name__)


@dataclass
class SpeechResult:
    """Audio for one text and the tier that served it (``miss`` when synthesized)."""

    audio: bytes
    tier: CacheTier
    key: str

    @property
    def synthesized(self) -> bool:
        return self.tier == CacheTier.MISS


def build_metadata(text: str, key: str, audio: bytes, prewarmed: bool = False) -> dict[str, str]:
    """String metadata stored next to durable copies of the audio."""
    return {
        "text": text,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "size": str(len(audio)),
        "prewarmed": "true" if prewarmed else "false",
        "hash_id": key,
        "source": "synthesis",
    }


class SpeechService:
    """
    Coordinates cache, synthesis and usage tracking.

    Usage:
        service = SpeechService(cache, synthesis_client, tracker)
        result = await service.speak("上ロース")
        result.tier      # CacheTier.MISS the first time, CacheTier.EDGE after
    """

    def __init__(
        self,
        cache: TieredAudioCache,
        synthesizer: SynthesisClient,
        tracker: CacheMetricsTracker,
    ):
        self._cache = cache
        self._synthesizer = synthesizer
        self._tracker = tracker
        self._flight = SingleFlight()

    @property
    def cache(self) -> TieredAudioCache:
        return self._cache

    @property
    def tracker(self) -> CacheMetricsTracker:
        return self._tracker

    @property
    def inflight_syntheses(self) -> int:
        return len(self._flight)

    async def speak(self, text: str) -> SpeechResult:
        """
        Return audio for ``text`` from the fastest tier that has it,
        synthesizing on a full miss.

        Raises:
            SynthesisError: Synthesis failed and no tier had the audio
            TokenFetchError: No access token could be obtained for the synthesis
        """
        start = time.perf_counter()
        result = await self.get_or_create(text)

        elapsed = time.perf_counter() - start
        await self._tracker.record(result.key, text, elapsed * 1000)
        get_metrics_collector().record_request_duration(result.tier.value, elapsed)

        log_stage(
            logger,
            Stage.CLEANUP,
            "Audio served",
            cache_key=result.key[:16],
            tier=result.tier.value,
            size=len(result.audio),
            duration_ms=round(elapsed * 1000, 1),
        )
        return result

    async def get_or_create(
        self,
        text: str,
        timeout: float | None = None,
        prewarmed: bool = False,
        wait_durable: bool = False,
        refresh: bool = False,
    ) -> SpeechResult:
        """
        Lookup-then-synthesize without recording usage.

        Args:
            text: Menu text
            timeout: Synthesis timeout override
            prewarmed: Mark stored metadata as prewarmed
            wait_durable: Await durable tier writes before returning
            refresh: Skip the lookup and synthesize unconditionally
        """
        key = derive_cache_key(text)
        placement = self._tracker.classify_strategy(key)
        log_stage(
            logger, Stage.KEY_DERIVATION, "Cache key derived",
            level="debug", cache_key=key[:16], placement=placement.value,
        )

        if not refresh:
            entry = await self._cache.lookup(key, placement)
            if entry.hit:
                return SpeechResult(audio=entry.audio, tier=entry.tier, key=key)

        audio = await self._flight.run(
            key,
            lambda: self._synthesize_and_store(
                text, key, placement, timeout, prewarmed, wait_durable
            ),
        )
        return SpeechResult(audio=audio, tier=CacheTier.MISS, key=key)

    async def _synthesize_and_store(
        self,
        text: str,
        key: str,
        placement: PlacementStrategy,
        timeout: float | None,
        prewarmed: bool,
        wait_durable: bool,
    ) -> bytes:
        audio = await self._synthesizer.synthesize(text, timeout=timeout)
        metadata = build_metadata(text, key, audio, prewarmed=prewarmed)
        await self._cache.store(key, audio, metadata, placement, wait_durable=wait_durable)
        return audio

    async def invalidate(self, text: str) -> dict[str, Any]:
        """Remove the cached audio for ``text`` from the edge and object store."""
        key = derive_cache_key(text)
        deleted = await self._cache.invalidate(key)
        return {"text": text, "key": key, "deleted": deleted}

    async def is_cached(self, text: str) -> bool:
        """True if any tier holds audio for ``text``."""
        availability = await self._cache.probe(derive_cache_key(text))
        return any(availability.values())

    async def debug(self, text: str) -> dict[str, Any]:
        """Key, per-tier availability and usage record for ``text``."""
        key = derive_cache_key(text)
        metric = self._tracker.get(key)
        return {
            "text": text,
            "key": key,
            "tiers": self._cache.tier_names,
            "availability": await self._cache.probe(key),
            "placement": self._tracker.classify_strategy(key).value,
            "hit_count": metric.hit_count if metric else 0,
        }
