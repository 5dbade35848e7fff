#!/usr/bin/env python3
"""
Tiered Audio Cache

Architecture:
    TieredAudioCache (Public API)
        ├── TieredLookupStrategy (edge → object store → blob coordination)
        │   ├── EdgeTier (Redis)
        │   ├── ObjectStoreTier (S3-compatible bucket)
        │   └── BlobTier (public blob store)
        ├── BackgroundWriter (detached backfills and write-through)
        └── CacheObserver (metrics & logging)

Lookup:
    edge hit         → return
    object-store hit → return, backfill edge in the background
    blob hit         → return, backfill edge (and object store when eager)
    miss everywhere  → return miss

Store:
    edge written before returning; object store and blob written
    concurrently in the background. A durable-tier failure never undoes the
    edge write.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import orjson

from menu_tts.core.config.constants import (
    METADATA_CONTENT_TYPE,
    CacheTier,
    PlacementStrategy,
    Stage,
)
from menu_tts.core.logging.logger import get_logger, log_stage
from menu_tts.infrastructure.cache.cache_key import (
    audio_object_name,
    edge_key,
    metadata_object_name,
)
from menu_tts.infrastructure.cache.redis_client import EdgeRedisClient
from menu_tts.infrastructure.monitoring.metrics_collector import get_metrics_collector
from menu_tts.infrastructure.storage.blob_store import BlobStoreClient
from menu_tts.infrastructure.storage.object_store import ObjectStoreClient

logger = get_logger(__name__)


@dataclass
class CachedAudioEntry:
    """Result of a lookup: the audio (None on a miss) and the tier that had it."""

    audio: bytes | None
    tier: CacheTier
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def hit(self) -> bool:
        return self.audio is not None


# =============================================================================
# LAYER 1: TIER STORAGE
# Uniform adapters over each backend - no fallback logic
# =============================================================================


class TierStorage(Protocol):
    """Interface every cache tier implements."""

    tier: CacheTier

    async def get(self, key: str) -> bytes | None: ...

    async def put(self, key: str, audio: bytes, metadata: dict[str, str]) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def exists(self, key: str) -> bool: ...


class EdgeTier:
    """
    Redis edge tier.

    STAGE-2.1: Edge cache

    Entries expire through the Redis TTL; metadata is not kept here.
    """

    tier = CacheTier.EDGE

    def __init__(self, redis_client: EdgeRedisClient, ttl: int):
        self._redis = redis_client
        self._ttl = ttl

    async def get(self, key: str) -> bytes | None:
        return await self._redis.get(edge_key(key))

    async def put(self, key: str, audio: bytes, metadata: dict[str, str]) -> bool:
        return await self._redis.set(edge_key(key), audio, ttl=self._ttl)

    async def delete(self, key: str) -> bool:
        return await self._redis.delete(edge_key(key)) > 0

    async def exists(self, key: str) -> bool:
        return await self._redis.exists(edge_key(key)) > 0


class ObjectStoreTier:
    """
    Object store tier.

    STAGE-2.2: Durable cache

    Audio lives at ``<key>.mp3`` with a ``<key>.json`` metadata sidecar.
    """

    tier = CacheTier.OBJECT_STORE

    def __init__(self, client: ObjectStoreClient):
        self._client = client

    @property
    def client(self) -> ObjectStoreClient:
        return self._client

    async def get(self, key: str) -> bytes | None:
        return await self._client.get(audio_object_name(key))

    async def put(self, key: str, audio: bytes, metadata: dict[str, str]) -> bool:
        stored = await self._client.put(audio_object_name(key), audio, metadata)
        if not stored:
            return False

        sidecar = orjson.dumps(metadata)
        if not await self._client.put(
            metadata_object_name(key), sidecar, content_type=METADATA_CONTENT_TYPE
        ):
            logger.warning("Metadata sidecar upload failed", stage="2.2", cache_key=key[:16])
        return True

    async def delete(self, key: str) -> bool:
        audio_deleted, _ = await asyncio.gather(
            self._client.delete(audio_object_name(key)),
            self._client.delete(metadata_object_name(key)),
        )
        return audio_deleted

    async def exists(self, key: str) -> bool:
        return await self._client.exists(audio_object_name(key))


class BlobTier:
    """
    Blob fallback tier.

    STAGE-2.3: Fallback cache

    Deletion is not supported; ``delete`` always reports False.
    """

    tier = CacheTier.BLOB

    def __init__(self, client: BlobStoreClient):
        self._client = client

    async def get(self, key: str) -> bytes | None:
        return await self._client.get(key)

    async def put(self, key: str, audio: bytes, metadata: dict[str, str]) -> bool:
        return await self._client.put(key, audio)

    async def delete(self, key: str) -> bool:
        return False

    async def exists(self, key: str) -> bool:
        return await self._client.exists(key)


# =============================================================================
# LAYER 2: BACKGROUND WRITES
# Detached tasks with an observable failure channel
# =============================================================================


@dataclass(frozen=True)
class BackfillFailure:
    """One background write that did not succeed."""

    tier: str
    operation: str
    key: str
    error: str
    occurred_at: str


class BackgroundWriter:
    """
    Runs tier writes without blocking the caller.

    A write that raises or reports False is recorded as a BackfillFailure,
    logged and counted. Nothing is re-raised to the request that scheduled it.
    """

    def __init__(self, max_failures: int = 100):
        self._pending: set[asyncio.Task] = set()
        self._failures: deque[BackfillFailure] = deque(maxlen=max_failures)
        self._failure_count = 0

    def schedule(
        self,
        tier: CacheTier,
        operation: str,
        key: str,
        write: Callable[[], Awaitable[bool]],
    ) -> asyncio.Task:
        task = asyncio.ensure_future(self._run(tier, operation, key, write))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(
        self,
        tier: CacheTier,
        operation: str,
        key: str,
        write: Callable[[], Awaitable[bool]],
    ) -> bool:
        try:
            ok = await write()
            error = None if ok else "write reported failure"
        except Exception as e:
            ok = False
            error = f"{type(e).__name__}: {e}"

        if ok:
            log_stage(
                logger, Stage.CACHE_BACKFILL, "Background write complete",
                level="debug", tier=tier.value, operation=operation, cache_key=key[:16],
            )
            return True

        self._record_failure(tier, operation, key, error or "unknown")
        return False

    def _record_failure(self, tier: CacheTier, operation: str, key: str, error: str) -> None:
        self._failure_count += 1
        self._failures.append(
            BackfillFailure(
                tier=tier.value,
                operation=operation,
                key=key,
                error=error,
                occurred_at=datetime.now(timezone.utc).isoformat(),
            )
        )
        get_metrics_collector().record_background_failure(tier.value, operation)
        log_stage(
            logger, Stage.CACHE_BACKFILL, "Background write failed",
            level="warning", tier=tier.value, operation=operation, cache_key=key[:16], error=error,
        )

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def failures(self) -> list[BackfillFailure]:
        """Most recent failures, oldest first."""
        return list(self._failures)

    async def drain(self) -> None:
        """Wait until every scheduled write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# =============================================================================
# LAYER 3: LOOKUP STRATEGY
# Orchestrates edge → object store → blob
# =============================================================================


class TieredLookupStrategy:
    """
    Sequential tier probing with backfill of faster tiers.

    Each tier read is bounded by ``read_timeout``. A tier that fails or
    times out is logged and treated as a miss for that tier only.
    """

    def __init__(
        self,
        edge: TierStorage,
        object_store: TierStorage | None,
        blob: TierStorage | None,
        writer: BackgroundWriter,
        read_timeout: float = 5.0,
    ):
        self._edge = edge
        self._object_store = object_store
        self._blob = blob
        self._writer = writer
        self._read_timeout = read_timeout

    @property
    def tiers(self) -> list[TierStorage]:
        return [t for t in (self._edge, self._object_store, self._blob) if t is not None]

    @property
    def edge(self) -> TierStorage:
        return self._edge

    @property
    def durable_tiers(self) -> list[TierStorage]:
        return [t for t in (self._object_store, self._blob) if t is not None]

    async def _read(self, tier: TierStorage, key: str) -> bytes | None:
        try:
            return await asyncio.wait_for(tier.get(key), timeout=self._read_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Tier read timed out",
                stage="2.0",
                tier=tier.tier.value,
                cache_key=key[:16],
                timeout=self._read_timeout,
            )
        except Exception as e:
            logger.warning(
                "Tier read failed, treating as miss",
                stage="2.0",
                tier=tier.tier.value,
                cache_key=key[:16],
                error=str(e),
            )
        return None

    async def get(
        self, key: str, placement: PlacementStrategy = PlacementStrategy.STANDARD
    ) -> tuple[bytes | None, CacheTier]:
        """
        Probe tiers fastest first.

        Returns:
            (audio, tier) where tier is MISS when no tier had the key
        """
        audio = await self._read(self._edge, key)
        if audio is not None:
            return audio, CacheTier.EDGE

        if self._object_store is not None:
            audio = await self._read(self._object_store, key)
            if audio is not None:
                self._backfill(self._edge, key, audio)
                return audio, CacheTier.OBJECT_STORE

        if self._blob is not None:
            audio = await self._read(self._blob, key)
            if audio is not None:
                self._backfill(self._edge, key, audio)
                if placement == PlacementStrategy.EAGER and self._object_store is not None:
                    self._backfill(self._object_store, key, audio, {"source": CacheTier.BLOB.value})
                return audio, CacheTier.BLOB

        return None, CacheTier.MISS

    def _backfill(
        self,
        tier: TierStorage,
        key: str,
        audio: bytes,
        metadata: dict[str, str] | None = None,
    ) -> None:
        meta = metadata or {}
        self._writer.schedule(tier.tier, "backfill", key, lambda: tier.put(key, audio, meta))

    async def probe(self, key: str) -> dict[str, bool]:
        """Availability per tier, without reading bodies or backfilling."""
        result: dict[str, bool] = {}
        for tier in self.tiers:
            try:
                result[tier.tier.value] = await asyncio.wait_for(
                    tier.exists(key), timeout=self._read_timeout
                )
            except Exception as e:
                logger.warning(
                    "Tier probe failed", stage="2.0", tier=tier.tier.value, error=str(e)
                )
                result[tier.tier.value] = False
        return result


# =============================================================================
# LAYER 4: OBSERVABILITY
# =============================================================================


class CacheObserver:
    """
    Tracks lookup outcomes per tier and logs them.

    Metrics Tracked:
    - Hits per tier, misses
    - Overall hit rate
    """

    def __init__(self, logger_instance=None):
        self._logger = logger_instance or logger
        self._counts: dict[CacheTier, int] = {tier: 0 for tier in CacheTier}

    def record_lookup(self, key: str, tier: CacheTier) -> None:
        self._counts[tier] += 1
        get_metrics_collector().record_cache_lookup(tier.value)

        if tier == CacheTier.EDGE:
            log_stage(self._logger, Stage.EDGE_LOOKUP, "Edge cache hit", cache_key=key[:16])
        elif tier == CacheTier.OBJECT_STORE:
            log_stage(self._logger, Stage.OBJECT_STORE_LOOKUP, "Object store hit", cache_key=key[:16])
        elif tier == CacheTier.BLOB:
            log_stage(self._logger, Stage.BLOB_LOOKUP, "Blob store hit", cache_key=key[:16])
        else:
            log_stage(self._logger, Stage.BLOB_LOOKUP, "Cache miss on every tier", cache_key=key[:16])

    def record_write(self, key: str, tier: CacheTier, ok: bool) -> None:
        get_metrics_collector().record_cache_write(tier.value, "success" if ok else "failure")
        log_stage(
            self._logger, Stage.CACHE_STORE, "Tier write",
            level="debug" if ok else "warning", tier=tier.value, ok=ok, cache_key=key[:16],
        )

    def get_stats(self) -> dict[str, Any]:
        hits = sum(count for tier, count in self._counts.items() if tier != CacheTier.MISS)
        total = hits + self._counts[CacheTier.MISS]
        return {
            "edge_hits": self._counts[CacheTier.EDGE],
            "object_store_hits": self._counts[CacheTier.OBJECT_STORE],
            "blob_hits": self._counts[CacheTier.BLOB],
            "misses": self._counts[CacheTier.MISS],
            "total_requests": total,
            "hit_rate": round(hits / total, 3) if total > 0 else 0.0,
        }


# =============================================================================
# LAYER 5: PUBLIC API
# =============================================================================


class TieredAudioCache:
    """
    Multi-tier audio cache: edge (Redis), object store, blob.

    Usage:
        cache = TieredAudioCache(edge=EdgeTier(redis, ttl), object_store=..., blob=...)

        entry = await cache.lookup(key)
        if not entry.hit:
            await cache.store(key, audio, metadata, PlacementStrategy.STANDARD)
    """

    def __init__(
        self,
        edge: TierStorage,
        object_store: TierStorage | None = None,
        blob: TierStorage | None = None,
        read_timeout: float = 5.0,
        writer: BackgroundWriter | None = None,
    ):
        self._writer = writer or BackgroundWriter()
        self._strategy = TieredLookupStrategy(edge, object_store, blob, self._writer, read_timeout)
        self._observer = CacheObserver()

        logger.info(
            "Tiered audio cache initialized",
            stage="2.0",
            tiers=[t.tier.value for t in self._strategy.tiers],
            read_timeout=read_timeout,
        )

    @property
    def writer(self) -> BackgroundWriter:
        return self._writer

    @property
    def tier_names(self) -> list[str]:
        return [t.tier.value for t in self._strategy.tiers]

    async def lookup(
        self, key: str, placement: PlacementStrategy = PlacementStrategy.STANDARD
    ) -> CachedAudioEntry:
        """
        Find the audio for ``key``.

        STAGE-2.1 - 2.3: Tier lookups
        """
        audio, tier = await self._strategy.get(key, placement)
        self._observer.record_lookup(key, tier)
        return CachedAudioEntry(audio=audio, tier=tier)

    async def store(
        self,
        key: str,
        audio: bytes,
        metadata: dict[str, str],
        placement: PlacementStrategy = PlacementStrategy.STANDARD,
        wait_durable: bool = False,
    ) -> bool:
        """
        Write freshly synthesized audio.

        STAGE-2.4: Cache population

        Args:
            key: Cache key
            audio: MP3 bytes
            metadata: String metadata kept next to durable copies
            placement: MINIMAL writes the edge only; STANDARD and EAGER write every tier
            wait_durable: Await the durable writes instead of detaching them

        Returns:
            True if the edge write succeeded
        """
        edge = self._strategy.edge
        try:
            edge_ok = await edge.put(key, audio, metadata)
        except Exception as e:
            logger.warning("Edge write failed", stage="2.4", cache_key=key[:16], error=str(e))
            edge_ok = False
        self._observer.record_write(key, CacheTier.EDGE, edge_ok)

        if placement == PlacementStrategy.MINIMAL:
            return edge_ok

        tasks = []
        for tier in self._strategy.durable_tiers:
            task = self._writer.schedule(
                tier.tier, "write-through", key,
                lambda tier=tier: tier.put(key, audio, metadata),
            )
            task.add_done_callback(
                lambda t, tier=tier.tier: self._observer.record_write(
                    key, tier, not t.cancelled() and t.result()
                )
            )
            tasks.append(task)
        if wait_durable and tasks:
            await asyncio.gather(*tasks)

        return edge_ok

    async def invalidate(self, key: str) -> dict[str, bool]:
        """
        Remove ``key`` from the edge and object store tiers.

        STAGE-2.6: Invalidation
        """
        result: dict[str, bool] = {}
        for tier in self._strategy.tiers:
            if tier.tier == CacheTier.BLOB:
                continue
            try:
                result[tier.tier.value] = await tier.delete(key)
            except Exception as e:
                logger.warning(
                    "Invalidation failed", stage="2.6", tier=tier.tier.value, error=str(e)
                )
                result[tier.tier.value] = False

        log_stage(logger, Stage.CACHE_INVALIDATE, "Cache entry invalidated", cache_key=key[:16], deleted=result)
        return result

    async def probe(self, key: str) -> dict[str, bool]:
        """Per-tier availability for ``key`` (debug surface)."""
        return await self._strategy.probe(key)

    async def drain(self) -> None:
        """Wait for all background writes."""
        await self._writer.drain()

    def stats(self) -> dict[str, Any]:
        return {
            **self._observer.get_stats(),
            "tiers": self.tier_names,
            "pending_writes": self._writer.pending,
            "background_failures": self._writer.failure_count,
        }
