"""
Cache Usage Metrics

Per-key access statistics that drive tier placement and prewarm selection.

For every access the tracker keeps the hit count, last use, and a moving
average of response time whose window grows with the hit count up to 10
samples. Entries unused for more than 30 days are pruned after every write.

Placement classification:
    eager     hit_count >= 20, or hit_count >= 5 and used within 7 days
    minimal   hit_count <= 2 and unused for more than 30 days
    standard  everything else, including unknown keys

Popularity score: hit_count * exp(-days_since_last_use / 30)
"""

import asyncio
import math
import os
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import orjson

from menu_tts.core.config.constants import (
    ANALYSIS_TOP_N,
    EAGER_MIN_HITS,
    EAGER_RECENT_MAX_DAYS,
    EAGER_RECENT_MIN_HITS,
    METRIC_RETENTION_DAYS,
    MINIMAL_MAX_HITS,
    MINIMAL_MIN_IDLE_DAYS,
    MOVING_AVERAGE_WINDOW,
    POPULARITY_DECAY_DAYS,
    RECENT_ACTIVITY_DAYS,
    SECONDS_PER_DAY,
    PlacementStrategy,
    Stage,
)
from menu_tts.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)


@dataclass
class CacheMetric:
    """Usage record for one cache key. Timestamps are epoch seconds."""

    key: str
    text: str
    hit_count: int
    last_used_at: float
    avg_response_time_ms: float
    created_at: float

    def days_since_last_use(self, now: float) -> float:
        return max(0.0, now - self.last_used_at) / SECONDS_PER_DAY

    def popularity(self, now: float) -> float:
        return self.hit_count * math.exp(-self.days_since_last_use(now) / POPULARITY_DECAY_DAYS)


# =============================================================================
# PERSISTENCE
# =============================================================================


class MetricsStore(Protocol):
    def load(self) -> dict[str, CacheMetric]: ...

    def save(self, metrics: dict[str, CacheMetric]) -> None: ...


class InMemoryMetricsStore:
    """Keeps metrics in process memory; used by tests and when no file is wanted."""

    def __init__(self, initial: list[CacheMetric] | None = None):
        self._data = {m.key: m for m in (initial or [])}

    def load(self) -> dict[str, CacheMetric]:
        return {k: CacheMetric(**asdict(m)) for k, m in self._data.items()}

    def save(self, metrics: dict[str, CacheMetric]) -> None:
        self._data = {k: CacheMetric(**asdict(m)) for k, m in metrics.items()}


class JsonFileMetricsStore:
    """
    Persists metrics as a JSON object keyed by cache key.

    Writes go to a temporary file that replaces the target, so a crash
    mid-write leaves the previous snapshot intact.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, CacheMetric]:
        if not self._path.exists():
            return {}
        try:
            raw = orjson.loads(self._path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            logger.warning("Metrics file unreadable, starting empty", path=str(self._path), error=str(e))
            return {}
        return {key: CacheMetric(**entry) for key, entry in raw.items()}

    def save(self, metrics: dict[str, CacheMetric]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_bytes(orjson.dumps({k: asdict(m) for k, m in metrics.items()}))
        os.replace(tmp, self._path)


# =============================================================================
# TRACKER
# =============================================================================


class CacheMetricsTracker:
    """
    Records accesses and answers placement and popularity questions.

    Usage:
        tracker = CacheMetricsTracker(JsonFileMetricsStore(".cache/tts-metrics.json"))
        await tracker.record(key, "上ロース", 42.0)
        tracker.classify_strategy(key)      # PlacementStrategy.STANDARD
        tracker.rank_popular(limit=20)
    """

    def __init__(self, store: MetricsStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock
        self._metrics: dict[str, CacheMetric] | None = None
        self._lock = asyncio.Lock()

    def _data(self) -> dict[str, CacheMetric]:
        if self._metrics is None:
            self._metrics = self._store.load()
        return self._metrics

    def get(self, key: str) -> CacheMetric | None:
        return self._data().get(key)

    def __len__(self) -> int:
        return len(self._data())

    async def record(self, key: str, text: str, response_time_ms: float) -> CacheMetric:
        """
        Record one access.

        STAGE-4.0: Metrics record
        """
        async with self._lock:
            data = self._data()
            now = self._clock()
            metric = data.get(key)

            if metric is None:
                metric = CacheMetric(
                    key=key,
                    text=text,
                    hit_count=1,
                    last_used_at=now,
                    avg_response_time_ms=float(response_time_ms),
                    created_at=now,
                )
                data[key] = metric
            else:
                metric.hit_count += 1
                metric.last_used_at = now
                weight = min(metric.hit_count, MOVING_AVERAGE_WINDOW)
                metric.avg_response_time_ms = (
                    metric.avg_response_time_ms * (weight - 1) + response_time_ms
                ) / weight

            pruned = self._prune(now)
            await self._persist()

        log_stage(
            logger, Stage.METRICS_RECORD, "Usage recorded",
            level="debug", cache_key=key[:16], hit_count=metric.hit_count, pruned=pruned,
        )
        return metric

    def _prune(self, now: float) -> int:
        data = self._data()
        stale = [
            key for key, metric in data.items()
            if metric.days_since_last_use(now) > METRIC_RETENTION_DAYS
        ]
        for key in stale:
            del data[key]
        return len(stale)

    async def _persist(self) -> None:
        snapshot = {k: CacheMetric(**asdict(m)) for k, m in self._data().items()}
        try:
            await asyncio.to_thread(self._store.save, snapshot)
        except OSError as e:
            logger.error("Failed to persist usage metrics", stage="4.0", error=str(e))

    def classify_strategy(self, key: str) -> PlacementStrategy:
        """Placement for ``key`` from its usage record."""
        metric = self.get(key)
        if metric is None:
            return PlacementStrategy.STANDARD

        days = metric.days_since_last_use(self._clock())
        if metric.hit_count >= EAGER_MIN_HITS:
            return PlacementStrategy.EAGER
        if metric.hit_count >= EAGER_RECENT_MIN_HITS and days <= EAGER_RECENT_MAX_DAYS:
            return PlacementStrategy.EAGER
        if metric.hit_count <= MINIMAL_MAX_HITS and days > MINIMAL_MIN_IDLE_DAYS:
            return PlacementStrategy.MINIMAL
        return PlacementStrategy.STANDARD

    def rank_popular(self, limit: int = ANALYSIS_TOP_N) -> list[CacheMetric]:
        """Records ordered by decayed popularity, highest first."""
        now = self._clock()
        ranked = sorted(self._data().values(), key=lambda m: m.popularity(now), reverse=True)
        return ranked[:limit]

    def analyze(self) -> dict[str, Any]:
        """Summary of cache usage for the metrics endpoint."""
        now = self._clock()
        metrics = list(self._data().values())
        total_hits = sum(m.hit_count for m in metrics)
        avg_response = (
            sum(m.avg_response_time_ms for m in metrics) / len(metrics) if metrics else 0.0
        )

        recent = sorted(
            (m for m in metrics if m.days_since_last_use(now) <= RECENT_ACTIVITY_DAYS),
            key=lambda m: m.last_used_at,
            reverse=True,
        )[:ANALYSIS_TOP_N]

        return {
            "total_entries": len(metrics),
            "total_hits": total_hits,
            "average_hits_per_entry": round(total_hits / len(metrics), 2) if metrics else 0.0,
            "average_response_time_ms": round(avg_response, 2),
            "popular": [
                {
                    "text": m.text,
                    "hit_count": m.hit_count,
                    "score": round(m.popularity(now), 3),
                    "strategy": self.classify_strategy(m.key).value,
                }
                for m in self.rank_popular(ANALYSIS_TOP_N)
            ],
            "recent": [
                {
                    "text": m.text,
                    "hit_count": m.hit_count,
                    "last_used_at": _iso(m.last_used_at),
                }
                for m in recent
            ],
        }

    def export(self) -> bytes:
        """All records as indented JSON."""
        payload = {
            "exported_at": _iso(self._clock()),
            "metrics": [asdict(m) for m in self._data().values()],
        }
        return orjson.dumps(payload, option=orjson.OPT_INDENT_2)

    async def reset(self) -> None:
        """Drop every record."""
        async with self._lock:
            self._metrics = {}
            await self._persist()
        log_stage(logger, Stage.METRICS_RECORD, "Usage metrics reset")


def _iso(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()
