"""
Unit Tests for Cache Usage Metrics
"""

import math

import orjson
import pytest

from menu_tts.core.config.constants import SECONDS_PER_DAY, PlacementStrategy
from menu_tts.infrastructure.cache.usage_metrics import (
    CacheMetric,
    CacheMetricsTracker,
    InMemoryMetricsStore,
    JsonFileMetricsStore,
)
from tests.test_fixtures.fakes import FakeClock


def metric(key, hits, idle_days, clock, text=None):
    return CacheMetric(
        key=key,
        text=text or key,
        hit_count=hits,
        last_used_at=clock.now - idle_days * SECONDS_PER_DAY,
        avg_response_time_ms=100.0,
        created_at=clock.now - 60 * SECONDS_PER_DAY,
    )


@pytest.mark.unit
class TestRecord:
    async def test_first_access_creates_entry(self, metrics_tracker, fake_clock, sample_key):
        record = await metrics_tracker.record(sample_key, "上ロース", 120.0)

        assert record.hit_count == 1
        assert record.avg_response_time_ms == 120.0
        assert record.created_at == fake_clock.now
        assert len(metrics_tracker) == 1

    async def test_moving_average(self, metrics_tracker, sample_key):
        await metrics_tracker.record(sample_key, "上ロース", 100.0)
        await metrics_tracker.record(sample_key, "上ロース", 200.0)
        record = await metrics_tracker.record(sample_key, "上ロース", 300.0)

        assert record.hit_count == 3
        assert record.avg_response_time_ms == pytest.approx(200.0)

    async def test_moving_average_window_caps_at_ten(self, fake_clock):
        existing = metric("k", 30, 0, fake_clock)
        tracker = CacheMetricsTracker(InMemoryMetricsStore([existing]), clock=fake_clock)

        record = await tracker.record("k", "k", 1100.0)

        assert record.avg_response_time_ms == pytest.approx((100.0 * 9 + 1100.0) / 10)

    async def test_stale_entries_pruned_after_31_days(self, metrics_tracker, fake_clock):
        await metrics_tracker.record("old", "並カルビ", 50.0)
        fake_clock.advance_days(31)

        await metrics_tracker.record("new", "上ロース", 50.0)

        assert metrics_tracker.get("old") is None
        assert metrics_tracker.get("new") is not None

    async def test_entries_kept_at_29_days(self, metrics_tracker, fake_clock):
        await metrics_tracker.record("old", "並カルビ", 50.0)
        fake_clock.advance_days(29)

        await metrics_tracker.record("new", "上ロース", 50.0)

        assert metrics_tracker.get("old") is not None

    async def test_record_persists(self, fake_clock):
        store = InMemoryMetricsStore()
        tracker = CacheMetricsTracker(store, clock=fake_clock)

        await tracker.record("k", "上ロース", 10.0)

        assert store.load()["k"].hit_count == 1


@pytest.mark.unit
class TestClassification:
    @pytest.mark.parametrize(
        "hits,idle_days,expected",
        [
            (25, 0, PlacementStrategy.EAGER),
            (1, 40, PlacementStrategy.MINIMAL),
            (5, 1, PlacementStrategy.EAGER),
            (20, 60, PlacementStrategy.EAGER),
            (5, 7, PlacementStrategy.EAGER),
            (5, 8, PlacementStrategy.STANDARD),
            (4, 1, PlacementStrategy.STANDARD),
            (2, 31, PlacementStrategy.MINIMAL),
            (2, 30, PlacementStrategy.STANDARD),
            (3, 40, PlacementStrategy.STANDARD),
        ],
    )
    def test_strategy_table(self, fake_clock, hits, idle_days, expected):
        store = InMemoryMetricsStore([metric("k", hits, idle_days, fake_clock)])
        tracker = CacheMetricsTracker(store, clock=fake_clock)

        assert tracker.classify_strategy("k") == expected

    def test_unknown_key_is_standard(self, metrics_tracker):
        assert metrics_tracker.classify_strategy("missing") == PlacementStrategy.STANDARD


@pytest.mark.unit
class TestPopularity:
    def test_score_decays_with_idle_time(self, fake_clock):
        record = metric("k", 10, 30, fake_clock)

        assert record.popularity(fake_clock.now) == pytest.approx(10 * math.exp(-1))

    def test_rank_prefers_recent_over_stale(self, fake_clock):
        store = InMemoryMetricsStore(
            [
                metric("stale", 12, 29, fake_clock, text="並カルビ"),
                metric("fresh", 8, 0, fake_clock, text="上ロース"),
                metric("rare", 1, 0, fake_clock, text="ライス"),
            ]
        )
        tracker = CacheMetricsTracker(store, clock=fake_clock)

        ranked = tracker.rank_popular(limit=2)

        assert [m.text for m in ranked] == ["上ロース", "並カルビ"]


@pytest.mark.unit
class TestReporting:
    async def test_analyze(self, metrics_tracker, fake_clock):
        await metrics_tracker.record("a", "上ロース", 100.0)
        await metrics_tracker.record("a", "上ロース", 300.0)
        await metrics_tracker.record("b", "中ロース", 50.0)

        summary = metrics_tracker.analyze()

        assert summary["total_entries"] == 2
        assert summary["total_hits"] == 3
        assert summary["average_hits_per_entry"] == 1.5
        assert summary["average_response_time_ms"] == 125.0
        assert summary["popular"][0]["text"] == "上ロース"
        assert summary["popular"][0]["strategy"] == "standard"
        assert {r["text"] for r in summary["recent"]} == {"上ロース", "中ロース"}

    def test_analyze_empty(self, metrics_tracker):
        summary = metrics_tracker.analyze()

        assert summary["total_entries"] == 0
        assert summary["average_hits_per_entry"] == 0.0
        assert summary["popular"] == []

    async def test_export_and_reset(self, metrics_tracker):
        await metrics_tracker.record("a", "上ロース", 100.0)

        exported = orjson.loads(metrics_tracker.export())
        assert exported["metrics"][0]["text"] == "上ロース"
        assert "exported_at" in exported

        await metrics_tracker.reset()
        assert len(metrics_tracker) == 0


@pytest.mark.unit
class TestJsonFileMetricsStore:
    async def test_round_trip_through_file(self, tmp_path):
        path = tmp_path / "metrics" / "tts-metrics.json"
        clock = FakeClock()
        tracker = CacheMetricsTracker(JsonFileMetricsStore(path), clock=clock)

        await tracker.record("k", "上ロース", 42.0)

        reloaded = CacheMetricsTracker(JsonFileMetricsStore(path), clock=clock)
        assert reloaded.get("k").text == "上ロース"
        assert not path.with_suffix(".json.tmp").exists()

    def test_missing_file_is_empty(self, tmp_path):
        assert JsonFileMetricsStore(tmp_path / "absent.json").load() == {}

    def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        assert JsonFileMetricsStore(path).load() == {}
