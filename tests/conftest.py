"""
Pytest Configuration and Shared Test Fixtures

All fixtures defined here are automatically available to all test files.
"""

import pytest

from menu_tts.core.config.constants import CacheTier
from menu_tts.infrastructure.cache.tiered_cache import EdgeTier, TieredAudioCache
from menu_tts.infrastructure.cache.usage_metrics import CacheMetricsTracker, InMemoryMetricsStore
from tests.test_fixtures.fakes import FakeClock, FakeSynthesizer, FakeTier, InMemoryRedis

# ============================================================================
# Infrastructure Fakes
# ============================================================================


@pytest.fixture
def in_memory_redis_client():
    """In-memory Redis client stub with bytes values."""
    return InMemoryRedis()


@pytest.fixture
def edge_tier(in_memory_redis_client):
    return EdgeTier(in_memory_redis_client, ttl=31_536_000)


@pytest.fixture
def object_store_tier():
    return FakeTier(CacheTier.OBJECT_STORE)


@pytest.fixture
def blob_tier():
    return FakeTier(CacheTier.BLOB)


@pytest.fixture
def tiered_cache(edge_tier, object_store_tier, blob_tier):
    """Three-tier cache: Redis fake at the edge, dict-backed durable tiers."""
    return TieredAudioCache(
        edge=edge_tier, object_store=object_store_tier, blob=blob_tier, read_timeout=0.5
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def metrics_tracker(fake_clock):
    return CacheMetricsTracker(InMemoryMetricsStore(), clock=fake_clock)


@pytest.fixture
def fake_synthesizer():
    return FakeSynthesizer()


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_text():
    return "上ロース"


@pytest.fixture
def sample_key():
    """SHA-256 of the UTF-8 bytes of 上ロース."""
    return "89f2fb76daa617687e48c7ba21f9e264f24c3560ada727a92aff60e1e4f3021a"
