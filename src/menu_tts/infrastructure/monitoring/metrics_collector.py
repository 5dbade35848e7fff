#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Prometheus metrics for the audio cache service:
- Cache lookups by answering tier
- Tier write outcomes and background write failures
- Synthesis outcomes and latency
- Prewarm item outcomes and run state
- Errors by type

Architectural Decision: prometheus-client for industry-standard metrics
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from menu_tts.core.config.settings import get_settings
from menu_tts.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

CACHE_LOOKUPS = Counter(
    'tts_cache_lookups_total',
    'Audio lookups by the tier that answered',
    ['tier']  # edge, object-store, blob, miss
)

CACHE_WRITES = Counter(
    'tts_cache_writes_total',
    'Tier write attempts',
    ['tier', 'status']  # success, failure, skipped
)

BACKGROUND_WRITE_FAILURES = Counter(
    'tts_background_write_failures_total',
    'Detached backfill or write-through failures',
    ['tier', 'operation']
)

SYNTHESIS_REQUESTS = Counter(
    'tts_synthesis_requests_total',
    'Synthesis calls to the speech provider',
    ['status']  # success, failure, timeout, token_failure
)

SYNTHESIS_LATENCY = Histogram(
    'tts_synthesis_latency_seconds',
    'Synthesis latency for successful calls',
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)
)

REQUEST_DURATION = Histogram(
    'tts_request_duration_seconds',
    'End-to-end audio request duration',
    ['tier'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

PREWARM_ITEMS = Counter(
    'tts_prewarm_items_total',
    'Prewarm items by outcome',
    ['status']  # synthesized, skipped, failed
)

PREWARM_IN_PROGRESS = Gauge(
    'tts_prewarm_in_progress',
    'Whether a prewarm run is active (0 or 1)'
)

ERRORS = Counter(
    'tts_errors_total',
    'Total errors by type',
    ['error_type', 'stage']
)

APP_INFO = Info(
    'tts_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_cache_lookup("edge")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_lookup(self, tier: str) -> None:
        """Record which tier answered a lookup."""
        CACHE_LOOKUPS.labels(tier=tier).inc()

    def record_cache_write(self, tier: str, status: str) -> None:
        CACHE_WRITES.labels(tier=tier, status=status).inc()

    def record_background_failure(self, tier: str, operation: str) -> None:
        BACKGROUND_WRITE_FAILURES.labels(tier=tier, operation=operation).inc()

    def record_request_duration(self, tier: str, duration_seconds: float) -> None:
        REQUEST_DURATION.labels(tier=tier).observe(duration_seconds)

    # =========================================================================
    # Synthesis Metrics
    # =========================================================================

    def record_synthesis(self, status: str, duration_seconds: float | None = None) -> None:
        """Record a synthesis outcome, and its latency when it succeeded."""
        SYNTHESIS_REQUESTS.labels(status=status).inc()
        if duration_seconds is not None:
            SYNTHESIS_LATENCY.observe(duration_seconds)

    # =========================================================================
    # Prewarm Metrics
    # =========================================================================

    def record_prewarm_item(self, status: str) -> None:
        PREWARM_ITEMS.labels(status=status).inc()

    def set_prewarm_in_progress(self, active: bool) -> None:
        PREWARM_IN_PROGRESS.set(1 if active else 0)

    # =========================================================================
    # Error Metrics
    # =========================================================================

    def record_error(self, error_type: str, stage: str) -> None:
        """Record error."""
        ERRORS.labels(error_type=error_type, stage=stage).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """Prometheus text format metrics."""
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
