"""
Admin Routes

Operational endpoints. Prometheus scrapes ``/admin/metrics``.
"""

from fastapi import APIRouter, Response

from menu_tts.infrastructure.monitoring.metrics_collector import get_metrics_collector

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/metrics")
async def get_prometheus_metrics():
    """
    Prometheus text exposition of every counter, gauge and histogram.

    Metrics format:
        # HELP tts_cache_lookups_total Audio lookups by the tier that answered
        # TYPE tts_cache_lookups_total counter
        tts_cache_lookups_total{tier="edge"} 42.0
    """
    metrics = get_metrics_collector()
    return Response(content=metrics.get_prometheus_metrics(), media_type=metrics.get_content_type())
