from menu_tts.application.api.models.tts import (
    CacheMetricsResponse,
    DebugCacheResponse,
    InvalidateResponse,
    ObjectListResponse,
    PrewarmRequest,
    PrewarmStartResponse,
    PrewarmStatusResponse,
    StoredObject,
)

__all__ = [
    "CacheMetricsResponse",
    "DebugCacheResponse",
    "InvalidateResponse",
    "ObjectListResponse",
    "PrewarmRequest",
    "PrewarmStartResponse",
    "PrewarmStatusResponse",
    "StoredObject",
]
