"""
Audio Routes

    GET    /tts/{text:path}     audio/mpeg, ETag + immutable Cache-Control
    DELETE /tts/{text:path}     drop cached audio from edge and object store
    GET    /tts/debug-cache     per-tier availability for one text
    GET    /tts/metrics         usage analysis and tier hit counters
    GET    /tts/metrics/export  raw usage records as JSON
    DELETE /tts/metrics         clear usage records
    GET    /tts/objects         object store listing

Fixed paths are registered before ``/{text:path}`` so they are not captured by it.
The path converter lets menu text contain ``/``.
"""

from typing import Annotated

from fastapi import APIRouter, Path, Query, Request, Response, status
from fastapi.responses import RedirectResponse

from menu_tts.application.api.dependencies import (
    ObjectStoreDep,
    SettingsDep,
    SpeechServiceDep,
)
from menu_tts.application.api.models.tts import (
    CacheMetricsResponse,
    DebugCacheResponse,
    InvalidateResponse,
    ObjectListResponse,
    StoredObject,
)
from menu_tts.core.config.constants import (
    AUDIO_CACHE_CONTROL,
    AUDIO_CONTENT_TYPE,
    HEADER_CACHE_KEY,
    HEADER_CACHE_TIER,
)
from menu_tts.core.exceptions import StoreUnavailableError
from menu_tts.core.logging.logger import get_logger
from menu_tts.infrastructure.cache.cache_key import audio_object_name, derive_cache_key

logger = get_logger(__name__)

router = APIRouter(prefix="/tts", tags=["TTS"])

TextPath = Annotated[str, Path(min_length=1, max_length=500, description="Menu text to speak")]


def _etag(key: str) -> str:
    return f'"{key}"'


def _matches_etag(if_none_match: str | None, etag: str) -> bool:
    if not if_none_match:
        return False
    candidates = [tag.strip().removeprefix("W/") for tag in if_none_match.split(",")]
    return "*" in candidates or etag in candidates


# ============================================================================
# DIAGNOSTICS
# ============================================================================


@router.get("/debug-cache", response_model=DebugCacheResponse)
async def debug_cache(
    text: Annotated[str, Query(min_length=1, max_length=500)],
    speech: SpeechServiceDep,
    settings: SettingsDep,
):
    """Cache key, configured tiers and where the audio currently lives."""
    report = await speech.debug(text)
    return DebugCacheResponse(
        **report,
        object_store_configured=settings.object_store.is_configured,
        object_store_public_url=bool(settings.object_store.R2_PUBLIC_URL),
    )


@router.get("/metrics", response_model=CacheMetricsResponse)
async def cache_metrics(speech: SpeechServiceDep):
    failures = speech.cache.writer.failures()
    return CacheMetricsResponse(
        usage=speech.tracker.analyze(),
        lookups=speech.cache.stats(),
        background_failures=[
            {
                "tier": f.tier,
                "operation": f.operation,
                "key": f.key,
                "error": f.error,
                "occurred_at": f.occurred_at,
            }
            for f in failures
        ],
    )


@router.get("/metrics/export")
async def export_metrics(speech: SpeechServiceDep):
    return Response(
        content=speech.tracker.export(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="tts-metrics.json"'},
    )


@router.delete("/metrics", status_code=status.HTTP_204_NO_CONTENT)
async def reset_metrics(speech: SpeechServiceDep):
    await speech.tracker.reset()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/objects", response_model=ObjectListResponse)
async def list_objects(
    object_store: ObjectStoreDep,
    prefix: Annotated[str, Query(max_length=200)] = "",
):
    """
    List stored objects under ``prefix``.

    Raises:
        StoreUnavailableError: Object store not configured or listing failed (503)
    """
    if object_store is None:
        raise StoreUnavailableError("Object store is not configured", tier="object-store")

    objects = await object_store.list(prefix)
    return ObjectListResponse(
        prefix=prefix,
        count=len(objects),
        objects=[
            StoredObject(key=o.key, size=o.size, last_modified=o.last_modified) for o in objects
        ],
    )


# ============================================================================
# AUDIO
# ============================================================================


@router.get(
    "/{text:path}",
    response_class=Response,
    responses={
        200: {"content": {AUDIO_CONTENT_TYPE: {}}, "description": "MP3 audio"},
        302: {"description": "Redirect to the public object URL"},
        304: {"description": "Client copy is current"},
        502: {"description": "Synthesis failed and no tier had the audio"},
    },
)
async def get_audio(
    text: TextPath,
    request: Request,
    speech: SpeechServiceDep,
    object_store: ObjectStoreDep,
    settings: SettingsDep,
):
    """
    Serve audio for ``text`` from the fastest tier, synthesizing on a full miss.

    The audio for a text never changes, so the key doubles as a strong ETag.
    """
    key = derive_cache_key(text)
    etag = _etag(key)
    cache_headers = {"ETag": etag, "Cache-Control": AUDIO_CACHE_CONTROL}

    if _matches_etag(request.headers.get("if-none-match"), etag):
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=cache_headers)

    if (
        settings.cache.ENABLE_PUBLIC_REDIRECT
        and object_store is not None
        and object_store.has_public_url
    ):
        object_name = audio_object_name(key)
        if await object_store.probe_public(object_name):
            logger.debug("Redirecting to public object", stage="2.2", cache_key=key[:16])
            return RedirectResponse(
                object_store.public_object_url(object_name),
                status_code=status.HTTP_302_FOUND,
                headers={**cache_headers, HEADER_CACHE_TIER: "object-store-redirect"},
            )

    result = await speech.speak(text)
    return Response(
        content=result.audio,
        media_type=AUDIO_CONTENT_TYPE,
        headers={
            **cache_headers,
            HEADER_CACHE_TIER: result.tier.value,
            HEADER_CACHE_KEY: key,
        },
    )


@router.delete("/{text:path}", response_model=InvalidateResponse)
async def invalidate_audio(text: TextPath, speech: SpeechServiceDep):
    return InvalidateResponse(**await speech.invalidate(text))
