#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Builds the audio cache service: tiers, speech client, usage tracker,
request pipeline and prewarm controller are created in the lifespan and
stored on ``app.state`` for the dependencies module.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from menu_tts.application.api.middleware.error_handler import ErrorHandlingMiddleware
from menu_tts.application.api.routes.admin import router as admin_router
from menu_tts.application.api.routes.health import router as health_router
from menu_tts.application.api.routes.prewarm import router as prewarm_router
from menu_tts.application.api.routes.tts import router as tts_router
from menu_tts.application.services.prewarm_service import PrewarmController
from menu_tts.application.services.speech_service import SpeechService
from menu_tts.core.config.constants import HEADER_CACHE_TIER, HEADER_REQUEST_ID, Stage
from menu_tts.core.config.settings import get_settings
from menu_tts.core.exceptions import (
    EdgeConnectionError,
    MenuTTSError,
    PrewarmInProgressError,
    SpeechProviderError,
    StoreUnavailableError,
)
from menu_tts.core.logging.logger import (
    clear_request_id,
    get_logger,
    log_stage,
    set_request_id,
    setup_logging,
)
from menu_tts.infrastructure.cache.redis_client import close_redis, get_redis_client, init_redis
from menu_tts.infrastructure.cache.tiered_cache import (
    BlobTier,
    EdgeTier,
    ObjectStoreTier,
    TieredAudioCache,
)
from menu_tts.infrastructure.cache.usage_metrics import CacheMetricsTracker, JsonFileMetricsStore
from menu_tts.infrastructure.monitoring.health_checker import HealthChecker
from menu_tts.infrastructure.monitoring.metrics_collector import get_metrics_collector
from menu_tts.infrastructure.speech.synthesis_client import SynthesisClient
from menu_tts.infrastructure.speech.token_manager import close_token_manager, init_token_manager
from menu_tts.infrastructure.storage.blob_store import BlobStoreClient
from menu_tts.infrastructure.storage.object_store import ObjectStoreClient

logger = get_logger(__name__)

# Upper bound for flushing detached tier writes on shutdown
SHUTDOWN_DRAIN_TIMEOUT = 10.0


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).
    """
    settings = get_settings()
    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    log_stage(
        logger,
        Stage.INITIALIZATION,
        "Starting menu TTS cache service",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(10.0))
    cache: TieredAudioCache | None = None
    prewarm: PrewarmController | None = None

    try:
        # Edge tier; an unreachable Redis degrades to misses and reconnects lazily
        try:
            await init_redis()
            logger.info("Redis connected")
        except EdgeConnectionError as e:
            logger.warning("Redis unavailable, edge tier will miss until reconnect", error=e.message)
        redis_client = get_redis_client()

        object_store = None
        if settings.object_store.is_configured:
            object_store = ObjectStoreClient.from_settings(settings.object_store, http_client)
        else:
            logger.warning("Object store credentials missing, object-store tier disabled")

        blob_store = BlobStoreClient.from_settings(settings.blob, http_client)

        cache = TieredAudioCache(
            edge=EdgeTier(redis_client, settings.redis.EDGE_TTL_SECONDS),
            object_store=ObjectStoreTier(object_store) if object_store else None,
            blob=BlobTier(blob_store) if blob_store else None,
            read_timeout=settings.cache.TIER_READ_TIMEOUT,
        )

        token_manager = init_token_manager(http_client)
        synthesizer = SynthesisClient.from_settings(settings.speech, token_manager, http_client)
        tracker = CacheMetricsTracker(JsonFileMetricsStore(settings.cache.CACHE_METRICS_FILE))

        speech = SpeechService(cache, synthesizer, tracker)
        prewarm = PrewarmController(
            speech,
            batch_size=settings.prewarm.PREWARM_BATCH_SIZE,
            batch_delay=settings.prewarm.PREWARM_BATCH_DELAY_SECONDS,
            synthesis_timeout=settings.speech.PREWARM_SYNTHESIS_TIMEOUT,
            popular_limit=settings.prewarm.PREWARM_POPULAR_LIMIT,
        )

        # Store in app state for dependencies.py
        app.state.speech_service = speech
        app.state.prewarm_controller = prewarm
        app.state.object_store = object_store
        app.state.health_checker = HealthChecker(redis_client, token_manager, settings)
        get_metrics_collector()

        logger.info("Application startup complete", tiers=cache.tier_names)

        yield

    finally:
        logger.info("Shutting down application")

        if prewarm is not None:
            await prewarm.close()
        if cache is not None:
            try:
                await asyncio.wait_for(cache.drain(), timeout=SHUTDOWN_DRAIN_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("Background writes still pending at shutdown")

        close_token_manager()
        await http_client.aclose()
        await close_redis()

        log_stage(logger, Stage.CLEANUP, "Application shutdown complete")


# ============================================================================
# Exception Handlers
# ============================================================================


async def speech_provider_error_handler(request: Request, exc: SpeechProviderError):
    """Synthesis failed and no tier had the audio."""
    logger.error(
        f"Speech provider error: {exc.message}",
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    get_metrics_collector().record_error(type(exc).__name__, "synthesis")
    return JSONResponse(status_code=502, content={"error": "synthesis_failed", **exc.to_dict()})


async def prewarm_in_progress_handler(request: Request, exc: PrewarmInProgressError):
    return JSONResponse(status_code=409, content={"error": "prewarm_in_progress", **exc.to_dict()})


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.warning(f"Store unavailable: {exc.message}", tier=exc.details.get("tier"))
    return JSONResponse(status_code=503, content={"error": "store_unavailable", **exc.to_dict()})


async def menu_tts_error_handler(request: Request, exc: MenuTTSError):
    logger.error(f"Service error: {exc.message}", error_type=type(exc).__name__)
    get_metrics_collector().record_error(type(exc).__name__, "request")
    return JSONResponse(status_code=500, content={"error": "internal_error", **exc.to_dict()})


# ============================================================================
# Application Factory
# ============================================================================


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Multi-tier cache and synthesis coordination for menu speech audio",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Middleware runs in reverse order of registration
    app.add_middleware(
        ErrorHandlingMiddleware,
        include_traceback=(settings.app.ENVIRONMENT == "development"),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[HEADER_REQUEST_ID, HEADER_CACHE_TIER, "ETag"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Inject a request ID into every request for log correlation."""
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()

    # Handlers are matched most specific first
    app.add_exception_handler(SpeechProviderError, speech_provider_error_handler)
    app.add_exception_handler(PrewarmInProgressError, prewarm_in_progress_handler)
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)
    app.add_exception_handler(MenuTTSError, menu_tts_error_handler)

    base_path = settings.API_BASE_PATH

    # Prewarm first: /tts/prewarm must not be read as /tts/{text}
    app.include_router(health_router, prefix=base_path)
    app.include_router(prewarm_router, prefix=base_path)
    app.include_router(tts_router, prefix=base_path)
    app.include_router(admin_router, prefix=base_path)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{base_path}/health",
        }

    return app


app = create_app()


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "menu_tts.application.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
