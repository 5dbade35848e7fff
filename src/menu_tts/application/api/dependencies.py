"""
FastAPI Dependencies

Route-level access to the singletons the lifespan stores on ``app.state``.
Tests replace them through ``app.dependency_overrides``.

Example:
    @router.get("/tts/{text}")
    async def get_audio(text: str, speech: SpeechServiceDep):
        result = await speech.speak(text)
"""

from typing import Annotated

from fastapi import Depends, Request

from menu_tts.application.services.prewarm_service import PrewarmController
from menu_tts.application.services.speech_service import SpeechService
from menu_tts.core.config.settings import Settings, get_settings
from menu_tts.infrastructure.monitoring.health_checker import HealthChecker
from menu_tts.infrastructure.storage.object_store import ObjectStoreClient


def _state(request: Request, name: str):
    if not hasattr(request.app.state, name):
        raise RuntimeError(
            f"{name} not initialized in app.state. "
            "This indicates the application lifespan startup didn't complete properly."
        )
    return getattr(request.app.state, name)


def get_speech_service(request: Request) -> SpeechService:
    """The request pipeline built at startup."""
    return _state(request, "speech_service")


def get_prewarm_controller(request: Request) -> PrewarmController:
    return _state(request, "prewarm_controller")


def get_health_checker(request: Request) -> HealthChecker:
    return _state(request, "health_checker")


def get_object_store(request: Request) -> ObjectStoreClient | None:
    """The object store client, or None when the tier is not configured."""
    return getattr(request.app.state, "object_store", None)


# ============================================================================
# TYPE ALIASES FOR CLEANER ROUTE SIGNATURES
# ============================================================================

SpeechServiceDep = Annotated[SpeechService, Depends(get_speech_service)]
PrewarmControllerDep = Annotated[PrewarmController, Depends(get_prewarm_controller)]
HealthCheckerDep = Annotated[HealthChecker, Depends(get_health_checker)]
ObjectStoreDep = Annotated[ObjectStoreClient | None, Depends(get_object_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
