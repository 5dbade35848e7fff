"""
Prewarm Routes

    GET  /tts/prewarm   current or last run status
    POST /tts/prewarm   start a run (202), or 409 while one is active

Registered ahead of the audio router so ``/tts/prewarm`` is not read as text.
"""

from fastapi import APIRouter, status

from menu_tts.application.api.dependencies import PrewarmControllerDep
from menu_tts.application.api.models.tts import (
    PrewarmRequest,
    PrewarmStartResponse,
    PrewarmStatusResponse,
)
from menu_tts.core.exceptions import PrewarmInProgressError

router = APIRouter(prefix="/tts/prewarm", tags=["Prewarm"])


@router.get("", response_model=PrewarmStatusResponse)
async def prewarm_status(controller: PrewarmControllerDep):
    return PrewarmStatusResponse(**controller.status.to_dict())


@router.post(
    "",
    response_model=PrewarmStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={409: {"description": "A prewarm run is already in progress"}},
)
async def start_prewarm(controller: PrewarmControllerDep, body: PrewarmRequest | None = None):
    """
    Start prewarming in the background.

    Raises:
        PrewarmInProgressError: A run is already active (409, status unchanged)
    """
    body = body or PrewarmRequest()
    try:
        started = controller.start(body.phrases, force=body.force)
    except PrewarmInProgressError as e:
        raise e.with_context(status=controller.status.to_dict())

    return PrewarmStartResponse(
        message=f"Prewarm started for {started.total} phrases",
        status=PrewarmStatusResponse(**started.to_dict()),
    )
