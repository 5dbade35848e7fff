"""
Speech Synthesis Client

Turns menu text into MP3 audio through the provider's REST endpoint.

Request shape:
    POST https://<region>.tts.speech.microsoft.com/cognitiveservices/v1
    Authorization: Bearer <token>
    Content-Type: application/ssml+xml
    X-Microsoft-OutputFormat: audio-16khz-32kbitrate-mono-mp3
    body: SSML with fixed language, voice and prosody volume

Each call is bounded by a total timeout and is never retried. A 401 drops the
cached token so the following call fetches a new one.
"""

import asyncio
import time
from xml.sax.saxutils import escape

import httpx

from menu_tts.core.config.constants import (
    OUTPUT_FORMAT_HEADER,
    SPEECH_LANGUAGE,
    SPEECH_OUTPUT_FORMAT,
    SPEECH_PROSODY_VOLUME,
    SPEECH_VOICE,
    SSML_CONTENT_TYPE,
    Stage,
)
from menu_tts.core.config.settings import SpeechSettings
from menu_tts.core.exceptions import SynthesisError, SynthesisTimeoutError, TokenFetchError
from menu_tts.core.logging.logger import get_logger, log_stage
from menu_tts.infrastructure.monitoring.metrics_collector import get_metrics_collector
from menu_tts.infrastructure.speech.token_manager import AccessTokenManager

logger = get_logger(__name__)


def build_ssml(text: str) -> str:
    """Wrap ``text`` (XML-escaped) in the fixed SSML envelope."""
    return (
        f"<speak version='1.0' xml:lang='{SPEECH_LANGUAGE}'>"
        f"<voice xml:lang='{SPEECH_LANGUAGE}' name='{SPEECH_VOICE}'>"
        f"<prosody volume='{SPEECH_PROSODY_VOLUME}'>"
        f"{escape(text)}"
        "</prosody></voice></speak>"
    )


class SynthesisClient:
    """
    Usage:
        client = SynthesisClient.from_settings(settings.speech, token_manager, http_client)
        audio = await client.synthesize("上ロース")
        audio = await client.synthesize("上ロース", timeout=25.0)
    """

    def __init__(
        self,
        endpoint: str,
        token_manager: AccessTokenManager,
        http_client: httpx.AsyncClient,
        timeout: float = 30.0,
    ):
        self._endpoint = endpoint
        self._tokens = token_manager
        self._http = http_client
        self._timeout = timeout

    @classmethod
    def from_settings(
        cls,
        settings: SpeechSettings,
        token_manager: AccessTokenManager,
        http_client: httpx.AsyncClient,
    ) -> "SynthesisClient":
        return cls(
            endpoint=settings.synthesis_url,
            token_manager=token_manager,
            http_client=http_client,
            timeout=settings.SYNTHESIS_TIMEOUT,
        )

    async def synthesize(self, text: str, timeout: float | None = None) -> bytes:
        """
        Synthesize ``text`` to MP3 bytes.

        STAGE-3.0: Speech synthesis

        Args:
            text: Menu text
            timeout: Total time allowed, token fetch included (default: client timeout)

        Raises:
            SynthesisError: Provider answered with a non-2xx status
            SynthesisTimeoutError: The call did not finish in time
            TokenFetchError: No token could be obtained
        """
        limit = timeout or self._timeout
        metrics = get_metrics_collector()
        start = time.perf_counter()

        try:
            audio = await asyncio.wait_for(self._request(text, limit), timeout=limit)
        except asyncio.TimeoutError:
            metrics.record_synthesis("timeout")
            log_stage(logger, Stage.SYNTHESIS, "Synthesis timed out", level="error", timeout=limit)
            raise SynthesisTimeoutError(f"Synthesis exceeded {limit}s", timeout=limit)
        except SynthesisTimeoutError:
            metrics.record_synthesis("timeout")
            log_stage(logger, Stage.SYNTHESIS, "Synthesis request timed out", level="error", timeout=limit)
            raise
        except SynthesisError:
            metrics.record_synthesis("failure")
            raise
        except TokenFetchError:
            metrics.record_synthesis("token_failure")
            raise

        duration = time.perf_counter() - start
        metrics.record_synthesis("success", duration)
        log_stage(
            logger,
            Stage.SYNTHESIS,
            "Synthesis complete",
            size=len(audio),
            duration_ms=round(duration * 1000, 1),
        )
        return audio

    async def _request(self, text: str, limit: float) -> bytes:
        token = await self._tokens.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": SSML_CONTENT_TYPE,
            OUTPUT_FORMAT_HEADER: SPEECH_OUTPUT_FORMAT,
        }

        try:
            response = await self._http.post(
                self._endpoint,
                content=build_ssml(text).encode("utf-8"),
                headers=headers,
                timeout=limit,
            )
        except httpx.TimeoutException as e:
            raise SynthesisTimeoutError(f"Synthesis request timed out: {e}", timeout=limit)
        except httpx.HTTPError as e:
            raise SynthesisError.from_exception(e, message="Synthesis request failed")

        if response.status_code == 401:
            self._tokens.invalidate()

        if not response.is_success:
            log_stage(
                logger,
                Stage.SYNTHESIS,
                "Synthesis provider returned error status",
                level="error",
                status_code=response.status_code,
            )
            raise SynthesisError(
                f"Synthesis failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        return response.content
