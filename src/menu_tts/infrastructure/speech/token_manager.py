"""
Access Token Manager

Holds the bearer token for the speech provider and refreshes it before it
expires.

State machine:
    Unset ──get_token──▶ Refreshing ──success──▶ Valid
    Valid ──(within margin of expiry)──▶ Refreshing
    Refreshing ──failure──▶ Unset (every waiter gets TokenFetchError)

Only one refresh is ever in flight; concurrent callers await the same
request. A failed refresh is not retried here, the next call starts a new one.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from menu_tts.core.concurrency.single_flight import SingleFlight
from menu_tts.core.config.constants import SUBSCRIPTION_KEY_HEADER, Stage
from menu_tts.core.config.settings import SpeechSettings, get_settings
from menu_tts.core.exceptions import TokenFetchError
from menu_tts.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

_REFRESH_KEY = "access-token"


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and the clock reading at which it expires."""

    value: str
    expires_at: float

    def is_usable(self, now: float, margin: float) -> bool:
        """True while more than ``margin`` seconds of validity remain."""
        return now < self.expires_at - margin


class AccessTokenManager:
    """
    Single-flight token cache for the speech provider.

    Usage:
        manager = AccessTokenManager.from_settings(settings.speech, http_client)
        token = await manager.get_token()
    """

    def __init__(
        self,
        subscription_key: str | None,
        token_url: str,
        http_client: httpx.AsyncClient,
        lifetime_seconds: float = 600,
        refresh_margin_seconds: float = 60,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._subscription_key = subscription_key
        self._token_url = token_url
        self._http = http_client
        self._lifetime = lifetime_seconds
        self._margin = refresh_margin_seconds
        self._timeout = timeout
        self._clock = clock

        self._token: AccessToken | None = None
        self._flight = SingleFlight()
        self.refresh_count = 0

    @classmethod
    def from_settings(
        cls, settings: SpeechSettings, http_client: httpx.AsyncClient
    ) -> "AccessTokenManager":
        return cls(
            subscription_key=settings.AZURE_SPEECH_KEY,
            token_url=settings.token_url,
            http_client=http_client,
            lifetime_seconds=settings.TOKEN_LIFETIME_SECONDS,
            refresh_margin_seconds=settings.TOKEN_REFRESH_MARGIN_SECONDS,
            timeout=settings.TOKEN_FETCH_TIMEOUT,
        )

    @property
    def state(self) -> str:
        """One of unset, valid, expiring, refreshing."""
        if self._flight.in_flight(_REFRESH_KEY):
            return "refreshing"
        if self._token is None:
            return "unset"
        if self._token.is_usable(self._clock(), self._margin):
            return "valid"
        return "expiring"

    async def get_token(self) -> str:
        """
        Return a usable bearer token, refreshing it if needed.

        STAGE-T.1: Token lookup

        Raises:
            TokenFetchError: If the refresh this call waited on failed
        """
        token = self._token
        if token is not None and token.is_usable(self._clock(), self._margin):
            return token.value

        refreshed = await self._flight.run(_REFRESH_KEY, self._refresh)
        return refreshed.value

    def invalidate(self) -> None:
        """Drop the cached token so the next call refreshes."""
        if self._token is not None:
            log_stage(logger, Stage.TOKEN, "Access token invalidated")
        self._token = None

    async def _refresh(self) -> AccessToken:
        """
        STAGE-T.2: Token refresh
        """
        self._token = None

        if not self._subscription_key:
            raise TokenFetchError("Speech subscription key is not configured")

        self.refresh_count += 1
        log_stage(logger, Stage.TOKEN, "Fetching access token", attempt=self.refresh_count)

        try:
            response = await self._http.post(
                self._token_url,
                headers={SUBSCRIPTION_KEY_HEADER: self._subscription_key},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            log_stage(logger, Stage.TOKEN, "Access token request failed", level="error", error=str(e))
            raise TokenFetchError.from_exception(e, message="Failed to fetch access token")

        if not response.is_success:
            log_stage(
                logger,
                Stage.TOKEN,
                "Access token endpoint returned error status",
                level="error",
                status_code=response.status_code,
            )
            raise TokenFetchError(
                f"Token endpoint returned {response.status_code}",
                details={"status_code": response.status_code, "body": response.text[:200]},
            )

        value = response.text.strip()
        if not value:
            raise TokenFetchError("Token endpoint returned an empty token")

        token = AccessToken(value=value, expires_at=self._clock() + self._lifetime)
        self._token = token
        log_stage(logger, Stage.TOKEN, "Access token refreshed", lifetime_seconds=self._lifetime)
        return token


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_token_manager: AccessTokenManager | None = None


def init_token_manager(http_client: httpx.AsyncClient) -> AccessTokenManager:
    """Create the process-wide token manager bound to ``http_client``."""
    global _token_manager
    _token_manager = AccessTokenManager.from_settings(get_settings().speech, http_client)
    return _token_manager


def get_token_manager() -> AccessTokenManager:
    """
    Get the process-wide token manager.

    Raises:
        RuntimeError: If init_token_manager has not run
    """
    if _token_manager is None:
        raise RuntimeError("Token manager not initialized; call init_token_manager() at startup")
    return _token_manager


def close_token_manager() -> None:
    global _token_manager
    _token_manager = None
