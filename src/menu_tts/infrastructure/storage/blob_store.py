"""
Blob Fallback Store Client

Public blob storage used as the last cache tier. Audio lives at
``<base>/tts-cache/<key>.mp3``.

Reads probe with HEAD and download with GET. Uploads go through HTTP PUT with
a bearer read-write token and are skipped when no token is configured.
Deletion is not supported by this tier.
"""

import httpx

from menu_tts.core.config.constants import AUDIO_CONTENT_TYPE, BLOB_NAMESPACE
from menu_tts.core.config.settings import BlobStoreSettings
from menu_tts.core.logging.logger import get_logger
from menu_tts.infrastructure.cache.cache_key import audio_object_name

logger = get_logger(__name__)


class BlobStoreClient:
    """Async client for the blob fallback tier."""

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient,
        token: str | None = None,
        timeout: float = 5.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._http = http_client
        self._token = token
        self._timeout = timeout

    @classmethod
    def from_settings(
        cls, settings: BlobStoreSettings, http_client: httpx.AsyncClient
    ) -> "BlobStoreClient | None":
        """Build a client, or None when no blob URL is configured."""
        if not settings.BLOB_STORE_URL:
            return None
        return cls(
            base_url=settings.BLOB_STORE_URL,
            http_client=http_client,
            token=settings.BLOB_READ_WRITE_TOKEN,
            timeout=settings.BLOB_TIMEOUT,
        )

    @property
    def writable(self) -> bool:
        return bool(self._token)

    def audio_url(self, key: str) -> str:
        return f"{self._base_url}/{BLOB_NAMESPACE}/{audio_object_name(key)}"

    async def exists(self, key: str) -> bool:
        """HEAD probe for the audio of ``key``."""
        try:
            response = await self._http.head(self.audio_url(key), timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning("Blob HEAD failed", stage="BLOB.HEAD", key=key, error=str(e))
            return False
        return response.status_code == 200

    async def get(self, key: str) -> bytes | None:
        """
        Download the audio of ``key``.

        STAGE-2.3: Blob lookup

        Probes with HEAD first so absent entries cost no body transfer.
        """
        if not await self.exists(key):
            return None

        try:
            response = await self._http.get(self.audio_url(key), timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning("Blob GET failed", stage="BLOB.GET", key=key, error=str(e))
            return None

        if response.status_code == 200:
            return response.content

        logger.warning(
            "Blob GET returned error status",
            stage="BLOB.GET",
            key=key,
            status_code=response.status_code,
        )
        return None

    async def put(self, key: str, data: bytes) -> bool:
        """
        Upload the audio of ``key``.

        Returns:
            True on a 2xx response; False when uploads are not configured or fail
        """
        if not self._token:
            logger.debug("Blob upload skipped, no token configured", stage="BLOB.PUT", key=key)
            return False

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": AUDIO_CONTENT_TYPE,
        }
        try:
            response = await self._http.put(
                self.audio_url(key), content=data, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            logger.warning("Blob PUT failed", stage="BLOB.PUT", key=key, error=str(e))
            return False

        if not response.is_success:
            logger.warning(
                "Blob PUT returned error status",
                stage="BLOB.PUT",
                key=key,
                status_code=response.status_code,
            )
        return response.is_success
