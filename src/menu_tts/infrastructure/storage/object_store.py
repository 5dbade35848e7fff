"""
S3-Compatible Object Store Client

Architecture:
    ObjectStoreClient (Public API)
        ├── RequestSigner (SigV4 headers for every signed request)
        ├── Public read path (unsigned GET against the public bucket URL)
        └── Listing parser (regex scan of ListObjectsV2 XML)

Read operations (get, exists) try the public URL first when one is
configured and fall back to signed requests. Writes, deletes and listings are
always signed.

Failure handling:
    - get/put/delete/exists: network errors and non-2xx become None/False
    - list: raises StoreUnavailableError so an empty bucket and a failure differ
"""

import re
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from menu_tts.core.config.constants import AUDIO_CONTENT_TYPE, METADATA_HEADER_PREFIX
from menu_tts.core.config.settings import ObjectStoreSettings
from menu_tts.core.exceptions import StoreUnavailableError
from menu_tts.core.logging.logger import get_logger
from menu_tts.infrastructure.storage.request_signer import RequestSigner, encode_query

logger = get_logger(__name__)

_CONTENTS_PATTERN = re.compile(r"<Contents>(.*?)</Contents>", re.DOTALL)
_KEY_PATTERN = re.compile(r"<Key>(.*?)</Key>", re.DOTALL)
_SIZE_PATTERN = re.compile(r"<Size>(\d+)</Size>")
_LAST_MODIFIED_PATTERN = re.compile(r"<LastModified>(.*?)</LastModified>")

_XML_ENTITIES = {"&amp;": "&", "&lt;": "<", "&gt;": ">", "&quot;": '"', "&apos;": "'"}


@dataclass(frozen=True)
class ObjectInfo:
    """One entry of a bucket listing."""

    key: str
    size: int
    last_modified: str


def _unescape_xml(value: str) -> str:
    for entity, char in _XML_ENTITIES.items():
        value = value.replace(entity, char)
    return value


def parse_list_response(xml: str) -> list[ObjectInfo]:
    """
    Extract object entries from a ListObjectsV2 response body.

    Entries without a <Key> are skipped; a missing <Size> counts as 0.
    """
    objects: list[ObjectInfo] = []
    for block in _CONTENTS_PATTERN.findall(xml):
        key_match = _KEY_PATTERN.search(block)
        if not key_match:
            continue
        size_match = _SIZE_PATTERN.search(block)
        modified_match = _LAST_MODIFIED_PATTERN.search(block)
        objects.append(
            ObjectInfo(
                key=_unescape_xml(key_match.group(1)),
                size=int(size_match.group(1)) if size_match else 0,
                last_modified=modified_match.group(1) if modified_match else "",
            )
        )
    return objects


class ObjectStoreClient:
    """
    Async client for the S3-compatible object store.

    Usage:
        client = ObjectStoreClient.from_settings(settings.object_store, http_client)

        await client.put("89f2...021a.mp3", audio, {"text": "上ロース"})
        audio = await client.get("89f2...021a.mp3")
        objects = await client.list(prefix="89f2")
    """

    def __init__(
        self,
        signer: RequestSigner,
        endpoint: str,
        http_client: httpx.AsyncClient,
        public_url: str | None = None,
        timeout: float = 5.0,
        probe_timeout: float = 3.0,
    ):
        self._signer = signer
        self._endpoint = endpoint.rstrip("/")
        self._http = http_client
        self._public_url = public_url.rstrip("/") if public_url else None
        self._timeout = timeout
        self._probe_timeout = probe_timeout

    @classmethod
    def from_settings(
        cls, settings: ObjectStoreSettings, http_client: httpx.AsyncClient
    ) -> "ObjectStoreClient":
        return cls(
            signer=RequestSigner.from_settings(settings),
            endpoint=settings.endpoint_url or "",
            http_client=http_client,
            public_url=settings.R2_PUBLIC_URL,
            timeout=settings.OBJECT_STORE_TIMEOUT,
            probe_timeout=settings.OBJECT_STORE_PROBE_TIMEOUT,
        )

    @property
    def bucket(self) -> str:
        return self._signer.bucket

    @property
    def has_public_url(self) -> bool:
        return self._public_url is not None

    def object_url(self, key: str) -> str:
        """Signed-path URL for ``key``."""
        return f"{self._endpoint}{self._signer.canonical_uri(key)}"

    def public_object_url(self, key: str) -> str | None:
        """Unsigned public URL for ``key``, if a public URL is configured."""
        if not self._public_url:
            return None
        return f"{self._public_url}/{quote(key, safe='/-_.~')}"

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        """
        Fetch an object's bytes.

        STAGE-2.2: Object store lookup

        Returns:
            Object bytes, or None when absent or unreachable
        """
        public_url = self.public_object_url(key)
        if public_url:
            try:
                response = await self._http.get(public_url, timeout=self._timeout)
                if response.status_code == 200:
                    logger.debug("Object store public read hit", stage="R2.GET", key=key)
                    return response.content
                logger.debug(
                    "Object store public read missed",
                    stage="R2.GET",
                    key=key,
                    status_code=response.status_code,
                )
            except httpx.HTTPError as e:
                logger.warning("Object store public read failed", stage="R2.GET", key=key, error=str(e))

        try:
            headers = self._signer.sign("GET", key)
            response = await self._http.get(self.object_url(key), headers=headers, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning("Object store GET failed", stage="R2.GET", key=key, error=str(e))
            return None

        if response.status_code == 200:
            return response.content
        if response.status_code != 404:
            logger.warning(
                "Object store GET returned error status",
                stage="R2.GET",
                key=key,
                status_code=response.status_code,
            )
        return None

    async def probe_public(self, key: str) -> bool:
        """One-byte ranged GET against the public URL; False when none is configured."""
        public_url = self.public_object_url(key)
        if not public_url:
            return False
        try:
            response = await self._http.get(
                public_url, headers={"Range": "bytes=0-0"}, timeout=self._probe_timeout
            )
        except httpx.HTTPError as e:
            logger.debug("Object store public probe failed", stage="R2.HEAD", key=key, error=str(e))
            return False
        return response.status_code in (200, 206)

    async def exists(self, key: str) -> bool:
        """
        Check whether an object is present without downloading it.

        The public path uses a one-byte ranged GET (200 or 206 means present);
        the signed path uses HEAD.
        """
        if await self.probe_public(key):
            return True

        try:
            headers = self._signer.sign("HEAD", key)
            response = await self._http.head(
                self.object_url(key), headers=headers, timeout=self._probe_timeout
            )
        except httpx.HTTPError as e:
            logger.warning("Object store HEAD failed", stage="R2.HEAD", key=key, error=str(e))
            return False

        return response.status_code == 200

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def put(
        self,
        key: str,
        data: bytes,
        metadata: dict[str, str] | None = None,
        content_type: str = AUDIO_CONTENT_TYPE,
    ) -> bool:
        """
        Upload an object.

        Metadata values are URL-encoded into ``x-amz-meta-*`` headers so
        non-ASCII menu text survives the header encoding.

        Returns:
            True on a 2xx response
        """
        headers = self._signer.sign("PUT", key, body=data)
        headers["Content-Type"] = content_type
        for name, value in (metadata or {}).items():
            headers[f"{METADATA_HEADER_PREFIX}{name.lower()}"] = quote(str(value), safe="")

        try:
            response = await self._http.put(
                self.object_url(key), content=data, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            logger.warning("Object store PUT failed", stage="R2.PUT", key=key, error=str(e))
            return False

        if response.is_success:
            logger.debug("Object stored", stage="R2.PUT", key=key, size=len(data))
            return True

        logger.warning(
            "Object store PUT returned error status",
            stage="R2.PUT",
            key=key,
            status_code=response.status_code,
        )
        return False

    async def delete(self, key: str) -> bool:
        """Delete an object. Returns True on a 2xx response."""
        try:
            headers = self._signer.sign("DELETE", key)
            response = await self._http.delete(
                self.object_url(key), headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            logger.warning("Object store DELETE failed", stage="R2.DEL", key=key, error=str(e))
            return False

        if not response.is_success:
            logger.warning(
                "Object store DELETE returned error status",
                stage="R2.DEL",
                key=key,
                status_code=response.status_code,
            )
        return response.is_success

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    async def list(self, prefix: str = "") -> list[ObjectInfo]:
        """
        List objects whose names start with ``prefix``.

        Raises:
            StoreUnavailableError: On network errors or a non-2xx response
        """
        query = {"list-type": "2", "prefix": prefix}
        headers = self._signer.sign("GET", "", query=query)
        url = f"{self.object_url('')}?{encode_query(query)}"

        try:
            response = await self._http.get(url, headers=headers, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.error("Object store listing failed", stage="R2.LIST", prefix=prefix, error=str(e))
            raise StoreUnavailableError.from_exception(
                e, message="Object store listing failed", prefix=prefix
            )

        if not response.is_success:
            logger.error(
                "Object store listing returned error status",
                stage="R2.LIST",
                prefix=prefix,
                status_code=response.status_code,
            )
            raise StoreUnavailableError(
                f"Object store listing failed with status {response.status_code}",
                tier="object-store",
                details={"prefix": prefix, "status_code": response.status_code},
            )

        return parse_list_response(response.text)
