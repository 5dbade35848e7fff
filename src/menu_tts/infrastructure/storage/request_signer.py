"""
Object Store Request Signer

Hand-rolled AWS Signature Version 4 for the S3-compatible object store, so
the service needs no vendor SDK.

Signing steps for one request:
    1. Payload digest: SHA-256 hex of the body (empty-string digest when bodyless)
    2. Canonical request: method, URI path, sorted query, canonical headers,
       signed header list, payload digest
    3. String to sign: algorithm, timestamp, credential scope, digest of (2)
    4. Signing key: HMAC chain "AWS4"+secret → date → region → service → "aws4_request"
    5. Signature: hex HMAC of (3) under (4), placed in the Authorization header

Signatures are computed fresh for every request and never cached.
"""

import hashlib
import hmac
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from urllib.parse import quote, urlsplit

from menu_tts.core.config.constants import (
    SIGNED_HEADERS,
    SIGNING_ALGORITHM,
    SIGNING_SERVICE,
    SIGNING_TERMINATOR,
)
from menu_tts.core.config.settings import ObjectStoreSettings
from menu_tts.core.exceptions import SigningError
from menu_tts.core.logging.logger import get_logger

logger = get_logger(__name__)

QueryParams = Mapping[str, str] | Iterable[tuple[str, str]]

EMPTY_PAYLOAD_HASH = hashlib.sha256(b"").hexdigest()


def sha256_hex(data: bytes) -> str:
    """Lowercase hex SHA-256 digest."""
    return hashlib.sha256(data).hexdigest()


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret: str, date_stamp: str, region: str, service: str) -> bytes:
    """
    Derive the per-day signing key.

    Args:
        secret: Secret access key
        date_stamp: UTC date as YYYYMMDD
        region: Signing region ("auto" for R2)
        service: Service name ("s3")
    """
    k_date = _hmac(f"AWS4{secret}".encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, SIGNING_TERMINATOR)


def encode_query(query: QueryParams | None) -> str:
    """Sort parameters by name and RFC 3986 encode them."""
    if not query:
        return ""
    pairs = query.items() if isinstance(query, Mapping) else query
    encoded = sorted(
        (quote(str(name), safe="-_.~"), quote(str(value), safe="-_.~")) for name, value in pairs
    )
    return "&".join(f"{name}={value}" for name, value in encoded)


class RequestSigner:
    """
    Signs requests addressed to ``https://<host>/<bucket>/<key>``.

    Usage:
        signer = RequestSigner.from_settings(settings.object_store)
        headers = signer.sign("GET", "89f2...021a.mp3")
    """

    def __init__(
        self,
        access_key_id: str,
        secret_access_key: str,
        host: str,
        bucket: str,
        region: str = "auto",
        service: str = SIGNING_SERVICE,
        clock: Callable[[], datetime] | None = None,
    ):
        if not access_key_id or not secret_access_key:
            raise SigningError("Object store credentials are not configured")

        self.access_key_id = access_key_id
        self._secret = secret_access_key
        self.host = host
        self.bucket = bucket
        self.region = region
        self.service = service
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings: ObjectStoreSettings) -> "RequestSigner":
        """Build a signer from the object store settings."""
        endpoint = settings.endpoint_url
        if not endpoint:
            raise SigningError("Object store endpoint is not configured")

        return cls(
            access_key_id=settings.R2_ACCESS_KEY_ID or "",
            secret_access_key=settings.R2_SECRET_ACCESS_KEY or "",
            host=urlsplit(endpoint).netloc,
            bucket=settings.R2_BUCKET_NAME,
            region=settings.R2_REGION,
        )

    # -------------------------------------------------------------------------
    # Canonical forms
    # -------------------------------------------------------------------------

    def canonical_uri(self, key: str) -> str:
        """URI path for ``key``; the bucket root when ``key`` is empty."""
        path = f"/{self.bucket}/{key}" if key else f"/{self.bucket}"
        return quote(path, safe="/-_.~")

    def credential_scope(self, date_stamp: str) -> str:
        return f"{date_stamp}/{self.region}/{self.service}/{SIGNING_TERMINATOR}"

    def canonical_request(
        self,
        method: str,
        key: str,
        query: QueryParams | None,
        payload_hash: str,
        amz_date: str,
    ) -> str:
        canonical_headers = (
            f"host:{self.host}\n"
            f"x-amz-content-sha256:{payload_hash}\n"
            f"x-amz-date:{amz_date}\n"
        )
        return "\n".join([
            method.upper(),
            self.canonical_uri(key),
            encode_query(query),
            canonical_headers,
            SIGNED_HEADERS,
            payload_hash,
        ])

    def string_to_sign(self, amz_date: str, canonical_request: str) -> str:
        return "\n".join([
            SIGNING_ALGORITHM,
            amz_date,
            self.credential_scope(amz_date[:8]),
            sha256_hex(canonical_request.encode("utf-8")),
        ])

    # -------------------------------------------------------------------------
    # Signing
    # -------------------------------------------------------------------------

    def sign(
        self,
        method: str,
        key: str,
        query: QueryParams | None = None,
        body: bytes | None = None,
        now: datetime | None = None,
    ) -> dict[str, str]:
        """
        Produce the signed header set for one request.

        STAGE-S: Request signing

        Args:
            method: HTTP method
            key: Object name ("" for bucket-level requests such as listings)
            query: Query parameters
            body: Request body (None for bodyless requests)
            now: Signing instant (defaults to the signer clock)

        Returns:
            Headers to send: host, x-amz-content-sha256, x-amz-date, Authorization

        Raises:
            SigningError: If the digest or HMAC computation fails
        """
        try:
            instant = (now or self._clock()).astimezone(timezone.utc)
            amz_date = instant.strftime("%Y%m%dT%H%M%SZ")
            payload_hash = sha256_hex(body) if body else EMPTY_PAYLOAD_HASH

            canonical = self.canonical_request(method, key, query, payload_hash, amz_date)
            to_sign = self.string_to_sign(amz_date, canonical)
            signing_key = derive_signing_key(self._secret, amz_date[:8], self.region, self.service)
            signature = hmac.new(signing_key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()
        except (TypeError, ValueError, AttributeError) as e:
            logger.error("Request signing failed", stage="S.1", method=method, key=key, error=str(e))
            raise SigningError.from_exception(e, message=f"Failed to sign {method} {key}", key=key)

        authorization = (
            f"{SIGNING_ALGORITHM} "
            f"Credential={self.access_key_id}/{self.credential_scope(amz_date[:8])}, "
            f"SignedHeaders={SIGNED_HEADERS}, "
            f"Signature={signature}"
        )

        return {
            "host": self.host,
            "x-amz-content-sha256": payload_hash,
            "x-amz-date": amz_date,
            "Authorization": authorization,
        }
