"""
Storage-Related Exceptions

Errors raised by the storage tiers: the edge key-value store, the
S3-compatible object store and the request signer it depends on.
"""

from menu_tts.core.exceptions.base import MenuTTSError


class StorageError(MenuTTSError):
    """Base exception for storage tier errors."""
    pass


class StoreUnavailableError(StorageError):
    """
    Raised when a storage tier cannot be reached or answers with an error.

    Lookups catch this and treat the tier as a miss. Only operations whose
    callers must tell "empty" apart from "failed" (object listings) let it
    propagate.
    """

    def __init__(self, message: str, tier: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.tier = tier
        if tier:
            self.details.setdefault("tier", tier)


class EdgeConnectionError(StoreUnavailableError):
    """Raised when the Redis edge tier cannot be connected."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, tier="edge", **kwargs)


class SigningError(StorageError):
    """
    Raised when an object-store request cannot be signed.

    Common causes:
    - Missing access key or secret
    - Digest or HMAC failure on malformed input

    A request is never sent unsigned and signing is never retried.
    """
    pass
