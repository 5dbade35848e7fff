"""
Cache Key Derivation

Maps menu text to its cache key and to the object names used by each tier.

The key is the lowercase hex SHA-256 digest of the UTF-8 text. No
normalization is applied, so texts that differ only in whitespace get
different keys.
"""

import hashlib

from menu_tts.core.config.constants import (
    AUDIO_OBJECT_SUFFIX,
    EDGE_KEY_PREFIX,
    METADATA_OBJECT_SUFFIX,
)


def derive_cache_key(text: str) -> str:
    """
    Derive the cache key for ``text``.

    STAGE-1.0: Cache key derivation

    Args:
        text: Menu text, used verbatim

    Returns:
        64-character lowercase hex digest
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def audio_object_name(key: str) -> str:
    """Object-store name of the audio for ``key``."""
    return f"{key}{AUDIO_OBJECT_SUFFIX}"


def metadata_object_name(key: str) -> str:
    """Object-store name of the metadata sidecar for ``key``."""
    return f"{key}{METADATA_OBJECT_SUFFIX}"


def edge_key(key: str) -> str:
    """Redis key holding the audio for ``key``."""
    return f"{EDGE_KEY_PREFIX}:{audio_object_name(key)}"
