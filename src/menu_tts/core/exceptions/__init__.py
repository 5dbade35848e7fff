"""
Exception hierarchy for the menu TTS cache service.

    MenuTTSError
    ├── StorageError
    │   ├── StoreUnavailableError
    │   │   └── EdgeConnectionError
    │   └── SigningError
    ├── SpeechProviderError
    │   ├── TokenFetchError
    │   └── SynthesisError
    │       └── SynthesisTimeoutError
    └── PrewarmError
        ├── PrewarmInProgressError
        └── PrewarmItemError
"""

from menu_tts.core.exceptions.base import MenuTTSError
from menu_tts.core.exceptions.prewarm import (
    PrewarmError,
    PrewarmInProgressError,
    PrewarmItemError,
)
from menu_tts.core.exceptions.speech import (
    SpeechProviderError,
    SynthesisError,
    SynthesisTimeoutError,
    TokenFetchError,
)
from menu_tts.core.exceptions.storage import (
    EdgeConnectionError,
    SigningError,
    StorageError,
    StoreUnavailableError,
)

__all__ = [
    "EdgeConnectionError",
    "MenuTTSError",
    "PrewarmError",
    "PrewarmInProgressError",
    "PrewarmItemError",
    "SigningError",
    "SpeechProviderError",
    "StorageError",
    "StoreUnavailableError",
    "SynthesisError",
    "SynthesisTimeoutError",
    "TokenFetchError",
]
