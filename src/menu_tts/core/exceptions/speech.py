"""
Speech Provider Exceptions

All exceptions related to the speech provider: token issuance and synthesis.
"""

from menu_tts.core.exceptions.base import MenuTTSError


class SpeechProviderError(MenuTTSError):
    """Base exception for speech provider errors."""
    pass


class TokenFetchError(SpeechProviderError):
    """
    Raised when an access token cannot be obtained.

    Every caller waiting on the failed refresh receives this error. The next
    call starts a new refresh.
    """
    pass


class SynthesisError(SpeechProviderError):
    """
    Raised when the provider answers a synthesis request with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the provider
        body: Response body text, kept for diagnostics
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.body = body
        self.details.setdefault("status_code", status_code)
        if body:
            self.details.setdefault("body", body[:500])


class SynthesisTimeoutError(SynthesisError):
    """Raised when synthesis does not finish within its timeout."""

    def __init__(self, message: str, timeout: float | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.details.setdefault("timeout", timeout)
