"""
Prewarm Exceptions
"""

from menu_tts.core.exceptions.base import MenuTTSError


class PrewarmError(MenuTTSError):
    """Base exception for prewarm errors."""
    pass


class PrewarmInProgressError(PrewarmError):
    """Raised when a prewarm run is requested while another is running."""

    def __init__(self, message: str = "Prewarm already in progress", **kwargs):
        super().__init__(message, **kwargs)


class PrewarmItemError(PrewarmError):
    """
    Raised for one phrase that could not be prewarmed.

    Counted as a failure on the run status; the run continues.
    """

    def __init__(self, message: str, text: str, **kwargs):
        super().__init__(message, **kwargs)
        self.text = text
        self.details.setdefault("text", text)
