"""
Unit Tests for the Exception Hierarchy
"""

import httpx
import pytest

from menu_tts.core.exceptions import (
    EdgeConnectionError,
    MenuTTSError,
    PrewarmInProgressError,
    PrewarmItemError,
    SigningError,
    SpeechProviderError,
    StorageError,
    StoreUnavailableError,
    SynthesisError,
    SynthesisTimeoutError,
    TokenFetchError,
)


@pytest.mark.unit
class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_type,parent",
        [
            (StoreUnavailableError, StorageError),
            (EdgeConnectionError, StoreUnavailableError),
            (SigningError, StorageError),
            (TokenFetchError, SpeechProviderError),
            (SynthesisTimeoutError, SynthesisError),
            (PrewarmItemError, MenuTTSError),
        ],
    )
    def test_subclassing(self, exc_type, parent):
        assert issubclass(exc_type, parent)
        assert issubclass(exc_type, MenuTTSError)


@pytest.mark.unit
class TestErrorPayloads:
    def test_to_dict(self):
        error = SynthesisError("failed", status_code=400, body="Invalid SSML")

        data = error.to_dict()

        assert data["error_type"] == "SynthesisError"
        assert data["message"] == "failed"
        assert data["details"]["status_code"] == 400
        assert data["details"]["body"] == "Invalid SSML"

    def test_with_context_chains(self):
        error = PrewarmInProgressError().with_context(status={"total": 3})

        assert error.details["status"] == {"total": 3}
        assert error.message == "Prewarm already in progress"

    def test_from_exception_keeps_original(self):
        original = httpx.ConnectError("refused")

        error = TokenFetchError.from_exception(original, message="token fetch failed", region="japaneast")

        assert isinstance(error, TokenFetchError)
        assert error.message == "token fetch failed"
        assert error.details["original_error"] == "ConnectError"
        assert error.details["region"] == "japaneast"

    def test_store_unavailable_records_tier(self):
        error = StoreUnavailableError("down", tier="object-store")

        assert error.tier == "object-store"
        assert error.details["tier"] == "object-store"

    def test_edge_connection_error_is_edge_tier(self):
        assert EdgeConnectionError("no redis").tier == "edge"

    def test_timeout_records_limit(self):
        assert SynthesisTimeoutError("slow", timeout=25.0).details["timeout"] == 25.0

    def test_prewarm_item_error_keeps_text(self):
        error = PrewarmItemError("failed", text="上ロース")

        assert error.text == "上ロース"
        assert error.details["text"] == "上ロース"
