"""
Unit Tests for Logging Module

Tests request-id context, stage logging and secret redaction.
"""

from unittest.mock import MagicMock

import pytest

from menu_tts.core.config.constants import Stage
from menu_tts.core.logging.logger import (
    add_request_id,
    clear_request_id,
    get_logger,
    get_request_id,
    log_stage,
    redact_secrets,
    set_request_id,
)


@pytest.mark.unit
class TestRequestContext:
    def test_set_and_get_request_id(self):
        set_request_id("req-123")
        try:
            assert get_request_id() == "req-123"
        finally:
            clear_request_id()

    def test_clear_request_id(self):
        set_request_id("req-123")
        clear_request_id()

        assert get_request_id() is None

    def test_request_id_added_to_event(self):
        set_request_id("req-abc")
        try:
            event = add_request_id(None, "info", {"event": "hello"})
        finally:
            clear_request_id()

        assert event["request_id"] == "req-abc"

    def test_no_request_id_leaves_event_unchanged(self):
        clear_request_id()

        assert "request_id" not in add_request_id(None, "info", {"event": "hello"})


@pytest.mark.unit
class TestSecretRedaction:
    """Credentials never reach log output."""

    def test_bearer_token_in_message_redacted(self):
        event = redact_secrets(None, "info", {"event": "sending Authorization: Bearer eyJhbGciOi.abc"})

        assert "eyJhbGciOi" not in event["event"]
        assert "Bearer [REDACTED]" in event["event"]

    def test_signature_and_credential_redacted(self):
        header = (
            "AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20240115/auto/s3/aws4_request, "
            "SignedHeaders=host;x-amz-content-sha256;x-amz-date, "
            "Signature=85c50bd3149e474f9c795f12f3ff004501ba7b5661a6080cca344d6acc997c0a"
        )
        event = redact_secrets(None, "info", {"event": "signed", "header": header})

        assert "AKIDEXAMPLE" not in event["header"]
        assert "85c50bd3" not in event["header"]

    def test_secret_named_fields_redacted(self):
        event = redact_secrets(
            None, "info", {"event": "x", "subscription_key": "abc123", "token": "t0k3n"}
        )

        assert event["subscription_key"] == "[REDACTED]"
        assert event["token"] == "[REDACTED]"

    def test_ordinary_fields_untouched(self):
        event = redact_secrets(None, "info", {"event": "Audio served", "text": "上ロース"})

        assert event["text"] == "上ロース"


@pytest.mark.unit
class TestLogStage:
    def test_stage_enum_value_logged(self):
        logger = MagicMock()

        log_stage(logger, Stage.EDGE_LOOKUP, "Edge hit", cache_key="89f2fb76")

        logger.info.assert_called_once_with("Edge hit", stage="2.1_EDGE_LOOKUP", cache_key="89f2fb76")

    def test_level_selects_method(self):
        logger = MagicMock()

        log_stage(logger, "T_ACCESS_TOKEN", "failed", level="error")

        logger.error.assert_called_once_with("failed", stage="T_ACCESS_TOKEN")

    def test_get_logger_has_methods(self):
        logger = get_logger(__name__)

        assert hasattr(logger, "info")
        assert hasattr(logger, "warning")
