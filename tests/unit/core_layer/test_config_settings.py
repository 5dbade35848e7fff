"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and grouped views.
"""

import pytest
from pydantic import ValidationError

from menu_tts.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Default values for the cache, speech and prewarm groups."""

    def test_settings_has_grouped_views(self):
        settings = Settings()

        for group in ("redis", "object_store", "blob", "speech", "cache", "prewarm", "logging", "app"):
            assert hasattr(settings, group)

    def test_timeouts_have_expected_defaults(self):
        settings = Settings()

        assert settings.speech.TOKEN_FETCH_TIMEOUT == 10.0
        assert settings.speech.SYNTHESIS_TIMEOUT == 30.0
        assert settings.speech.PREWARM_SYNTHESIS_TIMEOUT == 25.0
        assert settings.cache.TIER_READ_TIMEOUT == 5.0
        assert settings.object_store.OBJECT_STORE_PROBE_TIMEOUT == 3.0

    def test_prewarm_defaults(self):
        settings = Settings()

        assert settings.prewarm.PREWARM_BATCH_SIZE == 3
        assert settings.prewarm.PREWARM_BATCH_DELAY_SECONDS == 1.0

    def test_edge_ttl_is_one_year(self):
        assert Settings().redis.EDGE_TTL_SECONDS == 365 * 24 * 60 * 60

    def test_speech_urls_follow_region(self):
        settings = Settings(AZURE_SPEECH_REGION="westeurope")

        assert settings.speech.token_url == (
            "https://westeurope.api.cognitive.microsoft.com/sts/v1.0/issuetoken"
        )
        assert settings.speech.synthesis_url == (
            "https://westeurope.tts.speech.microsoft.com/cognitiveservices/v1"
        )


@pytest.mark.unit
class TestObjectStoreSettings:
    """Object store configuration detection."""

    def test_not_configured_without_credentials(self):
        settings = Settings(R2_ACCOUNT_ID="acct123", R2_ACCESS_KEY_ID=None, R2_SECRET_ACCESS_KEY=None)

        assert settings.object_store.is_configured is False

    def test_endpoint_derived_from_account_id(self):
        settings = Settings(
            R2_ACCOUNT_ID="acct123",
            R2_ACCESS_KEY_ID="AKID",
            R2_SECRET_ACCESS_KEY="secret",
            R2_ENDPOINT=None,
        )

        assert settings.object_store.is_configured is True
        assert settings.object_store.endpoint_url == "https://acct123.r2.cloudflarestorage.com"

    def test_explicit_endpoint_wins(self):
        settings = Settings(R2_ACCOUNT_ID="acct123", R2_ENDPOINT="https://minio.local:9000/")

        assert settings.object_store.endpoint_url == "https://minio.local:9000"


@pytest.mark.unit
class TestSettingsValidation:
    """Validators reject inconsistent configuration."""

    def test_log_level_is_normalised(self):
        assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(LOG_LEVEL="LOUD")

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(PREWARM_BATCH_SIZE=0)

    def test_refresh_margin_must_be_below_lifetime(self):
        with pytest.raises(ValidationError):
            Settings(TOKEN_LIFETIME_SECONDS=60, TOKEN_REFRESH_MARGIN_SECONDS=60)


@pytest.mark.unit
class TestSettingsSingleton:
    def test_get_settings_returns_same_instance(self):
        assert get_settings() is get_settings()

    def test_reload_settings_replaces_instance(self):
        before = get_settings()
        after = reload_settings()

        assert after is not before
        assert get_settings() is after
