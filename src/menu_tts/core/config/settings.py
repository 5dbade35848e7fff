#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the menu
TTS cache service. All configuration is centralized here to ensure
consistency across modules.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Grouped views (settings.redis, settings.speech, ...) for each component
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from menu_tts.core.config.constants import (
    EDGE_TTL_SECONDS,
    TOKEN_LIFETIME_SECONDS,
    TOKEN_REFRESH_MARGIN_SECONDS,
)


class RedisSettings(BaseSettings):
    """
    Redis configuration for the edge audio tier.

    STAGE-0.1: Redis connection configuration

    Audio is stored as raw bytes, so the client never decodes responses.
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_RECONNECT_COOLDOWN: float = Field(
        default=10.0, description="Seconds between reconnect attempts while Redis is down"
    )
    EDGE_TTL_SECONDS: int = Field(default=EDGE_TTL_SECONDS, description="Edge entry TTL (365 days)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ObjectStoreSettings(BaseSettings):
    """
    S3-compatible object store (Cloudflare R2) configuration.

    STAGE-0.2: Object store configuration

    The tier is disabled when the account id or credentials are missing.
    """

    R2_ACCOUNT_ID: str | None = Field(default=None, description="Object store account id")
    R2_ACCESS_KEY_ID: str | None = Field(default=None, description="Access key id")
    R2_SECRET_ACCESS_KEY: str | None = Field(default=None, description="Secret access key")
    R2_BUCKET_NAME: str = Field(default="tts-cache", description="Bucket holding audio objects")
    R2_REGION: str = Field(default="auto", description="Signing region")
    R2_ENDPOINT: str | None = Field(
        default=None, description="Endpoint override (defaults to the account endpoint)"
    )
    R2_PUBLIC_URL: str | None = Field(default=None, description="Unsigned public read URL")
    OBJECT_STORE_TIMEOUT: float = Field(default=5.0, description="Per-request timeout in seconds")
    OBJECT_STORE_PROBE_TIMEOUT: float = Field(
        default=3.0, description="Timeout for ranged availability probes"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    @property
    def is_configured(self) -> bool:
        """True when requests can be signed."""
        return bool(
            (self.R2_ACCOUNT_ID or self.R2_ENDPOINT)
            and self.R2_ACCESS_KEY_ID
            and self.R2_SECRET_ACCESS_KEY
        )

    @property
    def endpoint_url(self) -> str | None:
        """Base endpoint without the bucket."""
        if self.R2_ENDPOINT:
            return self.R2_ENDPOINT.rstrip("/")
        if self.R2_ACCOUNT_ID:
            return f"https://{self.R2_ACCOUNT_ID}.r2.cloudflarestorage.com"
        return None


class BlobStoreSettings(BaseSettings):
    """
    Blob fallback store configuration.

    STAGE-0.3: Blob store configuration
    """

    BLOB_STORE_URL: str | None = Field(default=None, description="Public blob base URL")
    BLOB_READ_WRITE_TOKEN: str | None = Field(
        default=None, description="Bearer token for blob uploads (uploads skipped if unset)"
    )
    BLOB_TIMEOUT: float = Field(default=5.0, description="Per-request timeout in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class SpeechSettings(BaseSettings):
    """
    Speech synthesis provider configuration.

    STAGE-0.4: Speech provider configuration
    """

    AZURE_SPEECH_KEY: str | None = Field(default=None, description="Provider subscription key")
    AZURE_SPEECH_REGION: str = Field(default="japaneast", description="Provider region")
    TOKEN_FETCH_TIMEOUT: float = Field(default=10.0, description="Token endpoint timeout")
    TOKEN_LIFETIME_SECONDS: int = Field(
        default=TOKEN_LIFETIME_SECONDS, description="Issued token lifetime"
    )
    TOKEN_REFRESH_MARGIN_SECONDS: int = Field(
        default=TOKEN_REFRESH_MARGIN_SECONDS, description="Refresh this long before expiry"
    )
    SYNTHESIS_TIMEOUT: float = Field(default=30.0, description="Synthesis request timeout")
    PREWARM_SYNTHESIS_TIMEOUT: float = Field(
        default=25.0, description="Synthesis timeout used by prewarm runs"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    @property
    def token_url(self) -> str:
        return f"https://{self.AZURE_SPEECH_REGION}.api.cognitive.microsoft.com/sts/v1.0/issuetoken"

    @property
    def synthesis_url(self) -> str:
        return f"https://{self.AZURE_SPEECH_REGION}.tts.speech.microsoft.com/cognitiveservices/v1"


class CacheSettings(BaseSettings):
    """
    Tiered cache and usage-metrics configuration.

    STAGE-2: Cache configuration
    """

    TIER_READ_TIMEOUT: float = Field(default=5.0, description="Upper bound for one tier read")
    CACHE_METRICS_FILE: str = Field(
        default=".cache/tts-metrics.json", description="Usage metrics JSON file"
    )
    ENABLE_PUBLIC_REDIRECT: bool = Field(
        default=False, description="Redirect to the public object URL when it has the audio"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class PrewarmSettings(BaseSettings):
    """
    Prewarm batch configuration.

    STAGE-P: Prewarm rate limits
    """

    PREWARM_BATCH_SIZE: int = Field(default=3, description="Items synthesized concurrently")
    PREWARM_BATCH_DELAY_SECONDS: float = Field(default=1.0, description="Pause between batches")
    PREWARM_POPULAR_LIMIT: int = Field(
        default=20, description="Popular texts merged into the default phrase list"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Menu TTS Cache", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        from menu_tts.core.config.settings import get_settings

        settings = get_settings()
        redis_host = settings.redis.REDIS_HOST
        bucket = settings.object_store.R2_BUCKET_NAME
    """

    # Redis settings
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_RECONNECT_COOLDOWN: float = Field(
        default=10.0, description="Seconds between reconnect attempts while Redis is down"
    )
    EDGE_TTL_SECONDS: int = Field(default=EDGE_TTL_SECONDS, description="Edge entry TTL (365 days)")

    # Object store settings
    R2_ACCOUNT_ID: str | None = Field(default=None, description="Object store account id")
    R2_ACCESS_KEY_ID: str | None = Field(default=None, description="Access key id")
    R2_SECRET_ACCESS_KEY: str | None = Field(default=None, description="Secret access key")
    R2_BUCKET_NAME: str = Field(default="tts-cache", description="Bucket holding audio objects")
    R2_REGION: str = Field(default="auto", description="Signing region")
    R2_ENDPOINT: str | None = Field(default=None, description="Endpoint override")
    R2_PUBLIC_URL: str | None = Field(default=None, description="Unsigned public read URL")
    OBJECT_STORE_TIMEOUT: float = Field(default=5.0, description="Per-request timeout in seconds")
    OBJECT_STORE_PROBE_TIMEOUT: float = Field(default=3.0, description="Ranged probe timeout")

    # Blob store settings
    BLOB_STORE_URL: str | None = Field(default=None, description="Public blob base URL")
    BLOB_READ_WRITE_TOKEN: str | None = Field(default=None, description="Blob upload token")
    BLOB_TIMEOUT: float = Field(default=5.0, description="Per-request timeout in seconds")

    # Speech provider settings
    AZURE_SPEECH_KEY: str | None = Field(default=None, description="Provider subscription key")
    AZURE_SPEECH_REGION: str = Field(default="japaneast", description="Provider region")
    TOKEN_FETCH_TIMEOUT: float = Field(default=10.0, description="Token endpoint timeout")
    TOKEN_LIFETIME_SECONDS: int = Field(default=TOKEN_LIFETIME_SECONDS, description="Token lifetime")
    TOKEN_REFRESH_MARGIN_SECONDS: int = Field(
        default=TOKEN_REFRESH_MARGIN_SECONDS, description="Refresh margin"
    )
    SYNTHESIS_TIMEOUT: float = Field(default=30.0, description="Synthesis request timeout")
    PREWARM_SYNTHESIS_TIMEOUT: float = Field(default=25.0, description="Prewarm synthesis timeout")

    # Cache settings
    TIER_READ_TIMEOUT: float = Field(default=5.0, description="Upper bound for one tier read")
    CACHE_METRICS_FILE: str = Field(
        default=".cache/tts-metrics.json", description="Usage metrics JSON file"
    )
    ENABLE_PUBLIC_REDIRECT: bool = Field(default=False, description="Redirect to public object URL")

    # Prewarm settings
    PREWARM_BATCH_SIZE: int = Field(default=3, description="Items synthesized concurrently")
    PREWARM_BATCH_DELAY_SECONDS: float = Field(default=1.0, description="Pause between batches")
    PREWARM_POPULAR_LIMIT: int = Field(default=20, description="Popular texts merged into defaults")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Menu TTS Cache", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    API_BASE_PATH: str = Field(default="/api/v1", description="Prefix for every API route")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("PREWARM_BATCH_SIZE")
    @classmethod
    def validate_batch_size(cls, v):
        if v < 1:
            raise ValueError("PREWARM_BATCH_SIZE must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_token_margin(self):
        """The refresh margin must leave part of the token lifetime usable."""
        if self.TOKEN_REFRESH_MARGIN_SECONDS >= self.TOKEN_LIFETIME_SECONDS:
            raise ValueError("TOKEN_REFRESH_MARGIN_SECONDS must be below TOKEN_LIFETIME_SECONDS")
        return self

    # Nested configuration views
    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_RECONNECT_COOLDOWN=self.REDIS_RECONNECT_COOLDOWN,
            EDGE_TTL_SECONDS=self.EDGE_TTL_SECONDS,
        )

    @property
    def object_store(self) -> ObjectStoreSettings:
        """Get object store settings."""
        return ObjectStoreSettings(
            R2_ACCOUNT_ID=self.R2_ACCOUNT_ID,
            R2_ACCESS_KEY_ID=self.R2_ACCESS_KEY_ID,
            R2_SECRET_ACCESS_KEY=self.R2_SECRET_ACCESS_KEY,
            R2_BUCKET_NAME=self.R2_BUCKET_NAME,
            R2_REGION=self.R2_REGION,
            R2_ENDPOINT=self.R2_ENDPOINT,
            R2_PUBLIC_URL=self.R2_PUBLIC_URL,
            OBJECT_STORE_TIMEOUT=self.OBJECT_STORE_TIMEOUT,
            OBJECT_STORE_PROBE_TIMEOUT=self.OBJECT_STORE_PROBE_TIMEOUT,
        )

    @property
    def blob(self) -> BlobStoreSettings:
        """Get blob store settings."""
        return BlobStoreSettings(
            BLOB_STORE_URL=self.BLOB_STORE_URL,
            BLOB_READ_WRITE_TOKEN=self.BLOB_READ_WRITE_TOKEN,
            BLOB_TIMEOUT=self.BLOB_TIMEOUT,
        )

    @property
    def speech(self) -> SpeechSettings:
        """Get speech provider settings."""
        return SpeechSettings(
            AZURE_SPEECH_KEY=self.AZURE_SPEECH_KEY,
            AZURE_SPEECH_REGION=self.AZURE_SPEECH_REGION,
            TOKEN_FETCH_TIMEOUT=self.TOKEN_FETCH_TIMEOUT,
            TOKEN_LIFETIME_SECONDS=self.TOKEN_LIFETIME_SECONDS,
            TOKEN_REFRESH_MARGIN_SECONDS=self.TOKEN_REFRESH_MARGIN_SECONDS,
            SYNTHESIS_TIMEOUT=self.SYNTHESIS_TIMEOUT,
            PREWARM_SYNTHESIS_TIMEOUT=self.PREWARM_SYNTHESIS_TIMEOUT,
        )

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return CacheSettings(
            TIER_READ_TIMEOUT=self.TIER_READ_TIMEOUT,
            CACHE_METRICS_FILE=self.CACHE_METRICS_FILE,
            ENABLE_PUBLIC_REDIRECT=self.ENABLE_PUBLIC_REDIRECT,
        )

    @property
    def prewarm(self) -> PrewarmSettings:
        """Get prewarm settings."""
        return PrewarmSettings(
            PREWARM_BATCH_SIZE=self.PREWARM_BATCH_SIZE,
            PREWARM_BATCH_DELAY_SECONDS=self.PREWARM_BATCH_DELAY_SECONDS,
            PREWARM_POPULAR_LIMIT=self.PREWARM_POPULAR_LIMIT,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            DEBUG=self.DEBUG,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            CORS_ORIGINS=self.CORS_ORIGINS,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
