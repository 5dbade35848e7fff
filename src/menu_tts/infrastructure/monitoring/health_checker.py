#!/usr/bin/env python3
"""
Health Checker Module

Health checks for the audio cache service:
- Configuration presence (speech key, object store, blob store)
- Redis (edge tier) connectivity
- Speech provider token fetch (deep check only)
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from menu_tts.core.config.settings import Settings, get_settings
from menu_tts.core.exceptions import TokenFetchError
from menu_tts.core.logging.logger import get_logger
from menu_tts.infrastructure.cache.redis_client import EdgeRedisClient
from menu_tts.infrastructure.speech.token_manager import AccessTokenManager

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthChecker:
    """
    Component health for the ``/health`` endpoint.

    STAGE-H: Health check orchestration

    Usage:
        checker = HealthChecker(redis_client=redis, token_manager=tokens)
        await checker.check_health()            # config + redis
        await checker.check_health(deep=True)   # also fetches a token
    """

    def __init__(
        self,
        redis_client: EdgeRedisClient | None = None,
        token_manager: AccessTokenManager | None = None,
        settings: Settings | None = None,
        redis_timeout: float = 2.0,
    ):
        self.settings = settings or get_settings()
        self._redis = redis_client
        self._tokens = token_manager
        self._redis_timeout = redis_timeout

    def configuration(self) -> dict[str, bool]:
        """Which external services have credentials configured."""
        return {
            "speech": bool(self.settings.speech.AZURE_SPEECH_KEY),
            "object_store": self.settings.object_store.is_configured,
            "object_store_public_url": bool(self.settings.object_store.R2_PUBLIC_URL),
            "blob_store": bool(self.settings.blob.BLOB_STORE_URL),
            "blob_store_writable": bool(self.settings.blob.BLOB_READ_WRITE_TOKEN),
        }

    async def check_health(self, deep: bool = False) -> dict[str, Any]:
        """
        STAGE-H.1: Health status

        Redis unreachable or no speech key → degraded; both → unhealthy.
        A failed deep token fetch counts as a speech failure.
        """
        config = self.configuration()
        components: dict[str, Any] = {"redis": await self._check_redis()}
        issues = [] if components["redis"] == "healthy" else ["redis"]

        if not config["speech"]:
            issues.append("speech")
        elif deep:
            components["speech_token"] = await self._check_token()
            if components["speech_token"] != "healthy":
                issues.append("speech")

        if not issues:
            status = HealthStatus.HEALTHY
        elif len(issues) < 2:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        if issues:
            logger.warning("Health check found issues", stage="H.1", issues=issues)

        return {
            "status": status.value,
            "timestamp": _now(),
            "version": self.settings.app.APP_VERSION,
            "configuration": config,
            "components": components,
        }

    async def liveness_check(self) -> dict[str, Any]:
        return {"status": "alive", "timestamp": _now(), "version": self.settings.app.APP_VERSION}

    async def _check_redis(self) -> str:
        if self._redis is None:
            return "not_configured"
        try:
            ok = await asyncio.wait_for(self._redis.ping(), timeout=self._redis_timeout)
        except Exception as e:
            logger.warning("Redis health check failed", stage="H.1", error=str(e))
            return "unhealthy"
        return "healthy" if ok else "unhealthy"

    async def _check_token(self) -> str:
        """
        STAGE-H.2: Token fetch probe
        """
        if self._tokens is None:
            return "not_configured"
        try:
            await self._tokens.get_token()
        except TokenFetchError as e:
            logger.warning("Token health check failed", stage="H.2", error=e.message)
            return "unhealthy"
        return "healthy"
