"""
Redis Edge Client with Connection Pooling

Architecture:
    EdgeRedisClient (Public API)
        ├── ConnectionManager (Connection lifecycle)
        ├── OperationExecutor (Command execution with error handling)
        └── HealthMonitor (Health checks and pool metrics)

The edge tier stores raw audio bytes, so responses are never decoded.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from menu_tts.core.config.settings import Settings, get_settings
from menu_tts.core.exceptions import EdgeConnectionError, StoreUnavailableError
from menu_tts.core.logging.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Pool Configuration:
    - Max connections: REDIS_MAX_CONNECTIONS
    - Socket timeout: REDIS_SOCKET_TIMEOUT
    - Health check interval: REDIS_HEALTH_CHECK_INTERVAL
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Raises:
            EdgeConnectionError: If connection fails
        """
        if self._is_connected and self._client:
            return self._client

        redis_settings = self._settings.redis
        try:
            self._pool = ConnectionPool(
                host=redis_settings.REDIS_HOST,
                port=redis_settings.REDIS_PORT,
                db=redis_settings.REDIS_DB,
                password=redis_settings.REDIS_PASSWORD,
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
                health_check_interval=redis_settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=False,  # audio payloads are bytes
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()
            self._is_connected = True

            logger.info(
                "Redis connected successfully",
                stage="REDIS.2",
                host=redis_settings.REDIS_HOST,
                port=redis_settings.REDIS_PORT,
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
            )
            return self._client

        except (ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis", stage="REDIS.2", error=str(e))
            await self.disconnect()
            raise EdgeConnectionError(
                f"Failed to connect to Redis: {e}",
                details={"host": redis_settings.REDIS_HOST, "port": redis_settings.REDIS_PORT},
            )

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        if self._client:
            await self._client.aclose()

        if self._pool:
            await self._pool.disconnect()

        self._client = None
        self._pool = None
        self._is_connected = False
        logger.info("Redis disconnected", stage="REDIS.3")

    async def ping(self) -> bool:
        try:
            if self._client and self._is_connected:
                await self._client.ping()
                return True
        except (ConnectionError, TimeoutError):
            return False
        return False

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._is_connected


# =============================================================================
# LAYER 2: OPERATION EXECUTION
# =============================================================================


class OperationExecutor:
    """
    Executes Redis operations with consistent error handling.

    Error Handling Strategy:
    - Catch RedisError exceptions
    - Log error with context (stage, key)
    - Raise StoreUnavailableError so the tiered cache can treat it as a miss
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    async def get(self, key: str) -> bytes | None:
        """
        STAGE-REDIS.GET: Redis GET operation
        """
        try:
            return await self._redis.get(key)
        except RedisError as e:
            logger.error("Redis GET failed", stage="REDIS.GET", key=key, error=str(e))
            raise StoreUnavailableError(f"Redis GET failed: {e}", tier="edge", details={"key": key})

    async def set(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        """
        STAGE-REDIS.SET: Redis SET operation with optional expiry
        """
        try:
            result = await self._redis.set(key, value, ex=ttl)
            return result is not None
        except RedisError as e:
            logger.error("Redis SET failed", stage="REDIS.SET", key=key, error=str(e))
            raise StoreUnavailableError(f"Redis SET failed: {e}", tier="edge", details={"key": key})

    async def delete(self, *keys: str) -> int:
        """
        STAGE-REDIS.DEL: Redis DELETE operation
        """
        try:
            return await self._redis.delete(*keys)
        except RedisError as e:
            logger.error("Redis DELETE failed", stage="REDIS.DEL", keys=keys, error=str(e))
            raise StoreUnavailableError(
                f"Redis DELETE failed: {e}", tier="edge", details={"keys": list(keys)}
            )

    async def exists(self, *keys: str) -> int:
        try:
            return await self._redis.exists(*keys)
        except RedisError as e:
            logger.error("Redis EXISTS failed", stage="REDIS.EXISTS", keys=keys, error=str(e))
            raise StoreUnavailableError(
                f"Redis EXISTS failed: {e}", tier="edge", details={"keys": list(keys)}
            )


# =============================================================================
# LAYER 3: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """Reports connection status, ping latency and pool size."""

    def __init__(self, connection_manager: ConnectionManager, settings: Settings):
        self._conn_mgr = connection_manager
        self._settings = settings

    async def health_check(self) -> dict[str, Any]:
        """
        STAGE-REDIS.HEALTH: Redis health check
        """
        health = {
            "status": "healthy",
            "connected": self._conn_mgr.is_connected(),
            "host": self._settings.redis.REDIS_HOST,
            "port": self._settings.redis.REDIS_PORT,
            "pool_size": 0,
            "ping_latency_ms": None,
        }

        client = self._conn_mgr.get_client()
        if not client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)
            return health

        pool = self._conn_mgr.get_pool()
        if pool:
            health["pool_size"] = pool.max_connections

        return health


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class EdgeRedisClient:
    """
    Async Redis client for the edge audio tier.

    Usage:
        client = EdgeRedisClient()
        await client.connect()

        await client.set("tts:audio:89f2...021a.mp3", audio, ttl=31536000)
        audio = await client.get("tts:audio:89f2...021a.mp3")

        await client.disconnect()

    When Redis is down, commands reconnect lazily, at most once per
    REDIS_RECONNECT_COOLDOWN seconds; in between they fail fast with
    StoreUnavailableError.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        STAGE-REDIS.1: Client initialization
        """
        self._settings = settings or get_settings()
        self._conn_mgr = ConnectionManager(self._settings)
        self._executor: OperationExecutor | None = None
        self._health_monitor = HealthMonitor(self._conn_mgr, self._settings)
        self._clock = clock
        self._last_connect_attempt: float | None = None
        self._reconnect_lock = asyncio.Lock()
        self._closed = False

        logger.info(
            "Redis client initialized",
            stage="REDIS.1",
            host=self._settings.redis.REDIS_HOST,
            port=self._settings.redis.REDIS_PORT,
        )

    async def connect(self) -> None:
        """
        Raises:
            EdgeConnectionError: If connection fails
        """
        self._closed = False
        self._last_connect_attempt = self._clock()
        client = await self._conn_mgr.connect()
        self._executor = OperationExecutor(client)

    async def disconnect(self) -> None:
        self._closed = True
        await self._conn_mgr.disconnect()
        self._executor = None

    async def ping(self) -> bool:
        return await self._conn_mgr.ping()

    @property
    def is_connected(self) -> bool:
        return self._executor is not None

    async def _require_executor(self) -> OperationExecutor:
        """
        Return the live executor, reconnecting if the cooldown has elapsed.

        STAGE-REDIS.4: Lazy reconnect

        Raises:
            StoreUnavailableError: If Redis is still unreachable
        """
        if self._executor is not None:
            return self._executor

        async with self._reconnect_lock:
            if self._executor is not None:
                return self._executor
            if self._closed:
                raise StoreUnavailableError("Redis client is closed", tier="edge")

            cooldown = self._settings.redis.REDIS_RECONNECT_COOLDOWN
            last = self._last_connect_attempt
            if last is not None and self._clock() - last < cooldown:
                raise StoreUnavailableError("Redis client is not connected", tier="edge")

            try:
                await self.connect()
            except EdgeConnectionError as e:
                raise StoreUnavailableError(
                    f"Redis reconnect failed: {e.message}", tier="edge"
                ) from e

            logger.info("Redis reconnected", stage="REDIS.4")
            return self._executor

    async def get(self, key: str) -> bytes | None:
        """Get value from Redis."""
        return await (await self._require_executor()).get(key)

    async def set(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        """Set value in Redis."""
        return await (await self._require_executor()).set(key, value, ttl)

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis."""
        return await (await self._require_executor()).delete(*keys)

    async def exists(self, *keys: str) -> int:
        """Check if keys exist in Redis."""
        return await (await self._require_executor()).exists(*keys)

    async def health_check(self) -> dict[str, Any]:
        """Perform health check on Redis connection."""
        return await self._health_monitor.health_check()


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_redis_client: EdgeRedisClient | None = None


def get_redis_client() -> EdgeRedisClient:
    """Get the global edge Redis client instance (singleton)."""
    global _redis_client

    if _redis_client is None:
        _redis_client = EdgeRedisClient()

    return _redis_client


async def init_redis() -> EdgeRedisClient:
    """Initialize and connect the global edge Redis client."""
    client = get_redis_client()
    await client.connect()
    return client


async def close_redis() -> None:
    """Close the global edge Redis client."""
    global _redis_client

    if _redis_client:
        await _redis_client.disconnect()
        _redis_client = None
