"""Redis connection management with connection pooling."""

import logging
import re
from typing import Optional

from redis.asyncio import BlockingConnectionPool, Redis
from redis.exceptions import RedisError

from collective_events.exceptions import BrokerError, NotConnectedError

logger = logging.getLogger(__name__)

_PASSWORD_IN_URL = re.compile(r"://([^:/@]*):[^@]*@")


def redact_url(url: str) -> str:
    """Hide the password part of a Redis URL for logging."""
    return _PASSWORD_IN_URL.sub(r"://\1:***@", url)


class RedisConnection:
    """Manages the pooled asyncio Redis clients.

    Two pools are kept: one for ordinary commands (publish, ack, group
    management) and one for blocking reads. A blocking read holds its
    connection for the whole block window, so waits and consume loops never
    take connections away from the publish path. Both pools queue callers
    for up to ``pool_timeout`` seconds when exhausted instead of failing.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        max_connections: int = 10,
        max_blocking_connections: int = 50,
        pool_timeout: float = 20.0,
        decode_responses: bool = True,
    ):
        """Initialize Redis connection.

        Args:
            url: Redis connection URL
            max_connections: Maximum connections in the command pool
            max_blocking_connections: Maximum connections in the blocking-read pool
            pool_timeout: Seconds to wait for a free pooled connection
            decode_responses: Whether to decode responses to strings
        """
        self.url = url
        self._pool: Optional[BlockingConnectionPool] = None
        self._blocking_pool: Optional[BlockingConnectionPool] = None
        self._client: Optional[Redis] = None
        self._blocking_client: Optional[Redis] = None
        self._max_connections = max_connections
        self._max_blocking_connections = max_blocking_connections
        self._pool_timeout = pool_timeout
        self._decode_responses = decode_responses

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> Redis:
        """Get the connected Redis client for ordinary commands.

        Raises:
            NotConnectedError: If connect() has not completed
        """
        if self._client is None:
            raise NotConnectedError()
        return self._client

    @property
    def blocking_client(self) -> Redis:
        """Get the connected Redis client reserved for blocking reads.

        Raises:
            NotConnectedError: If connect() has not completed
        """
        if self._blocking_client is None:
            raise NotConnectedError()
        return self._blocking_client

    def _make_pool(self, max_connections: int) -> BlockingConnectionPool:
        return BlockingConnectionPool.from_url(
            self.url,
            max_connections=max_connections,
            timeout=self._pool_timeout,
            decode_responses=self._decode_responses,
        )

    async def connect(self) -> Redis:
        """Create the pools and clients and check the server answers.

        Calling this while connected returns the existing command client.

        Raises:
            BrokerError: If the server cannot be reached
        """
        if self._client is not None:
            return self._client

        pool = self._make_pool(self._max_connections)
        blocking_pool = self._make_pool(self._max_blocking_connections)
        client = Redis(connection_pool=pool)
        blocking_client = Redis(connection_pool=blocking_pool)
        try:
            await client.ping()
        except RedisError as e:
            await pool.disconnect()
            await blocking_pool.disconnect()
            raise BrokerError(f"Failed to connect to Redis at {redact_url(self.url)}: {e}") from e

        self._pool = pool
        self._blocking_pool = blocking_pool
        self._client = client
        self._blocking_client = blocking_client
        logger.debug(f"Connected to Redis at {redact_url(self.url)}")
        return client

    async def close(self):
        """Close clients and connection pools."""
        if self._blocking_client:
            await self._blocking_client.aclose()
            self._blocking_client = None
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._blocking_pool:
            await self._blocking_pool.disconnect()
            self._blocking_pool = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
