"""Pytest configuration for event bus tests."""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio

from collective_events.client import EventClient
from collective_events.config import EventBusSettings
from collective_events.exceptions import BrokerError
from collective_events.streams import Stream


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (require Redis)"
    )


# ---------------------------------------------------------------------------
# Unit test fixtures (mocked Redis)
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_redis():
    """Patch the asyncio Redis clients created by RedisConnection.

    The command and blocking-read clients share this one mock.
    """
    client = AsyncMock()
    client.xadd.return_value = "1234567890-0"
    client.xreadgroup.return_value = []
    client.xgroup_create.return_value = True
    client.xgroup_destroy.return_value = 1
    client.xack.return_value = 1

    pool = MagicMock()
    pool.disconnect = AsyncMock()

    with patch("collective_events.connection.BlockingConnectionPool") as pool_cls, patch(
        "collective_events.connection.Redis", return_value=client
    ):
        pool_cls.from_url.return_value = pool
        yield client


@pytest.fixture
def settings():
    """Settings with short read windows for tests."""
    return EventBusSettings(host="localhost", port=6379, block_ms=50, wait_timeout_ms=1000)


@pytest_asyncio.fixture
async def client(mock_redis, settings):
    """Connected EventClient backed by the mocked Redis client."""
    event_client = EventClient(settings)
    await event_client.connect()
    yield event_client
    await event_client.disconnect()


# ---------------------------------------------------------------------------
# Integration test fixtures (live Redis)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def redis_settings():
    """Settings for the integration Redis, from environment.

    Uses REDIS_TEST_DB (default 15) so the fixed stream names can be wiped
    without touching application data.
    """
    return EventBusSettings(
        db=int(os.environ.get("REDIS_TEST_DB", "15")),
        block_ms=100,
    )


@pytest_asyncio.fixture
async def live_client(redis_settings):
    """Connected EventClient against a real Redis; skips if none is reachable."""
    event_client = EventClient(redis_settings)
    try:
        await event_client.connect()
    except BrokerError as e:
        pytest.skip(f"Redis not available: {e}")

    streams = [s.value for s in Stream]
    await event_client.redis.delete(*streams)
    yield event_client
    await event_client.redis.delete(*streams)
    await event_client.disconnect()
