"""Monitoring utilities for event streams."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from redis.exceptions import RedisError

from collective_events.consumer import ConsumerGroupManager

if TYPE_CHECKING:
    from collective_events.client import EventClient

logger = logging.getLogger(__name__)

# Oldest pending entry idle longer than this marks the group unhealthy
MAX_HEALTHY_IDLE_MS = 30000

# Pending entries above this produce a warning
PENDING_WARNING_THRESHOLD = 1000


@dataclass
class BackpressureMetrics:
    """Backpressure metrics for a stream/group."""

    stream_length: int
    pending_count: int
    consumer_lag: int
    max_idle_time_ms: int
    is_healthy: bool
    warning: Optional[str] = None


class StreamMonitor:
    """Monitors stream health and backpressure."""

    def __init__(self, client: "EventClient"):
        self._client = client
        self._groups = ConsumerGroupManager(client)

    async def get_backpressure_metrics(
        self,
        stream: str,
        group: str,
    ) -> BackpressureMetrics:
        """Get backpressure metrics for a stream/group.

        Lag is the broker-reported number of entries not yet delivered to
        the group (Redis 7+); older servers fall back to the pending count.

        Raises:
            GroupNotFoundError: If the group does not exist
            BrokerError: If the broker fails
        """
        stream_length = await self._client.stream_length(stream)
        group_info = await self._groups.get_group_info(stream, group)
        pending_count = group_info.pending

        oldest = await self._groups.get_pending(stream, group, count=1)
        max_idle = oldest[0].idle_ms if oldest else 0

        consumer_lag = group_info.lag if group_info.lag is not None else pending_count

        is_healthy = True
        warning = None
        if max_idle > MAX_HEALTHY_IDLE_MS:
            is_healthy = False
            warning = f"Consumer lag detected: max idle time {max_idle}ms"
        elif pending_count > PENDING_WARNING_THRESHOLD:
            warning = f"High pending count: {pending_count} messages"

        return BackpressureMetrics(
            stream_length=stream_length,
            pending_count=pending_count,
            consumer_lag=consumer_lag,
            max_idle_time_ms=max_idle,
            is_healthy=is_healthy,
            warning=warning,
        )

    async def check_stream_health(self, stream: str) -> bool:
        """True if the broker answers and the stream exists."""
        try:
            return await self._client.redis.exists(getattr(stream, "value", stream)) > 0
        except RedisError as e:
            logger.error(f"Stream health check failed for {stream}: {e}")
            return False
