"""Integration test: Sustained publish and read-back.

Requires a running Redis (REDIS_HOST / REDIS_PORT, REDIS_TEST_DB).
"""

import time

import pytest

from collective_events.factory import create_system_service_health_event

EVENT_COUNT = 1000


@pytest.mark.integration
@pytest.mark.asyncio
async def test_thousand_events_in_order(live_client):
    """Test 1,000 published events are read back complete and in order."""
    events = [
        create_system_service_health_event(
            service_name="load-test",
            status="healthy",
            response_time_ms=float(i),
            memory_usage_mb=128.0,
            cpu_usage_percent=1.0,
            error_rate=0.0,
        )
        for i in range(EVENT_COUNT)
    ]

    started = time.monotonic()
    await live_client.publish_batch(events)
    entries = await live_client.read_range("system.events")
    elapsed = time.monotonic() - started

    assert len(entries) == EVENT_COUNT
    assert [e.event.id for e in entries] == [e.id for e in events]
    assert elapsed < 2.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
