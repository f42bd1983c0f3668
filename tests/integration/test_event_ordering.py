"""Integration test: Event ordering and durable replay.

Requires a running Redis (REDIS_HOST / REDIS_PORT, REDIS_TEST_DB).
"""

import pytest

from collective_events.factory import create_user_login_event

USER_ID = "0b6f2a3e-4f1c-4d3a-9e55-2f4a8c1d7b90"


def login_event(index):
    return create_user_login_event(
        user_id=USER_ID,
        ip_address=f"10.0.0.{index}",
        user_agent="pytest",
        success=True,
        metadata={"index": index},
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_events_arrive_in_publish_order(live_client):
    """Test that events A, B, C arrive in same order."""
    events = [login_event(i) for i in range(5)]
    await live_client.publish_batch(events)

    await live_client.groups.create_group("user.events", "ordering_group", start_id="0")
    entries = await live_client.groups.read_group(
        "user.events", "ordering_group", "ordering_consumer", count=10, block_ms=100
    )

    assert [e.event.id for e in entries] == [e.id for e in events]
    assert [e.event.metadata["index"] for e in entries] == list(range(5))


@pytest.mark.integration
@pytest.mark.asyncio
async def test_message_ids_increase(live_client):
    message_ids = [await live_client.publish(login_event(i)) for i in range(3)]

    def key(message_id):
        ms, seq = message_id.split("-")
        return int(ms), int(seq)

    assert [key(m) for m in message_ids] == sorted(key(m) for m in message_ids)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_replay_from_range(live_client):
    events = [login_event(i) for i in range(3)]
    await live_client.publish_batch(events)

    entries = await live_client.read_range("user.events")

    assert [e.event for e in entries] == events
    assert await live_client.stream_length("user.events") == 3

    info = await live_client.get_stream_info("user.events")
    assert info.length == 3
    assert info.first_entry_id == entries[0].message_id
    assert info.last_entry_id == entries[-1].message_id


@pytest.mark.integration
@pytest.mark.asyncio
async def test_group_started_at_tail_skips_history(live_client):
    await live_client.publish(login_event(0))
    await live_client.groups.create_group("user.events", "tail_group", start_id="$")
    latest = login_event(1)
    await live_client.publish(latest)

    entries = await live_client.groups.read_group(
        "user.events", "tail_group", "tail_consumer", block_ms=100
    )

    assert [e.event.id for e in entries] == [latest.id]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
