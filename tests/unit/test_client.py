"""Unit tests for EventClient (mocked Redis)."""

import asyncio
import inspect
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from collective_events.client import EventClient
from collective_events.config import EventBusSettings
from collective_events.exceptions import (
    BrokerError,
    NotConnectedError,
    SchemaValidationError,
    StreamNotFoundError,
    WaitCancelledError,
)
from collective_events.factory import (
    create_ai_content_generation_completed_event,
    create_ai_content_generation_requested_event,
    create_embedding_generation_completed_event,
    create_embedding_generation_requested_event,
    create_file_processing_completed_event,
    create_file_processing_started_event,
    create_file_uploaded_event,
    create_notification_send_requested_event,
    create_system_error_critical_event,
    create_system_service_health_event,
    create_user_login_event,
    create_user_registered_event,
)

USER_ID = "0b6f2a3e-4f1c-4d3a-9e55-2f4a8c1d7b90"
CORE_ID = "5d9e8f7a-6b5c-4d3e-8f2a-1b0c9d8e7f6a"
FILE_ID = "a1b2c3d4-e5f6-4a7b-8c9d-0e1f2a3b4c5d"


def login_event(**kwargs):
    return create_user_login_event(
        user_id=USER_ID, ip_address="10.0.0.1", user_agent="pytest", success=True, **kwargs
    )


class TestLifecycle:
    """Tests for connect/disconnect."""

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, mock_redis, settings):
        client = EventClient(settings)

        await client.connect()
        await client.connect()

        assert client.is_connected
        assert mock_redis.ping.await_count == 1
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, mock_redis, settings):
        client = EventClient(settings)
        await client.connect()

        await client.disconnect()
        await client.disconnect()

        assert not client.is_connected
        # Command and blocking-read clients, once each
        assert mock_redis.aclose.await_count == 2

    @pytest.mark.asyncio
    async def test_disconnect_without_connect(self, mock_redis, settings):
        client = EventClient(settings)

        await client.disconnect()

        mock_redis.aclose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connect_failure(self, mock_redis, settings):
        mock_redis.ping.side_effect = RedisConnectionError("refused")
        client = EventClient(settings)

        with pytest.raises(BrokerError):
            await client.connect()

        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_context_manager(self, mock_redis, settings):
        async with EventClient(settings) as client:
            assert client.is_connected

        assert not client.is_connected


class TestConnectionPools:
    """Tests for the separate command and blocking-read pools."""

    @pytest.fixture
    def pooled(self):
        """Give each pool its own mocked client: command first, blocking second."""
        clients = []

        def make_pool(url, max_connections, **kwargs):
            pool = MagicMock()
            pool.disconnect = AsyncMock()
            return pool

        def make_client(connection_pool):
            redis = AsyncMock()
            redis.xadd.return_value = "1-0"
            redis.xgroup_create.return_value = True
            redis.xgroup_destroy.return_value = 1
            clients.append(redis)
            return redis

        with patch("collective_events.connection.BlockingConnectionPool") as pool_cls, patch(
            "collective_events.connection.Redis", side_effect=make_client
        ):
            pool_cls.from_url.side_effect = make_pool
            yield pool_cls, clients

    @pytest.mark.asyncio
    async def test_pools_are_sized_from_settings(self, pooled):
        pool_cls, clients = pooled
        settings = EventBusSettings(max_connections=2, max_blocking_connections=8, pool_timeout=5.0)
        client = EventClient(settings)
        await client.connect()

        calls = pool_cls.from_url.call_args_list
        assert [c.kwargs["max_connections"] for c in calls] == [2, 8]
        assert all(c.kwargs["timeout"] == 5.0 for c in calls)
        assert client.redis is clients[0]
        assert client.blocking_redis is clients[1]
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_publish_while_waits_outnumber_command_pool(self, pooled):
        """Test a publish succeeds while more waits are blocked than the command pool holds."""
        _, clients = pooled
        client = EventClient(EventBusSettings(max_connections=2, block_ms=50))
        await client.connect()
        command, blocking = clients

        async def xreadgroup(**kwargs):
            await asyncio.sleep(0.05)
            return []

        blocking.xreadgroup.side_effect = xreadgroup

        waiters = [
            await client.begin_wait("ai.events", "ai.consultation.completed", f"w-{i}", timeout_ms=5000)
            for i in range(5)
        ]
        # Every wait is now parked in a blocking read
        await asyncio.sleep(0.01)
        message_id = await client.publish(login_event())

        assert message_id == "1-0"
        command.xadd.assert_awaited_once()
        command.xreadgroup.assert_not_awaited()
        assert blocking.xreadgroup.await_count >= 5
        blocking.xadd.assert_not_awaited()

        for waiter in waiters:
            waiter.cancel()
            with pytest.raises(WaitCancelledError):
                await waiter.result()
        assert command.xgroup_destroy.await_count == 5
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_non_blocking_read_uses_command_pool(self, pooled):
        _, clients = pooled
        client = EventClient(EventBusSettings())
        await client.connect()
        command, blocking = clients
        command.xreadgroup.return_value = []

        await client.groups.read_group("user.events", "g", "c", block_ms=None)

        command.xreadgroup.assert_awaited_once()
        blocking.xreadgroup.assert_not_awaited()
        await client.disconnect()


class TestPublish:
    """Tests for publish."""

    @pytest.mark.asyncio
    async def test_publish_not_connected(self, mock_redis, settings):
        client = EventClient(settings)

        with pytest.raises(NotConnectedError):
            await client.publish(login_event())

        mock_redis.xadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_appends_to_event_stream(self, client, mock_redis):
        event = login_event(correlation_id="req-1")

        message_id = await client.publish(event)

        assert message_id == "1234567890-0"
        mock_redis.xadd.assert_awaited_once()
        stream, fields = mock_redis.xadd.await_args.args
        assert stream == "user.events"
        assert fields["id"] == event.id
        assert fields["type"] == "user.login"
        assert fields["correlation_id"] == "req-1"

    @pytest.mark.asyncio
    async def test_publish_rejects_invalid_event(self, client, mock_redis):
        event = login_event().model_copy(update={"version": 0})

        with pytest.raises(SchemaValidationError):
            await client.publish(event)

        mock_redis.xadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_broker_failure(self, client, mock_redis):
        mock_redis.xadd.side_effect = RedisConnectionError("connection reset")

        with pytest.raises(BrokerError):
            await client.publish(login_event())

    @pytest.mark.asyncio
    async def test_publish_batch_preserves_order(self, client, mock_redis):
        mock_redis.xadd.side_effect = ["1-0", "2-0", "3-0"]
        events = [login_event() for _ in range(3)]

        message_ids = await client.publish_batch(events)

        assert message_ids == ["1-0", "2-0", "3-0"]
        published = [call.args[1]["id"] for call in mock_redis.xadd.await_args_list]
        assert published == [e.id for e in events]


class TestConvenienceMethods:
    """Tests for typed publish helpers."""

    @pytest.mark.asyncio
    async def test_publish_user_registered(self, client, mock_redis):
        await client.publish_user_registered(
            user_id=USER_ID, email="new@example.com", tier="individual_pro"
        )

        stream, fields = mock_redis.xadd.await_args.args
        assert stream == "user.events"
        assert fields["type"] == "user.registered"
        assert json.loads(fields["data"])["email"] == "new@example.com"

    @pytest.mark.asyncio
    async def test_publish_file_uploaded(self, client, mock_redis):
        await client.publish_file_uploaded(
            file_id=FILE_ID,
            user_id=USER_ID,
            contextual_core_id=CORE_ID,
            filename="plan.pdf",
            file_size=2048,
            mime_type="application/pdf",
            is_browser_viewable=True,
        )

        stream, fields = mock_redis.xadd.await_args.args
        assert stream == "contextual.events"
        assert fields["type"] == "file.uploaded"
        assert fields["user_id"] == USER_ID

    @pytest.mark.asyncio
    async def test_publish_ai_content_generation_requested(self, client, mock_redis):
        await client.publish_ai_content_generation_requested(
            request_id=FILE_ID,
            user_id=USER_ID,
            contextual_core_id=CORE_ID,
            content_type="blog_article",
            prompt_template="weekly-digest",
            ai_provider="anthropic",
            max_tokens=800,
            correlation_id="gen-1",
        )

        stream, fields = mock_redis.xadd.await_args.args
        assert stream == "ai.events"
        assert fields["correlation_id"] == "gen-1"

    @pytest.mark.asyncio
    async def test_publish_notification_requested(self, client, mock_redis):
        await client.publish_notification_requested(
            user_id=USER_ID,
            notification_type="system_alert",
            channels=["websocket"],
            message={"title": "Heads up", "body": "Maintenance at 02:00"},
            priority="high",
        )

        stream, fields = mock_redis.xadd.await_args.args
        assert stream == "notification.events"
        assert fields["type"] == "notification.send.requested"

    @pytest.mark.asyncio
    async def test_publish_system_error(self, client, mock_redis):
        await client.publish_system_error(
            service_name="ai-worker",
            error_type="ProviderTimeout",
            error_message="upstream timed out",
            stack_trace="Traceback ...",
            requires_immediate_attention=True,
        )

        stream, fields = mock_redis.xadd.await_args.args
        assert stream == "system.events"
        assert fields["type"] == "system.error.critical"

    @pytest.mark.asyncio
    async def test_invalid_fields_never_reach_broker(self, client, mock_redis):
        with pytest.raises(SchemaValidationError):
            await client.publish_service_health(
                service_name="core-api",
                status="on fire",
                response_time_ms=1.0,
                memory_usage_mb=1.0,
                cpu_usage_percent=1.0,
                error_rate=0.0,
            )

        mock_redis.xadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fractional_duration(self, client, mock_redis):
        await client.publish_file_processing_completed(
            file_id=FILE_ID,
            processing_type="text_extraction",
            processing_time_ms=12.5,
            success=True,
        )

        _, fields = mock_redis.xadd.await_args.args
        assert json.loads(fields["data"])["processing_time_ms"] == 12.5

    @pytest.mark.asyncio
    async def test_misspelled_field_is_a_type_error(self, client, mock_redis):
        with pytest.raises(TypeError):
            await client.publish_user_login(
                user_id=USER_ID, ip_adress="10.0.0.1", user_agent="pytest", success=True
            )

        mock_redis.xadd.assert_not_awaited()

    def test_signatures_mirror_factories(self):
        """Test each helper takes exactly its factory's keyword-only fields."""
        pairs = [
            (EventClient.publish_user_registered, create_user_registered_event),
            (EventClient.publish_user_login, create_user_login_event),
            (EventClient.publish_file_uploaded, create_file_uploaded_event),
            (EventClient.publish_file_processing_started, create_file_processing_started_event),
            (EventClient.publish_file_processing_completed, create_file_processing_completed_event),
            (
                EventClient.publish_embedding_generation_requested,
                create_embedding_generation_requested_event,
            ),
            (
                EventClient.publish_embedding_generation_completed,
                create_embedding_generation_completed_event,
            ),
            (
                EventClient.publish_ai_content_generation_requested,
                create_ai_content_generation_requested_event,
            ),
            (
                EventClient.publish_ai_content_generation_completed,
                create_ai_content_generation_completed_event,
            ),
            (EventClient.publish_notification_requested, create_notification_send_requested_event),
            (EventClient.publish_system_error, create_system_error_critical_event),
            (EventClient.publish_service_health, create_system_service_health_event),
        ]

        for method, factory in pairs:
            params = list(inspect.signature(method).parameters.values())[1:]
            assert [p.name for p in params] == list(inspect.signature(factory).parameters)
            assert all(p.kind is inspect.Parameter.KEYWORD_ONLY for p in params)
            assert method.__doc__


class TestReadSide:
    """Tests for range reads and stream info."""

    @pytest.mark.asyncio
    async def test_read_range(self, client, mock_redis):
        mock_redis.xrange.return_value = [("1-0", {"type": "user.login"}), ("2-0", {"type": "user.login"})]

        entries = await client.read_range("user.events", count=2)

        mock_redis.xrange.assert_awaited_once_with("user.events", min="-", max="+", count=2)
        assert [e.message_id for e in entries] == ["1-0", "2-0"]
        assert entries[0].stream == "user.events"

    @pytest.mark.asyncio
    async def test_stream_length(self, client, mock_redis):
        mock_redis.xlen.return_value = 7
        assert await client.stream_length("user.events") == 7

    @pytest.mark.asyncio
    async def test_get_stream_info_missing_stream(self, client, mock_redis):
        mock_redis.xinfo_stream.side_effect = ResponseError("no such key")

        with pytest.raises(StreamNotFoundError):
            await client.get_stream_info("user.events")

    @pytest.mark.asyncio
    async def test_begin_wait_not_connected(self, mock_redis, settings):
        client = EventClient(settings)

        with pytest.raises(NotConnectedError):
            await client.begin_wait("ai.events", "ai.consultation.completed", "c-1")

        mock_redis.xgroup_create.assert_not_awaited()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
