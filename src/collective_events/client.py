"""Event client: connection lifecycle, publishing, typed convenience methods."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from collective_events.codec import encode_event
from collective_events.config import EventBusSettings
from collective_events.connection import RedisConnection, redact_url
from collective_events.consumer import ConsumerGroupManager
from collective_events.exceptions import BrokerError, NotConnectedError, StreamNotFoundError
from collective_events.factory import (
    UUIDLike,
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
from collective_events.models import StreamEntry, StreamInfo
from collective_events.registry import EventSchemaRegistry, schema_registry
from collective_events.schemas import BaseEvent
from collective_events.waiter import EventWaiter

logger = logging.getLogger(__name__)


class EventClient:
    """Publishes events to Redis streams over pooled connections.

    Construct one per process and tie connect()/disconnect() to the host
    application's startup and shutdown hooks::

        client = EventClient(EventBusSettings())
        await client.connect()
        message_id = await client.publish_user_registered(
            user_id=user_id, email="a@example.com", tier="individual_pro"
        )
        await client.disconnect()
    """

    def __init__(
        self,
        settings: Optional[EventBusSettings] = None,
        registry: EventSchemaRegistry = schema_registry,
    ):
        """Initialize EventClient.

        Args:
            settings: Broker connection settings (defaults from environment)
            registry: Schema registry used to validate outgoing events
        """
        self.settings = settings or EventBusSettings()
        self.registry = registry
        self._connection = RedisConnection(
            self.settings.url,
            max_connections=self.settings.max_connections,
            max_blocking_connections=self.settings.max_blocking_connections,
            pool_timeout=self.settings.pool_timeout,
        )

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def redis(self) -> Redis:
        """Connected Redis client (raises NotConnectedError otherwise)."""
        return self._connection.client

    @property
    def blocking_redis(self) -> Redis:
        """Client for blocking reads, on its own pool so waits never starve publishes."""
        return self._connection.blocking_client

    @property
    def groups(self) -> ConsumerGroupManager:
        """Consumer group operations bound to this client."""
        return ConsumerGroupManager(self)

    async def connect(self):
        """Connect to Redis. A no-op when already connected."""
        if self.is_connected:
            return
        await self._connection.connect()
        logger.info(f"Event client connected to {redact_url(self.settings.url)}")

    async def disconnect(self):
        """Disconnect from Redis. A no-op when not connected."""
        if not self.is_connected:
            return
        await self._connection.close()
        logger.info("Event client disconnected")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    async def publish(self, event: BaseEvent) -> str:
        """Append an event to its stream.

        The event is validated against the schema registered for its type
        before anything is written. No retry is attempted.

        Args:
            event: Typed event

        Returns:
            Broker-assigned message ID

        Raises:
            NotConnectedError: If connect() has not been called
            UnknownEventTypeError: If the event type is not registered
            SchemaValidationError: If the event does not match its schema
            BrokerError: If the append fails
        """
        redis = self.redis
        event = self.registry.validate(event.type, event)
        fields = encode_event(event)

        try:
            message_id = await redis.xadd(event.stream, fields)
        except RedisError as e:
            logger.error(f"Failed to publish event {event.type} to {event.stream}: {e}")
            raise BrokerError(f"Failed to publish event: {e}") from e

        logger.debug(
            f"Published event {event.type} to {event.stream} with ID {message_id} "
            f"(event {event.id}, correlation {event.correlation_id})"
        )
        return message_id

    async def publish_batch(self, events: Iterable[BaseEvent]) -> List[str]:
        """Publish events one after another, in order.

        Returns:
            List of message IDs
        """
        message_ids = []
        for event in events:
            message_ids.append(await self.publish(event))
        return message_ids

    # Convenience methods for common events

    async def publish_user_registered(
        self,
        *,
        user_id: UUIDLike,
        email: str,
        tier: str,
        referral_source: Optional[str] = None,
        correlation_id: Optional[str] = None,
        acting_user_id: Optional[UUIDLike] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish user.registered; see create_user_registered_event."""
        return await self.publish(
            create_user_registered_event(
                user_id=user_id,
                email=email,
                tier=tier,
                referral_source=referral_source,
                correlation_id=correlation_id,
                acting_user_id=acting_user_id,
                metadata=metadata,
            )
        )

    async def publish_user_login(
        self,
        *,
        user_id: UUIDLike,
        ip_address: str,
        user_agent: str,
        success: bool,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish user.login."""
        return await self.publish(
            create_user_login_event(
                user_id=user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                success=success,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_file_uploaded(
        self,
        *,
        file_id: UUIDLike,
        user_id: UUIDLike,
        contextual_core_id: UUIDLike,
        filename: str,
        file_size: float,
        mime_type: str,
        is_browser_viewable: bool,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish file.uploaded; see create_file_uploaded_event."""
        return await self.publish(
            create_file_uploaded_event(
                file_id=file_id,
                user_id=user_id,
                contextual_core_id=contextual_core_id,
                filename=filename,
                file_size=file_size,
                mime_type=mime_type,
                is_browser_viewable=is_browser_viewable,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_file_processing_started(
        self,
        *,
        file_id: UUIDLike,
        processing_type: str,
        estimated_duration_ms: float,
        user_id: Optional[UUIDLike] = None,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish file.processing.started."""
        return await self.publish(
            create_file_processing_started_event(
                file_id=file_id,
                processing_type=processing_type,
                estimated_duration_ms=estimated_duration_ms,
                user_id=user_id,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_file_processing_completed(
        self,
        *,
        file_id: UUIDLike,
        processing_type: str,
        processing_time_ms: float,
        success: bool,
        extracted_text_length: Optional[float] = None,
        embedding_model_used: Optional[str] = None,
        error: Optional[str] = None,
        user_id: Optional[UUIDLike] = None,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish file.processing.completed."""
        return await self.publish(
            create_file_processing_completed_event(
                file_id=file_id,
                processing_type=processing_type,
                processing_time_ms=processing_time_ms,
                success=success,
                extracted_text_length=extracted_text_length,
                embedding_model_used=embedding_model_used,
                error=error,
                user_id=user_id,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_embedding_generation_requested(
        self,
        *,
        text_content: str,
        content_hash: str,
        user_id: UUIDLike,
        contextual_core_id: UUIDLike,
        priority: str,
        preferred_model: Optional[str] = None,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish embedding.generation.requested."""
        return await self.publish(
            create_embedding_generation_requested_event(
                text_content=text_content,
                content_hash=content_hash,
                user_id=user_id,
                contextual_core_id=contextual_core_id,
                priority=priority,
                preferred_model=preferred_model,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_embedding_generation_completed(
        self,
        *,
        embedding_id: UUIDLike,
        content_hash: str,
        model_id: UUIDLike,
        dimensions: float,
        generation_time_ms: float,
        cost_usd: float,
        quality_score: Optional[float] = None,
        user_id: Optional[UUIDLike] = None,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish embedding.generation.completed."""
        return await self.publish(
            create_embedding_generation_completed_event(
                embedding_id=embedding_id,
                content_hash=content_hash,
                model_id=model_id,
                dimensions=dimensions,
                generation_time_ms=generation_time_ms,
                cost_usd=cost_usd,
                quality_score=quality_score,
                user_id=user_id,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_ai_content_generation_requested(
        self,
        *,
        request_id: UUIDLike,
        user_id: UUIDLike,
        contextual_core_id: UUIDLike,
        content_type: str,
        prompt_template: str,
        ai_provider: str,
        max_tokens: float,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish ai.content.generation.requested; see the matching factory."""
        return await self.publish(
            create_ai_content_generation_requested_event(
                request_id=request_id,
                user_id=user_id,
                contextual_core_id=contextual_core_id,
                content_type=content_type,
                prompt_template=prompt_template,
                ai_provider=ai_provider,
                max_tokens=max_tokens,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_ai_content_generation_completed(
        self,
        *,
        request_id: UUIDLike,
        content_draft_id: UUIDLike,
        generated_content: str,
        ai_provider: str,
        model_used: str,
        tokens_used: float,
        generation_time_ms: float,
        cost_usd: float,
        user_id: Optional[UUIDLike] = None,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish ai.content.generation.completed."""
        return await self.publish(
            create_ai_content_generation_completed_event(
                request_id=request_id,
                content_draft_id=content_draft_id,
                generated_content=generated_content,
                ai_provider=ai_provider,
                model_used=model_used,
                tokens_used=tokens_used,
                generation_time_ms=generation_time_ms,
                cost_usd=cost_usd,
                user_id=user_id,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_notification_requested(
        self,
        *,
        user_id: UUIDLike,
        notification_type: str,
        channels: List[str],
        message: Dict[str, Any],
        priority: str,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish notification.send.requested; see the matching factory."""
        return await self.publish(
            create_notification_send_requested_event(
                user_id=user_id,
                notification_type=notification_type,
                channels=channels,
                message=message,
                priority=priority,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_system_error(
        self,
        *,
        service_name: str,
        error_type: str,
        error_message: str,
        stack_trace: str,
        requires_immediate_attention: bool,
        user_id: Optional[UUIDLike] = None,
        request_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish system.error.critical; see the matching factory."""
        return await self.publish(
            create_system_error_critical_event(
                service_name=service_name,
                error_type=error_type,
                error_message=error_message,
                stack_trace=stack_trace,
                requires_immediate_attention=requires_immediate_attention,
                user_id=user_id,
                request_id=request_id,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    async def publish_service_health(
        self,
        *,
        service_name: str,
        status: str,
        response_time_ms: float,
        memory_usage_mb: float,
        cpu_usage_percent: float,
        error_rate: float,
        correlation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish system.service.health."""
        return await self.publish(
            create_system_service_health_event(
                service_name=service_name,
                status=status,
                response_time_ms=response_time_ms,
                memory_usage_mb=memory_usage_mb,
                cpu_usage_percent=cpu_usage_percent,
                error_rate=error_rate,
                correlation_id=correlation_id,
                metadata=metadata,
            )
        )

    # Read side

    async def read_range(
        self,
        stream: str,
        start: str = "-",
        end: str = "+",
        count: Optional[int] = None,
    ) -> List[StreamEntry]:
        """Read entries between two IDs without a consumer group (replay).

        Returns:
            Entries in stream order
        """
        stream = getattr(stream, "value", stream)
        redis = self.redis
        try:
            messages = await redis.xrange(stream, min=start, max=end, count=count)
        except RedisError as e:
            raise BrokerError(f"Failed to read stream range: {e}") from e
        return [StreamEntry.from_redis(stream, message_id, values) for message_id, values in messages]

    async def stream_length(self, stream: str) -> int:
        """Number of entries in a stream (0 if it does not exist)."""
        stream = getattr(stream, "value", stream)
        redis = self.redis
        try:
            return await redis.xlen(stream)
        except RedisError as e:
            raise BrokerError(f"Failed to get stream length: {e}") from e

    async def get_stream_info(self, stream: str) -> StreamInfo:
        """Get stream information.

        Raises:
            StreamNotFoundError: If stream doesn't exist
        """
        stream = getattr(stream, "value", stream)
        redis = self.redis
        try:
            info = await redis.xinfo_stream(stream)
        except ResponseError as e:
            if "no such key" in str(e).lower():
                raise StreamNotFoundError(stream) from e
            raise BrokerError(f"Failed to get stream info: {e}") from e
        except RedisError as e:
            raise BrokerError(f"Failed to get stream info: {e}") from e
        return StreamInfo.from_redis(stream, info)

    # Request / response

    async def begin_wait(
        self,
        stream: str,
        event_type: str,
        correlation_id: str,
        timeout_ms: Optional[int] = None,
    ) -> EventWaiter:
        """Start waiting for an event; returns once the wait is registered.

        Every matching event appended after this returns is observed, so
        call it before publishing the request the reply belongs to.

        Returns:
            Started EventWaiter (await ``result()``, or ``cancel()``)
        """
        if not self.is_connected:
            raise NotConnectedError()
        waiter = EventWaiter(
            self,
            stream,
            event_type,
            correlation_id,
            timeout_ms=self.settings.wait_timeout_ms if timeout_ms is None else timeout_ms,
            block_ms=self.settings.block_ms,
            count=self.settings.read_count,
            group_prefix=self.settings.group_prefix,
        )
        return await waiter.start()

    async def wait_for_event(
        self,
        stream: str,
        event_type: str,
        correlation_id: str,
        timeout_ms: Optional[int] = None,
    ) -> BaseEvent:
        """Wait for one event matching (stream, type, correlation id).

        Raises:
            EventTimeoutError: If nothing matches within ``timeout_ms``
            BrokerError: If the broker fails while waiting
        """
        waiter = await self.begin_wait(stream, event_type, correlation_id, timeout_ms)
        return await waiter.result()
