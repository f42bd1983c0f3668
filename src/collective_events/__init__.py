# Collective Strategist event bus
#
# Typed, durable, ordered publish/consume over Redis Streams, shared by the
# core API, AI workers, notification workers and market-data collectors.
#
# Key features:
# - One pydantic schema per event type, statically bound to one stream
# - ULID event ids, monotonic within a process
# - Single wire codec shared by every producer and consumer
# - Consumer groups with at-least-once delivery
# - Correlation waits for request/response over streams

from collective_events.client import EventClient
from collective_events.codec import decode_event, encode_event
from collective_events.config import EventBusSettings, load_event_bus_settings
from collective_events.consumer import ConsumerGroupManager, StreamConsumer
from collective_events.exceptions import (
    BrokerError,
    EventBusError,
    EventDecodeError,
    EventTimeoutError,
    GroupNotFoundError,
    NotConnectedError,
    SchemaRegistrationError,
    SchemaValidationError,
    StreamNotFoundError,
    UnknownEventTypeError,
    WaitCancelledError,
)
from collective_events.factory import create_event, new_event_id
from collective_events.models import ConsumerGroupInfo, PendingMessage, StreamEntry, StreamInfo
from collective_events.monitoring import BackpressureMetrics, StreamMonitor
from collective_events.registry import EventSchemaRegistry, schema_registry
from collective_events.schemas import BaseEvent, Event, parse_event
from collective_events.streams import EventType, Stream
from collective_events.waiter import EventWaiter, WaitState

__version__ = "0.1.0"

__all__ = [
    "EventClient",
    "EventBusSettings",
    "load_event_bus_settings",
    "ConsumerGroupManager",
    "StreamConsumer",
    "EventWaiter",
    "WaitState",
    "StreamMonitor",
    "BackpressureMetrics",
    "EventSchemaRegistry",
    "schema_registry",
    "BaseEvent",
    "Event",
    "EventType",
    "Stream",
    "parse_event",
    "create_event",
    "new_event_id",
    "encode_event",
    "decode_event",
    "StreamEntry",
    "PendingMessage",
    "StreamInfo",
    "ConsumerGroupInfo",
    "EventBusError",
    "NotConnectedError",
    "BrokerError",
    "UnknownEventTypeError",
    "SchemaRegistrationError",
    "SchemaValidationError",
    "EventDecodeError",
    "EventTimeoutError",
    "WaitCancelledError",
    "GroupNotFoundError",
    "StreamNotFoundError",
]
