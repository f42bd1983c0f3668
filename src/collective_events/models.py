"""Data models for stream entries and broker replies."""

from dataclasses import dataclass, field
from functools import cached_property
from typing import Dict, Optional

from collective_events.codec import decode_event
from collective_events.schemas import BaseEvent


@dataclass
class StreamEntry:
    """One entry read from a stream: broker id plus raw wire fields."""

    message_id: str
    stream: str
    fields: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_redis(cls, stream: str, message_id: str, values: dict) -> "StreamEntry":
        """Create StreamEntry from Redis message format.

        Args:
            stream: Stream name
            message_id: Redis message ID
            values: Message values dict

        Returns:
            StreamEntry instance
        """
        return cls(message_id=message_id, stream=stream, fields=dict(values or {}))

    @property
    def event_type(self) -> str:
        return self.fields.get("type", "")

    @property
    def correlation_id(self) -> Optional[str]:
        return self.fields.get("correlation_id") or None

    @cached_property
    def event(self) -> BaseEvent:
        """Decoded event. Raises the codec's errors for malformed entries."""
        return decode_event(self.fields, message_id=self.message_id)


@dataclass
class PendingMessage:
    """Represents a pending (unacknowledged) message."""

    id: str
    consumer: str
    idle_ms: int
    delivered: int
    stream: str = ""
    group: str = ""

    @classmethod
    def from_redis(
        cls, stream: str, group: str, pending: dict
    ) -> "PendingMessage":
        """Create PendingMessage from Redis XPENDING format.

        Args:
            stream: Stream name
            group: Consumer group name
            pending: Pending entry from XPENDING

        Returns:
            PendingMessage instance
        """
        return cls(
            id=pending["message_id"],
            consumer=pending["consumer"],
            idle_ms=pending["time_since_delivered"],
            delivered=pending["times_delivered"],
            stream=stream,
            group=group,
        )


@dataclass
class StreamInfo:
    """Stream information."""

    name: str
    length: int
    first_entry_id: Optional[str] = None
    last_entry_id: Optional[str] = None
    last_generated_id: Optional[str] = None
    groups: int = 0

    @classmethod
    def from_redis(cls, name: str, info: dict) -> "StreamInfo":
        """Create StreamInfo from Redis XINFO STREAM output."""
        first_entry = info.get("first-entry")
        last_entry = info.get("last-entry")
        return cls(
            name=name,
            length=info.get("length", 0),
            first_entry_id=first_entry[0] if first_entry else None,
            last_entry_id=last_entry[0] if last_entry else None,
            last_generated_id=info.get("last-generated-id"),
            groups=info.get("groups", 0),
        )


@dataclass
class ConsumerGroupInfo:
    """Consumer group information."""

    name: str
    stream: str
    consumers: int
    pending: int
    last_delivered_id: str = ""
    lag: Optional[int] = None

    @classmethod
    def from_redis(cls, stream: str, group: str, info: dict) -> "ConsumerGroupInfo":
        """Create ConsumerGroupInfo from Redis XINFO GROUPS output.

        ``lag`` is only reported by Redis 7+, and is None when the server
        cannot compute it.
        """
        return cls(
            name=group,
            stream=stream,
            consumers=info.get("consumers", 0),
            pending=info.get("pending", 0),
            last_delivered_id=info.get("last-delivered-id", ""),
            lag=info.get("lag"),
        )
