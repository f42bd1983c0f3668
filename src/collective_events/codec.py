"""Wire codec: typed events <-> flat string-keyed stream records.

Every value in a stream entry is a string:

    id              ULID
    stream          stream name
    type            event type tag
    version         decimal integer
    timestamp       ISO-8601, UTC, millisecond resolution, "Z" suffix
    correlation_id  value, or "" when absent
    user_id         value, or "" when absent
    data            JSON payload (None-valued fields omitted)
    metadata        JSON object, "{}" when empty

All producers and consumers go through ``encode_event``/``decode_event``.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from collective_events.exceptions import EventDecodeError
from collective_events.registry import EventSchemaRegistry, schema_registry
from collective_events.schemas import BaseEvent

WIRE_FIELDS = (
    "id",
    "stream",
    "type",
    "version",
    "timestamp",
    "correlation_id",
    "user_id",
    "data",
    "metadata",
)

REQUIRED_WIRE_FIELDS = ("id", "stream", "type", "version", "timestamp", "data")


def encode_timestamp(timestamp: datetime) -> str:
    """Render a datetime as an ISO-8601 UTC string with millisecond resolution."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def decode_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware datetime (naive values are UTC)."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    timestamp = datetime.fromisoformat(value)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def encode_event(event: BaseEvent) -> Dict[str, str]:
    """Convert an event into a stream record.

    Args:
        event: Typed event model

    Returns:
        Dict of wire field -> string value
    """
    metadata = event.model_dump(mode="json", include={"metadata"})["metadata"]
    return {
        "id": event.id,
        "stream": event.stream,
        "type": event.type,
        "version": str(event.version),
        "timestamp": encode_timestamp(event.timestamp),
        "correlation_id": event.correlation_id or "",
        "user_id": str(event.user_id) if event.user_id else "",
        "data": json.dumps(event.data.model_dump(mode="json", exclude_none=True)),
        "metadata": json.dumps(metadata or {}),
    }


def decode_event(
    fields: Mapping[str, str],
    registry: EventSchemaRegistry = schema_registry,
    message_id: Optional[str] = None,
) -> BaseEvent:
    """Convert a stream record back into a typed event.

    Args:
        fields: Stream entry values
        registry: Schema registry used to type the result
        message_id: Broker message id, for error messages

    Returns:
        Typed event model

    Raises:
        EventDecodeError: If the record is missing fields or holds malformed values
        UnknownEventTypeError: If the record's type is not registered
        SchemaValidationError: If the decoded event does not match its schema
    """
    missing = [name for name in REQUIRED_WIRE_FIELDS if name not in fields]
    if missing:
        raise EventDecodeError(f"Missing wire fields: {', '.join(missing)}", message_id)

    try:
        version = int(fields["version"])
    except ValueError as e:
        raise EventDecodeError(f"Invalid version: {fields['version']!r}", message_id) from e

    try:
        timestamp = decode_timestamp(fields["timestamp"])
    except ValueError as e:
        raise EventDecodeError(f"Invalid timestamp: {fields['timestamp']!r}", message_id) from e

    try:
        data = json.loads(fields["data"])
        metadata = json.loads(fields.get("metadata") or "{}")
    except json.JSONDecodeError as e:
        raise EventDecodeError(f"Invalid JSON: {e}", message_id) from e

    candidate: Dict[str, Any] = {
        "id": fields["id"],
        "stream": fields["stream"],
        "type": fields["type"],
        "version": version,
        "timestamp": timestamp,
        "correlation_id": fields.get("correlation_id") or None,
        "user_id": fields.get("user_id") or None,
        "data": data,
        "metadata": metadata,
    }
    return registry.validate(fields["type"], candidate)


def peek_routing(fields: Mapping[str, str]) -> Tuple[str, Optional[str]]:
    """Read ``(type, correlation_id)`` from a record without decoding it."""
    return fields.get("type", ""), fields.get("correlation_id") or None
