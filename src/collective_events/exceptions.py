"""Event bus exception classes."""

from typing import Any, List, Optional


class EventBusError(Exception):
    """Base exception for event bus errors."""
    pass


class NotConnectedError(EventBusError):
    """Raised when an operation needs a broker connection that is not open."""
    def __init__(self, message: str = "EventClient is not connected. Call connect() first."):
        super().__init__(message)


class BrokerError(EventBusError):
    """Raised when the broker rejects a command or the transport fails."""
    pass


class UnknownEventTypeError(EventBusError):
    """Raised when an event type has no registered schema."""
    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unknown event type: {event_type}")


class SchemaRegistrationError(EventBusError):
    """Raised when an event schema breaks the type/stream binding rules."""
    pass


class SchemaValidationError(EventBusError):
    """Raised when an event does not match the schema bound to its type."""
    def __init__(self, event_type: str, issues: Optional[List[Any]] = None):
        self.event_type = event_type
        self.issues = issues or []
        msg = f"Event does not match schema for {event_type}"
        if self.issues:
            msg += f" ({len(self.issues)} issue{'s' if len(self.issues) != 1 else ''})"
        super().__init__(msg)


class EventDecodeError(EventBusError):
    """Raised when a stream record cannot be converted back into an event."""
    def __init__(self, message: str, message_id: Optional[str] = None):
        self.message_id = message_id
        if message_id:
            message = f"{message} (message: {message_id})"
        super().__init__(message)


class EventTimeoutError(EventBusError, TimeoutError):
    """Raised when no matching event arrives before the wait deadline."""
    def __init__(self, event_type: str, correlation_id: str, timeout_ms: int):
        self.event_type = event_type
        self.correlation_id = correlation_id
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Timeout waiting for event {event_type} with correlation ID "
            f"{correlation_id} after {timeout_ms}ms"
        )


class StreamNotFoundError(EventBusError):
    """Raised when a stream does not exist."""
    def __init__(self, stream: str):
        self.stream = stream
        super().__init__(f"Stream not found: {stream}")


class GroupNotFoundError(EventBusError):
    """Raised when a consumer group does not exist."""
    def __init__(self, group: str, stream: str = None):
        self.group = group
        self.stream = stream
        msg = f"Consumer group not found: {group}"
        if stream:
            msg += f" (stream: {stream})"
        super().__init__(msg)


class WaitCancelledError(EventBusError):
    """Raised from EventWaiter.result() after the wait was cancelled."""
    def __init__(self, event_type: str, correlation_id: str):
        self.event_type = event_type
        self.correlation_id = correlation_id
        super().__init__(
            f"Wait for event {event_type} with correlation ID {correlation_id} was cancelled"
        )
