"""Event schema registry.

Maps each event type tag to the pydantic model that describes its full
envelope and payload. Registration happens at import time, when the schema
classes are defined, and enforces the static type -> stream binding:

- the type tag must be one of ``EventType``
- ``type`` and ``stream`` must be single-value ``Literal`` fields whose
  defaults match the literal
- the stream must be one of ``Stream``
- a type tag may only ever be bound to one schema

Validation is explicit: ``validate()`` returns the typed event or raises
``SchemaValidationError``.
"""

import logging
from typing import Any, Dict, Iterator, List, Literal, Mapping, Type, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from collective_events.exceptions import (
    SchemaRegistrationError,
    SchemaValidationError,
    UnknownEventTypeError,
)
from collective_events.streams import EVENT_TYPES, STREAM_NAMES

logger = logging.getLogger(__name__)


def _literal_value(schema: Type[BaseModel], field_name: str) -> str:
    """Return the single literal value a schema pins for a field."""
    field = schema.model_fields.get(field_name)
    if field is None:
        raise SchemaRegistrationError(f"{schema.__name__} has no '{field_name}' field")

    annotation = field.annotation
    args = get_args(annotation)
    if get_origin(annotation) is not Literal or len(args) != 1:
        raise SchemaRegistrationError(
            f"{schema.__name__}.{field_name} must be a single-value Literal"
        )

    value = args[0]
    if field.default != value:
        raise SchemaRegistrationError(
            f"{schema.__name__}.{field_name} default must be {value!r}"
        )
    return value


class EventSchemaRegistry:
    """Registry of event schemas keyed by type tag."""

    def __init__(self):
        self._schemas: Dict[str, Type[BaseModel]] = {}

    def register(self, event_type: str, schema: Type[BaseModel]) -> Type[BaseModel]:
        """Bind an event type tag to its schema.

        Args:
            event_type: Event type tag (e.g., "user.registered")
            schema: Pydantic model for the full envelope + payload

        Returns:
            The schema, so this can back a class decorator

        Raises:
            SchemaRegistrationError: If the binding rules are violated
        """
        event_type = getattr(event_type, "value", event_type)
        if event_type not in EVENT_TYPES:
            raise SchemaRegistrationError(f"Unknown event type tag: {event_type}")

        type_tag = _literal_value(schema, "type")
        if type_tag != event_type:
            raise SchemaRegistrationError(
                f"{schema.__name__} pins type {type_tag!r}, not {event_type!r}"
            )

        stream = _literal_value(schema, "stream")
        if stream not in STREAM_NAMES:
            raise SchemaRegistrationError(
                f"{schema.__name__} is bound to unknown stream {stream!r}"
            )

        existing = self._schemas.get(event_type)
        if existing is not None and existing is not schema:
            raise SchemaRegistrationError(
                f"Event type {event_type} is already bound to {existing.__name__}"
            )

        self._schemas[event_type] = schema
        logger.debug(f"Registered schema {schema.__name__} for {event_type} on {stream}")
        return schema

    def event_schema(self, schema: Type[BaseModel]) -> Type[BaseModel]:
        """Class decorator that registers a schema under its pinned type tag."""
        return self.register(_literal_value(schema, "type"), schema)

    def get(self, event_type: str) -> Type[BaseModel]:
        """Get the schema bound to an event type.

        Raises:
            UnknownEventTypeError: If the type is not registered
        """
        event_type = getattr(event_type, "value", event_type)
        try:
            return self._schemas[event_type]
        except KeyError:
            raise UnknownEventTypeError(event_type) from None

    def stream_for(self, event_type: str) -> str:
        """Get the stream an event type is bound to."""
        return _literal_value(self.get(event_type), "stream")

    def validate(self, event_type: str, candidate: Union[BaseModel, Mapping[str, Any]]) -> BaseModel:
        """Validate a candidate against the schema bound to ``event_type``.

        Args:
            event_type: Event type tag
            candidate: An event model or a mapping of envelope fields

        Returns:
            Typed event model

        Raises:
            UnknownEventTypeError: If the type is not registered
            SchemaValidationError: If the candidate does not match
        """
        schema = self.get(event_type)
        event_type = getattr(event_type, "value", event_type)

        if isinstance(candidate, BaseModel):
            candidate = candidate.model_dump()

        try:
            return schema.model_validate(candidate)
        except ValidationError as e:
            raise SchemaValidationError(event_type, e.errors(include_url=False)) from e

    def event_types(self) -> List[str]:
        """List registered event types."""
        return sorted(self._schemas)

    def __contains__(self, event_type: object) -> bool:
        return getattr(event_type, "value", event_type) in self._schemas

    def __iter__(self) -> Iterator[str]:
        return iter(self.event_types())

    def __len__(self) -> int:
        return len(self._schemas)


# Registry populated by collective_events.schemas at import time
schema_registry = EventSchemaRegistry()
event_schema = schema_registry.event_schema
