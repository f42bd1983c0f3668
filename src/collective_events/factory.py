"""Event factories.

``create_event`` fills ``id`` and ``timestamp`` on a partial envelope. The
typed factories below additionally pin ``stream``, ``type`` and ``version``
and shape ``data`` from keyword arguments, so an event cannot be routed to
the wrong stream.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Type, Union
from uuid import UUID

from pydantic import ValidationError
from ulid import ULID

from collective_events.exceptions import SchemaValidationError
from collective_events.registry import EventSchemaRegistry, schema_registry
from collective_events.schemas import (
    AIConsultationCompletedEvent,
    AIConsultationRequestedEvent,
    AIContentGenerationCompletedEvent,
    AIContentGenerationRequestedEvent,
    BaseEvent,
    BriefingGenerationScheduledEvent,
    EmbeddingGenerationCompletedEvent,
    EmbeddingGenerationRequestedEvent,
    FileProcessingCompletedEvent,
    FileProcessingStartedEvent,
    FileUploadedEvent,
    MarketDataCollectedEvent,
    MarketDataCollectionStartedEvent,
    MarketTrendDetectedEvent,
    NotificationDeliveredEvent,
    NotificationSendRequestedEvent,
    SystemErrorCriticalEvent,
    SystemPerformanceDegradedEvent,
    SystemServiceHealthEvent,
    UserLoginEvent,
    UserPreferencesUpdatedEvent,
    UserRegisteredEvent,
)

UUIDLike = Union[UUID, str]


class _EventClock:
    """Process-wide source of event ids and timestamps.

    Ids are strictly increasing in generation order; a ULID drawn in the
    same millisecond as the previous one is replaced by previous + 1.
    Timestamps have millisecond resolution (the wire resolution) and never
    go backwards.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last_id: Optional[ULID] = None
        self._last_timestamp: Optional[datetime] = None

    def next_id(self) -> str:
        with self._lock:
            candidate = ULID()
            if self._last_id is not None and int(candidate) <= int(self._last_id):
                candidate = ULID.from_int(int(self._last_id) + 1)
            self._last_id = candidate
            return str(candidate)

    def now(self) -> datetime:
        with self._lock:
            now = datetime.now(timezone.utc)
            now = now.replace(microsecond=(now.microsecond // 1000) * 1000)
            if self._last_timestamp is not None and now < self._last_timestamp:
                now = self._last_timestamp
            self._last_timestamp = now
            return now


_clock = _EventClock()


def new_event_id() -> str:
    """Generate a fresh, time-sortable event id (ULID)."""
    return _clock.next_id()


def event_timestamp() -> datetime:
    """Current UTC time, truncated to milliseconds, monotonic per process."""
    return _clock.now()


def create_event(
    partial: Mapping[str, Any],
    registry: EventSchemaRegistry = schema_registry,
) -> BaseEvent:
    """Create a fully populated event from a partial envelope.

    ``id`` and ``timestamp`` are always assigned here; every other field is
    passed through unchanged and validated against the schema bound to
    ``partial["type"]``.

    Args:
        partial: Envelope fields without id/timestamp (stream, type, data, ...)
        registry: Schema registry to validate against

    Returns:
        Typed event model

    Raises:
        UnknownEventTypeError: If the type is not registered
        SchemaValidationError: If the fields do not match the schema
    """
    fields = {k: v for k, v in partial.items() if k not in ("id", "timestamp")}
    event_type = fields.get("type")
    if not event_type:
        raise SchemaValidationError(
            "", [{"loc": ("type",), "msg": "Field required", "type": "missing"}]
        )

    fields["id"] = new_event_id()
    fields["timestamp"] = event_timestamp()
    return registry.validate(event_type, fields)


def _build(
    schema: Type[BaseEvent],
    data: Dict[str, Any],
    user_id: Optional[UUIDLike] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> BaseEvent:
    try:
        return schema(
            id=new_event_id(),
            timestamp=event_timestamp(),
            version=1,
            correlation_id=correlation_id,
            user_id=user_id,
            metadata=metadata or {},
            data=data,
        )
    except ValidationError as e:
        event_type = schema.model_fields["type"].default
        raise SchemaValidationError(event_type, e.errors(include_url=False)) from e


# User events

def create_user_registered_event(
    *,
    user_id: UUIDLike,
    email: str,
    tier: str,
    referral_source: Optional[str] = None,
    correlation_id: Optional[str] = None,
    acting_user_id: Optional[UUIDLike] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> UserRegisteredEvent:
    """Create a user.registered event.

    The envelope ``user_id`` is the acting user (``acting_user_id``), which
    is usually absent at registration time; the new account's id goes in the
    payload.
    """
    return _build(
        UserRegisteredEvent,
        {
            "user_id": user_id,
            "email": email,
            "tier": tier,
            "referral_source": referral_source,
        },
        user_id=acting_user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_user_login_event(
    *,
    user_id: UUIDLike,
    ip_address: str,
    user_agent: str,
    success: bool,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> UserLoginEvent:
    return _build(
        UserLoginEvent,
        {
            "user_id": user_id,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "success": success,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_user_preferences_updated_event(
    *,
    user_id: UUIDLike,
    changed_fields: List[str],
    old_values: Dict[str, Any],
    new_values: Dict[str, Any],
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> UserPreferencesUpdatedEvent:
    return _build(
        UserPreferencesUpdatedEvent,
        {
            "user_id": user_id,
            "changed_fields": changed_fields,
            "old_values": old_values,
            "new_values": new_values,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


# Contextual events

def create_file_uploaded_event(
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
) -> FileUploadedEvent:
    return _build(
        FileUploadedEvent,
        {
            "file_id": file_id,
            "user_id": user_id,
            "contextual_core_id": contextual_core_id,
            "filename": filename,
            "file_size": file_size,
            "mime_type": mime_type,
            "is_browser_viewable": is_browser_viewable,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_file_processing_started_event(
    *,
    file_id: UUIDLike,
    processing_type: str,
    estimated_duration_ms: float,
    user_id: Optional[UUIDLike] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> FileProcessingStartedEvent:
    return _build(
        FileProcessingStartedEvent,
        {
            "file_id": file_id,
            "processing_type": processing_type,
            "estimated_duration_ms": estimated_duration_ms,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_file_processing_completed_event(
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
) -> FileProcessingCompletedEvent:
    return _build(
        FileProcessingCompletedEvent,
        {
            "file_id": file_id,
            "processing_type": processing_type,
            "processing_time_ms": processing_time_ms,
            "extracted_text_length": extracted_text_length,
            "embedding_model_used": embedding_model_used,
            "success": success,
            "error": error,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_embedding_generation_requested_event(
    *,
    text_content: str,
    content_hash: str,
    user_id: UUIDLike,
    contextual_core_id: UUIDLike,
    priority: str,
    preferred_model: Optional[str] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> EmbeddingGenerationRequestedEvent:
    return _build(
        EmbeddingGenerationRequestedEvent,
        {
            "text_content": text_content,
            "content_hash": content_hash,
            "user_id": user_id,
            "contextual_core_id": contextual_core_id,
            "preferred_model": preferred_model,
            "priority": priority,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_embedding_generation_completed_event(
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
) -> EmbeddingGenerationCompletedEvent:
    return _build(
        EmbeddingGenerationCompletedEvent,
        {
            "embedding_id": embedding_id,
            "content_hash": content_hash,
            "model_id": model_id,
            "dimensions": dimensions,
            "generation_time_ms": generation_time_ms,
            "cost_usd": cost_usd,
            "quality_score": quality_score,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


# AI events

def create_ai_content_generation_requested_event(
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
) -> AIContentGenerationRequestedEvent:
    return _build(
        AIContentGenerationRequestedEvent,
        {
            "request_id": request_id,
            "user_id": user_id,
            "contextual_core_id": contextual_core_id,
            "content_type": content_type,
            "prompt_template": prompt_template,
            "ai_provider": ai_provider,
            "max_tokens": max_tokens,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_ai_content_generation_completed_event(
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
) -> AIContentGenerationCompletedEvent:
    return _build(
        AIContentGenerationCompletedEvent,
        {
            "request_id": request_id,
            "content_draft_id": content_draft_id,
            "generated_content": generated_content,
            "ai_provider": ai_provider,
            "model_used": model_used,
            "tokens_used": tokens_used,
            "generation_time_ms": generation_time_ms,
            "cost_usd": cost_usd,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_ai_consultation_requested_event(
    *,
    session_id: UUIDLike,
    user_id: UUIDLike,
    contextual_core_id: UUIDLike,
    query: str,
    session_type: str,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AIConsultationRequestedEvent:
    return _build(
        AIConsultationRequestedEvent,
        {
            "session_id": session_id,
            "user_id": user_id,
            "contextual_core_id": contextual_core_id,
            "query": query,
            "session_type": session_type,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_ai_consultation_completed_event(
    *,
    session_id: UUIDLike,
    response: str,
    confidence_score: float,
    market_data_referenced: List[UUIDLike],
    ai_provider: str,
    tokens_used: float,
    user_id: Optional[UUIDLike] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AIConsultationCompletedEvent:
    return _build(
        AIConsultationCompletedEvent,
        {
            "session_id": session_id,
            "response": response,
            "confidence_score": confidence_score,
            "market_data_referenced": market_data_referenced,
            "ai_provider": ai_provider,
            "tokens_used": tokens_used,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


# Market events

def create_market_data_collection_started_event(
    *,
    collection_id: UUIDLike,
    data_source: str,
    keywords: List[str],
    user_ids: List[UUIDLike],
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> MarketDataCollectionStartedEvent:
    return _build(
        MarketDataCollectionStartedEvent,
        {
            "collection_id": collection_id,
            "data_source": data_source,
            "keywords": keywords,
            "user_ids": user_ids,
        },
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_market_data_collected_event(
    *,
    collection_id: UUIDLike,
    data_source: str,
    data_type: str,
    records_collected: float,
    collection_time_ms: float,
    data_quality_score: float,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> MarketDataCollectedEvent:
    return _build(
        MarketDataCollectedEvent,
        {
            "collection_id": collection_id,
            "data_source": data_source,
            "data_type": data_type,
            "records_collected": records_collected,
            "collection_time_ms": collection_time_ms,
            "data_quality_score": data_quality_score,
        },
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_market_trend_detected_event(
    *,
    trend_id: UUIDLike,
    trend_type: str,
    keywords: List[str],
    confidence_score: float,
    affected_users: List[UUIDLike],
    trend_data: Dict[str, Any],
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> MarketTrendDetectedEvent:
    return _build(
        MarketTrendDetectedEvent,
        {
            "trend_id": trend_id,
            "trend_type": trend_type,
            "keywords": keywords,
            "confidence_score": confidence_score,
            "affected_users": affected_users,
            "trend_data": trend_data,
        },
        correlation_id=correlation_id,
        metadata=metadata,
    )


# Notification events

def create_notification_send_requested_event(
    *,
    user_id: UUIDLike,
    notification_type: str,
    channels: List[str],
    message: Dict[str, Any],
    priority: str,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> NotificationSendRequestedEvent:
    """Create a notification.send.requested event.

    ``message`` is a mapping with ``title``, ``body`` and optional
    ``action_url``.
    """
    return _build(
        NotificationSendRequestedEvent,
        {
            "user_id": user_id,
            "notification_type": notification_type,
            "channels": channels,
            "message": message,
            "priority": priority,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_notification_delivered_event(
    *,
    notification_id: UUIDLike,
    user_id: UUIDLike,
    channel: str,
    delivery_time_ms: float,
    success: bool,
    error: Optional[str] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> NotificationDeliveredEvent:
    return _build(
        NotificationDeliveredEvent,
        {
            "notification_id": notification_id,
            "user_id": user_id,
            "channel": channel,
            "delivery_time_ms": delivery_time_ms,
            "success": success,
            "error": error,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_briefing_generation_scheduled_event(
    *,
    user_id: UUIDLike,
    contextual_core_id: UUIDLike,
    briefing_period: str,
    scheduled_time: datetime,
    period_start: datetime,
    period_end: datetime,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> BriefingGenerationScheduledEvent:
    return _build(
        BriefingGenerationScheduledEvent,
        {
            "user_id": user_id,
            "contextual_core_id": contextual_core_id,
            "briefing_period": briefing_period,
            "scheduled_time": scheduled_time,
            "period_start": period_start,
            "period_end": period_end,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


# System events

def create_system_service_health_event(
    *,
    service_name: str,
    status: str,
    response_time_ms: float,
    memory_usage_mb: float,
    cpu_usage_percent: float,
    error_rate: float,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> SystemServiceHealthEvent:
    return _build(
        SystemServiceHealthEvent,
        {
            "service_name": service_name,
            "status": status,
            "response_time_ms": response_time_ms,
            "memory_usage_mb": memory_usage_mb,
            "cpu_usage_percent": cpu_usage_percent,
            "error_rate": error_rate,
        },
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_system_error_critical_event(
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
) -> SystemErrorCriticalEvent:
    return _build(
        SystemErrorCriticalEvent,
        {
            "service_name": service_name,
            "error_type": error_type,
            "error_message": error_message,
            "stack_trace": stack_trace,
            "user_id": user_id,
            "request_id": request_id,
            "requires_immediate_attention": requires_immediate_attention,
        },
        user_id=user_id,
        correlation_id=correlation_id,
        metadata=metadata,
    )


def create_system_performance_degraded_event(
    *,
    metric_name: str,
    current_value: float,
    threshold_value: float,
    affected_services: List[str],
    suggested_actions: List[str],
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> SystemPerformanceDegradedEvent:
    return _build(
        SystemPerformanceDegradedEvent,
        {
            "metric_name": metric_name,
            "current_value": current_value,
            "threshold_value": threshold_value,
            "affected_services": affected_services,
            "suggested_actions": suggested_actions,
        },
        correlation_id=correlation_id,
        metadata=metadata,
    )
