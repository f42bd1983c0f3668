"""Pydantic schemas for every event type.

Each event model pins its ``type`` and ``stream`` and carries a typed
``data`` payload. Defining a model registers it with ``schema_registry``.
``Event`` is the closed tagged union over all of them, discriminated on
``type``.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union
from uuid import UUID

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    NonNegativeFloat,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    TypeAdapter,
    ValidationError,
)

from collective_events.exceptions import SchemaValidationError
from collective_events.registry import event_schema

# Crockford base32, 26 characters
ULID_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"

# Counts and durations may arrive as int or float; each keeps its own type
Number = Union[int, float]


class EventPayload(BaseModel):
    """Base class for event payloads."""

    model_config = ConfigDict(frozen=True)


class BaseEvent(BaseModel):
    """Envelope shared by every event."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., pattern=ULID_PATTERN, description="ULID assigned at creation")
    stream: str
    type: str
    version: int = Field(default=1, ge=1, description="Payload schema revision")
    timestamp: AwareDatetime
    correlation_id: Optional[str] = None
    user_id: Optional[UUID] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


# User events

class UserRegisteredData(EventPayload):
    user_id: UUID
    email: EmailStr
    tier: Literal["sovereign_circle", "individual_pro"]
    referral_source: Optional[str] = None


@event_schema
class UserRegisteredEvent(BaseEvent):
    type: Literal["user.registered"] = "user.registered"
    stream: Literal["user.events"] = "user.events"
    data: UserRegisteredData


class UserLoginData(EventPayload):
    user_id: UUID
    ip_address: str
    user_agent: str
    success: bool


@event_schema
class UserLoginEvent(BaseEvent):
    type: Literal["user.login"] = "user.login"
    stream: Literal["user.events"] = "user.events"
    data: UserLoginData


class UserPreferencesUpdatedData(EventPayload):
    user_id: UUID
    changed_fields: List[str]
    old_values: Dict[str, Any]
    new_values: Dict[str, Any]


@event_schema
class UserPreferencesUpdatedEvent(BaseEvent):
    type: Literal["user.preferences.updated"] = "user.preferences.updated"
    stream: Literal["user.events"] = "user.events"
    data: UserPreferencesUpdatedData


# Contextual events

class FileUploadedData(EventPayload):
    file_id: UUID
    user_id: UUID
    contextual_core_id: UUID
    filename: str
    file_size: Union[NonNegativeInt, NonNegativeFloat]
    mime_type: str
    is_browser_viewable: bool


@event_schema
class FileUploadedEvent(BaseEvent):
    type: Literal["file.uploaded"] = "file.uploaded"
    stream: Literal["contextual.events"] = "contextual.events"
    data: FileUploadedData


class FileProcessingStartedData(EventPayload):
    file_id: UUID
    processing_type: Literal["text_extraction", "embedding_generation", "metadata_analysis"]
    estimated_duration_ms: Number


@event_schema
class FileProcessingStartedEvent(BaseEvent):
    type: Literal["file.processing.started"] = "file.processing.started"
    stream: Literal["contextual.events"] = "contextual.events"
    data: FileProcessingStartedData


class FileProcessingCompletedData(EventPayload):
    file_id: UUID
    processing_type: str
    processing_time_ms: Number
    extracted_text_length: Optional[Number] = None
    embedding_model_used: Optional[str] = None
    success: bool
    error: Optional[str] = None


@event_schema
class FileProcessingCompletedEvent(BaseEvent):
    type: Literal["file.processing.completed"] = "file.processing.completed"
    stream: Literal["contextual.events"] = "contextual.events"
    data: FileProcessingCompletedData


class EmbeddingGenerationRequestedData(EventPayload):
    text_content: str
    content_hash: str
    user_id: UUID
    contextual_core_id: UUID
    preferred_model: Optional[str] = None
    priority: Literal["low", "normal", "high"]


@event_schema
class EmbeddingGenerationRequestedEvent(BaseEvent):
    type: Literal["embedding.generation.requested"] = "embedding.generation.requested"
    stream: Literal["contextual.events"] = "contextual.events"
    data: EmbeddingGenerationRequestedData


class EmbeddingGenerationCompletedData(EventPayload):
    embedding_id: UUID
    content_hash: str
    model_id: UUID
    dimensions: Number
    generation_time_ms: Number
    cost_usd: float
    quality_score: Optional[float] = None


@event_schema
class EmbeddingGenerationCompletedEvent(BaseEvent):
    type: Literal["embedding.generation.completed"] = "embedding.generation.completed"
    stream: Literal["contextual.events"] = "contextual.events"
    data: EmbeddingGenerationCompletedData


# AI events

class AIContentGenerationRequestedData(EventPayload):
    request_id: UUID
    user_id: UUID
    contextual_core_id: UUID
    content_type: Literal["social_post", "blog_article", "marketing_copy", "email"]
    prompt_template: str
    ai_provider: str
    max_tokens: Union[PositiveInt, PositiveFloat]


@event_schema
class AIContentGenerationRequestedEvent(BaseEvent):
    type: Literal["ai.content.generation.requested"] = "ai.content.generation.requested"
    stream: Literal["ai.events"] = "ai.events"
    data: AIContentGenerationRequestedData


class AIContentGenerationCompletedData(EventPayload):
    request_id: UUID
    content_draft_id: UUID
    generated_content: str
    ai_provider: str
    model_used: str
    tokens_used: Number
    generation_time_ms: Number
    cost_usd: float


@event_schema
class AIContentGenerationCompletedEvent(BaseEvent):
    type: Literal["ai.content.generation.completed"] = "ai.content.generation.completed"
    stream: Literal["ai.events"] = "ai.events"
    data: AIContentGenerationCompletedData


class AIConsultationRequestedData(EventPayload):
    session_id: UUID
    user_id: UUID
    contextual_core_id: UUID
    query: str
    session_type: Literal["strategic_advice", "trend_analysis", "goal_planning"]


@event_schema
class AIConsultationRequestedEvent(BaseEvent):
    type: Literal["ai.consultation.requested"] = "ai.consultation.requested"
    stream: Literal["ai.events"] = "ai.events"
    data: AIConsultationRequestedData


class AIConsultationCompletedData(EventPayload):
    session_id: UUID
    response: str
    confidence_score: float
    market_data_referenced: List[UUID]
    ai_provider: str
    tokens_used: Number


@event_schema
class AIConsultationCompletedEvent(BaseEvent):
    type: Literal["ai.consultation.completed"] = "ai.consultation.completed"
    stream: Literal["ai.events"] = "ai.events"
    data: AIConsultationCompletedData


# Market events

class MarketDataCollectionStartedData(EventPayload):
    collection_id: UUID
    data_source: Literal["reddit", "google_trends", "rss_feeds"]
    keywords: List[str]
    user_ids: List[UUID]


@event_schema
class MarketDataCollectionStartedEvent(BaseEvent):
    type: Literal["market.data.collection.started"] = "market.data.collection.started"
    stream: Literal["market.events"] = "market.events"
    data: MarketDataCollectionStartedData


class MarketDataCollectedData(EventPayload):
    collection_id: UUID
    data_source: str
    data_type: Literal["engagement", "trend", "competitor_activity"]
    records_collected: Number
    collection_time_ms: Number
    data_quality_score: float


@event_schema
class MarketDataCollectedEvent(BaseEvent):
    type: Literal["market.data.collected"] = "market.data.collected"
    stream: Literal["market.events"] = "market.events"
    data: MarketDataCollectedData


class MarketTrendDetectedData(EventPayload):
    trend_id: UUID
    trend_type: Literal["rising", "declining", "stable"]
    keywords: List[str]
    confidence_score: float
    affected_users: List[UUID]
    trend_data: Dict[str, Any]


@event_schema
class MarketTrendDetectedEvent(BaseEvent):
    type: Literal["market.trend.detected"] = "market.trend.detected"
    stream: Literal["market.events"] = "market.events"
    data: MarketTrendDetectedData


# Notification events

class NotificationMessage(EventPayload):
    title: str
    body: str
    action_url: Optional[str] = None


class NotificationSendRequestedData(EventPayload):
    user_id: UUID
    notification_type: Literal["briefing_ready", "system_alert", "content_suggestion"]
    channels: List[Literal["email", "push", "websocket"]]
    message: NotificationMessage
    priority: Literal["low", "normal", "high", "critical"]


@event_schema
class NotificationSendRequestedEvent(BaseEvent):
    type: Literal["notification.send.requested"] = "notification.send.requested"
    stream: Literal["notification.events"] = "notification.events"
    data: NotificationSendRequestedData


class NotificationDeliveredData(EventPayload):
    notification_id: UUID
    user_id: UUID
    channel: str
    delivery_time_ms: Number
    success: bool
    error: Optional[str] = None


@event_schema
class NotificationDeliveredEvent(BaseEvent):
    type: Literal["notification.delivered"] = "notification.delivered"
    stream: Literal["notification.events"] = "notification.events"
    data: NotificationDeliveredData


class BriefingGenerationScheduledData(EventPayload):
    user_id: UUID
    contextual_core_id: UUID
    briefing_period: Literal["weekly", "monthly"]
    scheduled_time: datetime
    period_start: datetime
    period_end: datetime


@event_schema
class BriefingGenerationScheduledEvent(BaseEvent):
    type: Literal["briefing.generation.scheduled"] = "briefing.generation.scheduled"
    stream: Literal["notification.events"] = "notification.events"
    data: BriefingGenerationScheduledData


# System events

class SystemServiceHealthData(EventPayload):
    service_name: str
    status: Literal["healthy", "degraded", "unhealthy"]
    response_time_ms: float
    memory_usage_mb: float
    cpu_usage_percent: float
    error_rate: float


@event_schema
class SystemServiceHealthEvent(BaseEvent):
    type: Literal["system.service.health"] = "system.service.health"
    stream: Literal["system.events"] = "system.events"
    data: SystemServiceHealthData


class SystemErrorCriticalData(EventPayload):
    service_name: str
    error_type: str
    error_message: str
    stack_trace: str
    user_id: Optional[UUID] = None
    request_id: Optional[str] = None
    requires_immediate_attention: bool


@event_schema
class SystemErrorCriticalEvent(BaseEvent):
    type: Literal["system.error.critical"] = "system.error.critical"
    stream: Literal["system.events"] = "system.events"
    data: SystemErrorCriticalData


class SystemPerformanceDegradedData(EventPayload):
    metric_name: str
    current_value: float
    threshold_value: float
    affected_services: List[str]
    suggested_actions: List[str]


@event_schema
class SystemPerformanceDegradedEvent(BaseEvent):
    type: Literal["system.performance.degraded"] = "system.performance.degraded"
    stream: Literal["system.events"] = "system.events"
    data: SystemPerformanceDegradedData


Event = Annotated[
    Union[
        UserRegisteredEvent,
        UserLoginEvent,
        UserPreferencesUpdatedEvent,
        FileUploadedEvent,
        FileProcessingStartedEvent,
        FileProcessingCompletedEvent,
        EmbeddingGenerationRequestedEvent,
        EmbeddingGenerationCompletedEvent,
        AIContentGenerationRequestedEvent,
        AIContentGenerationCompletedEvent,
        AIConsultationRequestedEvent,
        AIConsultationCompletedEvent,
        MarketDataCollectionStartedEvent,
        MarketDataCollectedEvent,
        MarketTrendDetectedEvent,
        NotificationSendRequestedEvent,
        NotificationDeliveredEvent,
        BriefingGenerationScheduledEvent,
        SystemServiceHealthEvent,
        SystemErrorCriticalEvent,
        SystemPerformanceDegradedEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(Event)


def parse_event(candidate: Mapping[str, Any]) -> BaseEvent:
    """Validate an arbitrary mapping against the event union.

    Raises:
        SchemaValidationError: If no variant matches
    """
    try:
        return _event_adapter.validate_python(candidate)
    except ValidationError as e:
        event_type = candidate.get("type", "") if isinstance(candidate, Mapping) else ""
        raise SchemaValidationError(str(event_type), e.errors(include_url=False)) from e
