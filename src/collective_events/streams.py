"""Stream names and event type tags."""

from enum import Enum


class Stream(str, Enum):
    """Fixed stream names. Every event type lives on exactly one of these."""

    USER = "user.events"
    CONTENT = "content.events"
    CONTEXTUAL = "contextual.events"
    MARKET = "market.events"
    AI = "ai.events"
    NOTIFICATION = "notification.events"
    SYSTEM = "system.events"


class EventType(str, Enum):
    """Closed set of event type tags."""

    USER_REGISTERED = "user.registered"
    USER_LOGIN = "user.login"
    USER_PREFERENCES_UPDATED = "user.preferences.updated"

    FILE_UPLOADED = "file.uploaded"
    FILE_PROCESSING_STARTED = "file.processing.started"
    FILE_PROCESSING_COMPLETED = "file.processing.completed"
    EMBEDDING_GENERATION_REQUESTED = "embedding.generation.requested"
    EMBEDDING_GENERATION_COMPLETED = "embedding.generation.completed"

    AI_CONTENT_GENERATION_REQUESTED = "ai.content.generation.requested"
    AI_CONTENT_GENERATION_COMPLETED = "ai.content.generation.completed"
    AI_CONSULTATION_REQUESTED = "ai.consultation.requested"
    AI_CONSULTATION_COMPLETED = "ai.consultation.completed"

    MARKET_DATA_COLLECTION_STARTED = "market.data.collection.started"
    MARKET_DATA_COLLECTED = "market.data.collected"
    MARKET_TREND_DETECTED = "market.trend.detected"

    NOTIFICATION_SEND_REQUESTED = "notification.send.requested"
    NOTIFICATION_DELIVERED = "notification.delivered"
    BRIEFING_GENERATION_SCHEDULED = "briefing.generation.scheduled"

    SYSTEM_SERVICE_HEALTH = "system.service.health"
    SYSTEM_ERROR_CRITICAL = "system.error.critical"
    SYSTEM_PERFORMANCE_DEGRADED = "system.performance.degraded"


STREAM_NAMES = frozenset(s.value for s in Stream)
EVENT_TYPES = frozenset(t.value for t in EventType)
