"""
Sentinela MQTT Communication Package
====================================

Bounded Context: Communication Protocol for Geofencing

MQTT-based messaging for the Sentinela geofence service: devices publish
location updates, the service publishes entry/exit transition batches.

Architecture:
- schemas/: Immutable data structures with type safety
- publishers/: Message producers (TransitionEventPublisher)
- subscriber.py: Message consumer (LocationSubscriber)
- logging/: Structured JSON logging for observability

Design Philosophy:
- Cohesion > Location: Each module has one reason to change
- Type Safety: Leverage Python typing for correctness
- Immutability: Use frozen dataclasses for message DTOs
- Observability: Structured logs (JSON) for production queries

Public API
----------
Schemas:
    Timestamp, SCHEMA_VERSION
    LocationUpdateMessage, TransitionEventMessage

Publishers:
    TransitionEventPublisher
    BasePublisher (for custom publishers)

Subscriber:
    LocationSubscriber

Logging:
    LogEvent, StructuredLogger, create_logger

Example (Geofence service):
    >>> from sentinela_mqtt import TransitionEventPublisher, create_logger
    >>>
    >>> publisher = TransitionEventPublisher(
    ...     broker_host="localhost",
    ...     topic="sentinela/geofence-1/transitions",
    ...     service_id="geofence-1",
    ...     logger=create_logger("transition_publisher")
    ... )
    >>> publisher.connect()
    >>> publisher.send(result.events)
"""

from .schemas import (
    SCHEMA_VERSION,
    Timestamp,
    LocationUpdateMessage,
    TransitionEventMessage,
)
from .publishers import BasePublisher, TransitionEventPublisher
from .subscriber import LocationSubscriber
from .logging import LogEvent, StructuredLogger, create_logger

__all__ = [
    # Schemas
    'SCHEMA_VERSION',
    'Timestamp',
    'LocationUpdateMessage',
    'TransitionEventMessage',
    # Publishers
    'BasePublisher',
    'TransitionEventPublisher',
    # Subscriber
    'LocationSubscriber',
    # Logging
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]

__version__ = "1.0.0"
