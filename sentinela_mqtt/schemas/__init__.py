"""
Sentinela MQTT Schemas
======================

Bounded Context: Data Structures

Immutable, typed data structures for MQTT messages.

Design:
- Frozen dataclasses (immutability)
- to_dict() for JSON serialization
- from_dict() for deserialization
- Schema versioning for evolution

Public API
----------
Common Types:
    Timestamp: ISO 8601 timestamp wrapper
    SCHEMA_VERSION: Current message schema version

Location Types:
    LocationUpdateMessage: One user location update

Transition Types:
    TransitionEventMessage: Batch of entry/exit events

Example:
    >>> from sentinela_mqtt.schemas import LocationUpdateMessage
    >>> msg = LocationUpdateMessage.from_dict(payload)
    >>> sample = msg.to_sample()
"""

from .common import SCHEMA_VERSION, Timestamp
from .location import LocationUpdateMessage
from .transition import TransitionEventMessage

__all__ = [
    'SCHEMA_VERSION',
    'Timestamp',
    'LocationUpdateMessage',
    'TransitionEventMessage',
]
