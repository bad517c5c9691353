"""
Transition Event Message Schema
===============================

Bounded Context: Alert Data Structures

Schema for entry/exit transition batches published via MQTT.

Message Flow:
    GeofenceService → AlertDispatcher → TransitionEventPublisher → MQTT → consumers
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sentinela_zone import TransitionEvent, TransitionKind

from .common import SCHEMA_VERSION, Timestamp


@dataclass(frozen=True)
class TransitionEventMessage:
    """
    Batch of transition events for MQTT publication.

    One message carries every event produced by a single evaluated sample.

    Attributes:
        schema_version: Message schema version (for evolution)
        timestamp: ISO 8601 timestamp of message creation
        service_id: Publishing geofence service
        events: Transition events (entries first, then exits)

    Example:
        >>> msg = TransitionEventMessage.from_events("geofence-1", result.events)
        >>> msg.to_dict()['events'][0]['kind']
        'entry'
    """
    schema_version: str
    timestamp: Timestamp
    service_id: str
    events: List[TransitionEvent] = field(default_factory=list)

    def __post_init__(self):
        """Validate invariants."""
        if not self.service_id:
            raise ValueError("service_id must be non-empty")

    @classmethod
    def from_events(
        cls,
        service_id: str,
        events: Sequence[TransitionEvent]
    ) -> 'TransitionEventMessage':
        """Wrap a batch of events in a message stamped now."""
        return cls(
            schema_version=SCHEMA_VERSION,
            timestamp=Timestamp.now(),
            service_id=service_id,
            events=list(events),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'service_id': self.service_id,
            'events': [event.to_dict() for event in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransitionEventMessage':
        """Deserialize from dict.

        Raises:
            ValueError: If required fields missing or invalid
        """
        try:
            return cls(
                schema_version=str(data['schema_version']),
                timestamp=Timestamp(value=data['timestamp']),
                service_id=str(data['service_id']),
                events=[
                    TransitionEvent.from_dict(event)
                    for event in data.get('events', [])
                ]
            )
        except KeyError as e:
            raise ValueError(f"Missing required TransitionEventMessage field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid TransitionEventMessage data: {e}")

    @property
    def event_count(self) -> int:
        """Number of events in this message."""
        return len(self.events)

    def get_events_by_kind(self, kind: TransitionKind) -> List[TransitionEvent]:
        """Filter events by kind (ENTRY or EXIT)."""
        return [event for event in self.events if event.kind == kind]

    def get_event_for_area(self, area_id: str) -> Optional[TransitionEvent]:
        """First event for an area, or None."""
        for event in self.events:
            if event.area_id == area_id:
                return event
        return None
