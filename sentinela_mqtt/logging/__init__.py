"""
Structured logging for the geofence service.

    >>> from sentinela_mqtt.logging import LogEvent, create_logger
    >>> logger = create_logger("geofence", service_id="geofence-1")
    >>> logger.info(LogEvent.TRANSITION_ENTRY, "User u1 entered area Park",
    ...             metadata={'user_id': 'u1', 'area_id': 'park'})
"""

from .events import LogEvent
from .structured import JSONFormatter, StructuredLogger, create_logger

__all__ = [
    'JSONFormatter',
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
