"""
Structured JSON Logger
======================

One JSON object per line for every geofence, alert and MQTT event.

Record layout:
    {
        "timestamp": "2025-10-24T15:30:45.123456+00:00",
        "level": "INFO",
        "component": "geofence",
        "event": "transition.entry",
        "message": "User u1 entry area park",
        "metadata": {"service_id": "geofence-1", "user_id": "u1", "area_id": "park"}
    }

The event fields travel on the LogRecord (`record.structured`) and are
rendered by JSONFormatter, so the timestamp is the record's creation time and
handlers added by the application (files, aggregators) get the same payload.

Context binding:
    >>> logger = create_logger("geofence").bind(service_id="geofence-1")
    >>> logger.info(LogEvent.TRANSITION_ENTRY, "User entered area",
    ...             metadata={'user_id': 'u1', 'area_id': 'park'})
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .events import LogEvent


class JSONFormatter(logging.Formatter):
    """Renders records carrying a `structured` payload as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload = getattr(record, 'structured', None)
        if payload is None:
            # Plain stdlib record routed through a structured handler
            payload = {'component': record.name, 'message': record.getMessage()}

        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            **payload,
        }
        # datetimes and enums in metadata fall back to str()
        return json.dumps(entry, default=str)


class StructuredLogger:
    """
    Event logger for one component.

    Attributes:
        component: Component name (e.g., "geofence", "dispatcher")
        context: Metadata merged into every record (see bind())
        logger: Underlying stdlib logger (sentinela_mqtt.<component>)

    Thread Safety:
        Thread-safe via Python's logging module.
    """

    def __init__(
        self,
        component: str,
        level: int = logging.INFO,
        logger_name: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None
    ):
        self.component = component
        self.context: Dict[str, Any] = dict(context or {})
        self.logger = logging.getLogger(logger_name or f"sentinela_mqtt.{component}")
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)

    def bind(self, **context: Any) -> 'StructuredLogger':
        """Logger for the same component with extra default metadata."""
        return StructuredLogger(
            component=self.component,
            level=self.logger.level,
            logger_name=self.logger.name,
            context={**self.context, **context},
        )

    def _emit(
        self,
        level: int,
        event: LogEvent,
        message: str,
        metadata: Optional[Mapping[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return

        payload: Dict[str, Any] = {
            'component': self.component,
            'event': event.value,
            'message': message,
        }
        merged = {**self.context, **(metadata or {})}
        if merged:
            payload['metadata'] = merged
        if exc_info is not None:
            payload['exception'] = {
                'type': type(exc_info).__name__,
                'message': str(exc_info),
            }

        self.logger.log(
            level,
            message,
            exc_info=exc_info if level >= logging.ERROR else None,
            extra={'structured': payload},
        )

    def debug(self, event: LogEvent, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(logging.DEBUG, event, message, metadata)

    def info(self, event: LogEvent, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(logging.INFO, event, message, metadata)

    def warning(self, event: LogEvent, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._emit(logging.WARNING, event, message, metadata)

    def error(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Mapping[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        """
        Log an ERROR event.

        The exception type and message go into the JSON record; the
        traceback is attached to the LogRecord for handlers that render it.

        Example:
            >>> try:
            ...     history.append_sample(sample)
            ... except OSError as e:
            ...     logger.error(LogEvent.DEPENDENCY_UNAVAILABLE,
            ...                  "Location store unavailable", exc_info=e)
        """
        self._emit(logging.ERROR, event, message, metadata, exc_info)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)


def create_logger(
    component: str,
    level: int = logging.INFO,
    **context: Any
) -> StructuredLogger:
    """
    Build a StructuredLogger, optionally bound to default metadata.

    Example:
        >>> logger = create_logger("dispatcher", service_id="geofence-1")
    """
    return StructuredLogger(component=component, level=level, context=context)
