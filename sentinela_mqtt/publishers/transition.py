"""
Transition Event Publisher
==========================

Bounded Context: Alert Message Production

Publisher for entry/exit transition batches.

Design:
- Inherits from BasePublisher (connection management)
- Formats TransitionEventMessage to JSON
- Doubles as an alert sink: send(events) raises DispatchError on failure,
  so the dispatcher can retry it

Message Flow:
    GeofenceService → AlertDispatcher → TransitionEventPublisher.send() → MQTT Broker

Example:
    >>> from sentinela_mqtt.publishers import TransitionEventPublisher
    >>> from sentinela_mqtt.logging import create_logger
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

from typing import Dict, Any, Optional, Sequence

from sentinela_zone import DispatchError, TransitionEvent, TransitionKind

from .base import BasePublisher
from ..schemas import TransitionEventMessage
from ..logging import StructuredLogger, LogEvent


class TransitionEventPublisher(BasePublisher):
    """
    Publisher for transition event messages.

    Attributes:
        Same as BasePublisher, plus:
        service_id: Identifier stamped on every message
    """

    def __init__(
        self,
        broker_host: str,
        topic: str,
        logger: StructuredLogger,
        service_id: str = "sentinela",
        broker_port: int = 1883,
        client_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 1
    ):
        """
        Initialize transition event publisher.

        Args:
            broker_host: MQTT broker hostname
            topic: Topic to publish transition messages
            logger: Structured logger instance
            service_id: Publishing service identifier
            broker_port: MQTT broker port (default: 1883)
            client_id: MQTT client ID (default: <service_id>_transitions)
            username: MQTT auth username (optional)
            password: MQTT auth password (optional)
            qos: Quality of Service (default: 1)
        """
        super().__init__(
            broker_host=broker_host,
            broker_port=broker_port,
            topic=topic,
            client_id=client_id or f"{service_id}_transitions",
            logger=logger,
            username=username,
            password=password,
            qos=qos
        )
        self.service_id = service_id

    def format_message(self, transition_msg: TransitionEventMessage) -> Dict[str, Any]:
        """
        Format TransitionEventMessage to JSON-compatible dict.

        Raises:
            ValueError: If the message cannot be serialized
        """
        try:
            formatted = transition_msg.to_dict()
        except (AttributeError, TypeError, ValueError) as e:
            self.logger.error(
                event=LogEvent.SERIALIZATION_ERROR,
                message="Failed to serialize transition message",
                exc_info=e,
                metadata={'service_id': self.service_id}
            )
            raise ValueError(f"Failed to format transition message: {e}") from e

        self.logger.debug(
            event=LogEvent.TRANSITION_SERIALIZED,
            message="Serialized transition message",
            metadata={'event_count': transition_msg.event_count}
        )
        return formatted

    def publish_transitions(self, transition_msg: TransitionEventMessage) -> bool:
        """
        Publish a transition message to the broker.

        Returns:
            True if published successfully, False otherwise
        """
        try:
            message_data = self.format_message(transition_msg)
        except ValueError:
            return False

        success = self.publish(message_data)
        if success:
            entries = transition_msg.get_events_by_kind(TransitionKind.ENTRY)
            self.logger.info(
                event=LogEvent.ALERT_DISPATCHED,
                message=f"Published {transition_msg.event_count} transition events",
                metadata={
                    'topic': self.topic,
                    'entry_count': len(entries),
                    'exit_count': transition_msg.event_count - len(entries),
                    'area_ids': [event.area_id for event in transition_msg.events],
                }
            )
        return success

    def send(self, events: Sequence[TransitionEvent]) -> None:
        """
        Alert sink entry point: publish one batch.

        Raises:
            DispatchError: If the batch could not be published
        """
        if not events:
            return
        message = TransitionEventMessage.from_events(self.service_id, events)
        if not self.publish_transitions(message):
            raise DispatchError(
                f"Failed to publish {len(events)} transition events to '{self.topic}'"
            )
