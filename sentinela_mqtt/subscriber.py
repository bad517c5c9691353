"""
MQTT Subscriber
===============

Feeds location updates from the broker into the geofence service.

Each subscribed topic filter is a route: a schema decoder plus the callback
that receives the typed message. The location route is always present; a
transition route can be added for tooling that listens to alert batches.

    broker ──► _on_message ──► route (topic filter match)
                                  ├── decode (LocationUpdateMessage.from_dict)
                                  └── callback (GeofenceService.submit_location)

Callbacks run on paho's network thread. The service's callback only
validates and enqueues, so the loop is never blocked by an evaluation.

Example:
    >>> subscriber = LocationSubscriber(
    ...     broker_host="localhost",
    ...     location_topic="sentinela/locations",
    ...     on_location=lambda msg: service.submit_location(msg.to_sample()),
    ...     logger=create_logger("location_subscriber")
    ... )
    >>> if subscriber.connect():
    ...     subscriber.start()
"""

import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import paho.mqtt.client as mqtt

from sentinela_zone import GeofenceError

from .schemas import LocationUpdateMessage, TransitionEventMessage
from .logging import StructuredLogger, LogEvent


@dataclass(frozen=True)
class _Route:
    topic_filter: str
    kind: str
    decode: Callable[[Dict[str, Any]], Any]
    callback: Callable[[Any], None]


class LocationSubscriber:
    """
    Subscriber for location updates (and optionally transition batches).

    Messages that fail to decode, fail schema validation, or are rejected
    by the callback with a GeofenceError are logged and counted as
    rejected. Nothing is raised into the network thread.
    """

    def __init__(
        self,
        broker_host: str,
        location_topic: str,
        on_location: Callable[[LocationUpdateMessage], None],
        logger: StructuredLogger,
        transition_topic: Optional[str] = None,
        on_transition: Optional[Callable[[TransitionEventMessage], None]] = None,
        broker_port: int = 1883,
        client_id: str = "sentinela_subscriber",
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 1
    ):
        if transition_topic and on_transition is None:
            raise ValueError("on_transition is required when transition_topic is set")

        self.broker_host = broker_host
        self.broker_port = broker_port
        self.location_topic = location_topic
        self.transition_topic = transition_topic
        self.client_id = client_id
        self.logger = logger
        self.qos = qos

        self._routes: List[_Route] = [
            _Route(location_topic, 'locations', LocationUpdateMessage.from_dict, on_location),
        ]
        if transition_topic:
            self._routes.append(
                _Route(transition_topic, 'transitions', TransitionEventMessage.from_dict, on_transition)
            )

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id
        )
        if username and password:
            self.client.username_pw_set(username, password)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        self._connected = threading.Event()
        self._running = False
        self._stats_lock = threading.Lock()
        self._counts = {'locations': 0, 'transitions': 0, 'rejected': 0}

    @property
    def broker(self) -> str:
        return f"{self.broker_host}:{self.broker_port}"

    # ── paho callbacks ─────────────────────────────────────────────────

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self.logger.error(
                LogEvent.MQTT_CONNECTION_ERROR,
                f"Broker refused connection (rc={reason_code})",
                metadata={'broker': self.broker}
            )
            return

        # Subscriptions are renewed on every (re)connect
        for route in self._routes:
            client.subscribe(route.topic_filter, qos=self.qos)
        self._connected.set()
        self.logger.info(
            LogEvent.MQTT_CONNECTED,
            "Subscriber connected",
            metadata={'broker': self.broker, 'topics': [r.topic_filter for r in self._routes]}
        )

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties) -> None:
        self._connected.clear()
        self.logger.warning(
            LogEvent.MQTT_DISCONNECTED,
            "Subscriber lost broker connection",
            metadata={'broker': self.broker, 'reason_code': str(reason_code)}
        )

    def _on_message(self, client, userdata, msg: mqtt.MQTTMessage) -> None:
        route = next(
            (r for r in self._routes if mqtt.topic_matches_sub(r.topic_filter, msg.topic)),
            None
        )
        if route is None:
            self.logger.warning(
                LogEvent.DESERIALIZATION_ERROR,
                f"No route for topic {msg.topic}"
            )
            return

        try:
            data = json.loads(msg.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self._reject(LogEvent.DESERIALIZATION_ERROR, "Payload is not valid JSON", msg.topic, e)
            return
        if not isinstance(data, dict):
            self._reject(LogEvent.SCHEMA_VALIDATION_ERROR, "Payload is not a JSON object", msg.topic)
            return

        try:
            message = route.decode(data)
        except ValueError as e:
            self._reject(LogEvent.SCHEMA_VALIDATION_ERROR, f"Invalid {route.kind} message", msg.topic, e)
            return

        self._bump(route.kind)
        if isinstance(message, LocationUpdateMessage):
            self.logger.debug(
                LogEvent.LOCATION_RECEIVED,
                f"Location update for {message.user_id}",
                metadata={'user_id': message.user_id, 'timestamp': message.timestamp.value}
            )

        try:
            route.callback(message)
        except GeofenceError as e:
            self._reject(LogEvent.INVALID_INPUT, f"{route.kind} message rejected", msg.topic, e)

    # ── bookkeeping ────────────────────────────────────────────────────

    def _bump(self, key: str) -> None:
        with self._stats_lock:
            self._counts[key] += 1

    def _reject(
        self,
        event: LogEvent,
        reason: str,
        topic: str,
        error: Optional[BaseException] = None
    ) -> None:
        self._bump('rejected')
        self.logger.error(event, reason, metadata={'topic': topic}, exc_info=error)

    # ── lifecycle ──────────────────────────────────────────────────────

    def connect(self, timeout: float = 10.0) -> bool:
        """Connect and wait for the subscriptions to be placed."""
        try:
            self.client.connect(self.broker_host, self.broker_port)
        except (OSError, ValueError) as e:
            self.logger.error(
                LogEvent.MQTT_CONNECTION_ERROR,
                f"Cannot reach broker {self.broker}",
                exc_info=e
            )
            return False

        self.client.loop_start()
        if self._connected.wait(timeout=timeout):
            return True

        self.client.loop_stop()
        self.logger.error(
            LogEvent.MQTT_CONNECTION_ERROR,
            f"No CONNACK from {self.broker} within {timeout}s"
        )
        return False

    def start(self) -> None:
        """Mark the subscriber as listening. Delivery already runs on paho's thread."""
        if not self._connected.is_set():
            self.logger.warning(LogEvent.MQTT_CONNECTION_ERROR, "Cannot start: not connected")
            return
        self._running = True
        self.logger.info(
            LogEvent.MQTT_CONNECTED,
            f"Listening on {self.location_topic}",
        )

    def stop(self) -> None:
        self._running = False
        self.client.loop_stop()
        self.client.disconnect()
        self.logger.info(LogEvent.MQTT_DISCONNECTED, "Subscriber stopped", metadata=self.get_stats())

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> dict:
        with self._stats_lock:
            counts = dict(self._counts)
        return {
            'locations_received': counts['locations'],
            'transitions_received': counts['transitions'],
            'messages_rejected': counts['rejected'],
            'connected': self._connected.is_set(),
            'running': self._running,
            'location_topic': self.location_topic,
            'broker': self.broker,
        }
