"""
Base MQTT Publisher
===================

Shared broker plumbing for the geofence publishers.

Subclasses turn a domain message (a transition batch)
into a JSON-ready dict via format_message(); this class owns the paho
client, the connected flag and the publish counters.

    BasePublisher
        └── TransitionEventPublisher   (entry/exit alerts, also an AlertSink)

QoS defaults to 1 so a dropped alert shows up as a failed publish rather
than disappearing.
"""

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from ..logging import LogEvent, StructuredLogger

VALID_QOS = (0, 1, 2)


@dataclass
class PublishCounters:
    sent: int = 0
    failed: int = 0


class BasePublisher(ABC):
    """
    Abstract MQTT publisher.

    Attributes:
        topic: Default topic for publish()
        client: paho client (network loop runs in its own thread once connected)
        qos: QoS used for every publish

    Thread Safety:
        publish() may be called from any thread; counters are guarded by a lock.
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        topic: str,
        client_id: str,
        logger: StructuredLogger,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 1
    ):
        if qos not in VALID_QOS:
            raise ValueError(f"QoS must be 0, 1 or 2, got {qos}")

        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.client_id = client_id
        self.logger = logger
        self.qos = qos

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id
        )
        if username and password:
            self.client.username_pw_set(username, password)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        self._connected = threading.Event()
        self._counters = PublishCounters()
        self._stats_lock = threading.Lock()

    @property
    def broker(self) -> str:
        return f"{self.broker_host}:{self.broker_port}"

    # ── connection ─────────────────────────────────────────────────────

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self.logger.error(
                LogEvent.MQTT_CONNECTION_ERROR,
                f"Broker refused connection (rc={reason_code})",
                metadata={'broker': self.broker, 'client_id': self.client_id}
            )
            return
        self._connected.set()
        self.logger.info(
            LogEvent.MQTT_CONNECTED,
            f"Publisher ready on {self.topic}",
            metadata={'broker': self.broker, 'client_id': self.client_id}
        )

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties) -> None:
        self._connected.clear()
        self.logger.warning(
            LogEvent.MQTT_DISCONNECTED,
            "Publisher lost broker connection",
            metadata={'broker': self.broker, 'reason_code': str(reason_code)}
        )

    def connect(self, timeout: float = 10.0) -> bool:
        """
        Open the connection and wait for the broker's CONNACK.

        Returns False (and logs) on a socket error or timeout; paho keeps
        retrying in the background after a timeout.
        """
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
        if not self._connected.wait(timeout=timeout):
            self.logger.error(
                LogEvent.MQTT_CONNECTION_ERROR,
                f"No CONNACK from {self.broker} within {timeout}s"
            )
            return False
        return True

    def disconnect(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()
        self._connected.clear()
        self.logger.info(
            LogEvent.MQTT_DISCONNECTED,
            "Publisher closed",
            metadata={'broker': self.broker, **self._snapshot()}
        )

    def is_connected(self) -> bool:
        return self._connected.is_set()

    # ── publishing ─────────────────────────────────────────────────────

    @abstractmethod
    def format_message(self, *args, **kwargs) -> Dict[str, Any]:
        """Build the JSON-ready payload for one domain message."""

    def publish(
        self,
        message_data: Dict[str, Any],
        retain: bool = False,
        topic: Optional[str] = None
    ) -> bool:
        """
        Serialize and publish one payload.

        Args:
            message_data: Output of format_message()
            retain: MQTT retain flag
            topic: Overrides self.topic for this message

        Returns:
            True when paho accepted the message, False otherwise (counted
            as a failure and logged).
        """
        target = topic or self.topic

        if not self._connected.is_set():
            return self._failed(LogEvent.MQTT_PUBLISH_FAILED, "Not connected to broker", target)

        try:
            payload = json.dumps(message_data)
            info = self.client.publish(topic=target, payload=payload, qos=self.qos, retain=retain)
        except (TypeError, ValueError, OSError, RuntimeError) as e:
            return self._failed(LogEvent.MQTT_PUBLISH_ERROR, "Error publishing message", target, e)

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            return self._failed(
                LogEvent.MQTT_PUBLISH_FAILED,
                f"Broker rejected publish ({mqtt.error_string(info.rc)})",
                target
            )

        with self._stats_lock:
            self._counters.sent += 1
            sent = self._counters.sent
        self.logger.debug(
            LogEvent.MQTT_PUBLISH_SUCCESS,
            f"Published to {target}",
            metadata={'message_count': sent, 'qos': self.qos, 'retain': retain}
        )
        return True

    def _failed(
        self,
        event: LogEvent,
        reason: str,
        target: str,
        error: Optional[BaseException] = None
    ) -> bool:
        with self._stats_lock:
            self._counters.failed += 1
        if error is None:
            self.logger.warning(event, reason, metadata={'topic': target})
        else:
            self.logger.error(event, reason, metadata={'topic': target}, exc_info=error)
        return False

    # ── stats ──────────────────────────────────────────────────────────

    def _snapshot(self) -> Dict[str, int]:
        with self._stats_lock:
            return {'message_count': self._counters.sent, 'failed_count': self._counters.failed}

    def get_stats(self) -> Dict[str, Any]:
        """Counters plus connection state, for the service status report."""
        return {
            **self._snapshot(),
            'connected': self._connected.is_set(),
            'topic': self.topic,
            'broker': self.broker,
        }
