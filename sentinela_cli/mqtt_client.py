"""
One-shot MQTT publishing for the CLI.

Every CLI invocation opens a fresh connection, publishes a single QoS 1
message (an area command or a test location update), waits for the broker
acknowledgement and closes again.
"""

import json
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import paho.mqtt.client as mqtt


class MQTTCommandClient:
    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "",
        publish_timeout: float = 5.0
    ):
        self.broker = broker
        self.port = port
        self.publish_timeout = publish_timeout

        # Empty client_id: the broker assigns one
        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id
        )
        if username and password:
            self.client.username_pw_set(username, password)

    @contextmanager
    def _session(self) -> Iterator[mqtt.Client]:
        try:
            self.client.connect(self.broker, self.port, keepalive=60)
        except OSError as e:
            raise ConnectionError(
                f"Unable to connect to MQTT broker at {self.broker}:{self.port}. "
                "Is mosquitto running?"
            ) from e

        self.client.loop_start()
        try:
            yield self.client
        finally:
            self.client.disconnect()
            self.client.loop_stop()

    def publish_json(self, topic: str, message: Dict[str, Any], qos: int = 1) -> None:
        """
        Publish `message` as JSON and block until the broker acknowledges it.

        Raises:
            ValueError: message is not JSON-serializable
            ConnectionError: broker unreachable or no acknowledgement in time
        """
        try:
            payload = json.dumps(message)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid message data: {e}") from e

        with self._session() as client:
            info = client.publish(topic, payload, qos=qos)
            try:
                info.wait_for_publish(timeout=self.publish_timeout)
            except RuntimeError as e:
                # paho raises when the message was never queued
                raise ConnectionError(f"Publish to '{topic}' failed: {e}") from e
            if not info.is_published():
                raise ConnectionError(
                    f"No acknowledgement for '{topic}' within {self.publish_timeout}s"
                )

    def send_command(self, topic: str, command: Dict[str, Any], qos: int = 1) -> None:
        self.publish_json(topic, command, qos=qos)
        print(f"✅ Command sent: {command.get('command', 'unknown')}")
