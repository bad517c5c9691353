"""
MQTTControlPlane - area management over MQTT

Listens on `sentinela/control/<service_id>/commands` and answers on
`sentinela/control/<service_id>/status`:

    {"command": "add_area", "area_id": "park", ...}   ─►  commands topic
    {"status": "area_added", "details": {...}, ...}   ◄─  status topic (retained)

Both directions use QoS 1. Status messages are retained so a client that
subscribes late still sees the last state change. Command handlers run on
paho's network thread; area edits only swap the registry snapshot, so they
return quickly.
"""

import json
import logging
from datetime import datetime, timezone
from threading import Event
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from sentinela_zone import GeofenceError

from .registry import CommandRegistry, CommandNotAvailableError

logger = logging.getLogger(__name__)

CONTROL_QOS = 1

# Errors a handler may raise for a bad command payload
COMMAND_ERRORS = (GeofenceError, KeyError, TypeError, ValueError)


class MQTTControlPlane:
    """
    Command receiver and status publisher for one geofence service.

    Example:
        control_plane = MQTTControlPlane(
            broker_host="localhost",
            broker_port=1883,
            command_topic="sentinela/control/geofence-1/commands",
            status_topic="sentinela/control/geofence-1/status",
            client_id="geofence_geofence-1",
        )
        AreaCommandHandlers(registry, control_plane).register_all()
        control_plane.connect(timeout=5.0)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        command_topic: str,
        status_topic: str,
        client_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.command_topic = command_topic
        self.status_topic = status_topic
        self.client_id = client_id
        self.command_registry = CommandRegistry()

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311
        )
        if username and password:
            self.client.username_pw_set(username, password)
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        self._connected = Event()
        self._running = False

    # ── lifecycle ──────────────────────────────────────────────────────

    def connect(self, timeout: float = 5.0) -> bool:
        logger.info(f"🔌 Control plane connecting to {self.broker_host}:{self.broker_port}")
        try:
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
        except (OSError, ValueError) as e:
            logger.error(f"❌ Control plane cannot reach broker: {e}")
            return False

        self.client.loop_start()
        self._running = True
        if not self._connected.wait(timeout=timeout):
            logger.error(f"❌ Control plane: no CONNACK after {timeout}s")
            return False

        logger.info(f"✅ Control plane listening on {self.command_topic}")
        return True

    def disconnect(self) -> None:
        """Publish a final "disconnected" status and close. Idempotent."""
        if not self._running:
            return
        self.publish_status("disconnected")
        self.client.loop_stop()
        self.client.disconnect()
        self._running = False
        self._connected.clear()
        logger.info("✅ Control plane disconnected")

    # ── status ─────────────────────────────────────────────────────────

    def build_status(self, status: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        message: Dict[str, Any] = {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "client_id": self.client_id,
        }
        if details:
            message["details"] = details
        return message

    def publish_status(self, status: str, details: Optional[Dict[str, Any]] = None) -> bool:
        """
        Publish a retained status message.

        Returns:
            True if paho accepted the message
        """
        try:
            payload = json.dumps(self.build_status(status, details), default=str)
            info = self.client.publish(self.status_topic, payload, qos=CONTROL_QOS, retain=True)
        except (TypeError, ValueError, OSError) as e:
            logger.error(f"❌ Status '{status}' not published: {e}")
            return False

        logger.debug(f"📤 Status: {status}")
        return info.rc == mqtt.MQTT_ERR_SUCCESS

    # ── paho callbacks ─────────────────────────────────────────────────

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"❌ Control plane connection refused (rc={reason_code})")
            self._connected.clear()
            return

        client.subscribe(self.command_topic, qos=CONTROL_QOS)
        self.publish_status("connected")
        self._connected.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self._connected.clear()
        if reason_code.is_failure:
            logger.warning(f"⚠️ Control plane dropped (rc={reason_code})")

    def _on_message(self, client, userdata, msg):
        try:
            command_data = json.loads(msg.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"❌ Unreadable command payload {msg.payload!r}: {e}")
            return
        self.handle_command(command_data)

    # ── commands ───────────────────────────────────────────────────────

    def handle_command(self, command_data: Any) -> bool:
        """
        Run one decoded command.

        Payloads without a command name are ignored. A command that is
        unknown or whose handler raises gets a "command_failed" status; no
        exception reaches the MQTT thread.

        Returns:
            True if the handler completed
        """
        command = ''
        if isinstance(command_data, dict):
            command = str(command_data.get('command', '')).strip().lower()
        if not command:
            logger.warning(f"⚠️ Ignoring payload without a command: {command_data!r}")
            return False

        logger.info(f"🎯 Command: {command}")
        try:
            self.command_registry.execute(command, command_data)
        except CommandNotAvailableError as e:
            logger.warning(f"⚠️ {e}")
            return self._command_failed(command, e, available=self.command_registry.get_help())
        except COMMAND_ERRORS as e:
            logger.error(f"❌ Command '{command}' failed: {e}")
            return self._command_failed(command, e)
        return True

    def _command_failed(self, command: str, error: Exception, **extra: Any) -> bool:
        self.publish_status("command_failed", {"command": command, "error": str(error), **extra})
        return False
