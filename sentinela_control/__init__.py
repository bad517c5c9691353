"""
sentinela_control - Control Plane for the geofence service

Bounded Context: MQTT-based command-and-control
Responsibilities:
  - MQTT connection management (Control Plane)
  - Command registration and validation
  - Area command execution (hot reconfiguration of the area registry)

Architecture:
  - CommandRegistry: Explicit registration pattern
  - MQTTControlPlane: MQTT client + command reception + status replies
  - AreaCommandHandlers: add/remove/activate/deactivate/list/get areas
  - QoS 1 for control commands (at-least-once delivery)

Design Philosophy:
  - Explicit registration (fail-fast, no runtime surprises)
  - Thread-safe (registry uses locks, areas are snapshotted)
  - Clear error messages (lists available commands on error)
"""

from .registry import CommandRegistry, CommandNotAvailableError
from .plane import MQTTControlPlane
from .handlers import AreaCommandHandlers

__all__ = [
    "CommandRegistry",
    "CommandNotAvailableError",
    "MQTTControlPlane",
    "AreaCommandHandlers",
]
