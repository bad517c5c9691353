"""
Configuration schema for the geofence service.

This module defines the configuration structure for the service: area
definitions, MQTT transport settings, and evaluation/dispatch tuning.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import yaml

from sentinela_zone import Area, AreaStatus, AlertType


@dataclass(frozen=True)
class AreaConfig:
    """
    Area definition as written in YAML.

    Either `geometry` (GeoJSON Polygon/MultiPolygon) or `coordinates`
    (a single ring of [lon, lat] pairs) must be given. Geometry validity is
    not checked here: a malformed area loads and is skipped at evaluation.
    """

    area_id: str
    name: str
    geometry: Optional[Dict[str, Any]] = None
    coordinates: Optional[List[List[float]]] = None
    description: str = ""
    status: str = AreaStatus.ACTIVE.value
    alert_type: str = AlertType.STANDARD.value
    properties: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate area configuration."""
        if not self.area_id:
            raise ValueError("area_id cannot be empty")

        if not self.name:
            raise ValueError(f"Area '{self.area_id}' name cannot be empty")

        if (self.geometry is None) == (self.coordinates is None):
            raise ValueError(
                f"Area '{self.area_id}' must define exactly one of "
                f"'geometry' or 'coordinates'"
            )

        valid_status = {s.value for s in AreaStatus}
        if str(self.status).lower() not in valid_status:
            raise ValueError(
                f"Invalid status for area '{self.area_id}': {self.status}. "
                f"Must be one of {valid_status}"
            )

        valid_alerts = {a.value for a in AlertType}
        if str(self.alert_type).lower() not in valid_alerts:
            raise ValueError(
                f"Invalid alert_type for area '{self.area_id}': {self.alert_type}. "
                f"Must be one of {valid_alerts}"
            )

    def to_area(self) -> Area:
        """Build the domain Area."""
        geometry = self.geometry
        if geometry is None:
            geometry = {'type': 'Polygon', 'coordinates': [self.coordinates]}

        return Area(
            area_id=self.area_id,
            name=self.name,
            geometry=geometry,
            description=self.description,
            status=self.status,
            alert_type=self.alert_type,
            properties=self.properties,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AreaConfig":
        coordinates = data.get("coordinates")
        return cls(
            area_id=data["area_id"],
            name=data["name"],
            geometry=data.get("geometry"),
            coordinates=[list(coord) for coord in coordinates] if coordinates else None,
            description=data.get("description", ""),
            status=data.get("status", AreaStatus.ACTIVE.value),
            alert_type=data.get("alert_type", AlertType.STANDARD.value),
            properties=data.get("properties") or {},
        )


@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration."""

    broker: str = "localhost"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 1  # Alerts are at-least-once

    location_topic: str = "sentinela/data/locations"
    transition_topic: str = "sentinela/data/transitions/{service_id}"

    def __post_init__(self):
        """Validate MQTT configuration."""
        if not self.broker:
            raise ValueError("MQTT broker cannot be empty")

        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"MQTT port must be in [1, 65535], got {self.port}"
            )

        if self.qos not in {0, 1, 2}:
            raise ValueError(
                f"MQTT QoS must be 0, 1, or 2, got {self.qos}"
            )

    def topic_for(self, template: str, service_id: str) -> str:
        """Expand {service_id} in a topic template."""
        return template.format(service_id=service_id)


@dataclass(frozen=True)
class EvaluationConfig:
    """
    Evaluation and alert dispatch tuning.

    timeout_seconds: Deadline per ingested sample (None disables it)
    dispatch_exits: Also hand EXIT events to the alert sink
    dispatch_max_attempts: Sink attempts per batch before giving up
    dispatch_retry_delay: Seconds between attempts
    dispatch_queue_size: Capacity of the background dispatch queue
    worker_count: Partitions of the per-user executor
    max_samples_per_user: History retained per user (None keeps all)
    """

    timeout_seconds: Optional[float] = 5.0
    dispatch_exits: bool = False
    dispatch_max_attempts: int = 3
    dispatch_retry_delay: float = 0.5
    dispatch_queue_size: int = 1000
    worker_count: int = 4
    max_samples_per_user: Optional[int] = 1000

    def __post_init__(self):
        """Validate evaluation configuration."""
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(
                f"timeout_seconds must be > 0, got {self.timeout_seconds}"
            )

        if self.dispatch_max_attempts < 1:
            raise ValueError(
                f"dispatch_max_attempts must be >= 1, got {self.dispatch_max_attempts}"
            )

        if self.dispatch_retry_delay < 0:
            raise ValueError(
                f"dispatch_retry_delay must be >= 0, got {self.dispatch_retry_delay}"
            )

        if self.dispatch_queue_size < 1:
            raise ValueError(
                f"dispatch_queue_size must be >= 1, got {self.dispatch_queue_size}"
            )

        if not 1 <= self.worker_count <= 256:
            raise ValueError(
                f"worker_count must be in [1, 256], got {self.worker_count}"
            )

        # Two samples are needed to derive a transition
        if self.max_samples_per_user is not None and self.max_samples_per_user < 2:
            raise ValueError(
                f"max_samples_per_user must be >= 2, got {self.max_samples_per_user}"
            )


@dataclass(frozen=True)
class ServiceConfig:
    """
    Main configuration for the geofence service.

    Loaded from YAML and validated at startup.
    Immutable after construction (frozen dataclass).
    """

    # Service identification
    service_id: str

    # Area configuration
    areas: List[AreaConfig] = field(default_factory=list)

    # MQTT configuration
    mqtt_config: MQTTConfig = field(default_factory=MQTTConfig)

    # Evaluation configuration
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)

    def __post_init__(self):
        """Validate service configuration."""
        if not self.service_id:
            raise ValueError("service_id cannot be empty")

        area_ids = [area.area_id for area in self.areas]
        duplicates = sorted({a for a in area_ids if area_ids.count(a) > 1})
        if duplicates:
            raise ValueError(f"Duplicate area ids in config: {duplicates}")

    @property
    def location_topic(self) -> str:
        return self.mqtt_config.topic_for(self.mqtt_config.location_topic, self.service_id)

    @property
    def transition_topic(self) -> str:
        return self.mqtt_config.topic_for(self.mqtt_config.transition_topic, self.service_id)

    def build_areas(self) -> List[Area]:
        """Domain areas for every configured entry."""
        return [area.to_area() for area in self.areas]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceConfig":
        if not isinstance(data, dict):
            raise ValueError("Configuration root must be a mapping")

        mqtt_config = MQTTConfig(**(data.get("mqtt_config") or {}))
        evaluation = EvaluationConfig(**(data.get("evaluation") or {}))
        areas = [AreaConfig.from_dict(a) for a in data.get("areas") or []]

        return cls(
            service_id=data["service_id"],
            areas=areas,
            mqtt_config=mqtt_config,
            evaluation=evaluation,
        )

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "ServiceConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            service_id: "geofence-1"

            areas:
              - area_id: "park"
                name: "Park"
                alert_type: "info"
                coordinates: [[-1, -1], [-1, 1], [1, 1], [1, -1]]

            mqtt_config:
              broker: "localhost"
              port: 1883
              location_topic: "sentinela/data/locations"
              transition_topic: "sentinela/data/transitions/{service_id}"

            evaluation:
              timeout_seconds: 5.0
              dispatch_exits: false
              worker_count: 4
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data)
