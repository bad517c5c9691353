"""
Domain Module
=============

Bounded Context: Monitored areas and user location samples.

Design:
- Frozen dataclasses (samples are never mutated after creation)
- Enum-typed status and alert type
- Read-only key/value maps for open-ended properties and device info
- Geometry parsed lazily and cached per Area instance
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import cached_property
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from sentinela_zone.errors import InvalidInput
from sentinela_zone.geometry.shapes import GeoPoint, Shape, as_point, load_geometry


class AreaStatus(str, Enum):
    """Area lifecycle status. Only ACTIVE areas participate in containment."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class AlertType(str, Enum):
    """Severity attached to alerts raised for an area."""
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"
    STANDARD = "standard"


def _coerce_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError as e:
        valid = [member.value for member in enum_cls]
        raise InvalidInput(f"{field_name} must be one of {valid}, got {value!r}") from e


def normalize_timestamp(value: Any) -> datetime:
    """
    Coerce a timestamp to a timezone-aware datetime.

    Accepts datetime or ISO 8601 string. Naive values are taken as UTC.

    Raises:
        InvalidInput: If missing or unparseable
    """
    if value is None:
        raise InvalidInput("timestamp is required")

    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise InvalidInput(f"Invalid ISO timestamp: {value!r}") from e

    if not isinstance(value, datetime):
        raise InvalidInput(f"timestamp must be datetime or ISO string, got {type(value).__name__}")

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _optional_float(name: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number, got bool")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise InvalidInput(f"{name} must be finite, got {number}")
    return number


@dataclass(frozen=True)
class Area:
    """
    Monitored polygonal region (geofence).

    Attributes:
        area_id: Unique identifier
        name: Human-readable name (used in alerts)
        geometry: GeoJSON Polygon/MultiPolygon mapping, or any input
            accepted by load_geometry()
        description: Free text
        status: ACTIVE or INACTIVE
        alert_type: Severity for alerts raised on this area
        properties: Extensible read-only key/value map

    Invariants:
        - area_id and name are non-empty
        - geometry is NOT validated here; invalid geometry makes the area
          skipped during containment instead of rejected at load time

    Example:
        >>> park = Area(
        ...     area_id="park",
        ...     name="Park",
        ...     geometry={"type": "Polygon",
        ...               "coordinates": [[[-1, -1], [-1, 1], [1, 1], [1, -1]]]},
        ...     alert_type=AlertType.INFO,
        ... )
    """

    area_id: str
    name: str
    geometry: Any
    description: str = ""
    status: AreaStatus = AreaStatus.ACTIVE
    alert_type: AlertType = AlertType.STANDARD
    properties: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate identifiers and normalize enums and properties."""
        if not isinstance(self.area_id, str) or not self.area_id.strip():
            raise InvalidInput("area_id must be a non-empty string")
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidInput(f"Area '{self.area_id}' name must be a non-empty string")

        object.__setattr__(self, 'description', self.description or "")
        object.__setattr__(self, 'status', _coerce_enum(AreaStatus, self.status, 'status'))
        object.__setattr__(
            self, 'alert_type', _coerce_enum(AlertType, self.alert_type, 'alert_type')
        )
        object.__setattr__(self, 'properties', MappingProxyType(dict(self.properties or {})))

    @property
    def is_active(self) -> bool:
        return self.status == AreaStatus.ACTIVE

    @cached_property
    def shape(self) -> Shape:
        """
        Parsed geometry.

        Raises:
            InvalidGeometry: If the stored geometry is malformed (not cached,
                raised again on every access)
        """
        return load_geometry(self.geometry)

    def with_status(self, status: AreaStatus) -> 'Area':
        """Copy of this area with another status."""
        return Area(
            area_id=self.area_id,
            name=self.name,
            geometry=self.geometry,
            description=self.description,
            status=status,
            alert_type=self.alert_type,
            properties=dict(self.properties),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'area_id': self.area_id,
            'name': self.name,
            'description': self.description,
            'geometry': self.geometry,
            'status': self.status.value,
            'alert_type': self.alert_type.value,
            'properties': dict(self.properties),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Area':
        """
        Deserialize from dict.

        Raises:
            InvalidInput: If required fields are missing or invalid
        """
        try:
            return cls(
                area_id=data['area_id'],
                name=data['name'],
                geometry=data['geometry'],
                description=data.get('description', ""),
                status=data.get('status', AreaStatus.ACTIVE),
                alert_type=data.get('alert_type', AlertType.STANDARD),
                properties=data.get('properties') or {},
            )
        except KeyError as e:
            raise InvalidInput(f"Missing required Area field: {e}") from e


@dataclass(frozen=True)
class LocationSample:
    """
    Immutable user location sample.

    Samples are ordered by timestamp per user. "Current" and "previous" are
    always derived from that order; a stored sample is never overwritten.

    Attributes:
        user_id: Owner of the sample
        point: (lon, lat) position
        timestamp: Timezone-aware sample time (naive input taken as UTC)
        accuracy: Horizontal accuracy in meters (optional)
        altitude: Meters (optional)
        heading: Degrees (optional)
        speed: Meters per second (optional)
        device_info: Read-only device metadata
    """

    user_id: str
    point: GeoPoint
    timestamp: datetime
    accuracy: Optional[float] = None
    altitude: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    device_info: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate all fields (raises InvalidInput)."""
        if not isinstance(self.user_id, str) or not self.user_id.strip():
            raise InvalidInput("user_id must be a non-empty string")

        object.__setattr__(self, 'point', as_point(self.point))
        object.__setattr__(self, 'timestamp', normalize_timestamp(self.timestamp))
        for name in ('accuracy', 'altitude', 'heading', 'speed'):
            object.__setattr__(self, name, _optional_float(name, getattr(self, name)))
        object.__setattr__(self, 'device_info', MappingProxyType(dict(self.device_info or {})))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'user_id': self.user_id,
            'longitude': self.point.longitude,
            'latitude': self.point.latitude,
            'timestamp': self.timestamp.isoformat(),
            'accuracy': self.accuracy,
            'altitude': self.altitude,
            'heading': self.heading,
            'speed': self.speed,
            'device_info': dict(self.device_info),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'LocationSample':
        """
        Deserialize from dict.

        Position can be given as longitude/latitude keys or as a GeoJSON
        point under "coordinates".

        Raises:
            InvalidInput: If required fields are missing or invalid
        """
        if not isinstance(data, Mapping):
            raise InvalidInput(f"sample must be a mapping, got {type(data).__name__}")
        coordinates = data.get('coordinates')
        try:
            return cls(
                user_id=data['user_id'],
                point=GeoPoint.from_dict(
                    coordinates if isinstance(coordinates, Mapping) else data
                ),
                timestamp=data['timestamp'],
                accuracy=data.get('accuracy'),
                altitude=data.get('altitude'),
                heading=data.get('heading'),
                speed=data.get('speed'),
                device_info=data.get('device_info') or {},
            )
        except KeyError as e:
            raise InvalidInput(f"Missing required LocationSample field: {e}") from e
