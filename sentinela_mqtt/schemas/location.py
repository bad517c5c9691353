"""
Location Update Message Schema
==============================

Bounded Context: Location Ingestion Data Structures

Schema for user location updates received (and sent by the CLI) via MQTT.

Message Flow:
    Device / sentinela-cli send-location → MQTT → LocationSubscriber → GeofenceService

Coordinates travel as explicit longitude/latitude keys so the (lon, lat)
order never depends on array position.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sentinela_zone import GeoPoint, LocationSample

from .common import SCHEMA_VERSION, Timestamp

_OPTIONAL_FIELDS = ('accuracy', 'altitude', 'heading', 'speed')


@dataclass(frozen=True)
class LocationUpdateMessage:
    """
    One location update for one user.

    Attributes:
        schema_version: Message schema version
        user_id: Reporting user
        longitude: Degrees in [-180, 180]
        latitude: Degrees in [-90, 90]
        timestamp: Sample time (ISO 8601)
        accuracy, altitude, heading, speed: Optional device readings
        device_info: Free-form device metadata

    Example:
        >>> msg = LocationUpdateMessage(
        ...     schema_version="1.0",
        ...     user_id="u1",
        ...     longitude=-58.38,
        ...     latitude=-34.60,
        ...     timestamp=Timestamp.now(),
        ... )
        >>> sample = msg.to_sample()
    """
    schema_version: str
    user_id: str
    longitude: float
    latitude: float
    timestamp: Timestamp
    accuracy: Optional[float] = None
    altitude: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    device_info: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate invariants."""
        if not self.user_id:
            raise ValueError("user_id must be non-empty")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict (optional readings omitted when unset)."""
        result = {
            'schema_version': self.schema_version,
            'user_id': self.user_id,
            'longitude': self.longitude,
            'latitude': self.latitude,
            'timestamp': self.timestamp.to_dict(),
        }
        for name in _OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.device_info:
            result['device_info'] = dict(self.device_info)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LocationUpdateMessage':
        """Deserialize from dict.

        Args:
            data: Dictionary with message fields

        Returns:
            LocationUpdateMessage instance

        Raises:
            ValueError: If required fields missing or invalid
        """
        try:
            optional = {}
            for name in _OPTIONAL_FIELDS:
                if data.get(name) is not None:
                    optional[name] = float(data[name])

            return cls(
                schema_version=str(data.get('schema_version', SCHEMA_VERSION)),
                user_id=str(data['user_id']),
                longitude=float(data['longitude']),
                latitude=float(data['latitude']),
                timestamp=Timestamp(value=str(data['timestamp'])),
                device_info=dict(data.get('device_info') or {}),
                **optional,
            )
        except KeyError as e:
            raise ValueError(f"Missing required LocationUpdateMessage field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid LocationUpdateMessage data: {e}")

    @classmethod
    def from_sample(cls, sample: LocationSample) -> 'LocationUpdateMessage':
        """Build the wire message for a domain sample."""
        return cls(
            schema_version=SCHEMA_VERSION,
            user_id=sample.user_id,
            longitude=sample.point.longitude,
            latitude=sample.point.latitude,
            timestamp=Timestamp.from_datetime(sample.timestamp),
            accuracy=sample.accuracy,
            altitude=sample.altitude,
            heading=sample.heading,
            speed=sample.speed,
            device_info=dict(sample.device_info),
        )

    def to_sample(self) -> LocationSample:
        """
        Convert to a validated domain sample.

        Raises:
            InvalidInput: If coordinates or timestamp are invalid
        """
        return LocationSample(
            user_id=self.user_id,
            point=GeoPoint(longitude=self.longitude, latitude=self.latitude),
            timestamp=self.timestamp.value,
            accuracy=self.accuracy,
            altitude=self.altitude,
            heading=self.heading,
            speed=self.speed,
            device_info=self.device_info,
        )
