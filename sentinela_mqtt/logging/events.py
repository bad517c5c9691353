"""
Log event names for the geofence service.

Names are dotted, `<area of concern>.<what happened>`, so aggregators can
filter by prefix:

    fields @timestamp, message, metadata.user_id
    | filter event = "transition.entry"
    | stats count() by metadata.area_id
"""

from enum import Enum


class LogEvent(str, Enum):
    """Value of the `event` field in every structured log record."""

    # Broker
    MQTT_CONNECTED = "mqtt.connected"
    MQTT_DISCONNECTED = "mqtt.disconnected"
    MQTT_PUBLISH_SUCCESS = "mqtt.publish.success"
    MQTT_PUBLISH_FAILED = "mqtt.publish.failed"

    # Ingestion
    LOCATION_RECEIVED = "location.received"
    LOCATION_APPENDED = "location.appended"
    LOCATION_LATE = "location.late"

    # Active area with unusable geometry, left out of the containment set
    AREA_SKIPPED = "area.skipped"

    # Evaluation
    CONTAINMENT_RESOLVED = "transition.containment_resolved"
    TRANSITION_ENTRY = "transition.entry"
    TRANSITION_EXIT = "transition.exit"
    TRANSITION_SERIALIZED = "transition.serialized"

    # Delivery
    ALERT_NOTIFICATION = "alert.notification"
    ALERT_DISPATCHED = "alert.dispatched"
    ALERT_RETRY = "alert.retry"
    ALERT_DROPPED = "alert.dropped"

    # Failures
    SERIALIZATION_ERROR = "error.serialization"
    DESERIALIZATION_ERROR = "error.deserialization"
    SCHEMA_VALIDATION_ERROR = "error.schema_validation"
    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    MQTT_PUBLISH_ERROR = "error.mqtt_publish"
    INVALID_INPUT = "error.invalid_input"
    DEPENDENCY_UNAVAILABLE = "error.dependency_unavailable"
    EVALUATION_CANCELLED = "error.evaluation_cancelled"
    ALERT_DISPATCH_FAILED = "error.alert_dispatch"
