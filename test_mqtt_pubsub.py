"""
Test MQTT Pub/Sub and Control Plane (Without Real Broker)
=========================================================

Tests the publish/subscribe and command flows without a real MQTT broker,
by swapping the paho client for a recorder and feeding messages straight
into the subscriber callbacks.

Usage:
    pytest test_mqtt_pubsub.py
"""

import io
import json
import logging
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest

from sentinela_zone import (
    Area,
    DispatchError,
    GeoPoint,
    InvalidInput,
    LocationSample,
    TransitionDetector,
    TransitionKind,
)
from sentinela_mqtt import (
    LocationSubscriber,
    LocationUpdateMessage,
    TransitionEventMessage,
    TransitionEventPublisher,
    create_logger,
)
from sentinela_mqtt.logging import JSONFormatter, LogEvent
from sentinela_mqtt.schemas import Timestamp
from sentinela_processor import AreaRegistry, GeofenceService, InMemoryLocationHistory
from sentinela_control import AreaCommandHandlers, MQTTControlPlane
from sentinela_cli.cli import build_parser, check_point, main

T0 = datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)
PARK = Area(area_id="park", name="Park", geometry=[(-1, -1), (-1, 1), (1, 1), (1, -1)])


class FakeClient:
    """Stands in for paho's Client: records publish() calls."""

    def __init__(self, rc=mqtt.MQTT_ERR_SUCCESS):
        self.rc = rc
        self.published = []

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append({
            'topic': topic,
            'payload': json.loads(payload),
            'qos': qos,
            'retain': retain,
        })
        return SimpleNamespace(rc=self.rc)


def connected(publisher, client=None):
    publisher.client = client or FakeClient()
    publisher._connected.set()
    return publisher


def park_events():
    sample = LocationSample("u1", GeoPoint(0, 0), T0)
    return TransitionDetector.detect(sample, None, [PARK]).events


def mqtt_message(topic, payload):
    if not isinstance(payload, bytes):
        payload = json.dumps(payload).encode('utf-8')
    return SimpleNamespace(topic=topic, payload=payload)


# ─────────────────────────────────────────────────────────────────────────────
# Serialization
# ─────────────────────────────────────────────────────────────────────────────

def test_location_message_serialization():
    """Location messages survive the JSON trip and convert to samples."""
    print("\n" + "=" * 60)
    print("TEST: Location Message Serialization")
    print("=" * 60)

    sample = LocationSample("u1", GeoPoint(-58.38, -34.60), T0, accuracy=5.0)
    msg = LocationUpdateMessage.from_sample(sample)

    data = json.loads(json.dumps(msg.to_dict()))
    assert "altitude" not in data
    print(f"✓ Serialized ({len(json.dumps(data))} bytes)")

    restored = LocationUpdateMessage.from_dict(data).to_sample()
    assert restored.point == sample.point
    assert restored.timestamp == sample.timestamp
    assert restored.accuracy == 5.0
    print("✓ Verification passed: Original == Reconstructed")


def test_location_message_validation():
    with pytest.raises(ValueError):
        LocationUpdateMessage.from_dict({"user_id": "u1", "longitude": 0})
    with pytest.raises(ValueError):
        LocationUpdateMessage.from_dict({
            "user_id": "u1", "longitude": "west", "latitude": 0, "timestamp": "2025-01-01T00:00:00Z",
        })

    # Parsed but out of range: rejected when converted to a sample
    msg = LocationUpdateMessage.from_dict({
        "user_id": "u1", "longitude": 0, "latitude": 95, "timestamp": "2025-01-01T00:00:00Z",
    })
    with pytest.raises(InvalidInput):
        msg.to_sample()


def test_transition_message_serialization():
    events = park_events()
    msg = TransitionEventMessage.from_events("geofence-1", events)

    restored = TransitionEventMessage.from_dict(json.loads(json.dumps(msg.to_dict())))

    assert restored.event_count == 1
    assert restored.events == list(events)
    assert restored.get_event_for_area("park").kind == TransitionKind.ENTRY
    assert restored.get_events_by_kind(TransitionKind.EXIT) == []
    assert restored.get_event_for_area("lake") is None


def test_timestamp_helpers():
    ts = Timestamp.from_datetime(datetime(2025, 1, 1, 10, 0))

    assert ts.to_datetime() == T0
    assert Timestamp("2025-01-01T10:00:00Z").to_datetime() == T0
    with pytest.raises(ValueError):
        Timestamp("")
    with pytest.raises(ValueError):
        Timestamp("soon").to_datetime()


# ─────────────────────────────────────────────────────────────────────────────
# Publishers
# ─────────────────────────────────────────────────────────────────────────────

def test_transition_publisher_sends_batch():
    print("\n" + "=" * 60)
    print("TEST: Transition Publisher (alert sink)")
    print("=" * 60)

    publisher = connected(TransitionEventPublisher(
        broker_host="localhost",
        topic="sentinela/data/transitions/geofence-1",
        logger=create_logger("test"),
        service_id="geofence-1",
    ))

    publisher.send(park_events())

    (sent,) = publisher.client.published
    assert sent['topic'] == "sentinela/data/transitions/geofence-1"
    assert sent['qos'] == 1
    assert sent['payload']['service_id'] == "geofence-1"
    assert sent['payload']['events'][0]['area_id'] == "park"
    assert publisher.get_stats()['message_count'] == 1
    print("✓ Batch published")


def test_transition_publisher_failure_raises_dispatch_error():
    publisher = TransitionEventPublisher(
        broker_host="localhost",
        topic="alerts",
        logger=create_logger("test"),
    )

    # Not connected
    with pytest.raises(DispatchError):
        publisher.send(park_events())

    connected(publisher, FakeClient(rc=mqtt.MQTT_ERR_NO_CONN))
    with pytest.raises(DispatchError):
        publisher.send(park_events())

    assert publisher.get_stats()['failed_count'] == 2
    # Empty batches are a no-op
    publisher.send([])


def test_publisher_qos_validated():
    with pytest.raises(ValueError):
        TransitionEventPublisher(broker_host="localhost", topic="t", logger=create_logger("test"), qos=3)


# ─────────────────────────────────────────────────────────────────────────────
# Subscriber
# ─────────────────────────────────────────────────────────────────────────────

def test_subscriber_callbacks():
    """Test subscriber callback invocation (simulated)."""
    print("\n" + "=" * 60)
    print("TEST: Subscriber Callbacks")
    print("=" * 60)

    received_locations = []
    received_transitions = []

    subscriber = LocationSubscriber(
        broker_host="localhost",
        location_topic="sentinela/data/locations",
        transition_topic="sentinela/data/transitions/+",
        on_location=received_locations.append,
        on_transition=received_transitions.append,
        logger=create_logger("test"),
    )

    location = LocationUpdateMessage.from_sample(LocationSample("u1", GeoPoint(0, 0), T0))
    subscriber._on_message(None, None, mqtt_message("sentinela/data/locations", location.to_dict()))

    transitions = TransitionEventMessage.from_events("geofence-1", park_events())
    subscriber._on_message(
        None, None, mqtt_message("sentinela/data/transitions/geofence-1", transitions.to_dict())
    )

    assert [m.user_id for m in received_locations] == ["u1"]
    assert received_transitions[0].event_count == 1

    stats = subscriber.get_stats()
    assert stats['locations_received'] == 1
    assert stats['transitions_received'] == 1
    assert stats['messages_rejected'] == 0
    print("✓ Callbacks invoked")


def test_subscriber_rejects_bad_messages():
    rejected_by_callback = []

    def on_location(msg):
        rejected_by_callback.append(msg.user_id)
        msg.to_sample()

    subscriber = LocationSubscriber(
        broker_host="localhost",
        location_topic="sentinela/data/locations",
        on_location=on_location,
        logger=create_logger("test"),
    )
    topic = "sentinela/data/locations"

    subscriber._on_message(None, None, mqtt_message(topic, b"{not json"))
    subscriber._on_message(None, None, mqtt_message(topic, [1, 2, 3]))
    subscriber._on_message(None, None, mqtt_message(topic, {"user_id": "u1"}))
    subscriber._on_message(None, None, mqtt_message(topic, {
        "user_id": "u2", "longitude": 500, "latitude": 0, "timestamp": "2025-01-01T00:00:00Z",
    }))

    assert rejected_by_callback == ["u2"]
    assert subscriber.get_stats()['messages_rejected'] == 4


def test_subscriber_requires_transition_callback():
    with pytest.raises(ValueError):
        LocationSubscriber(
            broker_host="localhost",
            location_topic="locations",
            transition_topic="transitions",
            on_location=print,
            logger=create_logger("test"),
        )


# ─────────────────────────────────────────────────────────────────────────────
# Control plane
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def control():
    registry = AreaRegistry([PARK])
    plane = MQTTControlPlane(
        broker_host="localhost",
        broker_port=1883,
        command_topic="sentinela/control/geofence-1/commands",
        status_topic="sentinela/control/geofence-1/status",
        client_id="geofence_test",
    )
    plane.client = FakeClient()
    AreaCommandHandlers(registry, plane).register_all()
    return registry, plane


def statuses(plane):
    return [m['payload']['status'] for m in plane.client.published]


def test_add_and_remove_area_commands(control):
    registry, plane = control

    assert plane.handle_command({
        "command": "add_area",
        "area_id": "plaza",
        "name": "Plaza",
        "coordinates": [[2, 2], [2, 3], [3, 3], [3, 2]],
        "alert_type": "warning",
    })
    assert registry.get_area("plaza").alert_type.value == "warning"

    assert plane.handle_command({"command": "REMOVE_AREA", "area_id": "park"})
    assert registry.list_areas() == {"plaza": "active"}
    assert statuses(plane) == ["area_added", "area_removed"]
    assert all(m['retain'] and m['qos'] == 1 for m in plane.client.published)


def test_activation_commands(control):
    registry, plane = control

    assert plane.handle_command({"command": "deactivate_area", "area_id": "park"})
    assert registry.get_active_areas() == []
    assert plane.handle_command({"command": "activate_area", "area_id": "park"})
    assert [a.area_id for a in registry.get_active_areas()] == ["park"]


def test_update_area_command_changes_only_given_fields(control):
    registry, plane = control

    assert plane.handle_command({
        "command": "update_area",
        "area_id": "park",
        "name": "Big Park",
        "coordinates": [[-2, -2], [-2, 2], [2, 2], [2, -2]],
    })

    park = registry.get_area("park")
    assert park.name == "Big Park"
    assert park.alert_type.value == "standard"
    assert park.shape.contains_point(GeoPoint(1.5, 1.5))
    (reply,) = plane.client.published
    assert reply['payload']['status'] == "area_updated"
    assert reply['payload']['details'] == {"area_id": "park", "fields": ["coordinates", "name"]}


def test_update_area_geometry_change_produces_entry(control):
    registry, plane = control
    service = GeofenceService(registry, InMemoryLocationHistory())

    service.ingest_location(LocationSample("u1", GeoPoint(3, 3), T0))
    plane.handle_command({
        "command": "update_area",
        "area_id": "park",
        "coordinates": [[-2, -2], [-2, 2], [2, 2], [2, -2]],
    })
    result = service.ingest_location(
        LocationSample("u1", GeoPoint(1.5, 1.5), T0 + timedelta(minutes=1))
    )

    # (1.5, 1.5) is only inside the enlarged park
    assert [e.area_id for e in result.entries] == ["park"]


def test_query_commands(control):
    _, plane = control

    assert plane.handle_command({"command": "list_areas"})
    assert plane.handle_command({"command": "get_area", "area_id": "park"})

    areas_list, area_info = plane.client.published
    assert areas_list['payload']['details'] == {"areas": {"park": "active"}}
    assert area_info['payload']['details']['geometry_valid'] is True


@pytest.mark.parametrize("command", [
    {"command": "explode"},
    {"command": "remove_area", "area_id": "ghost"},
    {"command": "remove_area"},
    {"command": "update_area", "area_id": "ghost", "name": "Ghost"},
    {"command": "update_area", "area_id": "park"},
    {"command": "update_area", "area_id": "park", "status": "paused"},
    {"command": "add_area", "area_id": "park", "name": "Dup", "coordinates": [[0, 0], [0, 1], [1, 1]]},
    {"command": "add_area", "area_id": "x"},
])
def test_failed_commands_publish_command_failed(control, command):
    _, plane = control

    assert plane.handle_command(command) is False
    (reply,) = plane.client.published
    assert reply['payload']['status'] == "command_failed"
    assert reply['payload']['details']['command'] == command['command']


def test_malformed_command_payloads_ignored(control):
    _, plane = control

    assert plane.handle_command(["add_area"]) is False
    assert plane.handle_command({"area_id": "park"}) is False
    plane._on_message(None, None, mqtt_message(plane.command_topic, b"\xff\xfe"))
    assert plane.client.published == []


def test_unknown_command_lists_available(control):
    _, plane = control

    assert plane.handle_command({"command": "explode"}) is False
    (reply,) = plane.client.published
    available = reply['payload']['details']['available']
    assert list(available) == sorted(available)
    assert "add_area" in available


def test_duplicate_command_registration_rejected(control):
    _, plane = control

    with pytest.raises(ValueError):
        plane.command_registry.register("add_area", print, "again")
    assert "list_areas" in plane.command_registry.available_commands


# ─────────────────────────────────────────────────────────────────────────────
# CLI (offline parts)
# ─────────────────────────────────────────────────────────────────────────────

SERVICE_YAML = """
service_id: cli-test
areas:
  - area_id: park
    name: Park
    coordinates: [[-1, -1], [-1, 1], [1, 1], [1, -1]]
  - area_id: broken
    name: Broken
    coordinates: [[0, 0]]
"""


def test_cli_check_point(tmp_path, capsys):
    config = tmp_path / "service.yaml"
    config.write_text(SERVICE_YAML)

    assert check_point(str(config), lat=0.5, lon=0.5) == ["park"]
    assert main(["check-point", "--config", str(config), "--lat", "5", "--lon", "5"]) == 0

    out, err = capsys.readouterr()
    assert "not inside any active area" in out
    assert "broken" in err


def test_cli_send_location_reorders_lat_lon():
    from sentinela_cli.cli import build_location_message

    args = build_parser().parse_args([
        "send-location", "u1", "--lat", "-34.6", "--lon", "-58.38",
        "--timestamp", "2025-01-01T10:00:00Z",
    ])
    msg = build_location_message(args)

    assert (msg.longitude, msg.latitude) == (-58.38, -34.6)
    assert msg.to_sample().timestamp == T0


def test_cli_builds_area_commands(tmp_path):
    from sentinela_cli.cli import build_command

    changes = tmp_path / "update.yaml"
    changes.write_text("name: From YAML\ncoordinates: [[0, 0], [0, 1], [1, 1]]\n")
    parser = build_parser()

    update = build_command(parser.parse_args([
        "update-area", "park", "--config", str(changes), "--name", "Flag wins", "--alert-type", "warning",
    ]))
    assert update == {
        "command": "update_area",
        "area_id": "park",
        "name": "Flag wins",
        "alert_type": "warning",
        "coordinates": [[0, 0], [0, 1], [1, 1]],
    }
    assert build_command(parser.parse_args(["update-area", "park", "--status", "inactive"])) == {
        "command": "update_area", "area_id": "park", "status": "inactive",
    }
    assert build_command(parser.parse_args(["deactivate-area", "park"])) == {
        "command": "deactivate_area", "area_id": "park",
    }
    assert build_command(parser.parse_args(["list-areas"])) == {"command": "list_areas"}


def test_cli_errors_return_nonzero(tmp_path, capsys):
    assert main([]) == 1
    assert main(["add-area", str(tmp_path / "missing.yaml")]) == 1
    assert main(["send-location", "u1", "--lat", "95", "--lon", "0"]) == 1

    _, err = capsys.readouterr()
    assert "❌ Error" in err


# ─────────────────────────────────────────────────────────────────────────────
# Structured logging
# ─────────────────────────────────────────────────────────────────────────────

def test_structured_logger_writes_bound_metadata():
    stream = io.StringIO()
    logger = create_logger("json_test", service_id="geofence-1")
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    logger.logger.addHandler(handler)
    try:
        logger.bind(user_id="u1").info(
            LogEvent.TRANSITION_ENTRY, "entered", metadata={'area_id': 'park'}
        )
        logger.debug(LogEvent.LOCATION_RECEIVED, "below level")
    finally:
        logger.logger.removeHandler(handler)

    (line,) = stream.getvalue().splitlines()
    entry = json.loads(line)
    assert entry['level'] == "INFO"
    assert entry['component'] == "json_test"
    assert entry['event'] == "transition.entry"
    assert entry['metadata'] == {'service_id': "geofence-1", 'user_id': "u1", 'area_id': "park"}
    assert 'exception' not in entry


def test_structured_logger_records_exception_type():
    stream = io.StringIO()
    logger = create_logger("json_error_test")
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    logger.logger.addHandler(handler)
    try:
        logger.error(LogEvent.DEPENDENCY_UNAVAILABLE, "store down", exc_info=OSError("gone"))
    finally:
        logger.logger.removeHandler(handler)

    entry = json.loads(stream.getvalue().splitlines()[0])
    assert entry['exception'] == {'type': "OSError", 'message': "gone"}
    assert 'metadata' not in entry
