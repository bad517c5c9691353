"""
Service configuration loading and validation.
"""

import pytest
import yaml

from sentinela_zone import AlertType, AreaStatus
from sentinela_processor.config import (
    AreaConfig,
    EvaluationConfig,
    MQTTConfig,
    ServiceConfig,
)

CONFIG = {
    "service_id": "geofence-test",
    "areas": [
        {
            "area_id": "park",
            "name": "Park",
            "alert_type": "info",
            "coordinates": [[-1, -1], [-1, 1], [1, 1], [1, -1]],
        },
        {
            "area_id": "port",
            "name": "Port",
            "status": "inactive",
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[10, 10], [10, 11], [11, 11], [11, 10]]],
            },
        },
    ],
    "mqtt_config": {"broker": "mqtt.local", "port": 1884, "qos": 2},
    "evaluation": {"dispatch_exits": True, "worker_count": 2, "timeout_seconds": None},
}


def write_yaml(tmp_path, data):
    path = tmp_path / "service_config.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def test_from_yaml(tmp_path):
    config = ServiceConfig.from_yaml(write_yaml(tmp_path, CONFIG))

    assert config.service_id == "geofence-test"
    assert config.mqtt_config.broker == "mqtt.local"
    assert config.mqtt_config.qos == 2
    assert config.evaluation.dispatch_exits is True
    assert config.evaluation.timeout_seconds is None
    assert config.location_topic == "sentinela/data/locations"
    assert config.transition_topic == "sentinela/data/transitions/geofence-test"


def test_build_areas(tmp_path):
    config = ServiceConfig.from_yaml(write_yaml(tmp_path, CONFIG))

    park, port = config.build_areas()

    assert park.alert_type == AlertType.INFO
    assert park.geometry == {"type": "Polygon", "coordinates": [[[-1, -1], [-1, 1], [1, 1], [1, -1]]]}
    assert port.status == AreaStatus.INACTIVE
    assert port.alert_type == AlertType.STANDARD


def test_defaults():
    config = ServiceConfig.from_dict({"service_id": "s"})

    assert config.areas == []
    assert config.mqtt_config == MQTTConfig()
    assert config.evaluation.dispatch_exits is False
    assert config.evaluation.timeout_seconds == 5.0


def test_duplicate_area_ids_rejected():
    data = dict(CONFIG, areas=[CONFIG["areas"][0], CONFIG["areas"][0]])

    with pytest.raises(ValueError, match="Duplicate area ids"):
        ServiceConfig.from_dict(data)


@pytest.mark.parametrize("area", [
    {"area_id": "x", "name": "X"},
    {"area_id": "x", "name": "X", "coordinates": [[0, 0]], "geometry": {"type": "Polygon"}},
    {"area_id": "", "name": "X", "coordinates": [[0, 0]]},
    {"area_id": "x", "name": "X", "coordinates": [[0, 0]], "status": "paused"},
    {"area_id": "x", "name": "X", "coordinates": [[0, 0]], "alert_type": "loud"},
])
def test_invalid_area_config(area):
    with pytest.raises(ValueError):
        AreaConfig.from_dict(area)


def test_malformed_geometry_loads_and_is_skipped_later():
    area = AreaConfig.from_dict({"area_id": "x", "name": "X", "coordinates": [[0, 0]]}).to_area()
    assert area.area_id == "x"


@pytest.mark.parametrize("kwargs", [
    {"port": 0},
    {"qos": 3},
    {"broker": ""},
])
def test_invalid_mqtt_config(kwargs):
    with pytest.raises(ValueError):
        MQTTConfig(**kwargs)


@pytest.mark.parametrize("kwargs", [
    {"timeout_seconds": 0},
    {"dispatch_max_attempts": 0},
    {"dispatch_retry_delay": -1},
    {"dispatch_queue_size": 0},
    {"worker_count": 0},
    {"max_samples_per_user": 1},
])
def test_invalid_evaluation_config(kwargs):
    with pytest.raises(ValueError):
        EvaluationConfig(**kwargs)


def test_unknown_evaluation_key_rejected():
    with pytest.raises(TypeError):
        ServiceConfig.from_dict({"service_id": "s", "evaluation": {"workers": 2}})


def test_root_must_be_mapping(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ValueError):
        ServiceConfig.from_yaml(path)
