"""
Entry/exit detection from consecutive samples.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sentinela_zone import (
    AlertType,
    Area,
    GeoPoint,
    InvalidInput,
    LocationSample,
    TransitionDetector,
    TransitionEvent,
    TransitionKind,
)

T0 = datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)

PARK = Area(
    area_id="park",
    name="Park",
    geometry={"type": "Polygon", "coordinates": [[[-1, -1], [-1, 1], [1, 1], [1, -1]]]},
    alert_type=AlertType.INFO,
)
PLAZA = Area(
    area_id="plaza",
    name="Plaza",
    geometry=[(0, 0), (0, 3), (3, 3), (3, 0)],
)


def sample(lon, lat, minutes=0, user_id="u1"):
    return LocationSample(user_id=user_id, point=GeoPoint(lon, lat), timestamp=T0 + timedelta(minutes=minutes))


def test_park_sequence_entry_none_exit_entry():
    samples = [sample(0, 0, 1), sample(0.5, 0.5, 2), sample(5, 5, 3), sample(0, 0, 4)]

    results = []
    previous = None
    for current in samples:
        results.append(TransitionDetector.detect(current, previous, [PARK]))
        previous = current

    t1, t2, t3, t4 = results
    assert [e.area_id for e in t1.entries] == ["park"] and t1.exits == ()
    assert not t2.has_transitions
    assert t3.entries == () and [e.area_id for e in t3.exits] == ["park"]
    assert [e.area_id for e in t4.entries] == ["park"] and t4.exits == ()

    entries = [e for r in results for e in r.entries]
    exits = [e for r in results for e in r.exits]
    assert [e.timestamp for e in entries] == [samples[0].timestamp, samples[3].timestamp]
    assert [e.timestamp for e in exits] == [samples[2].timestamp]


def test_first_sample_reports_every_occupied_area():
    result = TransitionDetector.detect(sample(0.5, 0.5), None, [PLAZA, PARK])

    assert result.contained_areas == frozenset({"park", "plaza"})
    # Sorted by area id
    assert [e.area_id for e in result.entries] == ["park", "plaza"]
    assert all(e.kind == TransitionKind.ENTRY for e in result.entries)


def test_event_carries_area_details():
    event = TransitionDetector.detect(sample(0, 0), None, [PARK]).entries[0]

    assert event.user_id == "u1"
    assert event.area_name == "Park"
    assert event.alert_type == AlertType.INFO
    assert event.timestamp == T0


def test_moving_between_areas_gives_exit_and_entry():
    previous = sample(-0.5, -0.5, 0)  # park only
    current = sample(2, 2, 1)         # plaza only

    result = TransitionDetector.detect(current, previous, [PARK, PLAZA])

    assert [e.area_id for e in result.entries] == ["plaza"]
    assert [e.area_id for e in result.exits] == ["park"]
    assert result.events == result.entries + result.exits


def test_detection_is_idempotent():
    previous, current = sample(5, 5, 0), sample(0, 0, 1)

    first = TransitionDetector.detect(current, previous, [PARK])
    second = TransitionDetector.detect(current, previous, [PARK])

    assert first == second


def test_inactive_area_never_transitions():
    inactive = PARK.with_status("inactive")

    result = TransitionDetector.detect(sample(0, 0, 1), sample(5, 5, 0), [inactive])

    assert not result.has_transitions
    assert result.contained_areas == frozenset()


def test_skipped_area_produces_no_events():
    broken = Area(area_id="broken", name="Broken", geometry={"type": "Polygon", "coordinates": []})

    result = TransitionDetector.detect(sample(0, 0), None, [broken, PARK])

    assert [e.area_id for e in result.entries] == ["park"]
    assert [s.area_id for s in result.skipped] == ["broken"]


def test_previous_must_be_earlier_and_same_user():
    with pytest.raises(InvalidInput):
        TransitionDetector.detect(sample(0, 0, 1), sample(0, 0, 1), [PARK])
    with pytest.raises(InvalidInput):
        TransitionDetector.detect(sample(0, 0, 1), sample(0, 0, 2), [PARK])
    with pytest.raises(InvalidInput):
        TransitionDetector.detect(sample(0, 0, 1), sample(0, 0, 0, user_id="u2"), [PARK])


def test_sample_validation():
    with pytest.raises(InvalidInput):
        LocationSample(user_id="", point=(0, 0), timestamp=T0)
    with pytest.raises(InvalidInput):
        LocationSample(user_id="u1", point=(0, 0), timestamp="yesterday")
    with pytest.raises(InvalidInput):
        LocationSample(user_id="u1", point=(0, 0), timestamp=None)

    naive = LocationSample(user_id="u1", point=(0, 0), timestamp="2025-01-01T10:00:00")
    assert naive.timestamp == T0


def test_event_dict_round_trip():
    event = TransitionDetector.detect(sample(0, 0), None, [PARK]).entries[0]

    assert TransitionEvent.from_dict(event.to_dict()) == event

    with pytest.raises(ValueError):
        TransitionEvent.from_dict({"user_id": "u1"})
