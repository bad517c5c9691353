"""
Area registry snapshots and the in-memory location history.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sentinela_zone import Area, AreaStatus, GeoPoint, LocationSample, UnknownArea
from sentinela_processor import AreaRegistry, InMemoryLocationHistory

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)
RING = [(-1, -1), (-1, 1), (1, 1), (1, -1)]


def area(area_id, **kwargs):
    return Area(area_id=area_id, name=area_id.upper(), geometry=RING, **kwargs)


def sample(minutes, user_id="u1", lon=0.0):
    return LocationSample(user_id=user_id, point=GeoPoint(lon, 0), timestamp=T0 + timedelta(minutes=minutes))


# ─────────────────────────────────────────────────────────────────────────────
# AreaRegistry
# ─────────────────────────────────────────────────────────────────────────────

def test_registry_add_and_list():
    registry = AreaRegistry([area("b"), area("a", status=AreaStatus.INACTIVE)])

    assert registry.count() == 2
    assert registry.list_areas() == {"a": "inactive", "b": "active"}
    assert [a.area_id for a in registry.get_active_areas()] == ["b"]

    with pytest.raises(ValueError):
        registry.add_area(area("a"))


def test_registry_unknown_area():
    registry = AreaRegistry()

    for operation in (registry.remove_area, registry.activate_area,
                      registry.deactivate_area, registry.get_area):
        with pytest.raises(UnknownArea):
            operation("ghost")

    with pytest.raises(UnknownArea):
        registry.update_area(area("ghost"))


def test_snapshot_is_stable_across_mutation():
    registry = AreaRegistry([area("a")])
    before = registry.snapshot()

    registry.deactivate_area("a")
    registry.add_area(area("b"))
    after = registry.snapshot()

    assert before.get("a").is_active
    assert len(before) == 1
    assert after.version > before.version
    assert not after.get("a").is_active
    assert [a.area_id for a in after.active_areas] == ["b"]


def test_snapshot_reused_until_mutation():
    registry = AreaRegistry([area("a")])

    first = registry.snapshot()
    assert registry.snapshot() is first

    registry.deactivate_area("a")
    version = registry.version
    registry.deactivate_area("a")  # no change, no new version
    assert registry.version == version


def test_get_area_info_reports_geometry_validity():
    registry = AreaRegistry([area("ok"), Area(area_id="bad", name="Bad", geometry=[(0, 0)])])

    assert registry.get_area_info("ok")["geometry_valid"] is True
    info = registry.get_area_info("bad")
    assert info["geometry_valid"] is False
    assert "geometry_error" in info


def test_registry_update_and_clear():
    registry = AreaRegistry([area("a")])
    registry.update_area(Area(area_id="a", name="Renamed", geometry=RING))

    assert registry.get_area("a").name == "Renamed"

    registry.clear()
    assert registry.count() == 0
    assert registry.snapshot().areas == ()


# ─────────────────────────────────────────────────────────────────────────────
# InMemoryLocationHistory
# ─────────────────────────────────────────────────────────────────────────────

def test_recent_samples_newest_first():
    history = InMemoryLocationHistory()
    for minutes in (1, 2, 3):
        history.append_sample(sample(minutes))

    recent = history.get_recent_samples("u1", limit=2)

    assert [s.timestamp for s in recent] == [T0 + timedelta(minutes=3), T0 + timedelta(minutes=2)]
    assert history.get_recent_samples("nobody") == []


def test_out_of_order_append_keeps_timestamp_order():
    history = InMemoryLocationHistory()
    history.append_sample(sample(3))
    history.append_sample(sample(1))
    history.append_sample(sample(2))

    assert [s.timestamp.minute for s in history.user_samples("u1")] == [1, 2, 3]
    assert history.latest_sample("u1").timestamp.minute == 3


def test_before_is_strict():
    history = InMemoryLocationHistory()
    for minutes in (1, 2, 3):
        history.append_sample(sample(minutes))

    previous = history.get_recent_samples("u1", limit=1, before=T0 + timedelta(minutes=2))

    assert [s.timestamp.minute for s in previous] == [1]
    assert history.get_recent_samples("u1", before=T0) == []
    # ISO strings accepted
    assert len(history.get_recent_samples("u1", before="2025-01-01T00:02:30Z")) == 2


def test_equal_timestamps_keep_arrival_order():
    history = InMemoryLocationHistory()
    history.append_sample(sample(1, lon=1))
    history.append_sample(sample(1, lon=2))

    assert [s.point.longitude for s in history.user_samples("u1")] == [1, 2]


def test_eviction_drops_oldest():
    history = InMemoryLocationHistory(max_samples_per_user=2)
    for minutes in (1, 2, 3):
        history.append_sample(sample(minutes))

    assert history.count("u1") == 2
    assert [s.timestamp.minute for s in history.user_samples("u1")] == [2, 3]

    with pytest.raises(ValueError):
        InMemoryLocationHistory(max_samples_per_user=1)


def test_users_are_isolated():
    history = InMemoryLocationHistory()
    history.append_sample(sample(1, user_id="u1"))
    history.append_sample(sample(2, user_id="u2"))

    assert history.user_ids() == ["u1", "u2"]
    assert history.count() == 2
    assert [s.user_id for s in history.all_samples()] == ["u1", "u2"]

    with pytest.raises(ValueError):
        history.get_recent_samples("u1", limit=0)

    history.clear()
    assert history.count() == 0
