"""
Containment resolution over area snapshots.
"""

import pytest

from sentinela_zone import (
    Area,
    AreaStatus,
    ContainmentResolver,
    GeoPoint,
    InvalidInput,
    resolve_containment,
)


def square(area_id, x0, y0, size=2, **kwargs):
    return Area(
        area_id=area_id,
        name=area_id.title(),
        geometry=[(x0, y0), (x0, y0 + size), (x0 + size, y0 + size), (x0 + size, y0)],
        **kwargs,
    )


def test_overlapping_areas_all_reported():
    areas = [square("a", 0, 0), square("b", 1, 1), square("c", 10, 10)]

    result = ContainmentResolver.resolve(GeoPoint(1.5, 1.5), areas)

    assert result.area_ids == frozenset({"a", "b"})
    assert "a" in result
    assert len(result) == 2
    assert result.skipped == ()


def test_inactive_areas_ignored():
    areas = [square("a", 0, 0), square("b", 0, 0, status=AreaStatus.INACTIVE)]

    assert resolve_containment(GeoPoint(1, 1), areas) == frozenset({"a"})


def test_invalid_geometry_skipped_not_fatal():
    broken = Area(area_id="broken", name="Broken", geometry=[(0, 0), (1, 1)])
    areas = [broken, square("a", 0, 0)]

    result = ContainmentResolver.resolve(GeoPoint(1, 1), areas)

    assert result.area_ids == frozenset({"a"})
    assert [s.area_id for s in result.skipped] == ["broken"]
    assert "distinct vertices" in result.skipped[0].reason


def test_empty_snapshot_gives_empty_set():
    assert resolve_containment(GeoPoint(0, 0), []) == frozenset()


def test_point_given_as_pair():
    assert resolve_containment((1, 1), [square("a", 0, 0)]) == frozenset({"a"})


def test_invalid_point_raises():
    with pytest.raises(InvalidInput):
        resolve_containment((500, 0), [square("a", 0, 0)])


def test_area_order_does_not_matter():
    areas = [square("a", 0, 0), square("b", 1, 1), square("c", 0.5, 0.5)]
    point = GeoPoint(1.2, 1.2)

    assert resolve_containment(point, areas) == resolve_containment(point, reversed(areas))


def test_area_rejects_blank_identity():
    with pytest.raises(InvalidInput):
        Area(area_id="", name="x", geometry=[(0, 0), (0, 1), (1, 1)])
    with pytest.raises(InvalidInput):
        Area(area_id="x", name=" ", geometry=[(0, 0), (0, 1), (1, 1)])


def test_area_status_and_alert_type_coerced():
    area = Area(
        area_id="a", name="A", geometry=[(0, 0), (0, 1), (1, 1)],
        status="INACTIVE", alert_type="danger",
    )

    assert area.status == AreaStatus.INACTIVE
    assert area.to_dict()["alert_type"] == "danger"
    assert area.with_status(AreaStatus.ACTIVE).is_active

    with pytest.raises(InvalidInput):
        Area(area_id="a", name="A", geometry=[], alert_type="loud")


def test_area_dict_round_trip_keeps_geometry():
    area = square("park", -1, -1, properties={"owner": "city"})

    restored = Area.from_dict(area.to_dict())

    assert restored.area_id == "park"
    assert restored.properties["owner"] == "city"
    assert restored.shape.contains_point(GeoPoint(0, 0))
