"""
Geometry tests: points, rings, polygons with holes, multipolygons.
"""

import math

import numpy as np
import pytest

from sentinela_zone import (
    GeoPoint,
    InvalidGeometry,
    InvalidInput,
    MultiPolygon,
    Polygon,
    Ring,
    load_geometry,
    point_in_polygon,
)

SQUARE = [(-1, -1), (-1, 1), (1, 1), (1, -1)]


def test_point_keeps_lon_lat_order():
    point = GeoPoint.from_lat_lon(-34.6, -58.38)

    assert point.longitude == -58.38
    assert point.latitude == -34.6
    assert point.as_tuple() == (-58.38, -34.6)


@pytest.mark.parametrize("lon,lat", [
    (181, 0),
    (0, -91),
    (math.nan, 0),
    (0, math.inf),
    ("east", 0),
    (None, 0),
    (True, 0),
])
def test_point_rejects_bad_coordinates(lon, lat):
    with pytest.raises(InvalidInput):
        GeoPoint(longitude=lon, latitude=lat)


def test_point_from_geojson_dict():
    point = GeoPoint.from_dict({"type": "Point", "coordinates": [10, 20]})
    assert point == GeoPoint(10, 20)

    with pytest.raises(InvalidInput):
        GeoPoint.from_dict({"longitude": 10})


def test_ring_is_closed_and_read_only():
    ring = Ring(SQUARE)

    assert len(ring) == 5
    assert np.array_equal(ring.vertices[0], ring.vertices[-1])
    assert ring.bbox == (-1.0, -1.0, 1.0, 1.0)
    with pytest.raises(ValueError):
        ring.vertices[0, 0] = 42.0


def test_explicitly_closed_ring_not_closed_twice():
    ring = Ring(SQUARE + [SQUARE[0]])
    assert len(ring) == 5


@pytest.mark.parametrize("vertices", [
    [(0, 0), (1, 1)],
    [(0, 0), (1, 1), (0, 0), (1, 1)],
    [(0, 0, 0), (1, 1, 1), (2, 0, 0)],
    [(0, 0), (1, "a"), (2, 0)],
    [(0, 0), (1, math.nan), (2, 0)],
])
def test_degenerate_rings_rejected(vertices):
    with pytest.raises(InvalidGeometry):
        Ring(vertices)


@pytest.mark.parametrize("point,expected", [
    ((0, 0), True),
    ((0.5, 0.5), True),
    ((-0.99, 0.99), True),
    ((5, 5), False),
    ((1.5, 0), False),
    ((0, -1.5), False),
])
def test_point_in_square(point, expected):
    assert point_in_polygon(point, SQUARE) is expected


def test_concave_polygon():
    # "U" shape: the notch between the arms is outside
    u_shape = [(0, 0), (3, 0), (3, 3), (2, 3), (2, 1), (1, 1), (1, 3), (0, 3)]

    assert point_in_polygon((0.5, 2), u_shape)
    assert point_in_polygon((2.5, 2), u_shape)
    assert not point_in_polygon((1.5, 2), u_shape)
    assert point_in_polygon((1.5, 0.5), u_shape)


def test_hole_excludes_points():
    geometry = {
        "type": "Polygon",
        "coordinates": [
            [[-2, -2], [-2, 2], [2, 2], [2, -2]],
            [[-1, -1], [-1, 1], [1, 1], [1, -1]],
        ],
    }
    shape = load_geometry(geometry)

    assert isinstance(shape, Polygon)
    assert len(shape.holes) == 1
    assert not shape.contains_point(GeoPoint(0, 0))
    assert shape.contains_point(GeoPoint(1.5, 1.5))


def test_multipolygon_contains_any_member():
    geometry = {
        "type": "MultiPolygon",
        "coordinates": [
            [[[0, 0], [0, 1], [1, 1], [1, 0]]],
            [[[10, 10], [10, 11], [11, 11], [11, 10]]],
        ],
    }
    shape = load_geometry(geometry)

    assert isinstance(shape, MultiPolygon)
    assert shape.contains_point(GeoPoint(0.5, 0.5))
    assert shape.contains_point(GeoPoint(10.5, 10.5))
    assert not shape.contains_point(GeoPoint(5, 5))
    assert shape.bbox == (0.0, 0.0, 11.0, 11.0)


def test_feature_wrapper_is_unwrapped():
    feature = {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [SQUARE]},
        "properties": {},
    }
    assert point_in_polygon(GeoPoint(0, 0), feature)


@pytest.mark.parametrize("geometry", [
    {"type": "LineString", "coordinates": [[0, 0], [1, 1]]},
    {"type": "Polygon", "coordinates": []},
    {"type": "MultiPolygon", "coordinates": []},
    "not a polygon",
    42,
])
def test_unsupported_geometry_rejected(geometry):
    with pytest.raises(InvalidGeometry):
        load_geometry(geometry)


def test_vertex_order_does_not_change_interior():
    clockwise = SQUARE
    counter_clockwise = list(reversed(SQUARE))

    for point in [(0, 0), (0.9, -0.9), (3, 3)]:
        assert point_in_polygon(point, clockwise) == point_in_polygon(point, counter_clockwise)


def test_vertex_on_ray_counted_once():
    # Ray from (0, 0) passes exactly through the vertex (2, 0)
    diamond = [(0, -2), (2, 0), (0, 2), (-2, 0)]
    assert point_in_polygon((0, 0), diamond)
    assert not point_in_polygon((-3, 0), diamond)
