"""
Geometric Shapes Module
========================

Pure geometric representations - NO state, NO side effects.

Design:
- Immutable shapes (frozen dataclass pattern)
- Read-only numpy vertex arrays, closed rings
- Crossing-number (ray casting) for point-in-polygon
- Bounding box pre-filter (never changes the answer, only skips work)
- Thread-safe (immutable, read-only arrays)

Coordinate convention:
    Always (longitude, latitude). Callers that receive (lat, lon) must
    reorder at the boundary with GeoPoint.from_lat_lon().

Known limitation:
    Points lying exactly on an edge have no defined tie-break. The result is
    stable for a given ring but may differ for an equivalent ring whose
    vertices are listed in another order.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Tuple, Union

import numpy as np

from sentinela_zone.errors import InvalidGeometry, InvalidInput


@dataclass(frozen=True)
class GeoPoint:
    """
    Immutable WGS84 position.

    Attributes:
        longitude: Degrees east, in [-180, 180]
        latitude: Degrees north, in [-90, 90]

    Raises:
        InvalidInput: If a coordinate is missing, non-numeric, non-finite
            or out of range

    Example:
        >>> GeoPoint(longitude=-58.38, latitude=-34.60)
        >>> GeoPoint.from_lat_lon(-34.60, -58.38)  # same point
    """

    longitude: float
    latitude: float

    def __post_init__(self):
        """Validate and normalize coordinates to float."""
        lon = _coerce_coordinate("longitude", self.longitude)
        lat = _coerce_coordinate("latitude", self.latitude)

        if not -180.0 <= lon <= 180.0:
            raise InvalidInput(f"longitude must be in [-180, 180], got {lon}")
        if not -90.0 <= lat <= 90.0:
            raise InvalidInput(f"latitude must be in [-90, 90], got {lat}")

        object.__setattr__(self, 'longitude', lon)
        object.__setattr__(self, 'latitude', lat)

    @classmethod
    def from_lat_lon(cls, latitude: Any, longitude: Any) -> 'GeoPoint':
        """Build a point from (lat, lon) input, reordering to (lon, lat)."""
        return cls(longitude=longitude, latitude=latitude)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'GeoPoint':
        """
        Deserialize from dict.

        Accepts {"longitude": .., "latitude": ..} or a GeoJSON Point
        {"type": "Point", "coordinates": [lon, lat]}.

        Raises:
            InvalidInput: If coordinates are missing or invalid
        """
        if not isinstance(data, Mapping):
            raise InvalidInput(f"point must be a mapping, got {type(data).__name__}")

        if 'coordinates' in data:
            coords = data['coordinates']
            if not isinstance(coords, (list, tuple)) or len(coords) != 2:
                raise InvalidInput(f"GeoJSON point needs [lon, lat], got {coords!r}")
            return cls(longitude=coords[0], latitude=coords[1])

        try:
            return cls(longitude=data['longitude'], latitude=data['latitude'])
        except KeyError as e:
            raise InvalidInput(f"Missing required point field: {e}") from e

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible dict."""
        return {'longitude': self.longitude, 'latitude': self.latitude}

    def as_tuple(self) -> Tuple[float, float]:
        """(lon, lat) tuple."""
        return (self.longitude, self.latitude)


def _coerce_coordinate(name: str, value: Any) -> float:
    if value is None:
        raise InvalidInput(f"{name} is required")
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number, got bool")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise InvalidInput(f"{name} must be finite, got {number}")
    return number


def as_point(point: Union[GeoPoint, Sequence[float]]) -> GeoPoint:
    """Coerce a GeoPoint or (lon, lat) pair into a GeoPoint."""
    if isinstance(point, GeoPoint):
        return point
    if isinstance(point, (list, tuple)) and len(point) == 2:
        return GeoPoint(longitude=point[0], latitude=point[1])
    raise InvalidInput(f"point must be GeoPoint or (lon, lat), got {point!r}")


@dataclass(frozen=True, eq=False)
class Ring:
    """
    Immutable closed ring of (lon, lat) vertices.

    Design:
    - Vertices copied into a read-only Nx2 float64 array
    - Implicitly closed: first vertex appended when last != first
    - Edge arrays precomputed at init (O(N) once, O(N) per query)

    Attributes:
        vertices: Nx2 array of (lon, lat) vertices, closed

    Raises:
        InvalidGeometry: Wrong shape, non-finite values or fewer than
            3 distinct vertices
    """

    vertices: np.ndarray

    def __post_init__(self):
        """Validate, close and freeze the vertex array."""
        try:
            vertices = np.array(self.vertices, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidGeometry(f"Ring vertices are not numeric pairs: {e}") from e

        if vertices.ndim != 2 or vertices.shape[1] != 2:
            raise InvalidGeometry(f"Ring vertices must be Nx2, got shape {vertices.shape}")
        if not np.isfinite(vertices).all():
            raise InvalidGeometry("Ring vertices must be finite numbers")

        distinct = len(np.unique(vertices, axis=0))
        if distinct < 3:
            raise InvalidGeometry(
                f"Ring must have at least 3 distinct vertices, got {distinct}"
            )

        if not np.array_equal(vertices[0], vertices[-1]):
            vertices = np.vstack([vertices, vertices[:1]])

        previous = np.roll(vertices, 1, axis=0)
        vertices.flags.writeable = False
        previous.flags.writeable = False

        object.__setattr__(self, 'vertices', vertices)
        object.__setattr__(self, '_previous', previous)
        object.__setattr__(self, '_bbox', (
            float(vertices[:, 0].min()), float(vertices[:, 1].min()),
            float(vertices[:, 0].max()), float(vertices[:, 1].max()),
        ))

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        """(min_lon, min_lat, max_lon, max_lat)."""
        return self._bbox

    def contains_point(self, point: GeoPoint) -> bool:
        """
        Crossing-number test against this ring.

        A horizontal ray is cast from the point towards +inf longitude.
        Edge (vi, vj) is crossed when the point's latitude lies in the
        half-open interval between yi and yj and the edge's longitude at
        that latitude exceeds the point's longitude.

        Args:
            point: Position to test

        Returns:
            True if the number of crossings is odd
        """
        lon, lat = point.longitude, point.latitude

        min_lon, min_lat, max_lon, max_lat = self._bbox
        if lon < min_lon or lon > max_lon or lat < min_lat or lat > max_lat:
            return False

        xi, yi = self.vertices[:, 0], self.vertices[:, 1]
        xj, yj = self._previous[:, 0], self._previous[:, 1]

        straddles = (yi > lat) != (yj > lat)
        if not straddles.any():
            return False

        # yi != yj on every straddling edge, division is safe
        xi, yi, xj, yj = xi[straddles], yi[straddles], xj[straddles], yj[straddles]
        intersections = (xj - xi) * (lat - yi) / (yj - yi) + xi

        crossings = int(np.count_nonzero(lon < intersections))
        return crossings % 2 == 1

    def __len__(self) -> int:
        """Number of vertices including the closing one."""
        return len(self.vertices)


@dataclass(frozen=True, eq=False)
class Polygon:
    """
    Outer ring with zero or more holes.

    A point is contained iff it is inside the outer ring and inside none
    of the holes.
    """

    outer: Ring
    holes: Tuple[Ring, ...] = ()

    def __post_init__(self):
        if not isinstance(self.outer, Ring):
            raise InvalidGeometry(f"outer must be a Ring, got {type(self.outer).__name__}")
        holes = tuple(self.holes)
        for hole in holes:
            if not isinstance(hole, Ring):
                raise InvalidGeometry(f"holes must be Rings, got {type(hole).__name__}")
        object.__setattr__(self, 'holes', holes)

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        return self.outer.bbox

    def contains_point(self, point: GeoPoint) -> bool:
        if not self.outer.contains_point(point):
            return False
        return not any(hole.contains_point(point) for hole in self.holes)


@dataclass(frozen=True, eq=False)
class MultiPolygon:
    """
    Set of independent polygons. Contained iff inside any one of them.
    """

    polygons: Tuple[Polygon, ...]

    def __post_init__(self):
        polygons = tuple(self.polygons)
        if not polygons:
            raise InvalidGeometry("MultiPolygon must contain at least one polygon")
        for polygon in polygons:
            if not isinstance(polygon, Polygon):
                raise InvalidGeometry(
                    f"MultiPolygon members must be Polygons, got {type(polygon).__name__}"
                )
        object.__setattr__(self, 'polygons', polygons)

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        boxes = np.array([polygon.bbox for polygon in self.polygons])
        return (
            float(boxes[:, 0].min()), float(boxes[:, 1].min()),
            float(boxes[:, 2].max()), float(boxes[:, 3].max()),
        )

    def contains_point(self, point: GeoPoint) -> bool:
        # First match suffices
        return any(polygon.contains_point(point) for polygon in self.polygons)


Shape = Union[Polygon, MultiPolygon]


def _polygon_from_rings(rings: Any) -> Polygon:
    if not isinstance(rings, (list, tuple)) or not rings:
        raise InvalidGeometry("Polygon coordinates must be a non-empty list of rings")
    return Polygon(
        outer=Ring(rings[0]),
        holes=tuple(Ring(hole) for hole in rings[1:]),
    )


def load_geometry(geometry: Any) -> Shape:
    """
    Build a Polygon or MultiPolygon from common representations.

    Accepted inputs:
    - Polygon / MultiPolygon: returned as is
    - Ring: wrapped as a polygon without holes
    - GeoJSON mapping: {"type": "Polygon", "coordinates": [outer, *holes]},
      {"type": "MultiPolygon", "coordinates": [[outer, *holes], ...]},
      or a Feature wrapping either
    - Sequence of (lon, lat) pairs: simple outer ring

    Raises:
        InvalidGeometry: For anything else, or a degenerate ring
    """
    if isinstance(geometry, (Polygon, MultiPolygon)):
        return geometry
    if isinstance(geometry, Ring):
        return Polygon(outer=geometry)

    if isinstance(geometry, Mapping):
        geometry_type = geometry.get('type')

        if geometry_type == 'Feature':
            return load_geometry(geometry.get('geometry'))

        coordinates = geometry.get('coordinates')
        if geometry_type == 'Polygon':
            return _polygon_from_rings(coordinates)
        if geometry_type == 'MultiPolygon':
            if not isinstance(coordinates, (list, tuple)) or not coordinates:
                raise InvalidGeometry("MultiPolygon coordinates must be a non-empty list")
            return MultiPolygon(polygons=tuple(
                _polygon_from_rings(rings) for rings in coordinates
            ))
        raise InvalidGeometry(f"Unsupported geometry type: {geometry_type!r}")

    if isinstance(geometry, (list, tuple, np.ndarray)):
        return Polygon(outer=Ring(geometry))

    raise InvalidGeometry(f"Cannot build geometry from {type(geometry).__name__}")


def point_in_polygon(
    point: Union[GeoPoint, Sequence[float]],
    polygon: Any
) -> bool:
    """
    Test whether a point lies inside a polygon or multipolygon.

    Args:
        point: GeoPoint or (lon, lat) pair
        polygon: Shape or any input accepted by load_geometry()

    Returns:
        True if contained

    Raises:
        InvalidInput: If the point is invalid
        InvalidGeometry: If the polygon is malformed or degenerate

    Example:
        >>> square = [(-1, -1), (-1, 1), (1, 1), (1, -1)]
        >>> point_in_polygon((0, 0), square)
        True
        >>> point_in_polygon((5, 5), square)
        False
    """
    return load_geometry(polygon).contains_point(as_point(point))
