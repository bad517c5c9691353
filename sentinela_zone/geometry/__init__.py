"""
Geometry Layer
==============

Bounded Context: Pure geometric shapes and spatial queries.

Responsibilities:
- Shape representation (immutable)
- Point-in-polygon tests (ray casting)
- Containment resolution over an area snapshot
- NO state, NO logging, NO I/O

Design Philosophy:
- Pure functions where possible
- Immutable data structures
- Fail-fast validation
- Zero side effects
"""

from sentinela_zone.geometry.shapes import (
    GeoPoint,
    Ring,
    Polygon,
    MultiPolygon,
    as_point,
    load_geometry,
    point_in_polygon,
)
from sentinela_zone.geometry.resolver import (
    ContainmentResolver,
    ContainmentResult,
    SkippedArea,
    resolve_containment,
)

__all__ = [
    "GeoPoint",
    "Ring",
    "Polygon",
    "MultiPolygon",
    "as_point",
    "load_geometry",
    "point_in_polygon",
    "ContainmentResolver",
    "ContainmentResult",
    "SkippedArea",
    "resolve_containment",
]
