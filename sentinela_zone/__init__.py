"""
Sentinela Geofence Engine
=========================

Bounded Context: Geofence containment and entry/exit detection.

Design Philosophy:
- Separation of Concerns: Geometry, Domain, Analytics separated
- Pure core: no logging, no I/O, no long-lived state
- Determinism over cleverness: same inputs, same events

Architecture:

    sentinela_zone/
    ├── geometry/          # Pure geometry (immutable, stateless)
    │   ├── shapes.py      # GeoPoint, Ring, Polygon, MultiPolygon
    │   └── resolver.py    # ContainmentResolver
    │
    ├── analytics/         # Transitions (stateless diff of samples)
    │   └── transitions.py # TransitionDetector, TransitionEvent
    │
    ├── domain.py          # Area, LocationSample
    └── errors.py          # Typed error hierarchy

Usage:

    from sentinela_zone import Area, LocationSample, GeoPoint, TransitionDetector

    park = Area(area_id="park", name="Park",
                geometry=[(-1, -1), (-1, 1), (1, 1), (1, -1)])

    first = LocationSample("u1", GeoPoint(0, 0), "2025-01-01T10:00:00Z")
    result = TransitionDetector.detect(first, None, [park])
    result.entries   # (TransitionEvent(kind=ENTRY, area_id="park", ...),)
"""

# Errors
from sentinela_zone.errors import (
    GeofenceError,
    InvalidInput,
    InvalidGeometry,
    UnknownArea,
    DependencyUnavailable,
    EvaluationCancelled,
    DispatchError,
)

# Geometry Layer (immutable, stateless)
from sentinela_zone.geometry.shapes import (
    GeoPoint,
    Ring,
    Polygon,
    MultiPolygon,
    load_geometry,
    point_in_polygon,
)
from sentinela_zone.geometry.resolver import (
    ContainmentResolver,
    ContainmentResult,
    SkippedArea,
    resolve_containment,
)

# Domain
from sentinela_zone.domain import (
    Area,
    AreaStatus,
    AlertType,
    LocationSample,
    normalize_timestamp,
)

# Analytics Layer
from sentinela_zone.analytics.transitions import (
    TransitionDetector,
    TransitionEvent,
    TransitionKind,
    TransitionResult,
)

__all__ = [
    # Errors
    "GeofenceError",
    "InvalidInput",
    "InvalidGeometry",
    "UnknownArea",
    "DependencyUnavailable",
    "EvaluationCancelled",
    "DispatchError",
    # Geometry
    "GeoPoint",
    "Ring",
    "Polygon",
    "MultiPolygon",
    "load_geometry",
    "point_in_polygon",
    "ContainmentResolver",
    "ContainmentResult",
    "SkippedArea",
    "resolve_containment",
    # Domain
    "Area",
    "AreaStatus",
    "AlertType",
    "LocationSample",
    "normalize_timestamp",
    # Analytics
    "TransitionDetector",
    "TransitionEvent",
    "TransitionKind",
    "TransitionResult",
]

__version__ = "1.0.0"
