"""
Containment Resolver Module
===========================

Stateless resolution - applies area geometry to a point.

Design:
- Pure functions (no state, no logging, no I/O)
- Invalid geometry is skipped and reported, never fatal
- Deterministic: identical (point, areas) gives an identical result
- Thread-safe (no mutations), areas may be evaluated in any order
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Tuple

from sentinela_zone.domain import Area
from sentinela_zone.errors import InvalidGeometry
from sentinela_zone.geometry.shapes import GeoPoint, as_point


@dataclass(frozen=True)
class SkippedArea:
    """Active area left out of a resolution because its geometry is invalid."""

    area_id: str
    reason: str


@dataclass(frozen=True)
class ContainmentResult:
    """
    Immutable containment snapshot for one point.

    Attributes:
        area_ids: Ids of the active areas whose polygon contains the point
        skipped: Active areas that could not be evaluated, sorted by id
    """

    area_ids: FrozenSet[str] = frozenset()
    skipped: Tuple[SkippedArea, ...] = ()

    def __contains__(self, area_id: str) -> bool:
        return area_id in self.area_ids

    def __len__(self) -> int:
        return len(self.area_ids)


class ContainmentResolver:
    """
    Stateless resolver of point-in-area containment.

    Design Philosophy:
    - All methods are static (no instance state)
    - Any spatial index upstream is a pre-filter only; this resolver is the
      single authority on containment
    """

    @staticmethod
    def resolve(point: GeoPoint, areas: Iterable[Area]) -> ContainmentResult:
        """
        Compute the containment set of a point.

        Args:
            point: GeoPoint or (lon, lat) pair
            areas: Area snapshot (inactive areas are ignored)

        Returns:
            ContainmentResult with matching ids and skipped areas

        Raises:
            InvalidInput: If the point is invalid
        """
        point = as_point(point)

        contained = set()
        skipped = []

        for area in areas:
            if not area.is_active:
                continue
            try:
                inside = area.shape.contains_point(point)
            except InvalidGeometry as e:
                skipped.append(SkippedArea(area_id=area.area_id, reason=str(e)))
                continue
            if inside:
                contained.add(area.area_id)

        skipped.sort(key=lambda s: s.area_id)
        return ContainmentResult(area_ids=frozenset(contained), skipped=tuple(skipped))


def resolve_containment(point: GeoPoint, areas: Iterable[Area]) -> FrozenSet[str]:
    """
    Ids of the active areas containing a point.

    Shortcut for ContainmentResolver.resolve(point, areas).area_ids.
    """
    return ContainmentResolver.resolve(point, areas).area_ids
