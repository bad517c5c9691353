"""
Area Registry - Thread-safe area management.

This module provides the AreaRegistry class which manages the monitored
areas in a thread-safe manner. It supports hot-reconfiguration via MQTT
commands and hands out immutable snapshots to evaluations.

Thread Safety:
- Uses threading.Lock for protecting area dict mutations
- Snapshot pattern: evaluations read an immutable AreaSnapshot, so a
  concurrent add/remove never changes the areas seen mid-evaluation
- Area objects are immutable (frozen dataclass); status changes replace them
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sentinela_zone import Area, AreaStatus, InvalidGeometry, UnknownArea


@dataclass(frozen=True)
class AreaSnapshot:
    """
    Immutable view of the registry at one version.

    Attributes:
        version: Registry version the snapshot was taken at
        areas: All areas (active and inactive), sorted by area_id
    """

    version: int
    areas: Tuple[Area, ...] = ()

    @property
    def active_areas(self) -> List[Area]:
        return [area for area in self.areas if area.is_active]

    def get(self, area_id: str) -> Optional[Area]:
        for area in self.areas:
            if area.area_id == area_id:
                return area
        return None

    def __len__(self) -> int:
        return len(self.areas)


class AreaRegistry:
    """
    Thread-safe registry for monitored areas.

    Every mutation bumps `version`. snapshot() takes the lock only long
    enough to copy references; geometry work happens outside the lock.

    Thread Safety Guarantees:
    - add_area(), update_area(), remove_area(): Write operations (acquire lock)
    - activate_area(), deactivate_area(): Write operations (acquire lock)
    - snapshot(), get_active_areas(): Read operations with snapshot (lock briefly)
    - list_areas(), get_area_info(): Read operations (acquire lock briefly)

    Usage:
        registry = AreaRegistry()
        registry.add_area(Area(area_id="park", name="Park", geometry=ring))

        snapshot = registry.snapshot()       # immutable view
        areas = registry.get_active_areas()  # active areas only
    """

    def __init__(self, areas: Optional[Iterable[Area]] = None):
        """Initialize registry, optionally pre-loaded with areas."""
        self._areas: Dict[str, Area] = {}
        self._lock = threading.Lock()
        self._version = 0
        self._snapshot: Optional[AreaSnapshot] = None

        for area in areas or ():
            self.add_area(area)

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def _bump(self) -> None:
        # Caller holds the lock
        self._version += 1
        self._snapshot = None

    def _require(self, area_id: str) -> Area:
        # Caller holds the lock
        if area_id not in self._areas:
            raise UnknownArea(f"Area '{area_id}' not found")
        return self._areas[area_id]

    def add_area(self, area: Area) -> None:
        """
        Add an area to the registry.

        Raises:
            ValueError: If area_id already exists

        Thread-safe: Acquires lock for write operation.
        """
        with self._lock:
            if area.area_id in self._areas:
                raise ValueError(f"Area '{area.area_id}' already exists")
            self._areas[area.area_id] = area
            self._bump()

    def update_area(self, area: Area) -> None:
        """
        Replace an existing area (geometry, name, status...).

        Raises:
            UnknownArea: If area_id does not exist

        Thread-safe: Acquires lock for write operation.
        """
        with self._lock:
            self._require(area.area_id)
            self._areas[area.area_id] = area
            self._bump()

    def remove_area(self, area_id: str) -> None:
        """
        Remove an area from the registry.

        Raises:
            UnknownArea: If area_id does not exist

        Thread-safe: Acquires lock for write operation.
        """
        with self._lock:
            self._require(area_id)
            del self._areas[area_id]
            self._bump()

    def _set_status(self, area_id: str, status: AreaStatus) -> None:
        with self._lock:
            area = self._require(area_id)
            if area.status == status:
                return
            self._areas[area_id] = area.with_status(status)
            self._bump()

    def activate_area(self, area_id: str) -> None:
        """
        Mark an area ACTIVE.

        Raises:
            UnknownArea: If area_id does not exist
        """
        self._set_status(area_id, AreaStatus.ACTIVE)

    def deactivate_area(self, area_id: str) -> None:
        """
        Mark an area INACTIVE (kept, but ignored by containment).

        Raises:
            UnknownArea: If area_id does not exist
        """
        self._set_status(area_id, AreaStatus.INACTIVE)

    def snapshot(self) -> AreaSnapshot:
        """
        Immutable view of all areas at the current version.

        Thread-safe: The same snapshot object is reused until the next
        mutation.
        """
        with self._lock:
            if self._snapshot is None:
                self._snapshot = AreaSnapshot(
                    version=self._version,
                    areas=tuple(self._areas[k] for k in sorted(self._areas)),
                )
            return self._snapshot

    def get_active_areas(self) -> List[Area]:
        """Active areas of the current snapshot, sorted by area_id."""
        return self.snapshot().active_areas

    def get_area(self, area_id: str) -> Area:
        """
        Raises:
            UnknownArea: If area_id does not exist
        """
        with self._lock:
            return self._require(area_id)

    def list_areas(self) -> Dict[str, str]:
        """
        List all areas and their status.

        Returns:
            Dictionary mapping area_id to status value ("active"/"inactive").
        """
        with self._lock:
            return {
                area_id: area.status.value
                for area_id, area in sorted(self._areas.items())
            }

    def get_area_info(self, area_id: str) -> Dict[str, Any]:
        """
        Get information about a specific area.

        Returns:
            Dictionary with the area fields plus:
            - geometry_valid: bool
            - geometry_error: reason when invalid

        Raises:
            UnknownArea: If area_id does not exist
        """
        area = self.get_area(area_id)

        info = area.to_dict()
        try:
            area.shape
        except InvalidGeometry as e:
            info["geometry_valid"] = False
            info["geometry_error"] = str(e)
        else:
            info["geometry_valid"] = True
        return info

    def clear(self) -> None:
        """Remove all areas from the registry."""
        with self._lock:
            self._areas.clear()
            self._bump()

    def count(self) -> int:
        """Number of areas (active + inactive)."""
        with self._lock:
            return len(self._areas)
