"""
Area command handlers (run in the Control Plane Thread).

Each handler mutates the AreaRegistry and publishes a status reply. Because
evaluations read immutable snapshots, a command never changes the areas an
in-flight evaluation sees.

Command payloads:
    {"command": "add_area", "area_id": "park", "name": "Park",
     "coordinates": [[lon, lat], ...] | "geometry": {...GeoJSON...},
     "alert_type": "info", "status": "active", "description": "..."}
    {"command": "update_area", "area_id": "park", "name": "Big Park",
     "coordinates": [...]}              (only the given fields change)
    {"command": "remove_area", "area_id": "park"}
    {"command": "activate_area", "area_id": "park"}
    {"command": "deactivate_area", "area_id": "park"}
    {"command": "list_areas"}
    {"command": "get_area", "area_id": "park"}
"""

import logging
from typing import Any, Mapping

from sentinela_processor.config import AreaConfig
from sentinela_processor.registry import AreaRegistry

from .plane import MQTTControlPlane

logger = logging.getLogger(__name__)


def _area_id(command: Mapping[str, Any]) -> str:
    area_id = command.get("area_id")
    if not area_id:
        raise ValueError("Command requires 'area_id'")
    return str(area_id)


class AreaCommandHandlers:
    """
    Binds area commands to a registry.

    Usage:
        handlers = AreaCommandHandlers(area_registry, control_plane)
        handlers.register_all()
    """

    def __init__(self, area_registry: AreaRegistry, control_plane: MQTTControlPlane):
        self.area_registry = area_registry
        self.control_plane = control_plane

    def register_all(self) -> None:
        registry = self.control_plane.command_registry

        registry.register("add_area", self.add_area, "Add a new area")
        registry.register("update_area", self.update_area, "Change fields of an existing area")
        registry.register("remove_area", self.remove_area, "Remove an existing area")
        registry.register("activate_area", self.activate_area, "Activate an area")
        registry.register("deactivate_area", self.deactivate_area, "Deactivate an area")
        registry.register("list_areas", self.list_areas, "List all areas")
        registry.register("get_area", self.get_area, "Get area details")

        logger.info("Control handlers registered")

    def add_area(self, command: Mapping[str, Any]) -> None:
        # Accept either a nested "area" object or flat fields
        area_data = dict(command.get("area") or command)
        area_data.pop("command", None)

        area = AreaConfig.from_dict(area_data).to_area()
        self.area_registry.add_area(area)

        self.control_plane.publish_status("area_added", {"area_id": area.area_id})
        logger.info(f"Area added: {area.area_id}")

    def update_area(self, command: Mapping[str, Any]) -> None:
        changes = dict(command.get("area") or command)
        changes.pop("command", None)
        area_id = _area_id(changes)
        changes.pop("area_id")
        if not changes:
            raise ValueError(f"update_area for '{area_id}' has no fields to change")

        merged = self.area_registry.get_area(area_id).to_dict()
        # New coordinates replace the stored geometry
        if "coordinates" in changes:
            merged.pop("geometry")
        merged.update(changes)

        area = AreaConfig.from_dict(merged).to_area()
        self.area_registry.update_area(area)

        self.control_plane.publish_status(
            "area_updated", {"area_id": area_id, "fields": sorted(changes)}
        )
        logger.info(f"Area updated: {area_id} ({', '.join(sorted(changes))})")

    def remove_area(self, command: Mapping[str, Any]) -> None:
        area_id = _area_id(command)
        self.area_registry.remove_area(area_id)

        self.control_plane.publish_status("area_removed", {"area_id": area_id})
        logger.info(f"Area removed: {area_id}")

    def activate_area(self, command: Mapping[str, Any]) -> None:
        area_id = _area_id(command)
        self.area_registry.activate_area(area_id)

        self.control_plane.publish_status("area_activated", {"area_id": area_id})
        logger.info(f"Area activated: {area_id}")

    def deactivate_area(self, command: Mapping[str, Any]) -> None:
        area_id = _area_id(command)
        self.area_registry.deactivate_area(area_id)

        self.control_plane.publish_status("area_deactivated", {"area_id": area_id})
        logger.info(f"Area deactivated: {area_id}")

    def list_areas(self, command: Mapping[str, Any]) -> None:
        areas = self.area_registry.list_areas()

        self.control_plane.publish_status("areas_list", {"areas": areas})
        logger.info(f"Listed areas: {list(areas)}")

    def get_area(self, command: Mapping[str, Any]) -> None:
        info = self.area_registry.get_area_info(_area_id(command))
        self.control_plane.publish_status("area_info", info)
