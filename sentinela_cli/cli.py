"""
Sentinela CLI - Main entry point.

Command-line interface for the geofence service: area commands over the
MQTT control plane, test location updates, and offline point checks.
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from sentinela_zone import AlertType, AreaStatus, GeofenceError, GeoPoint, LocationSample
from sentinela_zone.geometry import ContainmentResolver
from sentinela_mqtt.schemas import LocationUpdateMessage
from sentinela_processor.config import ServiceConfig

from .mqtt_client import MQTTCommandClient


def load_yaml_config(config_path: str) -> Dict[str, Any]:
    """
    Load YAML configuration file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If YAML is invalid or not a mapping
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ValueError(f"Config in {config_path} must be a mapping")
    return config


AREA_COMMANDS = (
    'add-area', 'update-area', 'remove-area', 'activate-area',
    'deactivate-area', 'get-area', 'list-areas',
)


def command_topic(service_id: str) -> str:
    return f"sentinela/control/{service_id}/commands"


def send_command(
    command: Dict[str, Any],
    service_id: str = "geofence-1",
    broker: str = "localhost",
    port: int = 1883
) -> None:
    """Send command to the geofence service via MQTT."""
    client = MQTTCommandClient(broker=broker, port=port)
    client.send_command(command_topic(service_id), command, qos=1)


def build_command(args: argparse.Namespace) -> Dict[str, Any]:
    """Control-plane payload for an area subcommand."""
    if args.command == 'add-area':
        command = load_yaml_config(args.config)
        command.setdefault('command', 'add_area')
        return command

    if args.command == 'update-area':
        command = load_yaml_config(args.config) if args.config else {}
        for field in ('name', 'description', 'status', 'alert_type'):
            value = getattr(args, field)
            if value is not None:
                command[field] = value
        command.update(command='update_area', area_id=args.area_id)
        return command

    if args.command == 'list-areas':
        return {'command': 'list_areas'}

    return {'command': args.command.replace('-', '_'), 'area_id': args.area_id}


def build_location_message(args: argparse.Namespace) -> LocationUpdateMessage:
    """Validated wire message from --lat/--lon arguments (reordered to lon, lat)."""
    sample = LocationSample(
        user_id=args.user_id,
        point=GeoPoint.from_lat_lon(args.lat, args.lon),
        timestamp=args.timestamp or datetime.now(timezone.utc),
        accuracy=args.accuracy,
    )
    return LocationUpdateMessage.from_sample(sample)


def check_point(config_path: str, lat: float, lon: float) -> List[str]:
    """Ids of the configured active areas containing (lat, lon)."""
    config = ServiceConfig.from_yaml(config_path)
    point = GeoPoint.from_lat_lon(lat, lon)
    result = ContainmentResolver.resolve(point, config.build_areas())

    for skipped in result.skipped:
        print(f"⚠️ Skipped area '{skipped.area_id}': {skipped.reason}", file=sys.stderr)
    return sorted(result.area_ids)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sentinela-cli",
        description="Sentinela CLI - Control the geofence service over MQTT",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Add area from YAML config
  sentinela-cli add-area config/commands/add_area_park.yaml

  # Change fields of an area (YAML and/or flags)
  sentinela-cli update-area park --name "Big Park" --alert-type warning
  sentinela-cli update-area central-park --config config/commands/update_area_park.yaml

  # Remove / activate / deactivate area by ID
  sentinela-cli remove-area park
  sentinela-cli activate-area park
  sentinela-cli deactivate-area park

  # Query areas (reply on the status topic)
  sentinela-cli list-areas
  sentinela-cli get-area park

  # Publish a test location
  sentinela-cli send-location u1 --lat -34.60 --lon -58.38

  # Check a point against configured areas (offline, no broker)
  sentinela-cli check-point --config config/sentinela/service_config.yaml --lat 0.5 --lon 0.5
"""
    )

    # Global arguments
    parser.add_argument(
        "--service-id",
        default="geofence-1",
        help="Target service ID (default: geofence-1)"
    )
    parser.add_argument(
        "--broker",
        default="localhost",
        help="MQTT broker host (default: localhost)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=1883,
        help="MQTT broker port (default: 1883)"
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    add_area = subparsers.add_parser('add-area', help='Add area from YAML config')
    add_area.add_argument('config', help='Path to area config YAML')

    update_area = subparsers.add_parser('update-area', help='Change fields of an existing area')
    update_area.add_argument('area_id', help='Area ID')
    update_area.add_argument('--config', default=None, help='YAML with the fields to change')
    update_area.add_argument('--name', default=None, help='New name')
    update_area.add_argument('--description', default=None, help='New description')
    update_area.add_argument(
        '--status', choices=[s.value for s in AreaStatus], default=None, help='New status'
    )
    update_area.add_argument(
        '--alert-type',
        dest='alert_type',
        choices=[a.value for a in AlertType],
        default=None,
        help='New alert severity',
    )

    for name, help_text in (
        ('remove-area', 'Remove area by ID'),
        ('activate-area', 'Activate area by ID'),
        ('deactivate-area', 'Deactivate area by ID'),
        ('get-area', 'Show area details'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('area_id', help='Area ID')

    subparsers.add_parser('list-areas', help='List all areas')

    send_location = subparsers.add_parser('send-location', help='Publish a location update')
    send_location.add_argument('user_id', help='User ID')
    send_location.add_argument('--lat', type=float, required=True, help='Latitude')
    send_location.add_argument('--lon', type=float, required=True, help='Longitude')
    send_location.add_argument('--timestamp', default=None, help='ISO 8601 (default: now)')
    send_location.add_argument('--accuracy', type=float, default=None, help='Meters')
    send_location.add_argument(
        '--topic',
        default="sentinela/data/locations",
        help='Location topic (default: sentinela/data/locations)'
    )

    check = subparsers.add_parser('check-point', help='Check a point against configured areas')
    check.add_argument('--config', required=True, help='Path to service config YAML')
    check.add_argument('--lat', type=float, required=True, help='Latitude')
    check.add_argument('--lon', type=float, required=True, help='Longitude')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command in AREA_COMMANDS:
            send_command(build_command(args), args.service_id, args.broker, args.port)

        elif args.command == 'send-location':
            message = build_location_message(args)
            client = MQTTCommandClient(broker=args.broker, port=args.port)
            client.publish_json(args.topic, message.to_dict(), qos=1)
            print(f"✅ Location sent: {json.dumps(message.to_dict())}")

        elif args.command == 'check-point':
            area_ids = check_point(args.config, args.lat, args.lon)
            if area_ids:
                print(f"📍 Point is inside: {', '.join(area_ids)}")
            else:
                print("📍 Point is not inside any active area")

    except (GeofenceError, ValueError, FileNotFoundError, ConnectionError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
