"""
Sentinela CLI - Command-line interface for the geofence service.

Sends MQTT commands and test locations without hand-written JSON, and
checks points against a service config offline.

Usage:
    sentinela-cli add-area config/commands/add_area_park.yaml
    sentinela-cli deactivate-area park
    sentinela-cli list-areas
    sentinela-cli send-location u1 --lat -34.60 --lon -58.38
    sentinela-cli check-point --config config/sentinela/service_config.yaml --lat 0.5 --lon 0.5
"""

__version__ = "1.0.0"
