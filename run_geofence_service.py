#!/usr/bin/env python3
"""
Geofence Service - Entry Point
==============================

This script starts the Sentinela geofence service, which:
- Subscribes to user location updates over MQTT
- Evaluates each sample against the configured areas (ray casting)
- Detects area entries/exits per user, in timestamp order
- Publishes transition alerts to MQTT
- Responds to area commands via the MQTT control plane

Usage:
    python run_geofence_service.py --config config/sentinela/service_config.yaml

Architecture:
    - GeofenceService: Evaluation orchestrator (sentinela_processor)
    - AreaRegistry: Hot-reconfigurable area store (sentinela_processor)
    - MQTTControlPlane + AreaCommandHandlers: Commands (sentinela_control)
    - LocationSubscriber: Location ingestion (sentinela_mqtt)
    - TransitionEventPublisher: Alert sink (sentinela_mqtt)

Lifecycle:
    1. Load configuration from YAML
    2. Setup logging (console + file)
    3. Create area registry, history and alert dispatcher
    4. Create GeofenceService
    5. Create control plane and location subscriber
    6. Start everything (non-blocking)
    7. Wait for stop signal (Ctrl+C or SIGTERM)
    8. Graceful shutdown

Signals:
    - SIGTERM: Graceful shutdown
    - SIGINT (Ctrl+C): Graceful shutdown

Logs:
    - Console: INFO level
    - File: logs/geofence.log (INFO level)
"""

import argparse
import logging
import signal
import sys
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Optional

from sentinela_zone import GeofenceError
from sentinela_processor import (
    AreaRegistry,
    GeofenceService,
    InMemoryLocationHistory,
    LogAlertSink,
    QueuedAlertDispatcher,
)
from sentinela_processor.config import ServiceConfig
from sentinela_control import AreaCommandHandlers, MQTTControlPlane
from sentinela_mqtt import (
    LocationSubscriber,
    LocationUpdateMessage,
    TransitionEventPublisher,
    create_logger,
)


# ─────────────────────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging for the geofence service.

    Args:
        log_file: Optional path to log file (default: logs/geofence.log)

    Returns:
        Logger instance for the service
    """
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )

    return logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Main Service
# ─────────────────────────────────────────────────────────────────────────────

class GeofenceApp:
    """
    Main application wrapper for GeofenceService.

    Handles:
    - Configuration loading
    - Component initialization (registry, publisher, control plane, subscriber)
    - Signal handling (SIGTERM, SIGINT)
    - Graceful shutdown
    """

    def __init__(
        self,
        config_path: Path,
        log_file: Optional[Path] = None,
        log_alerts: bool = False
    ):
        """
        Initialize geofence application.

        Args:
            config_path: Path to service configuration YAML
            log_file: Optional path to log file
            log_alerts: Write alerts to the log instead of publishing them
        """
        self.config_path = config_path
        self.log_alerts = log_alerts
        self.logger = setup_logging(log_file)

        # Components (initialized in setup())
        self.config: Optional[ServiceConfig] = None
        self.area_registry: Optional[AreaRegistry] = None
        self.transition_publisher: Optional[TransitionEventPublisher] = None
        self.service: Optional[GeofenceService] = None
        self.control_plane: Optional[MQTTControlPlane] = None
        self.subscriber: Optional[LocationSubscriber] = None

        self._stop_event = threading.Event()
        self._shutdown_requested = False

    def setup(self):
        """
        Setup all components.

        Steps:
        1. Load configuration from YAML
        2. Create area registry and location history
        3. Create alert sink and dispatcher
        4. Create GeofenceService
        5. Create control plane (area commands)
        6. Create location subscriber
        """
        self.logger.info("=" * 80)
        self.logger.info("🚀 Sentinela Geofence Service - Starting")
        self.logger.info("=" * 80)

        # 1. Load configuration
        self.logger.info(f"📄 Loading configuration: {self.config_path}")
        self.config = ServiceConfig.from_yaml(self.config_path)
        mqtt_config = self.config.mqtt_config
        evaluation = self.config.evaluation
        self.logger.info(f"✅ Configuration loaded (service_id={self.config.service_id})")

        # 2. Area registry and history
        self.area_registry = AreaRegistry(self.config.build_areas())
        history = InMemoryLocationHistory(evaluation.max_samples_per_user)
        self.logger.info(f"🗺️  Loaded {self.area_registry.count()} areas")
        for area_id, status in self.area_registry.list_areas().items():
            self.logger.info(f"  - {area_id}: {status}")

        # 3. Alert sink and dispatcher
        if self.log_alerts:
            sink = LogAlertSink(create_logger(component="alerts", service_id=self.config.service_id))
            self.logger.info("📢 Alerts written to log (--log-alerts)")
        else:
            self.transition_publisher = TransitionEventPublisher(
                broker_host=mqtt_config.broker,
                broker_port=mqtt_config.port,
                topic=self.config.transition_topic,
                logger=create_logger(component="mqtt_publisher", service_id=self.config.service_id),
                service_id=self.config.service_id,
                client_id=f"publisher_transitions_{self.config.service_id}",
                username=mqtt_config.username,
                password=mqtt_config.password,
                qos=mqtt_config.qos,
            )
            sink = self.transition_publisher
            self.logger.info(f"📤 Alerts published to: {self.config.transition_topic}")

        dispatcher = QueuedAlertDispatcher(
            sink,
            queue_size=evaluation.dispatch_queue_size,
            max_attempts=evaluation.dispatch_max_attempts,
            retry_delay=evaluation.dispatch_retry_delay,
            logger=create_logger(component="dispatcher", service_id=self.config.service_id),
        )

        # 4. Service
        self.logger.info("🏗️  Creating geofence service")
        self.service = GeofenceService(
            area_provider=self.area_registry,
            history=history,
            dispatcher=dispatcher,
            config=evaluation,
            event_logger=create_logger(component="geofence", service_id=self.config.service_id),
        )
        self.logger.info("✅ Service created")

        # 5. Control plane
        self.logger.info("🔌 Creating MQTT control plane")
        self.control_plane = MQTTControlPlane(
            broker_host=mqtt_config.broker,
            broker_port=mqtt_config.port,
            command_topic=f"sentinela/control/{self.config.service_id}/commands",
            status_topic=f"sentinela/control/{self.config.service_id}/status",
            client_id=f"geofence_{self.config.service_id}",
            username=mqtt_config.username,
            password=mqtt_config.password,
        )
        AreaCommandHandlers(self.area_registry, self.control_plane).register_all()
        self.logger.info("✅ Control plane created")

        # 6. Subscriber
        self.subscriber = LocationSubscriber(
            broker_host=mqtt_config.broker,
            broker_port=mqtt_config.port,
            location_topic=self.config.location_topic,
            on_location=self._on_location,
            logger=create_logger(component="mqtt_subscriber", service_id=self.config.service_id),
            client_id=f"subscriber_{self.config.service_id}",
            username=mqtt_config.username,
            password=mqtt_config.password,
            qos=mqtt_config.qos,
        )
        self.logger.info(f"📥 Location topic: {self.config.location_topic}")

        self.logger.info("=" * 80)

    def _on_location(self, location_msg: LocationUpdateMessage) -> None:
        # MQTT thread: validate, then hand off to the user's partition
        future = self.service.submit_location(location_msg.to_sample())
        future.add_done_callback(self._on_evaluated)

    def _on_evaluated(self, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if isinstance(error, GeofenceError):
            self.logger.warning(f"⚠️  Location evaluation failed: {error}")
        elif error is not None:
            self.logger.error("❌ Unexpected evaluation error", exc_info=error)

    def run(self):
        """
        Run the geofence service.

        Blocks until shutdown is requested (via signal or exception).
        """
        if not self.service:
            raise RuntimeError("Service not initialized. Call setup() first.")

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        try:
            self.service.start()

            if self.transition_publisher and not self.transition_publisher.connect():
                raise RuntimeError("Unable to connect transition publisher")

            if not self.control_plane.connect():
                raise RuntimeError("Unable to connect control plane")
            self.control_plane.publish_status("running", {"areas": self.area_registry.count()})

            if not self.subscriber.connect():
                raise RuntimeError("Unable to connect location subscriber")
            self.subscriber.start()

            self.logger.info("✅ Service started successfully")
            self.logger.info("Press Ctrl+C to stop")
            self.logger.info("=" * 80)

            self._stop_event.wait()

        except KeyboardInterrupt:
            self.logger.info("\n⚠️  KeyboardInterrupt received")
            self.shutdown()

        except Exception as e:
            self.logger.error(f"❌ Service error: {e}", exc_info=True)
            self.shutdown()
            sys.exit(1)

    def shutdown(self):
        """
        Graceful shutdown of all components.

        Order:
        1. Stop subscriber (no new samples)
        2. Stop service (drain samples, deliver queued alerts)
        3. Disconnect publisher and control plane
        """
        if self._shutdown_requested:
            self.logger.warning("⚠️  Shutdown already in progress")
            return

        self._shutdown_requested = True
        self._stop_event.set()

        self.logger.info("=" * 80)
        self.logger.info("🛑 Shutting down geofence service")
        self.logger.info("=" * 80)

        if self.subscriber and self.subscriber.is_running():
            self.subscriber.stop()
            self.logger.info("✅ Subscriber stopped")

        if self.service and self.service.is_running:
            self.service.stop()
            self.logger.info(f"✅ Service stopped (dispatch: {self.service.dispatcher.get_stats()})")

        if self.transition_publisher:
            self.transition_publisher.disconnect()
            self.logger.info("✅ Transition publisher disconnected")

        if self.control_plane:
            self.control_plane.disconnect()
            self.logger.info("✅ Control plane disconnected")

        self.logger.info("=" * 80)
        self.logger.info("✅ Shutdown complete")
        self.logger.info("=" * 80)

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        self.logger.info(f"\n⚠️  Received signal {signal_name} ({signum})")
        self.shutdown()
        sys.exit(0)


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def parse_args():
    parser = argparse.ArgumentParser(
        description="Sentinela Geofence Service - MQTT locations in, area alerts out",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with default config
  python run_geofence_service.py --config config/sentinela/service_config.yaml

  # Log alerts instead of publishing them
  python run_geofence_service.py --config config/sentinela/service_config.yaml --log-alerts

  # Start without file logging (console only)
  python run_geofence_service.py --config config/sentinela/service_config.yaml --no-log-file
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        required=True,
        help='Path to service configuration YAML file'
    )

    parser.add_argument(
        '--log-file',
        type=Path,
        default=Path('logs/geofence.log'),
        help='Path to log file (default: logs/geofence.log)'
    )

    parser.add_argument(
        '--no-log-file',
        action='store_true',
        help='Disable file logging (console only)'
    )

    parser.add_argument(
        '--log-alerts',
        action='store_true',
        help='Write alerts to the log instead of publishing them to MQTT'
    )

    return parser.parse_args()


def main():
    """
    Main entry point.

    Workflow:
    1. Parse CLI arguments
    2. Create GeofenceApp
    3. Setup components
    4. Run service (blocks until stopped)
    """
    args = parse_args()

    log_file = None if args.no_log_file else args.log_file

    if not args.config.exists():
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    app = GeofenceApp(
        config_path=args.config,
        log_file=log_file,
        log_alerts=args.log_alerts
    )

    try:
        app.setup()
        app.run()
    except (GeofenceError, ValueError, OSError, RuntimeError) as e:
        print(f"❌ Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
