"""
sentinela_processor - Geofence service layer

This package wires the pure engine (sentinela_zone) to areas, location
history and alert delivery.

Architecture:
- GeofenceService: Main orchestrator (append → evaluate → dispatch)
- AreaRegistry: Thread-safe area management (versioned snapshots)
- InMemoryLocationHistory: Append-only per-user sample store
- PartitionedExecutor / UserLockTable: Per-user ordering
- Immediate/QueuedAlertDispatcher: Retrying alert delivery
- ServiceConfig: Configuration management

Threading Model:
- Partition worker threads (one per partition, submit_location)
- Alert Dispatch Thread (QueuedAlertDispatcher)
- MQTT Subscriber Thread (paho-mqtt internal, hands samples to workers)
- Control Plane Thread (paho-mqtt internal, command handlers)
"""

from sentinela_processor.config import (
    AreaConfig,
    EvaluationConfig,
    MQTTConfig,
    ServiceConfig,
)
from sentinela_processor.dispatch import (
    AlertSink,
    DispatchReport,
    DispatchStatus,
    ImmediateAlertDispatcher,
    LogAlertSink,
    QueuedAlertDispatcher,
)
from sentinela_processor.history import InMemoryLocationHistory
from sentinela_processor.providers import (
    AreaSnapshotProvider,
    LocationHistoryProvider,
    QueryableLocationHistory,
)
from sentinela_processor.registry import AreaRegistry, AreaSnapshot
from sentinela_processor.service import GeofenceService
from sentinela_processor.workers import PartitionedExecutor, UserLockTable, partition_for

__all__ = [
    "AreaConfig",
    "EvaluationConfig",
    "MQTTConfig",
    "ServiceConfig",
    "AlertSink",
    "DispatchReport",
    "DispatchStatus",
    "ImmediateAlertDispatcher",
    "LogAlertSink",
    "QueuedAlertDispatcher",
    "InMemoryLocationHistory",
    "AreaSnapshotProvider",
    "LocationHistoryProvider",
    "QueryableLocationHistory",
    "AreaRegistry",
    "AreaSnapshot",
    "GeofenceService",
    "PartitionedExecutor",
    "UserLockTable",
    "partition_for",
]
