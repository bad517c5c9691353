"""
Geofence Service - ingestion, evaluation and alert dispatch orchestrator.

This module provides the GeofenceService class which wires the pure engine
(sentinela_zone) to its collaborators: the area snapshot provider, the
append-only location history and the alert dispatcher.

Architecture:
- Area snapshot read once per evaluation (outside the per-user lock)
- Per-user lock around history append + previous lookup + detection
- Dispatch after the lock is released, only for complete results
- PartitionedExecutor for asynchronous, per-user ordered ingestion

Threading Model:
- Caller threads (evaluate_location / ingest_location)
- Partition worker threads (submit_location)
- Alert Dispatch Thread (QueuedAlertDispatcher only)
- Control Plane Thread (paho-mqtt internal, mutates the area registry)

Ordering:
    ingest_location(sample)
        1. areas    = area_provider.get_active_areas()
        2. lock(user_id)
        3.   late = a stored sample is at or after sample.timestamp
        4.   history.append_sample(sample)
        5.   previous = newest sample strictly earlier than sample
        6.   result = TransitionDetector.detect(sample, previous, areas)
        7. unlock
        8. cancelled / deadline passed?  -> EvaluationCancelled
        9. late?  -> return result, nothing dispatched
       10. dispatcher.dispatch(entries [+ exits])
"""

import logging
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, List, Optional, TypeVar

from sentinela_zone import (
    Area,
    ContainmentResolver,
    DependencyUnavailable,
    EvaluationCancelled,
    GeofenceError,
    GeoPoint,
    InvalidInput,
    LocationSample,
    TransitionDetector,
    TransitionKind,
    TransitionResult,
    UnknownArea,
)
from sentinela_zone.geometry.shapes import as_point
from sentinela_mqtt.logging import LogEvent, StructuredLogger, create_logger

from sentinela_processor.config import EvaluationConfig
from sentinela_processor.dispatch import (
    AlertDispatcher,
    DispatchReport,
    ImmediateAlertDispatcher,
    LogAlertSink,
)
from sentinela_processor.providers import (
    AreaSnapshotProvider,
    LocationHistoryProvider,
    QueryableLocationHistory,
)
from sentinela_processor.workers import PartitionedExecutor, UserLockTable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GeofenceService:
    """
    Main geofence service.

    Thread Safety:
    - area_provider: snapshot reads, safe under concurrent mutation
    - history: provider-level locking
    - per-user sections serialized by UserLockTable
    - different users evaluate in parallel

    Usage:
        registry = AreaRegistry(config.build_areas())
        history = InMemoryLocationHistory()
        service = GeofenceService(registry, history)

        service.start()
        result = service.ingest_location(sample)
        future = service.submit_location(sample)
        service.stop()
    """

    def __init__(
        self,
        area_provider: AreaSnapshotProvider,
        history: LocationHistoryProvider,
        dispatcher: Optional[AlertDispatcher] = None,
        config: Optional[EvaluationConfig] = None,
        event_logger: Optional[StructuredLogger] = None,
    ):
        """
        Initialize geofence service.

        Args:
            area_provider: Source of active areas (e.g. AreaRegistry)
            history: Append-only location store
            dispatcher: Alert dispatcher (default: immediate, to LogAlertSink)
            config: Evaluation tuning (default: EvaluationConfig())
            event_logger: Structured logger for evaluation events
        """
        self.area_provider = area_provider
        self.history = history
        self.config = config or EvaluationConfig()
        self.event_logger = event_logger or create_logger("geofence")
        self.dispatcher = dispatcher or ImmediateAlertDispatcher(
            LogAlertSink(self.event_logger),
            max_attempts=self.config.dispatch_max_attempts,
            retry_delay=self.config.dispatch_retry_delay,
            logger=self.event_logger,
        )

        self._user_locks = UserLockTable()
        self._executor: Optional[PartitionedExecutor] = None
        self._executor_lock = threading.Lock()
        self._running = False
        self._stopped = False
        self._stats_lock = threading.Lock()
        self._late_samples = 0

        logger.info(
            f"GeofenceService initialized (workers={self.config.worker_count}, "
            f"dispatch_exits={self.config.dispatch_exits})"
        )

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the dispatcher and the partition workers (non-blocking)."""
        if self._running:
            logger.warning("Service already running")
            return

        self.dispatcher.start()
        self._stopped = False
        self._ensure_executor()
        self._running = True
        logger.info("✅ Geofence service started")

    def stop(self, timeout: float = 5.0) -> None:
        """Drain queued samples, then stop the dispatcher."""
        if not self._running:
            logger.warning("Service not running")
            return

        with self._executor_lock:
            self._stopped = True
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

        self.dispatcher.stop(timeout=timeout)
        self._running = False
        logger.info("✅ Geofence service stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _ensure_executor(self) -> PartitionedExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = PartitionedExecutor(self.config.worker_count)
            return self._executor

    # ─────────────────────────────────────────────────────────────────────
    # Dependency access
    # ─────────────────────────────────────────────────────────────────────

    def _call_dependency(self, what: str, fn: Callable[..., T], *args, **kwargs) -> T:
        try:
            return fn(*args, **kwargs)
        except GeofenceError:
            raise
        except Exception as e:
            self.event_logger.error(
                event=LogEvent.DEPENDENCY_UNAVAILABLE,
                message=f"{what} unavailable",
                exc_info=e
            )
            raise DependencyUnavailable(f"{what} unavailable: {e}") from e

    def _active_areas(self) -> List[Area]:
        return list(self._call_dependency("Area store", self.area_provider.get_active_areas))

    def _all_areas(self) -> List[Area]:
        snapshot = getattr(self.area_provider, "snapshot", None)
        if snapshot is None:
            return self._active_areas()
        return list(self._call_dependency("Area store", snapshot).areas)

    def _previous_sample(self, sample: LocationSample) -> Optional[LocationSample]:
        recent = self._call_dependency(
            "Location store",
            self.history.get_recent_samples,
            sample.user_id,
            limit=1,
            before=sample.timestamp,
        )
        return recent[0] if recent else None

    def _is_late(self, sample: LocationSample) -> bool:
        # A stored sample at or after this timestamp was already judged without it
        newest = self._call_dependency(
            "Location store", self.history.get_recent_samples, sample.user_id, limit=1
        )
        return bool(newest) and newest[0].timestamp >= sample.timestamp

    def _queryable_history(self) -> QueryableLocationHistory:
        if not isinstance(self.history, QueryableLocationHistory):
            raise TypeError(
                f"{type(self.history).__name__} does not support history queries"
            )
        return self.history

    # ─────────────────────────────────────────────────────────────────────
    # Evaluation
    # ─────────────────────────────────────────────────────────────────────

    def _detect(self, sample: LocationSample, areas: List[Area]) -> TransitionResult:
        # Caller holds the user's lock
        previous = self._previous_sample(sample)
        result = TransitionDetector.detect(sample, previous, areas)

        for skipped in result.skipped:
            self.event_logger.warning(
                event=LogEvent.AREA_SKIPPED,
                message="Skipping area with invalid geometry",
                metadata={'area_id': skipped.area_id, 'reason': skipped.reason}
            )
        return result

    def evaluate_location(
        self,
        user_id: str,
        point: Any,
        timestamp: Any
    ) -> TransitionResult:
        """
        Compute containment and transitions for a sample already persisted.

        Nothing is appended and nothing is dispatched.

        Args:
            user_id: User the sample belongs to
            point: GeoPoint or (lon, lat) pair
            timestamp: datetime or ISO 8601 string

        Returns:
            TransitionResult (contained_areas, entries, exits)

        Raises:
            InvalidInput: Missing/invalid user id, coordinates or timestamp
            DependencyUnavailable: Area or location store failed
        """
        sample = LocationSample(user_id=user_id, point=point, timestamp=timestamp)
        areas = self._active_areas()
        with self._user_locks.hold(sample.user_id):
            return self._detect(sample, areas)

    def ingest_location(
        self,
        sample: LocationSample,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None
    ) -> TransitionResult:
        """
        Append a sample, evaluate it, and dispatch its alerts.

        Args:
            sample: Validated location sample
            cancel_event: Set by the caller to abandon before dispatch
            timeout: Seconds allowed before dispatch (default:
                config.timeout_seconds, None disables it)

        A late sample (the user already has a stored sample at or after its
        timestamp) is stored and evaluated but its events are not dispatched.

        Returns:
            TransitionResult for the sample

        Raises:
            InvalidInput: If sample is not a LocationSample
            DependencyUnavailable: Area or location store failed (nothing
                dispatched)
            EvaluationCancelled: Cancelled or deadline passed before
                dispatch (the appended sample stays in history)
        """
        if not isinstance(sample, LocationSample):
            self.event_logger.warning(
                event=LogEvent.INVALID_INPUT,
                message="Rejected non-LocationSample input",
                metadata={'type': type(sample).__name__}
            )
            raise InvalidInput(f"Expected LocationSample, got {type(sample).__name__}")

        limit = timeout if timeout is not None else self.config.timeout_seconds
        deadline = time.monotonic() + limit if limit is not None else None

        areas = self._active_areas()
        with self._user_locks.hold(sample.user_id):
            late = self._is_late(sample)
            self._call_dependency("Location store", self.history.append_sample, sample)
            self.event_logger.debug(
                event=LogEvent.LOCATION_APPENDED,
                message="Sample appended",
                metadata={'user_id': sample.user_id, 'timestamp': sample.timestamp}
            )
            result = self._detect(sample, areas)

        self.event_logger.debug(
            event=LogEvent.CONTAINMENT_RESOLVED,
            message="Containment resolved",
            metadata={
                'user_id': sample.user_id,
                'contained_areas': sorted(result.contained_areas),
                'entries': [e.area_id for e in result.entries],
                'exits': [e.area_id for e in result.exits],
            }
        )

        for event in result.events:
            self.event_logger.info(
                event=(
                    LogEvent.TRANSITION_ENTRY
                    if event.kind == TransitionKind.ENTRY
                    else LogEvent.TRANSITION_EXIT
                ),
                message=f"User {event.user_id} {event.kind.value} area {event.area_id}",
                metadata={'user_id': event.user_id, 'area_id': event.area_id}
            )

        cancelled = cancel_event is not None and cancel_event.is_set()
        expired = deadline is not None and time.monotonic() > deadline
        if cancelled or expired:
            reason = "cancelled" if cancelled else "deadline exceeded"
            self.event_logger.warning(
                event=LogEvent.EVALUATION_CANCELLED,
                message=f"Evaluation {reason} before dispatch",
                metadata={
                    'user_id': sample.user_id,
                    'timestamp': sample.timestamp,
                    'pending_events': len(result.events),
                }
            )
            raise EvaluationCancelled(
                f"Evaluation of user '{sample.user_id}' {reason} before dispatch"
            )

        if late:
            with self._stats_lock:
                self._late_samples += 1
            self.event_logger.warning(
                event=LogEvent.LOCATION_LATE,
                message="Late sample evaluated, events not dispatched",
                metadata={
                    'user_id': sample.user_id,
                    'timestamp': sample.timestamp,
                    'suppressed_events': len(result.events),
                }
            )
            return result

        self._dispatch(result)
        return result

    def _dispatch(self, result: TransitionResult) -> Optional[DispatchReport]:
        events = result.entries
        if self.config.dispatch_exits:
            events = events + result.exits
        if not events:
            return None
        return self.dispatcher.dispatch(events)

    def submit_location(
        self,
        sample: LocationSample,
        cancel_event: Optional[threading.Event] = None
    ) -> "Future[TransitionResult]":
        """
        Queue ingest_location() on the user's partition.

        Samples of one user complete in submission order.

        Raises:
            InvalidInput: If sample is not a LocationSample
            EvaluationCancelled: If the service has been stopped
        """
        if not isinstance(sample, LocationSample):
            raise InvalidInput(f"Expected LocationSample, got {type(sample).__name__}")

        # Submission and stop() share the lock so no sample reaches a shut-down executor
        with self._executor_lock:
            if self._stopped:
                self.event_logger.warning(
                    event=LogEvent.EVALUATION_CANCELLED,
                    message="Sample submitted after stop",
                    metadata={'user_id': sample.user_id, 'timestamp': sample.timestamp}
                )
                raise EvaluationCancelled(
                    f"Service stopped: sample of user '{sample.user_id}' not accepted"
                )
            if self._executor is None:
                self._executor = PartitionedExecutor(self.config.worker_count)
            return self._executor.submit(
                sample.user_id, self.ingest_location, sample, cancel_event
            )

    # ─────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────

    def areas_for_point(self, point: Any) -> List[Area]:
        """
        Active areas containing a point, sorted by area_id.

        Raises:
            InvalidInput: Invalid coordinates
            DependencyUnavailable: Area store failed
        """
        geo_point: GeoPoint = as_point(point)
        areas = self._active_areas()
        contained = ContainmentResolver.resolve(geo_point, areas).area_ids
        return [area for area in areas if area.area_id in contained]

    def check_user(self, user_id: str) -> Optional[TransitionResult]:
        """
        Re-evaluate the user's latest stored sample (no dispatch).

        Returns:
            TransitionResult, or None if the user has no stored samples
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidInput("user_id must be a non-empty string")

        areas = self._active_areas()
        with self._user_locks.hold(user_id):
            latest = self._call_dependency(
                "Location store", self.history.get_recent_samples, user_id, limit=1
            )
            if not latest:
                return None
            return self._detect(latest[0], areas)

    def locations_in_area(self, area_id: str) -> List[LocationSample]:
        """
        Stored samples inside an area, newest first.

        Raises:
            UnknownArea: If no area has this id
        """
        area = next((a for a in self._all_areas() if a.area_id == area_id), None)
        if area is None:
            raise UnknownArea(f"Area '{area_id}' not found")

        history = self._queryable_history()
        samples = self._call_dependency("Location store", history.all_samples)
        inside = [s for s in samples if area.shape.contains_point(s.point)]
        return sorted(inside, key=lambda s: s.timestamp, reverse=True)

    def user_locations(self, user_id: str) -> List[LocationSample]:
        """All stored samples of a user, newest first."""
        history = self._queryable_history()
        samples = self._call_dependency("Location store", history.user_samples, user_id)
        return list(reversed(samples))

    def get_stats(self) -> dict:
        with self._stats_lock:
            late_samples = self._late_samples
        return {
            'running': self._running,
            'late_samples': late_samples,
            'dispatcher': self.dispatcher.get_stats(),
        }
