"""
Alert Dispatch - delivery of transition events to an alert sink.

This module is the boundary between evaluation and notification transports.
The service hands every batch of events produced by one sample to a
dispatcher; the dispatcher hands it to the sink, retrying failures.

Architecture:
- AlertSink: protocol, send(events) raises on failure
- LogAlertSink: one structured log line per alert (console notification)
- ImmediateAlertDispatcher: delivers in the caller's thread
- QueuedAlertDispatcher: bounded queue + dedicated dispatch thread

Failure Semantics:
- Each failed attempt is logged (WARNING) and retried up to max_attempts
- A final failure is logged (ERROR) and returned as a DispatchReport
- Dispatch errors are never raised into ingestion
"""

import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple, runtime_checkable

from sentinela_zone import TransitionEvent
from sentinela_mqtt.logging import LogEvent, StructuredLogger, create_logger


@runtime_checkable
class AlertSink(Protocol):
    """Notification transport."""

    def send(self, events: Sequence[TransitionEvent]) -> None:
        """Deliver one batch. Raises (DispatchError preferably) on failure."""
        ...


class LogAlertSink:
    """Alert sink that writes one structured log line per event."""

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger or create_logger("alerts")

    def send(self, events: Sequence[TransitionEvent]) -> None:
        for event in events:
            self.logger.info(
                event=LogEvent.ALERT_NOTIFICATION,
                message=f"ALERT: user {event.user_id} {event.kind.value} area '{event.area_name}'",
                metadata=event.to_dict()
            )


class DispatchStatus(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    QUEUED = "queued"
    DROPPED = "dropped"
    EMPTY = "empty"


@dataclass(frozen=True)
class DispatchReport:
    """
    Outcome of handing one batch to a dispatcher.

    Attributes:
        status: DELIVERED, FAILED, QUEUED (accepted for background
            delivery), DROPPED (queue full or stopped) or EMPTY (no events)
        event_count: Events in the batch
        attempts: Sink calls made (0 unless delivered or failed)
        error: Last failure message, if any
    """

    status: DispatchStatus
    event_count: int = 0
    attempts: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (DispatchStatus.DELIVERED, DispatchStatus.QUEUED, DispatchStatus.EMPTY)


class _RetryingDispatcher:
    """Shared retry loop and statistics."""

    def __init__(
        self,
        sink: AlertSink,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        logger: Optional[StructuredLogger] = None
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if retry_delay < 0:
            raise ValueError(f"retry_delay must be >= 0, got {retry_delay}")

        self.sink = sink
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.logger = logger or create_logger("dispatcher")

        self._stats_lock = threading.Lock()
        self._stats = {'delivered': 0, 'failed': 0, 'dropped': 0, 'retries': 0}

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1

    def _deliver(self, events: Tuple[TransitionEvent, ...]) -> DispatchReport:
        metadata = {
            'event_count': len(events),
            'user_id': events[0].user_id,
            'area_ids': [event.area_id for event in events],
        }
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                self.sink.send(events)
            except Exception as e:
                last_error = e
                if attempt < self.max_attempts:
                    self._count('retries')
                    self.logger.warning(
                        event=LogEvent.ALERT_RETRY,
                        message=f"Alert delivery attempt {attempt}/{self.max_attempts} failed: {e}",
                        metadata=metadata
                    )
                    if self.retry_delay:
                        time.sleep(self.retry_delay)
                continue

            self._count('delivered')
            self.logger.info(
                event=LogEvent.ALERT_DISPATCHED,
                message="Alert batch delivered",
                metadata={**metadata, 'attempts': attempt}
            )
            return DispatchReport(
                status=DispatchStatus.DELIVERED,
                event_count=len(events),
                attempts=attempt,
            )

        self._count('failed')
        self.logger.error(
            event=LogEvent.ALERT_DISPATCH_FAILED,
            message=f"Alert delivery failed after {self.max_attempts} attempts",
            metadata=metadata,
            exc_info=last_error
        )
        return DispatchReport(
            status=DispatchStatus.FAILED,
            event_count=len(events),
            attempts=self.max_attempts,
            error=str(last_error),
        )

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            return dict(self._stats)

    def start(self) -> None:
        """No background resources by default."""

    def stop(self, timeout: float = 5.0) -> None:
        """No background resources by default."""


class ImmediateAlertDispatcher(_RetryingDispatcher):
    """
    Delivers in the calling thread.

    Usage:
        dispatcher = ImmediateAlertDispatcher(LogAlertSink())
        report = dispatcher.dispatch(result.entries)
    """

    def dispatch(self, events: Sequence[TransitionEvent]) -> DispatchReport:
        batch = tuple(events)
        if not batch:
            return DispatchReport(status=DispatchStatus.EMPTY)
        return self._deliver(batch)


class QueuedAlertDispatcher(_RetryingDispatcher):
    """
    Delivers from a dedicated thread fed by a bounded queue.

    dispatch() never blocks: a full queue drops the batch (logged and
    reported as DROPPED). stop() delivers what is already queued, then
    joins the thread.

    Thread: AlertDispatchThread (our thread)
    """

    _STOP = object()

    def __init__(
        self,
        sink: AlertSink,
        queue_size: int = 1000,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        logger: Optional[StructuredLogger] = None
    ):
        super().__init__(sink, max_attempts, retry_delay, logger)
        if queue_size < 1:
            raise ValueError(f"queue_size must be >= 1, got {queue_size}")

        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._thread: Optional[threading.Thread] = None
        # Guards the accept check and the enqueue against stop()
        self._accept_lock = threading.Lock()
        self._accepting = False

    def start(self) -> None:
        """Start the dispatch thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        with self._accept_lock:
            self._accepting = True
        self._thread = threading.Thread(
            target=self._dispatch_loop,
            name="AlertDispatchThread",
            daemon=True
        )
        self._thread.start()

    def dispatch(self, events: Sequence[TransitionEvent]) -> DispatchReport:
        batch = tuple(events)
        if not batch:
            return DispatchReport(status=DispatchStatus.EMPTY)

        with self._accept_lock:
            if not self._accepting:
                reason = "dispatcher not running"
            else:
                try:
                    self._queue.put_nowait(batch)
                    reason = None
                except queue.Full:
                    reason = "dispatch queue full"
        if reason is not None:
            return self._drop(batch, reason)

        return DispatchReport(status=DispatchStatus.QUEUED, event_count=len(batch))

    def _drop(self, batch: Tuple[TransitionEvent, ...], reason: str) -> DispatchReport:
        self._count('dropped')
        self.logger.warning(
            event=LogEvent.ALERT_DROPPED,
            message=f"Alert batch dropped: {reason}",
            metadata={
                'event_count': len(batch),
                'user_id': batch[0].user_id,
                'area_ids': [event.area_id for event in batch],
            }
        )
        return DispatchReport(
            status=DispatchStatus.DROPPED,
            event_count=len(batch),
            error=reason,
        )

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                self._deliver(item)
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        """Block until every queued batch has been handled."""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop accepting batches, deliver the backlog, join the thread."""
        if self._thread is None:
            return

        with self._accept_lock:
            self._accepting = False

        deadline = time.monotonic() + timeout
        try:
            self._queue.put(self._STOP, timeout=timeout)
        except queue.Full:
            self.logger.warning(
                event=LogEvent.ALERT_DROPPED,
                message=f"Dispatch backlog not drained within {timeout}s",
                metadata={'pending': self.pending}
            )
        else:
            self._thread.join(timeout=max(0.0, deadline - time.monotonic()))
        self._thread = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()


AlertDispatcher = ImmediateAlertDispatcher | QueuedAlertDispatcher
