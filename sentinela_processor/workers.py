"""
Per-user serialization primitives.

PartitionedExecutor
    Maps every user id to one single-thread worker (stable CRC32 hash), so
    samples of one user run one at a time in submission order while
    different users run in parallel.

UserLockTable
    One lock per user id, created on demand and dropped when no thread
    holds or waits on it. Guards append + evaluate for direct callers that
    bypass the executor.
"""

import threading
import zlib
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Tuple


def partition_for(user_id: str, partitions: int) -> int:
    """Stable partition index for a user id (same across processes)."""
    return zlib.crc32(user_id.encode('utf-8')) % partitions


class PartitionedExecutor:
    """
    Fixed set of single-thread executors keyed by user id.

    Usage:
        executor = PartitionedExecutor(worker_count=4)
        future = executor.submit("u1", service.ingest_location, sample)
        result = future.result()
        executor.shutdown()
    """

    def __init__(self, worker_count: int = 4, thread_name_prefix: str = "geofence-worker"):
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")

        self.worker_count = worker_count
        self._workers: List[ThreadPoolExecutor] = [
            ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{thread_name_prefix}-{i}")
            for i in range(worker_count)
        ]
        self._lock = threading.Lock()
        self._shutdown = False

    def partition(self, user_id: str) -> int:
        return partition_for(user_id, self.worker_count)

    def submit(self, user_id: str, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """
        Run fn(*args, **kwargs) on the user's partition.

        Raises:
            RuntimeError: If the executor has been shut down
        """
        with self._lock:
            if self._shutdown:
                raise RuntimeError("PartitionedExecutor is shut down")
            worker = self._workers[self.partition(user_id)]
            return worker.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        """Stop accepting work; optionally wait for queued work to finish."""
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
        for worker in self._workers:
            worker.shutdown(wait=wait, cancel_futures=cancel_futures)

    @property
    def is_shutdown(self) -> bool:
        with self._lock:
            return self._shutdown

    def __enter__(self) -> 'PartitionedExecutor':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)


class UserLockTable:
    """
    Reference-counted per-user locks.

    Usage:
        locks = UserLockTable()
        with locks.hold("u1"):
            ...  # no other thread runs this block for "u1"
    """

    def __init__(self):
        self._guard = threading.Lock()
        # user_id -> (lock, holders + waiters)
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        with self._guard:
            lock, refs = self._locks.get(user_id, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[user_id] = (lock, refs + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, refs = self._locks[user_id]
                if refs == 1:
                    del self._locks[user_id]
                else:
                    self._locks[user_id] = (lock, refs - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
