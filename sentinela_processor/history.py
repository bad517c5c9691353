"""
In-memory location history.

Append-only, per-user, kept in timestamp order. Out-of-order arrivals are
inserted at their timestamp position; a sample with an already stored
timestamp is kept next to it, never replacing it.

Thread Safety:
- One lock guards the user -> samples map; all reads copy under the lock
"""

import bisect
import threading
from datetime import datetime
from typing import Dict, List, Optional

from sentinela_zone import LocationSample, normalize_timestamp


class InMemoryLocationHistory:
    """
    Per-user sample store.

    Attributes:
        max_samples_per_user: Oldest samples are evicted past this size
            (None keeps everything)

    Usage:
        history = InMemoryLocationHistory()
        history.append_sample(sample)
        previous = history.get_recent_samples("u1", limit=1, before=sample.timestamp)
    """

    def __init__(self, max_samples_per_user: Optional[int] = None):
        if max_samples_per_user is not None and max_samples_per_user < 2:
            raise ValueError(
                f"max_samples_per_user must be >= 2, got {max_samples_per_user}"
            )
        self.max_samples_per_user = max_samples_per_user
        self._samples: Dict[str, List[LocationSample]] = {}
        self._timestamps: Dict[str, List[datetime]] = {}
        self._lock = threading.Lock()

    def append_sample(self, sample: LocationSample) -> None:
        """
        Store a sample at its timestamp position.

        Equal timestamps keep arrival order (inserted after existing ones).
        """
        with self._lock:
            samples = self._samples.setdefault(sample.user_id, [])
            stamps = self._timestamps.setdefault(sample.user_id, [])

            index = bisect.bisect_right(stamps, sample.timestamp)
            samples.insert(index, sample)
            stamps.insert(index, sample.timestamp)

            if self.max_samples_per_user is not None:
                overflow = len(samples) - self.max_samples_per_user
                if overflow > 0:
                    del samples[:overflow]
                    del stamps[:overflow]

    def get_recent_samples(
        self,
        user_id: str,
        limit: int = 2,
        before: Optional[datetime] = None
    ) -> List[LocationSample]:
        """
        Newest samples first.

        Args:
            user_id: Owner of the samples
            limit: Maximum number of samples returned
            before: Only samples strictly earlier than this timestamp

        Returns:
            Up to `limit` samples, newest first (empty for unknown users)
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        with self._lock:
            samples = self._samples.get(user_id)
            if not samples:
                return []
            end = len(samples)
            if before is not None:
                end = bisect.bisect_left(
                    self._timestamps[user_id], normalize_timestamp(before)
                )
            start = max(0, end - limit)
            return list(reversed(samples[start:end]))

    def latest_sample(self, user_id: str) -> Optional[LocationSample]:
        recent = self.get_recent_samples(user_id, limit=1)
        return recent[0] if recent else None

    def user_samples(self, user_id: str) -> List[LocationSample]:
        """All stored samples of one user, oldest first."""
        with self._lock:
            return list(self._samples.get(user_id, ()))

    def all_samples(self) -> List[LocationSample]:
        """Every stored sample, grouped by user id, each group oldest first."""
        with self._lock:
            return [
                sample
                for user_id in sorted(self._samples)
                for sample in self._samples[user_id]
            ]

    def user_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._samples)

    def count(self, user_id: Optional[str] = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._samples.get(user_id, ()))
            return sum(len(s) for s in self._samples.values())

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()
            self._timestamps.clear()
