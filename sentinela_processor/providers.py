"""
Provider interfaces consumed by GeofenceService.

Any object with these methods can back the service (the in-memory
AreaRegistry and InMemoryLocationHistory are the shipped implementations).
Failures of a provider surface to callers as DependencyUnavailable.
"""

from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from sentinela_zone import Area, LocationSample


@runtime_checkable
class AreaSnapshotProvider(Protocol):
    """Source of the monitored areas."""

    def get_active_areas(self) -> List[Area]:
        """Active areas at one consistent version."""
        ...


@runtime_checkable
class LocationHistoryProvider(Protocol):
    """Append-only per-user location store."""

    def get_recent_samples(
        self,
        user_id: str,
        limit: int = 2,
        before: Optional[datetime] = None
    ) -> List[LocationSample]:
        """
        Newest samples first.

        With `before`, only samples strictly earlier than that timestamp.
        """
        ...

    def append_sample(self, sample: LocationSample) -> None:
        """Store a sample. Never overwrites an existing one."""
        ...


@runtime_checkable
class QueryableLocationHistory(LocationHistoryProvider, Protocol):
    """History that can also be scanned (needed by the query helpers)."""

    def user_samples(self, user_id: str) -> List[LocationSample]:
        """All samples of one user, oldest first."""
        ...

    def all_samples(self) -> List[LocationSample]:
        """Every stored sample."""
        ...
