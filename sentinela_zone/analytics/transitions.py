"""
Transition Detector Module
==========================

Entry/exit detection by diffing containment of consecutive samples.

Design:
- Stateless: the "previous state" of a (user, area) pair is recomputed from
  the user's preceding sample, never kept in memory
- Idempotent: same (current, previous, areas) always gives the same events
- Events sorted by area id (deterministic output order)

State model per (user, area):

    OUTSIDE --(contained now, not before)--> INSIDE   emits ENTRY
    INSIDE  --(contained before, not now)--> OUTSIDE  emits EXIT
    same state                                        emits nothing

OUTSIDE is the default for any area never observed as containing the user,
so the first sample of a user reports every occupied area as an entry.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from sentinela_zone.domain import AlertType, Area, LocationSample, normalize_timestamp
from sentinela_zone.errors import InvalidInput
from sentinela_zone.geometry.resolver import ContainmentResolver, SkippedArea


class TransitionKind(str, Enum):
    """Direction of a containment state change."""
    ENTRY = "entry"
    EXIT = "exit"


@dataclass(frozen=True)
class TransitionEvent:
    """
    One detected (user, area) state change.

    Created exactly once per detection, never stored as mutable state.

    Attributes:
        user_id: User whose state changed
        area_id: Area entered or exited
        area_name: Area name at detection time
        alert_type: Area alert type at detection time
        timestamp: Timestamp of the sample that caused the change
        kind: ENTRY or EXIT
    """

    user_id: str
    area_id: str
    area_name: str
    alert_type: AlertType
    timestamp: datetime
    kind: TransitionKind

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'user_id': self.user_id,
            'area_id': self.area_id,
            'area_name': self.area_name,
            'alert_type': self.alert_type.value,
            'timestamp': self.timestamp.isoformat(),
            'kind': self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TransitionEvent':
        """
        Deserialize from dict.

        Raises:
            ValueError: If required fields missing or invalid
        """
        try:
            return cls(
                user_id=str(data['user_id']),
                area_id=str(data['area_id']),
                area_name=str(data['area_name']),
                alert_type=AlertType(data['alert_type']),
                timestamp=normalize_timestamp(data['timestamp']),
                kind=TransitionKind(data['kind']),
            )
        except KeyError as e:
            raise ValueError(f"Missing required TransitionEvent field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid TransitionEvent data: {e}")


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of evaluating one sample.

    Attributes:
        contained_areas: Ids of areas containing the current sample
        entries: ENTRY events (OUTSIDE -> INSIDE)
        exits: EXIT events (INSIDE -> OUTSIDE)
        skipped: Areas with invalid geometry, left out of both resolutions
    """

    contained_areas: FrozenSet[str] = frozenset()
    entries: Tuple[TransitionEvent, ...] = ()
    exits: Tuple[TransitionEvent, ...] = ()
    skipped: Tuple[SkippedArea, ...] = ()

    @property
    def events(self) -> Tuple[TransitionEvent, ...]:
        """Entries followed by exits."""
        return self.entries + self.exits

    @property
    def has_transitions(self) -> bool:
        return bool(self.entries or self.exits)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'contained_areas': sorted(self.contained_areas),
            'entries': [event.to_dict() for event in self.entries],
            'exits': [event.to_dict() for event in self.exits],
            'skipped': [
                {'area_id': s.area_id, 'reason': s.reason} for s in self.skipped
            ],
        }


class TransitionDetector:
    """
    Stateless entry/exit detector.

    Design Philosophy:
    - All methods are static (no instance state)
    - The caller supplies the predecessor sample (by timestamp order) and
      the area snapshot; both containment sets are recomputed from them

    Usage:
        result = TransitionDetector.detect(current, previous, areas)
        for event in result.entries:
            sink.send([event])
    """

    @staticmethod
    def detect(
        current: LocationSample,
        previous: Optional[LocationSample],
        areas: Iterable[Area]
    ) -> TransitionResult:
        """
        Classify the transitions caused by `current`.

        Args:
            current: Sample under evaluation
            previous: Sample immediately preceding `current` in timestamp
                order for the same user, or None for a first sample
            areas: Area snapshot (used for both resolutions)

        Returns:
            TransitionResult with containment, entries and exits

        Raises:
            InvalidInput: If `previous` belongs to another user or is not
                strictly earlier than `current`
        """
        if previous is not None:
            if previous.user_id != current.user_id:
                raise InvalidInput(
                    f"Previous sample belongs to '{previous.user_id}', "
                    f"expected '{current.user_id}'"
                )
            if previous.timestamp >= current.timestamp:
                raise InvalidInput(
                    "Previous sample must be strictly earlier than the current one"
                )

        # Snapshot once, both resolutions see the same areas
        snapshot = list(areas)
        by_id = {area.area_id: area for area in snapshot}

        now = ContainmentResolver.resolve(current.point, snapshot)
        if previous is not None:
            before = ContainmentResolver.resolve(previous.point, snapshot)
            prev_ids = before.area_ids
        else:
            prev_ids = frozenset()

        entries = TransitionDetector._events(
            current, sorted(now.area_ids - prev_ids), by_id, TransitionKind.ENTRY
        )
        exits = TransitionDetector._events(
            current, sorted(prev_ids - now.area_ids), by_id, TransitionKind.EXIT
        )

        return TransitionResult(
            contained_areas=now.area_ids,
            entries=entries,
            exits=exits,
            skipped=now.skipped,
        )

    @staticmethod
    def _events(
        current: LocationSample,
        area_ids: List[str],
        by_id: Dict[str, Area],
        kind: TransitionKind
    ) -> Tuple[TransitionEvent, ...]:
        return tuple(
            TransitionEvent(
                user_id=current.user_id,
                area_id=area_id,
                area_name=by_id[area_id].name,
                alert_type=by_id[area_id].alert_type,
                timestamp=current.timestamp,
                kind=kind,
            )
            for area_id in area_ids
        )
