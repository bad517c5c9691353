"""
Common Schema Types
===================

Wire-level pieces shared by location and transition messages.

Timestamps stay as the ISO 8601 text that arrived on the wire; parsing into
an aware datetime goes through the domain's normalize_timestamp so that the
subscriber and the engine accept exactly the same formats ("Z" suffix,
naive values taken as UTC).
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from sentinela_zone import normalize_timestamp

SCHEMA_VERSION = "1.0"


@dataclass(frozen=True)
class Timestamp:
    """
    ISO 8601 timestamp as carried in a message.

    Example:
        >>> Timestamp.from_datetime(datetime(2025, 1, 1, 10, 0)).value
        '2025-01-01T10:00:00+00:00'
    """
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value:
            raise ValueError(f"Timestamp value must be a non-empty string, got {self.value!r}")

    @classmethod
    def now(cls) -> 'Timestamp':
        return cls(datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_datetime(cls, dt: datetime) -> 'Timestamp':
        return cls(normalize_timestamp(dt).isoformat())

    def to_datetime(self) -> datetime:
        """Aware datetime for this value. Raises InvalidInput (a ValueError) if unparseable."""
        return normalize_timestamp(self.value)

    def to_dict(self) -> str:
        return self.value
