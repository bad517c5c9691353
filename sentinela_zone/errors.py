"""
Geofence Error Taxonomy
=======================

Typed errors shared by every layer. Callers branch on the class, never on
the message text.

Hierarchy:
    GeofenceError
    ├── InvalidInput           (also ValueError)
    ├── InvalidGeometry        (also ValueError)
    ├── UnknownArea            (also KeyError)
    ├── DependencyUnavailable  (retriable)
    ├── EvaluationCancelled
    └── DispatchError          (retriable, never fatal to ingestion)
"""


class GeofenceError(Exception):
    """Base class for all geofencing errors."""


class InvalidInput(GeofenceError, ValueError):
    """Invalid or missing user id, coordinates or timestamp."""


class InvalidGeometry(GeofenceError, ValueError):
    """Malformed or degenerate polygon geometry."""


class UnknownArea(GeofenceError, KeyError):
    """Area id not present in the registry."""

    def __str__(self) -> str:
        # KeyError quotes its argument, keep the plain message
        return str(self.args[0]) if self.args else ""


class DependencyUnavailable(GeofenceError):
    """
    Area or location store could not be reached.

    Retriable by the caller. The original exception is chained as __cause__.
    """


class EvaluationCancelled(GeofenceError):
    """Evaluation cancelled or timed out before any alert was dispatched."""


class DispatchError(GeofenceError):
    """Alert sink failed to deliver a batch of transition events."""
