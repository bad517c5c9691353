"""
Analytics Layer
===============

Bounded Context: Entry/exit state transitions.

Responsibilities:
- Diff containment of consecutive samples of one user
- Emit immutable TransitionEvents (ENTRY / EXIT)

Design Philosophy:
- Previous state recomputed from history, never cached
- Immutable outputs (TransitionEvent, TransitionResult)
- Idempotent under retries
"""

from sentinela_zone.analytics.transitions import (
    TransitionDetector,
    TransitionEvent,
    TransitionKind,
    TransitionResult,
)

__all__ = [
    "TransitionDetector",
    "TransitionEvent",
    "TransitionKind",
    "TransitionResult",
]
