# courier-task-sequencer/sequencer/exceptions.py
"""
Error types raised by the sequencing core.

Every error is raised straight to the direct caller. Nothing in the core
retries or substitutes defaults; callers decide how to compensate.
"""

from __future__ import annotations

from typing import Any


class SequencingError(Exception):
    """Base class for all errors raised by the sequencer package."""


class NotFound(SequencingError, LookupError):
    """A referenced assignment or task id does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found with ID: {identifier}")


class InvalidTransition(SequencingError):
    """A status change that the lifecycle table does not allow."""

    def __init__(self, current: Any, requested: Any) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot transition from {_name(current)} to {_name(requested)}"
        )


class InvalidState(SequencingError):
    """Operation preconditions violated by the entity's current status."""


class InvalidWindow(SequencingError, ValueError):
    """A time window whose start lies after its end."""


class InvalidSequence(SequencingError, ValueError):
    """A proposed order that is not a permutation of the target task set."""


class InvalidLocation(SequencingError, ValueError):
    """Coordinates outside the valid latitude/longitude range."""


class ConcurrentModification(SequencingError):
    """A save based on a stale copy: someone else saved (or deleted) the entity first."""

    def __init__(self, kind: str, identifier: str, expected: int, found: Any) -> None:
        self.kind = kind
        self.identifier = identifier
        self.expected = expected
        self.found = found
        super().__init__(
            f"{kind} {identifier} was modified concurrently "
            f"(saving version {expected}, stored version {found})"
        )


def _name(status: Any) -> str:
    return getattr(status, "value", str(status))
