# courier-task-sequencer/sequencer/config.py
"""
Configuration parameters for the Courier Task Sequencer.

This module centralizes all tunable parameters, making it easy to:
- Adjust travel-time assumptions
- Fine-tune the deadline urgency heuristic
- Toggle input hardening

Modules read these values as ``config.NAME`` at call time, so tests and
callers can patch them without re-importing anything.
"""

import os
from typing import Final

# =============================================================================
# PHYSICS AND TIME CONSTANTS
# =============================================================================

AVG_SPEED_KMH: float = 30.0
"""Average urban courier speed in km/h. Used for every travel-time estimate."""

EARTH_RADIUS_KM: Final[float] = 6371.0
"""Mean Earth radius used by the Haversine formula."""

AVERAGE_SERVICE_TIME_MINS: int = 10
"""
Typical time spent at a stop (parking, handover, signature).
Only used as the default duration for CSV rows that leave it blank.
"""

# =============================================================================
# SEQUENCING HEURISTIC
# =============================================================================

URGENCY_WINDOW_MINS: int = 60
"""
A task is "urgent" when the courier would reach it before its time window
opens, with less than this many minutes to spare. Urgent tasks are visited
before plain nearest-neighbor candidates.
"""

# =============================================================================
# INPUT HARDENING
# =============================================================================

VALIDATE_COORDINATES: bool = True
"""
Reject tasks with latitude outside [-90, 90] or longitude outside [-180, 180]
when they are created or updated. The distance functions themselves never
range-check; disable this to accept raw coordinates as-is.
"""

# =============================================================================
# NOTES FORMATTING
# =============================================================================

FAILURE_NOTE_PREFIX: Final[str] = "Failure reason: "
"""Prefix for the line appended to task notes when a task fails."""

REJECTION_NOTE_PREFIX: Final[str] = "Rejection reason: "
"""Prefix for the line appended to assignment notes when it is rejected."""

# =============================================================================
# LOGGING AND TOOLING
# =============================================================================

LOG_LEVEL: str = os.environ.get("SEQUENCER_LOG_LEVEL", "INFO").upper()
"""Root log level for the CLI and dashboard. Override with SEQUENCER_LOG_LEVEL."""

DEFAULT_DATASET: str = "data/sample_tasks.csv"
"""Dataset loaded by the CLI and dashboard when none is given."""
