# courier-task-sequencer/sequencer/models.py
"""
Core domain models for the Courier Task Sequencer.

This module defines the fundamental data structures used throughout the engine:
- GeoPoint: An immutable latitude/longitude pair
- Task: A single pickup or delivery stop inside a courier assignment
- Assignment: One courier's batch of tasks for a run or shift

Tasks reference their assignment by id only. An assignment never owns its
tasks; the repository answers "which tasks belong to this assignment" and
fills ``Assignment.tasks`` as a read-only view when it loads one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple


class TaskStatus(Enum):
    """Lifecycle states for a task inside an assignment."""
    PENDING = "PENDING"            # Created, not started
    IN_PROGRESS = "IN_PROGRESS"    # Courier is travelling to / working on it
    ARRIVED = "ARRIVED"            # Courier is at the stop
    DELAYED = "DELAYED"            # Recoverable detour from IN_PROGRESS
    COMPLETED = "COMPLETED"        # Done
    FAILED = "FAILED"              # Could not be done, reason in notes
    CANCELLED = "CANCELLED"        # Withdrawn

    @property
    def is_terminal(self) -> bool:
        """Terminal states accept no further transitions."""
        return self in TERMINAL_TASK_STATUSES


TERMINAL_TASK_STATUSES: FrozenSet[TaskStatus] = frozenset({
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
    TaskStatus.CANCELLED,
})

# Tasks in these states are never resequencing candidates.
INACTIVE_TASK_STATUSES: FrozenSet[TaskStatus] = frozenset({
    TaskStatus.COMPLETED,
    TaskStatus.CANCELLED,
})


class TaskType(Enum):
    """What the courier does at the stop."""
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"
    OTHER = "OTHER"


class AssignmentStatus(Enum):
    """
    States for a courier assignment.

    The assignment state machine:
    - CREATED -> ASSIGNED: A courier is attached
    - ASSIGNED -> ACCEPTED / REJECTED: The courier answers
    - ACCEPTED -> IN_PROGRESS: The run starts
    - IN_PROGRESS <-> DELAYED, then COMPLETED / FAILED / CANCELLED
    """
    CREATED = "CREATED"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    IN_PROGRESS = "IN_PROGRESS"
    DELAYED = "DELAYED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ASSIGNMENT_STATUSES


TERMINAL_ASSIGNMENT_STATUSES: FrozenSet[AssignmentStatus] = frozenset({
    AssignmentStatus.COMPLETED,
    AssignmentStatus.FAILED,
    AssignmentStatus.CANCELLED,
    AssignmentStatus.REJECTED,
})


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""
    latitude: float
    longitude: float

    def as_tuple(self) -> Tuple[float, float]:
        """Returns the point as a (lat, lng) tuple."""
        return (self.latitude, self.longitude)


@dataclass
class Task:
    """
    Represents a single stop in a courier assignment.

    Attributes:
        task_id: Unique identifier
        assignment_id: Owning assignment (foreign key)
        task_type: PICKUP, DELIVERY or OTHER
        status: Current lifecycle state
        location: Where the stop is; None means "unknown" and sorts as
            infinitely far when choosing the nearest stop
        start_time_window/end_time_window: Service window, each optional
        estimated_duration: Minutes spent at the stop (None counts as 0)
        sequence: 1-based position in the assignment's visiting order

    Timestamps (set only by the matching lifecycle transition):
        scheduled_time, started_at, completed_at, failed_at

    version is the optimistic-concurrency counter; only the repository
    changes it.
    """
    task_id: str
    assignment_id: Optional[str] = None
    task_type: TaskType = TaskType.DELIVERY
    status: Optional[TaskStatus] = None
    location: Optional[GeoPoint] = None
    start_time_window: Optional[datetime] = None
    end_time_window: Optional[datetime] = None
    estimated_duration: Optional[int] = None
    sequence: Optional[int] = None

    # Lifecycle timestamps
    scheduled_time: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    actual_duration_minutes: Optional[int] = None
    notes: Optional[str] = None

    # Bumped by the repository on every save
    version: int = 0

    # Descriptive fields
    address: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    instructions: Optional[str] = None
    reference_code: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def duration_minutes(self) -> int:
        """Estimated duration with the "absent means zero" rule applied."""
        return self.estimated_duration or 0

    @property
    def is_active(self) -> bool:
        """Active tasks are the candidates for (re)sequencing."""
        return self.status not in INACTIVE_TASK_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status is not None and self.status.is_terminal

    def __repr__(self) -> str:
        status = self.status.value if self.status else None
        return f"Task({self.task_id}, {status}, seq={self.sequence})"


@dataclass
class Assignment:
    """
    Represents one courier's run.

    Attributes:
        assignment_id: Unique identifier
        courier_id: Courier the run is assigned to (required before ASSIGNED)
        status: Current lifecycle state
        tasks: Snapshot of the assignment's tasks ordered by sequence number,
            filled by the repository on read. Saving an assignment never
            writes these back.
        version: Optimistic-concurrency counter, bumped on every save
    """
    assignment_id: str
    courier_id: Optional[str] = None
    status: AssignmentStatus = AssignmentStatus.CREATED
    notes: Optional[str] = None
    tasks: List[Task] = field(default_factory=list)

    assigned_at: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    @property
    def active_tasks(self) -> List[Task]:
        """Tasks that are neither COMPLETED nor CANCELLED."""
        return [t for t in self.tasks if t.is_active]

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def __repr__(self) -> str:
        return f"Assignment({self.assignment_id}, {self.status.value}, tasks={len(self.tasks)})"
