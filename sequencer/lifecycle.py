# courier-task-sequencer/sequencer/lifecycle.py
"""
Status state machines for tasks and assignments.

Task transitions:
- PENDING -> IN_PROGRESS | CANCELLED
- IN_PROGRESS -> COMPLETED | FAILED | DELAYED | CANCELLED | ARRIVED
- ARRIVED -> COMPLETED | FAILED | CANCELLED
- DELAYED -> IN_PROGRESS | FAILED | CANCELLED

Assignment transitions:
- CREATED -> ASSIGNED | CANCELLED
- ASSIGNED -> ACCEPTED | REJECTED | CANCELLED
- ACCEPTED -> IN_PROGRESS | CANCELLED
- IN_PROGRESS -> COMPLETED | CANCELLED | FAILED | DELAYED
- DELAYED -> IN_PROGRESS | CANCELLED | FAILED

Terminal states have no outgoing edges. The functions here mutate the entity
they are given and stamp timestamps; persisting is the caller's job.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from . import config, utils
from .exceptions import InvalidState, InvalidTransition
from .models import Assignment, AssignmentStatus, Task, TaskStatus

logger = logging.getLogger(__name__)


TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.IN_PROGRESS: frozenset({
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.DELAYED,
        TaskStatus.CANCELLED,
        TaskStatus.ARRIVED,
    }),
    TaskStatus.ARRIVED: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}),
    TaskStatus.DELAYED: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.FAILED, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}

ASSIGNMENT_TRANSITIONS: Dict[AssignmentStatus, FrozenSet[AssignmentStatus]] = {
    AssignmentStatus.CREATED: frozenset({AssignmentStatus.ASSIGNED, AssignmentStatus.CANCELLED}),
    AssignmentStatus.ASSIGNED: frozenset({
        AssignmentStatus.ACCEPTED,
        AssignmentStatus.REJECTED,
        AssignmentStatus.CANCELLED,
    }),
    AssignmentStatus.ACCEPTED: frozenset({AssignmentStatus.IN_PROGRESS, AssignmentStatus.CANCELLED}),
    AssignmentStatus.IN_PROGRESS: frozenset({
        AssignmentStatus.COMPLETED,
        AssignmentStatus.CANCELLED,
        AssignmentStatus.FAILED,
        AssignmentStatus.DELAYED,
    }),
    AssignmentStatus.DELAYED: frozenset({
        AssignmentStatus.IN_PROGRESS,
        AssignmentStatus.CANCELLED,
        AssignmentStatus.FAILED,
    }),
    AssignmentStatus.COMPLETED: frozenset(),
    AssignmentStatus.FAILED: frozenset(),
    AssignmentStatus.CANCELLED: frozenset(),
    AssignmentStatus.REJECTED: frozenset(),
}

# Statuses from which the convenience wrappers may finish a task.
COMPLETABLE_STATUSES: FrozenSet[TaskStatus] = frozenset({
    TaskStatus.IN_PROGRESS,
    TaskStatus.ARRIVED,
    TaskStatus.DELAYED,
})
FAILABLE_STATUSES: FrozenSet[TaskStatus] = frozenset(
    s for s, allowed in TASK_TRANSITIONS.items() if TaskStatus.FAILED in allowed
)
UNDELETABLE_STATUSES: FrozenSet[TaskStatus] = frozenset({
    TaskStatus.COMPLETED,
    TaskStatus.IN_PROGRESS,
})


def can_transition(current: TaskStatus, requested: TaskStatus) -> bool:
    """Whether the task table has an edge from ``current`` to ``requested``."""
    return requested in TASK_TRANSITIONS.get(current, frozenset())


def validate_task_transition(current: TaskStatus, requested: TaskStatus) -> None:
    """Raise InvalidTransition unless ``current -> requested`` is a legal edge."""
    if not can_transition(current, requested):
        raise InvalidTransition(current, requested)


def append_note(existing: Optional[str], line: str) -> str:
    """Append a line to free-text notes, keeping whatever was there."""
    if existing:
        return f"{existing}\n{line}"
    return line


def transition_task(
    task: Task,
    new_status: TaskStatus,
    now: datetime,
    reason: Optional[str] = None,
) -> Task:
    """
    Move a task to ``new_status`` and apply the side effects of entering it.

    Side effects:
    - IN_PROGRESS: stamps started_at
    - COMPLETED: stamps completed_at and derives actual_duration_minutes from
      scheduled_time, when one is set
    - FAILED: stamps failed_at and appends the reason to notes, if one is given

    Args:
        task: The task to mutate
        new_status: Requested status
        now: Timestamp for the transition
        reason: Failure reason (only used when entering FAILED)

    Returns:
        The same task object

    Raises:
        InvalidTransition: If the lifecycle table forbids the change
    """
    current = task.status or TaskStatus.PENDING
    validate_task_transition(current, new_status)
    _enter_task_status(task, new_status, now, reason)
    logger.debug(f"Task {task.task_id}: {current.value} -> {new_status.value}")
    return task


def _enter_task_status(
    task: Task,
    new_status: TaskStatus,
    now: datetime,
    reason: Optional[str],
) -> None:
    task.status = new_status
    task.updated_at = now

    if new_status == TaskStatus.IN_PROGRESS:
        task.started_at = now
    elif new_status == TaskStatus.COMPLETED:
        task.completed_at = now
        if task.scheduled_time is not None:
            task.actual_duration_minutes = utils.minutes_between(task.scheduled_time, now)
    elif new_status == TaskStatus.FAILED:
        task.failed_at = now
        if reason is not None:
            task.notes = append_note(task.notes, f"{config.FAILURE_NOTE_PREFIX}{reason}")


def complete_task(task: Task, now: datetime) -> Task:
    """
    Finish a task from IN_PROGRESS, ARRIVED or DELAYED.

    DELAYED has no COMPLETED edge in the raw table, but a delayed courier who
    reaches the stop and hands over the parcel completes it in one step.
    """
    current = task.status or TaskStatus.PENDING
    if current not in COMPLETABLE_STATUSES:
        raise InvalidState(f"Task cannot be completed in current state: {current.value}")
    _enter_task_status(task, TaskStatus.COMPLETED, now, None)
    return task


def fail_task(task: Task, now: datetime, reason: str) -> Task:
    """Fail a task from any status that has a FAILED edge."""
    current = task.status or TaskStatus.PENDING
    if current not in FAILABLE_STATUSES:
        raise InvalidState(f"Task cannot be failed in current state: {current.value}")
    _enter_task_status(task, TaskStatus.FAILED, now, reason)
    return task


def ensure_deletable(task: Task) -> None:
    """Raise InvalidState when a task is IN_PROGRESS or COMPLETED."""
    if task.status in UNDELETABLE_STATUSES:
        raise InvalidState(f"Cannot delete task in {task.status.value} state")


def transition_assignment(
    assignment: Assignment,
    new_status: AssignmentStatus,
    now: datetime,
    reason: Optional[str] = None,
) -> Assignment:
    """
    Move an assignment to ``new_status`` and apply the side effects.

    Side effects:
    - ASSIGNED: requires a courier; stamps assigned_at
    - IN_PROGRESS: stamps actual_start_time the first time the run starts
    - any terminal status: stamps actual_end_time
    - REJECTED: appends the reason to notes, if one is given

    Raises:
        InvalidTransition: If the assignment table forbids the change
        InvalidState: If ASSIGNED is requested without a courier
    """
    current = assignment.status
    if new_status not in ASSIGNMENT_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(current, new_status)

    if new_status == AssignmentStatus.ASSIGNED:
        if not assignment.courier_id:
            raise InvalidState("Assignment must have a courier to be assigned")
        assignment.assigned_at = now
    elif new_status == AssignmentStatus.IN_PROGRESS:
        if assignment.actual_start_time is None:
            assignment.actual_start_time = now
    elif new_status.is_terminal:
        assignment.actual_end_time = now

    if new_status == AssignmentStatus.REJECTED and reason is not None:
        assignment.notes = append_note(assignment.notes, f"{config.REJECTION_NOTE_PREFIX}{reason}")

    assignment.status = new_status
    assignment.updated_at = now
    logger.debug(f"Assignment {assignment.assignment_id}: {current.value} -> {new_status.value}")
    return assignment
