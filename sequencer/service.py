# courier-task-sequencer/sequencer/service.py
"""
Assignment task service: the orchestration layer over storage, lifecycle
and sequencing.

Every public method loads what it needs from the repository, applies one
operation, and saves the result back. Errors are raised to the caller as-is;
validation always happens before the first write, so a failed call leaves
storage untouched.

Saves are version-checked by the repository. When two callers work on the same
task, the one that saves second gets ConcurrentModification and nothing it
computed from its stale copy is written.

Two resequencing contracts exist side by side and are deliberately kept apart:

- ``resequence_all_tasks`` (alias ``resequence_tasks``) renumbers *every* task
  in the assignment, terminal ones included, from an explicit id list.
- ``resequence_active_tasks`` renumbers only the active tasks and goes through
  ``SequencingEngine.apply_sequence``; terminal tasks keep their numbers.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import lifecycle, utils
from .exceptions import InvalidSequence, InvalidState, InvalidWindow, NotFound
from .models import Assignment, AssignmentStatus, Task, TaskStatus, TaskType
from .repository import TaskRepository
from .sequencing import SequenceSummary, SequencingEngine

logger = logging.getLogger(__name__)


# Fields ``update_task`` may change. Status, sequence and timestamps each have
# their own operations.
UPDATABLE_TASK_FIELDS = frozenset({
    "notes",
    "task_type",
    "location",
    "start_time_window",
    "end_time_window",
    "estimated_duration",
    "scheduled_time",
    "address",
    "contact_name",
    "contact_phone",
    "instructions",
    "reference_code",
})


def validate_time_window(task: Task) -> None:
    """Raise InvalidWindow when the window start lies after its end."""
    start, end = task.start_time_window, task.end_time_window
    if start is not None and end is not None and start > end:
        raise InvalidWindow(
            f"Start time window cannot be after end time window "
            f"({start.isoformat()} > {end.isoformat()})"
        )


class AssignmentTaskService:
    """
    Task and assignment operations for calling services and controllers.

    Attributes:
        repository: Storage collaborator (see ``TaskRepository``)
        engine: Sequencing engine used for optimal orders and active resequencing
        clock: Callable returning the current time for lifecycle timestamps
    """

    def __init__(
        self,
        repository: TaskRepository,
        engine: Optional[SequencingEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.repository = repository
        self.clock: Callable[[], datetime] = clock or datetime.now
        self.engine = engine or SequencingEngine(now=self.clock)

    # =========================================================================
    # ASSIGNMENTS
    # =========================================================================

    def create_assignment(self, assignment: Assignment) -> Assignment:
        """Store a new assignment. Raises InvalidState if the id is taken."""
        logger.info(f"Creating assignment: {assignment.assignment_id}")
        if self.repository.find_assignment_by_id(assignment.assignment_id) is not None:
            raise InvalidState(f"Assignment already exists: {assignment.assignment_id}")

        now = self.clock()
        assignment.created_at = assignment.created_at or now
        assignment.updated_at = now
        return self.repository.save_assignment(assignment)

    def get_assignment(self, assignment_id: str) -> Assignment:
        """Assignment with its tasks ordered by sequence. Raises NotFound."""
        return self._get_assignment_or_throw(assignment_id)

    def get_assignments(self) -> List[Assignment]:
        """Every assignment, each with its tasks view filled."""
        return self.repository.find_all_assignments()

    def update_assignment_status(
        self,
        assignment_id: str,
        status: AssignmentStatus,
        reason: Optional[str] = None,
    ) -> Assignment:
        """Move an assignment through its lifecycle (see ``lifecycle``)."""
        logger.info(f"Updating assignment {assignment_id} status to {status.value}")
        assignment = self._get_assignment_or_throw(assignment_id)
        lifecycle.transition_assignment(assignment, status, self.clock(), reason)
        return self.repository.save_assignment(assignment)

    def delete_assignment(self, assignment_id: str) -> None:
        """Delete an assignment together with all of its tasks."""
        logger.info(f"Deleting assignment: {assignment_id}")
        self._get_assignment_or_throw(assignment_id)
        self.repository.delete_assignment(assignment_id)

    # =========================================================================
    # TASK CRUD
    # =========================================================================

    def create_task(self, assignment_id: str, task: Task) -> Task:
        """
        Add a task to an assignment.

        Defaults: status PENDING; sequence one past the highest number already
        used in the assignment (1 for the first task).

        Raises:
            InvalidState: If a task with the same id already exists
            NotFound: If the assignment does not exist
            InvalidWindow: If start_time_window is after end_time_window
            InvalidLocation: If coordinates are out of range (when enabled)
        """
        logger.info(f"Creating new task for assignment: {assignment_id}")
        self._get_assignment_or_throw(assignment_id)
        if self.repository.find_task_by_id(task.task_id) is not None:
            raise InvalidState(f"Task already exists: {task.task_id}")

        validate_time_window(task)
        utils.validate_location(task.location)

        task.assignment_id = assignment_id
        if task.status is None:
            task.status = TaskStatus.PENDING
        if task.sequence is None:
            max_sequence = self.repository.max_sequence_number_in_assignment(assignment_id)
            task.sequence = max_sequence + 1 if max_sequence is not None else 1

        now = self.clock()
        task.created_at = task.created_at or now
        task.updated_at = now
        return self.repository.save_task(task)

    def update_task(self, task_id: str, **changes: Any) -> Task:
        """
        Update descriptive fields of a task.

        Only fields in UPDATABLE_TASK_FIELDS are accepted; status, sequence
        and lifecycle timestamps are changed through their own operations.
        """
        logger.info(f"Updating task with ID: {task_id}")
        rejected = set(changes) - UPDATABLE_TASK_FIELDS
        if rejected:
            raise ValueError(f"Fields cannot be updated directly: {', '.join(sorted(rejected))}")

        task = self._get_task_or_throw(task_id)
        for name, value in changes.items():
            setattr(task, name, value)

        validate_time_window(task)
        utils.validate_location(task.location)
        task.updated_at = self.clock()
        return self.repository.save_task(task)

    def delete_task(self, task_id: str) -> bool:
        """
        Delete a task and renumber the rest of its assignment 1..N.

        Raises:
            NotFound: If the task does not exist
            InvalidState: If the task is IN_PROGRESS or COMPLETED
        """
        logger.info(f"Deleting task with ID: {task_id}")
        task = self._get_task_or_throw(task_id)
        lifecycle.ensure_deletable(task)

        self.repository.delete_task(task_id)
        if task.assignment_id is not None:
            self._resequence_after_deletion(task.assignment_id)
        return True

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_task(self, task_id: str) -> Task:
        return self._get_task_or_throw(task_id)

    def get_tasks_by_assignment(self, assignment_id: str) -> List[Task]:
        self._get_assignment_or_throw(assignment_id)
        return self.repository.find_tasks_by_assignment(assignment_id)

    def get_tasks_ordered_by_sequence(self, assignment_id: str) -> List[Task]:
        tasks = self.get_tasks_by_assignment(assignment_id)
        return sorted(tasks, key=lambda t: (t.sequence is None, t.sequence or 0))

    def get_tasks_by_status(self, assignment_id: str, status: TaskStatus) -> List[Task]:
        return [t for t in self.get_tasks_by_assignment(assignment_id) if t.status == status]

    def get_tasks_by_type(self, assignment_id: str, task_type: TaskType) -> List[Task]:
        return [t for t in self.get_tasks_by_assignment(assignment_id) if t.task_type == task_type]

    def get_tasks_in_time_window(self, start: datetime, end: datetime) -> List[Task]:
        """
        Tasks across all assignments whose service window overlaps [start, end].

        Tasks without any window are excluded; an open-ended window overlaps
        on its open side.
        """
        matches: List[Task] = []
        for task in self.repository.find_all_tasks():
            if task.start_time_window is None and task.end_time_window is None:
                continue
            if task.start_time_window is not None and task.start_time_window > end:
                continue
            if task.end_time_window is not None and task.end_time_window < start:
                continue
            matches.append(task)
        return matches

    def get_overdue_tasks(self, assignment_id: str) -> List[Task]:
        """Non-terminal tasks whose window has already closed."""
        now = self.clock()
        return [
            t for t in self.get_tasks_by_assignment(assignment_id)
            if not t.is_terminal and t.end_time_window is not None and t.end_time_window < now
        ]

    # =========================================================================
    # STATUS CHANGES
    # =========================================================================

    def update_task_status(
        self,
        task_id: str,
        new_status: TaskStatus,
        reason: Optional[str] = None,
    ) -> Task:
        """
        Apply a lifecycle transition and persist the task.

        Raises:
            NotFound: If the task does not exist
            InvalidTransition: If the transition is not in the lifecycle table
        """
        logger.info(f"Updating task {task_id} status to {new_status.value}")
        task = self._get_task_or_throw(task_id)
        lifecycle.transition_task(task, new_status, self.clock(), reason)
        return self.repository.save_task(task)

    def start_task(self, task_id: str) -> Task:
        return self.update_task_status(task_id, TaskStatus.IN_PROGRESS)

    def arrive_at_task(self, task_id: str) -> Task:
        return self.update_task_status(task_id, TaskStatus.ARRIVED)

    def delay_task(self, task_id: str) -> Task:
        return self.update_task_status(task_id, TaskStatus.DELAYED)

    def cancel_task(self, task_id: str) -> Task:
        return self.update_task_status(task_id, TaskStatus.CANCELLED)

    def complete_task(self, task_id: str) -> Task:
        """Complete a task that is IN_PROGRESS, ARRIVED or DELAYED (else InvalidState)."""
        logger.info(f"Completing task {task_id}")
        task = self._get_task_or_throw(task_id)
        lifecycle.complete_task(task, self.clock())
        return self.repository.save_task(task)

    def fail_task(self, task_id: str, reason: str) -> Task:
        """Fail a task and record the reason in its notes (else InvalidState)."""
        logger.info(f"Marking task {task_id} as failed with reason: {reason}")
        task = self._get_task_or_throw(task_id)
        lifecycle.fail_task(task, self.clock(), reason)
        return self.repository.save_task(task)

    # =========================================================================
    # RESEQUENCING
    # =========================================================================

    def resequence_all_tasks(self, assignment_id: str, ordered_task_ids: Sequence[str]) -> List[Task]:
        """
        Renumber every task of the assignment 1..N following ``ordered_task_ids``.

        Raises:
            NotFound: If the assignment or any listed task does not exist
            InvalidSequence: If a task belongs elsewhere, an id repeats, or the
                list does not cover all of the assignment's tasks
        """
        logger.info(f"Resequencing tasks for assignment: {assignment_id}")
        self._get_assignment_or_throw(assignment_id)

        tasks: List[Task] = []
        for task_id in ordered_task_ids:
            task = self._get_task_or_throw(task_id)
            if task.assignment_id != assignment_id:
                raise InvalidSequence(
                    f"Task with ID {task_id} does not belong to assignment {assignment_id}"
                )
            tasks.append(task)

        if len(set(ordered_task_ids)) != len(ordered_task_ids):
            raise InvalidSequence("Each task may appear only once in the resequencing operation")

        all_tasks = self.repository.find_tasks_by_assignment(assignment_id)
        if len(all_tasks) != len(ordered_task_ids):
            raise InvalidSequence("All tasks must be included in the resequencing operation")

        for position, task in enumerate(tasks, start=1):
            task.sequence = position
        self._save_sequence(tasks)

        return self.get_tasks_ordered_by_sequence(assignment_id)

    resequence_tasks = resequence_all_tasks

    def resequence_active_tasks(self, assignment_id: str, ordered_task_ids: Sequence[str]) -> List[Task]:
        """
        Renumber only the active tasks 1..N following ``ordered_task_ids``.

        Raises:
            NotFound: If the assignment or any listed task does not exist
            InvalidSequence: If the ids are not exactly the active task set
        """
        logger.info(f"Resequencing active tasks for assignment: {assignment_id}")
        assignment = self._get_assignment_or_throw(assignment_id)
        ordered = [self._get_task_or_throw(task_id) for task_id in ordered_task_ids]

        self.engine.apply_sequence(assignment, ordered)
        self._save_sequence(ordered)
        return self.get_tasks_ordered_by_sequence(assignment_id)

    def optimize_assignment(self, assignment_id: str, start_task_id: Optional[str] = None) -> Assignment:
        """
        Compute the optimal order of the active tasks and persist it.

        Args:
            assignment_id: Assignment to optimize
            start_task_id: Active task to start from (the courier's current stop)
        """
        logger.info(f"Applying optimal sequence to assignment: {assignment_id}")
        assignment = self._get_assignment_or_throw(assignment_id)
        start_task = self._find_active_task(assignment, start_task_id)

        ordered = self.engine.determine_optimal_sequence_for_assignment(assignment, start_task)
        self.engine.apply_sequence(assignment, ordered)
        self._save_sequence(ordered)
        return self._get_assignment_or_throw(assignment_id)

    def preview_optimal_sequence(self, assignment_id: str, start_task_id: Optional[str] = None) -> List[Task]:
        """Optimal order of the active tasks, without persisting anything."""
        logger.info(f"Determining optimal sequence for assignment: {assignment_id}")
        assignment = self._get_assignment_or_throw(assignment_id)
        start_task = self._find_active_task(assignment, start_task_id)
        return self.engine.determine_optimal_sequence_for_assignment(assignment, start_task)

    def travel_metrics(self, assignment_id: str, start_time: Optional[datetime] = None) -> SequenceSummary:
        """Distance, travel time and feasibility of the optimal order."""
        logger.info(f"Estimating travel metrics for assignment: {assignment_id}")
        ordered = self.preview_optimal_sequence(assignment_id)
        return self.engine.summarize(ordered, start_time or self.clock())

    def check_time_window_feasibility(self, assignment_id: str, start_time: Optional[datetime] = None) -> bool:
        """Whether the optimal order meets every window, starting now by default."""
        logger.info(f"Checking time window feasibility for assignment: {assignment_id}")
        ordered = self.preview_optimal_sequence(assignment_id)
        return self.engine.can_complete_within_time_windows(ordered, start_time or self.clock())

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _resequence_after_deletion(self, assignment_id: str) -> None:
        # Saved as one batch; a partial pass would break contiguity.
        moved = []
        for position, task in enumerate(self.repository.find_tasks_by_assignment(assignment_id), start=1):
            if task.sequence != position:
                task.sequence = position
                moved.append(task)
        self._save_sequence(moved)

    def _save_sequence(self, tasks: Sequence[Task]) -> None:
        now = self.clock()
        for task in tasks:
            task.updated_at = now
        self.repository.save_tasks(tasks)

    def _find_active_task(self, assignment: Assignment, task_id: Optional[str]) -> Optional[Task]:
        if task_id is None:
            return None
        for task in assignment.active_tasks:
            if task.task_id == task_id:
                return task
        if any(t.task_id == task_id for t in assignment.tasks):
            raise InvalidState(f"Task {task_id} is not active and cannot start a sequence")
        raise NotFound("Task", task_id)

    def _get_assignment_or_throw(self, assignment_id: str) -> Assignment:
        assignment = self.repository.find_assignment_by_id(assignment_id)
        if assignment is None:
            raise NotFound("Assignment", assignment_id)
        return assignment

    def _get_task_or_throw(self, task_id: str) -> Task:
        task = self.repository.find_task_by_id(task_id)
        if task is None:
            raise NotFound("Task", task_id)
        return task


def summarize_assignment(service: AssignmentTaskService, assignment_id: str) -> Dict[str, Any]:
    """Status counts for one assignment, for reports."""
    counts: Dict[str, Any] = {status.value: 0 for status in TaskStatus}
    for task in service.get_tasks_by_assignment(assignment_id):
        if task.status is not None:
            counts[task.status.value] += 1
    return counts
