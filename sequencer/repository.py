# courier-task-sequencer/sequencer/repository.py
"""
Storage boundary for tasks and assignments.

The sequencing core only talks to storage through ``TaskRepository``.
``InMemoryTaskRepository`` is an arena-style implementation: flat dicts keyed
by id, tasks pointing at their assignment by id. It hands out deep copies on
every read and stores deep copies on every write, so callers own the objects
they get back and must save them explicitly.

Writes are optimistic: every entity carries a ``version``. A save must present
the version its copy was read at, and the stored copy is then bumped. A stale
save raises ConcurrentModification instead of overwriting a newer state, so of
two callers racing on the same task exactly one wins.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .exceptions import ConcurrentModification
from .models import Assignment, Task

logger = logging.getLogger(__name__)


class TaskRepository(Protocol):
    """Minimal storage interface the service layer depends on."""

    def find_assignment_by_id(self, assignment_id: str) -> Optional[Assignment]:
        ...

    def find_all_assignments(self) -> List[Assignment]:
        ...

    def find_tasks_by_assignment(self, assignment_id: str) -> List[Task]:
        ...

    def max_sequence_number_in_assignment(self, assignment_id: str) -> Optional[int]:
        ...

    def save_task(self, task: Task) -> Task:
        """Store ``task``; raises ConcurrentModification if its version is stale."""
        ...

    def save_tasks(self, tasks: Iterable[Task]) -> List[Task]:
        """Store several tasks at once; if any version is stale, none is written."""
        ...

    def save_assignment(self, assignment: Assignment) -> Assignment:
        ...

    def delete_task(self, task_id: str) -> None:
        ...

    def find_task_by_id(self, task_id: str) -> Optional[Task]:
        ...

    def find_all_tasks(self) -> List[Task]:
        ...

    def delete_assignment(self, assignment_id: str) -> None:
        ...


def _check_version(kind: str, identifier: str, version: int, stored: Any) -> None:
    # A new entity starts at 0; anything else must match what is stored now.
    found = stored.version if stored is not None else None
    if found is None and version == 0:
        return
    if found != version:
        raise ConcurrentModification(kind, identifier, version, found)


def _by_sequence(task: Task) -> tuple:
    # Unsequenced tasks go last, ties keep insertion order.
    return (task.sequence is None, task.sequence or 0)


class InMemoryTaskRepository:
    """
    Dict-backed TaskRepository.

    A single re-entrant lock guards every read and write, and the version
    check runs under it. A read-modify-write that spans several calls is
    therefore safe: if anything was saved in between, the final save fails.
    """

    def __init__(
        self,
        assignments: Optional[Iterable[Assignment]] = None,
        tasks: Optional[Iterable[Task]] = None,
    ) -> None:
        self._assignments: Dict[str, Assignment] = {}
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.RLock()

        for assignment in assignments or []:
            self.save_assignment(assignment)
        for task in tasks or []:
            self.save_task(task)

    def __len__(self) -> int:
        return len(self._tasks)

    # -------------------------------------------------------------------------
    # Assignments
    # -------------------------------------------------------------------------

    def find_assignment_by_id(self, assignment_id: str) -> Optional[Assignment]:
        """Copy of the assignment with its tasks view filled, or None."""
        with self._lock:
            stored = self._assignments.get(assignment_id)
            if stored is None:
                return None
            assignment = copy.deepcopy(stored)
            assignment.tasks = self.find_tasks_by_assignment(assignment_id)
            return assignment

    def find_all_assignments(self) -> List[Assignment]:
        with self._lock:
            return [self.find_assignment_by_id(a_id) for a_id in self._assignments]

    def save_assignment(self, assignment: Assignment) -> Assignment:
        """
        Store the assignment itself; its ``tasks`` view is not persisted.

        Raises:
            ConcurrentModification: If the stored version differs from
                ``assignment.version``
        """
        with self._lock:
            current = self._assignments.get(assignment.assignment_id)
            _check_version("Assignment", assignment.assignment_id, assignment.version, current)
            stored = copy.deepcopy(assignment)
            stored.tasks = []
            stored.version = assignment.version + 1
            self._assignments[assignment.assignment_id] = stored
            return self.find_assignment_by_id(assignment.assignment_id)

    def delete_assignment(self, assignment_id: str) -> None:
        """Remove an assignment and every task that belongs to it."""
        with self._lock:
            self._assignments.pop(assignment_id, None)
            doomed = [t_id for t_id, t in self._tasks.items() if t.assignment_id == assignment_id]
            for task_id in doomed:
                del self._tasks[task_id]
            logger.debug(f"Deleted assignment {assignment_id} and {len(doomed)} tasks")

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    def find_task_by_id(self, task_id: str) -> Optional[Task]:
        with self._lock:
            stored = self._tasks.get(task_id)
            return copy.deepcopy(stored) if stored is not None else None

    def find_all_tasks(self) -> List[Task]:
        with self._lock:
            return sorted(copy.deepcopy(list(self._tasks.values())), key=_by_sequence)

    def find_tasks_by_assignment(self, assignment_id: str) -> List[Task]:
        """Copies of the assignment's tasks, ordered by sequence number."""
        with self._lock:
            owned = [t for t in self._tasks.values() if t.assignment_id == assignment_id]
            return sorted(copy.deepcopy(owned), key=_by_sequence)

    def max_sequence_number_in_assignment(self, assignment_id: str) -> Optional[int]:
        with self._lock:
            sequences = [
                t.sequence for t in self._tasks.values()
                if t.assignment_id == assignment_id and t.sequence is not None
            ]
            return max(sequences) if sequences else None

    def save_task(self, task: Task) -> Task:
        """
        Store a copy of ``task`` and return a copy of what was stored.

        Raises:
            ConcurrentModification: If the stored version differs from
                ``task.version``
        """
        with self._lock:
            _check_version("Task", task.task_id, task.version, self._tasks.get(task.task_id))
            stored = copy.deepcopy(task)
            stored.version = task.version + 1
            self._tasks[task.task_id] = stored
            return copy.deepcopy(stored)

    def save_tasks(self, tasks: Iterable[Task]) -> List[Task]:
        """
        Store a batch of tasks all-or-nothing.

        Every version is checked before anything is written, so a renumbering
        never lands half-applied.

        Raises:
            ConcurrentModification: If any task in the batch is stale
        """
        tasks = list(tasks)
        with self._lock:
            for task in tasks:
                _check_version("Task", task.task_id, task.version, self._tasks.get(task.task_id))
            return [self.save_task(task) for task in tasks]

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            self._tasks.pop(task_id, None)
