# courier-task-sequencer/sequencer/sequencing.py
"""
Sequencing Engine for the Courier Task Sequencer.

This module orders a courier's stops and checks proposed orders.

1. **Construction**: Nearest-Neighbor with deadline urgency. From the current
   stop, any task whose time window opens within the next hour (and has not
   opened yet by the projected arrival) is visited first, earliest window
   first. Otherwise the courier goes to the nearest remaining stop.

2. **Validation**: A proposed order must be an exact permutation of the
   assignment's active tasks (no duplicates, no omissions, no strangers).

3. **Estimation**: Total straight-line distance, total travel + service time,
   and a single-pass time-window feasibility simulation.

The heuristic is O(n²) and does not guarantee feasibility. Callers that care
should run ``can_complete_within_time_windows`` on the result before
committing to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Sequence

from . import config, utils
from .exceptions import InvalidSequence
from .models import Assignment, Task

logger = logging.getLogger(__name__)


@dataclass
class ScheduledStop:
    """
    One step of a simulated run through an ordered task list.

    Attributes:
        task: The task being visited
        position: 1-based position in the simulated order
        travel_minutes: Travel time from the previous stop (0 for the first)
        arrival: When the courier reaches the stop
        service_start: When work starts (arrival, or the window opening)
        departure: service_start plus the task's estimated duration
        wait_minutes: Idle time spent waiting for the window to open
        late: True when arrival is strictly after the end of the window
    """
    task: Task
    position: int
    travel_minutes: int
    arrival: datetime
    service_start: datetime
    departure: datetime
    wait_minutes: int = 0
    late: bool = False


@dataclass
class SequenceSummary:
    """Travel metrics and feasibility for one ordered task list."""
    task_ids: List[str]
    distance_km: float
    travel_time_min: int
    feasible: bool
    unit: str = "km"
    time_unit: str = "minutes"

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "Stops": len(self.task_ids),
            "Distance": f"{self.distance_km:.2f} {self.unit}",
            "Travel Time": utils.format_time_duration(self.travel_time_min),
            "Feasible": "yes" if self.feasible else "no",
        }


# =============================================================================
# CONSTRUCTION HEURISTIC
# =============================================================================

def select_seed_task(tasks: Sequence[Task]) -> Task:
    """
    Pick the first stop: earliest window start, else the first task given.
    """
    windowed = [t for t in tasks if t.start_time_window is not None]
    if windowed:
        return min(windowed, key=lambda t: t.start_time_window)
    return tasks[0]


def find_urgent_tasks(
    current: Task,
    remaining: Sequence[Task],
    clock: datetime,
) -> List[Task]:
    """
    Tasks whose window opens soon enough that they should be visited next.

    A task is urgent when the projected arrival (clock + travel) is not after
    its window start and the gap is below ``config.URGENCY_WINDOW_MINS``.
    """
    urgent: List[Task] = []
    for task in remaining:
        window_start = task.start_time_window
        if window_start is None:
            continue
        arrival = utils.add_minutes(clock, utils.leg_travel_minutes(current, task))
        if arrival > window_start:
            continue
        if utils.minutes_between(arrival, window_start) < config.URGENCY_WINDOW_MINS:
            urgent.append(task)
    return urgent


def find_nearest_task(current: Task, remaining: Sequence[Task]) -> Task:
    """
    Nearest remaining task by Haversine distance.

    Unlocated tasks are infinitely far; ``min`` keeps the first of equal keys,
    so when nothing is located the first remaining task wins.
    """
    return min(remaining, key=lambda t: utils.task_distance(current, t))


def select_next_task(current: Task, remaining: Sequence[Task], clock: datetime) -> Task:
    """
    Choose the stop to visit after ``current``.

    Urgent tasks win (earliest window start, then nearest); otherwise the
    nearest remaining task.
    """
    if not remaining:
        raise ValueError("No remaining tasks to choose from")

    urgent = find_urgent_tasks(current, remaining, clock)
    if urgent:
        return min(
            urgent,
            key=lambda t: (t.start_time_window, utils.task_distance(current, t)),
        )
    return find_nearest_task(current, remaining)


def determine_optimal_sequence(
    tasks: Sequence[Task],
    now: Optional[datetime] = None,
    start_task: Optional[Task] = None,
) -> List[Task]:
    """
    Order a list of tasks with the deadline-aware Nearest-Neighbor heuristic.

    The function works on whatever it is given; filter out terminal tasks
    first (``SequencingEngine.determine_optimal_sequence_for_assignment`` does).

    Algorithm:
    1. Seed with ``start_task`` if given, else the earliest window start, else
       the first task.
    2. Keep a clock that starts at ``now`` and advances by each visited task's
       estimated duration.
    3. Repeatedly pick the next stop with ``select_next_task``.

    Args:
        tasks: Tasks to order (not modified)
        now: Reference time for urgency projection (default: datetime.now())
        start_task: Task to start from, e.g. the courier's current stop

    Returns:
        A new list holding a permutation of ``tasks``

    Raises:
        InvalidSequence: If ``start_task`` is not one of ``tasks``
    """
    remaining: List[Task] = list(tasks)
    if len(remaining) <= 1 and start_task is None:
        return remaining

    if start_task is not None:
        idx = _index_of(remaining, start_task)
        if idx is None:
            raise InvalidSequence(f"Start task {start_task.task_id} is not among the tasks to sequence")
        current = remaining.pop(idx)
    else:
        current = select_seed_task(remaining)
        remaining.pop(_index_of(remaining, current))

    ordered: List[Task] = [current]
    clock = utils.add_minutes(now or datetime.now(), current.duration_minutes)

    while remaining:
        nxt = select_next_task(current, remaining, clock)
        remaining.pop(_index_of(remaining, nxt))
        ordered.append(nxt)
        logger.debug(f"Next stop after {current.task_id}: {nxt.task_id} (clock {utils.hhmm(clock)})")
        current = nxt
        clock = utils.add_minutes(clock, current.duration_minutes)

    return ordered


def _index_of(tasks: Sequence[Task], target: Task) -> Optional[int]:
    # Identity first so equal-looking copies are never confused.
    for i, task in enumerate(tasks):
        if task is target:
            return i
    for i, task in enumerate(tasks):
        if task.task_id == target.task_id:
            return i
    return None


# =============================================================================
# VALIDATION
# =============================================================================

def is_valid_sequence(assignment: Optional[Assignment], ordered_tasks: Optional[Sequence[Task]]) -> bool:
    """
    Check that ``ordered_tasks`` is exactly a permutation of the active tasks.

    Every task must belong to the assignment, and the ids must match the
    active set one-to-one: duplicates and omissions both invalidate.
    """
    if assignment is None or ordered_tasks is None:
        return False

    for task in ordered_tasks:
        if task.assignment_id != assignment.assignment_id:
            return False

    active_ids = [t.task_id for t in assignment.active_tasks]
    sequence_ids = [t.task_id for t in ordered_tasks]

    if len(active_ids) != len(sequence_ids):
        return False
    if len(set(sequence_ids)) != len(sequence_ids):
        return False
    return set(sequence_ids) == set(active_ids)


# =============================================================================
# ESTIMATION
# =============================================================================

def estimate_distance(tasks: Sequence[Task]) -> float:
    """Sum of the straight-line legs between consecutive tasks, in km."""
    if len(tasks) <= 1:
        return 0.0
    return sum(utils.leg_distance(a, b) for a, b in zip(tasks, tasks[1:]))


def estimate_travel_time(tasks: Sequence[Task]) -> int:
    """
    Total minutes to work through the tasks in order.

    Each leg is rounded up to whole minutes on its own; every task's
    estimated duration is added on top.
    """
    if len(tasks) <= 1:
        return 0
    travel = sum(utils.leg_travel_minutes(a, b) for a, b in zip(tasks, tasks[1:]))
    service = sum(t.duration_minutes for t in tasks)
    return travel + service


def simulate_run(tasks: Sequence[Task], start_time: datetime) -> Iterator[ScheduledStop]:
    """
    Walk the tasks in order, yielding one ScheduledStop per task.

    The courier is at the first task at ``start_time``. Later tasks add the
    travel time from the previous one. Arriving before a window opens means
    waiting for it; arriving after it closes marks the stop late but the walk
    continues.
    """
    clock = start_time
    previous: Optional[Task] = None

    for position, task in enumerate(tasks, start=1):
        travel = utils.leg_travel_minutes(previous, task) if previous is not None else 0
        arrival = utils.add_minutes(clock, travel)
        late = task.end_time_window is not None and arrival > task.end_time_window

        service_start = arrival
        if task.start_time_window is not None and arrival < task.start_time_window:
            service_start = task.start_time_window

        departure = utils.add_minutes(service_start, task.duration_minutes)
        yield ScheduledStop(
            task=task,
            position=position,
            travel_minutes=travel,
            arrival=arrival,
            service_start=service_start,
            departure=departure,
            wait_minutes=utils.minutes_between(arrival, service_start),
            late=late,
        )
        clock = departure
        previous = task


def estimate_schedule(tasks: Sequence[Task], start_time: datetime) -> List[ScheduledStop]:
    """Full simulated schedule for an ordered task list."""
    return list(simulate_run(tasks, start_time))


def can_complete_within_time_windows(tasks: Sequence[Task], start_time: datetime) -> bool:
    """
    Whether every task can be reached no later than its window end.

    Arriving exactly at the end of a window still counts as on time.
    """
    for stop in simulate_run(tasks, start_time):
        if stop.late:
            return False
    return True


# =============================================================================
# ENGINE
# =============================================================================

class SequencingEngine:
    """
    Builds, validates and applies visiting orders for courier assignments.

    The engine holds no state besides its clock; every call works on the
    tasks it is handed. Persisting the result is the caller's job.

    Attributes:
        now: Callable returning the current time, used to seed the urgency
            projection. Inject a fixed clock for reproducible orders.
    """

    def __init__(self, now: Optional[Callable[[], datetime]] = None) -> None:
        self.now: Callable[[], datetime] = now or datetime.now

    def determine_optimal_sequence(
        self,
        tasks: Sequence[Task],
        start_task: Optional[Task] = None,
    ) -> List[Task]:
        """Order ``tasks`` as given (see module-level ``determine_optimal_sequence``)."""
        if not tasks:
            return []
        logger.info(f"Determining optimal sequence for {len(tasks)} tasks")
        return determine_optimal_sequence(tasks, now=self.now(), start_task=start_task)

    def determine_optimal_sequence_for_assignment(
        self,
        assignment: Assignment,
        start_task: Optional[Task] = None,
    ) -> List[Task]:
        """Order the assignment's active tasks, ignoring COMPLETED and CANCELLED ones."""
        if assignment is None:
            raise ValueError("Assignment cannot be None")
        return self.determine_optimal_sequence(assignment.active_tasks, start_task=start_task)

    def is_valid_sequence(self, assignment: Assignment, ordered_tasks: Sequence[Task]) -> bool:
        return is_valid_sequence(assignment, ordered_tasks)

    def apply_sequence(self, assignment: Assignment, ordered_tasks: Sequence[Task]) -> Assignment:
        """
        Number ``ordered_tasks`` 1..N in list order.

        Both the given task objects and the matching entries of
        ``assignment.tasks`` are updated. Terminal tasks keep their numbers.

        Raises:
            InvalidSequence: If the order is not a permutation of the active
                tasks. Nothing is modified in that case.
        """
        if assignment is None:
            raise ValueError("Assignment cannot be None")
        if not is_valid_sequence(assignment, ordered_tasks):
            raise InvalidSequence(
                f"Invalid task sequence for assignment {assignment.assignment_id}: "
                "must contain every active task exactly once"
            )

        logger.info(f"Applying new sequence to assignment {assignment.assignment_id}")
        positions = {task.task_id: i for i, task in enumerate(ordered_tasks, start=1)}
        for task in ordered_tasks:
            task.sequence = positions[task.task_id]
        for task in assignment.tasks:
            if task.task_id in positions:
                task.sequence = positions[task.task_id]

        assignment.tasks.sort(key=lambda t: t.sequence if t.sequence is not None else 0)
        return assignment

    def estimate_travel_time(self, tasks: Sequence[Task]) -> int:
        return estimate_travel_time(tasks)

    def estimate_distance(self, tasks: Sequence[Task]) -> float:
        return estimate_distance(tasks)

    def can_complete_within_time_windows(
        self,
        tasks: Sequence[Task],
        start_time: Optional[datetime] = None,
    ) -> bool:
        """Feasibility check; ``start_time`` defaults to the engine clock."""
        feasible = can_complete_within_time_windows(tasks, start_time or self.now())
        if not feasible:
            logger.warning(f"Sequence of {len(tasks)} tasks misses at least one time window")
        return feasible

    def estimate_schedule(
        self,
        tasks: Sequence[Task],
        start_time: Optional[datetime] = None,
    ) -> List[ScheduledStop]:
        return estimate_schedule(tasks, start_time or self.now())

    def summarize(
        self,
        tasks: Sequence[Task],
        start_time: Optional[datetime] = None,
    ) -> SequenceSummary:
        """Distance, time and feasibility of an ordered task list."""
        return SequenceSummary(
            task_ids=[t.task_id for t in tasks],
            distance_km=self.estimate_distance(tasks),
            travel_time_min=self.estimate_travel_time(tasks),
            feasible=self.can_complete_within_time_windows(tasks, start_time),
        )
