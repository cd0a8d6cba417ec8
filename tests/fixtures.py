"""
Shared builders for the test suite.

All times hang off a fixed BASE_TIME so nothing depends on the wall clock.
Coordinates sit on the equator where 0.1 degree of longitude is ~11.12 km,
i.e. 23 minutes of travel at 30 km/h.
"""

from datetime import datetime, timedelta
from typing import Optional

from sequencer.models import Assignment, GeoPoint, Task, TaskStatus, TaskType
from sequencer.repository import InMemoryTaskRepository
from sequencer.sequencing import SequencingEngine
from sequencer.service import AssignmentTaskService

BASE_TIME = datetime(2025, 1, 15, 17, 0)


def at(minutes: int) -> datetime:
    """BASE_TIME plus a number of minutes."""
    return BASE_TIME + timedelta(minutes=minutes)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int) -> None:
        self.now = self.now + timedelta(minutes=minutes)


class TaskFixtures:
    """Builders for tasks, assignments and wired-up services."""

    @staticmethod
    def task(
        task_id: str,
        lng: Optional[float] = 0.0,
        lat: float = 0.0,
        assignment_id: str = "AS-1",
        status: TaskStatus = TaskStatus.PENDING,
        window_start: Optional[int] = None,
        window_end: Optional[int] = None,
        duration: Optional[int] = None,
        sequence: Optional[int] = None,
        task_type: TaskType = TaskType.DELIVERY,
    ) -> Task:
        """A task at (lat, lng); window offsets are minutes after BASE_TIME."""
        return Task(
            task_id=task_id,
            assignment_id=assignment_id,
            task_type=task_type,
            status=status,
            location=GeoPoint(lat, lng) if lng is not None else None,
            start_time_window=at(window_start) if window_start is not None else None,
            end_time_window=at(window_end) if window_end is not None else None,
            estimated_duration=duration,
            sequence=sequence,
        )

    @staticmethod
    def assignment(assignment_id: str = "AS-1", *tasks: Task, courier_id: Optional[str] = "C-1") -> Assignment:
        return Assignment(assignment_id=assignment_id, courier_id=courier_id, tasks=list(tasks))

    @staticmethod
    def service(*tasks: Task, assignment_ids=("AS-1",), clock: Optional[FixedClock] = None) -> AssignmentTaskService:
        """Service over an in-memory repository holding ``tasks``."""
        clock = clock or FixedClock()
        repository = InMemoryTaskRepository(
            assignments=[Assignment(assignment_id=a_id, courier_id="C-1") for a_id in assignment_ids],
            tasks=tasks,
        )
        return AssignmentTaskService(repository, engine=SequencingEngine(now=clock), clock=clock)

    @staticmethod
    def line_of_tasks(count: int, assignment_id: str = "AS-1", step: float = 0.1):
        """``count`` pending tasks spaced ``step`` degrees apart, numbered 1..count."""
        return [
            TaskFixtures.task(f"T{i}", lng=step * (i - 1), assignment_id=assignment_id, sequence=i)
            for i in range(1, count + 1)
        ]
