# courier-task-sequencer/sequencer/dataset.py
"""
CSV loading for the CLI and dashboard.

One row per task; assignments are derived from the ``assignment_id`` and
``courier_id`` columns. Time columns accept either a full timestamp
('2025-01-15 18:07:00') or a time of day ('18:07'), which is placed on
``service_date``.
"""

from __future__ import annotations

import csv
import os
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from . import config, utils
from .models import Assignment, GeoPoint, Task, TaskStatus, TaskType
from .repository import InMemoryTaskRepository
from .service import validate_time_window

REQUIRED_COLUMNS = ("assignment_id", "task_id", "latitude", "longitude")


def parse_timestamp(value: Optional[str], service_date: date) -> Optional[datetime]:
    """
    Parse a CSV time cell.

    Returns None for blank cells.

    Raises:
        ValueError: If the cell is not a recognised time format
    """
    value = (value or "").strip()
    if not value:
        return None
    if " " in value:
        # Full datetime format: '2025-01-15 18:07:00'
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M"):
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
        raise ValueError(f"Unrecognised timestamp: {value!r}")
    # Time-only format: '18:07' or '18:07:00'
    fmt = "%H:%M:%S" if value.count(":") == 2 else "%H:%M"
    return datetime.combine(service_date, datetime.strptime(value, fmt).time())


def _parse_location(row: Dict[str, str]) -> Optional[GeoPoint]:
    lat = (row.get("latitude") or "").strip()
    lng = (row.get("longitude") or "").strip()
    if not lat or not lng:
        return None
    return GeoPoint(float(lat), float(lng))


def _parse_task(row: Dict[str, str], service_date: date) -> Task:
    """Build a task from one row, with the same window and coordinate checks as create_task."""
    duration = (row.get("estimated_duration") or "").strip()
    status = (row.get("status") or "").strip().upper()
    task_type = (row.get("task_type") or "").strip().upper()
    task = Task(
        task_id=row["task_id"].strip(),
        assignment_id=row["assignment_id"].strip(),
        task_type=TaskType(task_type) if task_type else TaskType.DELIVERY,
        status=TaskStatus(status) if status else TaskStatus.PENDING,
        location=_parse_location(row),
        start_time_window=parse_timestamp(row.get("start_time_window"), service_date),
        end_time_window=parse_timestamp(row.get("end_time_window"), service_date),
        estimated_duration=int(duration) if duration else config.AVERAGE_SERVICE_TIME_MINS,
        address=(row.get("address") or "").strip() or None,
    )
    validate_time_window(task)
    utils.validate_location(task.location)
    return task


def load_dataset(
    path: str,
    service_date: Optional[date] = None,
) -> Tuple[List[Assignment], List[Task]]:
    """
    Load assignments and tasks from a CSV file.

    Tasks are numbered 1..N per assignment in file order.

    Args:
        path: Path to the CSV file
        service_date: Day that time-only cells belong to (default: today)

    Returns:
        Tuple of (assignments, tasks)

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file format is invalid
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Task file not found: {path}")

    service_date = service_date or date.today()
    assignments: Dict[str, Assignment] = {}
    tasks: List[Task] = []
    next_sequence: Dict[str, int] = {}
    seen_ids: Dict[str, int] = {}

    with open(path, "r", newline="") as f:
        reader = csv.DictReader(f)
        missing = [c for c in REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"Invalid task data in {path}: missing columns {', '.join(missing)}")

        for line_no, row in enumerate(reader, start=2):
            try:
                task = _parse_task(row, service_date)
            except (KeyError, ValueError) as e:
                raise ValueError(f"Invalid task data in {path} line {line_no}: {e}")
            if task.task_id in seen_ids:
                raise ValueError(
                    f"Invalid task data in {path} line {line_no}: "
                    f"duplicate task_id {task.task_id} (first seen on line {seen_ids[task.task_id]})"
                )
            seen_ids[task.task_id] = line_no

            if task.assignment_id not in assignments:
                courier_id = (row.get("courier_id") or "").strip() or None
                assignments[task.assignment_id] = Assignment(
                    assignment_id=task.assignment_id,
                    courier_id=courier_id,
                )
            position = next_sequence.get(task.assignment_id, 0) + 1
            next_sequence[task.assignment_id] = position
            task.sequence = position
            tasks.append(task)

    return list(assignments.values()), tasks


def load_repository(path: str, service_date: Optional[date] = None) -> InMemoryTaskRepository:
    """Load a CSV dataset straight into an in-memory repository."""
    assignments, tasks = load_dataset(path, service_date)
    return InMemoryTaskRepository(assignments=assignments, tasks=tasks)
