#!/usr/bin/env python3
# courier-task-sequencer/main.py
"""
Command-Line Interface for the Courier Task Sequencer.

Loads a task dataset into an in-memory repository, computes the optimal
visiting order for each assignment, and compares it with the current order.

Usage:
    python main.py                                  # All assignments in the sample dataset
    python main.py --assignment AS-1001             # One assignment
    python main.py --start-time 17:05 --apply       # Persist the optimized order
    python main.py --verbose                        # Show sequencing decisions

Exit Codes:
    0: Success
    1: Data loading error
    2: Sequencing error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date, datetime
from typing import Dict, List, Optional, Any

# Ensure the sequencer package is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sequencer import config, utils
from sequencer.dataset import load_repository, parse_timestamp
from sequencer.exceptions import SequencingError
from sequencer.models import Task
from sequencer.repository import InMemoryTaskRepository
from sequencer.sequencing import SequencingEngine
from sequencer.service import AssignmentTaskService, summarize_assignment

logger = logging.getLogger("sequencer.cli")


def print_header() -> None:
    """Print the CLI header."""
    print("\n" + "=" * 60)
    print("  COURIER TASK SEQUENCER")
    print("  Nearest-Neighbor Sequencing with Deadline Urgency")
    print("=" * 60 + "\n")


def print_schedule(service: AssignmentTaskService, tasks: List[Task], start_time: datetime) -> None:
    """Print one line per stop with arrival and window information."""
    print(f"  {'#':>2}  {'Task':<8} {'Type':<9} {'Arrive':>6} {'Start':>6} {'Window':<13} {'Note'}")
    for stop in service.engine.estimate_schedule(tasks, start_time):
        task = stop.task
        window = f"{utils.hhmm(task.start_time_window)}-{utils.hhmm(task.end_time_window)}"
        note = "LATE" if stop.late else (f"wait {stop.wait_minutes}m" if stop.wait_minutes else "")
        if task.location is None:
            note = (note + " no location").strip()
        print(
            f"  {stop.position:>2}  {task.task_id:<8} {task.task_type.value:<9} "
            f"{utils.hhmm(stop.arrival):>6} {utils.hhmm(stop.service_start):>6} {window:<13} {note}"
        )


def print_comparison(results: Dict[str, Dict[str, Any]]) -> None:
    """
    Print the current vs optimized metrics side by side.

    Args:
        results: Mapping of label ("current", "optimized") to summary dicts
    """
    labels = list(results.keys())
    metrics = ["Stops", "Distance", "Travel Time", "Feasible"]

    header = "  | Metric          |"
    for label in labels:
        header += f" {label.title():^13} |"
    print(header)

    separator = "  |" + "-" * 17 + "|"
    for _ in labels:
        separator += "-" * 15 + "|"
    print(separator)

    for metric in metrics:
        row = f"  | {metric:<15} |"
        for label in labels:
            row += f" {str(results[label].get(metric, 'N/A')):^13} |"
        print(row)


def load_service_safe(path: str, service_date: date, start_time: datetime) -> Optional[AssignmentTaskService]:
    """
    Load the dataset with graceful error handling.

    Returns:
        A service over an in-memory repository, or None on error
    """
    if not os.path.exists(path):
        print(f"ERROR: Task file not found: {path}")
        print("Please ensure the data/ directory contains the required CSV file.")
        return None

    try:
        repository: InMemoryTaskRepository = load_repository(path, service_date)
    except (ValueError, OSError) as e:
        print(f"ERROR: Failed to load data: {e}")
        return None

    # Urgency is projected from the run start, not the wall clock.
    service = AssignmentTaskService(repository, engine=SequencingEngine(now=lambda: start_time))
    print(f"Loaded {len(repository)} tasks in {len(service.get_assignments())} assignments from '{path}'")
    return service


def sequence_assignment(
    service: AssignmentTaskService,
    assignment_id: str,
    start_time: datetime,
    apply: bool,
) -> None:
    """Report (and optionally persist) the optimal order for one assignment."""
    assignment = service.get_assignment(assignment_id)
    current = assignment.active_tasks
    optimized = service.preview_optimal_sequence(assignment_id)

    print("\n" + "-" * 60)
    print(f"  ASSIGNMENT {assignment_id} (courier {assignment.courier_id or '-'})")
    counts = summarize_assignment(service, assignment_id)
    print("  " + ", ".join(f"{k}={v}" for k, v in counts.items() if v))
    print("-" * 60)

    print("\n  Optimized order:")
    print_schedule(service, optimized, start_time)

    print()
    print_comparison({
        "current": service.engine.summarize(current, start_time).to_dict(),
        "optimized": service.engine.summarize(optimized, start_time).to_dict(),
    })

    if apply:
        service.optimize_assignment(assignment_id)
        numbered = service.get_tasks_ordered_by_sequence(assignment_id)
        print("\n  Applied: " + " -> ".join(f"{t.sequence}:{t.task_id}" for t in numbered if t.is_active))


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Arguments to parse instead of sys.argv (used by tests)

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Courier Task Sequencer CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                  # Sequence every assignment
  python main.py --assignment AS-1002             # Only this assignment
  python main.py --start-time 17:00 --apply       # Apply the optimized order
  python main.py --list-assignments               # Show assignments and exit
        """
    )

    parser.add_argument(
        "--dataset", "-d",
        type=str,
        default=config.DEFAULT_DATASET,
        help=f"CSV file with tasks (default: {config.DEFAULT_DATASET})"
    )

    parser.add_argument(
        "--assignment", "-a",
        action="append",
        default=None,
        help="Assignment ID to sequence (repeatable, default: all)"
    )

    parser.add_argument(
        "--start-time", "-t",
        type=str,
        default=None,
        help="Start of the run as HH:MM (default: now)"
    )

    parser.add_argument(
        "--apply",
        action="store_true",
        help="Persist the optimized order to the in-memory store and print it"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show sequencing decisions (DEBUG logging)"
    )

    parser.add_argument(
        "--list-assignments",
        action="store_true",
        help="List assignments in the dataset and exit"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    today = date.today()
    try:
        start_time = parse_timestamp(args.start_time, today) if args.start_time else datetime.now()
    except ValueError as e:
        print(f"ERROR: Invalid --start-time: {e}")
        return 1

    print_header()

    service = load_service_safe(args.dataset, today, start_time)
    if service is None:
        return 1

    all_ids = [a.assignment_id for a in service.get_assignments()]

    if args.list_assignments:
        print("\nAvailable Assignments:")
        print("-" * 50)
        for assignment_id in all_ids:
            assignment = service.get_assignment(assignment_id)
            print(f"  {assignment_id:12} courier={assignment.courier_id or '-':8} "
                  f"tasks={len(assignment.tasks)} active={len(assignment.active_tasks)}")
        return 0

    assignment_ids = args.assignment or all_ids
    for assignment_id in assignment_ids:
        if assignment_id not in all_ids:
            print(f"ERROR: Unknown assignment '{assignment_id}'")
            print(f"Available assignments: {', '.join(all_ids)}")
            return 1

    print(f"Start time: {utils.hhmm(start_time)}")

    try:
        for assignment_id in assignment_ids:
            sequence_assignment(service, assignment_id, start_time, args.apply)
    except SequencingError as e:
        logger.error(f"Sequencing failed: {e}")
        print(f"ERROR: Sequencing failed: {e}")
        return 2

    print("\n" + "=" * 60 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
