"""
Tests for the task and assignment state machines.
"""

import unittest
from datetime import datetime

from sequencer import lifecycle
from sequencer.exceptions import InvalidState, InvalidTransition
from sequencer.models import Assignment, AssignmentStatus, TaskStatus

from tests.fixtures import BASE_TIME, TaskFixtures, at


ALLOWED_TASK_EDGES = {
    (TaskStatus.PENDING, TaskStatus.IN_PROGRESS),
    (TaskStatus.PENDING, TaskStatus.CANCELLED),
    (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
    (TaskStatus.IN_PROGRESS, TaskStatus.FAILED),
    (TaskStatus.IN_PROGRESS, TaskStatus.DELAYED),
    (TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED),
    (TaskStatus.IN_PROGRESS, TaskStatus.ARRIVED),
    (TaskStatus.ARRIVED, TaskStatus.COMPLETED),
    (TaskStatus.ARRIVED, TaskStatus.FAILED),
    (TaskStatus.ARRIVED, TaskStatus.CANCELLED),
    (TaskStatus.DELAYED, TaskStatus.IN_PROGRESS),
    (TaskStatus.DELAYED, TaskStatus.FAILED),
    (TaskStatus.DELAYED, TaskStatus.CANCELLED),
}


class TestTaskTransitions(unittest.TestCase):

    def test_table_matches_every_pair(self):
        for current in TaskStatus:
            for requested in TaskStatus:
                with self.subTest(current=current, requested=requested):
                    expected = (current, requested) in ALLOWED_TASK_EDGES
                    self.assertEqual(lifecycle.can_transition(current, requested), expected)

    def test_terminal_states_have_no_exits(self):
        for status in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED):
            task = TaskFixtures.task("T1", status=status)
            for requested in TaskStatus:
                with self.subTest(status=status, requested=requested):
                    with self.assertRaises(InvalidTransition):
                        lifecycle.transition_task(task, requested, BASE_TIME)
            self.assertEqual(task.status, status)

    def test_same_state_is_rejected(self):
        task = TaskFixtures.task("T1", status=TaskStatus.IN_PROGRESS)
        with self.assertRaises(InvalidTransition) as ctx:
            lifecycle.transition_task(task, TaskStatus.IN_PROGRESS, BASE_TIME)
        self.assertIn("IN_PROGRESS", str(ctx.exception))

    def test_missing_status_counts_as_pending(self):
        task = TaskFixtures.task("T1")
        task.status = None
        lifecycle.transition_task(task, TaskStatus.IN_PROGRESS, BASE_TIME)
        self.assertEqual(task.status, TaskStatus.IN_PROGRESS)

    def test_start_stamps_started_at(self):
        task = TaskFixtures.task("T1")
        lifecycle.transition_task(task, TaskStatus.IN_PROGRESS, at(5))
        self.assertEqual(task.started_at, at(5))
        self.assertEqual(task.updated_at, at(5))

    def test_complete_derives_actual_duration_from_schedule(self):
        task = TaskFixtures.task("T1", status=TaskStatus.IN_PROGRESS)
        task.scheduled_time = datetime(2025, 1, 15, 16, 0)
        finished = datetime(2025, 1, 15, 17, 30, 59)

        lifecycle.transition_task(task, TaskStatus.COMPLETED, finished)

        self.assertEqual(task.completed_at, finished)
        self.assertEqual(task.actual_duration_minutes, 90)

    def test_complete_without_schedule_leaves_duration_unset(self):
        task = TaskFixtures.task("T1", status=TaskStatus.ARRIVED)
        lifecycle.transition_task(task, TaskStatus.COMPLETED, BASE_TIME)
        self.assertIsNone(task.actual_duration_minutes)

    def test_fail_appends_reason_to_notes(self):
        task = TaskFixtures.task("T1", status=TaskStatus.IN_PROGRESS)
        task.notes = "Ring twice"

        lifecycle.transition_task(task, TaskStatus.FAILED, at(3), reason="Customer absent")

        self.assertEqual(task.failed_at, at(3))
        self.assertEqual(task.notes, "Ring twice\nFailure reason: Customer absent")

    def test_fail_without_reason_adds_no_note(self):
        task = TaskFixtures.task("T1", status=TaskStatus.IN_PROGRESS)
        lifecycle.transition_task(task, TaskStatus.FAILED, at(3))
        self.assertIsNone(task.notes)

        task = TaskFixtures.task("T2", status=TaskStatus.ARRIVED)
        task.notes = "Ring twice"
        lifecycle.transition_task(task, TaskStatus.FAILED, at(3))
        self.assertEqual(task.notes, "Ring twice")


class TestTaskWrappers(unittest.TestCase):

    def test_complete_from_each_completable_state(self):
        for status in (TaskStatus.IN_PROGRESS, TaskStatus.ARRIVED, TaskStatus.DELAYED):
            with self.subTest(status=status):
                task = TaskFixtures.task("T1", status=status)
                lifecycle.complete_task(task, BASE_TIME)
                self.assertEqual(task.status, TaskStatus.COMPLETED)
                self.assertEqual(task.completed_at, BASE_TIME)

    def test_complete_refuses_other_states(self):
        for status in (TaskStatus.PENDING, TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED):
            with self.subTest(status=status):
                task = TaskFixtures.task("T1", status=status)
                with self.assertRaises(InvalidState):
                    lifecycle.complete_task(task, BASE_TIME)
                self.assertEqual(task.status, status)

    def test_fail_follows_table(self):
        self.assertEqual(
            lifecycle.FAILABLE_STATUSES,
            {TaskStatus.IN_PROGRESS, TaskStatus.ARRIVED, TaskStatus.DELAYED},
        )
        pending = TaskFixtures.task("T1")
        with self.assertRaises(InvalidState):
            lifecycle.fail_task(pending, BASE_TIME, "No answer")
        self.assertIsNone(pending.notes)

        delayed = TaskFixtures.task("T2", status=TaskStatus.DELAYED)
        lifecycle.fail_task(delayed, BASE_TIME, "Road closed")
        self.assertEqual(delayed.status, TaskStatus.FAILED)
        self.assertEqual(delayed.notes, "Failure reason: Road closed")

    def test_ensure_deletable(self):
        for status in TaskStatus:
            with self.subTest(status=status):
                task = TaskFixtures.task("T1", status=status)
                if status in (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED):
                    with self.assertRaises(InvalidState):
                        lifecycle.ensure_deletable(task)
                else:
                    lifecycle.ensure_deletable(task)


class TestAssignmentTransitions(unittest.TestCase):

    def setUp(self):
        self.assignment = Assignment(assignment_id="AS-1", courier_id="C-9")

    def test_happy_path(self):
        a = self.assignment
        lifecycle.transition_assignment(a, AssignmentStatus.ASSIGNED, at(0))
        lifecycle.transition_assignment(a, AssignmentStatus.ACCEPTED, at(1))
        lifecycle.transition_assignment(a, AssignmentStatus.IN_PROGRESS, at(2))
        lifecycle.transition_assignment(a, AssignmentStatus.DELAYED, at(3))
        lifecycle.transition_assignment(a, AssignmentStatus.IN_PROGRESS, at(4))
        lifecycle.transition_assignment(a, AssignmentStatus.COMPLETED, at(5))

        self.assertEqual(a.status, AssignmentStatus.COMPLETED)
        self.assertEqual(a.assigned_at, at(0))
        # The first start is kept across a delay.
        self.assertEqual(a.actual_start_time, at(2))
        self.assertEqual(a.actual_end_time, at(5))
        self.assertEqual(a.updated_at, at(5))

    def test_assign_requires_courier(self):
        a = Assignment(assignment_id="AS-2")
        with self.assertRaises(InvalidState):
            lifecycle.transition_assignment(a, AssignmentStatus.ASSIGNED, BASE_TIME)
        self.assertEqual(a.status, AssignmentStatus.CREATED)
        self.assertIsNone(a.assigned_at)

    def test_reject_records_reason_and_end(self):
        a = self.assignment
        lifecycle.transition_assignment(a, AssignmentStatus.ASSIGNED, at(0))
        lifecycle.transition_assignment(a, AssignmentStatus.REJECTED, at(7), reason="Vehicle breakdown")

        self.assertEqual(a.notes, "Rejection reason: Vehicle breakdown")
        self.assertEqual(a.actual_end_time, at(7))
        self.assertFalse(a.is_active)

    def test_reject_without_reason_adds_no_note(self):
        a = self.assignment
        lifecycle.transition_assignment(a, AssignmentStatus.ASSIGNED, at(0))
        lifecycle.transition_assignment(a, AssignmentStatus.REJECTED, at(2))

        self.assertIsNone(a.notes)
        self.assertEqual(a.actual_end_time, at(2))

    def test_illegal_edges(self):
        a = self.assignment
        for requested in (AssignmentStatus.ACCEPTED, AssignmentStatus.IN_PROGRESS, AssignmentStatus.COMPLETED):
            with self.subTest(requested=requested):
                with self.assertRaises(InvalidTransition):
                    lifecycle.transition_assignment(a, requested, BASE_TIME)

        lifecycle.transition_assignment(a, AssignmentStatus.CANCELLED, BASE_TIME)
        for requested in AssignmentStatus:
            with self.subTest(terminal=requested):
                with self.assertRaises(InvalidTransition):
                    lifecycle.transition_assignment(a, requested, BASE_TIME)


if __name__ == "__main__":
    unittest.main()
