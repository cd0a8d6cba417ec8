"""
Tests for the in-memory repository.
"""

import unittest

from sequencer.exceptions import ConcurrentModification
from sequencer.models import Assignment, TaskStatus
from sequencer.repository import InMemoryTaskRepository

from tests.fixtures import TaskFixtures


class TestInMemoryTaskRepository(unittest.TestCase):

    def setUp(self):
        self.repo = InMemoryTaskRepository(
            assignments=[Assignment(assignment_id="AS-1", courier_id="C-1"), Assignment(assignment_id="AS-2")],
            tasks=[
                TaskFixtures.task("T3", sequence=3),
                TaskFixtures.task("T1", sequence=1),
                TaskFixtures.task("T2", sequence=2),
                TaskFixtures.task("U1", assignment_id="AS-2", sequence=1),
            ],
        )

    def test_len_counts_tasks(self):
        self.assertEqual(len(self.repo), 4)

    def test_assignment_tasks_view_is_ordered(self):
        assignment = self.repo.find_assignment_by_id("AS-1")
        self.assertEqual([t.task_id for t in assignment.tasks], ["T1", "T2", "T3"])
        self.assertIsNone(self.repo.find_assignment_by_id("AS-9"))

    def test_reads_return_copies(self):
        task = self.repo.find_task_by_id("T1")
        task.status = TaskStatus.CANCELLED
        self.assertEqual(self.repo.find_task_by_id("T1").status, TaskStatus.PENDING)

        assignment = self.repo.find_assignment_by_id("AS-1")
        assignment.tasks[0].sequence = 99
        self.assertEqual(self.repo.find_task_by_id("T1").sequence, 1)

    def test_writes_store_copies(self):
        task = TaskFixtures.task("T4", sequence=4)
        self.repo.save_task(task)
        task.sequence = 40
        self.assertEqual(self.repo.find_task_by_id("T4").sequence, 4)

    def test_saving_assignment_does_not_write_tasks(self):
        assignment = self.repo.find_assignment_by_id("AS-1")
        assignment.tasks[0].status = TaskStatus.CANCELLED
        assignment.tasks.pop()
        assignment.courier_id = "C-2"

        saved = self.repo.save_assignment(assignment)

        self.assertEqual(saved.courier_id, "C-2")
        self.assertEqual(len(saved.tasks), 3)
        self.assertEqual(self.repo.find_task_by_id("T1").status, TaskStatus.PENDING)

    def test_unsequenced_tasks_sort_last(self):
        self.repo.save_task(TaskFixtures.task("T0"))
        tasks = self.repo.find_tasks_by_assignment("AS-1")
        self.assertEqual([t.task_id for t in tasks], ["T1", "T2", "T3", "T0"])

    def test_max_sequence(self):
        self.assertEqual(self.repo.max_sequence_number_in_assignment("AS-1"), 3)
        self.assertEqual(self.repo.max_sequence_number_in_assignment("AS-2"), 1)
        self.assertIsNone(self.repo.max_sequence_number_in_assignment("AS-9"))

    def test_delete_task(self):
        self.repo.delete_task("T2")
        self.repo.delete_task("missing")
        self.assertIsNone(self.repo.find_task_by_id("T2"))
        self.assertEqual(len(self.repo), 3)

    def test_delete_assignment_cascades(self):
        self.repo.delete_assignment("AS-1")
        self.assertIsNone(self.repo.find_assignment_by_id("AS-1"))
        self.assertEqual([t.task_id for t in self.repo.find_all_tasks()], ["U1"])
        self.assertEqual([a.assignment_id for a in self.repo.find_all_assignments()], ["AS-2"])

    def test_save_bumps_version(self):
        task = self.repo.find_task_by_id("T1")
        self.assertEqual(task.version, 1)

        task.sequence = 7
        saved = self.repo.save_task(task)

        self.assertEqual(saved.version, 2)
        self.assertEqual(task.version, 1)
        self.assertEqual(self.repo.find_task_by_id("T1").version, 2)

    def test_stale_task_save_is_rejected(self):
        first = self.repo.find_task_by_id("T1")
        second = self.repo.find_task_by_id("T1")

        first.status = TaskStatus.COMPLETED
        self.repo.save_task(first)
        second.status = TaskStatus.FAILED
        with self.assertRaises(ConcurrentModification) as ctx:
            self.repo.save_task(second)

        self.assertEqual(ctx.exception.expected, 1)
        self.assertEqual(ctx.exception.found, 2)
        self.assertEqual(self.repo.find_task_by_id("T1").status, TaskStatus.COMPLETED)

    def test_new_task_cannot_overwrite_existing_id(self):
        with self.assertRaises(ConcurrentModification):
            self.repo.save_task(TaskFixtures.task("T1", status=TaskStatus.CANCELLED))
        self.assertEqual(self.repo.find_task_by_id("T1").status, TaskStatus.PENDING)

    def test_save_after_delete_is_rejected(self):
        task = self.repo.find_task_by_id("T2")
        self.repo.delete_task("T2")

        with self.assertRaises(ConcurrentModification) as ctx:
            self.repo.save_task(task)

        self.assertIsNone(ctx.exception.found)
        self.assertIsNone(self.repo.find_task_by_id("T2"))

    def test_batch_save_is_all_or_nothing(self):
        t1, t2 = self.repo.find_task_by_id("T1"), self.repo.find_task_by_id("T2")
        other = self.repo.find_task_by_id("T2")
        other.status = TaskStatus.CANCELLED
        self.repo.save_task(other)

        t1.sequence, t2.sequence = 2, 1
        with self.assertRaises(ConcurrentModification):
            self.repo.save_tasks([t1, t2])

        self.assertEqual(self.repo.find_task_by_id("T1").sequence, 1)
        self.assertEqual(self.repo.find_task_by_id("T1").version, 1)

    def test_batch_save_bumps_every_task(self):
        tasks = self.repo.find_tasks_by_assignment("AS-1")
        saved = self.repo.save_tasks(tasks)
        self.assertEqual([t.version for t in saved], [2, 2, 2])

    def test_stale_assignment_save_is_rejected(self):
        first = self.repo.find_assignment_by_id("AS-1")
        second = self.repo.find_assignment_by_id("AS-1")

        first.courier_id = "C-2"
        self.assertEqual(self.repo.save_assignment(first).version, 2)
        second.courier_id = "C-3"
        with self.assertRaises(ConcurrentModification):
            self.repo.save_assignment(second)

        self.assertEqual(self.repo.find_assignment_by_id("AS-1").courier_id, "C-2")


if __name__ == "__main__":
    unittest.main()
