"""
Tests for the command-line entry point.
"""

import io
import os
import unittest
from contextlib import redirect_stdout
from unittest import mock

import main
from sequencer.exceptions import InvalidSequence

SAMPLE = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data", "sample_tasks.csv")


def run(*args):
    out = io.StringIO()
    with redirect_stdout(out):
        code = main.main(list(args))
    return code, out.getvalue()


class TestMain(unittest.TestCase):

    def test_sequences_every_assignment(self):
        code, out = run("--dataset", SAMPLE, "--start-time", "17:00")

        self.assertEqual(code, 0)
        self.assertIn("Loaded 12 tasks in 2 assignments", out)
        self.assertIn("ASSIGNMENT AS-1001", out)
        self.assertIn("ASSIGNMENT AS-1002", out)
        self.assertIn("Optimized", out)
        self.assertNotIn("Applied:", out)

    def test_single_assignment_with_apply(self):
        code, out = run("--dataset", SAMPLE, "-a", "AS-1002", "-t", "17:00", "--apply")

        self.assertEqual(code, 0)
        self.assertNotIn("ASSIGNMENT AS-1001", out)
        self.assertIn("Applied: 1:", out)

    def test_list_assignments(self):
        code, out = run("--dataset", SAMPLE, "--list-assignments")

        self.assertEqual(code, 0)
        self.assertIn("AS-1001", out)
        self.assertIn("active=6", out)

    def test_missing_dataset(self):
        code, out = run("--dataset", "does/not/exist.csv")
        self.assertEqual(code, 1)
        self.assertIn("Task file not found", out)

    def test_unknown_assignment(self):
        code, out = run("--dataset", SAMPLE, "--assignment", "AS-9999")
        self.assertEqual(code, 1)
        self.assertIn("Unknown assignment 'AS-9999'", out)

    def test_bad_start_time(self):
        code, out = run("--dataset", SAMPLE, "--start-time", "teatime")
        self.assertEqual(code, 1)
        self.assertIn("Invalid --start-time", out)

    def test_sequencing_error_exit_code(self):
        with mock.patch.object(
            main.AssignmentTaskService,
            "preview_optimal_sequence",
            side_effect=InvalidSequence("boom"),
        ):
            code, out = run("--dataset", SAMPLE, "-t", "17:00")
        self.assertEqual(code, 2)
        self.assertIn("Sequencing failed: boom", out)


if __name__ == "__main__":
    unittest.main()
