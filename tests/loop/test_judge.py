"""
Unit tests for the progress judge.

Tests:
1. Completion and stall phrases
2. Requirement keyword coverage
3. Repeated-failure stall detection
4. LoopJudge against a workspace
"""

import os
import shutil
import sys
import tempfile
import unittest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "src"))

from rehoboam.loop.judge import (
    JudgeDecision,
    LoopJudge,
    is_stalled,
    judge_progress,
    requirement_keywords,
)
from rehoboam.loop.models import LoopConfig
from rehoboam.loop.workspace import ANCHOR_FILE, PROGRESS_FILE, init_workspace

ANCHOR = """# Task

- Implement pagination endpoint
- Document pagination parameters
- Benchmark queries
"""


class TestJudgeProgress(unittest.TestCase):
    """Test judge_progress heuristics."""

    def test_completion_phrase(self):
        verdict = judge_progress(ANCHOR, "Refactor finished. All Tests Pass now.")
        self.assertEqual(verdict.decision, JudgeDecision.COMPLETE)
        self.assertEqual(verdict.confidence, 0.8)
        self.assertIn("all tests pass", verdict.explanation)

    def test_stall_phrase(self):
        verdict = judge_progress(ANCHOR, "Stuck on the flaky integration test.")
        self.assertEqual(verdict.decision, JudgeDecision.STALLED)
        self.assertEqual(verdict.confidence, 0.7)

    def test_completion_wins_over_stall(self):
        """Test a completion phrase is checked before stall phrases."""
        verdict = judge_progress(ANCHOR, "Was blocked by CI, but the work is complete.")
        self.assertEqual(verdict.decision, JudgeDecision.COMPLETE)

    def test_continue(self):
        verdict = judge_progress(ANCHOR, "Added the first endpoint.")
        self.assertEqual(verdict.decision, JudgeDecision.CONTINUE)
        self.assertEqual(verdict.to_dict()["decision"], "continue")

    def test_keywords(self):
        """Test keywords come from list items and skip short words."""
        self.assertEqual(
            requirement_keywords(ANCHOR),
            ["implement", "pagination", "endpoint", "document", "pagination", "parameters", "benchmark", "queries"],
        )
        self.assertEqual(requirement_keywords("No list here"), [])

    def test_coverage_needs_long_progress(self):
        """Test keyword coverage only counts for substantial progress notes."""
        short = "implement pagination endpoint document parameters benchmark queries"
        self.assertEqual(judge_progress(ANCHOR, short).decision, JudgeDecision.CONTINUE)

        long = short + " " + " ".join(["filler"] * 200)
        verdict = judge_progress(ANCHOR, long)
        self.assertEqual(verdict.decision, JudgeDecision.COMPLETE)
        self.assertIn("100%", verdict.explanation)


class TestIsStalled(unittest.TestCase):
    """Test repeated-failure detection."""

    def test_too_few(self):
        self.assertFalse(is_stalled(["boom"] * 4))

    def test_same_failure(self):
        self.assertTrue(is_stalled(["other", "boom", "boom", "boom", "boom", "boom"]))

    def test_clean_iterations(self):
        """Test clean iterations never count as a stall."""
        self.assertFalse(is_stalled([None] * 6))
        self.assertFalse(is_stalled(["boom", "boom", None, "boom", "boom", "boom"]))

    def test_different_failures(self):
        self.assertFalse(is_stalled(["a", "a", "a", "a", "b"]))


class TestLoopJudge(unittest.TestCase):
    """Test judging a workspace."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.workspace = init_workspace(self.temp_dir, "Add pagination", LoopConfig())

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_reads_workspace(self):
        self.workspace.overwrite(PROGRESS_FILE, "Need clarification on page size")
        with self.assertLogs("rehoboam.loop.judge", level="WARNING"):
            verdict = LoopJudge(self.workspace).evaluate()
        self.assertEqual(verdict.decision, JudgeDecision.STALLED)

    def test_missing_files(self):
        """Test missing anchor and progress judge as continue."""
        self.workspace.file_path(ANCHOR_FILE).unlink()
        self.workspace.file_path(PROGRESS_FILE).unlink()
        self.assertEqual(LoopJudge(self.workspace).evaluate().decision, JudgeDecision.CONTINUE)


if __name__ == "__main__":
    unittest.main()
