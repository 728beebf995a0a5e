"""
Unit tests for git checkpoints.

Tests:
1. Checkpoint commits project changes and records the hash
2. Workspace directories are never committed
3. Nothing to commit and non-repository projects
"""

import os
import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "src"))

from rehoboam.loop.git_checkpoint import create_git_checkpoint, is_git_repository
from rehoboam.loop.models import LoopConfig
from rehoboam.loop.state_machine import LoopStateMachine
from rehoboam.loop.workspace import init_workspace


def git(cwd, *args):
    return subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    ).stdout.strip()


@unittest.skipUnless(shutil.which("git"), "git not installed")
class TestGitCheckpoint(unittest.TestCase):
    """Test per-iteration commits."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.project = Path(self.temp_dir)
        git(self.project, "init", "-q")
        git(self.project, "config", "user.email", "loop@example.com")
        git(self.project, "config", "user.name", "Loop Test")
        git(self.project, "config", "commit.gpgsign", "false")

        self.workspace = init_workspace(self.project, "Task", LoopConfig())
        self.machine = LoopStateMachine(self.workspace)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_is_git_repository(self):
        self.assertTrue(is_git_repository(self.project))

    def test_checkpoint_commits_changes(self):
        """Test a change is committed with the iteration in the message."""
        (self.project / "main.py").write_text("print('hi')\n")
        self.machine.increment_iteration()

        commit = create_git_checkpoint(self.machine)

        self.assertIsNotNone(commit)
        self.assertEqual(git(self.project, "rev-parse", "HEAD"), commit)
        self.assertEqual(git(self.project, "log", "-1", "--format=%s"), "rehoboam: iteration 1 checkpoint")
        self.assertEqual(self.workspace.load_state().last_commit, commit)

    def test_workspace_not_committed(self):
        """Test the loop workspace and its archive stay out of commits."""
        (self.project / "main.py").write_text("x = 1\n")
        (self.project / ".rehoboam.done").mkdir()
        (self.project / ".rehoboam.done" / "old.md").write_text("old")

        create_git_checkpoint(self.machine)

        files = git(self.project, "ls-files").splitlines()
        self.assertEqual(files, ["main.py"])

    def test_nothing_to_commit(self):
        """Test no commit is made without changes."""
        self.assertIsNone(create_git_checkpoint(self.machine))
        self.assertIsNone(self.workspace.load_state().last_commit)


class TestNotARepository(unittest.TestCase):
    """Test projects outside git."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.workspace = init_workspace(self.temp_dir, "Task", LoopConfig())

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_skipped(self):
        """Test the checkpoint is skipped, not raised."""
        if is_git_repository(Path(self.temp_dir)):
            self.skipTest("temp dir is inside a git repository")
        self.assertIsNone(create_git_checkpoint(LoopStateMachine(self.workspace)))


if __name__ == "__main__":
    unittest.main()
