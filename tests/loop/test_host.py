"""
Unit tests for agent hosts.

Tests:
1. Host factory
2. Subprocess host: exit codes, timeout, start failure
3. Tmux host: respawn, polling, exit status, errors
"""

import os
import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "src"))

from rehoboam.loop.errors import AgentHostError
from rehoboam.loop.host import (
    DEFAULT_AGENT_COMMAND,
    HostResult,
    SubprocessAgentHost,
    TmuxAgentHost,
    create_host,
)


class TestCreateHost(unittest.TestCase):
    """Test the host factory."""

    def test_subprocess(self):
        host = create_host("subprocess", poll_interval=5)
        self.assertIsInstance(host, SubprocessAgentHost)
        self.assertEqual(host.command, DEFAULT_AGENT_COMMAND)

    def test_tmux(self):
        host = create_host("TMUX", command=["agent", "--fast"], poll_interval=0.5)
        self.assertIsInstance(host, TmuxAgentHost)
        self.assertEqual(host.command, ["agent", "--fast"])
        self.assertEqual(host.poll_interval, 0.5)

    def test_unknown(self):
        with self.assertRaises(ValueError):
            create_host("docker")

    def test_result_success(self):
        self.assertTrue(HostResult(exit_code=0).success)
        self.assertFalse(HostResult(exit_code=2).success)
        self.assertFalse(HostResult(exit_code=None).success)


class TestSubprocessHost(unittest.TestCase):
    """Test running the agent as a child process."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.prompt = Path(self.temp_dir) / "_iteration_prompt.md"
        self.prompt.write_text("do the thing")

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_prompt_on_stdin(self):
        """Test a real child process reads the prompt from stdin."""
        host = SubprocessAgentHost(
            command=[sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"]
        )
        result = host.run(self.prompt, self.temp_dir)

        self.assertTrue(result.success)
        self.assertEqual(result.output.strip(), "DO THE THING")
        self.assertGreaterEqual(result.duration_seconds, 0)

    def test_nonzero_exit(self):
        """Test a failing agent is reported, not raised."""
        host = SubprocessAgentHost(
            command=[sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"]
        )
        result = host.run(self.prompt, self.temp_dir)

        self.assertFalse(result.success)
        self.assertEqual(result.exit_code, 3)
        self.assertEqual(result.error, "boom")

    @patch("rehoboam.loop.host.subprocess.run")
    def test_runs_in_project_dir(self, mock_run):
        """Test the agent runs with the project as cwd."""
        mock_run.return_value = MagicMock(returncode=0, stdout="ok", stderr="")
        host = SubprocessAgentHost(command=["agent"], timeout=30)

        result = host.run(self.prompt, self.temp_dir)

        self.assertEqual(result.output, "ok")
        args, kwargs = mock_run.call_args
        self.assertEqual(args[0], ["agent"])
        self.assertEqual(kwargs["cwd"], self.temp_dir)
        self.assertEqual(kwargs["timeout"], 30)

    @patch("rehoboam.loop.host.subprocess.run")
    def test_timeout(self, mock_run):
        """Test a timed out agent has no exit code."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="agent", timeout=5)
        host = SubprocessAgentHost(command=["agent"], timeout=5)

        result = host.run(self.prompt, self.temp_dir)

        self.assertIsNone(result.exit_code)
        self.assertIn("timed out", result.error)

    def test_missing_command(self):
        """Test an agent that cannot start raises AgentHostError."""
        host = SubprocessAgentHost(command=["rehoboam-no-such-agent-binary"])
        with self.assertRaises(AgentHostError):
            host.run(self.prompt, self.temp_dir)


class FakeTmux:
    """Scripted tmux: the pane dies after `polls` display-message calls."""

    def __init__(self, polls=2, dead_status="0", fail_on=None):
        self.calls = []
        self.polls = polls
        self.dead_status = dead_status
        self.fail_on = fail_on

    def __call__(self, args, **kwargs):
        self.calls.append(args)
        command = args[1]
        if command == self.fail_on:
            return MagicMock(returncode=1, stdout="", stderr=f"{command}: can't find pane")
        if command == "display-message":
            self.polls -= 1
            out = f"1 {self.dead_status}\n" if self.polls <= 0 else "0 \n"
            return MagicMock(returncode=0, stdout=out, stderr="")
        if command == "capture-pane":
            return MagicMock(returncode=0, stdout="agent output\n", stderr="")
        return MagicMock(returncode=0, stdout="", stderr="")

    def commands(self):
        return [args[1] for args in self.calls]


@patch("rehoboam.loop.host.time.sleep")
@patch("rehoboam.loop.host.shutil.which", return_value="/usr/bin/tmux")
class TestTmuxHost(unittest.TestCase):
    """Test running the agent inside a tmux pane."""

    def setUp(self):
        self.prompt = Path("/tmp/project/.rehoboam/_iteration_prompt.md")
        self.project = Path("/tmp/project")

    def test_respawn_and_wait(self, mock_which, mock_sleep):
        """Test the pane is respawned and polled until dead."""
        fake = FakeTmux(polls=3)
        host = TmuxAgentHost(command=["claude", "-p"], poll_interval=0.1)
        with patch("rehoboam.loop.host.subprocess.run", side_effect=fake):
            result = host.run(self.prompt, self.project, "%3")

        self.assertTrue(result.success)
        self.assertEqual(result.output, "agent output\n")
        self.assertEqual(
            fake.commands(),
            ["set-option", "respawn-pane", "display-message", "display-message",
             "display-message", "capture-pane"],
        )
        respawn = fake.calls[1]
        self.assertIn("%3", respawn)
        self.assertIn(str(self.project), respawn)
        self.assertEqual(respawn[-1], f"claude -p < {self.prompt}")
        self.assertEqual(mock_sleep.call_count, 3)

    def test_dead_status(self, mock_which, mock_sleep):
        """Test the pane's exit status becomes the exit code."""
        fake = FakeTmux(polls=1, dead_status="3")
        host = TmuxAgentHost(command=["claude"])
        with patch("rehoboam.loop.host.subprocess.run", side_effect=fake):
            result = host.run(self.prompt, self.project, "%3")
        self.assertEqual(result.exit_code, 3)
        self.assertFalse(result.success)

    def test_requires_pane(self, mock_which, mock_sleep):
        host = TmuxAgentHost(command=["claude"])
        with self.assertRaises(AgentHostError):
            host.run(self.prompt, self.project, "")

    def test_tmux_failure(self, mock_which, mock_sleep):
        """Test an unknown pane raises AgentHostError."""
        fake = FakeTmux(fail_on="respawn-pane")
        host = TmuxAgentHost(command=["claude"])
        with patch("rehoboam.loop.host.subprocess.run", side_effect=fake):
            with self.assertRaises(AgentHostError):
                host.run(self.prompt, self.project, "%99")

    def test_tmux_missing(self, mock_which, mock_sleep):
        mock_which.return_value = None
        host = TmuxAgentHost(command=["claude"])
        with self.assertRaises(AgentHostError):
            host.run(self.prompt, self.project, "%3")

    def test_timeout(self, mock_which, mock_sleep):
        """Test a pane that never dies times out without an exit code."""
        fake = FakeTmux(polls=10 ** 9)
        host = TmuxAgentHost(command=["claude"], timeout=0.01)
        with patch("rehoboam.loop.host.subprocess.run", side_effect=fake):
            result = host.run(self.prompt, self.project, "%3")
        self.assertIsNone(result.exit_code)
        self.assertIn("timed out", result.error)

    def test_shell_command_quoting(self, mock_which, mock_sleep):
        host = TmuxAgentHost(command=["my agent", "-p"])
        self.assertEqual(
            host.build_shell_command(Path("/tmp/a b/prompt.md")),
            "'my agent' -p < '/tmp/a b/prompt.md'",
        )


if __name__ == "__main__":
    unittest.main()
