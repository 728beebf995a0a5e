"""
Agent hosts for Rehoboam loops.

A host runs the agent once against a prompt file and waits for it to exit.
The loop only looks at whether it exited cleanly.

Supports:
- tmux: respawns the agent inside an existing pane and polls until it dies
- subprocess: runs the agent as a child process with the prompt on stdin
"""

import logging
import shlex
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .errors import AgentHostError

logger = logging.getLogger(__name__)

DEFAULT_AGENT_COMMAND = ["claude", "-p"]


class HostKind(Enum):
    """Available agent hosts."""
    SUBPROCESS = "subprocess"
    TMUX = "tmux"


@dataclass
class HostResult:
    """Outcome of one agent run."""
    exit_code: Optional[int]
    output: str = ""
    error: str = ""
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class BaseAgentHost(ABC):
    """Base class for agent hosts."""

    HOST_NAME: str = ""

    def __init__(self, command: Optional[list[str]] = None, timeout: Optional[float] = None):
        self.command = list(command or DEFAULT_AGENT_COMMAND)
        self.timeout = timeout

        if not self._check_agent_available():
            logger.warning(f"Agent command {self.command[0]!r} not found in PATH")

    def _check_agent_available(self) -> bool:
        return shutil.which(self.command[0]) is not None

    def run(self, prompt_path: Union[str, Path], project_dir: Union[str, Path], pane_id: str = "") -> HostResult:
        """Run the agent to completion against prompt_path.

        Raises:
            AgentHostError: If the agent could not be started at all.
        """
        start_time = time.time()
        result = self._run(Path(prompt_path), Path(project_dir), pane_id)
        result.duration_seconds = time.time() - start_time

        if result.success:
            logger.info(f"Agent exited cleanly after {result.duration_seconds:.1f}s")
        else:
            logger.warning(
                f"Agent exited abnormally (exit code {result.exit_code}) "
                f"after {result.duration_seconds:.1f}s"
            )
        return result

    @abstractmethod
    def _run(self, prompt_path: Path, project_dir: Path, pane_id: str) -> HostResult:
        """Run the agent once. Override in subclasses."""
        pass


class SubprocessAgentHost(BaseAgentHost):
    """Run the agent as a child process, prompt file on stdin."""

    HOST_NAME = "subprocess"

    def _run(self, prompt_path: Path, project_dir: Path, pane_id: str) -> HostResult:
        logger.info(f"Starting agent: {' '.join(self.command[:5])} < {prompt_path.name}")
        try:
            with open(prompt_path, encoding="utf-8") as stdin:
                result = subprocess.run(
                    self.command,
                    stdin=stdin,
                    capture_output=True,
                    text=True,
                    cwd=str(project_dir),
                    timeout=self.timeout,
                )
        except subprocess.TimeoutExpired:
            logger.error(f"Agent timed out after {self.timeout}s")
            return HostResult(exit_code=None, error=f"Agent timed out after {self.timeout} seconds")
        except OSError as e:
            raise AgentHostError(f"Could not start agent {self.command[0]!r}: {e}") from e

        return HostResult(
            exit_code=result.returncode,
            output=result.stdout,
            error=result.stderr,
        )


class TmuxAgentHost(BaseAgentHost):
    """Respawn the agent inside a tmux pane and wait for the pane to die.

    The pane keeps ``remain-on-exit`` on, so its exit status can be read
    with ``#{pane_dead_status}`` after the agent finishes.
    """

    HOST_NAME = "tmux"
    TMUX_TIMEOUT = 10
    CAPTURE_LINES = 200

    def __init__(
        self,
        command: Optional[list[str]] = None,
        timeout: Optional[float] = None,
        poll_interval: float = 2.0,
    ):
        super().__init__(command=command, timeout=timeout)
        self.poll_interval = poll_interval

    def _tmux(self, *args: str) -> str:
        try:
            result = subprocess.run(
                ["tmux", *args],
                capture_output=True,
                text=True,
                timeout=self.TMUX_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise AgentHostError(f"tmux {args[0]} failed: {e}") from e
        if result.returncode != 0:
            raise AgentHostError(f"tmux {args[0]} failed: {result.stderr.strip()}")
        return result.stdout

    def build_shell_command(self, prompt_path: Path) -> str:
        agent = " ".join(shlex.quote(part) for part in self.command)
        return f"{agent} < {shlex.quote(str(prompt_path))}"

    def _run(self, prompt_path: Path, project_dir: Path, pane_id: str) -> HostResult:
        if not pane_id:
            raise AgentHostError("tmux host needs a pane id")
        if shutil.which("tmux") is None:
            raise AgentHostError("tmux not found in PATH")

        self._tmux("set-option", "-p", "-t", pane_id, "remain-on-exit", "on")
        self._tmux(
            "respawn-pane", "-k",
            "-t", pane_id,
            "-c", str(project_dir),
            self.build_shell_command(prompt_path),
        )
        logger.info(f"Respawned agent in pane {pane_id}")

        deadline = time.monotonic() + self.timeout if self.timeout else None
        while True:
            time.sleep(self.poll_interval)
            dead, _, status = self._tmux(
                "display-message", "-p", "-t", pane_id, "#{pane_dead} #{pane_dead_status}"
            ).strip().partition(" ")
            if dead == "1":
                break
            if deadline is not None and time.monotonic() >= deadline:
                logger.error(f"Agent in pane {pane_id} timed out after {self.timeout}s")
                return HostResult(exit_code=None, error=f"Agent timed out after {self.timeout} seconds")

        try:
            exit_code = int(status)
        except ValueError:
            exit_code = None

        output = ""
        try:
            output = self._tmux("capture-pane", "-p", "-t", pane_id, "-S", f"-{self.CAPTURE_LINES}")
        except AgentHostError as e:
            logger.debug(f"Could not capture pane {pane_id}: {e}")

        return HostResult(exit_code=exit_code, output=output)


def create_host(
    kind: Union[str, HostKind],
    command: Optional[list[str]] = None,
    **kwargs
) -> BaseAgentHost:
    """Factory function to create the appropriate agent host.

    Args:
        kind: Host to use (subprocess, tmux)
        command: Agent command line (prompt is fed on stdin)
        **kwargs: Additional arguments passed to the host

    Returns:
        Configured host instance
    """
    if isinstance(kind, str):
        try:
            kind = HostKind(kind.lower())
        except ValueError as e:
            raise ValueError(f"Unknown agent host: {kind}") from e

    hosts = {
        HostKind.SUBPROCESS: SubprocessAgentHost,
        HostKind.TMUX: TmuxAgentHost,
    }
    host_class = hosts[kind]

    if kind != HostKind.TMUX:
        kwargs.pop("poll_interval", None)

    return host_class(command=command, **kwargs)
