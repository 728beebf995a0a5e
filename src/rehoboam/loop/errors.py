"""
Error types for the loop engine.
"""

from pathlib import Path
from typing import Optional, Union


class RehoboamError(Exception):
    """Base class for all loop engine errors."""


class ConfigError(RehoboamError):
    """Invalid configuration or loop parameters."""


class WorkspaceIoError(RehoboamError):
    """A workspace or ledger file could not be read, written or renamed."""

    def __init__(self, path: Union[str, Path], operation: str, reason: Optional[str] = None):
        self.path = Path(path)
        self.operation = operation
        self.reason = reason
        message = f"Failed to {operation} {self.path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class StateCorruptError(RehoboamError):
    """state.json is missing or unparsable; archive and re-init."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Corrupt loop state {self.path}: {reason}")


class WorkspaceActiveError(RehoboamError):
    """A run is already in progress in this workspace."""

    def __init__(self, path: Union[str, Path], iteration: int):
        self.path = Path(path)
        self.iteration = iteration
        super().__init__(
            f"Loop already in progress at {self.path} (iteration {iteration}); "
            f"archive it first"
        )


class IterationLimitError(RehoboamError):
    """The iteration counter is already at max_iterations."""


class DuplicateTaskError(RehoboamError):
    """A task id is already present in the ledger."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} already exists in the ledger")


class AgentHostError(RehoboamError):
    """The agent host could not run the agent at all."""


class UnknownWorkerError(RehoboamError):
    """A worker id has no registration file in the workspace."""

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        super().__init__(f"Worker {worker_id} is not registered")


class LedgerParseWarning(UserWarning):
    """An unrecognized line under a ledger section, kept verbatim."""

    def __init__(self, line_no: int, line: str, section: Optional[str]):
        self.line_no = line_no
        self.line = line
        self.section = section
        super().__init__(
            f"Unrecognized line {line_no} under {section or 'preamble'}: {line!r}"
        )
