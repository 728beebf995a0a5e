"""
On-disk workspace for a Rehoboam loop.

One workspace lives in a hidden directory under the project
(``<project>/.rehoboam``) and carries state across otherwise stateless
agent iterations:

    anchor.md       task specification, written once at init
    guardrails.md   append-only signs learned during the run
    progress.md     agent-owned, rewritten every iteration
    errors.log      append-only ``[iteration N] [timestamp] message`` lines
    state.json      LoopState, rewritten atomically on every transition

A workspace is *active* while ``state.json`` exists. Archiving renames the
directory to a ``.done`` sibling.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional, Union

from .errors import (
    ConfigError,
    StateCorruptError,
    WorkspaceActiveError,
    WorkspaceIoError,
)
from .models import LoopConfig, LoopState, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DIR_NAME = ".rehoboam"
ARCHIVE_SUFFIX = ".done"

ANCHOR_FILE = "anchor.md"
GUARDRAILS_FILE = "guardrails.md"
PROGRESS_FILE = "progress.md"
ERRORS_FILE = "errors.log"
STATE_FILE = "state.json"
PROMPT_FILE = "_iteration_prompt.md"
ACTIVITY_FILE = "activity.log"
SESSION_HISTORY_FILE = "session_history.log"
TASKS_FILE = "tasks.md"

ANCHOR_TEMPLATE = """# Rehoboam Loop Task

## Success Criteria
<!-- Add checkboxes for completion criteria -->
- [ ] Task complete

## Instructions
{prompt}

## Notes
- Update progress.md with your work
- Add signs to guardrails.md when you learn constraints
- Write "{stop_word}" to progress.md when all criteria are met
"""

GUARDRAILS_TEMPLATE = """# Guardrails

Learned constraints from previous iterations. Check these before taking actions.

<!-- Signs will be added here as the loop progresses -->
"""

PROGRESS_TEMPLATE = """# Progress

## Current Status
Starting iteration 1...

## Completed
<!-- Track completed work here -->

## Next Steps
<!-- Track remaining tasks here -->
"""

TASKS_TEMPLATE = """# Tasks

## Pending

## In Progress

## Completed
"""


def atomic_write_text(path: Union[str, Path], text: str) -> None:
    """Write text to path via a same-directory temp file and rename.

    Readers see either the old or the new contents, never a torn write.

    Raises:
        WorkspaceIoError: If the temp file cannot be written or renamed.
    """
    path = Path(path)
    try:
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    except OSError as e:
        raise WorkspaceIoError(path, "write", str(e)) from e
    try:
        try:
            handle = os.fdopen(fd, "w", encoding="utf-8", newline="")
        except Exception:
            os.close(fd)
            raise
        with handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except OSError as e:
        raise WorkspaceIoError(path, "write", str(e)) from e
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


class Workspace:
    """File access for one loop workspace directory.

    The store provides no cross-process locking; within a process,
    ``save_state`` calls are serialized.

    Example:
        workspace = Workspace.for_project("/path/to/project")
        workspace.init("Refactor X", LoopConfig(max_iterations=10))
        state = workspace.load_state()
        print(workspace.read(PROGRESS_FILE))
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._state_lock = threading.Lock()

    @classmethod
    def for_project(cls, project_dir: Union[str, Path], dir_name: str = DEFAULT_DIR_NAME) -> "Workspace":
        return cls(Path(project_dir).resolve() / dir_name)

    @classmethod
    def find(cls, start: Optional[Union[str, Path]] = None, dir_name: str = DEFAULT_DIR_NAME) -> Optional["Workspace"]:
        """Walk up from start (default: cwd) to the first active workspace."""
        current = Path(start or os.getcwd()).resolve()
        for directory in (current, *current.parents):
            candidate = cls(directory / dir_name)
            if candidate.is_active:
                return candidate
        return None

    def __repr__(self) -> str:
        return f"Workspace({str(self.path)!r})"

    @property
    def project_dir(self) -> Path:
        return self.path.parent

    @property
    def archive_path(self) -> Path:
        return self.path.with_name(self.path.name + ARCHIVE_SUFFIX)

    @property
    def state_path(self) -> Path:
        return self.path / STATE_FILE

    @property
    def is_active(self) -> bool:
        return self.state_path.is_file()

    @property
    def is_archived(self) -> bool:
        return self.archive_path.is_dir()

    def file_path(self, name: str) -> Path:
        return self.path / name

    # -- plain file access -------------------------------------------------

    def read(self, name: str) -> str:
        """Read a workspace file; a missing file reads as empty."""
        path = self.file_path(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except OSError as e:
            raise WorkspaceIoError(path, "read", str(e)) from e

    def append(self, name: str, text: str) -> None:
        path = self.file_path(name)
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            raise WorkspaceIoError(path, "append to", str(e)) from e

    def overwrite(self, name: str, text: str) -> None:
        atomic_write_text(self.file_path(name), text)

    # -- state -------------------------------------------------------------

    def load_state(self) -> LoopState:
        """Load state.json.

        Raises:
            StateCorruptError: If the file is missing or not a valid state.
            WorkspaceIoError: If the file exists but cannot be read.
        """
        path = self.state_path
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise StateCorruptError(path, "state file is missing") from e
        except OSError as e:
            raise WorkspaceIoError(path, "read", str(e)) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StateCorruptError(path, f"invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StateCorruptError(path, "expected a JSON object")

        try:
            return LoopState.from_dict(data)
        except KeyError as e:
            raise StateCorruptError(path, f"missing key {e}") from e
        except (TypeError, ValueError) as e:
            raise StateCorruptError(path, str(e)) from e

    def save_state(self, state: LoopState) -> None:
        payload = json.dumps(state.to_dict(), indent=2) + "\n"
        with self._state_lock:
            atomic_write_text(self.state_path, payload)
        logger.debug(f"Saved state: iteration {state.iteration}/{state.max_iterations}")

    # -- lifecycle ---------------------------------------------------------

    def init(self, prompt: str, config: LoopConfig) -> Path:
        """Create the workspace files and a fresh state.

        Succeeds on an empty, inactive or previously archived workspace, and
        on one whose state is still at iteration 0.

        Raises:
            ConfigError: Empty stop word or max_iterations below 1.
            WorkspaceActiveError: A run is already in progress.
            StateCorruptError: An existing state.json cannot be parsed.
        """
        if not config.stop_word or not config.stop_word.strip():
            raise ConfigError("Stop word must not be empty")
        if config.max_iterations < 1:
            raise ConfigError(f"max_iterations must be at least 1, got {config.max_iterations}")

        if self.is_active:
            existing = self.load_state()
            if existing.iteration > 0:
                raise WorkspaceActiveError(self.path, existing.iteration)
            logger.info(f"Replacing unstarted loop state in {self.path}")

        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceIoError(self.path, "create", str(e)) from e

        self.overwrite(ANCHOR_FILE, ANCHOR_TEMPLATE.format(prompt=prompt, stop_word=config.stop_word))
        self.overwrite(GUARDRAILS_FILE, GUARDRAILS_TEMPLATE)
        self.overwrite(PROGRESS_FILE, PROGRESS_TEMPLATE)
        self.overwrite(ERRORS_FILE, "")
        self.overwrite(ACTIVITY_FILE, "")
        self.overwrite(SESSION_HISTORY_FILE, "")
        if config.task_queue and not self.file_path(TASKS_FILE).exists():
            self.overwrite(TASKS_FILE, TASKS_TEMPLATE)

        state = LoopState(
            iteration=0,
            max_iterations=config.max_iterations,
            stop_word=config.stop_word,
            started_at=utcnow(),
            pane_id=config.pane_id,
            project_dir=str(self.project_dir),
            role=config.role,
        )
        self.save_state(state)

        logger.info(
            f"Initialized loop workspace {self.path} "
            f"(max {config.max_iterations} iterations, stop word {config.stop_word!r}, "
            f"role {config.role.value})"
        )
        return self.path


def init_workspace(
    project_dir: Union[str, Path],
    prompt: str,
    config: LoopConfig,
    dir_name: str = DEFAULT_DIR_NAME,
) -> Workspace:
    """Initialize the workspace under project_dir and return it."""
    workspace = Workspace.for_project(project_dir, dir_name)
    workspace.init(prompt, config)
    return workspace
