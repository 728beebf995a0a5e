"""
Git checkpoints between loop iterations.

After an iteration the project's changes (everything except the loop
workspace) are committed, so each iteration can be rolled back on its own.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from .state_machine import LoopStateMachine

logger = logging.getLogger(__name__)

CHECKPOINT_MESSAGE = "rehoboam: iteration {iteration} checkpoint"


def _run_git(args: list[str], cwd: Path, check: bool = True) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=check,
    )


def is_git_repository(path: Path) -> bool:
    try:
        result = _run_git(["rev-parse", "--is-inside-work-tree"], path, check=False)
    except OSError:
        return False
    return result.returncode == 0 and result.stdout.strip() == "true"


def create_git_checkpoint(machine: LoopStateMachine) -> Optional[str]:
    """Commit project changes for the current iteration.

    Records the commit hash in ``last_commit``. Errors are logged, never raised.

    Returns:
        The new commit hash, or None if nothing was committed.
    """
    workspace = machine.workspace
    project_dir = workspace.project_dir

    if not is_git_repository(project_dir):
        logger.debug(f"{project_dir} is not a git repository, skipping checkpoint")
        return None

    try:
        state = machine.load_state()
        excludes = [f":!{workspace.path.name}", f":!{workspace.archive_path.name}"]
        _run_git(["add", "-A", "--", ".", *excludes], project_dir)

        staged = _run_git(["diff", "--cached", "--quiet"], project_dir, check=False)
        if staged.returncode == 0:
            logger.debug("No changes to checkpoint")
            return None

        message = CHECKPOINT_MESSAGE.format(iteration=state.iteration)
        _run_git(["commit", "-m", message, "--no-verify"], project_dir)
        commit = _run_git(["rev-parse", "HEAD"], project_dir).stdout.strip()
    except subprocess.CalledProcessError as e:
        logger.warning(f"Git checkpoint failed: {(e.stderr or '').strip() or e}")
        return None
    except OSError as e:
        logger.warning(f"Git checkpoint failed: {e}")
        return None

    machine.update_state(last_commit=commit)
    logger.info(f"Created git checkpoint {commit[:8]} for iteration {state.iteration}")
    return commit
