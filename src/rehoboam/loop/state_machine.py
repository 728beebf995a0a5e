"""
Iteration state machine for Rehoboam loops.

Transitions are plain reads and writes over a Workspace:

    Running(n) --increment_iteration--> Running(n + 1)     (n + 1 <= max)
    Running(n) --mark_completed-------> Completed(reason)
    Running | Completed --archive-----> Archived            (dir renamed to .done)
"""

import logging
import os
import re
import shutil
from pathlib import Path
from typing import Optional

from .detector import CompletionDetector
from .errors import IterationLimitError, StateCorruptError, WorkspaceIoError
from .models import (
    CompletionReason,
    LoopPhase,
    LoopRole,
    LoopState,
    LoopStatus,
    Sign,
    format_timestamp,
    utcnow,
)
from .workspace import ERRORS_FILE, GUARDRAILS_FILE, PROGRESS_FILE, Workspace

logger = logging.getLogger(__name__)

SIGN_PATTERN = re.compile(
    r"^### Sign: (?P<label>.*)\n"
    r"- \*\*Trigger:\*\* (?P<trigger>.*)\n"
    r"- \*\*Instruction:\*\* (?P<instruction>.*)\n"
    r"- \*\*Added:\*\* Iteration (?P<iteration>\d+)",
    re.MULTILINE,
)


class LoopStateMachine:
    """State transitions for one workspace.

    Every method re-reads state.json so that edits made by other processes
    between calls are observed.

    Example:
        machine = LoopStateMachine(workspace)
        machine.increment_iteration()
        reason = machine.check_completion()
        if reason or machine.check_max_iterations():
            machine.archive()
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    def load_state(self) -> LoopState:
        return self.workspace.load_state()

    def increment_iteration(self) -> int:
        """Advance the iteration counter by one and persist it.

        Returns:
            The new iteration value.

        Raises:
            IterationLimitError: If the counter is already at max_iterations.
        """
        state = self.workspace.load_state()
        if state.iteration >= state.max_iterations:
            raise IterationLimitError(
                f"Iteration {state.iteration} already at max_iterations {state.max_iterations}"
            )
        state.iteration += 1
        self.workspace.save_state(state)
        logger.info(f"Iteration incremented to {state.iteration}/{state.max_iterations}")
        return state.iteration

    def check_stop_word(self) -> bool:
        """True iff progress.md contains the stop word, ignoring case."""
        state = self.workspace.load_state()
        found = CompletionDetector(state.stop_word).has_stop_word(self.workspace.read(PROGRESS_FILE))
        if found:
            logger.info(f"Stop word {state.stop_word!r} found in progress.md")
        return found

    def check_completion(self) -> Optional[CompletionReason]:
        """Check progress.md for the promise tag, then for the stop word."""
        state = self.workspace.load_state()
        result = CompletionDetector(state.stop_word).detect(self.workspace.read(PROGRESS_FILE))
        if result.found:
            logger.info(f"Completion detected in progress.md: {result.reason.value}")
            return result.reason
        return None

    def check_max_iterations(self) -> bool:
        state = self.workspace.load_state()
        reached = state.iteration >= state.max_iterations
        if reached:
            logger.warning(f"Max iterations reached ({state.iteration}/{state.max_iterations})")
        return reached

    def mark_completed(self, reason: CompletionReason) -> LoopState:
        state = self.workspace.load_state()
        state.completion_reason = reason.value
        self.workspace.save_state(state)
        logger.info(f"Loop completed at iteration {state.iteration}: {reason.value}")
        return state

    def update_state(self, **changes) -> LoopState:
        """Persist changes to individual LoopState fields."""
        state = self.workspace.load_state()
        for name, value in changes.items():
            if not hasattr(state, name):
                raise AttributeError(f"LoopState has no field {name!r}")
            setattr(state, name, value)
        self.workspace.save_state(state)
        return state

    def set_role(self, role: LoopRole) -> LoopState:
        return self.update_state(role=role)

    def assign_task(self, task_id: Optional[str]) -> LoopState:
        return self.update_state(assigned_task=task_id)

    def status(self) -> LoopStatus:
        workspace = self.workspace
        if workspace.is_active:
            state = workspace.load_state()
            if state.completion_reason:
                try:
                    reason = CompletionReason(state.completion_reason)
                except ValueError as e:
                    raise StateCorruptError(
                        workspace.state_path,
                        f"unknown completion_reason {state.completion_reason!r}",
                    ) from e
                return LoopStatus(LoopPhase.COMPLETED, state.iteration, state.max_iterations, reason)
            return LoopStatus(LoopPhase.RUNNING, state.iteration, state.max_iterations)
        if workspace.is_archived:
            return LoopStatus(LoopPhase.ARCHIVED)
        return LoopStatus(LoopPhase.ABSENT)

    def archive(self) -> Optional[Path]:
        """Rename the workspace to its .done sibling.

        An existing archive is removed first. Does nothing when the
        workspace directory does not exist.

        Returns:
            The archive path, or None if there was nothing to archive.
        """
        source = self.workspace.path
        target = self.workspace.archive_path
        if not source.exists():
            logger.debug(f"No workspace at {source}, nothing to archive")
            return None

        if target.exists():
            try:
                shutil.rmtree(target)
            except OSError as e:
                raise WorkspaceIoError(target, "remove", str(e)) from e
        try:
            os.replace(source, target)
        except OSError as e:
            raise WorkspaceIoError(source, "rename", str(e)) from e

        logger.info(f"Loop workspace archived to {target}")
        return target

    # -- engine-owned logs -------------------------------------------------

    def log_error(self, message: str) -> None:
        """Append ``[iteration N] [timestamp] message`` to errors.log."""
        state = self.workspace.load_state()
        entry = f"[iteration {state.iteration}] [{format_timestamp(utcnow())}] {message}\n"
        self.workspace.append(ERRORS_FILE, entry)
        logger.warning(f"Logged error: {message}")

    def add_guardrail(self, label: str, trigger: str, instruction: str) -> Sign:
        """Append a sign to guardrails.md, stamped with the current iteration."""
        state = self.workspace.load_state()
        sign = Sign(label=label, trigger=trigger, instruction=instruction, iteration=state.iteration)
        self.workspace.append(
            GUARDRAILS_FILE,
            f"\n### Sign: {sign.label}\n"
            f"- **Trigger:** {sign.trigger}\n"
            f"- **Instruction:** {sign.instruction}\n"
            f"- **Added:** Iteration {sign.iteration}\n",
        )
        logger.info(f"Added guardrail: {label}")
        return sign

    def read_signs(self) -> list[Sign]:
        content = self.workspace.read(GUARDRAILS_FILE)
        return [
            Sign(
                label=m.group("label").strip(),
                trigger=m.group("trigger").strip(),
                instruction=m.group("instruction").strip(),
                iteration=int(m.group("iteration")),
            )
            for m in SIGN_PATTERN.finditer(content)
        ]
