"""
Loop driver: runs the agent through iterations until the loop completes.

Per iteration:
    1. compose the prompt from the workspace
    2. run the agent through the host and wait for it to exit
    3. advance the iteration counter
    4. check progress.md for completion, then (optionally) the judge,
       then repeated failures, then the iteration limit

Agent failures are recorded in errors.log and the loop moves on with a
fresh session. SIGINT/SIGTERM stop the loop before the next dispatch; the
workspace is left as is and a later run resumes from the persisted
iteration. A resumed run checks progress.md before dispatching again.

A loop that stalls (the judge reads it as blocked, or the same failure
repeats five iterations in a row) stops without being archived.
"""

import logging
import signal
import threading
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from ..telemetry import TraceEmitter
from .activity import ActivityLog, normalize_error_key
from .errors import AgentHostError, ConfigError, WorkspaceIoError
from .git_checkpoint import create_git_checkpoint
from .host import BaseAgentHost
from .judge import JudgeDecision, LoopJudge, is_stalled
from .models import (
    CompletionReason,
    IterationRecord,
    LoopConfig,
    LoopResult,
    LoopState,
    utcnow,
)
from .prompts import PromptComposer
from .state_machine import LoopStateMachine
from .workspace import Workspace

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


class LoopDriver:
    """Drives one workspace's loop to completion.

    Example:
        driver = LoopDriver(workspace, create_host("subprocess"))
        driver.start("Refactor X", LoopConfig(max_iterations=10))
        result = driver.run()
        print(result.summary)
    """

    def __init__(
        self,
        workspace: Workspace,
        host: BaseAgentHost,
        archive_on_complete: bool = True,
        git_checkpoint: bool = False,
        emitter: Optional[TraceEmitter] = None,
        handle_signals: bool = True,
        judge: bool = False,
    ):
        self.workspace = workspace
        self.host = host
        self.archive_on_complete = archive_on_complete
        self.git_checkpoint = git_checkpoint
        self.emitter = emitter or TraceEmitter()
        self.handle_signals = handle_signals
        self.judge = judge

        self.machine = LoopStateMachine(workspace)
        self.composer = PromptComposer(workspace)
        self.activity = ActivityLog(self.machine)
        self.loop_judge = LoopJudge(workspace)

        self._shutdown_requested = False
        self._outcomes: list[Optional[str]] = []

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info(f"Received signal {signum}, stopping after the current iteration...")
        self._shutdown_requested = True

    def request_shutdown(self) -> None:
        self._shutdown_requested = True

    def start(self, prompt: Optional[str], config: LoopConfig, fresh: bool = False) -> LoopState:
        """Prepare the workspace: resume an active loop or initialize a new one.

        Args:
            prompt: Task for a new loop; may be None when resuming
            config: Loop parameters for a new loop
            fresh: Archive an active loop and start over

        Returns:
            The state the run will start from.
        """
        if self.workspace.is_active:
            if not fresh:
                state = self.machine.load_state()
                logger.info(
                    f"Resuming loop in {self.workspace.path} at iteration "
                    f"{state.iteration}/{state.max_iterations}"
                )
                return state
            logger.info(f"Archiving active loop in {self.workspace.path} before a fresh start")
            self.machine.archive()

        if prompt is None:
            raise ConfigError(f"No active loop in {self.workspace.path}; a prompt is required")

        with self.emitter.span(
            "loop_session_init",
            max_iterations=config.max_iterations,
            role=config.role.value,
            project_dir=str(self.workspace.project_dir),
        ):
            self.workspace.init(prompt, config)
        return self.machine.load_state()

    def run(self) -> LoopResult:
        """Run iterations until completion, the iteration limit or cancellation."""
        previous_handlers = self._install_signal_handlers()
        try:
            return self._run()
        finally:
            self._restore_signal_handlers(previous_handlers)

    def _run(self) -> LoopResult:
        started = utcnow()
        history: list[IterationRecord] = []
        state = self.machine.load_state()

        if state.completion_reason:
            reason = CompletionReason(state.completion_reason)
            logger.info(f"Loop already completed: {reason.value}")
            return LoopResult(reason=reason, iterations=state.iteration, total_duration=timedelta(0))

        logger.info(
            f"Starting loop in {self.workspace.project_dir} "
            f"({state.iteration}/{state.max_iterations} iterations done)"
        )
        reason = self.machine.check_completion() if state.iteration > 0 else None
        if reason is None and self.machine.check_max_iterations():
            reason = CompletionReason.MAX_REACHED
        if reason is not None:
            return self._finish(reason, history, started)

        while True:
            if self._shutdown_requested:
                return self._finish(CompletionReason.CANCELLED, history, started)

            history.append(self._run_iteration())
            iteration = self.machine.increment_iteration()

            if self.git_checkpoint:
                create_git_checkpoint(self.machine)

            reason = self.machine.check_completion()
            if reason is None and self.judge:
                reason = self._judge()
            if reason is None and is_stalled(self._outcomes):
                logger.warning(f"Same failure in the last iterations, stopping: {self._outcomes[-1]}")
                reason = CompletionReason.STALLED
            if reason is None and self.machine.check_max_iterations():
                reason = CompletionReason.MAX_REACHED

            self._tolerate(
                self.activity.log_activity,
                iteration,
                reason.value if reason else "continuing",
                history[-1].duration,
            )
            if reason is not None:
                return self._finish(reason, history, started)

    def _run_iteration(self) -> IterationRecord:
        state = self.machine.load_state()
        record = IterationRecord(iteration_num=state.display_iteration, started_at=utcnow())
        logger.info(f"Iteration {record.iteration_num}/{state.max_iterations} starting")

        self.activity.mark_iteration_start()
        prompt_path: Optional[Path] = self._tolerate(self.composer.build_iteration_prompt)

        with self.emitter.span(
            "loop_iteration",
            iteration=record.iteration_num,
            max=state.max_iterations,
            role=state.role.value,
        ) as span:
            if prompt_path is None:
                record.error = "Could not write the iteration prompt"
            else:
                try:
                    result = self.host.run(prompt_path, self.workspace.project_dir, state.pane_id)
                except AgentHostError as e:
                    record.error = str(e)
                else:
                    record.exit_code = result.exit_code
                    span["exit_code"] = result.exit_code
                    if not result.success:
                        detail = result.error.strip() or f"exit code {result.exit_code}"
                        record.error = f"Agent exited abnormally: {detail}"

        record.ended_at = utcnow()
        self._outcomes.append(normalize_error_key(record.error) if record.error else None)
        if record.error:
            message = " ".join(record.error.split())[:MAX_ERROR_LENGTH]
            self._tolerate(self.machine.log_error, message)
            self._tolerate(self.activity.track_error_pattern, message)

        logger.info(f"Iteration {record.iteration_num} finished in {record.duration.total_seconds():.1f}s")
        return record

    def _judge(self) -> Optional[CompletionReason]:
        verdict = self._tolerate(self.loop_judge.evaluate)
        if verdict is None or verdict.decision == JudgeDecision.CONTINUE:
            return None
        logger.info(f"Judge: {verdict.decision.value} ({verdict.explanation})")
        if verdict.decision == JudgeDecision.COMPLETE:
            return CompletionReason.JUDGED_COMPLETE
        return CompletionReason.STALLED

    def _finish(self, reason: CompletionReason, history: list[IterationRecord], started) -> LoopResult:
        state = self.machine.load_state()
        archived_to = None

        if reason == CompletionReason.CANCELLED:
            logger.info(f"Loop cancelled at iteration {state.iteration}; workspace left for resume")
        else:
            self.machine.mark_completed(reason)
            self._tolerate(self.activity.log_session_transition, "running", "completed", reason.value)
            if reason == CompletionReason.STALLED:
                logger.warning(f"Loop stalled at iteration {state.iteration}; workspace kept for review")
            elif self.archive_on_complete:
                archived = self.machine.archive()
                archived_to = str(archived) if archived else None

        result = LoopResult(
            reason=reason,
            iterations=state.iteration,
            total_duration=utcnow() - started,
            history=history,
            archived_to=archived_to,
        )
        logger.info(result.summary)
        return result

    def _tolerate(self, operation: Callable[..., Any], *args: Any) -> Any:
        """Run a workspace operation; I/O errors outside state.json are logged and skipped."""
        try:
            return operation(*args)
        except WorkspaceIoError as e:
            if e.path == self.workspace.state_path:
                raise
            logger.error(f"{e}; continuing")
            return None

    def _install_signal_handlers(self) -> Optional[dict]:
        if not self.handle_signals or threading.current_thread() is not threading.main_thread():
            return None
        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.getsignal(signum)
            signal.signal(signum, self._signal_handler)
        return previous

    def _restore_signal_handlers(self, previous: Optional[dict]) -> None:
        if not previous:
            return
        for signum, handler in previous.items():
            signal.signal(signum, handler)
