"""Activity and session history for Rehoboam loops.

Keeps two human-readable logs inside the workspace:

    activity.log          one line per finished iteration
    session_history.log   state transitions, trimmed to the last 50 entries

and tracks repeated errors, turning the third occurrence of the same error
into an auto-detected sign in guardrails.md.
"""

import logging
import re
from datetime import timedelta
from typing import Optional

from .models import utcnow
from .state_machine import LoopStateMachine
from .workspace import ACTIVITY_FILE, SESSION_HISTORY_FILE

logger = logging.getLogger(__name__)

MAX_SESSION_HISTORY = 50
AUTO_GUARDRAIL_THRESHOLD = 3

_NON_WORD = re.compile(r"[^\w\s]|_")


def normalize_error_key(error: str) -> str:
    """Reduce an error message to a stable key.

    First 100 characters, alphanumerics and whitespace only, lowercased,
    first 10 words joined by underscores.
    """
    cleaned = _NON_WORD.sub("", error[:100]).lower()
    return "_".join(cleaned.split()[:10])


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "unknown"
    total = int(seconds)
    return f"{total // 60}m {total % 60}s"


class ActivityLog:
    """Iteration timing, activity lines and error-pattern tracking."""

    def __init__(self, machine: LoopStateMachine):
        self.machine = machine
        self.workspace = machine.workspace

    def mark_iteration_start(self) -> None:
        self.machine.update_state(iteration_started_at=utcnow())

    def get_iteration_duration(self) -> Optional[timedelta]:
        started = self.workspace.load_state().iteration_started_at
        if started is None:
            return None
        return utcnow() - started

    def log_activity(self, iteration: int, reason: str, duration: Optional[timedelta] = None) -> str:
        """Append one activity line for a finished iteration and return it."""
        seconds = duration.total_seconds() if duration is not None else None
        entry = (
            f"[{utcnow().strftime('%Y-%m-%d %H:%M:%S')}] Iteration {iteration} completed"
            f" | Duration: {format_duration(seconds)} | Reason: {reason}"
        )
        self.workspace.append(ACTIVITY_FILE, entry + "\n")
        logger.info(f"Activity logged: iteration {iteration} in {format_duration(seconds)}")
        return entry

    def log_session_transition(self, from_state: str, to_state: str, details: Optional[str] = None) -> None:
        state = self.workspace.load_state()
        suffix = f" | {details}" if details else ""
        entry = (
            f"[{utcnow().strftime('%H:%M:%S')}] [Iter {state.iteration}] "
            f"{from_state} -> {to_state}{suffix}"
        )
        lines = self.workspace.read(SESSION_HISTORY_FILE).splitlines()
        lines = lines[-(MAX_SESSION_HISTORY - 1):] + [entry]
        self.workspace.overwrite(SESSION_HISTORY_FILE, "\n".join(lines) + "\n")
        logger.debug(f"Session transition: {from_state} -> {to_state}")

    def track_error_pattern(self, error: str) -> bool:
        """Count an error and add a guardrail when it repeats.

        Returns:
            True if this occurrence added an auto-detected sign.
        """
        key = normalize_error_key(error)
        if not key:
            return False

        state = self.workspace.load_state()
        count = state.error_counts.get(key, 0) + 1
        state.error_counts[key] = count
        self.workspace.save_state(state)

        if count != AUTO_GUARDRAIL_THRESHOLD:
            return False

        self.machine.add_guardrail(
            label=f"Auto-detected: {key[:30]}",
            trigger=" ".join(error[:200].split()),
            instruction=(
                f"This error has occurred {count} times. "
                f"Review the approach and try a different strategy."
            ),
        )
        logger.info(f"Auto-added guardrail for repeated error: {key} ({count} occurrences)")
        return True

    def get_recent_progress_summary(self, count: int = 5) -> list[str]:
        """Return the last count lines of activity.log, oldest first."""
        if count <= 0:
            return []
        lines = [line for line in self.workspace.read(ACTIVITY_FILE).splitlines() if line.strip()]
        return lines[-count:]
