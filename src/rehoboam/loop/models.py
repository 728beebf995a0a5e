"""
Data models for Rehoboam loops.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as RFC-3339 UTC (``2026-01-15T12:34:56.123456Z``)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC-3339 timestamp written by :func:`format_timestamp`."""
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class LoopRole(Enum):
    """Behavioral role of the agent driven by a loop."""
    PLANNER = "Planner"  # Explores and adds tasks to the ledger
    WORKER = "Worker"  # Claims and completes one ledger task
    AUTO = "Auto"  # General autonomous loop

    @classmethod
    def parse(cls, value: str) -> "LoopRole":
        for role in cls:
            if role.value.lower() == value.strip().lower():
                return role
        raise ValueError(f"Unknown loop role: {value}")

    def next(self) -> "LoopRole":
        order = [LoopRole.AUTO, LoopRole.PLANNER, LoopRole.WORKER]
        return order[(order.index(self) + 1) % len(order)]

    @property
    def display(self) -> str:
        return {
            LoopRole.AUTO: "Auto (generic)",
            LoopRole.PLANNER: "Planner (explores, creates tasks)",
            LoopRole.WORKER: "Worker (executes task in isolation)",
        }[self]


class CompletionReason(Enum):
    """Why a loop stopped running."""
    STOP_WORD_SEEN = "stop_word_seen"
    PROMISE_TAG = "promise_tag"
    MAX_REACHED = "max_reached"
    CANCELLED = "cancelled"
    JUDGED_COMPLETE = "judged_complete"
    STALLED = "stalled"


class LoopPhase(Enum):
    """Lifecycle phase of a workspace."""
    RUNNING = "running"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    ABSENT = "absent"


@dataclass
class LoopConfig:
    """Configuration for starting a loop."""
    max_iterations: int = 50
    stop_word: str = "DONE"
    pane_id: str = ""
    role: LoopRole = LoopRole.AUTO
    task_queue: bool = False  # Create tasks.md at init


# Keys written by LoopState.to_dict; anything else in state.json is kept in `extra`
_STATE_KEYS = (
    "iteration",
    "max_iterations",
    "stop_word",
    "started_at",
    "pane_id",
    "project_dir",
    "iteration_started_at",
    "error_counts",
    "last_commit",
    "role",
    "assigned_task",
    "completion_reason",
)


@dataclass
class LoopState:
    """Loop state persisted to state.json."""
    iteration: int
    max_iterations: int
    stop_word: str
    started_at: datetime
    pane_id: str
    project_dir: str
    iteration_started_at: Optional[datetime] = None
    error_counts: dict[str, int] = field(default_factory=dict)
    last_commit: Optional[str] = None
    role: LoopRole = LoopRole.AUTO
    assigned_task: Optional[str] = None
    completion_reason: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def display_iteration(self) -> int:
        """Iteration number as shown to the agent (1-based)."""
        return self.iteration + 1

    @property
    def iterations_remaining(self) -> int:
        return max(0, self.max_iterations - self.iteration)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        data = dict(self.extra)
        data.update({
            "iteration": self.iteration,
            "max_iterations": self.max_iterations,
            "stop_word": self.stop_word,
            "started_at": format_timestamp(self.started_at),
            "pane_id": self.pane_id,
            "project_dir": self.project_dir,
            "iteration_started_at": (
                format_timestamp(self.iteration_started_at)
                if self.iteration_started_at else None
            ),
            "error_counts": dict(self.error_counts),
            "last_commit": self.last_commit,
            "role": self.role.value,
            "assigned_task": self.assigned_task,
            "completion_reason": self.completion_reason,
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LoopState":
        """Create from dictionary.

        Raises KeyError/ValueError/TypeError on missing or invalid fields;
        the workspace turns those into StateCorruptError.
        """
        iteration = int(data["iteration"])
        max_iterations = int(data["max_iterations"])
        if iteration < 0 or max_iterations < 1:
            raise ValueError(
                f"invalid iteration counters: {iteration}/{max_iterations}"
            )
        stop_word = data["stop_word"]
        if not isinstance(stop_word, str):
            raise TypeError("stop_word must be a string")

        started = data.get("iteration_started_at")
        return cls(
            iteration=iteration,
            max_iterations=max_iterations,
            stop_word=stop_word,
            started_at=parse_timestamp(data["started_at"]),
            pane_id=str(data.get("pane_id", "")),
            project_dir=str(data["project_dir"]),
            iteration_started_at=parse_timestamp(started) if started else None,
            error_counts={str(k): int(v) for k, v in (data.get("error_counts") or {}).items()},
            last_commit=data.get("last_commit"),
            role=LoopRole.parse(data.get("role") or LoopRole.AUTO.value),
            assigned_task=data.get("assigned_task"),
            completion_reason=data.get("completion_reason"),
            extra={k: v for k, v in data.items() if k not in _STATE_KEYS},
        )


@dataclass
class LoopStatus:
    """Snapshot of where a workspace is in its lifecycle."""
    phase: LoopPhase
    iteration: int = 0
    max_iterations: int = 0
    reason: Optional[CompletionReason] = None

    @property
    def summary(self) -> str:
        if self.phase == LoopPhase.RUNNING:
            return f"running (iteration {self.iteration}/{self.max_iterations})"
        if self.phase == LoopPhase.COMPLETED:
            reason = self.reason.value if self.reason else "unknown"
            return f"completed: {reason} (iteration {self.iteration}/{self.max_iterations})"
        return self.phase.value


@dataclass(frozen=True)
class Sign:
    """A learned constraint recorded in guardrails.md."""
    label: str
    trigger: str
    instruction: str
    iteration: int


class LedgerStatus(Enum):
    """Section of the task ledger a task lives in."""
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

    @property
    def heading(self) -> str:
        return f"## {self.value}"

    @property
    def marker(self) -> str:
        return {
            LedgerStatus.PENDING: "- [ ] ",
            LedgerStatus.IN_PROGRESS: "- [~] ",
            LedgerStatus.COMPLETED: "- [x] ",
        }[self]


@dataclass
class LedgerTask:
    """A single task line of the ledger."""
    id: str
    description: str
    status: LedgerStatus = LedgerStatus.PENDING
    worker: Optional[str] = None
    raw: Optional[str] = field(default=None, compare=False, repr=False)  # Line as read from disk

    def render(self) -> str:
        """Render as a ledger line for the task's section."""
        if self.raw is not None:
            return self.raw
        line = f"{self.status.marker}[{self.id}] {self.description}".rstrip()
        if self.status == LedgerStatus.IN_PROGRESS and self.worker:
            line += f" (worker: {self.worker})"
        return line


@dataclass
class IterationRecord:
    """Record of a single agent run."""
    iteration_num: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    exit_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def duration(self) -> Optional[timedelta]:
        """Get the duration of this iteration."""
        if self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict:
        return {
            "iteration_num": self.iteration_num,
            "started_at": format_timestamp(self.started_at),
            "ended_at": format_timestamp(self.ended_at) if self.ended_at else None,
            "exit_code": self.exit_code,
            "error": self.error,
        }


@dataclass
class LoopResult:
    """Result from driving a loop to termination."""
    reason: CompletionReason
    iterations: int
    total_duration: timedelta
    history: list[IterationRecord] = field(default_factory=list)
    archived_to: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.reason in (
            CompletionReason.STOP_WORD_SEEN,
            CompletionReason.PROMISE_TAG,
            CompletionReason.JUDGED_COMPLETE,
        )

    @property
    def failed_iterations(self) -> int:
        return sum(1 for r in self.history if r.failed)

    @property
    def summary(self) -> str:
        """Brief summary for logging."""
        status = "SUCCESS" if self.success else "STOPPED"
        duration = f"{self.total_duration.total_seconds():.1f}s"
        return f"[{status}] {self.iterations} iterations in {duration}: {self.reason.value}"
