"""
Rehoboam loop engine.

Drives an external agent through short, stateless iterations over one task,
carrying state across iterations in an on-disk workspace, and coordinates
planner/worker hand-off through a shared markdown task ledger.
"""

from .coordination import Broadcast, Coordinator
from .detector import CompletionDetector, DetectionResult
from .driver import LoopDriver
from .errors import (
    AgentHostError,
    ConfigError,
    DuplicateTaskError,
    IterationLimitError,
    LedgerParseWarning,
    RehoboamError,
    StateCorruptError,
    UnknownWorkerError,
    WorkspaceActiveError,
    WorkspaceIoError,
)
from .host import (
    BaseAgentHost,
    HostKind,
    HostResult,
    SubprocessAgentHost,
    TmuxAgentHost,
    create_host,
)
from .judge import JudgeDecision, JudgeVerdict, LoopJudge
from .models import (
    CompletionReason,
    IterationRecord,
    LedgerStatus,
    LedgerTask,
    LoopConfig,
    LoopPhase,
    LoopResult,
    LoopRole,
    LoopState,
    LoopStatus,
    Sign,
)
from .prompts import PromptComposer, is_planning_complete
from .state_machine import LoopStateMachine
from .tasks import LedgerDocument, TaskQueue
from .workspace import Workspace, atomic_write_text, init_workspace

__all__ = [
    "AgentHostError",
    "BaseAgentHost",
    "Broadcast",
    "CompletionDetector",
    "CompletionReason",
    "ConfigError",
    "Coordinator",
    "DetectionResult",
    "DuplicateTaskError",
    "HostKind",
    "HostResult",
    "IterationLimitError",
    "IterationRecord",
    "JudgeDecision",
    "JudgeVerdict",
    "LedgerDocument",
    "LedgerParseWarning",
    "LedgerStatus",
    "LedgerTask",
    "LoopConfig",
    "LoopDriver",
    "LoopJudge",
    "LoopPhase",
    "LoopResult",
    "LoopRole",
    "LoopState",
    "LoopStateMachine",
    "LoopStatus",
    "PromptComposer",
    "RehoboamError",
    "Sign",
    "StateCorruptError",
    "SubprocessAgentHost",
    "TaskQueue",
    "TmuxAgentHost",
    "UnknownWorkerError",
    "Workspace",
    "WorkspaceActiveError",
    "WorkspaceIoError",
    "atomic_write_text",
    "create_host",
    "init_workspace",
    "is_planning_complete",
]
