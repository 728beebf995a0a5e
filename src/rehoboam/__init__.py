"""
rehoboam: orchestration and introspection for long-running coding-agent sessions.

This package provides:
- A loop engine that drives an agent through fresh-context iterations
- A markdown task ledger shared by planner and worker loops
- Read-only scanners over the agent tool's per-user data directory
- Best-effort trace export for loop sessions

Quick Start:
    from rehoboam import LoopConfig, LoopDriver, Workspace, create_host

    workspace = Workspace.for_project(".")
    driver = LoopDriver(workspace, create_host("subprocess"))
    driver.start("Make the test suite pass", LoopConfig(max_iterations=20))
    result = driver.run()
"""

__version__ = "0.1.0"

from rehoboam.loop import (
    CompletionReason,
    LoopConfig,
    LoopDriver,
    LoopRole,
    LoopStateMachine,
    PromptComposer,
    RehoboamError,
    TaskQueue,
    Workspace,
    create_host,
)

__all__ = [
    "__version__",
    "CompletionReason",
    "LoopConfig",
    "LoopDriver",
    "LoopRole",
    "LoopStateMachine",
    "PromptComposer",
    "RehoboamError",
    "TaskQueue",
    "Workspace",
    "create_host",
]
