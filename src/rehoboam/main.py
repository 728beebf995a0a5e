"""
Command line interface for rehoboam.

Usage:
    rehoboam init "Refactor the parser" --max-iterations 20
    rehoboam run --host tmux --pane-id %3
    rehoboam status --json
    rehoboam tasks add T-1 "write README"
    rehoboam tasks claim T-1 --worker %3
    rehoboam broadcast "schema changed" --agent %3
    rehoboam dashboard
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import Settings, load_settings
from .dashboard import AgentDataDashboard
from .loop.coordination import Coordinator
from .loop.driver import LoopDriver
from .loop.errors import ConfigError, RehoboamError
from .loop.host import HostKind, create_host
from .loop.models import CompletionReason, LoopConfig, LoopRole
from .loop.prompts import PromptComposer
from .loop.state_machine import LoopStateMachine
from .loop.tasks import TaskQueue
from .loop.workspace import Workspace
from .telemetry import TraceEmitter

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE = "rehoboam.log"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def setup_logging(verbose: bool = False, workspace: Optional[Workspace] = None) -> None:
    """Configure the root logger: stderr, plus a log file inside an existing workspace."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if workspace is not None and workspace.path.is_dir():
        handlers.append(logging.FileHandler(workspace.path / LOG_FILE))

    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
    )
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rehoboam",
        description="Rehoboam - iterative agent loops with a shared task ledger",
    )
    parser.add_argument("--config", help="Path to config.yaml (default: $REHOBOAM_CONFIG or ~/.config/rehoboam/config.yaml)")
    parser.add_argument("--project", "-C", default=".", help="Project directory (default: current directory)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    commands = parser.add_subparsers(dest="command", required=True)

    def add_loop_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--max-iterations", "-n", type=int, help="Maximum iterations")
        sub.add_argument("--stop-word", help="Word the agent writes to progress.md when done")
        sub.add_argument("--role", choices=[r.value for r in LoopRole], help="Loop role")
        sub.add_argument("--task-queue", action="store_true", default=None, help="Create tasks.md at init")

    init = commands.add_parser("init", help="Initialize a loop workspace")
    init.add_argument("prompt", help="Task for the agent")
    add_loop_options(init)

    run = commands.add_parser("run", help="Run (or resume) the loop")
    run.add_argument("prompt", nargs="?", help="Task for a new loop (omit to resume)")
    run.add_argument("--fresh", action="store_true", help="Archive an active loop and start over")
    run.add_argument("--host", choices=[k.value for k in HostKind], help="Agent host")
    run.add_argument("--pane-id", help="tmux pane hosting the agent (default: $TMUX_PANE)")
    run.add_argument("--no-archive", action="store_true", help="Keep the workspace after completion")
    run.add_argument("--git-checkpoint", action="store_true", default=None, help="Commit after each iteration")
    run.add_argument("--judge", action="store_true", default=None, help="Judge progress.md after each iteration")
    add_loop_options(run)

    status = commands.add_parser("status", help="Show loop status")
    status.add_argument("--json", action="store_true", help="Print status as JSON")

    commands.add_parser("archive", help="Archive the loop workspace to .done")
    commands.add_parser("prompt", help="Build the iteration prompt and print its path")
    commands.add_parser("context", help="Print the loop context block for hook injection")

    guardrail = commands.add_parser("guardrail", help="Add a sign to guardrails.md")
    guardrail.add_argument("label")
    guardrail.add_argument("--trigger", required=True)
    guardrail.add_argument("--instruction", required=True)

    error = commands.add_parser("error", help="Record an error in errors.log")
    error.add_argument("message")

    tasks = commands.add_parser("tasks", help="Manage the task ledger")
    task_commands = tasks.add_subparsers(dest="task_command", required=True)
    task_commands.add_parser("list", help="List all tasks")
    task_commands.add_parser("next", help="Show the next pending task")
    claim = task_commands.add_parser("claim", help="Claim a pending task")
    claim.add_argument("task_id")
    claim.add_argument("--worker", required=True)
    complete = task_commands.add_parser("complete", help="Complete an in-progress task")
    complete.add_argument("task_id")
    add = task_commands.add_parser("add", help="Add a pending task")
    add.add_argument("task_id")
    add.add_argument("description")

    broadcast = commands.add_parser("broadcast", help="Leave a message for other agents in coordination.md")
    broadcast.add_argument("message")
    broadcast.add_argument("--agent", help="Sender id (default: $TMUX_PANE)")

    workers = commands.add_parser("workers", help="Register and list workers")
    worker_commands = workers.add_subparsers(dest="worker_command", required=True)
    worker_commands.add_parser("list", help="List registered workers with their status")
    register = worker_commands.add_parser("register", help="Register a worker")
    register.add_argument("worker_id")
    register.add_argument("description")
    worker_status = worker_commands.add_parser("status", help="Set a worker's status")
    worker_status.add_argument("worker_id")
    worker_status.add_argument("status")

    dashboard = commands.add_parser("dashboard", help="Show agent data dashboard")
    dashboard.add_argument("--json", action="store_true", help="Print status as JSON")

    return parser


def resolve_workspace(project: str, settings: Settings) -> Workspace:
    """The active workspace at or above project, else the one project would get."""
    return Workspace.find(project, settings.dir_name) or Workspace.for_project(project, settings.dir_name)


def require_active(workspace: Workspace) -> Workspace:
    if not workspace.is_active:
        raise ConfigError(f"No active loop at {workspace.path}")
    return workspace


def loop_config(args: argparse.Namespace, settings: Settings, pane_id: str = "") -> LoopConfig:
    return LoopConfig(
        max_iterations=args.max_iterations if args.max_iterations is not None else settings.max_iterations,
        stop_word=args.stop_word if args.stop_word is not None else settings.stop_word,
        pane_id=pane_id,
        role=LoopRole.parse(args.role) if args.role else settings.role,
        task_queue=args.task_queue if args.task_queue is not None else settings.task_queue,
    )


def cmd_init(args, settings: Settings, workspace: Workspace) -> int:
    workspace = Workspace.for_project(args.project, settings.dir_name)
    workspace.init(args.prompt, loop_config(args, settings, settings.pane_id))
    print(workspace.path)
    return EXIT_OK


def cmd_run(args, settings: Settings, workspace: Workspace) -> int:
    if not workspace.is_active:
        workspace = Workspace.for_project(args.project, settings.dir_name)

    host_kind = HostKind(args.host) if args.host else settings.agent_host
    pane_id = args.pane_id or settings.pane_id
    host = create_host(
        host_kind,
        command=settings.agent_command,
        timeout=settings.agent_timeout,
        poll_interval=settings.poll_interval,
    )
    driver = LoopDriver(
        workspace,
        host,
        archive_on_complete=settings.archive_on_complete and not args.no_archive,
        git_checkpoint=args.git_checkpoint if args.git_checkpoint is not None else settings.git_checkpoint,
        emitter=TraceEmitter.from_env(settings.telemetry_endpoint, settings.service_name),
        judge=args.judge if args.judge is not None else settings.judge,
    )

    driver.start(args.prompt, loop_config(args, settings, pane_id), fresh=args.fresh)
    if args.pane_id:
        driver.machine.update_state(pane_id=args.pane_id)

    result = driver.run()
    print(result.summary)
    if result.archived_to:
        print(f"Archived to {result.archived_to}")
    return EXIT_CANCELLED if result.reason == CompletionReason.CANCELLED else EXIT_OK


def cmd_status(args, settings: Settings, workspace: Workspace) -> int:
    machine = LoopStateMachine(workspace)
    status = machine.status()
    if args.json:
        payload = {
            "workspace": str(workspace.path),
            "phase": status.phase.value,
            "iteration": status.iteration,
            "max_iterations": status.max_iterations,
            "reason": status.reason.value if status.reason else None,
        }
        if workspace.is_active:
            payload["state"] = machine.load_state().to_dict()
        print(json.dumps(payload, indent=2))
    else:
        print(f"{workspace.path}: {status.summary}")
    return EXIT_OK


def cmd_archive(args, settings: Settings, workspace: Workspace) -> int:
    archived = LoopStateMachine(workspace).archive()
    print(f"Archived to {archived}" if archived else f"Nothing to archive at {workspace.path}")
    return EXIT_OK


def cmd_prompt(args, settings: Settings, workspace: Workspace) -> int:
    print(PromptComposer(require_active(workspace)).build_iteration_prompt())
    return EXIT_OK


def cmd_context(args, settings: Settings, workspace: Workspace) -> int:
    print(PromptComposer(require_active(workspace)).build_loop_context())
    return EXIT_OK


def cmd_guardrail(args, settings: Settings, workspace: Workspace) -> int:
    LoopStateMachine(require_active(workspace)).add_guardrail(args.label, args.trigger, args.instruction)
    return EXIT_OK


def cmd_error(args, settings: Settings, workspace: Workspace) -> int:
    LoopStateMachine(require_active(workspace)).log_error(args.message)
    return EXIT_OK


def cmd_tasks(args, settings: Settings, workspace: Workspace) -> int:
    queue = TaskQueue.for_workspace(workspace)

    if args.task_command == "list":
        for task in queue.list_tasks():
            print(task.render())
    elif args.task_command == "next":
        task = queue.read_next()
        if task is None:
            print("No pending tasks")
        else:
            print(f"{task.id}\t{task.description}")
    elif args.task_command == "claim":
        task = queue.claim(args.task_id, args.worker)
        if task is None:
            print(f"Task {args.task_id} is not pending")
            return EXIT_ERROR
        print(task.render())
    elif args.task_command == "complete":
        task = queue.complete(args.task_id)
        if task is None:
            print(f"Task {args.task_id} is not in progress")
            return EXIT_ERROR
        print(task.render())
    elif args.task_command == "add":
        if not workspace.path.is_dir():
            raise ConfigError(f"No loop workspace at {workspace.path}")
        print(queue.add(args.task_id, args.description).render())
    return EXIT_OK


def cmd_broadcast(args, settings: Settings, workspace: Workspace) -> int:
    agent_id = args.agent or settings.pane_id
    if not agent_id:
        raise ConfigError("No sender id: pass --agent or run inside tmux")
    print(Coordinator(require_active(workspace)).broadcast(agent_id, args.message).render())
    return EXIT_OK


def cmd_workers(args, settings: Settings, workspace: Workspace) -> int:
    coordinator = Coordinator(require_active(workspace))

    if args.worker_command == "list":
        for worker_id in coordinator.list_workers():
            print(f"{worker_id}\t{coordinator.worker_status(worker_id) or 'unknown'}")
    elif args.worker_command == "register":
        coordinator.register_worker(args.worker_id, args.description)
    elif args.worker_command == "status":
        coordinator.update_worker_status(args.worker_id, args.status)
    return EXIT_OK


def cmd_dashboard(args, settings: Settings, workspace: Workspace) -> int:
    dashboard = AgentDataDashboard(
        home=settings.discovery_home,
        workspace=workspace if workspace.path.is_dir() else None,
    )
    if args.json:
        print(dashboard.get_status_json())
    else:
        dashboard.print_status()
    return EXIT_OK


COMMANDS = {
    "init": cmd_init,
    "run": cmd_run,
    "status": cmd_status,
    "archive": cmd_archive,
    "prompt": cmd_prompt,
    "context": cmd_context,
    "guardrail": cmd_guardrail,
    "error": cmd_error,
    "tasks": cmd_tasks,
    "broadcast": cmd_broadcast,
    "workers": cmd_workers,
    "dashboard": cmd_dashboard,
}


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
        workspace = resolve_workspace(str(Path(args.project).resolve()), settings)
        setup_logging(args.verbose, workspace)
        return COMMANDS[args.command](args, settings, workspace)
    except RehoboamError as e:
        setup_logging(args.verbose)
        logger.error(str(e))
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
