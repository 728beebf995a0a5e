"""
Iteration prompt composition.

Each iteration the agent starts with a fresh context and reads everything it
needs from one composed document. Sections always come in the same order:

    1. header (iteration number, role; for Auto loops also recent activity,
       broadcasts from other agents and active workers when there are any)
    2. anchor
    3. guardrails
    4. progress
    5. closing rules (role specific, include the stop word)

The output depends only on the workspace files, so identical inputs give a
byte-identical prompt.
"""

import logging
from pathlib import Path

from .activity import ActivityLog
from .coordination import Coordinator
from .models import LoopRole, LoopState
from .state_machine import LoopStateMachine
from .workspace import (
    ANCHOR_FILE,
    GUARDRAILS_FILE,
    PROGRESS_FILE,
    PROMPT_FILE,
    Workspace,
)

logger = logging.getLogger(__name__)

PLANNING_COMPLETE = "PLANNING COMPLETE"
RECENT_ACTIVITY_LINES = 5

PLANNER_RULES = """## Rules for Planners
1. **Explore first** - Read the codebase to understand structure and patterns
2. **Check existing tasks** - Run `rehoboam tasks list` before adding tasks to avoid duplicates
3. Break down the goal into discrete, independent tasks
4. Each task should be completable by a single worker in ONE iteration
5. Add tasks with `rehoboam tasks add ID "description"` using short unique IDs (e.g. T-1)
6. Do NOT implement anything yourself
7. Do NOT coordinate with workers - they work in isolation
8. When planning is complete, write "{planning_complete}" to progress.md
9. Update progress.md with your exploration findings
10. Do NOT edit anchor.md or state.json

Remember: Your job is PLANNING, not IMPLEMENTING."""

WORKER_RULES = """## Rules for Workers
1. **Claim a task FIRST** - Run `rehoboam tasks next`, then `rehoboam tasks claim ID --worker {worker}`
2. Focus ONLY on your claimed task - ignore other work
3. Do NOT explore unrelated code or add scope
4. When done, run `rehoboam tasks complete ID`
5. Update progress.md with what you accomplished
6. If blocked by something outside your task, note it in progress.md and exit
7. Do NOT edit anchor.md or state.json
8. Write "{stop_word}" to progress.md when your task is fully complete

Remember: Claim ONE task, complete it, mark it completed, then exit."""

AUTO_RULES = """## Instructions for This Iteration
1. Read the anchor to understand your task
2. Check guardrails before taking actions
3. Continue from where progress.md left off
4. Update progress.md with your work (overwrite it with the current picture)
5. If you hit a repeating problem, add a SIGN to guardrails.md
6. Do NOT edit anchor.md or state.json
7. When ALL criteria are met, write either:
   - "{stop_word}" anywhere in progress.md, OR
   - <promise>COMPLETE</promise> in progress.md
8. Exit when you've made progress (don't try to finish everything)

Remember: Progress persists, failures evaporate. Make incremental progress."""

ROLE_CONTEXT = {
    LoopRole.PLANNER: "You are a PLANNER. Explore and add tasks to tasks.md, do NOT implement.",
    LoopRole.WORKER: "You are a WORKER. Claim one pending task from tasks.md, then execute it.",
    LoopRole.AUTO: "You are in autonomous loop mode. Make incremental progress and record it in progress.md.",
}


def _section(body: str) -> str:
    return body.strip()


class PromptComposer:
    """Builds the per-iteration prompt for a workspace.

    Missing files contribute empty sections. The composer never writes
    state.json; its only side effect is the ``_iteration_prompt.md``
    scratch file.
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace
        self.activity = ActivityLog(LoopStateMachine(workspace))
        self.coordinator = Coordinator(workspace)

    def compose(self, state: LoopState) -> str:
        """Return the prompt text for the given state."""
        anchor = self.workspace.read(ANCHOR_FILE)
        guardrails = self.workspace.read(GUARDRAILS_FILE)
        progress = self.workspace.read(PROGRESS_FILE)
        iteration = state.display_iteration

        if state.role == LoopRole.PLANNER:
            prompt_parts = [
                f"# Rehoboam Loop - PLANNER - Iteration {iteration}",
                "",
                "You are a PLANNER. Your job is to explore and decompose work into tasks.",
            ]
            rules = PLANNER_RULES.format(planning_complete=PLANNING_COMPLETE)
        elif state.role == LoopRole.WORKER:
            prompt_parts = [
                f"# Rehoboam Loop - WORKER - Iteration {iteration}",
                "",
                "You are a WORKER. Your job is to complete ONE task from tasks.md.",
            ]
            if state.assigned_task:
                prompt_parts.extend(["", f"**Assigned task:** {state.assigned_task}"])
            rules = WORKER_RULES.format(
                worker=state.pane_id or "<your-id>",
                stop_word=state.stop_word,
            )
        else:
            prompt_parts = [
                f"# Rehoboam Loop - Iteration {iteration}",
                "",
                "You are in a Rehoboam loop. Each iteration starts fresh - make incremental progress.",
            ]
            prompt_parts.extend(self._shared_context())
            rules = AUTO_RULES.format(stop_word=state.stop_word)

        prompt_parts.extend([
            "",
            "## Your Task (Anchor)",
            _section(anchor),
            "",
            "## Learned Constraints (Guardrails)",
            _section(guardrails),
            "",
            "## Progress So Far",
            _section(progress),
            "",
            rules,
            "",
        ])
        return "\n".join(prompt_parts)

    def _shared_context(self) -> list[str]:
        """Recent activity, broadcasts and workers; empty blocks are left out."""
        parts = []
        recent = self.activity.get_recent_progress_summary(RECENT_ACTIVITY_LINES)
        if recent:
            parts.extend(["", "## Recent Activity", *recent])
        broadcasts = self.coordinator.recent_broadcasts()
        if broadcasts:
            parts.extend(["", "## Coordination (from other workers)", *(b.render() for b in broadcasts)])
        workers = self.coordinator.list_workers()
        if workers:
            parts.extend(["", "## Active Workers", *(f"- {w}" for w in workers)])
        return parts

    def build_iteration_prompt(self) -> Path:
        """Compose the prompt for the current state and write it to the scratch file.

        Returns:
            Path of ``_iteration_prompt.md``.
        """
        state = self.workspace.load_state()
        prompt = self.compose(state)
        self.workspace.overwrite(PROMPT_FILE, prompt)
        logger.debug(
            f"Built {state.role.value} prompt for iteration {state.display_iteration} "
            f"({len(prompt)} chars)"
        )
        return self.workspace.file_path(PROMPT_FILE)

    def build_loop_context(self) -> str:
        """Compact loop context for hook injection into an agent session."""
        state = self.workspace.load_state()
        return "\n".join([
            "## Rehoboam Loop Context",
            "",
            f"**Iteration:** {state.display_iteration}/{state.max_iterations} | "
            f"**Role:** {state.role.value} | **Stop Word:** {state.stop_word}",
            "",
            ROLE_CONTEXT[state.role],
            "",
            "### Task (anchor.md)",
            self.workspace.read(ANCHOR_FILE).strip(),
            "",
            "### Progress (progress.md)",
            self.workspace.read(PROGRESS_FILE).strip(),
            "",
            "### Guardrails",
            self.workspace.read(GUARDRAILS_FILE).strip(),
            "",
        ])


def is_planning_complete(workspace: Workspace) -> bool:
    """True iff progress.md says planning is complete, ignoring case."""
    return PLANNING_COMPLETE.casefold() in workspace.read(PROGRESS_FILE).casefold()
