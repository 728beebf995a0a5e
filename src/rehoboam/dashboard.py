"""
Dashboard over the agent tool's data directory and the current loop.

Combines the discovery scanners into one status dict and prints a plain
text summary of it.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .discovery import (
    DebugDiscovery,
    FacetDiscovery,
    HistoryDiscovery,
    StatsDiscovery,
    TeamDiscovery,
)
from .loop.state_machine import LoopStateMachine
from .loop.tasks import TaskQueue
from .loop.workspace import Workspace

logger = logging.getLogger(__name__)

RECENT_HISTORY = 5


class AgentDataDashboard:
    """
    Dashboard for agent session data.

    Provides:
    - Recent prompts from the history file
    - Usage statistics from the stats cache
    - Debug log index
    - Session quality from facets
    - Team membership
    - Status of the loop in the current project, if any

    Example:
        dashboard = AgentDataDashboard(workspace=Workspace.find())
        dashboard.print_status()
        status = dashboard.get_status_json()
    """

    def __init__(
        self,
        home: Optional[Union[str, Path]] = None,
        workspace: Optional[Workspace] = None,
    ):
        """Initialize dashboard.

        Args:
            home: Home directory holding the agent data dir (default: $HOME)
            workspace: Loop workspace to include in the status
        """
        self.home = home
        self.workspace = workspace
        self.history = HistoryDiscovery(home)
        self.stats = StatsDiscovery(home)
        self.debug = DebugDiscovery(home)
        self.facets = FacetDiscovery(home)
        self.teams = TeamDiscovery(home)

    def get_status(self) -> Dict[str, Any]:
        """Get complete status as dictionary."""
        history = self.history.scan_history()
        debug_logs = self.debug.scan_debug_logs()
        latest_log = next((entry for entry in debug_logs if entry.is_latest), None)

        return {
            "history": {
                "entries": len(history),
                "projects": len({entry.project for entry in history if entry.project}),
                "recent": [entry.to_dict() for entry in history[:RECENT_HISTORY]],
            },
            "stats": self.stats.scan_stats().to_dict(),
            "debug_logs": {
                "count": len(debug_logs),
                "total_bytes": sum(entry.size_bytes for entry in debug_logs),
                "latest": latest_log.to_dict() if latest_log else None,
            },
            "quality": self.facets.scan_facets().to_dict(),
            "teams": {name: team.to_dict() for name, team in self.teams.scan_teams().items()},
            "loop": self._loop_status(),
        }

    def _loop_status(self) -> Optional[Dict[str, Any]]:
        if self.workspace is None:
            return None
        status = LoopStateMachine(self.workspace).status()
        loop: Dict[str, Any] = {
            "workspace": str(self.workspace.path),
            "phase": status.phase.value,
            "iteration": status.iteration,
            "max_iterations": status.max_iterations,
            "reason": status.reason.value if status.reason else None,
        }
        queue = TaskQueue.for_workspace(self.workspace)
        if queue.exists:
            tasks = queue.list_tasks()
            loop["tasks"] = {
                s: sum(1 for t in tasks if t.status.value == s)
                for s in ("Pending", "In Progress", "Completed")
            }
        return loop

    def get_status_json(self, indent: int = 2) -> str:
        return json.dumps(self.get_status(), indent=indent, default=str)

    def print_status(self) -> None:
        """Print formatted status summary to stdout."""
        status = self.get_status()

        print("\n" + "=" * 70)
        print("REHOBOAM DASHBOARD")
        print("=" * 70)

        loop = status["loop"]
        if loop:
            print(f"\nLoop: {loop['phase']} ({loop['iteration']}/{loop['max_iterations']})")
            if loop["reason"]:
                print(f"Reason: {loop['reason']}")
            if "tasks" in loop:
                counts = loop["tasks"]
                print(
                    f"Tasks: {counts['Pending']} pending | "
                    f"{counts['In Progress']} in progress | "
                    f"{counts['Completed']} completed"
                )

        stats = status["stats"]
        print(
            f"\nSessions: {stats['total_sessions']} | "
            f"Messages: {stats['total_messages']} | "
            f"Days active: {stats['days_active']}"
        )
        if stats["models"]:
            print("\nTokens by model:")
            for model, tokens in sorted(stats["models"].items(), key=lambda item: -item[1]):
                print(f"  {model:<40} {tokens:>14,}")

        quality = status["quality"]
        if quality["total_sessions"]:
            rate = quality["achieved_rate"]
            rate_str = f"{rate:.1%}" if rate is not None else "n/a"
            print(f"\nSession quality: {quality['total_sessions']} sessions, {rate_str} achieved")
            for name, count in list(quality["friction"].items())[:3]:
                print(f"  friction {name}: {count}")

        debug = status["debug_logs"]
        print(f"\nDebug logs: {debug['count']} ({debug['total_bytes']:,} bytes)")

        if status["teams"]:
            print("\nTeams:")
            for name, team in status["teams"].items():
                print(f"  {name:<20} {len(team['members'])} members")

        history = status["history"]
        print(f"\nRecent prompts ({history['entries']} total, {history['projects']} projects):")
        print("-" * 70)
        for entry in history["recent"]:
            when = datetime.fromtimestamp(entry["timestamp"] / 1000, tz=timezone.utc)
            project = Path(entry["project"]).name if entry["project"] else "-"
            display = entry["display"].replace("\n", " ")[:40]
            print(f"{when:%Y-%m-%d %H:%M}  {project[:18]:<18} {display}")

        print("=" * 70 + "\n")
