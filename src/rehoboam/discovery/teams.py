"""
Scanner for team configurations in ``teams/<name>/config.json``.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .paths import agent_data_dir

logger = logging.getLogger(__name__)


@dataclass
class TeamMember:
    name: str
    agent_id: str = ""
    agent_type: str = "general-purpose"
    model: Optional[str] = None
    cwd: Optional[str] = None
    tmux_pane_id: Optional[str] = None


@dataclass
class TeamConfig:
    """A team, named after its directory."""
    team_name: str
    members: list[TeamMember] = field(default_factory=list)
    lead_agent_id: Optional[str] = None
    lead_session_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "team_name": self.team_name,
            "members": [m.name for m in self.members],
            "lead_agent_id": self.lead_agent_id,
            "lead_session_id": self.lead_session_id,
        }


def _opt_str(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def parse_team_config(path: Path) -> TeamConfig:
    """Parse one config.json.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If it is not a JSON object.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("team config must be a JSON object")

    members = []
    for item in data.get("members") or []:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        members.append(TeamMember(
            name=item["name"],
            agent_id=_opt_str(item.get("agentId")) or "",
            agent_type=_opt_str(item.get("agentType")) or "general-purpose",
            model=_opt_str(item.get("model")),
            cwd=_opt_str(item.get("cwd")),
            tmux_pane_id=_opt_str(item.get("tmuxPaneId")),
        ))

    return TeamConfig(
        team_name=path.parent.name,
        members=members,
        lead_agent_id=_opt_str(data.get("leadAgentId")),
        lead_session_id=_opt_str(data.get("leadSessionId")),
    )


class TeamDiscovery:
    """Maps team name to TeamConfig; malformed configs are skipped."""

    def __init__(self, home: Optional[Union[str, Path]] = None):
        self.teams_dir = agent_data_dir(home) / "teams"

    def scan_teams(self) -> dict[str, TeamConfig]:
        teams: dict[str, TeamConfig] = {}
        if not self.teams_dir.is_dir():
            return teams

        try:
            team_dirs = sorted(p for p in self.teams_dir.iterdir() if p.is_dir())
        except OSError as e:
            logger.warning(f"Cannot list {self.teams_dir}: {e}")
            return teams

        for team_dir in team_dirs:
            config_path = team_dir / "config.json"
            if not config_path.is_file():
                continue
            try:
                config = parse_team_config(config_path)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to parse team config {config_path}, skipping: {e}")
                continue
            logger.debug(f"Discovered team {config.team_name} ({len(config.members)} members)")
            teams[config.team_name] = config
        return teams

    def find_member_by_pane(self, pane_id: str) -> Optional[tuple[str, TeamMember]]:
        """Find the team member running in a tmux pane."""
        for name, team in self.scan_teams().items():
            for member in team.members:
                if member.tmux_pane_id == pane_id:
                    return name, member
        return None
