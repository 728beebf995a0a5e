"""
Scanner for ``history.jsonl``: the global timeline of user inputs across
all projects, one JSON object per line.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .paths import agent_data_dir

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 500


@dataclass
class HistoryEntry:
    """One user input from the history file."""
    display: str
    timestamp: int  # Unix milliseconds
    project: str
    session_id: str
    has_pasted: bool = False

    def to_dict(self) -> dict:
        return {
            "display": self.display,
            "timestamp": self.timestamp,
            "project": self.project,
            "session_id": self.session_id,
            "has_pasted": self.has_pasted,
        }


def _first(data: dict, *keys: str):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def parse_history_line(line: str) -> Optional[HistoryEntry]:
    """Parse one JSONL line; None for blank or malformed lines."""
    if not line.strip():
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    display = _first(data, "display", "text", "input")
    timestamp = _first(data, "timestamp", "ts")
    project = _first(data, "project", "cwd")
    session_id = _first(data, "sessionId", "session_id")
    pasted = data.get("pastedContents")

    return HistoryEntry(
        display=display if isinstance(display, str) else "",
        timestamp=timestamp if isinstance(timestamp, int) and not isinstance(timestamp, bool) else 0,
        project=project if isinstance(project, str) else "",
        session_id=session_id if isinstance(session_id, str) else "",
        has_pasted=isinstance(pasted, (str, list, dict)) and len(pasted) > 0,
    )


class HistoryDiscovery:
    """Reads the history file, newest entries first.

    Example:
        entries = HistoryDiscovery().scan_history()
        for entry in entries[:10]:
            print(entry.project, entry.display)
    """

    def __init__(self, home: Optional[Union[str, Path]] = None):
        self.path = agent_data_dir(home) / "history.jsonl"

    def scan_history(self) -> list[HistoryEntry]:
        try:
            content = self.path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning(f"Cannot read history {self.path}: {e}")
            return []

        entries = [entry for entry in map(parse_history_line, content.splitlines()) if entry]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:MAX_HISTORY_ENTRIES]
