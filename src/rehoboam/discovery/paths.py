"""Locations inside the agent tool's per-user data directory."""

import os
from pathlib import Path
from typing import Optional, Union

AGENT_DATA_DIR = ".claude"


def agent_data_dir(home: Optional[Union[str, Path]] = None) -> Path:
    """``<home>/.claude``, with home defaulting to ``$HOME``."""
    if home is None:
        home = os.environ.get("HOME") or Path.home()
    return Path(home) / AGENT_DATA_DIR


def as_count(value) -> int:
    """Non-negative integer from a JSON value, 0 for anything else."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))
