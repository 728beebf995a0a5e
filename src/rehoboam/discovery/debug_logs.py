"""
Scanner for the ``debug/`` directory: one ``<session>.txt`` log per
session plus a ``latest`` symlink. Only metadata is read.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from .paths import agent_data_dir

logger = logging.getLogger(__name__)


@dataclass
class DebugLogEntry:
    """Metadata for one debug log file."""
    session_id: str
    path: Path
    size_bytes: int
    modified: datetime
    is_latest: bool = False

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "path": str(self.path),
            "size_bytes": self.size_bytes,
            "modified": self.modified.isoformat(),
            "is_latest": self.is_latest,
        }


class DebugDiscovery:
    """Lists debug logs, newest first."""

    def __init__(self, home: Optional[Union[str, Path]] = None):
        self.debug_dir = agent_data_dir(home) / "debug"

    def _latest_session(self) -> Optional[str]:
        try:
            return Path(os.readlink(self.debug_dir / "latest")).stem
        except OSError:
            return None

    def scan_debug_logs(self) -> list[DebugLogEntry]:
        if not self.debug_dir.is_dir():
            return []

        latest = self._latest_session()
        entries = []
        try:
            paths = list(self.debug_dir.iterdir())
        except OSError as e:
            logger.warning(f"Cannot list {self.debug_dir}: {e}")
            return []

        for path in paths:
            if path.suffix != ".txt" or path.is_symlink():
                continue
            try:
                stat = path.stat()
            except OSError:
                continue
            entries.append(DebugLogEntry(
                session_id=path.stem,
                path=path,
                size_bytes=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                is_latest=path.stem == latest,
            ))

        entries.sort(key=lambda e: e.modified, reverse=True)
        return entries
