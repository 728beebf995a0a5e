"""
Coordination between agents sharing one loop workspace.

Agents leave short broadcasts for each other in ``coordination.md``:

    [2026-01-15T12:34:56Z] [%3]: Worker joined: API tests

and register themselves under ``workers/<id>.md`` with a status line.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .errors import UnknownWorkerError, WorkspaceIoError
from .models import parse_timestamp, utcnow
from .workspace import Workspace

logger = logging.getLogger(__name__)

COORDINATION_FILE = "coordination.md"
COORDINATION_HEADER = "# Coordination\n\n"
WORKERS_DIR = "workers"
STATUS_HEADING = "## Status"

DEFAULT_MAX_AGE_MINUTES = 60
DEFAULT_PROMPT_BROADCASTS = 10

BROADCAST_PATTERN = re.compile(r"^\[([^\]]+)\] \[([^\]]+)\]: (.*)$")


def _stamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class Broadcast:
    """One message in coordination.md."""
    timestamp: datetime
    agent_id: str
    message: str

    def render(self) -> str:
        return f"[{_stamp(self.timestamp)}] [{self.agent_id}]: {self.message}"

    @classmethod
    def parse(cls, line: str) -> Optional["Broadcast"]:
        match = BROADCAST_PATTERN.match(line.strip())
        if not match:
            return None
        try:
            timestamp = parse_timestamp(match.group(1))
        except ValueError:
            return None
        return cls(timestamp=timestamp, agent_id=match.group(2), message=match.group(3))


def _check_id(worker_id: str) -> str:
    worker_id = worker_id.strip()
    if not worker_id or "/" in worker_id or "\\" in worker_id or worker_id.startswith("."):
        raise ValueError(f"Invalid worker id: {worker_id!r}")
    return worker_id


class Coordinator:
    """Broadcasts and worker registrations for a workspace.

    Example:
        coordinator = Coordinator(workspace)
        coordinator.register_worker("%3", "API tests")
        coordinator.broadcast("%3", "Schema changed, re-run migrations")
        for b in coordinator.read_broadcasts():
            print(b.render())
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    @property
    def workers_dir(self):
        return self.workspace.file_path(WORKERS_DIR)

    def broadcast(self, agent_id: str, message: str) -> Broadcast:
        """Append a message for other agents, creating coordination.md if needed."""
        entry = Broadcast(timestamp=utcnow(), agent_id=agent_id, message=" ".join(message.split()))
        if not self.workspace.file_path(COORDINATION_FILE).exists():
            self.workspace.overwrite(COORDINATION_FILE, COORDINATION_HEADER)
        self.workspace.append(COORDINATION_FILE, entry.render() + "\n")
        logger.debug(f"Broadcast from {agent_id}: {entry.message}")
        return entry

    def all_broadcasts(self) -> list[Broadcast]:
        broadcasts = []
        for line in self.workspace.read(COORDINATION_FILE).splitlines():
            parsed = Broadcast.parse(line)
            if parsed is not None:
                broadcasts.append(parsed)
        return broadcasts

    def read_broadcasts(
        self,
        max_age_minutes: Optional[int] = DEFAULT_MAX_AGE_MINUTES,
        now: Optional[datetime] = None,
    ) -> list[Broadcast]:
        """Broadcasts newer than max_age_minutes (all of them when None), oldest first."""
        broadcasts = self.all_broadcasts()
        if max_age_minutes is None:
            return broadcasts
        cutoff = (now or utcnow()) - timedelta(minutes=max_age_minutes)
        return [b for b in broadcasts if b.timestamp > cutoff]

    def recent_broadcasts(self, limit: int = DEFAULT_PROMPT_BROADCASTS) -> list[Broadcast]:
        """The last limit broadcasts, oldest first; independent of the clock."""
        if limit <= 0:
            return []
        return self.all_broadcasts()[-limit:]

    def register_worker(self, worker_id: str, description: str) -> None:
        """Announce a worker and write its registration file."""
        worker_id = _check_id(worker_id)
        self.broadcast(worker_id, f"Worker joined: {description}")

        try:
            self.workers_dir.mkdir(exist_ok=True)
        except OSError as e:
            raise WorkspaceIoError(self.workers_dir, "create", str(e)) from e
        self.workspace.overwrite(
            f"{WORKERS_DIR}/{worker_id}.md",
            f"# Worker: {worker_id}\n\n"
            f"Joined: {_stamp(utcnow())}\n"
            f"Description: {description}\n\n"
            f"{STATUS_HEADING}\n"
            f"Active\n",
        )
        logger.info(f"Registered worker {worker_id} in {self.workspace.path}")

    def update_worker_status(self, worker_id: str, status: str) -> None:
        """Replace the line under the worker's status heading.

        Raises:
            UnknownWorkerError: If the worker never registered.
        """
        name = f"{WORKERS_DIR}/{_check_id(worker_id)}.md"
        if not self.workspace.file_path(name).is_file():
            raise UnknownWorkerError(worker_id)

        lines = []
        skip_next = False
        for line in self.workspace.read(name).splitlines():
            if skip_next:
                skip_next = False
                continue
            if line.startswith(STATUS_HEADING):
                lines.extend([STATUS_HEADING, status])
                skip_next = True
            else:
                lines.append(line)
        self.workspace.overwrite(name, "\n".join(lines) + "\n")
        logger.info(f"Worker {worker_id} status: {status}")

    def worker_status(self, worker_id: str) -> Optional[str]:
        lines = self.workspace.read(f"{WORKERS_DIR}/{_check_id(worker_id)}.md").splitlines()
        for i, line in enumerate(lines[:-1]):
            if line.startswith(STATUS_HEADING):
                return lines[i + 1].strip()
        return None

    def list_workers(self) -> list[str]:
        """Registered worker ids, sorted."""
        if not self.workers_dir.is_dir():
            return []
        return sorted(p.stem for p in self.workers_dir.glob("*.md") if p.is_file())
