"""
Task ledger for planner/worker loops.

The ledger is ``tasks.md`` in the loop directory:

    ## Pending
    - [ ] [T-2] write docs

    ## In Progress
    - [~] [T-1] add parser (worker: pane-3)

    ## Completed
    - [x] [T-0] scaffold project

Planners add tasks, workers claim and complete them. Every mutation reads
the whole file, rebuilds it and replaces it atomically, so concurrent
writers resolve as last-writer-wins. Lines the parser does not recognize
are kept verbatim.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .errors import DuplicateTaskError, LedgerParseWarning, WorkspaceIoError
from .models import LedgerStatus, LedgerTask
from .workspace import TASKS_FILE, TASKS_TEMPLATE, Workspace, atomic_write_text

logger = logging.getLogger(__name__)

HEADING_PATTERN = re.compile(r"^##\s+(.+?)\s*$")
TASK_BODY_PATTERN = re.compile(r"^\[([^\]]*)\]\s*(.*)$")
WORKER_OPEN = "(worker:"

_STATUS_BY_NAME = {status.value: status for status in LedgerStatus}


@dataclass
class LedgerSection:
    """A level-2 heading and the lines under it."""
    heading: str
    name: str
    lines: list[Union[LedgerTask, str]] = field(default_factory=list)

    @property
    def status(self) -> Optional[LedgerStatus]:
        return _STATUS_BY_NAME.get(self.name)

    @property
    def tasks(self) -> list[LedgerTask]:
        return [line for line in self.lines if isinstance(line, LedgerTask)]

    def index_of(self, task_id: str) -> Optional[int]:
        for i, line in enumerate(self.lines):
            if isinstance(line, LedgerTask) and line.id == task_id:
                return i
        return None

    def insert_top(self, task: LedgerTask) -> None:
        """Insert before the first task of the section."""
        self.lines.insert(self._first_task_index(), task)

    def _first_task_index(self) -> int:
        for i, line in enumerate(self.lines):
            if isinstance(line, LedgerTask):
                return i
        # No tasks yet: go after any leading notes, before trailing blank lines
        index = 0
        for i, line in enumerate(self.lines):
            if line.strip():
                index = i + 1
        return index


def parse_task_line(line: str, status: LedgerStatus) -> Optional[LedgerTask]:
    """Parse one line under the given section, or None if it is not a task.

    A task line starts with the section's marker, then ``[ID]``, then the
    description, then an optional ``(worker: WID)`` annotation.
    """
    if not line.startswith(status.marker):
        return None
    match = TASK_BODY_PATTERN.match(line[len(status.marker):])
    if not match:
        return None
    task_id = match.group(1).strip()
    if not task_id:
        return None

    rest = match.group(2)
    worker = None
    start = rest.find(WORKER_OPEN)
    if start != -1:
        end = rest.find(")", start)
        annotation = rest[start + len(WORKER_OPEN):end if end != -1 else len(rest)]
        worker = annotation.strip() or None
        rest = rest[:start]

    return LedgerTask(
        id=task_id,
        description=rest.strip(),
        status=status,
        worker=worker,
        raw=line,
    )


@dataclass
class LedgerDocument:
    """Parsed ledger: preamble lines, then sections in document order."""
    preamble: list[str] = field(default_factory=list)
    sections: list[LedgerSection] = field(default_factory=list)
    warnings: list[LedgerParseWarning] = field(default_factory=list, repr=False)

    @classmethod
    def parse(cls, content: str) -> "LedgerDocument":
        doc = cls()
        current: Optional[LedgerSection] = None

        for line_no, line in enumerate(content.splitlines(), start=1):
            heading = HEADING_PATTERN.match(line)
            if heading:
                current = LedgerSection(heading=line, name=heading.group(1))
                doc.sections.append(current)
                continue

            if current is None:
                doc.preamble.append(line)
                continue

            status = current.status
            task = parse_task_line(line, status) if status else None
            if task is not None:
                current.lines.append(task)
                continue

            current.lines.append(line)
            if status and line.strip() and not line.lstrip().startswith("<!--"):
                doc.warnings.append(LedgerParseWarning(line_no, line, current.name))

        return doc

    def render(self) -> str:
        lines = list(self.preamble)
        for section in self.sections:
            lines.append(section.heading)
            lines.extend(
                line.render() if isinstance(line, LedgerTask) else line
                for line in section.lines
            )
        while lines and not lines[-1].strip():
            lines.pop()
        return "\n".join(lines) + "\n"

    def section(self, status: LedgerStatus) -> Optional[LedgerSection]:
        for section in self.sections:
            if section.status == status:
                return section
        return None

    def ensure_section(self, status: LedgerStatus) -> LedgerSection:
        """Return the section for status, inserting it in canonical position if absent."""
        existing = self.section(status)
        if existing is not None:
            return existing

        order = list(LedgerStatus)
        later = set(order[order.index(status) + 1:])
        index = len(self.sections)
        for i, section in enumerate(self.sections):
            if section.status in later:
                index = i
                break

        previous = self.sections[index - 1].lines if index > 0 else self.preamble
        while previous and isinstance(previous[-1], str) and not previous[-1].strip():
            previous.pop()
        if index > 0 or previous:
            previous.append("")

        new_section = LedgerSection(heading=status.heading, name=status.value)
        if index < len(self.sections):
            new_section.lines.append("")
        self.sections.insert(index, new_section)
        logger.debug(f"Materialized ledger section {status.value!r}")
        return new_section

    def find(self, task_id: str) -> Optional[LedgerTask]:
        for section in self.sections:
            for task in section.tasks:
                if task.id == task_id:
                    return task
        return None

    def tasks(self, status: Optional[LedgerStatus] = None) -> list[LedgerTask]:
        result = []
        for section in self.sections:
            if section.status is None or (status and section.status != status):
                continue
            result.extend(section.tasks)
        return result

    def remove(self, status: LedgerStatus, task_id: str) -> Optional[LedgerTask]:
        section = self.section(status)
        if section is None:
            return None
        index = section.index_of(task_id)
        if index is None:
            return None
        return section.lines.pop(index)


class TaskQueue:
    """Claim/complete/add operations over a tasks.md ledger.

    Example:
        queue = TaskQueue.for_workspace(workspace)
        queue.add("T-1", "write README")
        task = queue.read_next()
        queue.claim(task.id, worker="pane-3")
        queue.complete(task.id)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    @classmethod
    def for_workspace(cls, workspace: Workspace) -> "TaskQueue":
        return cls(workspace.file_path(TASKS_FILE))

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> LedgerDocument:
        """Read and parse the ledger.

        Raises:
            WorkspaceIoError: If the file is missing or unreadable.
        """
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise WorkspaceIoError(self.path, "read", str(e)) from e
        doc = LedgerDocument.parse(content)
        for warning in doc.warnings:
            logger.warning(f"{self.path}: {warning}")
        return doc

    def save(self, doc: LedgerDocument) -> None:
        atomic_write_text(self.path, doc.render())
        logger.debug(f"Rewrote ledger {self.path}")

    def read_pending(self) -> list[LedgerTask]:
        """Pending tasks in document order; empty if the ledger is missing."""
        if not self.exists:
            return []
        return self.load().tasks(LedgerStatus.PENDING)

    def read_next(self) -> Optional[LedgerTask]:
        pending = self.read_pending()
        return pending[0] if pending else None

    def list_tasks(self) -> list[LedgerTask]:
        if not self.exists:
            return []
        return self.load().tasks()

    def claim(self, task_id: str, worker: str) -> Optional[LedgerTask]:
        """Move a Pending task to the top of In Progress, annotated with worker.

        Returns:
            The In Progress task, or None if the id is not pending. A task
            already in progress is returned unchanged.
        """
        doc = self.load()

        in_progress = doc.section(LedgerStatus.IN_PROGRESS)
        if in_progress is not None:
            index = in_progress.index_of(task_id)
            if index is not None:
                logger.info(f"Task {task_id} already in progress")
                return in_progress.lines[index]

        pending = doc.remove(LedgerStatus.PENDING, task_id)
        if pending is None:
            logger.info(f"Task {task_id} not pending, nothing to claim")
            return None

        claimed = LedgerTask(
            id=pending.id,
            description=pending.description,
            status=LedgerStatus.IN_PROGRESS,
            worker=worker,
        )
        doc.ensure_section(LedgerStatus.IN_PROGRESS).insert_top(claimed)
        self.save(doc)
        logger.info(f"Task {task_id} claimed by {worker}")
        return claimed

    def complete(self, task_id: str) -> Optional[LedgerTask]:
        """Move an In Progress task to the top of Completed, dropping the worker."""
        doc = self.load()

        active = doc.remove(LedgerStatus.IN_PROGRESS, task_id)
        if active is None:
            logger.info(f"Task {task_id} not in progress, nothing to complete")
            return None

        done = LedgerTask(id=active.id, description=active.description, status=LedgerStatus.COMPLETED)
        doc.ensure_section(LedgerStatus.COMPLETED).insert_top(done)
        self.save(doc)
        logger.info(f"Task {task_id} completed")
        return done

    def add(self, task_id: str, description: str) -> LedgerTask:
        """Insert a task at the top of Pending, creating the ledger if needed.

        Raises:
            DuplicateTaskError: If the id is already anywhere in the ledger.
        """
        task_id = task_id.strip()
        description = " ".join(description.split())
        if not task_id or "[" in task_id or "]" in task_id:
            raise ValueError(f"Invalid task id: {task_id!r}")

        doc = self.load() if self.exists else LedgerDocument.parse(TASKS_TEMPLATE)
        if doc.find(task_id) is not None:
            raise DuplicateTaskError(task_id)

        task = LedgerTask(id=task_id, description=description, status=LedgerStatus.PENDING)
        doc.ensure_section(LedgerStatus.PENDING).insert_top(task)
        self.save(doc)
        logger.info(f"Task {task_id} added: {description}")
        return task
