"""Task queue loaded from a JSON task source."""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from autopilot.exceptions import TaskQueueError
from autopilot.logging import get_logger
from autopilot.session.models import Task, TaskStatus

logger = get_logger("autopilot.session.queue")


def order_tasks(tasks: list[Task]) -> list[Task]:
    """Stable sort by priority: high, then normal, then low."""
    return sorted(tasks, key=lambda task: task.priority.rank)


def parse_tasks(entries: list[Any], source: str = "<memory>") -> list[Task]:
    """Validate raw task entries.

    Malformed entries are skipped with a warning. Entries without an ID get
    ``task-<n>`` from their position in the source.

    Args:
        entries: Raw entries (dicts, or bare strings used as descriptions)
        source: Where the entries came from, for log messages

    Returns:
        list[Task]: Valid tasks in source order
    """
    tasks: list[Task] = []
    seen: set[str] = set()

    for index, entry in enumerate(entries, start=1):
        if isinstance(entry, str):
            entry = {"description": entry}
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed task entry", source=source, index=index, entry=repr(entry)[:80])
            continue

        data = {"id": f"task-{index}", **entry}
        data.setdefault("description", data.get("prompt"))
        data["id"] = str(data["id"])
        data.pop("status", None)

        try:
            task = Task.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "Skipping invalid task",
                source=source,
                index=index,
                errors=[err["msg"] for err in e.errors()],
            )
            continue

        if task.id in seen:
            logger.warning("Skipping duplicate task id", source=source, task_id=task.id)
            continue
        seen.add(task.id)
        tasks.append(task)

    return tasks


class TaskQueue:
    """Ordered collection of tasks for a session.

    Attributes:
        source: JSON file the tasks came from (None for in-memory queues)
        tasks: All tasks in run order
    """

    def __init__(self, tasks: list[Task] | None = None, source: Path | None = None):
        self.source = source
        self.tasks = order_tasks(tasks or [])

    @classmethod
    def from_file(cls, path: Path | str) -> "TaskQueue":
        """Load tasks from a JSON file.

        The file holds either a list of tasks or an object with a ``tasks``
        list.

        Args:
            path: Task file

        Returns:
            TaskQueue: Queue of valid tasks

        Raises:
            TaskQueueError: If the file is missing or not JSON
        """
        path = Path(path)
        if not path.exists():
            raise TaskQueueError(f"Task source not found: {path}")

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise TaskQueueError(f"Task source {path} is not valid JSON: {e}") from e

        if isinstance(data, dict):
            data = data.get("tasks", [data])
        if not isinstance(data, list):
            raise TaskQueueError(f"Task source {path} must hold a list of tasks")

        tasks = parse_tasks(data, source=str(path))
        logger.info("Loaded task queue", source=str(path), tasks=len(tasks), skipped=len(data) - len(tasks))
        return cls(tasks, source=path)

    def pending(self) -> list[Task]:
        """Tasks that have not run yet, in run order."""
        return [task for task in self.tasks if task.status == TaskStatus.PENDING]

    def get(self, task_id: str) -> Task | None:
        """Find a task by ID."""
        return next((task for task in self.tasks if task.id == task_id), None)

    def counts(self) -> dict[str, int]:
        """Number of tasks per status."""
        counts = {status.value: 0 for status in TaskStatus}
        for task in self.tasks:
            counts[task.status.value] += 1
        counts["total"] = len(self.tasks)
        return counts

    def save(self) -> None:
        """Write task states back to the source file."""
        if self.source is None:
            return
        payload = {"tasks": [task.model_dump(mode="json", exclude_none=True) for task in self.tasks]}
        self.source.write_text(json.dumps(payload, indent=2), encoding="utf-8")
