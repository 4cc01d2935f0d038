"""Data models for tasks and supervised sessions."""

from datetime import datetime, UTC
from enum import Enum

from pydantic import BaseModel, Field

from autopilot.detection.history import SessionInsights


class TaskPriority(str, Enum):
    """Queue priority of a task."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key: high runs first."""
        return {TaskPriority.HIGH: 0, TaskPriority.NORMAL: 1, TaskPriority.LOW: 2}[self]

    def __str__(self) -> str:
        """String representation of priority."""
        return self.value


class TaskStatus(str, Enum):
    """Lifecycle state of a task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"

    def __str__(self) -> str:
        """String representation of task status."""
        return self.value


class Task(BaseModel):
    """A unit of work handed to the agent.

    Only the orchestrator changes ``status``, ``error`` and the timestamps.
    """

    id: str = Field(..., description="Unique task identifier")
    description: str = Field(..., min_length=1, description="Short human readable summary")
    prompt: str | None = Field(default=None, description="Prompt sent to the agent (defaults to description)")
    context: str = Field(default="", description="Task specific context section")
    priority: TaskPriority = TaskPriority.NORMAL
    status: TaskStatus = TaskStatus.PENDING
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def effective_prompt(self) -> str:
        """Prompt body for the agent."""
        return self.prompt or self.description


class SessionStats(BaseModel):
    """Monotonic counters for one session."""

    tasks_completed: int = 0
    tasks_failed: int = 0
    actions_approved: int = 0
    actions_denied: int = 0
    errors: int = 0
    files_changed: int = 0
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class StopReason(str, Enum):
    """Why a session ended before its queue was exhausted."""

    ERROR_THRESHOLD = "error_threshold"
    UNKNOWN_ACTION = "unknown_action"
    STOPPED = "stopped"

    def __str__(self) -> str:
        """String representation of stop reason."""
        return self.value


class SessionResult(BaseModel):
    """Outcome of a session."""

    stats: SessionStats
    insights: SessionInsights
    tasks: list[Task]
    stop_reason: StopReason | None = None
    duration_seconds: float = 0.0

    @property
    def stopped_early(self) -> bool:
        """Whether the queue was abandoned."""
        return self.stop_reason is not None
