"""Task queue, live session state and the session orchestrator."""

from autopilot.session.models import (
    SessionResult,
    SessionStats,
    StopReason,
    Task,
    TaskPriority,
    TaskStatus,
)
from autopilot.session.observer import ControlCommand, ControlType, DashboardState
from autopilot.session.orchestrator import SessionOrchestrator
from autopilot.session.queue import TaskQueue, order_tasks, parse_tasks

__all__ = [
    "ControlCommand",
    "ControlType",
    "DashboardState",
    "SessionOrchestrator",
    "SessionResult",
    "SessionStats",
    "StopReason",
    "Task",
    "TaskPriority",
    "TaskQueue",
    "TaskStatus",
    "order_tasks",
    "parse_tasks",
]
