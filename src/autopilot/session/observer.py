"""Live session state for dashboards and other observers.

DashboardState keeps a snapshot of the running session and fans every update
out to subscriber queues. Transport (websocket, SSE, terminal UI) is left to
whoever drains those queues. Inbound control messages from the same
observers are validated here and handed to registered control handlers.
"""

import asyncio
from collections import deque
from collections.abc import Callable
from datetime import datetime, UTC
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from autopilot.detection.history import SessionInsights
from autopilot.detection.models import ActionEvent, RiskAssessment
from autopilot.logging import get_logger
from autopilot.policy.engine import Decision
from autopilot.session.models import SessionStats, Task

logger = get_logger("autopilot.session.observer")

MAX_ACTIONS = 100
SUBSCRIBER_QUEUE_SIZE = 256


class ControlType(str, Enum):
    """Inbound control message types."""

    APPROVE = "approve"
    DENY = "deny"
    PAUSE = "pause"
    RESUME = "resume"

    def __str__(self) -> str:
        """String representation of control type."""
        return self.value


class ControlCommand(BaseModel):
    """A control message sent by an observer.

    Approve and deny carry the approval ID as ``actionId`` on the wire.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: ControlType
    action_id: str | None = Field(default=None, alias="actionId")

    @model_validator(mode="after")
    def check_action_id(self) -> "ControlCommand":
        if self.type in (ControlType.APPROVE, ControlType.DENY) and not self.action_id:
            raise ValueError(f"{self.type.value} requires actionId")
        return self


ControlHandler = Callable[[ControlCommand], None]


class DashboardState:
    """Observable snapshot of one session.

    Attributes:
        mode: Session mode
        paused: Whether the session is paused at a task boundary
        current_task: Task being run, if any
        queue: Every task of the session with its status
        actions: The most recent actions (oldest first)
        stats: Latest session statistics
        insights: Latest session insights
        session_complete: Whether the session has finished
    """

    def __init__(self, max_actions: int = MAX_ACTIONS, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.mode: str | None = None
        self.paused = False
        self.current_task: dict[str, Any] | None = None
        self.queue: list[dict[str, Any]] = []
        self.actions: deque[dict[str, Any]] = deque(maxlen=max_actions)
        self.stats: dict[str, Any] = {}
        self.insights: dict[str, Any] = {}
        self.session_complete = False
        self.queue_size = queue_size
        self.dropped = 0
        self._subscribers: list[asyncio.Queue] = []
        self._control_handlers: list[ControlHandler] = []

    def snapshot(self) -> dict[str, Any]:
        """Full state, as sent to new subscribers."""
        return {
            "mode": self.mode,
            "paused": self.paused,
            "current_task": self.current_task,
            "queue": list(self.queue),
            "actions": list(self.actions),
            "stats": dict(self.stats),
            "insights": dict(self.insights),
            "session_complete": self.session_complete,
        }

    def subscribe(self) -> asyncio.Queue:
        """Register a subscriber.

        Returns:
            asyncio.Queue: Message queue seeded with a ``state`` snapshot
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        queue.put_nowait({"type": "state", "data": self.snapshot()})
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        """Remove a subscriber queue."""
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def broadcast(self, kind: str, data: Any = None) -> None:
        """Send a message to every subscriber.

        Delivery is at most once: a subscriber whose queue is full misses the
        message.

        Args:
            kind: Message type
            data: JSON-ready message payload
        """
        message = {"type": kind, "data": data}
        for queue in self._subscribers:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                self.dropped += 1
                logger.debug("Dropping message for slow subscriber", kind=kind)

    def update_mode(self, mode: str) -> None:
        self.mode = str(mode)
        self.broadcast("mode", self.mode)

    def update_paused(self, paused: bool) -> None:
        self.paused = paused
        self.broadcast("paused" if paused else "resumed", paused)

    def update_stats(self, stats: SessionStats) -> None:
        self.stats = stats.model_dump(mode="json")
        self.broadcast("stats", self.stats)

    def update_insights(self, insights: SessionInsights) -> None:
        self.insights = insights.model_dump(mode="json")
        self.broadcast("insights", self.insights)

    def update_task(self, task: Task | None) -> None:
        self.current_task = task.model_dump(mode="json") if task else None
        self.broadcast("task", self.current_task)

    def update_queue(self, tasks: list[Task]) -> None:
        self.queue = [task.model_dump(mode="json") for task in tasks]
        self.broadcast("queue", self.queue)

    def add_action(
        self,
        action: ActionEvent,
        risk: RiskAssessment,
        decision: Decision,
        approval_id: str | None = None,
    ) -> dict[str, Any]:
        """Record a classified action and broadcast it.

        Args:
            action: Detected action
            risk: Its risk assessment
            decision: Policy decision
            approval_id: Approval ID when the action waits on a human

        Returns:
            dict: The recorded entry
        """
        entry = {
            "id": approval_id,
            "type": action.type.value,
            "target": action.target,
            "raw_text": action.raw_text,
            "timestamp": action.timestamp.isoformat(),
            "risk": risk.level.value,
            "score": round(risk.score, 3),
            "factors": risk.factor_names,
            "decision": decision.outcome.value,
            "reason": decision.reason,
            "status": "pending" if approval_id else decision.outcome.value,
        }
        self.actions.append(entry)
        self.broadcast("action", entry)
        return entry

    def action_resolved(self, approval_id: str, verdict: str) -> None:
        """Mark a held action as resolved."""
        for entry in self.actions:
            if entry["id"] == approval_id:
                entry["status"] = str(verdict)
        self.broadcast("action_resolved", {"id": approval_id, "verdict": str(verdict)})

    def task_completed(self, task: Task) -> None:
        self.broadcast("task_completed", task.model_dump(mode="json"))

    def task_failed(self, task: Task) -> None:
        self.broadcast("task_failed", task.model_dump(mode="json"))

    def session_finished(self, stats: SessionStats, insights: SessionInsights) -> None:
        self.stats = stats.model_dump(mode="json")
        self.insights = insights.model_dump(mode="json")
        self.current_task = None
        self.session_complete = True
        self.broadcast(
            "session_complete",
            {
                "stats": self.stats,
                "insights": self.insights,
                "finished_at": datetime.now(UTC).isoformat(),
            },
        )

    def output(self, text: str) -> None:
        """Forward a chunk of agent output."""
        self.broadcast("output", text)

    def on_control(self, handler: ControlHandler) -> None:
        """Register a handler for inbound control commands."""
        self._control_handlers.append(handler)

    def handle_message(self, message: dict[str, Any]) -> ControlCommand | None:
        """Validate an inbound message and dispatch it to control handlers.

        Args:
            message: Decoded message, e.g. ``{"type": "approve", "actionId": "..."}``

        Returns:
            ControlCommand | None: The dispatched command, or None if ignored
        """
        try:
            command = ControlCommand.model_validate(message)
        except ValidationError as e:
            logger.debug("Ignoring invalid control message", message=repr(message)[:200], error=str(e))
            return None

        for handler in self._control_handlers:
            handler(command)
        return command
