"""Coordination of actions waiting on a human verdict.

The coordinator keeps one entry per paused action. Any channel (observer
dashboard, chat button, console prompt) resolves an entry through
``resolve``; the orchestrator suspends on ``await_resolution`` until a verdict
arrives or the timeout turns it into a denial.
"""

import asyncio
import uuid
from datetime import datetime, UTC
from enum import Enum

from pydantic import BaseModel, Field

from autopilot.detection.models import ActionEvent
from autopilot.logging import get_logger

logger = get_logger("autopilot.approval.coordinator")


class Verdict(str, Enum):
    """Human verdict on a paused action."""

    APPROVE = "approve"
    DENY = "deny"

    def __str__(self) -> str:
        """String representation of verdict."""
        return self.value


class PendingApproval(BaseModel):
    """An action held until it is approved or denied."""

    id: str = Field(..., description="Unique per action instance")
    action: ActionEvent
    reason: str = Field(default="", description="Why the policy held the action")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    resolved: bool = False


class ApprovalCoordinator:
    """Tracks pending approvals and delivers each verdict at most once.

    Attributes:
        timeout: Default seconds to wait before a pending action is denied
    """

    def __init__(self, timeout: float = 300.0):
        """Initialize the coordinator.

        Args:
            timeout: Default wait before an unresolved approval is denied
        """
        self.timeout = timeout
        self._pending: dict[str, PendingApproval] = {}
        self._events: dict[str, asyncio.Event] = {}
        self._verdicts: dict[str, Verdict] = {}

    @property
    def pending(self) -> list[PendingApproval]:
        """Approvals still waiting for a verdict, oldest first."""
        return list(self._pending.values())

    def get(self, approval_id: str) -> PendingApproval | None:
        """Get a pending approval by ID."""
        return self._pending.get(approval_id)

    def register(self, action: ActionEvent, reason: str = "") -> str:
        """Register an action that needs a verdict.

        Args:
            action: The paused action
            reason: Policy reason shown to the approver

        Returns:
            str: New approval ID
        """
        approval_id = uuid.uuid4().hex[:12]
        self._pending[approval_id] = PendingApproval(id=approval_id, action=action, reason=reason)
        self._events[approval_id] = asyncio.Event()
        logger.info(
            "Approval requested",
            approval_id=approval_id,
            action_type=action.type.value,
            target=action.target,
        )
        return approval_id

    def resolve(self, approval_id: str, verdict: Verdict | str) -> bool:
        """Resolve a pending approval.

        Resolving an unknown or already resolved ID is a no-op.

        Args:
            approval_id: ID returned by ``register``
            verdict: Approve or deny

        Returns:
            bool: True if this call resolved the approval

        Raises:
            ValueError: If the verdict is neither approve nor deny
        """
        verdict = Verdict(verdict)
        entry = self._pending.pop(approval_id, None)
        if entry is None:
            logger.debug("Ignoring resolution for unknown approval", approval_id=approval_id)
            return False

        entry.resolved = True
        self._verdicts[approval_id] = verdict
        self._events[approval_id].set()
        logger.info("Approval resolved", approval_id=approval_id, verdict=verdict.value)
        return True

    async def await_resolution(self, approval_id: str, timeout: float | None = None) -> Verdict:
        """Wait until an approval is resolved.

        If no verdict arrives within the timeout the approval is resolved as
        denied, so a later resolution from a channel is ignored.

        Args:
            approval_id: ID returned by ``register``
            timeout: Seconds to wait (defaults to the coordinator timeout)

        Returns:
            Verdict: The delivered verdict

        Raises:
            KeyError: If the ID was never registered or was already awaited
        """
        event = self._events.get(approval_id)
        if event is None:
            raise KeyError(approval_id)

        try:
            await asyncio.wait_for(event.wait(), timeout=timeout if timeout is not None else self.timeout)
        except TimeoutError:
            logger.warning("Approval timed out, denying", approval_id=approval_id)
            self.resolve(approval_id, Verdict.DENY)

        self._events.pop(approval_id, None)
        return self._verdicts.pop(approval_id)

    def cancel_all(self) -> int:
        """Deny every pending approval (used when the session stops).

        Returns:
            int: Number of approvals cancelled
        """
        cancelled = 0
        for approval_id in list(self._pending):
            if self.resolve(approval_id, Verdict.DENY):
                cancelled += 1
        if cancelled:
            logger.info("Cancelled pending approvals", count=cancelled)
        return cancelled
