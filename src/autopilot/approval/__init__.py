"""Approval handling for actions that must wait on a human.

This module provides the channel agnostic ApprovalCoordinator and a console
channel that resolves approvals from the terminal.
"""

from autopilot.approval.coordinator import ApprovalCoordinator, PendingApproval, Verdict
from autopilot.approval.console import ConsoleApprover

__all__ = [
    "ApprovalCoordinator",
    "ConsoleApprover",
    "PendingApproval",
    "Verdict",
]
