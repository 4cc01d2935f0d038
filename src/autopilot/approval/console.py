"""Console approval channel.

Presents a paused action in the terminal and forwards the answer to the
ApprovalCoordinator. The coordinator does not know this channel exists; it
only sees a ``resolve`` call.
"""

import asyncio

from rich.panel import Panel
from rich.text import Text

from autopilot.approval.coordinator import ApprovalCoordinator, PendingApproval, Verdict
from autopilot.detection.models import RiskAssessment, RiskLevel
from autopilot.logging import get_logger
from autopilot.ui.console import AutopilotConsole
from autopilot.ui.formatters import risk_color, risk_emoji
from autopilot.ui.prompts import ask_verdict

logger = get_logger("autopilot.approval.console")


class ConsoleApprover:
    """Asks the person at the terminal to approve or deny paused actions."""

    def __init__(self, coordinator: ApprovalCoordinator, console: AutopilotConsole):
        """Initialize the console approver.

        Args:
            coordinator: Coordinator the verdicts are delivered to
            console: Console for user interaction
        """
        self.coordinator = coordinator
        self.console = console

    async def request(self, pending: PendingApproval, risk: RiskAssessment) -> None:
        """Prompt for a verdict on a pending approval.

        The prompt blocks on stdin, so it runs in a worker thread to keep the
        event loop (and the approval timeout) running.

        Args:
            pending: The approval to present
            risk: Risk assessment of the held action
        """
        self.console.console.print(self.format_approval_prompt(pending, risk))

        approved = await asyncio.to_thread(ask_verdict, self.console.console, pending.id)

        verdict = Verdict.APPROVE if approved else Verdict.DENY
        if not self.coordinator.resolve(pending.id, verdict):
            # Timed out or resolved elsewhere while the prompt was open
            logger.info("Console verdict arrived after resolution", approval_id=pending.id)
        else:
            logger.info(
                f"User {'approved' if approved else 'denied'} action: {pending.action.type.value}",
                approval_id=pending.id,
            )

    def format_approval_prompt(self, pending: PendingApproval, risk: RiskAssessment) -> Panel:
        """Format an approval prompt as a Rich Panel.

        Args:
            pending: The approval to present
            risk: Risk assessment of the held action

        Returns:
            Panel: Formatted approval prompt
        """
        action = pending.action
        color = risk_color(risk.level)
        emoji = risk_emoji(risk.level)

        content = Text()
        content.append("🔧 Action: ", style="bold")
        content.append(f"{action.type.value}\n", style="cyan bold")

        if action.target:
            content.append("🎯 Target: ", style="bold")
            content.append(f"{action.target}\n", style="white")

        content.append("📋 Output: ", style="bold")
        content.append(f"{action.raw_text}\n\n", style="dim")

        content.append(f"{emoji} Risk: ", style="bold")
        content.append(f"{risk.level.value.upper()} ({risk.score:.2f})\n", style=color)

        if pending.reason:
            content.append("Held because: ", style="bold")
            content.append(f"{pending.reason}\n", style="white")

        if risk.factors:
            content.append("\nRisk factors:\n", style="bold")
            for name, contribution in risk.factors:
                content.append(f"  • {name} ({contribution:+.2f})\n", style="dim")

        border_style = "red bold" if risk.level == RiskLevel.CRITICAL else color

        return Panel(
            content,
            title=f"[bold]{emoji} Approval Required[/bold] [dim]{pending.id}[/dim]",
            border_style=border_style,
            padding=(1, 2),
        )
