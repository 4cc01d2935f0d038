"""Rich console wrapper for the supervisor with consistent styling.

This module provides the AutopilotConsole class which wraps Rich Console
with supervisor specific themes and convenience methods for session output.
"""

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from autopilot import __version__
from autopilot.detection.history import SessionInsights
from autopilot.detection.models import ActionEvent, RiskAssessment
from autopilot.policy.engine import Decision, DecisionOutcome
from autopilot.ui.formatters import (
    format_duration,
    format_insights,
    format_stats_table,
    risk_color,
    truncate_text,
)


AUTOPILOT_THEME = Theme({
    # Primary colors
    "autopilot.primary": "cyan",
    "autopilot.secondary": "blue",

    # Status colors
    "autopilot.success": "green",
    "autopilot.error": "red bold",
    "autopilot.warning": "yellow",
    "autopilot.info": "blue",

    # Special elements
    "autopilot.output": "dim",
    "autopilot.header": "cyan bold",
    "autopilot.footer": "dim",
})

OUTCOME_STYLES = {
    DecisionOutcome.ACCEPT: ("✓", "autopilot.success"),
    DecisionOutcome.QUICK_CONFIRM: ("⏱", "autopilot.info"),
    DecisionOutcome.PAUSE: ("⏸", "autopilot.warning"),
    DecisionOutcome.DENY: ("✗", "autopilot.error"),
}


class AutopilotConsole:
    """Rich console with supervisor specific styling.

    Attributes:
        console: The underlying Rich Console instance
    """

    def __init__(self, no_color: bool = False, verbose: bool = False):
        """Initialize the console.

        Args:
            no_color: Disable colored output
            verbose: Echo agent output as it streams
        """
        self.console = Console(
            theme=AUTOPILOT_THEME,
            highlight=False,
            no_color=no_color,
        )
        self.verbose = verbose
        self.no_color = no_color

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Print to console (passthrough to Rich Console)."""
        self.console.print(*args, **kwargs)

    def welcome(self, mode: str) -> None:
        """Display the startup banner.

        Args:
            mode: Session mode being started
        """
        banner = Text()
        banner.append("╔═══════════════════════════════════════════╗\n", style="autopilot.primary")
        banner.append("║   ", style="autopilot.primary")
        banner.append("EDGE AUTOPILOT", style="autopilot.primary bold")
        banner.append(" - AI Agent Supervisor     ║\n", style="autopilot.primary")
        banner.append("╚═══════════════════════════════════════════╝", style="autopilot.primary")

        self.console.print(banner)
        self.console.print(f"Version {__version__} | Mode: {mode}\n", style="autopilot.footer")

    def output(self, text: str) -> None:
        """Echo a chunk of agent output (verbose mode only).

        Args:
            text: Output chunk
        """
        if self.verbose:
            self.console.print(text, end="", style="autopilot.output", markup=False)

    def action(self, event: ActionEvent, risk: RiskAssessment, decision: Decision) -> None:
        """Display one classified action and the decision taken.

        Args:
            event: Detected action
            risk: Its risk assessment
            decision: Policy decision
        """
        icon, style = OUTCOME_STYLES[decision.outcome]
        color = risk_color(risk.level)
        line = Text()
        line.append(f"{icon} {decision.outcome.value:<13}", style=style)
        line.append(f" {event.type.value}", style="bold")
        if event.target:
            line.append(f" {truncate_text(event.target, 60, '...')}")
        line.append(f"  [{risk.level.value} {risk.score:.2f}]", style=color)
        line.append(f"  {decision.reason}", style="autopilot.footer")
        self.console.print(line)

    def error(self, message: str) -> None:
        """Display an error message."""
        self.console.print(f"✗ Error: {message}", style="autopilot.error")

    def warning(self, message: str) -> None:
        """Display a warning message."""
        self.console.print(f"⚠ Warning: {message}", style="autopilot.warning")

    def success(self, message: str) -> None:
        """Display a success message."""
        self.console.print(f"✓ {message}", style="autopilot.success")

    def info(self, message: str) -> None:
        """Display an informational message."""
        self.console.print(f"ℹ {message}", style="autopilot.info")

    def show_config(self, config_dict: dict[str, Any], title: str = "Autopilot Configuration") -> None:
        """Display configuration settings.

        Args:
            config_dict: Dictionary of configuration settings
            title: Table title
        """
        table = Table(title=title, show_header=True)
        table.add_column("Setting", style="autopilot.primary")
        table.add_column("Value", style="autopilot.info")

        for key, value in config_dict.items():
            table.add_row(key, str(value))

        self.console.print(table)

    def show_summary(
        self,
        stats: dict[str, Any],
        insights: SessionInsights,
        duration_seconds: float,
        stop_reason: str | None = None,
    ) -> None:
        """Display the end of session summary.

        Args:
            stats: Final session statistics
            insights: Session insights
            duration_seconds: Session wall time
            stop_reason: Why the session ended early, if it did
        """
        self.divider("SESSION SUMMARY")
        self.console.print(f"Duration: {format_duration(duration_seconds)}")
        if stop_reason:
            self.console.print(f"Stopped early: {stop_reason}", style="autopilot.warning")
        self.console.print(format_stats_table(stats))
        self.console.print(
            Panel(format_insights(insights), title="[bold]Session Insights[/bold]", border_style="cyan")
        )

    def divider(self, title: str | None = None) -> None:
        """Print a divider line.

        Args:
            title: Optional title for the divider
        """
        if title:
            self.console.rule(f"[autopilot.header]{title}[/autopilot.header]")
        else:
            self.console.rule(style="autopilot.footer")


# Global console instance
_console: AutopilotConsole | None = None


def get_console(no_color: bool = False, verbose: bool = False) -> AutopilotConsole:
    """Get the global console instance.

    Args:
        no_color: Disable colored output
        verbose: Echo agent output

    Returns:
        AutopilotConsole: The global console instance
    """
    global _console
    if _console is None:
        _console = AutopilotConsole(no_color=no_color, verbose=verbose)
    return _console
