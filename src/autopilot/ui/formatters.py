"""Output formatting utilities for supervisor sessions.

This module provides functions for formatting session statistics, insights,
durations and risk labels for display in the terminal.
"""

import re
from typing import Any

from rich.table import Table

from autopilot.detection.history import SessionInsights
from autopilot.detection.models import RiskLevel

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")

RISK_COLORS = {
    RiskLevel.MINIMAL: "dim",
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "red bold",
}

RISK_EMOJI = {
    RiskLevel.MINIMAL: "·",
    RiskLevel.LOW: "✓",
    RiskLevel.MEDIUM: "⚠️",
    RiskLevel.HIGH: "⚠️",
    RiskLevel.CRITICAL: "🚨",
}


def truncate_text(
    text: str,
    max_length: int = 500,
    suffix: str = "... (truncated)",
) -> str:
    """Truncate text to a maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add when truncated

    Returns:
        str: Truncated text
    """
    if len(text) <= max_length:
        return text

    return text[: max_length - len(suffix)] + suffix


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to human-readable form.

    Args:
        seconds: Duration in seconds

    Returns:
        str: Human-readable duration (e.g., "2.5s", "1m 30s", "1h 5m")
    """
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def format_percentage(
    value: float,
    decimal_places: int = 1,
) -> str:
    """Format a value as a percentage.

    Args:
        value: Value to format (0.0 to 1.0)
        decimal_places: Number of decimal places

    Returns:
        str: Formatted percentage (e.g., "75.5%")
    """
    return f"{value * 100:.{decimal_places}f}%"


def strip_ansi(text: str) -> str:
    """Strip ANSI color codes from text.

    Agents run with forced colors, so output is cleaned before it is
    matched against detection patterns.

    Args:
        text: Text with ANSI codes

    Returns:
        str: Text without ANSI codes
    """
    return ANSI_ESCAPE.sub("", text)


def risk_color(level: RiskLevel) -> str:
    """Get the Rich color for a risk level."""
    return RISK_COLORS[level]


def risk_emoji(level: RiskLevel) -> str:
    """Get an emoji representing a risk level."""
    return RISK_EMOJI[level]


def format_stats_table(stats: dict[str, Any], title: str = "Session Statistics") -> Table:
    """Format session counters as a two column table.

    Args:
        stats: Session statistics (as dumped from SessionStats)
        title: Table title

    Returns:
        Table: Rich table of counters
    """
    labels = {
        "tasks_completed": ("Tasks completed", "green"),
        "tasks_failed": ("Tasks failed", "red"),
        "actions_approved": ("Actions approved", "green"),
        "actions_denied": ("Actions denied", "yellow"),
        "files_changed": ("Files changed", "cyan"),
        "errors": ("Errors", "red"),
    }

    table = Table(title=title, show_header=False)
    table.add_column("Counter", style="bold")
    table.add_column("Value", justify="right")

    for key, (label, style) in labels.items():
        if key in stats:
            table.add_row(label, f"[{style}]{stats[key]}[/{style}]")

    return table


def format_insights(insights: SessionInsights, limit: int = 5) -> str:
    """Format session insights as Rich markup.

    Args:
        insights: Insights produced at session end
        limit: Maximum number of files and commands to list

    Returns:
        str: Markup text
    """
    lines = [
        f"Total actions: {insights.total_actions}",
        f"Average risk: {format_percentage(insights.average_risk)}",
    ]

    levels = [(level, insights.by_risk.get(level, 0)) for level in insights.by_risk]
    if any(count for _, count in levels):
        lines.append("")
        lines.append("[bold]By risk level:[/bold]")
        for level, count in levels:
            if count:
                style = risk_color(RiskLevel(level))
                lines.append(f"  [{style}]{level}[/{style}]: {count}")

    if insights.by_type:
        lines.append("")
        lines.append("[bold]By action type:[/bold]")
        for action_type, count in sorted(insights.by_type.items(), key=lambda item: -item[1]):
            lines.append(f"  {action_type}: {count}")

    edited = [(path, stats) for path, stats in insights.most_edited if stats.edits]
    if edited:
        lines.append("")
        lines.append("[bold]Most edited files:[/bold]")
        for path, stats in edited[:limit]:
            lines.append(f"  {path}: {stats.edits} edits")

    if insights.most_used_commands:
        lines.append("")
        lines.append("[bold]Most used commands:[/bold]")
        for command, count in insights.most_used_commands[:limit]:
            lines.append(f"  {command}: {count}")

    return "\n".join(lines)
