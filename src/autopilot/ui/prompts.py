"""Terminal input for approval verdicts."""

from rich.console import Console
from rich.prompt import Confirm


def ask_verdict(console: Console, approval_id: str, default: bool = False) -> bool:
    """Ask whether a held action may proceed.

    Closed or non-interactive stdin counts as a denial.

    Args:
        console: Console to prompt on
        approval_id: ID shown with the question
        default: Answer when the user just presses Enter

    Returns:
        bool: True if the action was approved
    """
    try:
        return Confirm.ask(
            f"[yellow]?[/yellow] Approve action [dim]{approval_id}[/dim]?",
            default=default,
            console=console,
        )
    except EOFError:
        return False
