"""Terminal UI components for the autopilot supervisor."""

from autopilot.ui.console import AutopilotConsole, get_console
from autopilot.ui.prompts import ask_verdict

__all__ = ["AutopilotConsole", "get_console", "ask_verdict"]
