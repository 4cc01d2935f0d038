"""Edge Autopilot - supervisor for autonomous coding agents.

Watches the output of a long-running agent process, classifies the actions
it takes, scores their risk and decides which may proceed unattended.
"""

__version__ = "0.1.0"

from autopilot.config import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings", "__version__"]
