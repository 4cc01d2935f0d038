"""Launching and streaming the supervised agent process."""

from autopilot.runner.process import ProcessHandle, ProcessRunner
from autopilot.runner.providers import PROVIDERS, build_agent_command, resolve_model

__all__ = [
    "PROVIDERS",
    "ProcessHandle",
    "ProcessRunner",
    "build_agent_command",
    "resolve_model",
]
