"""Custom exceptions for the autopilot supervisor."""


class AutopilotError(Exception):
    """Base exception for autopilot errors."""

    pass


class ConfigError(AutopilotError):
    """Exception raised when a configuration file cannot be loaded."""

    def __init__(self, path: str, detail: str):
        """Initialize with the offending path.

        Args:
            path: Path of the configuration file
            detail: What went wrong
        """
        self.path = path
        super().__init__(f"Invalid configuration in {path}: {detail}")


class TaskQueueError(AutopilotError):
    """Exception raised when a task source cannot be read at all."""

    pass


class ProcessSpawnError(AutopilotError):
    """Exception raised when the agent process cannot be started."""

    def __init__(self, command: str, reason: str):
        """Initialize with the command that failed.

        Args:
            command: Executable that could not be spawned
            reason: Underlying error message
        """
        self.command = command
        super().__init__(f"Failed to start '{command}': {reason}")
