"""Logging configuration for the autopilot supervisor with structlog.

Events go through the standard library so each handler renders them its own
way: a colored, human readable stream on stderr and, when a session log is
enabled, one JSON object per line in the session file.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any

import structlog

SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.processors.add_log_level,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.TimeStamper(fmt="iso", utc=False),
]


def _formatter(renderer: Any, *extra: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *extra,
            renderer,
        ],
    )


def setup_logging(
    level: str | None = "INFO",
    log_file: Path | None = None,
    session_id: str | None = None,
) -> None:
    """Configure structlog for the console and an optional session log.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR), or None to use INFO
        log_file: Optional JSON-lines session log
        session_id: Bound to every event of this session when given
    """
    level = level or "INFO"
    log_level = getattr(logging, level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())))
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer(), structlog.processors.dict_tracebacks))
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    structlog.contextvars.clear_contextvars()
    if session_id:
        structlog.contextvars.bind_contextvars(session_id=session_id)

    structlog.configure(
        processors=[*SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger for a module.

    Args:
        name: Module name (e.g., "autopilot.session.orchestrator")

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class AsyncTimer:
    """Times one unit of session work and logs its duration.

    Usage:
        async with AsyncTimer("task", logger, task_id="task-1") as timer:
            await run_task()
        timer.elapsed  # seconds
    """

    def __init__(self, name: str, logger: Any | None = None, **context: Any):
        """Initialize the timer.

        Args:
            name: Operation name for logging
            logger: Logger instance (uses a "timer" logger if None)
            **context: Key/value pairs attached to both log events
        """
        self.name = name
        self.logger = logger or get_logger("autopilot.timer")
        self.context = context
        self.start_time: float = 0
        self.elapsed: float = 0

    async def __aenter__(self) -> "AsyncTimer":
        self.start_time = time.perf_counter()
        self.logger.debug(f"{self.name} started", **self.context)
        return self

    async def __aexit__(self, exc_type: Any, *args: Any) -> None:
        self.elapsed = time.perf_counter() - self.start_time
        self.logger.debug(
            f"{self.name} {'failed' if exc_type else 'finished'}",
            elapsed_s=round(self.elapsed, 3),
            **self.context,
        )
