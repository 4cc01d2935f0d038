"""Tests for logging setup."""

import json
import logging

import pytest

from autopilot.logging import AsyncTimer, get_logger, setup_logging


class TestSetupLogging:
    """Test setup_logging."""

    def test_session_log_is_json_lines(self, temp_dir, reset_logging):
        """Test events land in the session file as JSON with the session ID."""
        log_file = temp_dir / "logs" / "session-1.jsonl"
        setup_logging(level="DEBUG", log_file=log_file, session_id="20260101-120000")

        get_logger("autopilot.test").info("Task complete", task_id="task-1")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = log_file.read_text(encoding="utf-8").splitlines()
        event = json.loads(lines[-1])
        assert event["event"] == "Task complete"
        assert event["task_id"] == "task-1"
        assert event["session_id"] == "20260101-120000"
        assert event["level"] == "info"
        assert event["logger"] == "autopilot.test"

    def test_level_filters(self, temp_dir, reset_logging):
        """Test events below the level are dropped."""
        log_file = temp_dir / "session.jsonl"
        setup_logging(level="WARNING", log_file=log_file)

        logger = get_logger("autopilot.test.filter")
        logger.info("hidden")
        logger.warning("shown")
        for handler in logging.getLogger().handlers:
            handler.flush()

        events = [json.loads(line)["event"] for line in log_file.read_text(encoding="utf-8").splitlines()]
        assert events == ["shown"]


class TestAsyncTimer:
    """Test AsyncTimer."""

    @pytest.mark.asyncio
    async def test_elapsed(self):
        """Test elapsed time is recorded."""
        async with AsyncTimer("task", task_id="task-1") as timer:
            pass

        assert timer.elapsed >= 0
        assert timer.context == {"task_id": "task-1"}
