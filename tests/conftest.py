"""Pytest configuration and fixtures for autopilot tests."""

import logging
import pytest
from pathlib import Path
import tempfile
import shutil

import structlog

from autopilot.config import AutopilotConfig, Settings
from autopilot.detection.history import HistoryStats
from autopilot.ui.console import AutopilotConsole


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def test_settings(temp_dir):
    """Create test settings isolated from any .env file."""
    return Settings(
        _env_file=None,
        autopilot_working_dir=temp_dir,
        autopilot_log_level="DEBUG",
        agent_command="fake-agent",
        agent_args=["-p"],
        terminate_grace_seconds=0.1,
        approval_timeout=5.0,
    )


@pytest.fixture
def default_config():
    """Rule configuration with built-in defaults."""
    return AutopilotConfig()


@pytest.fixture
def history():
    """Empty session history."""
    return HistoryStats()


@pytest.fixture
def console():
    """Console without colors for deterministic output."""
    return AutopilotConsole(no_color=True)


@pytest.fixture
def reset_logging():
    """Restore default logging after a test reconfigures it."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
