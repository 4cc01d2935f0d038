"""Tests for UI formatters."""

import pytest
from rich.table import Table

from autopilot.detection.history import FileStats, SessionInsights
from autopilot.detection.models import RiskLevel
from autopilot.ui.formatters import (
    format_duration,
    format_insights,
    format_percentage,
    format_stats_table,
    risk_color,
    risk_emoji,
    strip_ansi,
    truncate_text,
)


class TestTruncateText:
    """Test text truncation."""

    def test_short_text(self):
        """Test that short text is not truncated."""
        text = "Short text"
        result = truncate_text(text, max_length=100)
        assert result == text

    def test_long_text(self):
        """Test that long text is truncated."""
        text = "a" * 1000
        result = truncate_text(text, max_length=100)
        assert len(result) <= 100
        assert result.endswith("... (truncated)")

    def test_custom_suffix(self):
        """Test truncation with custom suffix."""
        text = "a" * 1000
        result = truncate_text(text, max_length=100, suffix="...")
        assert result.endswith("...")
        assert len(result) == 100


class TestFormatDuration:
    """Test duration formatting."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (0.25, "250ms"),
            (2.5, "2.5s"),
            (90, "1m 30s"),
            (3900, "1h 5m"),
        ],
    )
    def test_ranges(self, seconds, expected):
        """Test each duration range."""
        assert format_duration(seconds) == expected


class TestFormatPercentage:
    """Test percentage formatting."""

    def test_default_places(self):
        """Test one decimal place by default."""
        assert format_percentage(0.755) == "75.5%"

    def test_custom_places(self):
        """Test custom precision."""
        assert format_percentage(0.5, decimal_places=0) == "50%"


class TestStripAnsi:
    """Test ANSI code removal."""

    def test_color_codes(self):
        """Test color codes are removed."""
        assert strip_ansi("\x1b[31mDeleting file: a.txt\x1b[0m") == "Deleting file: a.txt"

    def test_cursor_codes(self):
        """Test cursor movement codes are removed."""
        assert strip_ansi("\x1b[2K\x1b[1Gdone") == "done"

    def test_plain_text(self):
        """Test plain text is unchanged."""
        assert strip_ansi("npm install lodash") == "npm install lodash"


class TestRiskLabels:
    """Test risk colors and emoji."""

    @pytest.mark.parametrize("level", list(RiskLevel))
    def test_every_level_labelled(self, level):
        """Test every risk level has a color and an emoji."""
        assert risk_color(level)
        assert risk_emoji(level)

    def test_critical_is_bold_red(self):
        """Test critical risk stands out."""
        assert risk_color(RiskLevel.CRITICAL) == "red bold"


class TestFormatStatsTable:
    """Test the statistics table."""

    def test_known_counters_only(self):
        """Test rows are created for known counters only."""
        stats = {"tasks_completed": 3, "tasks_failed": 1, "started_at": "2026-01-01T00:00:00Z"}

        table = format_stats_table(stats)

        assert isinstance(table, Table)
        assert table.row_count == 2
        assert table.title == "Session Statistics"


class TestFormatInsights:
    """Test insight rendering."""

    def test_empty_session(self):
        """Test an empty session shows totals only."""
        text = format_insights(SessionInsights())

        assert text == "Total actions: 0\nAverage risk: 0.0%"

    def test_full_session(self):
        """Test every section appears when populated."""
        insights = SessionInsights(
            total_actions=4,
            by_type={"file_edit": 3, "terminal_command": 1},
            by_risk={"critical": 0, "high": 1, "low": 3},
            most_edited=[("src/app.py", FileStats(edits=3)), ("new.py", FileStats(creates=1))],
            most_used_commands=[("pytest", 1)],
            average_risk=0.35,
        )

        text = format_insights(insights)

        assert "Average risk: 35.0%" in text
        assert "[red]high[/red]: 1" in text
        assert "critical" not in text
        assert text.index("file_edit: 3") < text.index("terminal_command: 1")
        assert "src/app.py: 3 edits" in text
        assert "new.py" not in text
        assert "pytest: 1" in text

    def test_limit(self):
        """Test long lists are cut at the limit."""
        insights = SessionInsights(
            total_actions=6,
            most_used_commands=[(f"cmd{i}", 6 - i) for i in range(6)],
        )

        text = format_insights(insights, limit=2)

        assert "cmd1: 5" in text
        assert "cmd2" not in text
