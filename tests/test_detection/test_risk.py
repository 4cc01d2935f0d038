"""Tests for risk scoring."""

import pytest

from autopilot.detection.classifier import ActionClassifier
from autopilot.detection.history import HistoryStats
from autopilot.detection.models import ActionType, RiskLevel
from autopilot.detection.patterns import ActionRule
from autopilot.detection.risk import RiskScorer, clamp


class TestClamp:
    """Test the clamp helper."""

    def test_bounds(self):
        """Test values outside [0, 1] are clamped."""
        assert clamp(1.4) == 1.0
        assert clamp(-0.2) == 0.0
        assert clamp(0.35) == 0.35


class TestRiskLevel:
    """Test the score to level ladder."""

    @pytest.mark.parametrize(
        "score,level",
        [
            (0.0, RiskLevel.MINIMAL),
            (0.19, RiskLevel.MINIMAL),
            (0.2, RiskLevel.LOW),
            (0.4, RiskLevel.MEDIUM),
            (0.6, RiskLevel.HIGH),
            (0.8, RiskLevel.CRITICAL),
            (1.0, RiskLevel.CRITICAL),
        ],
    )
    def test_from_score(self, score, level):
        """Test threshold boundaries are inclusive."""
        assert RiskLevel.from_score(score) == level


class TestRiskScorer:
    """Test RiskScorer."""

    def test_base_risk_only(self, history):
        """Test npm install without triggered factors scores its base risk."""
        risk = RiskScorer().score(ActionType.NPM_INSTALL, "lodash", "npm install lodash", history)

        assert risk.score == pytest.approx(0.3)
        assert risk.level == RiskLevel.LOW
        assert risk.factors == []

    def test_dev_dependency_lowers_risk(self, history):
        """Test a negative factor contribution."""
        risk = RiskScorer().score(ActionType.NPM_INSTALL, "vitest", "npm install -D vitest", history)

        assert risk.score == pytest.approx(0.2)
        assert risk.factor_names == ["dev_only"]

    def test_dev_dependency_reaches_low(self, history):
        """Test a score summing to exactly 0.2 is low, not minimal."""
        risk = RiskScorer().score(ActionType.NPM_INSTALL, "lodash", "npm install -D lodash", history)

        assert risk.score == 0.2
        assert risk.level == RiskLevel.LOW

    def test_sensitive_file_delete(self, history):
        """Test deleting .env is pushed to the top of the scale."""
        risk = RiskScorer().score(ActionType.FILE_DELETE, ".env", "Deleting file: .env", history)

        assert risk.score == 1.0
        assert risk.level == RiskLevel.CRITICAL
        assert "sensitive_file" in risk.factor_names

    def test_recursive_force_delete(self, history):
        """Test rm flags contribute their factors."""
        risk = RiskScorer().score(ActionType.FILE_DELETE, "build", "rm -rf build", history)

        assert risk.factor_names == ["recursive", "force"]
        assert risk.score == 1.0

    def test_terminal_sudo(self, history):
        """Test sudo raises a terminal command to critical."""
        risk = RiskScorer().score(ActionType.TERMINAL_COMMAND, "sudo make install", "Running: sudo make install", history)

        assert risk.factor_names == ["sudo"]
        assert risk.score == pytest.approx(0.9)
        assert risk.level == RiskLevel.CRITICAL

    def test_push_to_main(self, history):
        """Test pushing to main is high risk."""
        risk = RiskScorer().score(ActionType.GIT_PUSH, "origin main", "git push origin main", history)

        assert risk.factor_names == ["main_branch"]
        assert risk.score == pytest.approx(0.9)

    def test_protected_path(self, history):
        """Test protected paths add risk to file actions only."""
        scorer = RiskScorer(protected_paths=["secrets/"])

        file_risk = scorer.score(ActionType.FILE_CREATE, "secrets/token.txt", "Creating file: secrets/token.txt", history)
        command_risk = scorer.score(ActionType.TERMINAL_COMMAND, "cat secrets/token.txt", "$ cat secrets/token.txt", history)

        assert file_risk.factors == [("protected_path", 0.3)]
        assert file_risk.score == pytest.approx(0.5)
        assert command_risk.factors == []

    def test_dangerous_command_critical(self, history):
        """Test critical severity dangerous commands score 1.0."""
        risk = RiskScorer().score(ActionType.DANGEROUS_COMMAND, "rm -rf /", "rm -rf /", history, severity="critical")

        assert risk.score == 1.0
        assert risk.level == RiskLevel.CRITICAL
        assert risk.factors == [("dangerous_pattern", 1.0)]

    def test_dangerous_command_high(self, history):
        """Test other severities score 0.9 but stay critical."""
        risk = RiskScorer().score(ActionType.DANGEROUS_COMMAND, "chmod 777 /", "chmod 777 /", history, severity="high")

        assert risk.score == pytest.approx(0.9)
        assert risk.level == RiskLevel.CRITICAL

    def test_failing_factor_is_skipped(self, history):
        """Test that an exploding factor does not abort scoring."""

        def boom(target, raw_text, history):
            raise RuntimeError("factor bug")

        rule = ActionRule(
            type=ActionType.FILE_EDIT,
            patterns=(),
            base_risk=0.3,
            factors={"boom": boom, "bump": lambda target, raw_text, history: 0.1},
        )
        scorer = RiskScorer(rules={ActionType.FILE_EDIT: rule})

        risk = scorer.score(ActionType.FILE_EDIT, "a.py", "Editing a.py", history)

        assert risk.factor_names == ["bump"]
        assert risk.score == pytest.approx(0.4)

    def test_unknown_rule_uses_default_base(self, history):
        """Test a type without a rule falls back to the default base risk."""
        scorer = RiskScorer(rules={})

        risk = scorer.score(ActionType.APPROVAL_PROMPT, "", "Approve?", history)

        assert risk.score == pytest.approx(0.5)

    def test_repeated_edits_raise_risk(self):
        """Test the frequency factor triggers after more than five edits."""
        history = HistoryStats()
        classifier = ActionClassifier(history)
        scorer = RiskScorer()

        risks = []
        for _ in range(6):
            event = classifier.detect("Editing src/app.py")
            risks.append(scorer.assess(event, history))

        assert risks[4].score == pytest.approx(0.3)
        assert risks[5].factor_names == ["frequency"]
        assert risks[5].score == pytest.approx(0.6)
        assert risks[5].level == RiskLevel.HIGH

    def test_assess_uses_event_fields(self, history):
        """Test assess passes the event's severity through."""
        event = ActionClassifier(history).detect("rm -rf /important")

        risk = RiskScorer().assess(event, history)

        assert risk.score == 1.0
        assert risk.level == RiskLevel.CRITICAL

    def test_scoring_does_not_mutate_history(self, history):
        """Test that scoring only reads the history."""
        RiskScorer().score(ActionType.FILE_EDIT, "a.py", "Editing a.py", history)

        assert len(history) == 0
        assert history.file_stats == {}
