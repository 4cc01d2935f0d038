"""Risk scoring for detected actions.

The score of an action is its type's base risk plus the contribution of each
named factor, clamped into [0, 1]. Factors are independent, so the order in
which they run never changes the result.
"""

from autopilot.detection.classifier import is_protected_path
from autopilot.detection.history import HistoryStats
from autopilot.detection.models import ActionEvent, ActionType, RiskAssessment, RiskLevel
from autopilot.detection.patterns import RULES_BY_TYPE, ActionRule
from autopilot.logging import get_logger

logger = get_logger("autopilot.detection.risk")

DEFAULT_BASE_RISK = 0.5
PROTECTED_PATH_RISK = 0.3


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


class RiskScorer:
    """Computes composite risk scores from the action rule table.

    Attributes:
        rules: Action rules keyed by type
        protected_paths: Patterns whose file targets carry extra risk
    """

    def __init__(
        self,
        rules: dict[ActionType, ActionRule] | None = None,
        protected_paths: list[str] | None = None,
    ):
        """Initialize the risk scorer.

        Args:
            rules: Rule table keyed by action type (defaults to the built-in table)
            protected_paths: Protected path patterns from the session config
        """
        self.rules = rules if rules is not None else RULES_BY_TYPE
        self.protected_paths = protected_paths or []

    def score(
        self,
        action_type: ActionType,
        target: str,
        raw_text: str,
        history: HistoryStats,
        severity: str | None = None,
    ) -> RiskAssessment:
        """Score one action.

        Dangerous commands skip factor evaluation entirely: critical severity
        scores 1.0, anything else 0.9, and the level is always critical.

        Args:
            action_type: Kind of action
            target: Action target (path, command, package)
            raw_text: Line the action was detected in
            history: Session history for frequency based factors
            severity: Severity of a dangerous pattern match

        Returns:
            RiskAssessment: Clamped score, level and contributing factors
        """
        if action_type == ActionType.DANGEROUS_COMMAND:
            score = 1.0 if severity == "critical" else 0.9
            return RiskAssessment(
                score=score,
                level=RiskLevel.CRITICAL,
                factors=[("dangerous_pattern", score)],
            )

        rule = self.rules.get(action_type)
        base = rule.base_risk if rule is not None else DEFAULT_BASE_RISK
        factors: list[tuple[str, float]] = []

        if rule is not None:
            for name, factor in rule.factors.items():
                try:
                    contribution = float(factor(target, raw_text, history))
                except Exception as e:
                    logger.debug(
                        "Skipping failed risk factor",
                        factor=name,
                        action_type=action_type.value,
                        error=str(e),
                    )
                    continue
                if contribution:
                    factors.append((name, contribution))

        if action_type.is_file_action and target and is_protected_path(target, self.protected_paths):
            factors.append(("protected_path", PROTECTED_PATH_RISK))

        # Rounded so 0.3 - 0.1 lands on the 0.2 threshold
        score = clamp(round(base + sum(value for _, value in factors), 10))
        return RiskAssessment(
            score=score,
            level=RiskLevel.from_score(score),
            factors=factors,
        )

    def assess(self, event: ActionEvent, history: HistoryStats) -> RiskAssessment:
        """Score a detected event.

        Args:
            event: Detected action
            history: Session history

        Returns:
            RiskAssessment: Assessment for the event
        """
        return self.score(event.type, event.target, event.raw_text, history, severity=event.severity)
