"""Policy engine turning a risk assessment into a handling decision.

``decide`` is a pure function of the action, its risk assessment, the rule
configuration and the session mode. It performs no I/O and never mutates its
inputs; the orchestrator acts on the returned Decision.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from autopilot.config import ModeRules, SessionMode, StopConditions
from autopilot.detection.models import ActionEvent, ActionType, RiskAssessment, RiskLevel

AUTO_ACCEPT_RISK_CEILING = 0.7
DEFAULT_ACCEPT_THRESHOLD = 0.5


class DecisionOutcome(str, Enum):
    """What should happen to a detected action."""

    ACCEPT = "accept"  # Proceed unattended
    DENY = "deny"  # Refuse (or hold for confirmation in assisted mode)
    PAUSE = "pause"  # Block until a human resolves it
    QUICK_CONFIRM = "quick_confirm"  # Accept after a short grace period

    def __str__(self) -> str:
        """String representation of decision outcome."""
        return self.value


class Decision(BaseModel):
    """Result of a policy evaluation."""

    model_config = ConfigDict(frozen=True)

    outcome: DecisionOutcome
    reason: str
    confidence: float = Field(..., ge=0, le=1)
    timeout: float | None = Field(
        default=None,
        description="Grace period in seconds for quick confirmations",
    )
    stop_session: bool = Field(
        default=False,
        description="Unknown action in autonomous mode: stop the whole session",
    )

    @classmethod
    def accept(cls, reason: str, confidence: float) -> "Decision":
        """Create an accept decision."""
        return cls(outcome=DecisionOutcome.ACCEPT, reason=reason, confidence=confidence)

    @classmethod
    def deny(cls, reason: str, confidence: float, stop_session: bool = False) -> "Decision":
        """Create a deny decision."""
        return cls(
            outcome=DecisionOutcome.DENY,
            reason=reason,
            confidence=confidence,
            stop_session=stop_session,
        )

    @property
    def needs_human(self) -> bool:
        """Whether the action is held for a human verdict."""
        return self.outcome == DecisionOutcome.PAUSE


def _hold(mode: SessionMode, reason: str, confidence: float) -> Decision:
    """Pause in autonomous mode, deny pending confirmation in assisted mode."""
    outcome = DecisionOutcome.PAUSE if mode == SessionMode.AUTONOMOUS else DecisionOutcome.DENY
    return Decision(outcome=outcome, reason=reason, confidence=confidence)


def decide(
    action: ActionEvent,
    risk: RiskAssessment,
    rules: ModeRules,
    mode: SessionMode,
    stop_on: StopConditions | None = None,
) -> Decision:
    """Decide how to handle an action.

    Rules are evaluated in order and the first match wins:

    1. Dangerous commands and critical risk are always denied.
    2. Types listed in ``require_approval`` are held for a human.
    3. Types listed in ``auto_accept`` are accepted unless their score is
       above 0.7, in which case they are held like rule 2.
    4. Types listed in ``quick_confirm`` get a quick confirmation (assisted
       mode only).
    5. Any other type in autonomous mode with ``stop_on.unknown_action``
       requests a session stop.
    6. Otherwise accept when the score is below 0.5.

    Args:
        action: Detected action
        risk: Risk assessment for the action
        rules: Action lists for the active mode
        mode: Session mode
        stop_on: Session stop conditions

    Returns:
        Decision: How to handle the action
    """
    if action.type == ActionType.DANGEROUS_COMMAND or risk.level == RiskLevel.CRITICAL:
        return Decision.deny("critical risk detected", 1.0)

    if action.type in rules.require_approval:
        return _hold(mode, "action type requires approval", 0.9)

    if action.type in rules.auto_accept:
        if risk.score > AUTO_ACCEPT_RISK_CEILING:
            return _hold(mode, f"high risk score: {risk.score:.2f}", risk.score)
        return Decision.accept("action type auto-accepted", 0.9)

    if action.type in rules.quick_confirm and mode == SessionMode.ASSISTED:
        return Decision(
            outcome=DecisionOutcome.QUICK_CONFIRM,
            reason="quick confirmation",
            confidence=1 - risk.score,
            timeout=rules.timeout_seconds,
        )

    if mode == SessionMode.AUTONOMOUS and stop_on is not None and stop_on.unknown_action:
        return Decision.deny(f"unknown action type: {action.type.value}", 1.0, stop_session=True)

    if risk.score < DEFAULT_ACCEPT_THRESHOLD:
        return Decision.accept(f"risk score: {risk.score:.2f}", 1 - risk.score)
    return Decision.deny(f"risk score: {risk.score:.2f}", 1 - risk.score)


class PolicyEngine:
    """Binds a rule configuration to ``decide`` for one session.

    Attributes:
        rules: Action lists for the session mode
        mode: Session mode
        stop_on: Session stop conditions
    """

    def __init__(self, rules: ModeRules, mode: SessionMode, stop_on: StopConditions | None = None):
        self.rules = rules
        self.mode = mode
        self.stop_on = stop_on or StopConditions()

    def decide(self, action: ActionEvent, risk: RiskAssessment) -> Decision:
        """Decide how to handle an action under this session's rules."""
        return decide(action, risk, self.rules, self.mode, self.stop_on)
