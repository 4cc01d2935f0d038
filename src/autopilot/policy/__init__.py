"""Policy evaluation for detected actions."""

from autopilot.policy.engine import Decision, DecisionOutcome, PolicyEngine, decide

__all__ = ["Decision", "DecisionOutcome", "PolicyEngine", "decide"]
