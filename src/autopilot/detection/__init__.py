"""Action detection and risk scoring for agent output.

This module turns raw streamed text into typed actions and scores how risky
each of them is.
"""

from autopilot.detection.classifier import ActionClassifier, is_protected_path
from autopilot.detection.history import FileStats, HistoryStats, SessionInsights
from autopilot.detection.models import ActionEvent, ActionType, RiskAssessment, RiskLevel
from autopilot.detection.risk import RiskScorer

__all__ = [
    "ActionClassifier",
    "ActionEvent",
    "ActionType",
    "FileStats",
    "HistoryStats",
    "RiskAssessment",
    "RiskLevel",
    "RiskScorer",
    "SessionInsights",
    "is_protected_path",
]
