"""Action classification for streamed agent output.

This module provides the ActionClassifier which maps a chunk of text to at
most one typed ActionEvent using the rule table in ``patterns``.
"""

import fnmatch
import re

from autopilot.detection.history import HistoryStats
from autopilot.detection.models import ActionEvent, ActionType
from autopilot.detection.patterns import (
    ACTION_RULES,
    DANGEROUS_PATTERNS,
    ActionRule,
    DangerousPattern,
)
from autopilot.logging import get_logger

logger = get_logger("autopilot.detection.classifier")


class ActionClassifier:
    """Classifier detecting the most likely action in a chunk of output.

    Each action rule contributes at most one candidate (its first matching
    pattern) and every dangerous pattern that matches contributes one more.
    The candidate with the highest confidence wins, earlier declarations
    winning ties. The selected event is recorded into the session history.

    Attributes:
        history: Session history the selected actions are recorded into
    """

    def __init__(
        self,
        history: HistoryStats | None = None,
        rules: tuple[ActionRule, ...] = ACTION_RULES,
        dangerous: tuple[DangerousPattern, ...] = DANGEROUS_PATTERNS,
    ):
        """Initialize the action classifier.

        Args:
            history: Session history (creates an empty one if None)
            rules: Ordered action rule table
            dangerous: Ordered dangerous pattern list
        """
        self.history = history if history is not None else HistoryStats()
        self.rules = rules
        self.dangerous = dangerous

    def detect(self, text: str) -> ActionEvent | None:
        """Detect the action described by a chunk of output.

        Ordinary narrative output matches nothing and yields None.

        Args:
            text: Output chunk to analyze

        Returns:
            ActionEvent | None: Best candidate, or None if nothing matched
        """
        if not text or not text.strip():
            return None

        candidates: list[ActionEvent] = []
        for rule in self.rules:
            candidate = self._match_rule(rule, text)
            if candidate is not None:
                candidates.append(candidate)
        candidates.extend(self.check_dangerous(text))

        if not candidates:
            return None

        # max() keeps the first of equal elements, so declaration order breaks ties
        best = max(candidates, key=lambda event: event.confidence)
        self.history.record(best)

        logger.debug(
            "Action detected",
            action_type=best.type.value,
            target=best.target,
            confidence=best.confidence,
            candidates=len(candidates),
        )
        return best

    def check_dangerous(self, text: str) -> list[ActionEvent]:
        """Match text against every dangerous pattern.

        Args:
            text: Text to check

        Returns:
            list[ActionEvent]: One dangerous_command event per matching pattern
        """
        found = []
        for danger in self.dangerous:
            try:
                match = danger.regex.search(text)
                if match is None:
                    continue
                found.append(
                    ActionEvent(
                        type=ActionType.DANGEROUS_COMMAND,
                        target=match.group(0),
                        raw_text=_matched_line(text, match),
                        confidence=1.0,
                        reason=danger.reason,
                        severity=danger.severity,
                    )
                )
            except Exception as e:
                logger.debug("Dangerous pattern failed", reason=danger.reason, error=str(e))
        return found

    def _match_rule(self, rule: ActionRule, text: str) -> ActionEvent | None:
        for pattern in rule.patterns:
            try:
                match = pattern.regex.search(text)
                if match is None:
                    continue
                return ActionEvent(
                    type=rule.type,
                    target=rule.target_from(match),
                    raw_text=_matched_line(text, match),
                    confidence=pattern.confidence,
                )
            except Exception as e:
                logger.debug(
                    "Dropping candidate after pattern failure",
                    action_type=rule.type.value,
                    pattern=pattern.regex.pattern,
                    error=str(e),
                )
                return None
        return None


def _matched_line(text: str, match: re.Match) -> str:
    """The full line(s) of ``text`` spanned by ``match``."""
    start = text.rfind("\n", 0, match.start()) + 1
    end = text.find("\n", match.end())
    if end == -1:
        end = len(text)
    return text[start:end].strip()


def is_protected_path(path: str, protected_paths: list[str]) -> bool:
    """Check whether a path falls under any protected pattern.

    Patterns containing ``*`` are globs, anything else matches as a substring.

    Args:
        path: Path to check
        protected_paths: Protected patterns (e.g. ".env", ".env.*", "secrets/")

    Returns:
        bool: True if the path is protected
    """
    for pattern in protected_paths:
        if "*" in pattern:
            if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(path.rsplit("/", 1)[-1], pattern):
                return True
        elif pattern in path:
            return True
    return False
