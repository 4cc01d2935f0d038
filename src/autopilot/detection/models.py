"""Data models for detected actions and their risk assessments."""

from datetime import datetime, UTC
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ActionType(str, Enum):
    """Kinds of action the classifier can recognise in agent output."""

    FILE_CREATE = "file_create"
    FILE_EDIT = "file_edit"
    FILE_DELETE = "file_delete"
    TERMINAL_COMMAND = "terminal_command"
    NPM_INSTALL = "npm_install"
    GIT_COMMIT = "git_commit"
    GIT_PUSH = "git_push"
    DATABASE_OPERATION = "database_operation"
    ENV_MODIFICATION = "env_modification"
    APPROVAL_PROMPT = "approval_prompt"
    DANGEROUS_COMMAND = "dangerous_command"

    @property
    def is_file_action(self) -> bool:
        """Whether the target of this action is a file path."""
        return self in (ActionType.FILE_CREATE, ActionType.FILE_EDIT, ActionType.FILE_DELETE)

    def __str__(self) -> str:
        """String representation of action type."""
        return self.value


class RiskLevel(str, Enum):
    """Five step discretization of a risk score."""

    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        """Map a score in [0, 1] onto the fixed threshold ladder.

        Args:
            score: Risk score

        Returns:
            RiskLevel: Matching level
        """
        if score >= 0.8:
            return cls.CRITICAL
        if score >= 0.6:
            return cls.HIGH
        if score >= 0.4:
            return cls.MEDIUM
        if score >= 0.2:
            return cls.LOW
        return cls.MINIMAL

    def __str__(self) -> str:
        """String representation of risk level."""
        return self.value


class ActionEvent(BaseModel):
    """A typed action detected in a chunk of agent output.

    Events are immutable once created and live only for the session.
    """

    model_config = ConfigDict(frozen=True)

    type: ActionType = Field(..., description="Detected action kind")
    target: str = Field(default="", description="File path, command or package acted on")
    raw_text: str = Field(..., description="Text that matched the detection pattern")
    confidence: float = Field(..., gt=0, le=1, description="Confidence of the pattern match")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    reason: str | None = Field(default=None, description="Why a dangerous pattern fired")
    severity: str | None = Field(default=None, description="Severity of a dangerous pattern")

    def __str__(self) -> str:
        """Short human readable form."""
        return f"{self.type.value}({self.target})" if self.target else self.type.value


class RiskAssessment(BaseModel):
    """Bounded risk score for one action with the factors that shaped it."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(..., ge=0, le=1)
    level: RiskLevel
    factors: list[tuple[str, float]] = Field(default_factory=list)

    @property
    def factor_names(self) -> list[str]:
        """Names of the factors that contributed to the score."""
        return [name for name, _ in self.factors]
