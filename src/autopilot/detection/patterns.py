"""Rule table for action detection and risk scoring.

Every action kind is declared once as an ``ActionRule``: the ordered patterns
that recognise it, how the target is pulled out of a match, a base risk and the
named factors that adjust it. The classifier and the risk scorer both dispatch
on this table; adding an action kind means adding one entry here.

Factors take ``(target, raw_text, history)`` and return a signed contribution.
They must not mutate anything.
"""

import re
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

from autopilot.detection.history import HistoryStats
from autopilot.detection.models import ActionType

RiskFactor = Callable[[str, str, HistoryStats], float]
Extractor = Callable[[re.Match], str]


class PatternDef(BaseModel):
    """One regular expression with the confidence a match carries."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    regex: re.Pattern
    confidence: float = Field(..., gt=0, le=1)


class ActionRule(BaseModel):
    """Detection and scoring definition for one action kind."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: ActionType
    patterns: tuple[PatternDef, ...]
    base_risk: float = Field(default=0.5, ge=0, le=1)
    factors: dict[str, RiskFactor] = Field(default_factory=dict)
    extract: Extractor | None = None

    def target_from(self, match: re.Match) -> str:
        """Pull the action target out of a match."""
        if self.extract is not None:
            return self.extract(match)
        if match.re.groups and match.group(1):
            return match.group(1).strip()
        return ""


class DangerousPattern(BaseModel):
    """A policy independent pattern that always forces denial."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    regex: re.Pattern
    severity: str
    reason: str


def _p(pattern: str, confidence: float, flags: int = re.IGNORECASE) -> PatternDef:
    return PatternDef(regex=re.compile(pattern, flags), confidence=confidence)


def _when(pattern: str, value: float, flags: int = re.IGNORECASE, on_target: bool = False) -> RiskFactor:
    """Factor contributing ``value`` when ``pattern`` is found."""
    regex = re.compile(pattern, flags)

    def factor(target: str, raw_text: str, history: HistoryStats) -> float:
        return value if regex.search(target if on_target else raw_text) else 0.0

    return factor


SENSITIVE_FILE = r"\.(?:env|pem|key|secret)"
DANGEROUS_EXTENSIONS = (".sh", ".bash", ".env", ".pem", ".key")
IMPORTANT_FILES = ("package.json", "tsconfig.json", ".gitignore", "Dockerfile")
SUSPICIOUS_PACKAGES = ("crypto-", "wallet-", "password-")


def _path_depth(target: str, raw_text: str, history: HistoryStats) -> float:
    return 0.1 if len(target.split("/")) > 5 else 0.0


def _dangerous_extension(target: str, raw_text: str, history: HistoryStats) -> float:
    return 0.4 if target.endswith(DANGEROUS_EXTENSIONS) else 0.0


def _system_path(target: str, raw_text: str, history: HistoryStats) -> float:
    return 0.5 if target.startswith(("/etc", "/usr")) else 0.0


def _repeated_edits(target: str, raw_text: str, history: HistoryStats) -> float:
    return 0.3 if history.file(target).edits > 5 else 0.0


def _important_file(target: str, raw_text: str, history: HistoryStats) -> float:
    return 0.3 if target.endswith(IMPORTANT_FILES) else 0.0


def _suspicious_package(target: str, raw_text: str, history: HistoryStats) -> float:
    return 0.4 if any(marker in target for marker in SUSPICIOUS_PACKAGES) else 0.0


def _short_message(target: str, raw_text: str, history: HistoryStats) -> float:
    return 0.2 if len(target.strip()) < 5 else 0.0


def _git_push_args(match: re.Match) -> str:
    return " ".join(match.group(1).split()) if match.group(1) else ""


ACTION_RULES: tuple[ActionRule, ...] = (
    ActionRule(
        type=ActionType.FILE_CREATE,
        patterns=(
            _p(r"(?:Creating|Writing|Generating)\s+(?:new\s+)?file[:\s]+['\"]?([^\s'\"]+)", 0.95),
            _p(r"\btouch\s+([^\s;|&]+)", 0.9),
            _p(r"fs\.writeFile(?:Sync)?\s*\(\s*['\"]([^'\"]+)", 0.95),
            _p(r"\becho\s+.*>\s*([^\s;|&]+)", 0.8),
            _p(r"(?<![-=>\d])>\s*([^\s;|&>]+\.\w+)", 0.7),
        ),
        base_risk=0.2,
        factors={
            "path_depth": _path_depth,
            "extension": _dangerous_extension,
            "system_path": _system_path,
        },
    ),
    ActionRule(
        type=ActionType.FILE_EDIT,
        patterns=(
            _p(r"(?:Editing|Modifying|Updating)\s+(?:file[:\s]+)?['\"]?([^\s'\"]+)", 0.95),
            _p(r"str_replace.*?(?:in|path)[:\s]+['\"]?([^\s'\"]+)", 0.95),
            _p(r"\bsed\s+-i\S*\s+(?:'[^']*'|\"[^\"]*\"|\S+)\s+([^\s;|&]+)", 0.9),
            _p(r"\bpatch\s+(?:-p\d\s+)?([^\s;|&]+\.\w+)", 0.85),
        ),
        base_risk=0.3,
        factors={
            "config_file": _when(r"\.(?:json|ya?ml|toml|ini|conf)$", 0.2, on_target=True),
            "sensitive_file": _when(SENSITIVE_FILE, 0.5, on_target=True),
            "frequency": _repeated_edits,
        },
    ),
    ActionRule(
        type=ActionType.FILE_DELETE,
        patterns=(
            _p(r"(?:Deleting|Removing)\s+(?:file[:\s]+)?['\"]?([^\s'\"]+)", 0.95),
            _p(r"fs\.(?:unlink|rm)(?:Sync)?\s*\(\s*['\"]([^'\"]+)", 0.95),
            _p(r"\brm\s+(?:-[rf]+\s+)?([^\s;|&]+)", 0.9),
            _p(r"\bunlink\s*\(\s*['\"]([^'\"]+)", 0.9),
        ),
        base_risk=0.7,
        factors={
            "recursive": _when(r"\brm\s+-\w*r", 0.3, flags=0),
            "force": _when(r"\brm\s+.*-\w*f", 0.2, flags=0),
            "glob_pattern": _when(r"[*?]", 0.4, flags=0, on_target=True),
            "important_file": _important_file,
            "sensitive_file": _when(SENSITIVE_FILE, 0.5, on_target=True),
        },
    ),
    ActionRule(
        type=ActionType.TERMINAL_COMMAND,
        patterns=(
            _p(r"(?:Running|Executing)\s+(?:command)?[:\s]+['\"]?(.+?)['\"]?\s*$", 0.9, re.IGNORECASE | re.MULTILINE),
            _p(r"^\s*\$\s+(.+)", 0.7, re.MULTILINE),
            _p(r"\bbash[:\s]+(.+)", 0.85),
            _p(r"\bexec(?:Sync)?\s*\(\s*['\"]([^'\"]+)", 0.9),
        ),
        base_risk=0.4,
        factors={
            "sudo": _when(r"\bsudo\b", 0.5, flags=0, on_target=True),
            "pipe_to_shell": _when(r"\|\s*(?:bash|sh|zsh)\b", 0.6, flags=0, on_target=True),
            "curl_pipe": _when(r"\bcurl\b.*\|", 0.5, flags=0, on_target=True),
            "network": _when(r"\b(?:curl|wget|nc|netcat)\b", 0.3, flags=0, on_target=True),
            "destructive": _when(r"\b(?:rm|kill|pkill|shutdown|reboot)\b", 0.4, flags=0, on_target=True),
        },
    ),
    ActionRule(
        type=ActionType.NPM_INSTALL,
        patterns=(
            _p(r"\bnpm\s+(?:install|i|add)\s+(?:-\S+\s+)*([^\s;|&-][^\s;|&]*)", 0.95),
            _p(r"\byarn\s+add\s+(?:-\S+\s+)*([^\s;|&-][^\s;|&]*)", 0.95),
            _p(r"\bpnpm\s+(?:add|install)\s+(?:-\S+\s+)*([^\s;|&-][^\s;|&]*)", 0.95),
        ),
        base_risk=0.3,
        factors={
            "global": _when(r"(?:^|\s)(?:-g|--global)\b", 0.3, flags=0),
            "suspicious_package": _suspicious_package,
            "dev_only": _when(r"(?:^|\s)(?:-D|--save-dev)\b", -0.1, flags=0),
        },
    ),
    ActionRule(
        type=ActionType.GIT_COMMIT,
        patterns=(
            _p(r"\bgit\s+commit\s+(?:-[am]+\s+)?['\"]?([^'\"\n]+)", 0.95),
            _p(r"\bCommit(?:ting)?[:\s]+['\"]?([^'\"\n]+)", 0.8),
        ),
        base_risk=0.2,
        factors={
            "empty_message": _short_message,
            "amend": _when(r"--amend\b", 0.3, flags=0),
        },
    ),
    ActionRule(
        type=ActionType.GIT_PUSH,
        patterns=(
            _p(r"\bgit\s+push\b([^;|&\n]*)", 0.95),
            _p(r"\bPush(?:ing)?\s+to\s+(\w+)", 0.85),
        ),
        base_risk=0.6,
        extract=_git_push_args,
        factors={
            "force": _when(r"(?:^|\s)(?:-f|--force)\b", 0.4, flags=0),
            "main_branch": _when(r"\b(?:main|master|prod)\b", 0.3, flags=0, on_target=True),
            "all": _when(r"--all\b", 0.2, flags=0),
        },
    ),
    ActionRule(
        type=ActionType.DATABASE_OPERATION,
        patterns=(
            _p(r"\b(?:migrate|migration)\s+(?:run|up|down)\b", 0.95),
            _p(r"\bprisma\s+(?:migrate|db\s+push)", 0.95),
            _p(r"\bsupabase\s+(?:db|migration)\b", 0.95),
            _p(r"\bDROP\s+(?:TABLE|DATABASE|INDEX)\s+(?:IF\s+EXISTS\s+)?(\w+)?", 0.99),
            _p(r"\bTRUNCATE\s+(?:TABLE\s+)?(\w+)?", 0.95),
            _p(r"\bDELETE\s+FROM\s+(\w+)\b(?!\s+WHERE)", 0.9),
        ),
        base_risk=0.8,
        factors={
            "drop": _when(r"\bDROP\b", 0.5, flags=0),
            "truncate": _when(r"\bTRUNCATE\b", 0.4, flags=0),
        },
    ),
    ActionRule(
        type=ActionType.ENV_MODIFICATION,
        patterns=(
            _p(r"\b(?:edit|modify|create|update)\w*\s.*?(\.env[\w.-]*)", 0.96),
            _p(r"\bexport\s+(\w+)=", 0.7),
            _p(r"process\.env\.(\w+)\s*=(?!=)", 0.9),
        ),
        base_risk=0.7,
        factors={
            "secret_key": _when(r"SECRET|KEY|TOKEN|PASSWORD|CREDENTIAL", 0.3),
            "api_key": _when(r"API[_-]?KEY", 0.2),
        },
    ),
    ActionRule(
        type=ActionType.APPROVAL_PROMPT,
        patterns=(
            _p(r"Do you want to (?:proceed|continue)\??", 0.95),
            _p(r"Approve\?", 0.95),
            _p(r"\[Y/n\]", 0.9),
            _p(r"Press (?:y|enter) to continue", 0.9),
            _p(r"Are you sure\?", 0.85),
        ),
        base_risk=0.5,
    ),
)


DANGEROUS_PATTERNS: tuple[DangerousPattern, ...] = tuple(
    DangerousPattern(regex=re.compile(pattern, re.IGNORECASE), severity=severity, reason=reason)
    for pattern, severity, reason in (
        (r"\brm\s+-(?:rf|fr)\s+/", "critical", "Recursive delete from root"),
        (r">\s*/dev/sd[a-z]", "critical", "Direct disk write"),
        (r"\bmkfs\.", "critical", "Filesystem format"),
        (r"\bdd\s+.*of=/dev", "critical", "Direct disk write"),
        (r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", "critical", "Fork bomb"),
        (r"\bchmod\s+(?:-R\s+)?777\s+/", "high", "Insecure root permissions"),
        (r"\bcurl\b.*\|\s*sudo", "high", "Piping to sudo"),
        (r"\beval\s*\(\s*\$\{?[A-Z_]+", "high", "Eval with env variable"),
        (r"\bbase64\s+(?:-d|--decode).*\|\s*(?:bash|sh)\b", "high", "Base64 decode to shell"),
    )
)


RULES_BY_TYPE: dict[ActionType, ActionRule] = {rule.type: rule for rule in ACTION_RULES}
