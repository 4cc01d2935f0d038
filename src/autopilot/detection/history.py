"""Session history of detected actions used as a risk scoring input.

HistoryStats is a plain value object owned by the session. The classifier
records every selected action into it, the risk scorer reads the per-target
counters, and the orchestrator adds the risk level of each assessment so that
an end of session summary can be produced.
"""

from collections import Counter, OrderedDict, deque

from pydantic import BaseModel, Field

from autopilot.detection.models import ActionEvent, ActionType, RiskAssessment, RiskLevel

MAX_HISTORY = 1000
MAX_TARGETS = 500
TOP_N = 10


class FileStats(BaseModel):
    """Counters of prior operations on one file path."""

    creates: int = 0
    edits: int = 0
    deletes: int = 0


class SessionInsights(BaseModel):
    """Summary of the actions seen in a session."""

    total_actions: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_risk: dict[str, int] = Field(default_factory=dict)
    most_edited: list[tuple[str, FileStats]] = Field(default_factory=list)
    most_used_commands: list[tuple[str, int]] = Field(default_factory=list)
    average_risk: float = 0.0


class HistoryStats:
    """Bounded action history with per-target frequency counters.

    Attributes:
        actions: The most recent actions, oldest evicted past ``max_history``
        file_stats: Per file path operation counters
        command_stats: Per command name invocation counts
    """

    def __init__(self, max_history: int = MAX_HISTORY, max_targets: int = MAX_TARGETS):
        self.max_targets = max_targets
        self.actions: deque[ActionEvent] = deque(maxlen=max_history)
        self.file_stats: OrderedDict[str, FileStats] = OrderedDict()
        self.command_stats: OrderedDict[str, int] = OrderedDict()
        self._risk_levels: Counter[str] = Counter()
        self._risk_total = 0.0
        self._risk_count = 0

    def record(self, event: ActionEvent) -> None:
        """Append an action and update its target counters."""
        self.actions.append(event)

        if event.target and event.type.is_file_action:
            stats = self.file_stats.get(event.target)
            if stats is None:
                stats = FileStats()
                self.file_stats[event.target] = stats
                self._evict(self.file_stats)
            if event.type == ActionType.FILE_CREATE:
                stats.creates += 1
            elif event.type == ActionType.FILE_EDIT:
                stats.edits += 1
            else:
                stats.deletes += 1

        elif event.type == ActionType.TERMINAL_COMMAND and event.target:
            command = event.target.split()[0]
            if command not in self.command_stats:
                self.command_stats[command] = 0
                self._evict(self.command_stats)
            self.command_stats[command] += 1

    def record_risk(self, assessment: RiskAssessment) -> None:
        """Count an assessment towards the risk histogram and average."""
        self._risk_levels[assessment.level.value] += 1
        self._risk_total += assessment.score
        self._risk_count += 1

    def file(self, path: str) -> FileStats:
        """Counters for a path (zeroes if never seen)."""
        return self.file_stats.get(path) or FileStats()

    def command_count(self, command: str) -> int:
        """Number of recorded invocations of a command name."""
        return self.command_stats.get(command, 0)

    def insights(self) -> SessionInsights:
        """Build the session summary from the recorded history."""
        by_type = Counter(event.type.value for event in self.actions)
        by_risk = {level.value: self._risk_levels.get(level.value, 0) for level in reversed(RiskLevel)}

        most_edited = sorted(
            self.file_stats.items(),
            key=lambda item: item[1].edits,
            reverse=True,
        )[:TOP_N]
        most_used = sorted(
            self.command_stats.items(),
            key=lambda item: item[1],
            reverse=True,
        )[:TOP_N]

        return SessionInsights(
            total_actions=len(self.actions),
            by_type=dict(by_type),
            by_risk=by_risk,
            most_edited=[(path, stats.model_copy()) for path, stats in most_edited],
            most_used_commands=most_used,
            average_risk=self._risk_total / self._risk_count if self._risk_count else 0.0,
        )

    def _evict(self, counters: OrderedDict) -> None:
        while len(counters) > self.max_targets:
            counters.popitem(last=False)

    def __len__(self) -> int:
        return len(self.actions)
