"""Configuration management for the autopilot supervisor.

Two layers are kept apart here:

* ``Settings`` - process level settings (logging, agent command, timeouts)
  loaded from environment variables and ``.env`` files by pydantic-settings.
* ``AutopilotConfig`` - the session rule set (which action types are
  auto-accepted, which need approval, stop conditions and prompt context),
  loaded from a JSON file with sensible defaults.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from autopilot.detection.models import ActionType
from autopilot.exceptions import ConfigError


class SessionMode(str, Enum):
    """How much the supervisor is allowed to decide on its own."""

    AUTONOMOUS = "autonomous"  # Unattended queue runs, approvals go to channels
    ASSISTED = "assisted"  # A human is watching, quick confirmations allowed

    def __str__(self) -> str:
        """String representation of the mode."""
        return self.value


class ModeRules(BaseModel):
    """Per-mode action handling lists."""

    auto_accept: list[ActionType] = Field(default_factory=list)
    require_approval: list[ActionType] = Field(default_factory=list)
    quick_confirm: list[ActionType] = Field(default_factory=list)
    timeout_seconds: float = Field(
        default=2.0,
        description="Grace period before a quick confirmation is accepted",
        ge=0,
    )


class StopConditions(BaseModel):
    """Session level stop thresholds."""

    error_count: int = Field(default=3, ge=1)
    unknown_action: bool = True


class PromptContext(BaseModel):
    """Context sections injected ahead of every task prompt."""

    project_standards: str = ""
    current_focus: str = ""
    error_handling: str = ""


class AutopilotConfig(BaseModel):
    """Rule configuration for a supervised session."""

    mode: SessionMode = SessionMode.ASSISTED
    autonomous: ModeRules = Field(
        default_factory=lambda: ModeRules(
            auto_accept=[
                ActionType.FILE_CREATE,
                ActionType.FILE_EDIT,
                ActionType.TERMINAL_COMMAND,
            ],
            require_approval=[
                ActionType.FILE_DELETE,
                ActionType.GIT_PUSH,
                ActionType.DATABASE_OPERATION,
            ],
        )
    )
    assisted: ModeRules = Field(
        default_factory=lambda: ModeRules(
            auto_accept=[ActionType.FILE_CREATE, ActionType.FILE_EDIT],
            quick_confirm=[ActionType.TERMINAL_COMMAND, ActionType.NPM_INSTALL],
            require_approval=[ActionType.FILE_DELETE, ActionType.GIT_PUSH],
        )
    )
    stop_on: StopConditions = Field(default_factory=StopConditions)
    context: PromptContext = Field(default_factory=PromptContext)
    protected_paths: list[str] = Field(
        default_factory=lambda: [".env", ".env.*", "secrets/"],
    )

    def rules_for(self, mode: SessionMode | None = None) -> ModeRules:
        """Get the action lists for a mode (defaults to the configured mode)."""
        mode = mode or self.mode
        return self.autonomous if mode == SessionMode.AUTONOMOUS else self.assisted


def load_config(path: Path | str | None) -> AutopilotConfig:
    """Load the rule configuration from a JSON file.

    Missing files fall back to the defaults. Keys present in the file replace
    the defaults section by section.

    Args:
        path: Path to the JSON configuration file

    Returns:
        AutopilotConfig: Parsed configuration

    Raises:
        ConfigError: If the file exists but is not valid
    """
    if path is None:
        return AutopilotConfig()

    path = Path(path)
    if not path.exists():
        return AutopilotConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return AutopilotConfig.model_validate(data or {})
    except json.JSONDecodeError as e:
        raise ConfigError(str(path), f"not valid JSON ({e})") from e
    except ValidationError as e:
        raise ConfigError(str(path), str(e)) from e


class Settings(BaseSettings):
    """Process settings for the supervisor.

    Settings are loaded from environment variables and .env files.
    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    autopilot_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level for the application",
    )
    autopilot_log_dir: Path | None = Field(
        default=None,
        description="Directory for JSON session logs (console only if unset)",
    )
    autopilot_mode: SessionMode | None = Field(
        default=None,
        description="Session mode, overriding the rule configuration",
    )
    autopilot_config_file: Path = Field(
        default=Path("./autopilot.json"),
        description="Rule configuration file",
    )
    autopilot_working_dir: Path | None = Field(
        default=None,
        description="Directory the agent process runs in (defaults to cwd)",
    )

    # Agent process
    agent_provider: str = Field(
        default="claude",
        description="Agent CLI provider used to resolve model aliases",
    )
    agent_command: str = Field(
        default="claude",
        description="Executable of the supervised agent",
    )
    agent_args: list[str] = Field(
        default=["-p", "--dangerously-skip-permissions"],
        description="Arguments placed before the prompt",
    )
    agent_model: str | None = Field(
        default=None,
        description="Model name or alias passed with --model",
    )
    terminate_grace_seconds: float = Field(
        default=5.0,
        description="Wait between SIGTERM and SIGKILL when stopping the agent",
        ge=0,
    )

    # Approvals
    approval_timeout: float = Field(
        default=300.0,
        description="Seconds a paused action waits before it is denied",
        gt=0,
    )

    # Notifications
    notify_webhook_url: str | None = Field(
        default=None,
        description="Slack-compatible incoming webhook for session events",
    )
    notify_timeout: float = Field(
        default=10.0,
        description="Timeout for webhook delivery in seconds",
        gt=0,
    )

    @field_validator("autopilot_log_dir", "autopilot_config_file", "autopilot_working_dir", mode="before")
    @classmethod
    def expand_paths(cls, v: str | Path | None) -> Path | None:
        """Expand relative paths to absolute paths."""
        if v is None:
            return None
        path = Path(v)
        return path.expanduser().resolve()

    @property
    def working_dir(self) -> Path:
        """Directory the agent runs in."""
        return self.autopilot_working_dir or Path.cwd()

    def session_log_path(self, session_id: str) -> Path | None:
        """Get the JSON log path for a session, if file logging is enabled."""
        if self.autopilot_log_dir is None:
            return None
        return self.autopilot_log_dir / f"session-{session_id}.jsonl"

    def session_summary_path(self, session_id: str) -> Path | None:
        """Get the JSON summary path for a session, if file logging is enabled."""
        if self.autopilot_log_dir is None:
            return None
        return self.autopilot_log_dir / f"summary-{session_id}.json"

    def model_dump_safe(self) -> dict[str, str]:
        """Dump settings as a dictionary with safe string representations.

        The webhook URL embeds a secret token and is reported only as set/unset.
        """
        return {
            "log_level": self.autopilot_log_level,
            "log_dir": str(self.autopilot_log_dir) if self.autopilot_log_dir else "-",
            "mode": str(self.autopilot_mode) if self.autopilot_mode else "from config file",
            "config_file": str(self.autopilot_config_file),
            "working_dir": str(self.working_dir),
            "agent": " ".join([self.agent_command, *self.agent_args]),
            "agent_model": self.agent_model or "default",
            "approval_timeout": f"{self.approval_timeout:g}s",
            "webhook": "configured" if self.notify_webhook_url else "disabled",
        }


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Creates and caches the settings on first call.

    Returns:
        Settings: The global settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment/files.

    Returns:
        Settings: The newly loaded settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
