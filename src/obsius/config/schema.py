"""Settings schema dataclasses for Obsius.

Defines the structure of settings at all levels (system, user, vault).
Every layer is a partial dict; the merged result is converted into these
dataclasses by the loader.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_MAX_NOTE_LENGTH = 10000
DEFAULT_MAX_SELECTION_LENGTH = 10000

CLAUDE_AGENT_ID = "claude-code-acp"
CODEX_AGENT_ID = "codex-acp"
GEMINI_AGENT_ID = "gemini-cli"


@dataclass
class AgentSettings:
    """Launch settings for one agent backend.

    Example config.yaml:
        claude:
          command: /usr/local/bin/claude-code-acp
          env:
            CLAUDE_CODE_MAX_OUTPUT_TOKENS: "32000"
    """

    id: str
    display_name: str
    command: str = ""
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    api_key: str | None = None  # Falls back to fetch_secret() when unset


def default_claude() -> AgentSettings:
    return AgentSettings(id=CLAUDE_AGENT_ID, display_name="Claude Code", command="claude-code-acp")


def default_codex() -> AgentSettings:
    return AgentSettings(id=CODEX_AGENT_ID, display_name="Codex", command="codex-acp")


def default_gemini() -> AgentSettings:
    return AgentSettings(
        id=GEMINI_AGENT_ID,
        display_name="Gemini CLI",
        command="gemini",
        args=["--experimental-acp"],
    )


@dataclass
class DisplaySettings:
    """Limits applied when attaching note content to prompts."""

    max_note_length: int = DEFAULT_MAX_NOTE_LENGTH
    max_selection_length: int = DEFAULT_MAX_SELECTION_LENGTH


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0..4, overrides level
    file: str | None = None  # Log file path
    areas: dict[str, str] = field(default_factory=dict)  # area -> level, e.g. acp: trace


@dataclass
class Settings:
    """Root settings object.

    All fields have defaults so an empty config produces a working setup
    with the three built-in agents.
    """

    claude: AgentSettings = field(default_factory=default_claude)
    codex: AgentSettings = field(default_factory=default_codex)
    gemini: AgentSettings = field(default_factory=default_gemini)
    custom_agents: list[AgentSettings] = field(default_factory=list)
    default_agent_id: str = CLAUDE_AGENT_ID
    auto_allow_permissions: bool = False
    auto_mention_active_note: bool = True
    windows_wsl_mode: bool = False
    display: DisplaySettings = field(default_factory=DisplaySettings)
    last_used_models: dict[str, str] = field(default_factory=dict)  # agent id -> model id
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level keys, kept so a write-back does not drop them
    extra: dict[str, Any] = field(default_factory=dict)
