"""Agent catalogue: which agents exist and how to launch them."""

from __future__ import annotations

from dataclasses import dataclass

from obsius.config.schema import AgentSettings, Settings
from obsius.config.secrets import fetch_secret
from obsius.ports import AgentConfig


@dataclass(frozen=True, slots=True)
class AgentEntry:
    """An agent as offered in the agent picker."""

    id: str
    display_name: str


def get_default_agent_id(settings: Settings) -> str:
    return settings.default_agent_id or settings.claude.id


def _builtin_agents(settings: Settings) -> list[AgentSettings]:
    return [settings.claude, settings.codex, settings.gemini]


def get_available_agents(settings: Settings) -> list[AgentEntry]:
    """Built-in agents first, then custom agents in configuration order."""
    return [
        AgentEntry(id=agent.id, display_name=agent.display_name or agent.id)
        for agent in [*_builtin_agents(settings), *settings.custom_agents]
    ]


def get_agent_entry(settings: Settings, agent_id: str | None = None) -> AgentEntry:
    """Entry for ``agent_id`` (default agent when None).

    Unknown ids still produce an entry named after the id so a session
    snapshot can display it while reporting the configuration error.
    """
    active_id = agent_id or get_default_agent_id(settings)
    for entry in get_available_agents(settings):
        if entry.id == active_id:
            return entry
    return AgentEntry(id=active_id, display_name=active_id)


def find_agent_settings(settings: Settings, agent_id: str) -> AgentSettings | None:
    for agent in [*_builtin_agents(settings), *settings.custom_agents]:
        if agent.id == agent_id:
            return agent
    return None


def _api_key_env(settings: Settings, agent_id: str) -> str | None:
    """Environment variable that carries the provider API key for a built-in agent."""
    if agent_id == settings.claude.id:
        return "ANTHROPIC_API_KEY"
    if agent_id == settings.codex.id:
        return "OPENAI_API_KEY"
    if agent_id == settings.gemini.id:
        return "GEMINI_API_KEY"
    return None


def build_agent_config(
    settings: Settings,
    agent: AgentSettings,
    working_directory: str,
) -> AgentConfig:
    """Launch configuration for ``agent``, with its provider API key injected.

    The configured ``api_key`` wins; otherwise the key is looked up with
    fetch_secret(). Missing keys are simply not set so agents that log in
    by other means still start.
    """
    env = dict(agent.env)
    key_name = _api_key_env(settings, agent.id)
    if key_name is not None:
        api_key = agent.api_key or fetch_secret(key_name)
        if api_key:
            env[key_name] = api_key

    return AgentConfig(
        id=agent.id,
        display_name=agent.display_name or agent.id,
        command=agent.command.strip(),
        args=tuple(agent.args),
        env=env,
        working_directory=working_directory,
    )
