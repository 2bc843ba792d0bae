"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from obsius.config import loader, paths
from obsius.config.secrets import clear_secret_cache
from obsius.logging import reset_logging

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep machine-wide config files and env overrides out of every test."""
    monkeypatch.setattr(paths, "get_system_config_path", lambda: None)
    monkeypatch.setattr(paths, "get_user_config_path", lambda: None)
    monkeypatch.delenv("OBSIUS_LOG", raising=False)
    monkeypatch.delenv("OBSIUS_DEFAULT_AGENT", raising=False)
    loader.reset_settings()
    clear_secret_cache()
    reset_logging()
    yield
    loader.reset_settings()
    clear_secret_cache()
    reset_logging()
