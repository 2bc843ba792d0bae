"""Secret lookup for agent API keys.

Priority order:
1. Environment variables (os.environ)
2. A .env.secrets file, in the current directory unless a path is given (cached)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import dotenv_values

SECRETS_FILE = ".env.secrets"


@lru_cache(maxsize=4)
def _load_secrets(secrets_path: Path | None = None) -> dict[str, str | None]:
    """Load and cache a .env.secrets file.

    Args:
        secrets_path: Optional path to secrets file. If None, uses
            .env.secrets in the current directory.

    Returns:
        Dict of variable names to values.
    """
    path = secrets_path or Path(SECRETS_FILE)
    if path.exists():
        return dotenv_values(path)
    return {}


def fetch_secret(
    key: str,
    default: str | None = None,
    secrets_path: Path | None = None,
) -> str | None:
    """Fetch a secret from the environment or .env.secrets.

    The environment wins so tests can monkeypatch keys and a shell export
    overrides a stale secrets file.

    Args:
        key: Variable name (e.g., "ANTHROPIC_API_KEY").
        default: Value returned when the key is found nowhere.
        secrets_path: Optional path to a .env.secrets file.

    Returns:
        Secret value or default.
    """
    value = os.environ.get(key)
    if value is not None:
        return value

    secrets = _load_secrets(secrets_path)
    found = secrets.get(key)
    if found is not None:
        return found

    return default


def clear_secret_cache() -> None:
    """Clear the secrets cache (after editing .env.secrets, or in tests)."""
    _load_secrets.cache_clear()
