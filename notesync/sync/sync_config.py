"""Configuration for the sync engine.

``SyncConfig`` is immutable. Reloading configuration means building a new
engine from a new config, never mutating a running one.

Sources, later ones winning:
1. ``~/.notesync/config.json``
2. Environment: NOTESYNC_GITHUB_TOKEN, NOTESYNC_GITHUB_REPO, NOTESYNC_GITHUB_BRANCH
"""

import json
import logging
import os
import re
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

NOTESYNC_DIR = Path.home() / ".notesync"
CONFIG_FILE = NOTESYNC_DIR / "config.json"

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_BRANCH = "main"
DEFAULT_INTERVAL_SECONDS = 30 * 60
DEFAULT_TIMEOUT = 30.0

ENV_OVERRIDES = {
    "token": "NOTESYNC_GITHUB_TOKEN",
    "repo": "NOTESYNC_GITHUB_REPO",
    "branch": "NOTESYNC_GITHUB_BRANCH",
}

# Pattern to match ${VAR} or ${VAR:-default} syntax
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} and ${VAR:-default} references in a string."""

    def replacer(match: re.Match) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        default = match.group(2)
        return default if default is not None else ""

    return ENV_VAR_PATTERN.sub(replacer, value)


@dataclass(frozen=True)
class SyncConfig:
    """Everything a sync engine instance needs to talk to the remote store."""

    token: str | None = None
    repo: str | None = None  # "owner/name"
    branch: str = DEFAULT_BRANCH
    api_url: str = DEFAULT_API_URL
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    timeout: float = DEFAULT_TIMEOUT
    commit_prefix: str = "Update"

    @property
    def is_configured(self) -> bool:
        return bool(self.token and self.repo)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncConfig":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                logger.debug(f"Ignoring unknown config key: {key}")
                continue
            if isinstance(value, str):
                value = expand_env_vars(value)
            values[key] = value
        config = cls(**values)
        # Coerce numeric fields that may arrive as strings
        return replace(
            config,
            interval_seconds=int(config.interval_seconds),
            timeout=float(config.timeout),
            branch=config.branch or DEFAULT_BRANCH,
        )

    @classmethod
    def load(cls, path: Path | None = None) -> "SyncConfig":
        """Load config from file (if present) and apply environment overrides."""
        path = Path(path) if path else CONFIG_FILE
        data: dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                logger.error(f"Failed to read sync config {path}: {e}")
                data = {}

        for key, env_name in ENV_OVERRIDES.items():
            env_value = os.environ.get(env_name)
            if env_value:
                data[key] = env_value

        return cls.from_dict(data)

    def save(self, path: Path | None = None) -> Path:
        path = Path(path) if path else CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)
        logger.debug(f"Saved sync config to {path}")
        return path

    def redacted(self) -> dict[str, Any]:
        """Config as a dict with the token masked, for display."""
        data = asdict(self)
        if self.token:
            data["token"] = self.token[:4] + "…" if len(self.token) > 8 else "…"
        return data
