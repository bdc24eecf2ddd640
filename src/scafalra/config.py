"""Data directory resolution and the persisted user configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from scafalra.jsonfile import load_json, save_json

HOME_ENV_VAR = "SCAFALRA_HOME"
TOKEN_ENV_VARS = ("GH_TOKEN", "GITHUB_TOKEN")
CONFIG_FILE_NAME = "config.json"
CACHE_DIR_NAME = "cache"


def _is_windows() -> bool:
    return os.name == "nt"


def get_scafalra_home() -> Path:
    """Return the directory holding the store, the config and the cache.

    Resolution order:
    1. SCAFALRA_HOME environment variable
    2. ~/.scafalra/ on macOS/Linux
    3. %LOCALAPPDATA%\\scafalra\\ on Windows (via platformdirs)
    """
    if env_home := os.environ.get(HOME_ENV_VAR):
        return Path(env_home)

    if _is_windows():
        from platformdirs import user_data_dir

        return Path(user_data_dir("scafalra", appauthor=False))

    return Path.home() / ".scafalra"


def env_token() -> Optional[str]:
    for var in TOKEN_ENV_VARS:
        value = (os.environ.get(var) or "").strip()
        if value:
            return value
    return None


class ConfigContent(BaseModel):
    token: Optional[str] = None


class UserConfig:
    """``config.json`` in the data directory; currently only the token."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.content: ConfigContent = load_json(path, ConfigContent, ConfigContent)

    @classmethod
    def in_dir(cls, data_dir: Path) -> "UserConfig":
        return cls(data_dir / CONFIG_FILE_NAME)

    @property
    def token(self) -> Optional[str]:
        return self.content.token

    @token.setter
    def token(self, value: Optional[str]) -> None:
        self.content.token = value.strip() if value else None

    def save(self) -> None:
        save_json(self.path, self.content, ConfigContent)
        if not _is_windows():
            os.chmod(self.path, 0o600)

    def resolve_token(self, explicit: Optional[str] = None) -> Optional[str]:
        """Explicit value, then GH_TOKEN / GITHUB_TOKEN, then the stored token."""
        if explicit and explicit.strip():
            return explicit.strip()
        return env_token() or self.token
