"""Configuration for reconsync.

Configuration lives in a JSON file (``config.json`` by default, overridable
with ``RECONSYNC_CONFIG``) and is parsed into frozen pydantic models. The
parsed :class:`AppConfig` is owned by a :class:`ConfigHolder` that callers
construct once and pass around; :meth:`ConfigHolder.reload` swaps the held
reference in one step.

Example ``config.json``::

    {
      "base_url": "https://remote.example/api",
      "db_path": "reconsync.db",
      "branches": [
        {"id": "BR01", "name": "Main", "dbId": "123456", "active": true,
         "credentials": {"appKey": "...", "signatureSecret": "...", "clientId": "..."}}
      ],
      "sync": {"batch_size": 20, "batch_delay": 0.5, "max_retries": 2}
    }
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

CONFIG_PATH_ENV = "RECONSYNC_CONFIG"
DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_BASE_URL = "http://localhost:8000/api"

ENV_APP_KEY = "RECONSYNC_APP_KEY"
ENV_SIGNATURE_SECRET = "RECONSYNC_SIGNATURE_SECRET"
ENV_CLIENT_ID = "RECONSYNC_CLIENT_ID"


class ConfigError(Exception):
    """Configuration is missing, unreadable or invalid."""


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    app_key: str | None = Field(default=None, alias="appKey")
    signature_secret: str | None = Field(default=None, alias="signatureSecret")
    client_id: str | None = Field(default=None, alias="clientId")

    @property
    def complete(self) -> bool:
        return bool(self.signature_secret and self.client_id)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Credentials":
        source = os.environ if env is None else env
        return cls(
            app_key=source.get(ENV_APP_KEY),
            signature_secret=source.get(ENV_SIGNATURE_SECRET),
            client_id=source.get(ENV_CLIENT_ID),
        )


class BranchConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    name: str
    db_id: str = Field(alias="dbId")
    active: bool = True
    credentials: Credentials | None = None


class SyncDefaults(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    batch_size: int = Field(default=20, ge=1)
    batch_delay: float = Field(default=0.5, ge=0)
    max_retries: int = Field(default=2, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    page_delay: float = Field(default=0.1, ge=0)
    sample_limit: int = Field(default=20, ge=0)
    requests_per_second: float | None = Field(default=None, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    base_url: str = DEFAULT_BASE_URL
    db_path: str | None = None
    branches: tuple[BranchConfig, ...] = ()
    sync: SyncDefaults = SyncDefaults()

    def active_branches(self) -> list[BranchConfig]:
        return [branch for branch in self.branches if branch.active]

    def get_branch(self, branch_id: str) -> BranchConfig:
        """Return the active branch with ``branch_id``.

        Raises:
            KeyError: If no active branch has that id.
        """
        for branch in self.branches:
            if branch.id == branch_id and branch.active:
                return branch
        raise KeyError(branch_id)

    def credentials_for(
        self, branch: BranchConfig, env: Mapping[str, str] | None = None
    ) -> Credentials:
        """Return the branch's credentials, falling back to the environment."""
        if branch.credentials is not None and branch.credentials.complete:
            return branch.credentials
        fallback = Credentials.from_env(env)
        if not fallback.complete:
            raise ConfigError(
                f"No credentials for branch {branch.id}: set them in the config "
                f"or via {ENV_CLIENT_ID}/{ENV_SIGNATURE_SECRET}"
            )
        return fallback


def default_config_path() -> Path:
    raw = os.environ.get(CONFIG_PATH_ENV)
    return Path(raw).expanduser() if raw else Path.cwd() / DEFAULT_CONFIG_FILE


def load_app_config(path: str | Path | None = None) -> AppConfig:
    """Load and validate the configuration file.

    A missing file yields the defaults (no branches). A relative ``db_path``
    is resolved against the config file's directory.

    Raises:
        ConfigError: If the file is not valid JSON or fails validation.
    """
    config_path = Path(path) if path is not None else default_config_path()
    if not config_path.exists():
        return AppConfig()
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path}: top level must be an object")
    try:
        config = AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {config_path}: {exc}") from exc

    if config.db_path and not Path(config.db_path).is_absolute():
        resolved = (config_path.parent / config.db_path).resolve()
        config = config.model_copy(update={"db_path": str(resolved)})
    return config


class ConfigHolder:
    """Owns the current :class:`AppConfig`.

    Readers take ``holder.config`` once per operation; :meth:`reload` parses
    the file first and only then replaces the reference, so a bad file leaves
    the previous configuration in place.
    """

    def __init__(
        self, path: str | Path | None = None, config: AppConfig | None = None
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._config = config if config is not None else load_app_config(self._path)

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def path(self) -> Path | None:
        return self._path

    def reload(self) -> AppConfig:
        fresh = load_app_config(self._path)
        with self._lock:
            self._config = fresh
        return fresh


__all__ = [
    "AppConfig",
    "BranchConfig",
    "ConfigError",
    "ConfigHolder",
    "Credentials",
    "SyncDefaults",
    "default_config_path",
    "load_app_config",
]
