"""
Startup configuration.

Settings come from an optional TOML file::

    [taskgate]
    max_retries = 3
    max_workers = 5

    [agents.imager]
    primary = "google/nano-banana-pro"
    fallback = "flux-2-pro"
    allowed = ["image"]

Scalar values can be overridden with ``TASKGATE_<FIELD>`` environment
variables. Credentials are read separately from a dotenv file and are only
ever handed to the dispatcher and the gatekeeper's secret scan.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from taskgate.errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "TASKGATE_"
REDACTED_MARKER = "__OPENCLAW_REDACTED__"
DEFAULT_CONFIG_NAME = "config.toml"


def default_data_dir() -> Path:
    return Path.home() / ".taskgate"


@dataclass(frozen=True)
class Settings:
    data_dir: Path = field(default_factory=default_data_dir)
    max_retries: int = 3
    max_workers: int = 5
    dispatch_timeout: float = 120.0
    max_output_size: int = 8192
    min_secret_length: int = 16
    env_file: Path = Path(".env")
    api_base: str = "https://openrouter.ai/api/v1"
    api_key_env: str = "OPENROUTER_API_KEY"
    agents: dict[str, dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.dispatch_timeout <= 0:
            raise ConfigError(f"dispatch_timeout must be > 0, got {self.dispatch_timeout}")
        if self.max_output_size < 1:
            raise ConfigError(f"max_output_size must be >= 1, got {self.max_output_size}")
        if self.min_secret_length < 1:
            raise ConfigError(f"min_secret_length must be >= 1, got {self.min_secret_length}")

    @property
    def db_path(self) -> Path:
        return self.data_dir / "taskgate.db"


_SCALARS = tuple(f.name for f in fields(Settings) if f.name != "agents")


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw TOML or environment value to the field's type."""
    kind = {
        "data_dir": Path,
        "env_file": Path,
        "max_retries": int,
        "max_workers": int,
        "max_output_size": int,
        "min_secret_length": int,
        "dispatch_timeout": float,
        "api_base": str,
        "api_key_env": str,
    }[name]
    if kind is int and isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        result = kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name}: invalid value {value!r}") from exc
    if kind is Path:
        result = result.expanduser()
    return result


def load_settings(path: Path | str | None = None, environ: dict[str, str] | None = None) -> Settings:
    """
    Load settings from TOML plus environment overrides.

    Args:
        path: Config file. A missing file is only an error when given explicitly;
            otherwise ``<data_dir>/config.toml`` is used when present.
        environ: Environment mapping (defaults to ``os.environ``)

    Raises:
        ConfigError: unreadable file, unknown key or invalid value
    """
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    if path is None:
        data_dir = env.get(f"{ENV_PREFIX}DATA_DIR")
        candidate = (Path(data_dir).expanduser() if data_dir else default_data_dir()) / DEFAULT_CONFIG_NAME
        config_path = candidate if candidate.exists() else None
    else:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

    agents: dict[str, dict[str, Any]] = {}
    if config_path is not None:
        try:
            with open(config_path, "rb") as fh:
                document = tomllib.load(fh)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"Cannot read {config_path}: {exc}") from exc

        section = document.get("taskgate", {})
        for key, value in section.items():
            if key not in _SCALARS:
                raise ConfigError(f"Unknown setting '{key}' in {config_path}")
            values[key] = _coerce(key, value)

        raw_agents = document.get("agents", {})
        if not isinstance(raw_agents, dict) or not all(
            isinstance(v, dict) for v in raw_agents.values()
        ):
            raise ConfigError("[agents] must contain one table per agent")
        agents = {agent_id: dict(table) for agent_id, table in raw_agents.items()}
        logger.debug("Loaded config from %s", config_path)

    for name in _SCALARS:
        raw = env.get(f"{ENV_PREFIX}{name.upper()}")
        if raw:
            values[name] = _coerce(name, raw)

    return replace(Settings(), **values, agents=agents)


def load_credentials(env_file: Path | str) -> dict[str, str]:
    """
    Read credential values from a dotenv file.

    Empty and redacted entries are dropped. A missing file yields no
    credentials. Values are never logged.
    """
    env_path = Path(env_file).expanduser()
    if not env_path.exists():
        logger.debug("No credentials file at %s", env_path)
        return {}
    credentials = {
        name: value
        for name, value in dotenv_values(env_path).items()
        if value and value != REDACTED_MARKER
    }
    logger.debug("Loaded %d credential(s) from %s", len(credentials), env_path)
    return credentials
