"""Configuration for the Instagit client.

Config discovery (first match wins):
  1. Explicit ``path`` argument
  2. ``./instagit.yaml``
  3. ``~/.instagit/config.yaml``
  4. Built-in defaults

``INSTAGIT_API_URL`` in the environment overrides ``api_url`` in all cases.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

_logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://instagit--instagit-api-api.modal.run"

CONFIG_FILENAME = "instagit.yaml"

MAX_RETRIES = 3  # retries after the first attempt
RETRY_BASE_DELAY = 5.0  # seconds -- exponential: 5, 10, 20
FETCH_TIMEOUT = 30 * 60.0  # seconds, absolute per attempt


class ClientConfig(BaseModel):
    api_url: str = DEFAULT_API_URL
    timeout: float = Field(default=FETCH_TIMEOUT, gt=0)
    max_retries: int = Field(default=MAX_RETRIES, ge=0)
    base_delay: float = Field(default=RETRY_BASE_DELAY, ge=0)
    heartbeat_interval: float = Field(default=0.25, gt=0)
    token_dir: str = "~/.instagit"

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    @property
    def token_path(self) -> Path:
        return Path(self.token_dir).expanduser() / "token.json"


def _search_paths() -> list[Path]:
    return [
        Path.cwd() / CONFIG_FILENAME,
        Path.home() / ".instagit" / "config.yaml",
    ]


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Raises
    ------
    FileNotFoundError
        An explicit *path* was given but does not exist.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
    else:
        for candidate in _search_paths():
            if candidate.exists():
                config_path = candidate
                break

    raw: dict[str, Any] = {}
    if config_path is None:
        _logger.info("No config file found, using defaults")
    else:
        _logger.info("Loading config from %s", config_path)
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

    env_url = os.environ.get("INSTAGIT_API_URL")
    if env_url:
        raw["api_url"] = env_url

    return ClientConfig.model_validate(raw)
