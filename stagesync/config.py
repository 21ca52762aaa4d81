"""Configuration for StageSync.

Credentials and endpoints come from the environment, project settings from a
``stagesync.json`` file at the project root.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from .constants import PROJECT_CONFIG_FILE_NAME
from .exceptions import StageSyncConfigError
from .models import ProjectConfig

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("prod", "qa")


def api_origin(env: str = "prod", use_local_host: bool = False) -> str:
    """Build the API origin for an environment.

    Args:
        env: Environment name ("prod" or "qa")
        use_local_host: Use the local development host instead of the API host

    Returns:
        Origin URL without trailing slash
    """
    env_suffix = "qa" if env == "qa" else ""
    host = "local" if use_local_host else "api"
    return f"https://{host}.hubapi{env_suffix}.com"


class Config:
    """Environment-based configuration."""

    API_KEY_ENV = "STAGESYNC_API_KEY"
    API_URL_ENV = "STAGESYNC_API_URL"
    ENV_ENV = "STAGESYNC_ENV"

    @property
    def env(self) -> str:
        """Target environment, "prod" unless STAGESYNC_ENV says otherwise."""
        env = os.environ.get(self.ENV_ENV, "prod").lower()
        if env not in ENVIRONMENTS:
            raise StageSyncConfigError(
                f"Unknown environment '{env}' in {self.ENV_ENV}, "
                f"expected one of: {', '.join(ENVIRONMENTS)}"
            )
        return env

    @property
    def api_key(self) -> Optional[str]:
        return os.environ.get(self.API_KEY_ENV) or None

    @property
    def api_url(self) -> str:
        return os.environ.get(self.API_URL_ENV) or api_origin(self.env)

    def is_configured(self) -> bool:
        """Check whether an API key is available."""
        return self.api_key is not None


config = Config()


def find_project_config(start: Path) -> Optional[Path]:
    """Find the project config file in start or one of its parents.

    Args:
        start: Directory to start searching from

    Returns:
        Path to the project config file, or None if there is none
    """
    current = start.resolve()
    for directory in (current, *current.parents):
        candidate = directory / PROJECT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def load_project_config(path: Path) -> ProjectConfig:
    """Load a project config file.

    Args:
        path: Path to a stagesync.json file

    Returns:
        Parsed ProjectConfig

    Raises:
        StageSyncConfigError: If the file is missing or malformed
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise StageSyncConfigError(f"Project config not found: {path}") from e
    except json.JSONDecodeError as e:
        raise StageSyncConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise StageSyncConfigError(f"Project config must be a JSON object: {path}")
    if not data.get("name"):
        raise StageSyncConfigError(f"Project config is missing 'name': {path}")

    src_dir = data.get("srcDir", "src")
    if not isinstance(src_dir, str) or Path(src_dir).is_absolute():
        raise StageSyncConfigError(
            f"'srcDir' must be a path relative to the project: {path}"
        )

    logger.debug("Loaded project config from %s", path)
    return ProjectConfig.from_dict(data)
