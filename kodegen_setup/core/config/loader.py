"""
Configuration loader — reads installer.yml into an InstallerConfig.

The file is optional.  Search order:
    --config PATH  >  $KODEGEN_CONFIG  >  ./installer.yml
    >  ~/.config/kodegen/installer.yml  >  built-in defaults
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from kodegen_setup.core.models.config import InstallerConfig

logger = logging.getLogger(__name__)

# Default config filename
INSTALLER_CONFIG_FILE = "installer.yml"


class ConfigError(Exception):
    """Raised when installer configuration is invalid or unreadable."""


def find_config_file(
    explicit: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> Path | None:
    """Locate installer.yml following the documented search order.

    An explicit path (flag or env var) is returned even if it does not
    exist, so ``load_config`` can report it.  Implicit locations are only
    returned when the file is actually there.
    """
    env = os.environ if env is None else env

    if explicit is not None:
        return explicit

    from_env = env.get("KODEGEN_CONFIG")
    if from_env:
        return Path(from_env).expanduser()

    candidates = [(cwd or Path.cwd()) / INSTALLER_CONFIG_FILE]
    home = env.get("HOME") or env.get("USERPROFILE")
    if home:
        candidates.append(Path(home) / ".config" / "kodegen" / INSTALLER_CONFIG_FILE)

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def load_config(
    path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> InstallerConfig:
    """Load and validate the installer configuration.

    Args:
        path: Explicit path to installer.yml (``--config``).

    Returns:
        Validated InstallerConfig (defaults if no file was found).

    Raises:
        ConfigError: If the chosen file is missing, unreadable or invalid.
    """
    path = find_config_file(path, env=env, cwd=cwd)
    if path is None:
        logger.debug("No %s found, using built-in defaults", INSTALLER_CONFIG_FILE)
        return InstallerConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading installer config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return InstallerConfig()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Allow everything to be nested under an "installer" key
    config_data = data.get("installer", data)

    try:
        config = InstallerConfig.model_validate(config_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid installer configuration in {path}: {e}") from e

    logger.info("Loaded installer config for '%s' from %s", config.repository, path)
    return config
