"""Site configuration for Vellum.

Configuration is read from ``vellum.yaml`` and then from the ``"vellum"``
object of the site's ``package.json``; later sources win. The requested
build mode comes from the ``VELLUM_ENV`` environment variable when set;
a site can set it (and other variables) in its ``.env`` file.

Key functions:
- load_env: Loads the site's ``.env`` file into the environment.
- load_config: Merged configuration with defaults applied.
- load_package_json: The site's package manifest.
- requested_mode: The build mode asked for by the environment or config.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .paths import BuildMode

CONFIG_FILENAME = "vellum.yaml"
PACKAGE_JSON = "package.json"
ENV_VAR = "VELLUM_ENV"
ENV_FILENAME = ".env"

DEFAULT_CONFIG = {
    "port": 3000,
    "output_dir": "data/.assets",
    "env": "development",
}


def load_env(site_root: Path) -> bool:
    """Load ``<site_root>/.env``. Variables already set in the environment win."""
    return load_dotenv(site_root / ENV_FILENAME, override=False)


def load_package_json(site_root: Path) -> dict[str, Any]:
    """Load the site's package.json.

    Returns:
        The parsed manifest, or an empty dict when it is missing.

    Raises:
        ConfigurationError: If the manifest is not valid JSON.
    """
    path = site_root / PACKAGE_JSON
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {PACKAGE_JSON} at {path}: {exc}") from exc
    return payload if isinstance(payload, dict) else {}


def load_config(site_root: Path) -> dict[str, Any]:
    """Load site configuration.

    Args:
        site_root: Root directory of the site.

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        ConfigurationError: If vellum.yaml is not valid YAML.
    """
    config = DEFAULT_CONFIG.copy()
    config_path = site_root / CONFIG_FILENAME
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid {CONFIG_FILENAME} at {config_path}: {exc}") from exc
            if isinstance(loaded, dict):
                config.update(loaded)

    options = load_package_json(site_root).get("vellum")
    if isinstance(options, dict):
        config.update(options)
    return config


def requested_mode(config: dict[str, Any]) -> BuildMode:
    """Return the build mode requested by ``VELLUM_ENV`` or the ``env`` key."""
    value = os.environ.get(ENV_VAR) or config.get("env") or "development"
    return BuildMode.from_value(value)
