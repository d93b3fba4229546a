from copy import deepcopy
from pathlib import Path
from typing import Any, Dict

import yaml

from eventstore.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("eventstore.config.yaml")
DEFAULT_TEMPLATES_PATH = Path("config/event-templates.yaml")
DEFAULT_QUEUE = "all-to-event"

BASE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "storage": {
        "sqlite_path": "eventstore.db",
    },
    "templates": {
        "path": str(DEFAULT_TEMPLATES_PATH),
    },
    "messaging": {
        "queue": DEFAULT_QUEUE,
        "poll_interval_seconds": 0.5,
        "max_deliveries": 3,
    },
    "logging": {
        "level": "INFO",
    },
}


def _merge_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Fill every known section with built-in fallbacks."""
    merged = deepcopy(config)
    for section, defaults in BASE_DEFAULTS.items():
        user_section = merged.get(section) or {}
        if not isinstance(user_section, dict):
            raise ConfigError(f"Config section '{section}' must be a dictionary")
        merged[section] = {**defaults, **user_section}
    return merged


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """
    Load runtime configuration from YAML file.

    Args:
        path: Optional path to the config file. Defaults to eventstore.config.yaml

    Returns:
        Config dictionary with defaults applied for storage, templates,
        messaging and logging sections

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigError: If the file is not a YAML mapping
    """
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Config file is not valid YAML: {cfg_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError("Config must be a dictionary")

    return _merge_defaults(config)


def load_config_or_defaults(path: Path | None = None) -> Dict[str, Any]:
    """Load runtime config, falling back to built-in defaults when the file is absent."""
    try:
        return load_config(path)
    except FileNotFoundError:
        return _merge_defaults({})


def load_templates_catalog(path: Path | None = None) -> Dict[str, Any]:
    """
    Load the raw event template catalog from YAML.

    Args:
        path: Optional path to the catalog. Defaults to config/event-templates.yaml

    Returns:
        Nested dictionary of template groups (empty if the file is empty)

    Raises:
        ConfigError: If the file is missing, unreadable, not YAML, or not a mapping
    """
    cfg_path = Path(path) if path else DEFAULT_TEMPLATES_PATH
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            catalog = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read template catalog {cfg_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Template catalog is not valid YAML: {cfg_path}: {e}") from e

    if catalog is None:
        return {}
    if not isinstance(catalog, dict):
        raise ConfigError("Template catalog must be a dictionary")
    return catalog
