"""
Configuration management and loading.

Handles the YAML settings file for the usage monitor.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from cursor_usage.storage.db import DEFAULT_DB_PATH

DEFAULT_CONFIG_PATH = "~/.cursor-usage/config.yaml"

_ALLOWED_KEYS = {"team_id", "poll_minutes", "notify_hour", "db_path", "log_level"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class UsageConfig:
    """Runtime settings for the usage monitor."""
    team_id: str = ""
    poll_minutes: int = 30
    notify_hour: int = 9
    db_path: str = DEFAULT_DB_PATH
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate settings values."""
        if self.poll_minutes <= 0:
            raise ValueError("poll_minutes must be > 0")
        if not 0 <= self.notify_hour <= 23:
            raise ValueError("notify_hour must be between 0 and 23")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {sorted(_LOG_LEVELS)}")

    def is_auto_team(self) -> bool:
        """True when the team selector asks for auto-detection."""
        return self.team_id.strip().lower() == "auto"

    def resolved_team_id(self) -> Optional[int]:
        """The explicit numeric team id, or None."""
        value = self.team_id.strip()
        if value.isdigit():
            return int(value)
        return None


def load_config(path: str) -> UsageConfig:
    """Load and validate settings from a YAML file.

    Every key is optional; unknown keys are rejected so typos do not
    silently fall back to defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated UsageConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return UsageConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    unknown_keys = set(raw_config.keys()) - _ALLOWED_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values = {}

    if 'team_id' in raw_config:
        team_id = raw_config['team_id']
        if team_id is None:
            team_id = ""
        if isinstance(team_id, bool) or not isinstance(team_id, (str, int)):
            raise ValueError("'team_id' must be a number, 'auto' or empty")
        team_id = str(team_id).strip()
        if team_id and team_id.lower() != "auto" and not team_id.isdigit():
            raise ValueError("'team_id' must be a number, 'auto' or empty")
        values['team_id'] = team_id

    for key in ('poll_minutes', 'notify_hour'):
        if key in raw_config:
            value = raw_config[key]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{key}' must be an integer")
            values[key] = value

    if 'db_path' in raw_config:
        db_path = raw_config['db_path']
        if not isinstance(db_path, str) or not db_path.strip():
            raise ValueError("'db_path' must be a non-empty string")
        values['db_path'] = db_path

    if 'log_level' in raw_config:
        log_level = raw_config['log_level']
        if not isinstance(log_level, str):
            raise ValueError("'log_level' must be a string")
        values['log_level'] = log_level.upper()

    return UsageConfig(**values)


def load_config_or_default(path: str = DEFAULT_CONFIG_PATH) -> UsageConfig:
    """Load settings, falling back to defaults when the file is absent."""
    try:
        return load_config(path)
    except FileNotFoundError:
        logging.getLogger(__name__).debug(f"No config file at {path}, using defaults")
        return UsageConfig()
