"""
User Config

Tracker configuration at ~/.ccjk/workflow-config.yaml:

- state_file: where the workflow state JSON lives
- auto_save: persist after every mutation
- verbose: promote engine lifecycle messages to INFO
- log_level: root log level for the CLI

PHASETRACK_STATE_FILE in the environment overrides state_file.
"""

import logging
import os
import yaml
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


STATE_FILE_ENV_VAR = "PHASETRACK_STATE_FILE"


class TrackerConfig:
    """
    Configuration loaded from ~/.ccjk/workflow-config.yaml.

    Missing keys fall back to defaults; a missing or unreadable file yields
    the defaults unchanged.
    """

    CONFIG_PATH = Path.home() / ".ccjk" / "workflow-config.yaml"

    def __init__(self, data: dict, path: Optional[Path] = None):
        """Initialize with configuration data."""
        self._data = data
        self.path = path or self.CONFIG_PATH

    @classmethod
    def get_default(cls) -> dict:
        """Get default configuration."""
        return {
            "state_file": str(Path.home() / ".ccjk" / "workflow-state.json"),
            "auto_save": True,
            "verbose": False,
            "log_level": "WARNING",
        }

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "TrackerConfig":
        """
        Load configuration from the YAML file.

        Args:
            path: Config file location (defaults to CONFIG_PATH)

        Returns:
            TrackerConfig with user values merged over defaults
        """
        path = Path(path) if path else cls.CONFIG_PATH
        data = cls.get_default()

        if path.exists():
            try:
                with open(path) as f:
                    user_data = yaml.safe_load(f) or {}
                if not isinstance(user_data, dict):
                    raise ValueError("top-level YAML value must be a mapping")
                data = cls._deep_merge(data, user_data)
            except (OSError, yaml.YAMLError, ValueError) as e:
                logger.warning(f"Ignoring unreadable config file {path}: {e}")

        env_state_file = os.environ.get(STATE_FILE_ENV_VAR)
        if env_state_file:
            data["state_file"] = env_state_file

        return cls(data, path)

    @staticmethod
    def _deep_merge(base: dict, override: dict) -> dict:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = TrackerConfig._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def save(self) -> None:
        """Save configuration to the YAML file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            yaml.dump(self._data, f, default_flow_style=False)

    # ========================================================================
    # Property Accessors
    # ========================================================================

    @property
    def state_file(self) -> Path:
        return Path(self._data["state_file"]).expanduser()

    @property
    def auto_save(self) -> bool:
        return bool(self._data.get("auto_save", True))

    @property
    def verbose(self) -> bool:
        return bool(self._data.get("verbose", False))

    @property
    def log_level(self) -> int:
        """Log level as a logging constant (unknown names map to WARNING)."""
        level = self._data.get("log_level", "WARNING")
        if isinstance(level, int):
            return level
        value = logging.getLevelName(str(level).upper())
        return value if isinstance(value, int) else logging.WARNING

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
