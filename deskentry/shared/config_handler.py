import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
import toml

from deskentry.shared import config_template
from deskentry.shared.path_handler import PathHandler


class ConfigHandler:
    """
    Manages deskentry's configuration file (config.toml).

    The file is merged over the built-in defaults, so every setting always
    has a value. If the file exists but cannot be read, the defaults are used
    and saving is refused to protect the user's file.
    """

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        logger: Any = None,
    ):
        """
        Args:
            config_file: Path of the TOML file. Defaults to
                $XDG_CONFIG_HOME/deskentry/config.toml.
            logger: Optional structlog logger.
        """
        self.logger = logger or structlog.get_logger()
        self.default_config = config_template.default_config
        self.config_file = (
            Path(config_file)
            if config_file is not None
            else PathHandler().get_config_file()
        )
        self._load_successful: bool = False
        self.config_data: Dict[str, Any] = self.load_config()

    def _strip_hints(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively removes keys ending with '_hint' from a settings dictionary."""
        stripped_data = {}
        for key, value in data.items():
            if key.endswith("_hint"):
                continue
            if isinstance(value, dict):
                stripped_data[key] = self._strip_hints(value)
            else:
                stripped_data[key] = value
        return stripped_data

    @property
    def default_config_stripped(self) -> Dict[str, Any]:
        """Returns the default config without any setting hints."""
        return self._strip_hints(self.default_config)

    def _recursive_merge(
        self,
        user_config: Dict[str, Any],
        default_config: Dict[str, Any],
    ) -> bool:
        """
        Recursively merges missing keys from `default_config` into `user_config`.
        Returns:
            True if any key was added.
        """
        added = False
        for key, default_value in default_config.items():
            if key not in user_config:
                user_config[key] = default_value
                added = True
            elif isinstance(default_value, dict) and isinstance(
                user_config.get(key), dict
            ):
                if self._recursive_merge(user_config[key], default_value):
                    added = True
        return added

    def load_config(self) -> Dict[str, Any]:
        """
        Loads the configuration from file, or uses defaults if missing/corrupt.
        Returns:
            The loaded and merged configuration dictionary.
        """
        config_from_file: Dict[str, Any] = {}
        if not self.config_file.exists():
            self.logger.debug(
                f"Config file {self.config_file} is missing, using defaults."
            )
            self._load_successful = True
        else:
            max_retries = 3
            retry_delay_seconds = 0.1
            for attempt in range(max_retries):
                try:
                    with open(self.config_file, "r") as f:
                        config_from_file = toml.load(f)
                    self._load_successful = True
                    break
                except (OSError, toml.TomlDecodeError) as e:
                    self.logger.error(
                        f"Error loading config file on attempt {attempt + 1}: {e}."
                    )
                    time.sleep(retry_delay_seconds)
            else:
                self.logger.error(
                    "Failed to load config file after all retries. Using default configuration and refusing to save."
                )
                config_from_file = {}
                self._load_successful = False
        self._recursive_merge(config_from_file, self.default_config_stripped)
        return config_from_file

    def reload_config(self) -> None:
        """Loads the configuration from the file, replacing the current data."""
        self.config_data = self.load_config()
        self.logger.debug("Configuration reloaded from file.")

    def save_config(self) -> bool:
        """Writes the current configuration to the TOML file."""
        if not self._load_successful:
            self.logger.warning(
                "Skipping configuration save: config.toml failed to load. Please fix it manually."
            )
            return False
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                toml.dump(self.config_data, f)
        except OSError as e:
            self.logger.error(f"Failed to save configuration to {self.config_file}: {e}")
            return False
        self.logger.info("Configuration saved successfully.")
        return True

    def get_root_setting(self, key_path: List[str], default_value: Any = None) -> Any:
        """
        Traverses the configuration to retrieve a value.
        Args:
            key_path: Path of keys, e.g. ['gpu', 'timeout'].
            default_value: Value to return if the path is not found.
        """
        current_data: Any = self.config_data
        for i, key in enumerate(key_path):
            if isinstance(current_data, dict) and key in current_data:
                current_data = current_data[key]
            else:
                self.logger.debug(
                    f"Missing configuration key at path: {' -> '.join(key_path[: i + 1])}. Using default value: {default_value}"
                )
                return default_value
        return current_data

    def set_root_setting(self, key_path: List[str], new_value: Any) -> bool:
        """Sets a configuration value and saves the file."""
        if not key_path:
            self.logger.error("Configuration key path cannot be empty.")
            return False
        current_data = self.config_data
        for key in key_path[:-1]:
            if not isinstance(current_data.get(key), dict):
                current_data[key] = {}
            current_data = current_data[key]
        current_data[key_path[-1]] = new_value
        self.logger.info(f"Set config key {' -> '.join(key_path)} to {new_value}.")
        return self.save_config()

    def get_hint(self, key_path: List[str]) -> Optional[str]:
        """Returns the documentation hint of a setting, if there is one."""
        section: Any = self.default_config
        for key in key_path[:-1]:
            section = section.get(key, {}) if isinstance(section, dict) else {}
        if not isinstance(section, dict):
            return None
        return section.get(f"{key_path[-1]}_hint")
