"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from patchsync.exceptions import ConfigurationError
from patchsync.models.config import SyncConfig

log = logging.getLogger(__name__)

SEED_FILES_SECTION = "seed_files"

# Keys without a model default; they must be provided by the user
REQUIRED_KEYS = ("manifest_url", "files_base_url", "install_root")


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)
        # Seed file names are case-sensitive paths
        self._parser.optionxform = str

    def load_config(self, cli_options: dict[str, Any] | None = None) -> SyncConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated SyncConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'patchsync init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        config_from_file = self._get_config_as_dict()

        # Override with CLI options
        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return SyncConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save. Must contain the endpoint
                URLs and the install root.

        Raises:
            ConfigurationError: If the settings are invalid or cannot be written.
        """
        try:
            validated = SyncConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        config = configparser.ConfigParser(interpolation=None)
        config.optionxform = str
        config["DEFAULT"] = {}
        for key in sorted(SyncConfig.get_ini_keys()):
            config["DEFAULT"][key] = self._to_ini_value(getattr(validated, key))

        config[SEED_FILES_SECTION] = {}
        for path, content in validated.seed_files.items():
            config[SEED_FILES_SECTION][path] = content

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _to_ini_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section and the seed files into a dictionary."""
        section = self._parser["DEFAULT"]
        config: dict[str, Any] = {
            key: section[key]
            for key in SyncConfig.get_ini_keys()
            if key in section and section[key] != ""
        }
        if self._parser.has_section(SEED_FILES_SECTION):
            config["seed_files"] = self._read_seed_files()
        return config

    def _read_seed_files(self) -> dict[str, str]:
        """Reads the seed file section without inheriting the DEFAULT keys."""
        # No header can be empty, so DEFAULT is read as an ordinary section
        parser = configparser.ConfigParser(interpolation=None, default_section="")
        parser.optionxform = str
        parser.read(self.config_file_path, encoding="utf-8")
        return dict(parser.items(SEED_FILES_SECTION))

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = SyncConfig.model_construct()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in SyncConfig.get_ini_keys():
            if key in config_section or key in REQUIRED_KEYS:
                continue
            config_section[key] = self._to_ini_value(getattr(defaults, key))
            needs_saving = True
            log.debug(
                f"Migrating config: added missing key '{key}' with "
                f"value '{config_section[key]}'."
            )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
