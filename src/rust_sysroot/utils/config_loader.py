"""
Configuration loader for rust-sysroot.

This module provides functionality for loading and managing
configuration settings.

"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, TypeVar, cast

import yaml
from xdg.BaseDirectory import xdg_config_home

from rust_sysroot.config import DEFAULT_CONFIG
from rust_sysroot.errors import SysrootError

# Set up logger
logger = logging.getLogger(__name__)

# Type variable for config values with better type safety
T = TypeVar("T")

ENV_PREFIX = "RUST_SYSROOT_"

# Unprefixed environment variables mapped onto config keys
LEGACY_ENV_OVERRIDES = {
	"RUST_SRC_REPO": ("history", "repo_path"),
	"GH_API_TOKEN": ("history", "token"),
}

# Type for configuration values
ConfigValue = str | int | float | bool | dict[str, Any] | list[Any] | None


class ConfigError(SysrootError):
	"""Exception raised for configuration errors."""


def _coerce_env_value(value: str, default: ConfigValue) -> ConfigValue:
	"""
	Convert an environment string to the type of the setting's default.

	Settings without a bool, int or float default stay strings, so shas
	made only of digits are not turned into numbers.

	Raises:
	    ConfigError: If the value does not parse as the default's type.

	"""
	# bool first, it is a subclass of int
	if isinstance(default, bool):
		if value.lower() in ("true", "yes", "1"):
			return True
		if value.lower() in ("false", "no", "0"):
			return False
		msg = f"expected a boolean, got '{value}'"
		raise ConfigError(msg)
	try:
		if isinstance(default, int):
			return int(value)
		if isinstance(default, float):
			return float(value)
	except ValueError as e:
		msg = f"expected {type(default).__name__}, got '{value}'"
		raise ConfigError(msg) from e
	return value


class ConfigLoader:
	"""
	Loads and manages configuration for rust-sysroot.

	Configuration is layered: built-in defaults, then a YAML file, then
	environment variables.

	"""

	_instance = None  # For singleton pattern

	@classmethod
	def get_instance(cls, config_file: str | None = None, reload: bool = False) -> "ConfigLoader":
		"""
		Get the singleton instance of ConfigLoader.

		Args:
		    config_file: Path to configuration file (optional)
		    reload: Whether to reload config even if already loaded

		Returns:
		    ConfigLoader: Singleton instance

		"""
		if cls._instance is None or reload:
			cls._instance = cls(config_file)
		return cls._instance

	def __init__(self, config_file: str | None = None) -> None:
		"""
		Initialize the configuration loader.

		Args:
		    config_file: Path to configuration file (optional)

		"""
		self.config: dict[str, Any] = {}
		self.config_file = self._resolve_config_file(config_file)
		self.load_config()

	def _resolve_config_file(self, config_file: str | None = None) -> Path | None:
		"""
		Resolve the configuration file path.

		If a config file is specified, use that. Otherwise, look in standard locations:
		1. ./.rust-sysroot.yml in the current directory
		2. $XDG_CONFIG_HOME/rust-sysroot/config.yml

		Args:
		    config_file: Explicitly provided config file path (optional)

		Returns:
		    Optional[Path]: Resolved config file path or None if no suitable file found

		"""
		if config_file:
			path = Path(config_file).expanduser().resolve()
			if not path.exists():
				logger.warning("Specified config file not found: %s", path)
			return path

		local_config = Path(".rust-sysroot.yml")
		if local_config.exists():
			return local_config

		xdg_config_file = Path(xdg_config_home) / "rust-sysroot" / "config.yml"
		if xdg_config_file.exists():
			return xdg_config_file

		return None

	def load_config(self) -> dict[str, Any]:
		"""
		Load configuration from file and apply environment variable overrides.

		Returns:
		    Dict[str, Any]: Loaded configuration

		Raises:
		    ConfigError: If configuration file exists but cannot be loaded

		"""
		self.config = copy.deepcopy(DEFAULT_CONFIG)

		if self.config_file:
			try:
				if self.config_file.exists():
					with self.config_file.open(encoding="utf-8") as f:
						file_config = yaml.safe_load(f)
					if file_config:
						if not isinstance(file_config, dict):
							msg = f"Configuration in {self.config_file} must be a mapping"
							raise ConfigError(msg)
						self._merge_configs(self.config, file_config)
					logger.info("Loaded configuration from %s", self.config_file)
				else:
					logger.warning("Configuration file not found: %s", self.config_file)
			except (OSError, yaml.YAMLError) as e:
				error_msg = f"Error loading configuration from {self.config_file}: {e}"
				logger.exception(error_msg)
				raise ConfigError(error_msg) from e

		self._apply_env_overrides()

		return self.config

	def _merge_configs(self, base: dict[str, Any], override: dict[str, Any]) -> None:
		"""
		Recursively merge two configuration dictionaries.

		Args:
		    base: Base configuration dictionary to merge into
		    override: Override configuration to apply

		"""
		for key, value in override.items():
			if isinstance(value, dict) and key in base and isinstance(base[key], dict):
				self._merge_configs(base[key], value)
			else:
				base[key] = value

	def _apply_env_overrides(self) -> None:
		"""Apply environment variable overrides to configuration."""
		for env_var, (section, key) in LEGACY_ENV_OVERRIDES.items():
			value = os.environ.get(env_var)
			if value:
				self.config.setdefault(section, {})[key] = value
				logger.debug("Applied environment override %s", env_var)

		# Look for environment variables in the form RUST_SYSROOT_SECTION_KEY
		for env_var, value in os.environ.items():
			if not env_var.startswith(ENV_PREFIX):
				continue
			section, _, key = env_var[len(ENV_PREFIX) :].lower().partition("_")
			if not section or not key:
				continue

			if section not in self.config:
				self.config[section] = {}
			default = DEFAULT_CONFIG.get(section, {}).get(key)
			try:
				typed_value = _coerce_env_value(value, default)
			except ConfigError as e:
				msg = f"Invalid value for {env_var}: {e}"
				raise ConfigError(msg) from e
			self.config[section][key] = typed_value
			logger.debug("Applied environment override %s: %s", env_var, typed_value)

	def get(self, key: str, default: T = None) -> T:
		"""
		Get a configuration value using dot notation.

		Examples:
		    config.get("history")
		    config.get("history.bot_author")

		Args:
		    key: Configuration key, can include dots for nested access
		    default: Default value if key not found

		Returns:
		    T: Configuration value or default

		"""
		current = self.config
		for part in key.split("."):
			if isinstance(current, dict) and part in current:
				current = current[part]
			else:
				return default

		return cast("T", current)

	def set(self, key: str, value: ConfigValue) -> None:
		"""
		Set a configuration value.

		Args:
		    key: Configuration key, can include dots for nested access
		    value: Value to set

		"""
		parts = key.split(".")
		current = self.config
		for part in parts[:-1]:
			if not isinstance(current.get(part), dict):
				current[part] = {}
			current = current[part]

		current[parts[-1]] = value

	def get_history_config(self) -> dict[str, Any]:
		"""
		Get commit history configuration.

		Returns:
		    dict[str, Any]: History configuration

		"""
		return self.get("history", {})

	def get_sysroot_config(self) -> dict[str, Any]:
		"""
		Get sysroot cache configuration.

		Returns:
		    dict[str, Any]: Sysroot configuration

		"""
		return self.get("sysroot", {})
