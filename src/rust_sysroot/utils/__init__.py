"""Utility module for rust-sysroot."""

from .cli_utils import exit_with_error, loading_spinner
from .config_loader import ConfigError, ConfigLoader
from .host import get_host_triple

__all__ = [
	"ConfigError",
	"ConfigLoader",
	"exit_with_error",
	"get_host_triple",
	"loading_spinner",
]
