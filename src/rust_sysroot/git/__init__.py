"""Commit history resolution for rust-sysroot."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rust_sysroot.utils.config_loader import ConfigError

from .base import CommitHistory, StaticHistory, validate_sequence
from .github import GitHubHistory
from .local import LocalHistory
from .models import Commit

if TYPE_CHECKING:
	from rust_sysroot.utils.config_loader import ConfigLoader

__all__ = [
	"Commit",
	"CommitHistory",
	"GitHubHistory",
	"LocalHistory",
	"StaticHistory",
	"history_from_config",
	"validate_sequence",
]


def history_from_config(config_loader: ConfigLoader, strategy: str | None = None) -> CommitHistory:
	"""
	Build the configured history source.

	Args:
	    config_loader: Loaded configuration.
	    strategy: ``git`` or ``github``, overriding ``history.strategy``.

	Returns:
	    The history source.

	"""
	config = config_loader.get_history_config()
	strategy = strategy or config.get("strategy", "git")
	bot_author = config.get("bot_author", "bors")

	if strategy == "github":
		return GitHubHistory(
			repository=config.get("repository", "rust-lang/rust"),
			bot_author=bot_author,
			api_url=config.get("api_url", "https://api.github.com"),
			token=config.get("token"),
			per_page=config.get("per_page", 100),
			timeout=config.get("timeout", 30),
		)
	if strategy == "git":
		return LocalHistory(config.get("repo_path"), bot_author=bot_author)

	msg = f"Unknown history strategy '{strategy}', expected 'git' or 'github'"
	raise ConfigError(msg)
