"""Implementation of the install command."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

import typer

from rust_sysroot import EPOCH_COMMIT
from rust_sysroot.errors import ResolutionError, SysrootError
from rust_sysroot.git import Commit, history_from_config
from rust_sysroot.runner import get_commits
from rust_sysroot.sysroot import SysrootManager
from rust_sysroot.utils.cli_utils import exit_with_error, handle_keyboard_interrupt, loading_spinner, show_warning
from rust_sysroot.utils.config_loader import ConfigLoader
from rust_sysroot.utils.host import get_host_triple
from rust_sysroot.utils.log_setup import console

from .cli_types import ConfigOpt, StrategyOpt, TripleOpt

logger = logging.getLogger(__name__)

# Date given to unvalidated commits; it predates the cargo cutoff
UNVALIDATED_COMMIT_DATE = datetime(2000, 1, 1, tzinfo=UTC)

CommitOpt = Annotated[str, typer.Option("--commit", help="SHA of sysroot")]

SkipValidationFlag = Annotated[
	bool,
	typer.Option(
		"--skip-validation",
		help="Skip validation of commit, useful for try builds",
	),
]

LocalRustcOpt = Annotated[
	Path | None,
	typer.Option(
		"--rustc",
		exists=True,
		dir_okay=False,
		help="Use this locally built rustc and only download cargo",
	),
]


def register_command(app: typer.Typer) -> None:
	"""Register the install command with the CLI app."""

	@app.command(name="install")
	def install_command(
		commit: CommitOpt,
		triple: TripleOpt = None,
		skip_validation: SkipValidationFlag = False,
		rustc: LocalRustcOpt = None,
		strategy: StrategyOpt = None,
		config: ConfigOpt = None,
	) -> None:
		"""Install Rust from a given PR and keep it in the cache."""
		_install_command_impl(
			commit_sha=commit,
			triple=triple,
			skip_validation=skip_validation,
			rustc=rustc,
			strategy=strategy,
			config_file=config,
		)


def find_commit(commits: list[Commit], commit_sha: str) -> Commit:
	"""
	Find the bors commit whose sha starts with ``commit_sha``.

	Raises:
	    ResolutionError: If no resolved commit matches.

	"""
	for commit in commits:
		if commit.sha.startswith(commit_sha):
			return commit
	msg = f"{commit_sha} is not a bors commit; use --skip-validation for try builds"
	raise ResolutionError(msg)


def _install_command_impl(
	commit_sha: str,
	triple: str | None,
	skip_validation: bool,
	rustc: Path | None,
	strategy: str | None,
	config_file: Path | None,
) -> None:
	"""Install a sysroot and leave it on disk."""
	try:
		config_loader = ConfigLoader.get_instance(str(config_file) if config_file else None, reload=True)
		triple = triple or get_host_triple()

		if skip_validation:
			commit = Commit(sha=commit_sha, date=UNVALIDATED_COMMIT_DATE)
		else:
			history = history_from_config(config_loader, strategy)
			start = config_loader.get("bisect.start") or EPOCH_COMMIT
			end = config_loader.get("bisect.end") or "master"
			with loading_spinner("Validating commit..."):
				commit = find_commit(get_commits(history, start, end), commit_sha)

		manager = SysrootManager.from_config(config_loader)
		with loading_spinner(f"Installing {commit.short_sha}..."):
			if rustc is not None:
				sysroot = manager.install_with_local_rustc(commit, rustc, triple, preserve=True)
			else:
				sysroot = manager.install(commit, triple, preserve=True, save_archives=False)
	except SysrootError as e:
		exit_with_error("Installation failed", exception=e)
	except KeyboardInterrupt:
		handle_keyboard_interrupt()
	else:
		if sysroot.used_fallback_cargo:
			show_warning(f"{commit.short_sha} predates the cargo cutoff; a known-good cargo was installed")
		console.print(f"Sysroot can be found in {sysroot.directory}")
		console.print("Please delete it when finished.")
