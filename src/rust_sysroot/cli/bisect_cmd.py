"""Implementation of the bisect command."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer

from rust_sysroot import EPOCH_COMMIT
from rust_sysroot.bisect import estimate_steps
from rust_sysroot.errors import SysrootError
from rust_sysroot.git import history_from_config
from rust_sysroot.runner import bisect_commits, get_commits
from rust_sysroot.sysroot import SysrootManager
from rust_sysroot.utils.cli_utils import exit_with_error, handle_keyboard_interrupt, loading_spinner
from rust_sysroot.utils.config_loader import ConfigLoader
from rust_sysroot.utils.host import get_host_triple
from rust_sysroot.utils.log_setup import console

from .cli_types import ConfigOpt, EndOpt, StartOpt, StrategyOpt, TripleOpt

logger = logging.getLogger(__name__)

TestArg = Annotated[
	Path,
	typer.Option(
		"--test",
		exists=True,
		dir_okay=False,
		resolve_path=True,
		help="File to run to test for regression; a non-zero exit means the commit is broken",
	),
]

PreserveFlag = Annotated[
	bool,
	typer.Option(
		"--preserve",
		"-p",
		help="Don't delete sysroots after running, and keep downloaded archives",
	),
]


def register_command(app: typer.Typer) -> None:
	"""Register the bisect command with the CLI app."""

	@app.command(name="bisect")
	def bisect_command(
		test: TestArg,
		triple: TripleOpt = None,
		start: StartOpt = None,
		end: EndOpt = None,
		preserve: PreserveFlag = False,
		strategy: StrategyOpt = None,
		config: ConfigOpt = None,
	) -> None:
		"""
		Find the bors merge that introduced a regression.

		The test file is run against the sysroot of each tested commit with
		RUSTC, RUSTDOC and CARGO (and their *_RELATIVE forms) set.

		"""
		_bisect_command_impl(
			test_case=test,
			triple=triple,
			start=start,
			end=end,
			preserve=preserve,
			strategy=strategy,
			config_file=config,
		)


def _bisect_command_impl(
	test_case: Path,
	triple: str | None,
	start: str | None,
	end: str | None,
	preserve: bool,
	strategy: str | None,
	config_file: Path | None,
) -> None:
	"""Run a bisection and print the regressing commit."""
	try:
		config_loader = ConfigLoader.get_instance(str(config_file) if config_file else None, reload=True)
		triple = triple or get_host_triple()
		start = start or config_loader.get("bisect.start") or EPOCH_COMMIT
		end = end or config_loader.get("bisect.end") or "master"

		history = history_from_config(config_loader, strategy)
		with loading_spinner("Getting commits..."):
			commits = get_commits(history, start, end)

		console.print(f"Searching in {len(commits)} commits; about {estimate_steps(len(commits))} steps")

		manager = SysrootManager.from_config(config_loader)
		result = bisect_commits(commits, manager, test_case, triple, preserve=preserve)
	except SysrootError as e:
		exit_with_error("Bisection failed", exception=e)
	except KeyboardInterrupt:
		handle_keyboard_interrupt()
	else:
		console.print(f"searched commits {commits[0].sha} through {commits[-1].sha}")
		if result.found is None:
			console.print("[yellow]no regression found: the test case passed on every commit[/yellow]")
		else:
			console.print(f"regression in {result.index}; {result.found}")
			if result.found.summary:
				console.print(f"  {result.found.summary}")
