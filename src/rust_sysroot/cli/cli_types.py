"""Type definitions for CLI parameters shared by several commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

ConfigOpt = Annotated[
	Path | None,
	typer.Option(
		"--config",
		"-c",
		help="Path to config file",
	),
]

TripleOpt = Annotated[
	str | None,
	typer.Option(
		"--triple",
		help="Triple to use for downloads (defaults to the host triple of the installed rustc)",
	),
]

StrategyOpt = Annotated[
	str | None,
	typer.Option(
		"--strategy",
		help="Where to read commits from: 'git' (local checkout) or 'github' (API)",
	),
]

StartOpt = Annotated[
	str | None,
	typer.Option(
		"--start",
		help="First commit to search from",
	),
]

EndOpt = Annotated[
	str | None,
	typer.Option(
		"--end",
		help="Last commit to search until",
	),
]
