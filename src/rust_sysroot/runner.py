"""Tie history resolution, sysroot installation and test runs into a bisection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from email.utils import format_datetime
from typing import TYPE_CHECKING

from rust_sysroot.bisect import least_satisfying
from rust_sysroot.errors import ResolutionError
from rust_sysroot.git.models import HEX_SHA
from rust_sysroot.sandbox import run_test

if TYPE_CHECKING:
	from pathlib import Path

	from rust_sysroot.git.base import CommitHistory
	from rust_sysroot.git.models import Commit
	from rust_sysroot.sysroot.manager import SysrootManager

logger = logging.getLogger(__name__)


@dataclass
class BisectResult:
	"""Outcome of a bisection over a resolved commit sequence."""

	index: int
	commits: list[Commit]

	@property
	def found(self) -> Commit | None:
		"""The first broken commit, or None if no commit was broken."""
		if self.index < len(self.commits):
			return self.commits[self.index]
		return None


def get_commits(history: CommitHistory, start: str, end: str) -> list[Commit]:
	"""
	Resolve the commits to bisect.

	When ``start`` is a sha, the sequence must begin with that commit.

	Raises:
	    ResolutionError: If the resolved history does not start at ``start``.

	"""
	commits = history.resolve(start, end)
	if HEX_SHA.fullmatch(start) and not commits[0].sha.startswith(start):
		msg = f"Resolved history starts at {commits[0].sha}, expected {start}"
		raise ResolutionError(msg)
	return commits


def check_commit(
	manager: SysrootManager,
	commit: Commit,
	test_case: Path,
	triple: str,
	preserve: bool = False,
) -> bool:
	"""
	Install the sysroot for ``commit`` and run the test case against it.

	Returns:
	    True if the regression reproduces at this commit.

	"""
	with manager.install(commit, triple, preserve=preserve) as sysroot:
		broken = run_test(sysroot, test_case)
	logger.info("tested %s from %s: test failed: %s", commit.short_sha, format_datetime(commit.date), broken)
	return broken


def bisect_commits(
	commits: list[Commit],
	manager: SysrootManager,
	test_case: Path,
	triple: str,
	preserve: bool = False,
) -> BisectResult:
	"""Find the first commit in ``commits`` at which ``test_case`` fails."""
	index = least_satisfying(
		commits,
		lambda commit: check_commit(manager, commit, test_case, triple, preserve=preserve),
	)
	return BisectResult(index=index, commits=commits)
