"""Common interface for commit history sources."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from rust_sysroot.errors import ResolutionError

if TYPE_CHECKING:
	from collections.abc import Sequence

	from rust_sysroot.git.models import Commit

logger = logging.getLogger(__name__)


def validate_sequence(commits: Sequence[Commit]) -> None:
	"""
	Check the invariants of a resolved commit sequence.

	Args:
	    commits: Commits in the order they will be bisected.

	Raises:
	    ResolutionError: If the sequence is empty, repeats a sha or is not
	    in chronological order.

	"""
	if not commits:
		msg = "Resolved commit sequence is empty"
		raise ResolutionError(msg)

	seen: set[str] = set()
	previous = None
	for commit in commits:
		if commit.sha in seen:
			msg = f"Commit {commit.sha} appears more than once in the resolved history"
			raise ResolutionError(msg)
		seen.add(commit.sha)
		if previous is not None and commit.date < previous.date:
			msg = f"Commit {commit.sha} ({commit.date}) is older than its predecessor {previous.sha} ({previous.date})"
			raise ResolutionError(msg)
		previous = commit


class CommitHistory(ABC):
	"""A source of bors merge commits between two boundaries."""

	@abstractmethod
	def resolve(self, first: str, last: str) -> list[Commit]:
		"""
		Return the integration commits from ``first`` to ``last`` inclusive.

		Args:
		    first: Revision specifier of the oldest commit.
		    last: Revision specifier of the newest commit.

		Returns:
		    The commits in chronological order.

		Raises:
		    ResolutionError: If the boundaries cannot be found or linked.

		"""


class StaticHistory(CommitHistory):
	"""History backed by a fixed, already ordered list of commits."""

	def __init__(self, commits: Sequence[Commit]) -> None:
		"""Initialize with commits in chronological order."""
		validate_sequence(commits)
		self.commits = list(commits)

	def _index_of(self, rev: str) -> int:
		if rev in ("master", "HEAD"):
			return len(self.commits) - 1
		for index, commit in enumerate(self.commits):
			if commit.sha.startswith(rev):
				return index
		msg = f"Could not find a commit for revision specifier '{rev}'"
		raise ResolutionError(msg)

	def resolve(self, first: str, last: str) -> list[Commit]:
		"""Slice the stored commits between the two boundaries."""
		start = self._index_of(first)
		end = self._index_of(last)
		if start > end:
			msg = f"'{first}' is newer than '{last}'"
			raise ResolutionError(msg)
		return self.commits[start : end + 1]
