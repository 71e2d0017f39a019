"""Read the integration history from a local rust-lang/rust checkout using pygit2."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from pygit2 import Commit as Pygit2Commit
from pygit2 import GitError as Pygit2GitError
from pygit2.repository import Repository

from rust_sysroot.errors import ResolutionError
from rust_sysroot.git.base import CommitHistory, validate_sequence
from rust_sysroot.git.models import Commit

logger = logging.getLogger(__name__)

REPO_ENV_VAR = "RUST_SRC_REPO"


def commit_from_pygit2(commit: Pygit2Commit) -> Commit:
	"""Convert a pygit2 commit into a ``Commit`` dated by its committer time."""
	message = commit.message or ""
	summary = message.splitlines()[0].strip() if message else ""
	return Commit(
		sha=str(commit.id),
		date=datetime.fromtimestamp(commit.commit_time, tz=UTC),
		summary=summary,
	)


class LocalHistory(CommitHistory):
	"""
	Walks the first-parent chain of bors merges in a local repository.

	Every bors merge has the previous bors merge as its first parent, so
	following first parents from the newest boundary visits exactly the
	integration commits.

	"""

	def __init__(self, repo_path: Path | str | None = None, bot_author: str = "bors") -> None:
		"""
		Open the repository.

		Args:
		    repo_path: Path to the checkout. Defaults to ``$RUST_SRC_REPO``.
		    bot_author: Author name of the integration bot.

		Raises:
		    ResolutionError: If no repository can be opened.

		"""
		if repo_path is None:
			repo_path = os.environ.get(REPO_ENV_VAR)
		if not repo_path:
			msg = f"No repository configured; set history.repo_path or ${REPO_ENV_VAR}"
			raise ResolutionError(msg)

		self.repo_path = Path(repo_path).expanduser()
		self.bot_author = bot_author
		try:
			self.repo = Repository(str(self.repo_path))
		except (Pygit2GitError, OSError) as e:
			msg = f"Could not open repository at {self.repo_path}: {e}"
			raise ResolutionError(msg) from e
		logger.debug("Opened repository %s", self.repo.path)

	def lookup_rev(self, rev: str) -> Pygit2Commit:
		"""
		Resolve a revision specifier to a commit.

		Raises:
		    ResolutionError: If the specifier does not name a commit.

		"""
		try:
			return self.repo.revparse_single(rev).peel(Pygit2Commit)
		except (KeyError, ValueError, Pygit2GitError) as e:
			msg = f"Could not find a commit for revision specifier '{rev}'"
			raise ResolutionError(msg) from e

	def _is_bot(self, commit: Pygit2Commit) -> bool:
		return commit.author is not None and commit.author.name == self.bot_author

	def _assert_by_bot(self, commit: Pygit2Commit) -> None:
		if commit.author is None or not commit.author.name:
			msg = f"No author for {commit.id}"
			raise ResolutionError(msg)
		if not self._is_bot(commit):
			msg = f"Expected author {commit.author.name} to be {self.bot_author} for {commit.id}"
			raise ResolutionError(msg)

	@staticmethod
	def _first_parent(commit: Pygit2Commit) -> Pygit2Commit:
		if not commit.parent_ids:
			msg = "reached end of repo without encountering the first commit"
			raise ResolutionError(msg)
		return commit.parents[0]

	def resolve(self, first: str, last: str) -> list[Commit]:
		"""
		Return the bors merge commits between the two boundaries, inclusive.

		Args:
		    first: Revision specifier of the oldest merge.
		    last: Revision specifier of the newest merge.

		Returns:
		    The merges in chronological order.

		Raises:
		    ResolutionError: If a boundary is missing or not a bors merge,
		    or if the walk runs out of history before reaching ``first``.

		"""
		first_commit = self.lookup_rev(first)
		last_commit = self.lookup_rev(last)

		# The first-parent walk below only holds for bors merges
		self._assert_by_bot(first_commit)
		self._assert_by_bot(last_commit)

		visited: list[Commit] = []
		current = last_commit
		while current.id != first_commit.id:
			self._assert_by_bot(current)
			visited.append(commit_from_pygit2(current))

			parent = self._first_parent(current)
			if not self._is_bot(parent):
				author = parent.author.name if parent.author is not None else None
				logger.warning("%s has non-%s author: %s, skipping", parent.id, self.bot_author, author)
				parent = self._first_parent(parent)
			current = parent

		visited.append(commit_from_pygit2(first_commit))
		visited.reverse()

		validate_sequence(visited)
		logger.info("Resolved %d commits from %s", len(visited), self.repo_path)
		return visited
