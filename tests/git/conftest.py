"""Fixtures for history resolution tests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pygit2
import pytest

BASE_TIME = 1_600_000_000
API_URL = "https://api.github.test"
LISTING_PREFIX = f"{API_URL}/repos/rust-lang/rust/commits?author=bors&per_page="


@dataclass
class BorsRepo:
	"""A small repository shaped like rust-lang/rust's integration branch."""

	path: Path
	repo: pygit2.Repository
	merges: list[str] = field(default_factory=list)
	contributions: list[str] = field(default_factory=list)
	rollup: str = ""

	def api_items(self) -> list[dict[str, Any]]:
		"""Bors commits as the commits API lists them, newest first."""
		items = []
		for sha in reversed(self.merges):
			commit = self.repo.get(sha)
			date = datetime.fromtimestamp(commit.commit_time, tz=UTC)
			items.append(
				{
					"sha": sha,
					"commit": {
						"message": commit.message,
						"committer": {"name": "bors", "date": date.strftime("%Y-%m-%dT%H:%M:%SZ")},
					},
				}
			)
		return items


def _signature(name: str, time: int) -> pygit2.Signature:
	return pygit2.Signature(name, f"{name}@example.com", time, 0)


@pytest.fixture
def bors_repo(tmp_path: Path) -> BorsRepo:
	"""
	Six bors merges on master, each merging one contributor commit.

	The third merge's first parent is a commit pushed directly by someone
	other than bors, whose own first parent is the second merge.
	"""
	path = tmp_path / "rust"
	repo = pygit2.init_repository(str(path), initial_head="master")
	tree = repo.TreeBuilder().write()
	result = BorsRepo(path=path, repo=repo)

	def commit(author: str, message: str, parents: list[pygit2.Oid], time: int) -> pygit2.Oid:
		signature = _signature(author, time)
		return repo.create_commit(None, signature, signature, message, tree, parents)

	previous = commit("bors", "Auto merge of #0 - init\n", [], BASE_TIME)
	result.merges.append(str(previous))
	for number in range(1, 6):
		time = BASE_TIME + number * 3600
		contribution = commit("alice", f"Fix issue {number}\n", [previous], time)
		result.contributions.append(str(contribution))
		first_parent = previous
		if number == 3:  # noqa: PLR2004
			first_parent = commit("mallory", "Push directly to master\n", [previous], time + 60)
			result.rollup = str(first_parent)
		previous = commit("bors", f"Auto merge of #{number} - fix-{number}\n", [first_parent, contribution], time + 120)
		result.merges.append(str(previous))

	repo.references.create("refs/heads/master", previous, force=True)
	return result


def _response(items: Any, next_url: str | None) -> MagicMock:
	response = MagicMock()
	response.json.return_value = items
	response.links = {"next": {"url": next_url}} if next_url else {}
	return response


@pytest.fixture
def api_session() -> Callable[..., MagicMock]:
	"""
	Build a session serving ``items`` as paginated API responses.

	The first page is served for any listing url; later pages are served
	from the urls advertised in the ``next`` link.
	"""

	def factory(items: list[Any], per_page: int = 100) -> MagicMock:
		pages = [items[i : i + per_page] for i in range(0, len(items), per_page)] or [[]]
		urls = {f"{API_URL}/page/{number}": page for number, page in enumerate(pages)}
		ordered = list(urls)

		def get(url: str, **_kwargs: object) -> MagicMock:
			number = 0 if url.startswith(LISTING_PREFIX) else ordered.index(url)
			next_url = ordered[number + 1] if number + 1 < len(ordered) else None
			return _response(urls[ordered[number]], next_url)

		session = MagicMock()
		session.headers = {}
		session.get.side_effect = get
		return session

	return factory
