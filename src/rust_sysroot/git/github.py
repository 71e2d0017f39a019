"""Read the integration history through the GitHub commits API."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from typing import Any

import requests

from rust_sysroot.errors import ResolutionError
from rust_sysroot.git.base import CommitHistory, validate_sequence
from rust_sysroot.git.models import HEX_SHA, Commit

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "GH_API_TOKEN"


def parse_commit(item: Any) -> Commit:
	"""
	Parse one entry of a commits listing.

	Raises:
	    ResolutionError: If the entry lacks ``sha`` or ``commit.committer.date``.

	"""
	try:
		sha = item["sha"]
		raw_date = item["commit"]["committer"]["date"]
		date = datetime.fromisoformat(raw_date).astimezone(UTC)
		summary = (item["commit"].get("message") or "").split("\n", 1)[0]
	except (KeyError, TypeError, ValueError, AttributeError) as e:
		msg = f"Malformed commit object in API response: {item!r}"
		raise ResolutionError(msg) from e
	return Commit(sha=sha, date=date, summary=summary)


class GitHubHistory(CommitHistory):
	"""
	Pages backwards through the bors-authored commits of a GitHub repository.

	The listing is filtered by author, so every entry is an integration
	merge; pagination stops as soon as the oldest boundary shows up.

	"""

	def __init__(
		self,
		repository: str = "rust-lang/rust",
		bot_author: str = "bors",
		api_url: str = "https://api.github.com",
		token: str | None = None,
		per_page: int = 100,
		timeout: float = 30,
		session: requests.Session | None = None,
	) -> None:
		"""
		Initialize the API client.

		Args:
		    repository: ``owner/name`` of the repository.
		    bot_author: Author name of the integration bot.
		    api_url: Base url of the API.
		    token: Optional API token. Defaults to ``$GH_API_TOKEN``.
		    per_page: Page size requested from the API.
		    timeout: Per-request timeout in seconds.
		    session: Session to issue requests with.

		"""
		self.repository = repository
		self.bot_author = bot_author
		self.api_url = api_url.rstrip("/")
		self.per_page = per_page
		self.timeout = timeout
		self.session = session or requests.Session()
		token = token if token is not None else os.environ.get(TOKEN_ENV_VAR)
		if token:
			self.session.headers["Authorization"] = f"Bearer {token}"

	def listing_url(self, last: str) -> str:
		"""Build the url of the newest page of bot commits ending at ``last``."""
		return (
			f"{self.api_url}/repos/{self.repository}/commits"
			f"?author={self.bot_author}&per_page={self.per_page}&sha={last}"
		)

	def _request(self, url: str) -> tuple[list[Any], str | None]:
		"""Fetch one page, returning its items and the next page url."""
		logger.info("Requesting: %s", url)
		try:
			response = self.session.get(url, timeout=self.timeout)
			response.raise_for_status()
			value = response.json()
		except requests.RequestException as e:
			msg = f"API request to {url} failed: {e}"
			raise ResolutionError(msg) from e
		except ValueError as e:
			msg = f"API request to {url} returned invalid JSON: {e}"
			raise ResolutionError(msg) from e

		if not isinstance(value, list):
			msg = f"{url} returned non-array response: {value!r}"
			raise ResolutionError(msg)

		next_url = response.links.get("next", {}).get("url")
		return value, next_url

	def resolve(self, first: str, last: str) -> list[Commit]:
		"""
		Return the bors commits from ``first`` up to ``last``.

		Args:
		    first: Sha, or unambiguous sha prefix, of the oldest merge.
		    last: Branch name or sha of the newest merge.

		Returns:
		    The merges in chronological order.

		Raises:
		    ResolutionError: On request failures, malformed pages, or when
		    the listing ends before ``first`` appears.

		"""
		first = first.lower()
		commits: list[Commit] = []
		url: str | None = self.listing_url(last)
		position: int | None = None

		while position is None:
			if url is None:
				msg = f"Couldn't find first commit {first}"
				raise ResolutionError(msg)
			items, url = self._request(url)
			page = [parse_commit(item) for item in items]

			if not commits and HEX_SHA.fullmatch(last) and (not page or not page[0].sha.startswith(last)):
				msg = f"Expected {last} to be authored by {self.bot_author}"
				raise ResolutionError(msg)

			commits.extend(page)
			position = next((i for i, commit in enumerate(commits) if commit.sha.startswith(first)), None)

		del commits[position + 1 :]
		commits.reverse()

		validate_sequence(commits)
		logger.info("Resolved %d commits from %s", len(commits), self.repository)
		return commits
